from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Sequence

from violation_analytics.preprocess.time import FILTER_DATE_FIELDS, record_date, to_local_naive
from violation_analytics.ranges.relative import AbsoluteWindow
from violation_analytics.ranges.state import TimeRangeState

LOGGER = logging.getLogger(__name__)


def build_fetch_filter(state: TimeRangeState, now: datetime) -> dict[str, Any] | None:
    """Query parameters for ``state``, or ``None`` when the range must not be fetched yet."""
    window = state.window(now)
    if window is None:
        return None
    return {"dateRange": window.as_filter()}


def filter_records_by_window(records: Sequence[Any] | None, window: AbsoluteWindow) -> list[Any]:
    """Keep records dated inside ``window``.

    Records without a parseable date are kept rather than hidden; only
    aggregation drops them, since it cannot assign them a period.
    """
    kept: list[Any] = []
    undated = 0
    for record in records or ():
        moment = record_date(record, FILTER_DATE_FIELDS)
        if moment is None:
            undated += 1
            kept.append(record)
            continue
        if window.contains(moment):
            kept.append(record)
    if undated:
        LOGGER.info("Kept %s records without a parseable date while filtering by range", undated)
    return kept


def filter_records_by_range(
    records: Sequence[Any] | None,
    state: TimeRangeState,
    now: datetime,
) -> list[Any]:
    """Apply ``state`` to fetched records; unapplied or incomplete ranges keep everything."""
    if not records:
        return []
    if not state.is_applied:
        return list(records)
    window = state.window(to_local_naive(now))
    if window is None:
        return list(records)
    return filter_records_by_window(records, window)
