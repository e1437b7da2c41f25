from __future__ import annotations

import calendar
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Literal

import pandas as pd

from violation_analytics.preprocess.fields import coerce_count
from violation_analytics.preprocess.time import (
    DATE_FIELDS,
    end_of_day,
    end_of_month,
    record_date,
    start_of_day,
    start_of_month,
    start_of_week,
    system_clock,
)

LOGGER = logging.getLogger(__name__)

Granularity = Literal["day", "week", "month"]
GRANULARITIES = ("day", "week", "month")
COUNT_FIELDS = ["reports", "approved", "rejected", "pending"]
BUCKET_COLUMNS = [
    "label",
    "start_of_period",
    "end_of_period",
    *COUNT_FIELDS,
    "to_be_reviewed",
]


@dataclass(frozen=True)
class BucketRow:
    label: str
    start_of_period: datetime
    end_of_period: datetime
    reports: int
    approved: int
    rejected: int
    pending: int
    to_be_reviewed: int


def _month_day(moment: datetime) -> str:
    return f"{calendar.month_abbr[moment.month]} {moment.day}"


def day_label(moment: datetime) -> str:
    return _month_day(moment)


def week_label(start: datetime, end: datetime, current_year: int) -> str:
    """``Jan 6-12``, ``Jan 27-Feb 2``; the year is appended outside ``current_year``."""
    if start.year != end.year:
        return f"{_month_day(start)}, {start.year}-{_month_day(end)}, {end.year}"
    end_text = str(end.day) if start.month == end.month else _month_day(end)
    label = f"{_month_day(start)}-{end_text}"
    if start.year != current_year:
        label = f"{label}, {start.year}"
    return label


def month_label(start: datetime, current_year: int) -> str:
    label = calendar.month_abbr[start.month]
    if start.year != current_year:
        label = f"{label} {start.year}"
    return label


def _day_bounds(moment: datetime) -> tuple[datetime, datetime]:
    return start_of_day(moment), end_of_day(moment)


def _week_bounds(moment: datetime) -> tuple[datetime, datetime]:
    start = start_of_week(moment)
    return start, end_of_day(start + timedelta(days=6))


def _month_bounds(moment: datetime) -> tuple[datetime, datetime]:
    return start_of_month(moment), end_of_month(moment)


PERIOD_BOUNDS: dict[str, Callable[[datetime], tuple[datetime, datetime]]] = {
    "day": _day_bounds,
    "week": _week_bounds,
    "month": _month_bounds,
}


def _dated_frame(records: Iterable[Any] | None, granularity: str) -> pd.DataFrame:
    bounds = PERIOD_BOUNDS[granularity]
    rows: list[dict[str, Any]] = []
    skipped = 0
    for record in records or ():
        moment = record_date(record, DATE_FIELDS)
        if moment is None:
            skipped += 1
            continue
        try:
            start, end = bounds(moment)
        except (OverflowError, ValueError):
            # Period end falls past datetime.max.
            skipped += 1
            continue
        row: dict[str, Any] = {"start_of_period": start, "end_of_period": end}
        for field in COUNT_FIELDS:
            row[field] = coerce_count(record.get(field))
        rows.append(row)
    if skipped:
        LOGGER.warning(
            "Skipped %s records without a parseable date or period while bucketing by %s",
            skipped,
            granularity,
        )
    return pd.DataFrame(rows, columns=["start_of_period", "end_of_period", *COUNT_FIELDS])


def _empty_bucket_frame() -> pd.DataFrame:
    return pd.DataFrame({column: pd.Series(dtype="object") for column in BUCKET_COLUMNS})


def _sum_by_period(frame: pd.DataFrame) -> pd.DataFrame:
    return (
        frame.groupby(["start_of_period", "end_of_period"], sort=True)[COUNT_FIELDS]
        .sum()
        .reset_index()
    )


def build_bucket_frame(
    records: Iterable[Any] | None,
    granularity: Granularity = "week",
    *,
    now: datetime | None = None,
) -> pd.DataFrame:
    """Group dated count records into day, week or month rows sorted by period start."""
    if granularity not in GRANULARITIES:
        raise ValueError(f"Unsupported bucket granularity: {granularity}")
    current_year = (now or system_clock()).year

    frame = _dated_frame(records, granularity)
    if frame.empty:
        return _empty_bucket_frame()

    if granularity == "day":
        grouped = frame.sort_values("start_of_period", kind="mergesort").reset_index(drop=True)
        grouped["label"] = [day_label(start) for start in grouped["start_of_period"]]
    elif granularity == "week":
        grouped = _sum_by_period(frame)
        grouped["label"] = [
            week_label(start, end, current_year)
            for start, end in zip(grouped["start_of_period"], grouped["end_of_period"])
        ]
    else:
        grouped = _sum_by_period(frame)
        grouped["label"] = [
            month_label(start, current_year) for start in grouped["start_of_period"]
        ]

    grouped["to_be_reviewed"] = (
        grouped["reports"] - (grouped["approved"] + grouped["rejected"])
    ).clip(lower=0)
    return grouped[BUCKET_COLUMNS].reset_index(drop=True)


def _as_datetime(value: Any) -> datetime:
    if isinstance(value, pd.Timestamp):
        return value.to_pydatetime()
    return value


def bucket_by(
    records: Iterable[Any] | None,
    granularity: Granularity = "week",
    *,
    now: datetime | None = None,
) -> list[BucketRow]:
    frame = build_bucket_frame(records, granularity, now=now)
    return [
        BucketRow(
            label=str(row.label),
            start_of_period=_as_datetime(row.start_of_period),
            end_of_period=_as_datetime(row.end_of_period),
            reports=int(row.reports),
            approved=int(row.approved),
            rejected=int(row.rejected),
            pending=int(row.pending),
            to_be_reviewed=int(row.to_be_reviewed),
        )
        for row in frame.itertuples(index=False)
    ]
