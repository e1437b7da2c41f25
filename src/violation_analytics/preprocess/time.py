from __future__ import annotations

import math
from datetime import date, datetime, time, timedelta
from numbers import Real
from typing import Any, Callable

import pandas as pd

from violation_analytics.preprocess.fields import probe_field

Clock = Callable[[], datetime]

# Temporal key aliases on dated count records, highest priority first.
DATE_FIELDS = ("date", "period", "week", "month")
# Report-shaped records carry their own creation timestamp.
FILTER_DATE_FIELDS = (*DATE_FIELDS, "createdAt", "timestamp")


def system_clock() -> datetime:
    return datetime.now()


def to_local_naive(value: pd.Timestamp | datetime) -> datetime:
    """Convert to a naive datetime on the host's local clock."""
    if isinstance(value, pd.Timestamp):
        value = value.to_pydatetime()
    if value.tzinfo is not None:
        value = value.astimezone().replace(tzinfo=None)
    return value


def parse_date_value(raw_value: Any) -> datetime | None:
    """Parse a date-like value into a naive local datetime, or ``None``.

    Numbers are epoch milliseconds. Strings accept ISO dates and datetimes,
    month strings like ``2024-01`` and ``January 2024``.
    """
    if raw_value is None or isinstance(raw_value, bool):
        return None
    if isinstance(raw_value, datetime):
        return to_local_naive(raw_value)
    if isinstance(raw_value, date):
        return datetime.combine(raw_value, time.min)
    if isinstance(raw_value, Real):
        if not math.isfinite(float(raw_value)):
            return None
        try:
            parsed = pd.Timestamp(float(raw_value), unit="ms", tz="UTC")
        except (ValueError, OverflowError, pd.errors.OutOfBoundsDatetime):
            return None
        return to_local_naive(parsed)
    if not isinstance(raw_value, str) or not raw_value.strip():
        return None

    try:
        parsed = pd.to_datetime(raw_value.strip(), errors="coerce")
    except (ValueError, OverflowError):
        return None
    if parsed is None or pd.isna(parsed):
        return None
    return to_local_naive(parsed)


def record_date(record: Any, fields: tuple[str, ...] = DATE_FIELDS) -> datetime | None:
    """Probe ``fields`` in order and parse the first present value."""
    found = probe_field(record, fields)
    if found is None:
        return None
    return parse_date_value(found[1])


def start_of_day(moment: datetime) -> datetime:
    return datetime.combine(moment.date(), time.min)


def end_of_day(moment: datetime) -> datetime:
    return datetime.combine(moment.date(), time.max)


def start_of_week(moment: datetime) -> datetime:
    """Monday 00:00 of the week containing ``moment``; Sunday closes the prior week."""
    return start_of_day(moment) - timedelta(days=moment.weekday())


def start_of_month(moment: datetime) -> datetime:
    return datetime(moment.year, moment.month, 1)


def end_of_month(moment: datetime) -> datetime:
    if moment.month == 12:
        first_of_next = datetime(moment.year + 1, 1, 1)
    else:
        first_of_next = datetime(moment.year, moment.month + 1, 1)
    return end_of_day(first_of_next - timedelta(days=1))
