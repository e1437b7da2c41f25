from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta

LOGGER = logging.getLogger(__name__)

DEFAULT_RELATIVE_TOKEN = "30d"

# Fixed-length windows; no DST or month-length adjustment.
FIXED_WINDOW_DAYS = {
    "1d": 1,
    "7d": 7,
    "30d": 30,
    "90d": 90,
    "1y": 365,
}
CALENDAR_TOKENS = ("ytd", "mtd")
RELATIVE_TOKENS = (*FIXED_WINDOW_DAYS, *CALENDAR_TOKENS)

RELATIVE_TOKEN_LABELS = {
    "1d": "Last 24 hours",
    "7d": "Last 7 days",
    "30d": "Last 30 days",
    "90d": "Last 90 days",
    "1y": "Last year",
    "ytd": "Year to date",
    "mtd": "Month to date",
}


@dataclass(frozen=True)
class AbsoluteWindow:
    start: datetime
    end: datetime

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment <= self.end

    def as_filter(self) -> dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


def normalize_token(token: str | None) -> str:
    """Map ``token`` onto the supported vocabulary, falling back to 30 days."""
    cleaned = (token or "").strip()
    if cleaned in RELATIVE_TOKENS:
        return cleaned
    LOGGER.debug("Unknown relative range token %r; using %s", token, DEFAULT_RELATIVE_TOKEN)
    return DEFAULT_RELATIVE_TOKEN


def resolve_relative_range(token: str | None, now: datetime) -> AbsoluteWindow:
    resolved = normalize_token(token)
    if resolved == "ytd":
        start = datetime(now.year, 1, 1)
    elif resolved == "mtd":
        start = datetime(now.year, now.month, 1)
    else:
        start = now - timedelta(days=FIXED_WINDOW_DAYS[resolved])
    if start.tzinfo is None and now.tzinfo is not None:
        start = start.replace(tzinfo=now.tzinfo)
    return AbsoluteWindow(start=start, end=now)


def describe_relative_token(token: str | None) -> str:
    return RELATIVE_TOKEN_LABELS[normalize_token(token)]
