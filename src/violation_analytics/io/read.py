from __future__ import annotations

import json
from datetime import datetime
from pathlib import Path
from typing import Any, Protocol

import pandas as pd

from violation_analytics.ranges.filters import filter_records_by_window
from violation_analytics.ranges.relative import AbsoluteWindow


class RecordSource(Protocol):
    def fetch(self, fetch_filter: dict[str, Any] | None) -> list[dict[str, Any]]: ...


def load_json_records(path: Path) -> list[dict[str, Any]]:
    """Load a JSON array of records, or an API envelope wrapping one under ``data``."""
    with path.open("r", encoding="utf-8") as handle:
        payload = json.load(handle)
    if isinstance(payload, dict):
        payload = payload.get("data", [])
    if not isinstance(payload, list):
        raise ValueError(f"Expected a JSON array of records in {path}")
    return [item for item in payload if isinstance(item, dict)]


def load_table(path: Path) -> pd.DataFrame:
    if path.suffix == ".parquet":
        return pd.read_parquet(path)
    if path.suffix == ".csv":
        return pd.read_csv(path)
    raise ValueError(f"Unsupported table file type: {path.suffix}")


def _is_missing(value: Any) -> bool:
    return value is None or (pd.api.types.is_scalar(value) and bool(pd.isna(value)))


def load_records(path: Path) -> list[dict[str, Any]]:
    """Records from a JSON export, or flat dated counts from a CSV/parquet table."""
    if path.suffix == ".json":
        return load_json_records(path)
    frame = load_table(path)
    # Missing cells stay absent so field probing falls through to the next alias.
    return [
        {key: value for key, value in row.items() if not _is_missing(value)}
        for row in frame.to_dict(orient="records")
    ]


class FileRecordSource:
    """File-backed stand-in for the analytics API; applies the date range locally."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def fetch(self, fetch_filter: dict[str, Any] | None) -> list[dict[str, Any]]:
        records = load_records(self.path)
        date_range = (fetch_filter or {}).get("dateRange")
        if not date_range:
            return records
        window = AbsoluteWindow(
            start=datetime.fromisoformat(date_range["start"]),
            end=datetime.fromisoformat(date_range["end"]),
        )
        return filter_records_by_window(records, window)
