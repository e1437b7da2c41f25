from __future__ import annotations

import json
from datetime import date, datetime
from pathlib import Path

import pandas as pd

from violation_analytics.config import AppConfig
from violation_analytics.io.read import FileRecordSource
from violation_analytics.pipeline.run_all import run_all
from violation_analytics.ranges.state import TimeRangeState

NOW = datetime(2025, 1, 20, 12, 0)


def _write_json(path: Path, payload: object) -> Path:
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


def _trend_source(tmp_path: Path) -> FileRecordSource:
    return FileRecordSource(
        _write_json(
            tmp_path / "trend.json",
            {
                "data": [
                    {"date": "2024-11-04", "reports": 40},
                    {"date": "2025-01-06", "reports": 3, "approved": 1},
                    {"date": "2025-01-07", "reports": 2, "rejected": 1},
                    {"date": "2025-01-13", "reports": 5, "approved": 6},
                    {"reports": 7},
                ]
            },
        )
    )


def _geo_source(tmp_path: Path) -> FileRecordSource:
    return FileRecordSource(
        _write_json(
            tmp_path / "geo.json",
            [
                {
                    "city": "Bengaluru",
                    "district": "Central",
                    "individualViolations": [
                        {"id": "a", "lat": 12.97, "lng": 77.59, "violationType": "SPEEDING"},
                        {"id": "b", "lat": 12.98, "lng": 77.60, "violationType": "NO_HELMET"},
                        {"id": "c", "lat": 0, "lng": 0, "violationType": "SPEEDING"},
                    ],
                }
            ],
        )
    )


def test_run_all_writes_tables_and_summary_for_local_override(tmp_path: Path) -> None:
    out_dir = tmp_path / "out"

    summary_path = run_all(
        out_dir,
        AppConfig(),
        trend_source=_trend_source(tmp_path),
        geo_source=_geo_source(tmp_path),
        global_range=TimeRangeState.relative("90d"),
        local_range=TimeRangeState.absolute(date(2025, 1, 6), date(2025, 1, 19)),
        zoom_level=9,
        now=NOW,
    )

    assert summary_path == out_dir / "summary" / "run_summary.json"
    summary = json.loads(summary_path.read_text(encoding="utf-8"))
    assert summary["range"]["key"] == "absolute|2025-01-06|2025-01-19|30d|True"
    assert summary["range"]["label"] == "2025-01-06 to 2025-01-19"
    assert summary["range"]["window"] == {
        "start": "2025-01-06T00:00:00",
        "end": "2025-01-19T23:59:59.999999",
    }
    assert summary["granularity"] == "week"
    assert summary["geo"]["max_observed_count"] == 2
    assert summary["geo"]["max_intensity"] == 5.0
    assert summary["geo"]["totals"]["total_violations"] == 2

    trend = pd.read_csv(out_dir / "tables" / "trend_week.csv")
    assert list(trend["label"]) == ["Jan 6-12", "Jan 13-19"]
    assert list(trend["reports"]) == [5, 5]
    assert list(trend["to_be_reviewed"]) == [3, 0]
    assert summary["tables"]["trend_week"]["rows"] == 2

    points = pd.read_csv(out_dir / "tables" / "geo_points.csv")
    assert list(points["violation_id"]) == ["a", "b"]
    assert (out_dir / "tables" / "heat_points.csv").exists()
    assert (out_dir / "tables" / "heat_cells.csv").exists()


def test_run_all_defaults_to_configured_relative_range(tmp_path: Path) -> None:
    cfg = AppConfig.model_validate(
        {"ranges": {"default_token": "90d", "default_granularity": "month"}}
    )

    summary_path = run_all(
        tmp_path / "out",
        cfg,
        trend_source=_trend_source(tmp_path),
        now=NOW,
    )

    summary = json.loads(summary_path.read_text(encoding="utf-8"))
    assert summary["range"]["key"] == "relative|||90d|False"
    assert summary["range"]["window"]["start"] == "2024-10-22T12:00:00"
    trend = pd.read_csv(tmp_path / "out" / "tables" / "trend_month.csv")
    assert list(trend["label"]) == ["Nov 2024", "Jan"]
    assert list(trend["reports"]) == [40, 10]
    assert "geo" not in summary


def test_run_all_geo_filter_by_violation_type(tmp_path: Path) -> None:
    summary_path = run_all(
        tmp_path / "out",
        AppConfig(),
        geo_source=_geo_source(tmp_path),
        global_range=TimeRangeState.relative("30d"),
        zoom_level=13,
        violation_types=["NO_HELMET"],
        now=NOW,
    )

    summary = json.loads(summary_path.read_text(encoding="utf-8"))
    assert summary["geo"]["max_observed_count"] == 1
    assert summary["geo"]["max_intensity"] == 10.0
    points = pd.read_csv(tmp_path / "out" / "tables" / "geo_points.csv")
    assert list(points["violation_id"]) == ["b"]


def test_run_all_skips_fetch_for_incomplete_range(tmp_path: Path, caplog) -> None:
    out_dir = tmp_path / "out"

    summary_path = run_all(
        out_dir,
        AppConfig(),
        trend_source=_trend_source(tmp_path),
        local_range=TimeRangeState.absolute(date(2025, 1, 6), None),
        now=NOW,
    )

    summary = json.loads(summary_path.read_text(encoding="utf-8"))
    assert summary["range"]["ready"] is False
    assert summary["range"]["label"] == "Select dates"
    assert "window" not in summary["range"]
    assert summary["tables"] == {}
    assert list((out_dir / "tables").iterdir()) == []
    assert "is incomplete; skipping fetch" in caplog.text


def test_run_all_uses_clock_when_now_is_omitted(tmp_path: Path) -> None:
    summary_path = run_all(
        tmp_path / "out",
        AppConfig(),
        trend_source=_trend_source(tmp_path),
        global_range=TimeRangeState.relative("7d"),
        clock=lambda: NOW,
    )

    summary = json.loads(summary_path.read_text(encoding="utf-8"))
    assert summary["generated_at"] == "2025-01-20T12:00:00"
    assert summary["range"]["window"]["end"] == "2025-01-20T12:00:00"
