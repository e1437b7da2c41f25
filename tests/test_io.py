from __future__ import annotations

import json
from datetime import date, datetime
from pathlib import Path

import pandas as pd
import pytest

from violation_analytics.features.buckets import BucketRow
from violation_analytics.io.read import (
    FileRecordSource,
    load_json_records,
    load_records,
    load_table,
)
from violation_analytics.io.write import rows_to_frame, write_summary, write_table


def test_load_json_records_accepts_array_and_data_envelope(tmp_path: Path) -> None:
    array_path = tmp_path / "array.json"
    array_path.write_text(json.dumps([{"date": "2025-01-06"}, "junk"]), encoding="utf-8")
    envelope_path = tmp_path / "envelope.json"
    envelope_path.write_text(
        json.dumps({"success": True, "data": [{"city": "Bengaluru"}]}), encoding="utf-8"
    )

    assert load_json_records(array_path) == [{"date": "2025-01-06"}]
    assert load_json_records(envelope_path) == [{"city": "Bengaluru"}]


def test_load_json_records_rejects_non_array_payload(tmp_path: Path) -> None:
    path = tmp_path / "bad.json"
    path.write_text(json.dumps({"data": {"not": "a list"}}), encoding="utf-8")

    with pytest.raises(ValueError, match="Expected a JSON array"):
        load_json_records(path)


def test_load_records_from_csv_drops_missing_cells(tmp_path: Path) -> None:
    csv_path = tmp_path / "counts.csv"
    csv_path.write_text(
        "date,period,reports,approved\n2025-01-06,,3,1\n,2025-01-07,2,\n",
        encoding="utf-8",
    )

    records = load_records(csv_path)

    assert records[0] == {"date": "2025-01-06", "reports": 3, "approved": 1.0}
    assert records[1] == {"period": "2025-01-07", "reports": 2}


def test_load_table_rejects_unknown_suffix(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="Unsupported table file type"):
        load_table(tmp_path / "counts.xlsx")


def test_file_record_source_applies_date_range(tmp_path: Path) -> None:
    path = tmp_path / "records.json"
    path.write_text(
        json.dumps(
            [
                {"date": "2025-01-01", "reports": 1},
                {"date": "2025-01-10T23:30:00", "reports": 2},
                {"date": "2025-01-11", "reports": 4},
                {"reports": 8},
            ]
        ),
        encoding="utf-8",
    )
    source = FileRecordSource(path)
    fetch_filter = {
        "dateRange": {"start": "2025-01-05T00:00:00", "end": "2025-01-10T23:59:59.999999"}
    }

    fetched = source.fetch(fetch_filter)

    assert [record["reports"] for record in fetched] == [2, 8]
    assert len(source.fetch(None)) == 4


def test_rows_to_frame_flattens_dataclasses_and_mappings() -> None:
    row = BucketRow(
        label="Jan 6-12",
        start_of_period=datetime(2025, 1, 6),
        end_of_period=datetime(2025, 1, 12, 23, 59, 59),
        reports=5,
        approved=2,
        rejected=1,
        pending=2,
        to_be_reviewed=2,
    )

    frame = rows_to_frame([row, {"label": "Jan 13-19", "reports": 1}])

    assert list(frame["label"]) == ["Jan 6-12", "Jan 13-19"]
    assert frame.loc[0, "to_be_reviewed"] == 2


def test_write_table_csv_and_unknown_format(tmp_path: Path) -> None:
    frame = pd.DataFrame({"label": ["Jan"], "reports": [3]})

    path = write_table(frame, tmp_path / "nested" / "trend.csv")

    assert path.exists()
    assert pd.read_csv(path).to_dict(orient="records") == [{"label": "Jan", "reports": 3}]
    with pytest.raises(ValueError, match="Unsupported table format"):
        write_table(frame, tmp_path / "trend.xlsx", fmt="xlsx")


def test_write_summary_serializes_dates_and_dataclasses(tmp_path: Path) -> None:
    row = BucketRow(
        label="Jan",
        start_of_period=datetime(2025, 1, 1),
        end_of_period=datetime(2025, 1, 31, 23, 59, 59),
        reports=1,
        approved=0,
        rejected=0,
        pending=1,
        to_be_reviewed=1,
    )

    path = write_summary(
        {"generated_at": datetime(2025, 1, 20, 12, 0), "day": date(2025, 1, 6), "row": row},
        tmp_path / "summary" / "run_summary.json",
    )

    payload = json.loads(path.read_text(encoding="utf-8"))
    assert payload["generated_at"] == "2025-01-20T12:00:00"
    assert payload["day"] == "2025-01-06"
    assert payload["row"]["label"] == "Jan"
    assert payload["row"]["start_of_period"] == "2025-01-01T00:00:00"
