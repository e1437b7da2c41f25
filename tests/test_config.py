from __future__ import annotations

from pathlib import Path

import pytest
import yaml
from pydantic import ValidationError

from violation_analytics.config import AppConfig, load_config


def test_load_config_without_path_uses_defaults() -> None:
    cfg = load_config(None)

    assert cfg == AppConfig()
    assert cfg.ranges.default_token == "30d"
    assert cfg.ranges.default_granularity == "week"
    assert cfg.geo.cell_precision == 0.02
    assert cfg.intensity.high_floor == 10
    assert cfg.outputs.tables_format == "csv"


def test_bundled_default_config_matches_model_defaults() -> None:
    config_path = Path(__file__).resolve().parents[1] / "configs" / "default.yaml"

    assert load_config(config_path) == AppConfig()


def test_load_config_defaults_and_overrides(tmp_path: Path) -> None:
    empty_path = tmp_path / "empty.yaml"
    empty_path.write_text("", encoding="utf-8")
    assert load_config(empty_path) == AppConfig()

    override = {
        "ranges": {"default_token": "7d", "default_granularity": "month"},
        "geo": {"cell_precision": 0.05, "min_heat_weight": 0.2},
        "intensity": {"high_zoom": 14, "high_floor": 20},
        "outputs": {"tables_format": "parquet"},
    }
    override_path = tmp_path / "override.yaml"
    override_path.write_text(yaml.safe_dump(override), encoding="utf-8")

    cfg = load_config(override_path)
    assert cfg.ranges.default_token == "7d"
    assert cfg.ranges.default_granularity == "month"
    assert cfg.geo.cell_precision == 0.05
    assert cfg.geo.unique_precision == 0.001
    assert cfg.geo.min_heat_weight == 0.2
    assert cfg.intensity.high_zoom == 14
    assert cfg.intensity.high_floor == 20
    assert cfg.intensity.mid_floor == 5
    assert cfg.outputs.tables_format == "parquet"


@pytest.mark.parametrize(
    "data",
    [
        {"unknown_section": {}},
        {"ranges": {"default_token": "2w"}},
        {"geo": {"cell_precision": 0}},
        {"intensity": {"mid_zoom": 13, "high_zoom": 12}},
        {"outputs": {"tables_format": "xlsx"}},
    ],
)
def test_load_config_rejects_invalid_values(tmp_path: Path, data: dict) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text(yaml.safe_dump(data), encoding="utf-8")

    with pytest.raises(ValidationError):
        load_config(config_path)


def test_load_config_requires_a_mapping(tmp_path: Path) -> None:
    config_path = tmp_path / "config.yaml"
    config_path.write_text("- just\n- a list\n", encoding="utf-8")

    with pytest.raises(ValueError, match="must contain a mapping"):
        load_config(config_path)
