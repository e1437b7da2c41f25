from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field, model_validator

RelativeTokenName = Literal["1d", "7d", "30d", "90d", "1y", "ytd", "mtd"]
GranularityName = Literal["day", "week", "month"]


class RangeConfig(BaseModel):
    default_token: RelativeTokenName = "30d"
    default_granularity: GranularityName = "week"


class GeoConfig(BaseModel):
    # ~2km grid cell at the equator
    cell_precision: float = Field(default=0.02, gt=0.0)
    # ~100m, used to count distinct hotspot locations
    unique_precision: float = Field(default=0.001, gt=0.0)
    min_heat_weight: float = Field(default=0.1, ge=0.0, le=1.0)
    marker_min_radius: float = Field(default=5.0, ge=0.0)
    marker_max_radius: float = Field(default=25.0, gt=0.0)


class IntensityConfig(BaseModel):
    high_zoom: float = 12
    high_floor: float = Field(default=10, ge=0)
    mid_zoom: float = 8
    mid_floor: float = Field(default=5, ge=0)
    low_floor: float = Field(default=1, ge=0)

    @model_validator(mode="after")
    def _check_zoom_order(self) -> "IntensityConfig":
        if self.mid_zoom > self.high_zoom:
            raise ValueError("intensity.mid_zoom must be <= intensity.high_zoom")
        return self


class OutputsConfig(BaseModel):
    tables_format: Literal["csv", "parquet"] = "csv"


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    ranges: RangeConfig = Field(default_factory=RangeConfig)
    geo: GeoConfig = Field(default_factory=GeoConfig)
    intensity: IntensityConfig = Field(default_factory=IntensityConfig)
    outputs: OutputsConfig = Field(default_factory=OutputsConfig)


def load_config(path: Path | None) -> AppConfig:
    if path is None:
        return AppConfig()
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"config file must contain a mapping: {path}")
    return AppConfig.model_validate(data)
