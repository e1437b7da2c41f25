from __future__ import annotations

import logging
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable

import pandas as pd

from violation_analytics.config import AppConfig
from violation_analytics.features.buckets import Granularity, build_bucket_frame
from violation_analytics.features.geo import (
    GeoNormalization,
    NormalizedHotspot,
    aggregate_cells,
    build_heat_points,
    dominant_violation_type,
    filter_by_violation_types,
    marker_radius,
    max_observed_count,
    normalize_geo_stats,
    summarize_geo,
)
from violation_analytics.features.intensity import scale_heat_intensity
from violation_analytics.io.read import RecordSource
from violation_analytics.io.write import rows_to_frame, write_summary, write_table
from violation_analytics.paths import build_output_paths
from violation_analytics.preprocess.time import Clock, system_clock, to_local_naive
from violation_analytics.ranges.filters import build_fetch_filter
from violation_analytics.ranges.state import TimeRangeState, select_effective_range

LOGGER = logging.getLogger(__name__)


def build_trend_table(
    source: RecordSource,
    fetch_filter: dict[str, Any],
    granularity: Granularity,
    now: datetime,
) -> pd.DataFrame:
    records = source.fetch(fetch_filter)
    return build_bucket_frame(records, granularity, now=now)


def build_hotspot_table(hotspots: list[NormalizedHotspot], config: AppConfig) -> pd.DataFrame:
    """Hotspot rows plus the marker radius and dominant violation type the map draws."""
    table = rows_to_frame(hotspots)
    if table.empty:
        return table
    busiest = max(hotspot.count for hotspot in hotspots)
    table["dominant_type"] = [
        dominant_violation_type(hotspot.violation_types) for hotspot in hotspots
    ]
    table["radius"] = [
        marker_radius(
            hotspot.count,
            busiest,
            max_radius=config.geo.marker_max_radius,
            min_radius=config.geo.marker_min_radius,
        )
        for hotspot in hotspots
    ]
    return table


def build_geo_tables(
    source: RecordSource,
    fetch_filter: dict[str, Any],
    config: AppConfig,
    zoom_level: float,
    violation_types: Iterable[str] | None = None,
) -> tuple[dict[str, pd.DataFrame], dict[str, Any]]:
    normalization = normalize_geo_stats(source.fetch(fetch_filter))
    wanted = list(violation_types or ())
    if wanted:
        points = filter_by_violation_types(normalization.points, wanted)
        hotspots = filter_by_violation_types(normalization.hotspots, wanted)
        normalization = GeoNormalization(points=points, hotspots=hotspots)  # type: ignore[arg-type]

    heat_points = build_heat_points(normalization, min_weight=config.geo.min_heat_weight)
    cells = aggregate_cells(
        [*normalization.points, *normalization.hotspots],
        precision=config.geo.cell_precision,
    )
    observed = max_observed_count(normalization)
    summary = summarize_geo(normalization, unique_precision=config.geo.unique_precision)
    tables = {
        "geo_points": rows_to_frame(normalization.points),
        "geo_hotspots": build_hotspot_table(normalization.hotspots, config),
        "heat_points": pd.DataFrame(heat_points, columns=["latitude", "longitude", "weight"]),
        "heat_cells": rows_to_frame(cells),
    }
    details = {
        "max_observed_count": observed,
        "max_intensity": scale_heat_intensity(observed, zoom_level, config.intensity),
        "zoom_level": zoom_level,
        "totals": summary,
    }
    return tables, details


def run_all(
    out_dir: Path,
    config: AppConfig,
    *,
    trend_source: RecordSource | None = None,
    geo_source: RecordSource | None = None,
    global_range: TimeRangeState | None = None,
    local_range: TimeRangeState | None = None,
    granularity: Granularity | None = None,
    zoom_level: float = 5,
    violation_types: Iterable[str] | None = None,
    now: datetime | None = None,
    clock: Clock = system_clock,
) -> Path:
    """Resolve the effective range, fetch, transform and write tables plus a summary."""
    moment = to_local_naive(now) if now is not None else clock()
    default_range = TimeRangeState(relative_token=config.ranges.default_token)
    effective = select_effective_range(global_range or default_range, local_range or default_range)
    paths = build_output_paths(out_dir)
    fmt = config.outputs.tables_format

    summary: dict[str, Any] = {
        "generated_at": moment,
        "range": {
            "key": effective.cache_key(),
            "label": effective.describe(),
            "ready": effective.is_ready,
        },
        "tables": {},
    }

    fetch_filter = build_fetch_filter(effective, moment)
    if fetch_filter is None:
        LOGGER.warning("Effective range %s is incomplete; skipping fetch", effective.cache_key())
        return write_summary(summary, paths.run_summary)
    summary["range"]["window"] = fetch_filter["dateRange"]

    tables: dict[str, pd.DataFrame] = {}
    if trend_source is not None:
        resolved_granularity = granularity or config.ranges.default_granularity
        tables[f"trend_{resolved_granularity}"] = build_trend_table(
            trend_source, fetch_filter, resolved_granularity, moment
        )
        summary["granularity"] = resolved_granularity
    if geo_source is not None:
        geo_tables, geo_details = build_geo_tables(
            geo_source, fetch_filter, config, zoom_level, violation_types
        )
        tables.update(geo_tables)
        summary["geo"] = geo_details

    for name, frame in tables.items():
        path = write_table(frame, paths.table(name, fmt), fmt=fmt)
        summary["tables"][name] = {"path": str(path), "rows": int(len(frame))}
        LOGGER.info("Wrote %s rows to %s", len(frame), path)

    return write_summary(summary, paths.run_summary)
