"""Normalize backend geo statistics into heatmap-ready points and hotspots."""

from __future__ import annotations

import logging
import math
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Sequence

from violation_analytics.preprocess.fields import (
    coerce_count,
    coerce_text,
    probe_field,
    probe_float,
)

LOGGER = logging.getLogger(__name__)

LATITUDE_FIELDS = ("latitude", "lat")
LONGITUDE_FIELDS = ("longitude", "lng", "lon")
VIOLATION_ID_FIELDS = ("id", "violationId", "reportId")
VIOLATION_TYPE_FIELDS = ("violationType", "type")
STATUS_KEYS = ("REJECTED", "APPROVED", "PENDING")

DEFAULT_CELL_PRECISION = 0.02
DEFAULT_UNIQUE_PRECISION = 0.001
DEFAULT_MIN_HEAT_WEIGHT = 0.1


@dataclass(frozen=True)
class NormalizedPoint:
    latitude: float
    longitude: float
    count: int
    address: str
    city: str
    district: str
    violation_id: str | None = None
    status: str | None = None
    violation_type: str | None = None

    @property
    def violation_types(self) -> list[str]:
        return [self.violation_type] if self.violation_type else []


@dataclass(frozen=True)
class NormalizedHotspot:
    latitude: float
    longitude: float
    count: int
    address: str
    city: str
    district: str
    violation_types: list[str] = field(default_factory=list)
    status_counts: dict[str, int] = field(default_factory=dict)


@dataclass(frozen=True)
class GeoNormalization:
    points: list[NormalizedPoint] = field(default_factory=list)
    hotspots: list[NormalizedHotspot] = field(default_factory=list)

    @property
    def is_empty(self) -> bool:
        return not self.points and not self.hotspots


@dataclass(frozen=True)
class HeatCell:
    latitude: float
    longitude: float
    count: int


@dataclass(frozen=True)
class GeoSummary:
    total_violations: int
    total_hotspots: int
    total_cities: int


def is_valid_coordinate(latitude: float | None, longitude: float | None) -> bool:
    if latitude is None or longitude is None:
        return False
    if not (math.isfinite(latitude) and math.isfinite(longitude)):
        return False
    # Upstream encodes unresolved addresses as 0,0.
    if latitude == 0 and longitude == 0:
        return False
    return -90.0 <= latitude <= 90.0 and -180.0 <= longitude <= 180.0


def resolve_coordinates(record: Mapping[str, Any]) -> tuple[float, float] | None:
    """Latitude/longitude from the record itself, else from a nested ``location``."""
    for source in (record, record.get("location")):
        latitude = probe_float(source, LATITUDE_FIELDS)
        longitude = probe_float(source, LONGITUDE_FIELDS)
        if latitude is None and longitude is None:
            continue
        if latitude is None or longitude is None or not is_valid_coordinate(latitude, longitude):
            return None
        return latitude, longitude
    return None


def _placeholder_address(district: str, city: str) -> str:
    return f"Unknown location, {district or city or 'unknown district'}"


def _address(record: Mapping[str, Any], district: str, city: str) -> str:
    location = record.get("location")
    found = probe_field(record, ("address",)) or probe_field(location, ("address",))
    if found is None:
        return _placeholder_address(district, city)
    return coerce_text(found[1], _placeholder_address(district, city))


def _optional_text(record: Mapping[str, Any], keys: Sequence[str]) -> str | None:
    found = probe_field(record, keys)
    return coerce_text(found[1]) if found is not None else None


def _violation_types(record: Mapping[str, Any]) -> list[str]:
    raw = record.get("violationTypes")
    if isinstance(raw, (list, tuple)):
        return [coerce_text(value) for value in raw if coerce_text(value)]
    single = _optional_text(record, VIOLATION_TYPE_FIELDS)
    return [single] if single else []


def _status_counts(raw: Any) -> dict[str, int]:
    counts = {key: 0 for key in STATUS_KEYS}
    if isinstance(raw, Mapping):
        for key, value in raw.items():
            counts[str(key).upper()] = coerce_count(value)
    return counts


def _records(geo_stat: Mapping[str, Any], key: str) -> list[Mapping[str, Any]]:
    raw = geo_stat.get(key)
    if not isinstance(raw, (list, tuple)):
        return []
    return [item for item in raw if isinstance(item, Mapping)]


def normalize_geo_stats(raw_geo_stats: Iterable[Any] | None) -> GeoNormalization:
    """Split geo stats into individual violation points and hotspot clusters.

    Candidates with missing, zero, NaN or out-of-range coordinates are dropped.
    Output order follows input order; an individual violation repeated under
    the same id across stats is kept once.
    """
    points: list[NormalizedPoint] = []
    hotspots: list[NormalizedHotspot] = []
    seen_ids: set[str] = set()
    rejected = 0
    duplicates = 0

    for geo_stat in raw_geo_stats or ():
        if not isinstance(geo_stat, Mapping):
            continue
        city = coerce_text(geo_stat.get("city"))
        district = coerce_text(geo_stat.get("district"))

        for record in _records(geo_stat, "individualViolations"):
            coordinates = resolve_coordinates(record)
            if coordinates is None:
                rejected += 1
                continue
            violation_id = _optional_text(record, VIOLATION_ID_FIELDS)
            if violation_id is not None:
                if violation_id in seen_ids:
                    duplicates += 1
                    continue
                seen_ids.add(violation_id)
            points.append(
                NormalizedPoint(
                    latitude=coordinates[0],
                    longitude=coordinates[1],
                    count=1,
                    address=_address(record, district, city),
                    city=coerce_text(record.get("city"), city),
                    district=coerce_text(record.get("district"), district),
                    violation_id=violation_id,
                    status=_optional_text(record, ("status",)),
                    violation_type=_optional_text(record, VIOLATION_TYPE_FIELDS),
                )
            )

        for record in _records(geo_stat, "hotspots"):
            coordinates = resolve_coordinates(record)
            if coordinates is None:
                rejected += 1
                continue
            hotspots.append(
                NormalizedHotspot(
                    latitude=coordinates[0],
                    longitude=coordinates[1],
                    count=max(0, coerce_count(record.get("violationCount"))),
                    address=_address(record, district, city),
                    city=city,
                    district=district,
                    violation_types=_violation_types(record),
                    status_counts=_status_counts(record.get("statusCounts")),
                )
            )

    if rejected or duplicates:
        LOGGER.debug(
            "Dropped %s geo records with invalid coordinates and %s duplicate violations",
            rejected,
            duplicates,
        )
    return GeoNormalization(points=points, hotspots=hotspots)


def filter_by_violation_types(
    items: Sequence[NormalizedPoint | NormalizedHotspot],
    violation_types: Iterable[str] | None,
) -> list[NormalizedPoint | NormalizedHotspot]:
    wanted = {value for value in violation_types or () if value}
    if not wanted:
        return list(items)
    return [item for item in items if wanted.intersection(item.violation_types)]


def dominant_violation_type(violation_types: Sequence[str]) -> str | None:
    if not violation_types:
        return None
    counts = Counter(violation_types)
    dominant = violation_types[0]
    # Among tied counts the type seen later wins.
    for violation_type, count in counts.items():
        if count >= counts[dominant]:
            dominant = violation_type
    return dominant


def aggregate_cells(
    items: Iterable[NormalizedPoint | NormalizedHotspot],
    precision: float = DEFAULT_CELL_PRECISION,
) -> list[HeatCell]:
    """Merge items into grid cells at weighted centroids, one weight per violation."""
    cells: dict[tuple[int, int], list[float]] = {}
    for item in items:
        key = (round(item.latitude / precision), round(item.longitude / precision))
        weight = max(1, item.count)
        entry = cells.setdefault(key, [0.0, 0.0, 0.0])
        entry[0] += item.latitude * weight
        entry[1] += item.longitude * weight
        entry[2] += weight
    return [
        HeatCell(
            latitude=lat_sum / weight_sum,
            longitude=lng_sum / weight_sum,
            count=int(weight_sum),
        )
        for lat_sum, lng_sum, weight_sum in cells.values()
    ]


def build_heat_points(
    normalization: GeoNormalization,
    min_weight: float = DEFAULT_MIN_HEAT_WEIGHT,
) -> list[tuple[float, float, float]]:
    """``(lat, lng, weight)`` for the heat layer.

    Individual violations weigh 1 each; hotspots are only used when no
    individual violations are available, scaled against the busiest one.
    """
    if normalization.points:
        return [(point.latitude, point.longitude, 1.0) for point in normalization.points]
    if not normalization.hotspots:
        return []
    busiest = max(max(hotspot.count for hotspot in normalization.hotspots), 1)
    return [
        (hotspot.latitude, hotspot.longitude, max(min_weight, hotspot.count / busiest))
        for hotspot in normalization.hotspots
    ]


def max_observed_count(normalization: GeoNormalization) -> int | None:
    """Violations feeding the heat layer, or ``None`` when there is no data at all."""
    if normalization.is_empty:
        return None
    if normalization.points:
        return len(normalization.points)
    return sum(hotspot.count for hotspot in normalization.hotspots)


def marker_radius(
    count: int,
    max_count: int,
    max_radius: float,
    min_radius: float = 5.0,
) -> float:
    return max(min_radius, (count / max(max_count, 1)) * max_radius)


def _unique_key(latitude: float, longitude: float, precision: float) -> tuple[int, int]:
    return round(latitude / precision), round(longitude / precision)


def summarize_geo(
    normalization: GeoNormalization,
    unique_precision: float = DEFAULT_UNIQUE_PRECISION,
) -> GeoSummary:
    if normalization.points:
        locations = {
            _unique_key(point.latitude, point.longitude, unique_precision)
            for point in normalization.points
        }
        cities = {point.city for point in normalization.points}
        return GeoSummary(
            total_violations=len(normalization.points),
            total_hotspots=len(locations),
            total_cities=len(cities),
        )
    return GeoSummary(
        total_violations=sum(hotspot.count for hotspot in normalization.hotspots),
        total_hotspots=len(normalization.hotspots),
        total_cities=len({hotspot.city for hotspot in normalization.hotspots}),
    )
