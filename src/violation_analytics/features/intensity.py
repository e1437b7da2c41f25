from __future__ import annotations

import math

from violation_analytics.config import IntensityConfig

NO_DATA_INTENSITY = 1.0


def scale_heat_intensity(
    max_observed_count: float | None,
    zoom_level: float,
    config: IntensityConfig | None = None,
) -> float:
    """Heat layer ceiling for the current zoom; ``None`` or NaN counts mean there is no data."""
    if max_observed_count is None or not math.isfinite(max_observed_count):
        return NO_DATA_INTENSITY
    tiers = config or IntensityConfig()
    if zoom_level >= tiers.high_zoom:
        floor = tiers.high_floor
    elif zoom_level >= tiers.mid_zoom:
        floor = tiers.mid_floor
    else:
        floor = tiers.low_floor
    return float(max(max_observed_count, floor))
