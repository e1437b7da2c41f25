from __future__ import annotations

import math
from numbers import Real
from typing import Any, Mapping, Sequence


def probe_field(record: Any, keys: Sequence[str]) -> tuple[str, Any] | None:
    """Return the first ``(key, value)`` in ``keys`` order that is present on ``record``.

    Upstream payloads spell the same field several ways, so callers pass the
    aliases in priority order. ``None`` and blank strings count as absent.
    Non-mapping records never match.
    """
    if not isinstance(record, Mapping):
        return None
    for key in keys:
        value = record.get(key)
        if value is None:
            continue
        if isinstance(value, str) and not value.strip():
            continue
        return key, value
    return None


def coerce_float(value: Any) -> float | None:
    """Numbers pass through, numeric strings are parsed, everything else is ``None``."""
    if isinstance(value, bool):
        return None
    if isinstance(value, Real):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def probe_float(record: Any, keys: Sequence[str]) -> float | None:
    """First alias in ``keys`` whose value coerces to a float."""
    if not isinstance(record, Mapping):
        return None
    for key in keys:
        parsed = coerce_float(record.get(key))
        if parsed is not None:
            return parsed
    return None


def coerce_count(value: Any, default: int = 0) -> int:
    parsed = coerce_float(value)
    if parsed is None or not math.isfinite(parsed):
        return default
    return int(parsed)


def coerce_text(value: Any, default: str = "") -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default
