from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, time
from typing import Any, Literal, Mapping

from violation_analytics.preprocess.time import parse_date_value
from violation_analytics.ranges.relative import (
    DEFAULT_RELATIVE_TOKEN,
    AbsoluteWindow,
    describe_relative_token,
    normalize_token,
    resolve_relative_range,
)

RangeKind = Literal["absolute", "relative"]
RANGE_KINDS = ("absolute", "relative")
GLOBAL_SCOPE = "global"


@dataclass(frozen=True)
class TimeRangeState:
    """Either an absolute date window or a relative token, plus whether it is applied.

    Unknown relative tokens are normalized to the 30 day default on construction
    so equal-looking ranges share one cache key.
    """

    kind: RangeKind = "relative"
    start_date: date | None = None
    end_date: date | None = None
    relative_token: str = DEFAULT_RELATIVE_TOKEN
    is_applied: bool = False

    def __post_init__(self) -> None:
        if self.kind not in RANGE_KINDS:
            raise ValueError(f"Unsupported time range kind: {self.kind!r}")
        object.__setattr__(self, "relative_token", normalize_token(self.relative_token))

    @classmethod
    def absolute(
        cls,
        start_date: date | None,
        end_date: date | None,
        *,
        is_applied: bool = True,
    ) -> TimeRangeState:
        return cls(
            kind="absolute",
            start_date=start_date,
            end_date=end_date,
            is_applied=is_applied,
        )

    @classmethod
    def relative(cls, token: str | None, *, is_applied: bool = True) -> TimeRangeState:
        return cls(
            kind="relative",
            relative_token=token or DEFAULT_RELATIVE_TOKEN,
            is_applied=is_applied,
        )

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> TimeRangeState:
        """Build from the dashboard payload (``type``, ``startDate``, ``relativeRange``, ...)."""
        kind = str(payload.get("type") or payload.get("kind") or "relative").strip()
        if kind not in RANGE_KINDS:
            kind = "relative"
        return cls(
            kind=kind,  # type: ignore[arg-type]
            start_date=_payload_date(payload.get("startDate", payload.get("start_date"))),
            end_date=_payload_date(payload.get("endDate", payload.get("end_date"))),
            relative_token=str(
                payload.get("relativeRange")
                or payload.get("relative_token")
                or DEFAULT_RELATIVE_TOKEN
            ),
            is_applied=_payload_flag(payload.get("isApplied", payload.get("is_applied", False))),
        )

    @property
    def is_ready(self) -> bool:
        if self.kind == "relative":
            return True
        if self.start_date is None or self.end_date is None:
            return False
        return self.start_date <= self.end_date

    def window(self, now: datetime) -> AbsoluteWindow | None:
        """Concrete bounds for this range, or ``None`` while an absolute range is incomplete."""
        if self.kind == "relative":
            return resolve_relative_range(self.relative_token, now)
        if self.start_date is None or self.end_date is None or self.start_date > self.end_date:
            return None
        return AbsoluteWindow(
            start=datetime.combine(self.start_date, time.min),
            end=datetime.combine(self.end_date, time.max),
        )

    def cache_key(self) -> str:
        start = self.start_date.isoformat() if self.start_date else ""
        end = self.end_date.isoformat() if self.end_date else ""
        return f"{self.kind}|{start}|{end}|{self.relative_token}|{self.is_applied}"

    def describe(self) -> str:
        if not self.is_applied:
            return describe_relative_token(DEFAULT_RELATIVE_TOKEN)
        if self.kind == "absolute":
            if self.start_date and self.end_date:
                return f"{self.start_date.isoformat()} to {self.end_date.isoformat()}"
            return "Select dates"
        return describe_relative_token(self.relative_token)


def _payload_date(raw_value: Any) -> date | None:
    parsed = parse_date_value(raw_value)
    return parsed.date() if parsed is not None else None


def _payload_flag(raw_value: Any) -> bool:
    if isinstance(raw_value, str):
        return raw_value.strip().lower() in {"1", "true", "yes"}
    return bool(raw_value)


def select_effective_range(
    global_range: TimeRangeState,
    local_range: TimeRangeState,
) -> TimeRangeState:
    """The local override when applied, otherwise the global range. Fields are never merged."""
    return local_range if local_range.is_applied else global_range


class EffectiveRangeSelector:
    """Memoized precedence between a global and a local range.

    Returns the previously selected object while the selection's cache key is
    unchanged, and records in ``changed`` whether the last call produced a new
    key so callers can skip redundant fetches.
    """

    def __init__(self) -> None:
        self._key: str | None = None
        self._selected: TimeRangeState | None = None
        self.changed = False

    @property
    def key(self) -> str | None:
        return self._key

    def select(self, global_range: TimeRangeState, local_range: TimeRangeState) -> TimeRangeState:
        chosen = select_effective_range(global_range, local_range)
        key = chosen.cache_key()
        if self._selected is not None and key == self._key:
            self.changed = False
            return self._selected
        self._key = key
        self._selected = chosen
        self.changed = True
        return chosen


class RangeScopes:
    """One dashboard-wide range plus per-chart local overrides, keyed by scope id."""

    def __init__(self, default_token: str = DEFAULT_RELATIVE_TOKEN) -> None:
        self._default = TimeRangeState(relative_token=default_token)
        self.global_range = self._default
        self._locals: dict[str, TimeRangeState] = {}
        self._selectors: dict[str, EffectiveRangeSelector] = {}

    def apply_global(self, state: TimeRangeState) -> TimeRangeState:
        self.global_range = replace(state, is_applied=True)
        return self.global_range

    def clear_global(self) -> TimeRangeState:
        self.global_range = self._default
        return self.global_range

    def local(self, scope_id: str) -> TimeRangeState:
        return self._locals.get(scope_id, self._default)

    def apply_local(self, scope_id: str, state: TimeRangeState) -> TimeRangeState:
        if scope_id == GLOBAL_SCOPE:
            raise ValueError(f"{GLOBAL_SCOPE!r} is reserved for the dashboard-wide range")
        applied = replace(state, is_applied=True)
        self._locals[scope_id] = applied
        return applied

    def clear_local(self, scope_id: str) -> None:
        self._locals.pop(scope_id, None)

    def effective(self, scope_id: str) -> TimeRangeState:
        selector = self._selectors.setdefault(scope_id, EffectiveRangeSelector())
        return selector.select(self.global_range, self.local(scope_id))

    def needs_fetch(self, scope_id: str) -> bool:
        """Re-select for ``scope_id`` and report whether its effective range changed."""
        self.effective(scope_id)
        return self._selectors[scope_id].changed

    def scope_ids(self) -> list[str]:
        return sorted(set(self._locals) | set(self._selectors))
