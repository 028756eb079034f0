"""
Temporary schedule overrides.

An override temporarily replaces the correction range and/or scales insulin
needs. At most one override is active at a time (see ``LoopSettings``); this
module only describes the values themselves.
"""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional

from loopstatus.core.schedules import DoubleRange, _as_number
from loopstatus.core.units import GlucoseUnit
from loopstatus.utils.clock import ensure_aware


class OverrideContextKind(Enum):
    PRE_MEAL = "preMeal"
    LEGACY_WORKOUT = "legacyWorkout"
    CUSTOM = "custom"
    PRESET = "preset"


@dataclass(frozen=True)
class OverrideContext:
    """Where an override came from. ``preset`` is set only for PRESET contexts."""
    kind: OverrideContextKind
    preset: Optional["OverridePreset"] = None

    def __post_init__(self) -> None:
        if (self.kind is OverrideContextKind.PRESET) != (self.preset is not None):
            raise ValueError("a preset context needs exactly one preset")

    @classmethod
    def for_preset(cls, preset: "OverridePreset") -> "OverrideContext":
        return cls(OverrideContextKind.PRESET, preset)

    @property
    def display_name(self) -> str:
        if self.preset is not None:
            return self.preset.name
        return _DISPLAY_NAMES[self.kind]

    def to_raw(self) -> Dict[str, Any]:
        raw: Dict[str, Any] = {"context": self.kind.value}
        if self.preset is not None:
            raw["preset"] = self.preset.to_raw()
        return raw

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "OverrideContext":
        kind = OverrideContextKind(raw["context"])
        if kind is OverrideContextKind.PRESET:
            return cls.for_preset(OverridePreset.from_raw(raw["preset"]))
        return cls(kind)


_DISPLAY_NAMES = {
    OverrideContextKind.PRE_MEAL: "preMeal",
    OverrideContextKind.LEGACY_WORKOUT: "Workout",
    OverrideContextKind.CUSTOM: "Custom",
}

PRE_MEAL = OverrideContext(OverrideContextKind.PRE_MEAL)
LEGACY_WORKOUT = OverrideContext(OverrideContextKind.LEGACY_WORKOUT)
CUSTOM = OverrideContext(OverrideContextKind.CUSTOM)


@dataclass(frozen=True)
class OverrideDuration:
    """Finite number of seconds, or indefinite when ``seconds`` is None."""
    seconds: Optional[float] = None

    def __post_init__(self) -> None:
        if self.seconds is not None and (math.isnan(self.seconds) or math.isinf(self.seconds) or self.seconds < 0):
            raise ValueError("finite override duration must be a non-negative number of seconds")

    @classmethod
    def finite(cls, seconds: float) -> "OverrideDuration":
        return cls(float(seconds))

    @classmethod
    def indefinite(cls) -> "OverrideDuration":
        return cls(None)

    @classmethod
    def from_seconds(cls, seconds: float) -> "OverrideDuration":
        """``math.inf`` means "until cancelled"."""
        if math.isinf(seconds):
            return cls.indefinite()
        return cls.finite(seconds)

    @property
    def is_indefinite(self) -> bool:
        return self.seconds is None

    def to_raw(self) -> Dict[str, Any]:
        if self.seconds is None:
            return {"type": "indefinite"}
        return {"type": "finite", "seconds": self.seconds}

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "OverrideDuration":
        if raw["type"] == "indefinite":
            return cls.indefinite()
        if raw["type"] == "finite":
            return cls.finite(_as_number(raw["seconds"], "seconds"))
        raise ValueError(f"unknown duration type {raw['type']!r}")


@dataclass(frozen=True)
class OverrideSettings:
    unit: GlucoseUnit
    target_range: Optional[DoubleRange] = None
    insulin_needs_scale_factor: float = 1.0

    def __post_init__(self) -> None:
        if not self.insulin_needs_scale_factor > 0:
            raise ValueError("insulin_needs_scale_factor must be > 0")

    def to_raw(self) -> Dict[str, Any]:
        raw: Dict[str, Any] = {
            "unit": self.unit.value,
            "insulinNeedsScaleFactor": self.insulin_needs_scale_factor,
        }
        if self.target_range is not None:
            raw["targetRange"] = self.target_range.to_raw()
        return raw

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "OverrideSettings":
        unit = GlucoseUnit.from_string(raw.get("unit"))
        if unit is None:
            raise ValueError(f"unknown glucose unit {raw.get('unit')!r}")
        target_range = raw.get("targetRange")
        return cls(
            unit=unit,
            target_range=DoubleRange.from_raw(target_range) if target_range is not None else None,
            insulin_needs_scale_factor=_as_number(raw.get("insulinNeedsScaleFactor", 1.0), "insulinNeedsScaleFactor"),
        )


@dataclass(frozen=True)
class TemporaryOverride:
    context: OverrideContext
    settings: OverrideSettings
    start_date: datetime
    duration: OverrideDuration

    def __post_init__(self) -> None:
        object.__setattr__(self, "start_date", ensure_aware(self.start_date))

    @property
    def end_date(self) -> Optional[datetime]:
        """None stands for "never ends"."""
        if self.duration.seconds is None:
            return None
        try:
            return self.start_date + timedelta(seconds=self.duration.seconds)
        except OverflowError:
            # ends beyond the calendar
            return None

    def is_active(self, at: Optional[datetime] = None) -> bool:
        at = ensure_aware(at)
        end_date = self.end_date
        return self.start_date <= at and (end_date is None or at < end_date)

    def has_finished(self, at: Optional[datetime] = None) -> bool:
        end_date = self.end_date
        return end_date is not None and ensure_aware(at) >= end_date

    def remaining(self, at: Optional[datetime] = None) -> Optional[float]:
        end_date = self.end_date
        if end_date is None:
            return None
        return max((end_date - ensure_aware(at)).total_seconds(), 0.0)

    def to_raw(self) -> Dict[str, Any]:
        return {
            "context": self.context.to_raw(),
            "settings": self.settings.to_raw(),
            "startDate": self.start_date.isoformat(),
            "duration": self.duration.to_raw(),
        }

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "TemporaryOverride":
        return cls(
            context=OverrideContext.from_raw(raw["context"]),
            settings=OverrideSettings.from_raw(raw["settings"]),
            start_date=_parse_date(raw["startDate"]),
            duration=OverrideDuration.from_raw(raw["duration"]),
        )


@dataclass(frozen=True)
class OverridePreset:
    """Named override the user can switch on at any time."""
    name: str
    symbol: str
    settings: OverrideSettings
    duration: OverrideDuration = field(default_factory=OverrideDuration.indefinite)

    def create_override(self, at: Optional[datetime] = None) -> TemporaryOverride:
        return TemporaryOverride(
            context=OverrideContext.for_preset(self),
            settings=self.settings,
            start_date=ensure_aware(at),
            duration=self.duration,
        )

    def to_raw(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "symbol": self.symbol,
            "settings": self.settings.to_raw(),
            "duration": self.duration.to_raw(),
        }

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> "OverridePreset":
        if not isinstance(raw.get("name"), str) or not isinstance(raw.get("symbol"), str):
            raise TypeError("preset needs string name and symbol")
        duration = raw.get("duration")
        return cls(
            name=raw["name"],
            symbol=raw["symbol"],
            settings=OverrideSettings.from_raw(raw["settings"]),
            duration=OverrideDuration.from_raw(duration) if duration is not None else OverrideDuration.indefinite(),
        )


def _parse_date(value: Any) -> datetime:
    if isinstance(value, str):
        return ensure_aware(datetime.fromisoformat(value))
    return datetime.fromtimestamp(_as_number(value, "date"), tz=timezone.utc)
