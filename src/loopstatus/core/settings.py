"""
Dosing preferences and the temporary override state machine.

``LoopSettings`` is the unit of persistence: it is read at startup from its
versioned raw form, mutated in place by user actions, and written back whole.
"""
from __future__ import annotations

import copy
import logging
import numbers
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, List, Optional, TypeVar

from loopstatus.core import guardrails
from loopstatus.core.overrides import (
    LEGACY_WORKOUT,
    PRE_MEAL,
    OverrideContext,
    OverrideDuration,
    OverridePreset,
    OverrideSettings,
    TemporaryOverride,
)
from loopstatus.core.schedules import DoubleRange, GlucoseThreshold, RangeSchedule
from loopstatus.core.units import GlucoseUnit
from loopstatus.utils.clock import ensure_aware

logger = logging.getLogger("loopstatus.settings")

T = TypeVar("T")


class OverrideState(Enum):
    INACTIVE = "inactive"
    PENDING = "pending"
    ACTIVE = "active"
    EXPIRED = "expired"


@dataclass
class LoopSettings:
    """
    User dosing preferences: target ranges, override presets, the active
    override and safety limits.
    """
    VERSION: ClassVar[int] = 1

    # Fixed controller constants
    RECENCY_INTERVAL: ClassVar[timedelta] = timedelta(minutes=15)
    RETROSPECTIVE_CORRECTION_GROUPING_INTERVAL: ClassVar[timedelta] = timedelta(minutes=30)
    BATTERY_REPLACEMENT_DETECTION_THRESHOLD: ClassVar[float] = 0.5
    DEFAULT_CARB_ABSORPTION_TIMES: ClassVar[Dict[str, timedelta]] = {
        "fast": timedelta(hours=0.5),
        "medium": timedelta(hours=2),
        "slow": timedelta(hours=5),
    }

    dosing_enabled: bool = False
    glucose_target_range_schedule: Optional[RangeSchedule] = None
    pre_meal_target_range: Optional[DoubleRange] = None
    legacy_workout_target_range: Optional[DoubleRange] = None
    override_presets: List[OverridePreset] = field(default_factory=list)
    schedule_override: Optional[TemporaryOverride] = None
    maximum_basal_rate_per_hour: Optional[float] = None
    maximum_bolus: Optional[float] = None
    suspend_threshold: Optional[GlucoseThreshold] = None

    @property
    def glucose_unit(self) -> Optional[GlucoseUnit]:
        if self.glucose_target_range_schedule is None:
            return None
        return self.glucose_target_range_schedule.unit

    def copy(self) -> "LoopSettings":
        return copy.deepcopy(self)

    # ------------------------------------------------------------------
    # Guardrails
    # ------------------------------------------------------------------

    def allowed_sensitivity_values(self, unit: Optional[GlucoseUnit]) -> List[float]:
        return guardrails.allowed_sensitivity_values(unit)

    def allowed_correction_range_values(self, unit: Optional[GlucoseUnit]) -> List[float]:
        return guardrails.allowed_correction_range_values(unit)

    # ------------------------------------------------------------------
    # Override queries
    # ------------------------------------------------------------------

    def effective_range_schedule(self, at: Optional[datetime] = None) -> Optional[RangeSchedule]:
        """The target range schedule with the active override applied, if any."""
        schedule = self.glucose_target_range_schedule
        override = self.schedule_override
        if schedule is None or override is None or not override.is_active(at):
            return schedule
        if override.settings.target_range is None:
            return schedule
        return schedule.replacing_ranges(override.settings.target_range, override.settings.unit)

    def override_state(self, at: Optional[datetime] = None) -> OverrideState:
        override = self.schedule_override
        if override is None:
            return OverrideState.INACTIVE
        at = ensure_aware(at)
        if override.start_date > at:
            return OverrideState.PENDING
        if override.is_active(at):
            return OverrideState.ACTIVE
        return OverrideState.EXPIRED

    def schedule_override_enabled(self, at: Optional[datetime] = None) -> bool:
        override = self.schedule_override
        return override is not None and override.is_active(at)

    def non_pre_meal_override_enabled(self, at: Optional[datetime] = None) -> bool:
        override = self.schedule_override
        return override is not None and override.context != PRE_MEAL and override.is_active(at)

    def pre_meal_target_enabled(self, at: Optional[datetime] = None) -> bool:
        override = self.schedule_override
        return override is not None and override.context == PRE_MEAL and override.is_active(at)

    def future_override_enabled(self, relative_to: Optional[datetime] = None) -> bool:
        override = self.schedule_override
        return override is not None and override.start_date > ensure_aware(relative_to)

    # ------------------------------------------------------------------
    # Override transitions
    # ------------------------------------------------------------------

    def pre_meal_override(self, beginning_at: Optional[datetime] = None, duration: float = 3600.0) -> Optional[TemporaryOverride]:
        unit = self.glucose_unit
        if self.pre_meal_target_range is None or unit is None:
            return None
        return TemporaryOverride(
            context=PRE_MEAL,
            settings=OverrideSettings(unit=unit, target_range=self.pre_meal_target_range),
            start_date=ensure_aware(beginning_at),
            duration=OverrideDuration.finite(duration),
        )

    def legacy_workout_override(self, beginning_at: Optional[datetime] = None, duration: float = 3600.0) -> Optional[TemporaryOverride]:
        unit = self.glucose_unit
        if self.legacy_workout_target_range is None or unit is None:
            return None
        return TemporaryOverride(
            context=LEGACY_WORKOUT,
            settings=OverrideSettings(unit=unit, target_range=self.legacy_workout_target_range),
            start_date=ensure_aware(beginning_at),
            duration=OverrideDuration.from_seconds(duration),
        )

    def enable_pre_meal_override(self, at: Optional[datetime] = None, duration: float = 3600.0) -> None:
        override = self.pre_meal_override(at, duration)
        if override is None:
            logger.debug("Pre-meal override not created: range or glucose unit missing")
            return
        self.schedule_override = override

    def enable_legacy_workout_override(self, at: Optional[datetime] = None, duration: float = 3600.0) -> None:
        """Pass ``math.inf`` as duration to keep the override until it is cleared."""
        override = self.legacy_workout_override(at, duration)
        if override is None:
            logger.debug("Workout override not created: range or glucose unit missing")
            return
        self.schedule_override = override

    def enable_preset_override(self, preset: OverridePreset, at: Optional[datetime] = None) -> None:
        self.schedule_override = preset.create_override(at)

    def clear_override(self, matching: Optional[OverrideContext] = None) -> None:
        override = self.schedule_override
        if override is None:
            return
        if matching is None or override.context == matching:
            self.schedule_override = None

    # ------------------------------------------------------------------
    # Raw form
    # ------------------------------------------------------------------

    def to_raw(self) -> Dict[str, Any]:
        raw: Dict[str, Any] = {
            "version": self.VERSION,
            "dosingEnabled": self.dosing_enabled,
            "overridePresets": [preset.to_raw() for preset in self.override_presets],
        }
        optional = {
            "glucoseTargetRangeSchedule": self.glucose_target_range_schedule,
            "preMealTargetRange": self.pre_meal_target_range,
            "legacyWorkoutTargetRange": self.legacy_workout_target_range,
            "scheduleOverride": self.schedule_override,
            "minimumBGGuard": self.suspend_threshold,
        }
        for key, value in optional.items():
            if value is not None:
                raw[key] = value.to_raw()
        if self.maximum_basal_rate_per_hour is not None:
            raw["maximumBasalRatePerHour"] = self.maximum_basal_rate_per_hour
        if self.maximum_bolus is not None:
            raw["maximumBolus"] = self.maximum_bolus
        return raw

    @classmethod
    def from_raw(cls, raw: Dict[str, Any]) -> Optional["LoopSettings"]:
        """
        Decode a persisted raw form.

        Returns None when the version tag is missing or unknown. Past that
        check every field is decoded on its own; a missing or unreadable
        field keeps its default.
        """
        if not isinstance(raw, dict):
            return None
        version = raw.get("version")
        if type(version) is not int or version != cls.VERSION:
            logger.warning("Unsupported settings version %r", version)
            return None

        settings = cls()
        dosing_enabled = _decode_field(raw, "dosingEnabled", _decode_bool)
        if dosing_enabled is not None:
            settings.dosing_enabled = dosing_enabled

        settings.glucose_target_range_schedule = _decode_field(raw, "glucoseTargetRangeSchedule", RangeSchedule.from_raw)
        legacy_pre_meal, legacy_workout = _legacy_override_ranges(raw.get("glucoseTargetRangeSchedule"))

        pre_meal = _decode_field(raw, "preMealTargetRange", DoubleRange.from_raw)
        settings.pre_meal_target_range = pre_meal if pre_meal is not None else legacy_pre_meal
        workout = _decode_field(raw, "legacyWorkoutTargetRange", DoubleRange.from_raw)
        settings.legacy_workout_target_range = workout if workout is not None else legacy_workout

        presets = _decode_field(raw, "overridePresets", _decode_presets)
        if presets is not None:
            settings.override_presets = presets

        settings.schedule_override = _decode_field(raw, "scheduleOverride", TemporaryOverride.from_raw)
        settings.maximum_basal_rate_per_hour = _decode_field(raw, "maximumBasalRatePerHour", _decode_number)
        settings.maximum_bolus = _decode_field(raw, "maximumBolus", _decode_number)
        settings.suspend_threshold = _decode_field(raw, "minimumBGGuard", GlucoseThreshold.from_raw)
        return settings


# Earlier releases used this name throughout
SettingsStore = LoopSettings


def _decode_field(raw: Dict[str, Any], key: str, decode: Callable[[Any], T]) -> Optional[T]:
    value = raw.get(key)
    if value is None:
        return None
    try:
        return decode(value)
    except (AttributeError, KeyError, TypeError, ValueError) as exc:
        logger.warning("Ignoring unreadable settings field %s: %s", key, exc)
        return None


def _decode_bool(value: Any) -> bool:
    if not isinstance(value, bool):
        raise TypeError("expected a boolean")
    return value


def _decode_number(value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        raise TypeError("expected a number")
    return float(value)


def _decode_presets(value: Any) -> List[OverridePreset]:
    if not isinstance(value, list):
        raise TypeError("expected a list of presets")
    presets: List[OverridePreset] = []
    names = set()
    for entry in value:
        try:
            preset = OverridePreset.from_raw(entry)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Skipping unreadable override preset: %s", exc)
            continue
        # names are unique; the first one stored wins
        if preset.name in names:
            logger.warning("Skipping duplicate override preset %r", preset.name)
            continue
        names.add(preset.name)
        presets.append(preset)
    return presets


def _legacy_override_ranges(schedule_raw: Any):
    """Pre-meal and workout ranges once stored inside the range schedule."""
    if not isinstance(schedule_raw, dict):
        return None, None
    override_ranges = schedule_raw.get("overrideRanges")
    if not isinstance(override_ranges, dict):
        return None, None
    return (
        _decode_field(override_ranges, "preMeal", DoubleRange.from_raw),
        _decode_field(override_ranges, "workout", DoubleRange.from_raw),
    )
