from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Tuple

from loopstatus.api.interfaces import TherapySettings
from loopstatus.core.overrides import (
    OverrideContextKind,
    OverrideDuration,
    OverridePreset,
    OverrideSettings,
    TemporaryOverride,
)
from loopstatus.core.schedules import RepeatingSchedule
from loopstatus.core.settings import LoopSettings
from loopstatus.core.units import GlucoseUnit
from loopstatus.status.models import (
    NightscoutLoopSettings,
    NightscoutOverride,
    Profile,
    ProfileScheduleItem,
    ProfileSet,
)

DEFAULT_PROFILE_NAME = "Default"


def missing_profile_inputs(settings: Optional[LoopSettings], therapy: Optional[TherapySettings]) -> List[str]:
    """Names of the inputs a profile upload still needs; empty when complete."""
    missing: List[str] = []
    if settings is None:
        missing.append("loop settings")
    if therapy is None:
        therapy = TherapySettings()
    if therapy.basal_rate_schedule is None:
        missing.append("basal rate schedule")
    if therapy.insulin_model is None:
        missing.append("insulin model")
    if therapy.carb_ratio_schedule is None:
        missing.append("carb ratio schedule")
    if therapy.insulin_sensitivity_schedule is None:
        missing.append("insulin sensitivity schedule")
    if settings is not None:
        if settings.glucose_unit is None:
            missing.append("preferred unit")
        if settings.glucose_target_range_schedule is None:
            missing.append("correction range schedule")
    return missing


def timezone_name(seconds_from_gmt: int) -> str:
    if seconds_from_gmt % 3600 != 0:
        # no Etc/GMT zone for fractional hours; send the fixed offset
        sign = "-" if seconds_from_gmt < 0 else "+"
        hours, minutes = divmod(abs(seconds_from_gmt) // 60, 60)
        return f"{sign}{hours:02d}:{minutes:02d}"
    hours = seconds_from_gmt // 3600
    if hours == 0:
        return "Etc/GMT"
    # the Etc/GMT zones have their sign reversed
    return f"Etc/GMT{-hours:+d}"


def _schedule_items(schedule: RepeatingSchedule) -> Tuple[ProfileScheduleItem, ...]:
    return tuple(ProfileScheduleItem(offset=item.start_time, value=item.value) for item in schedule.items)


def _override_range(settings: OverrideSettings, unit: GlucoseUnit) -> Optional[Tuple[float, float]]:
    if settings.target_range is None:
        return None
    converted = settings.target_range.converted(settings.unit, unit)
    return (converted.min_value, converted.max_value)


def _duration_seconds(duration: OverrideDuration) -> float:
    return 0.0 if duration.seconds is None else duration.seconds


def nightscout_override(override: TemporaryOverride, unit: GlucoseUnit) -> NightscoutOverride:
    context = override.context
    name: Optional[str] = None
    symbol: Optional[str] = None
    if context.kind is OverrideContextKind.LEGACY_WORKOUT:
        name = "Workout"
    elif context.kind is OverrideContextKind.PRE_MEAL:
        name = "PreMeal"
    elif context.preset is not None:
        name = context.preset.name
        symbol = context.preset.symbol
    return NightscoutOverride(
        insulin_needs_scale_factor=override.settings.insulin_needs_scale_factor,
        duration=_duration_seconds(override.duration),
        target_range=_override_range(override.settings, unit),
        symbol=symbol,
        name=name,
    )


def nightscout_preset(preset: OverridePreset, unit: GlucoseUnit) -> NightscoutOverride:
    return NightscoutOverride(
        insulin_needs_scale_factor=preset.settings.insulin_needs_scale_factor,
        duration=_duration_seconds(preset.duration),
        target_range=_override_range(preset.settings, unit),
        symbol=preset.symbol,
        name=preset.name,
    )


def build_profile_set(
    settings: LoopSettings,
    therapy: TherapySettings,
    at: datetime,
    entered_by: str = "Loop",
) -> ProfileSet:
    missing = missing_profile_inputs(settings, therapy)
    if missing:
        raise ValueError(f"profile inputs missing: {', '.join(missing)}")

    correction = settings.glucose_target_range_schedule
    unit = settings.glucose_unit
    basal = therapy.basal_rate_schedule

    loop_settings = NightscoutLoopSettings(
        dosing_enabled=settings.dosing_enabled,
        override_presets=tuple(nightscout_preset(preset, unit) for preset in settings.override_presets),
        schedule_override=nightscout_override(settings.schedule_override, unit) if settings.schedule_override else None,
        minimum_bg_guard=settings.suspend_threshold.value_in(unit) if settings.suspend_threshold else None,
        pre_meal_target_range=(
            (settings.pre_meal_target_range.min_value, settings.pre_meal_target_range.max_value)
            if settings.pre_meal_target_range is not None
            else None
        ),
        maximum_basal_rate_per_hour=settings.maximum_basal_rate_per_hour,
        maximum_bolus=settings.maximum_bolus,
    )

    profile = Profile(
        timezone=timezone_name(basal.time_zone),
        dia=therapy.insulin_model.effect_duration / 3600.0,
        sensitivity=_schedule_items(therapy.insulin_sensitivity_schedule),
        carbratio=_schedule_items(therapy.carb_ratio_schedule),
        basal=_schedule_items(basal),
        target_low=tuple(ProfileScheduleItem(item.start_time, item.value.min_value) for item in correction.items),
        target_high=tuple(ProfileScheduleItem(item.start_time, item.value.max_value) for item in correction.items),
        units=correction.unit.short_name,
    )

    return ProfileSet(
        start_date=at,
        units=unit.short_name,
        entered_by=entered_by,
        default_profile=DEFAULT_PROFILE_NAME,
        store={DEFAULT_PROFILE_NAME: profile},
        settings=loop_settings,
    )
