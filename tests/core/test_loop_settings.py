import math
from datetime import timedelta

import pytest

from loopstatus.core.overrides import CUSTOM, LEGACY_WORKOUT, PRE_MEAL, OverrideDuration
from loopstatus.core.schedules import DoubleRange
from loopstatus.core.settings import LoopSettings, OverrideState, SettingsStore


# ---------------------------------------------------------------------------
# Override state machine
# ---------------------------------------------------------------------------

def test_pre_meal_override_replaces_every_range_while_active(loop_settings, now):
    loop_settings.enable_pre_meal_override(at=now, duration=3600.0)

    during = loop_settings.effective_range_schedule(now + timedelta(seconds=1800))
    assert all(item.value == DoubleRange(80.0, 100.0) for item in during.items)

    after = loop_settings.effective_range_schedule(now + timedelta(seconds=3601))
    assert after == loop_settings.glucose_target_range_schedule


def test_pre_meal_override_needs_range_and_unit(loop_settings, now):
    loop_settings.pre_meal_target_range = None
    loop_settings.enable_pre_meal_override(at=now)
    assert loop_settings.schedule_override is None

    unitless = LoopSettings(pre_meal_target_range=DoubleRange(80.0, 100.0))
    unitless.enable_pre_meal_override(at=now)
    assert unitless.schedule_override is None


def test_infinite_workout_override_stays_active_until_cleared(loop_settings, now):
    loop_settings.enable_legacy_workout_override(at=now, duration=math.inf)
    override = loop_settings.schedule_override

    assert override.duration == OverrideDuration.indefinite()
    assert override.is_active(now + timedelta(days=400))

    loop_settings.clear_override()
    assert loop_settings.schedule_override is None


def test_finite_workout_override_ends_at_duration(loop_settings, now):
    loop_settings.enable_legacy_workout_override(at=now, duration=1800.0)
    override = loop_settings.schedule_override

    assert override.is_active(now + timedelta(seconds=1799.999))
    assert not override.is_active(now + timedelta(seconds=1800))


def test_clear_override_with_other_context_is_a_no_op(loop_settings, now):
    loop_settings.enable_legacy_workout_override(at=now, duration=1800.0)
    loop_settings.clear_override(matching=PRE_MEAL)
    assert loop_settings.schedule_override.context == LEGACY_WORKOUT

    loop_settings.clear_override(matching=LEGACY_WORKOUT)
    assert loop_settings.schedule_override is None
    # clearing again is fine
    loop_settings.clear_override()
    loop_settings.clear_override(matching=PRE_MEAL)


def test_new_override_replaces_previous_one(loop_settings, running_preset, now):
    loop_settings.enable_pre_meal_override(at=now)
    loop_settings.enable_preset_override(running_preset, at=now)

    assert loop_settings.schedule_override.context.preset == running_preset
    assert not loop_settings.pre_meal_target_enabled(now)
    assert loop_settings.non_pre_meal_override_enabled(now)


def test_override_state_transitions(loop_settings, now):
    assert loop_settings.override_state(now) is OverrideState.INACTIVE

    loop_settings.enable_pre_meal_override(at=now + timedelta(minutes=10), duration=600.0)
    assert loop_settings.override_state(now) is OverrideState.PENDING
    assert loop_settings.future_override_enabled(now)
    assert not loop_settings.schedule_override_enabled(now)

    assert loop_settings.override_state(now + timedelta(minutes=15)) is OverrideState.ACTIVE
    assert loop_settings.pre_meal_target_enabled(now + timedelta(minutes=15))
    assert not loop_settings.non_pre_meal_override_enabled(now + timedelta(minutes=15))

    assert loop_settings.override_state(now + timedelta(minutes=20)) is OverrideState.EXPIRED
    assert not loop_settings.schedule_override_enabled(now + timedelta(minutes=20))


def test_override_without_target_range_keeps_base_schedule(loop_settings, now):
    from loopstatus.core.overrides import OverrideSettings, TemporaryOverride

    loop_settings.schedule_override = TemporaryOverride(
        context=CUSTOM,
        settings=OverrideSettings(unit=loop_settings.glucose_unit, insulin_needs_scale_factor=1.3),
        start_date=now,
        duration=OverrideDuration.finite(3600.0),
    )
    assert loop_settings.effective_range_schedule(now) == loop_settings.glucose_target_range_schedule


def test_effective_schedule_is_none_without_base_schedule(now):
    assert LoopSettings().effective_range_schedule(now) is None


def test_copy_is_independent(loop_settings, now):
    draft = loop_settings.copy()
    draft.enable_pre_meal_override(at=now)
    draft.override_presets.clear()
    assert loop_settings.schedule_override is None
    assert len(loop_settings.override_presets) == 1


# ---------------------------------------------------------------------------
# Raw form
# ---------------------------------------------------------------------------

def test_raw_form_round_trips_every_field(loop_settings, running_preset, now):
    loop_settings.enable_preset_override(running_preset, at=now)
    raw = loop_settings.to_raw()

    assert raw["version"] == 1
    assert set(raw) == {
        "version",
        "dosingEnabled",
        "glucoseTargetRangeSchedule",
        "preMealTargetRange",
        "legacyWorkoutTargetRange",
        "overridePresets",
        "scheduleOverride",
        "maximumBasalRatePerHour",
        "maximumBolus",
        "minimumBGGuard",
    }
    assert LoopSettings.from_raw(raw) == loop_settings


@pytest.mark.parametrize("version", [None, 0, 2, "1", 1.0, True])
def test_raw_form_with_wrong_version_is_rejected(loop_settings, version):
    raw = loop_settings.to_raw()
    if version is None:
        del raw["version"]
    else:
        raw["version"] = version
    assert LoopSettings.from_raw(raw) is None


def test_missing_fields_keep_defaults():
    settings = LoopSettings.from_raw({"version": 1})
    assert settings == LoopSettings()


def test_unreadable_fields_are_skipped_individually(loop_settings):
    raw = loop_settings.to_raw()
    raw["maximumBolus"] = "lots"
    raw["dosingEnabled"] = "yes"
    raw["preMealTargetRange"] = [100.0]

    settings = LoopSettings.from_raw(raw)

    assert settings.maximum_bolus is None
    assert settings.dosing_enabled is False
    assert settings.pre_meal_target_range is None
    assert settings.glucose_target_range_schedule == loop_settings.glucose_target_range_schedule
    assert settings.maximum_basal_rate_per_hour == 3.0


def test_broken_preset_is_dropped_and_others_kept(loop_settings):
    raw = loop_settings.to_raw()
    raw["overridePresets"].append({"name": "Broken"})
    settings = LoopSettings.from_raw(raw)
    assert [preset.name for preset in settings.override_presets] == ["Running"]


def test_legacy_override_ranges_are_migrated(loop_settings):
    raw = loop_settings.to_raw()
    del raw["preMealTargetRange"]
    del raw["legacyWorkoutTargetRange"]
    raw["glucoseTargetRangeSchedule"]["overrideRanges"] = {
        "preMeal": [75.0, 85.0],
        "workout": [150.0, 180.0],
    }

    settings = LoopSettings.from_raw(raw)

    assert settings.pre_meal_target_range == DoubleRange(75.0, 85.0)
    assert settings.legacy_workout_target_range == DoubleRange(150.0, 180.0)
    assert settings.glucose_target_range_schedule == loop_settings.glucose_target_range_schedule


def test_standalone_ranges_win_over_legacy_ones(loop_settings):
    raw = loop_settings.to_raw()
    raw["glucoseTargetRangeSchedule"]["overrideRanges"] = {"preMeal": [75.0, 85.0]}

    settings = LoopSettings.from_raw(raw)

    assert settings.pre_meal_target_range == DoubleRange(80.0, 100.0)


def test_settings_store_alias():
    assert SettingsStore is LoopSettings


def test_huge_workout_duration_keeps_queries_working(loop_settings, now):
    loop_settings.enable_legacy_workout_override(at=now, duration=1e12)

    assert loop_settings.schedule_override_enabled(now + timedelta(hours=1))
    assert loop_settings.override_state(now + timedelta(days=365)) is OverrideState.ACTIVE
    during = loop_settings.effective_range_schedule(now + timedelta(hours=1))
    assert all(item.value == DoubleRange(140.0, 160.0) for item in during.items)


def test_nan_override_duration_in_raw_form_is_dropped(loop_settings, now):
    loop_settings.enable_pre_meal_override(at=now)
    raw = loop_settings.to_raw()
    raw["scheduleOverride"]["duration"]["seconds"] = float("nan")

    settings = LoopSettings.from_raw(raw)

    assert settings.schedule_override is None
    assert settings.pre_meal_target_range == DoubleRange(80.0, 100.0)


def test_duplicate_preset_names_keep_the_first(loop_settings, running_preset):
    raw = loop_settings.to_raw()
    duplicate = running_preset.to_raw()
    duplicate["symbol"] = "🚴"
    raw["overridePresets"].append(duplicate)

    settings = LoopSettings.from_raw(raw)

    assert len(settings.override_presets) == 1
    assert settings.override_presets[0].symbol == running_preset.symbol
