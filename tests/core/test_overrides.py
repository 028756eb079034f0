import math
from datetime import datetime, timedelta, timezone

import pytest

from loopstatus.core.overrides import (
    CUSTOM,
    LEGACY_WORKOUT,
    PRE_MEAL,
    OverrideContext,
    OverrideContextKind,
    OverrideDuration,
    OverrideSettings,
    TemporaryOverride,
)
from loopstatus.core.schedules import DoubleRange
from loopstatus.core.units import GlucoseUnit


def _override(now, seconds=3600.0, context=CUSTOM):
    return TemporaryOverride(
        context=context,
        settings=OverrideSettings(unit=GlucoseUnit.MG_DL, target_range=DoubleRange(120.0, 130.0)),
        start_date=now,
        duration=OverrideDuration.finite(seconds),
    )


def test_active_interval_is_half_open(now):
    override = _override(now)
    assert override.is_active(now)
    assert override.is_active(now + timedelta(seconds=3599, microseconds=999999))
    assert not override.is_active(now + timedelta(seconds=3600))
    assert not override.is_active(now - timedelta(seconds=1))


def test_remaining_is_clamped_at_zero(now):
    override = _override(now, seconds=600.0)
    assert override.remaining(now + timedelta(seconds=60)) == 540.0
    assert override.remaining(now + timedelta(hours=2)) == 0.0


def test_indefinite_override_never_ends(now):
    override = TemporaryOverride(
        context=CUSTOM,
        settings=OverrideSettings(unit=GlucoseUnit.MG_DL),
        start_date=now,
        duration=OverrideDuration.indefinite(),
    )
    assert override.end_date is None
    assert override.remaining(now) is None
    assert override.is_active(now + timedelta(days=3650))
    assert not override.has_finished(now + timedelta(days=3650))


def test_infinite_seconds_become_indefinite():
    assert OverrideDuration.from_seconds(math.inf).is_indefinite
    assert OverrideDuration.from_seconds(900.0) == OverrideDuration.finite(900.0)


def test_naive_start_date_is_taken_as_utc():
    override = _override(datetime(2024, 5, 1, 12, 0))
    assert override.start_date.tzinfo is timezone.utc


def test_scale_factor_must_be_positive():
    with pytest.raises(ValueError):
        OverrideSettings(unit=GlucoseUnit.MG_DL, insulin_needs_scale_factor=0.0)


def test_preset_context_requires_preset(running_preset):
    with pytest.raises(ValueError):
        OverrideContext(OverrideContextKind.PRESET)
    with pytest.raises(ValueError):
        OverrideContext(OverrideContextKind.CUSTOM, running_preset)


def test_display_names(running_preset):
    assert PRE_MEAL.display_name == "preMeal"
    assert LEGACY_WORKOUT.display_name == "Workout"
    assert CUSTOM.display_name == "Custom"
    assert OverrideContext.for_preset(running_preset).display_name == "Running"


def test_preset_creates_override_with_its_settings(now, running_preset):
    override = running_preset.create_override(now)
    assert override.context.preset == running_preset
    assert override.settings.insulin_needs_scale_factor == 0.5
    assert override.end_date == now + timedelta(seconds=5400)


def test_override_raw_form_round_trips(now, running_preset):
    override = running_preset.create_override(now)
    raw = override.to_raw()
    assert raw["context"]["context"] == "preset"
    assert raw["duration"] == {"type": "finite", "seconds": 5400.0}
    assert TemporaryOverride.from_raw(raw) == override


def test_override_raw_accepts_epoch_start_date(now):
    raw = _override(now).to_raw()
    raw["startDate"] = now.timestamp()
    assert TemporaryOverride.from_raw(raw).start_date == now


def test_nan_duration_is_rejected():
    with pytest.raises(ValueError):
        OverrideDuration.finite(float("nan"))
    with pytest.raises(ValueError):
        OverrideDuration.from_raw({"type": "finite", "seconds": float("nan")})


def test_duration_past_calendar_end_is_open_ended(now):
    override = _override(now, seconds=1e12)
    assert override.end_date is None
    assert override.remaining(now) is None
    assert override.is_active(now + timedelta(hours=1))
