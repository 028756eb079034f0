from pathlib import Path
import sys
from datetime import datetime, timezone

import pytest

project_root = Path(__file__).resolve().parents[1]
src_path = project_root / "src"

if src_path.exists():
    sys.path.insert(0, str(src_path))

from loopstatus.api.interfaces import (  # noqa: E402
    DoseStore,
    DosingEngine,
    InsulinModel,
    InsulinValue,
    LoopState,
    PumpManager,
    StatusUploader,
    TherapySettings,
    UploadError,
)
from loopstatus.core.devices.models import DeviceIdentity, PumpManagerStatus  # noqa: E402
from loopstatus.core.overrides import OverrideDuration, OverridePreset, OverrideSettings  # noqa: E402
from loopstatus.core.schedules import (  # noqa: E402
    DoubleRange,
    GlucoseThreshold,
    RangeSchedule,
    RepeatingSchedule,
    ScheduleItem,
)
from loopstatus.core.settings import LoopSettings  # noqa: E402
from loopstatus.core.units import GlucoseUnit  # noqa: E402


class FakeDosingEngine(DosingEngine):
    def __init__(self, state=None, error=None):
        self.state = state if state is not None else LoopState()
        self.error = error

    async def get_loop_state(self):
        if self.error is not None:
            raise self.error
        return self.state


class FakeDoseStore(DoseStore):
    def __init__(self, iob=None, error=None, reservoir=None):
        self.iob = iob
        self.error = error
        self.reservoir = reservoir

    async def insulin_on_board(self, at):
        if self.error is not None:
            raise self.error
        if self.iob is None:
            return InsulinValue(start_date=at, value=0.0)
        return self.iob

    @property
    def last_reservoir_value(self):
        return self.reservoir


class FakePumpManager(PumpManager):
    def __init__(self, status=None):
        self._status = status

    @property
    def status(self):
        return self._status


class RecordingUploader(StatusUploader):
    """Keeps every document it is handed; can be told to fail."""

    def __init__(self):
        self.device_statuses = []
        self.profiles = []
        self.entries = []
        self.fail_device_status = False
        self.fail_profile = False

    async def upload_device_status(self, device_status):
        self.device_statuses.append(device_status)
        if self.fail_device_status:
            raise UploadError("site unreachable")

    async def upload_profile(self, profile_set):
        self.profiles.append(profile_set)
        if self.fail_profile:
            raise UploadError("site unreachable", status_code=503)

    async def upload_entries(self, entries):
        self.entries.extend(entries)


class ManualClock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, delta):
        self.now = self.now + delta


@pytest.fixture
def now():
    return datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def range_schedule():
    return RangeSchedule.from_ranges(
        GlucoseUnit.MG_DL,
        [
            (0.0, 100.0, 110.0),
            (8 * 3600.0, 95.0, 105.0),
            (21 * 3600.0, 110.0, 120.0),
        ],
    )


@pytest.fixture
def running_preset():
    return OverridePreset(
        name="Running",
        symbol="🏃",
        settings=OverrideSettings(
            unit=GlucoseUnit.MG_DL,
            target_range=DoubleRange(150.0, 170.0),
            insulin_needs_scale_factor=0.5,
        ),
        duration=OverrideDuration.finite(5400.0),
    )


@pytest.fixture
def loop_settings(range_schedule, running_preset):
    return LoopSettings(
        dosing_enabled=True,
        glucose_target_range_schedule=range_schedule,
        pre_meal_target_range=DoubleRange(80.0, 100.0),
        legacy_workout_target_range=DoubleRange(140.0, 160.0),
        override_presets=[running_preset],
        maximum_basal_rate_per_hour=3.0,
        maximum_bolus=8.0,
        suspend_threshold=GlucoseThreshold(70.0, GlucoseUnit.MG_DL),
    )


@pytest.fixture
def therapy_settings():
    return TherapySettings(
        basal_rate_schedule=RepeatingSchedule(
            items=(ScheduleItem(0.0, 0.8), ScheduleItem(6 * 3600.0, 1.1)),
            time_zone=7200,
        ),
        carb_ratio_schedule=RepeatingSchedule(items=(ScheduleItem(0.0, 10.0),)),
        insulin_sensitivity_schedule=RepeatingSchedule(items=(ScheduleItem(0.0, 45.0),)),
        insulin_model=InsulinModel(name="rapidActingAdult", effect_duration=6 * 3600.0),
    )


@pytest.fixture
def pump_status():
    return PumpManagerStatus(
        device=DeviceIdentity(name="Omnipod", manufacturer="Insulet", model="Eros", local_identifier="1F0A2B"),
        battery_charge_remaining=0.456,
        time_zone=7200,
    )


@pytest.fixture
def clock(now):
    return ManualClock(now)


@pytest.fixture
def uploader():
    return RecordingUploader()


@pytest.fixture
def dosing_engine():
    return FakeDosingEngine()


@pytest.fixture
def dose_store():
    return FakeDoseStore()


@pytest.fixture
def pump_manager():
    return FakePumpManager()
