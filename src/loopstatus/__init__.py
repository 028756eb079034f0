# src/loopstatus/__init__.py

__version__ = "0.1.0"

# Settings and overrides
from .core.units import GlucoseUnit
from .core.schedules import DoubleRange, GlucoseThreshold, RangeSchedule, RepeatingSchedule, ScheduleItem
from .core.overrides import (
    OverrideContext,
    OverrideContextKind,
    OverrideDuration,
    OverridePreset,
    OverrideSettings,
    TemporaryOverride,
)
from .core.settings import LoopSettings, OverrideState, SettingsStore
from .core.config import SyncConfig
from .core.storage import SettingsManager, SettingsRepository

# Collaborator seams
from .api.interfaces import (
    DoseStore,
    DosingEngine,
    LoopState,
    PumpManager,
    StatusUploader,
    TherapySettings,
    UploadError,
)

# Status and upload
from .status.aggregator import StatusAggregator
from .status.models import DeviceStatus, StatusRecord
from .upload.events import EventBus, LoopCompleted, LoopDataUpdated, LoopUpdateContext
from .upload.coordinator import UploadCoordinator
from .upload.nightscout import NightscoutConfig, NightscoutUploader
from .validation import load_sync_config

__all__ = [
    "__version__",
    "GlucoseUnit",
    "DoubleRange",
    "GlucoseThreshold",
    "RangeSchedule",
    "RepeatingSchedule",
    "ScheduleItem",
    "OverrideContext",
    "OverrideContextKind",
    "OverrideDuration",
    "OverridePreset",
    "OverrideSettings",
    "TemporaryOverride",
    "LoopSettings",
    "OverrideState",
    "SettingsStore",
    "SyncConfig",
    "SettingsManager",
    "SettingsRepository",
    "DoseStore",
    "DosingEngine",
    "LoopState",
    "PumpManager",
    "StatusUploader",
    "TherapySettings",
    "UploadError",
    "StatusAggregator",
    "DeviceStatus",
    "StatusRecord",
    "EventBus",
    "LoopCompleted",
    "LoopDataUpdated",
    "LoopUpdateContext",
    "UploadCoordinator",
    "NightscoutConfig",
    "NightscoutUploader",
    "load_sync_config",
]
