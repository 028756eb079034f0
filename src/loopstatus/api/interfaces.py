"""
Collaborators consumed by the status and upload layer.

The dosing engine, dose history, pump driver and network transport live
outside this package. Implementations subclass the abstract classes below and
are handed to ``StatusAggregator`` / ``UploadCoordinator`` at construction.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from loopstatus.core.devices.models import PumpManagerStatus, ReservoirValue
from loopstatus.core.schedules import RepeatingSchedule
from loopstatus.core.units import GlucoseUnit


@dataclass(frozen=True)
class InsulinValue:
    start_date: datetime
    value: float  # units


@dataclass(frozen=True)
class CarbValue:
    start_date: datetime
    grams: float


@dataclass(frozen=True)
class GlucoseValue:
    start_date: datetime
    value: float
    unit: GlucoseUnit = GlucoseUnit.MG_DL

    def value_in(self, unit: GlucoseUnit) -> float:
        return self.unit.convert(self.value, unit)


@dataclass(frozen=True)
class TempBasalRecommendation:
    units_per_hour: float
    duration: float  # seconds
    date: datetime


class GlucoseTrend(Enum):
    UP_UP_UP = "upUpUp"
    UP_UP = "upUp"
    UP = "up"
    FLAT = "flat"
    DOWN = "down"
    DOWN_DOWN = "downDown"
    DOWN_DOWN_DOWN = "downDownDown"


@dataclass
class LoopState:
    """Result of the dosing engine's last cycle. Every field may be missing."""
    error: Optional[BaseException] = None
    recommended_bolus: Optional[float] = None
    carbs_on_board: Optional[CarbValue] = None
    predicted_glucose: List[GlucoseValue] = field(default_factory=list)
    recommended_temp_basal: Optional[TempBasalRecommendation] = None


@dataclass(frozen=True)
class InsulinModel:
    name: str
    effect_duration: float  # seconds


@dataclass
class TherapySettings:
    """Schedules owned by the pump/therapy layer, needed for profile uploads."""
    basal_rate_schedule: Optional[RepeatingSchedule] = None
    carb_ratio_schedule: Optional[RepeatingSchedule] = None
    insulin_sensitivity_schedule: Optional[RepeatingSchedule] = None
    insulin_model: Optional[InsulinModel] = None


class DosingEngine(ABC):
    @abstractmethod
    async def get_loop_state(self) -> LoopState:
        """Latest loop cycle outputs."""
        raise NotImplementedError


class DoseStore(ABC):
    @abstractmethod
    async def insulin_on_board(self, at: datetime) -> InsulinValue:
        """IOB at ``at``. Raises when the store cannot compute it."""
        raise NotImplementedError

    @property
    def last_reservoir_value(self) -> Optional[ReservoirValue]:
        return None


class PumpManager(ABC):
    @property
    @abstractmethod
    def status(self) -> Optional[PumpManagerStatus]:
        raise NotImplementedError


class UploadError(RuntimeError):
    """Raised by a StatusUploader when an upload attempt fails."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class StatusUploader(ABC):
    """
    Network transport. One attempt per call; retries are the caller's
    business. Failures are reported as ``UploadError``.
    """

    @abstractmethod
    async def upload_device_status(self, device_status: Dict[str, Any]) -> None:
        raise NotImplementedError

    @abstractmethod
    async def upload_profile(self, profile_set: Dict[str, Any]) -> None:
        raise NotImplementedError

    @abstractmethod
    async def upload_entries(self, entries: List[Dict[str, Any]]) -> None:
        raise NotImplementedError
