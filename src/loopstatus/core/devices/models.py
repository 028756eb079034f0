from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


@dataclass(frozen=True)
class DeviceIdentity:
    name: str
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    firmware_version: Optional[str] = None
    local_identifier: Optional[str] = None


class BolusState(Enum):
    NONE = "none"
    INITIATING = "initiating"
    IN_PROGRESS = "inProgress"
    CANCELING = "canceling"


@dataclass(frozen=True)
class TempBasal:
    start_date: datetime
    end_date: datetime
    units_per_hour: float

    @property
    def duration(self) -> float:
        return (self.end_date - self.start_date).total_seconds()


class BasalDeliveryKind(Enum):
    ACTIVE = "active"
    TEMP_BASAL = "tempBasal"
    SUSPENDED = "suspended"


@dataclass(frozen=True)
class BasalDeliveryState:
    """
    What the pump is delivering right now. ``temp_basal`` is only set while a
    temporary basal rate is running.
    """
    kind: BasalDeliveryKind = BasalDeliveryKind.ACTIVE
    temp_basal: Optional[TempBasal] = None
    since: Optional[datetime] = None

    @classmethod
    def running_temp_basal(cls, temp_basal: TempBasal) -> "BasalDeliveryState":
        return cls(BasalDeliveryKind.TEMP_BASAL, temp_basal=temp_basal, since=temp_basal.start_date)

    @classmethod
    def suspended(cls, since: Optional[datetime] = None) -> "BasalDeliveryState":
        return cls(BasalDeliveryKind.SUSPENDED, since=since)

    @property
    def is_suspended(self) -> bool:
        return self.kind is BasalDeliveryKind.SUSPENDED


@dataclass
class PumpManagerStatus:
    """Snapshot of pump hardware state reported by the pump driver."""
    device: DeviceIdentity
    basal_delivery_state: BasalDeliveryState = field(default_factory=BasalDeliveryState)
    bolus_state: BolusState = BolusState.NONE
    time_zone: int = 0  # seconds from GMT
    battery_charge_remaining: Optional[float] = None  # 0.0 - 1.0

    @property
    def is_bolusing(self) -> bool:
        return self.bolus_state is BolusState.IN_PROGRESS


@dataclass(frozen=True)
class ReservoirValue:
    start_date: datetime
    unit_volume: float


@dataclass
class UploaderDevice:
    """The phone or hub running the controller."""
    name: str
    battery_level: Optional[float] = None  # 0.0 - 1.0
    battery_monitoring_enabled: bool = False

    @property
    def battery_percent(self) -> Optional[int]:
        if not self.battery_monitoring_enabled or self.battery_level is None:
            return None
        return int(self.battery_level * 100)
