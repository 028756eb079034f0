"""
Outbound status documents.

Field names in ``to_dict`` follow the Nightscout ``devicestatus`` and
``profile`` collections. Durations are kept in seconds on the Python side and
converted to minutes where Nightscout expects minutes.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple

import numpy as np


def iso_timestamp(date: datetime) -> str:
    if date.tzinfo is None:
        date = date.replace(tzinfo=timezone.utc)
    return date.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _drop_none(payload: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None}


@dataclass(frozen=True)
class IOBStatus:
    timestamp: datetime
    iob: float

    def to_dict(self) -> Dict[str, Any]:
        return {"timestamp": iso_timestamp(self.timestamp), "iob": self.iob}


@dataclass(frozen=True)
class COBStatus:
    cob: float
    timestamp: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {"cob": self.cob, "timestamp": iso_timestamp(self.timestamp)}


@dataclass(frozen=True)
class PredictedBG:
    start_date: datetime
    values: Tuple[float, ...]  # mg/dL

    def to_dict(self) -> Dict[str, Any]:
        return {
            "startDate": iso_timestamp(self.start_date),
            "values": np.rint(np.asarray(self.values, dtype=float)).astype(int).tolist(),
        }


@dataclass(frozen=True)
class RecommendedTempBasal:
    timestamp: datetime
    rate: float
    duration: float  # seconds

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": iso_timestamp(self.timestamp),
            "rate": self.rate,
            "duration": self.duration / 60.0,
        }


@dataclass(frozen=True)
class LoopEnacted:
    rate: float
    duration: float  # seconds
    timestamp: datetime
    received: bool = True

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rate": self.rate,
            "duration": self.duration / 60.0,
            "timestamp": iso_timestamp(self.timestamp),
            "received": self.received,
        }


@dataclass(frozen=True)
class LoopStatus:
    name: str
    version: str
    timestamp: datetime
    iob: Optional[IOBStatus] = None
    cob: Optional[COBStatus] = None
    predicted: Optional[PredictedBG] = None
    recommended_temp_basal: Optional[RecommendedTempBasal] = None
    recommended_bolus: Optional[float] = None
    enacted: Optional[LoopEnacted] = None
    failure_reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "name": self.name,
            "version": self.version,
            "timestamp": iso_timestamp(self.timestamp),
            "iob": self.iob.to_dict() if self.iob else None,
            "cob": self.cob.to_dict() if self.cob else None,
            "predicted": self.predicted.to_dict() if self.predicted else None,
            "recommendedTempBasal": self.recommended_temp_basal.to_dict() if self.recommended_temp_basal else None,
            "recommendedBolus": self.recommended_bolus,
            "enacted": self.enacted.to_dict() if self.enacted else None,
            "failureReason": self.failure_reason,
        })


@dataclass(frozen=True)
class PumpStatus:
    clock: datetime
    pump_id: str
    manufacturer: Optional[str] = None
    model: Optional[str] = None
    battery_percent: Optional[int] = None
    suspended: bool = False
    bolusing: bool = False
    reservoir: Optional[float] = None
    seconds_from_gmt: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "clock": iso_timestamp(self.clock),
            "pumpID": self.pump_id,
            "manufacturer": self.manufacturer,
            "model": self.model,
            "battery": {"percent": self.battery_percent} if self.battery_percent is not None else None,
            "suspended": self.suspended,
            "bolusing": self.bolusing,
            "reservoir": self.reservoir,
            "secondsFromGMT": self.seconds_from_gmt,
        })


@dataclass(frozen=True)
class UploaderStatus:
    name: str
    timestamp: datetime
    battery: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "name": self.name,
            "timestamp": iso_timestamp(self.timestamp),
            "battery": self.battery,
        })


@dataclass(frozen=True)
class OverrideStatus:
    timestamp: datetime
    active: bool
    name: Optional[str] = None
    current_correction_range: Optional[Tuple[float, float]] = None
    duration: Optional[float] = None  # seconds left, None when indefinite
    multiplier: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        correction = None
        if self.current_correction_range is not None:
            low, high = self.current_correction_range
            correction = {"minValue": low, "maxValue": high}
        return _drop_none({
            "name": self.name,
            "timestamp": iso_timestamp(self.timestamp),
            "active": self.active,
            "currentCorrectionRange": correction,
            "duration": self.duration,
            "multiplier": self.multiplier,
        })


@dataclass(frozen=True)
class DeviceStatus:
    device: str
    timestamp: datetime
    pump_status: Optional[PumpStatus] = None
    uploader_status: Optional[UploaderStatus] = None
    loop_status: Optional[LoopStatus] = None
    override_status: Optional[OverrideStatus] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "device": self.device,
            "created_at": iso_timestamp(self.timestamp),
            "pump": self.pump_status.to_dict() if self.pump_status else None,
            "uploader": self.uploader_status.to_dict() if self.uploader_status else None,
            "loop": self.loop_status.to_dict() if self.loop_status else None,
            "override": self.override_status.to_dict() if self.override_status else None,
        })


@dataclass(frozen=True)
class StatusRecord:
    """
    Everything gathered for one report. Each optional field is None when its
    subsystem had nothing this cycle.
    """
    timestamp: datetime
    override_status: OverrideStatus
    insulin_on_board: Optional[IOBStatus] = None
    carbs_on_board: Optional[COBStatus] = None
    predicted: Optional[PredictedBG] = None
    recommended_temp_basal: Optional[RecommendedTempBasal] = None
    recommended_bolus: Optional[float] = None
    enacted_temp_basal: Optional[LoopEnacted] = None
    failure_reason: Optional[str] = None
    pump_status: Optional[PumpStatus] = None
    uploader_status: Optional[UploaderStatus] = None

    def loop_status(self, name: str, version: str) -> LoopStatus:
        return LoopStatus(
            name=name,
            version=version,
            timestamp=self.timestamp,
            iob=self.insulin_on_board,
            cob=self.carbs_on_board,
            predicted=self.predicted,
            recommended_temp_basal=self.recommended_temp_basal,
            recommended_bolus=self.recommended_bolus,
            enacted=self.enacted_temp_basal,
            failure_reason=self.failure_reason,
        )


# ---------------------------------------------------------------------------
# Profile documents
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProfileScheduleItem:
    offset: float  # seconds since midnight
    value: float

    def to_dict(self) -> Dict[str, Any]:
        hours, remainder = divmod(int(self.offset), 3600)
        return {
            "time": f"{hours:02d}:{remainder // 60:02d}",
            "value": self.value,
            "timeAsSeconds": int(self.offset),
        }


@dataclass(frozen=True)
class NightscoutOverride:
    """An override or override preset as Nightscout's loopSettings expects it."""
    insulin_needs_scale_factor: float
    duration: float  # seconds, 0 for indefinite
    target_range: Optional[Tuple[float, float]] = None
    symbol: Optional[str] = None
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "targetRange": list(self.target_range) if self.target_range is not None else None,
            "insulinNeedsScaleFactor": self.insulin_needs_scale_factor,
            "symbol": self.symbol,
            "duration": self.duration,
            "name": self.name,
        })


@dataclass(frozen=True)
class NightscoutLoopSettings:
    dosing_enabled: bool
    override_presets: Tuple[NightscoutOverride, ...] = ()
    schedule_override: Optional[NightscoutOverride] = None
    minimum_bg_guard: Optional[float] = None
    pre_meal_target_range: Optional[Tuple[float, float]] = None
    maximum_basal_rate_per_hour: Optional[float] = None
    maximum_bolus: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "dosingEnabled": self.dosing_enabled,
            "overridePresets": [preset.to_dict() for preset in self.override_presets],
            "scheduleOverride": self.schedule_override.to_dict() if self.schedule_override else None,
            "minimumBGGuard": self.minimum_bg_guard,
            "preMealTargetRange": list(self.pre_meal_target_range) if self.pre_meal_target_range else None,
            "maximumBasalRatePerHour": self.maximum_basal_rate_per_hour,
            "maximumBolus": self.maximum_bolus,
        })


@dataclass(frozen=True)
class Profile:
    timezone: str
    dia: float  # hours
    sensitivity: Tuple[ProfileScheduleItem, ...]
    carbratio: Tuple[ProfileScheduleItem, ...]
    basal: Tuple[ProfileScheduleItem, ...]
    target_low: Tuple[ProfileScheduleItem, ...]
    target_high: Tuple[ProfileScheduleItem, ...]
    units: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "dia": self.dia,
            "carbs_hr": "0",
            "delay": "0",
            "timezone": self.timezone,
            "target_low": [item.to_dict() for item in self.target_low],
            "target_high": [item.to_dict() for item in self.target_high],
            "sens": [item.to_dict() for item in self.sensitivity],
            "basal": [item.to_dict() for item in self.basal],
            "carbratio": [item.to_dict() for item in self.carbratio],
            "units": self.units,
        }


@dataclass(frozen=True)
class ProfileSet:
    start_date: datetime
    units: str
    entered_by: str
    default_profile: str
    store: Dict[str, Profile]
    settings: NightscoutLoopSettings

    def to_dict(self) -> Dict[str, Any]:
        return {
            "defaultProfile": self.default_profile,
            "startDate": iso_timestamp(self.start_date),
            "mills": str(int(self.start_date.timestamp() * 1000)),
            "units": self.units,
            "enteredBy": self.entered_by,
            "store": {name: profile.to_dict() for name, profile in self.store.items()},
            "loopSettings": self.settings.to_dict(),
        }


@dataclass(frozen=True)
class GlucoseEntry:
    glucose_mgdl: int
    date: datetime
    device: str
    direction: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _drop_none({
            "type": "sgv",
            "sgv": self.glucose_mgdl,
            "date": int(self.date.timestamp() * 1000),
            "dateString": iso_timestamp(self.date),
            "direction": self.direction,
            "device": self.device,
        })
