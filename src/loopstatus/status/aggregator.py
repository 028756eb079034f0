"""
Status Aggregator
=================
Builds one ``StatusRecord`` per dosing cycle from the dosing engine, the dose
store, the pump driver, the uploader device and the current settings.

Subsystem queries run concurrently; the record itself is assembled on the
calling task once every query has answered or failed. A failing subsystem
only blanks its own fields. The first failure of the cycle becomes the
record's ``failure_reason``.
"""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from loopstatus.api.interfaces import DoseStore, DosingEngine, LoopState, PumpManager
from loopstatus.core.config import SyncConfig
from loopstatus.core.devices.models import PumpManagerStatus, ReservoirValue, TempBasal, UploaderDevice
from loopstatus.core.settings import LoopSettings
from loopstatus.core.units import GlucoseUnit
from loopstatus.status.models import (
    COBStatus,
    IOBStatus,
    LoopEnacted,
    OverrideStatus,
    PredictedBG,
    PumpStatus,
    RecommendedTempBasal,
    StatusRecord,
    UploaderStatus,
)
from loopstatus.utils.clock import ensure_aware

logger = logging.getLogger("loopstatus.status")


class StatusAggregator:
    def __init__(
        self,
        dosing_engine: DosingEngine,
        dose_store: DoseStore,
        settings_provider: Callable[[], LoopSettings],
        pump_manager: Optional[PumpManager] = None,
        uploader_device: Optional[UploaderDevice] = None,
        config: Optional[SyncConfig] = None,
    ) -> None:
        self.dosing_engine = dosing_engine
        self.dose_store = dose_store
        self.settings_provider = settings_provider
        self.pump_manager = pump_manager
        self.uploader_device = uploader_device
        self.config = config or SyncConfig()
        # Temp basal most recently reported as enacted; reset on restart
        self.last_enacted_temp_basal: Optional[TempBasal] = None

    async def build(self, at: Optional[datetime] = None) -> StatusRecord:
        at = ensure_aware(at)
        loop_result, iob_result = await asyncio.gather(
            self.dosing_engine.get_loop_state(),
            self.dose_store.insulin_on_board(at),
            return_exceptions=True,
        )
        for result in (loop_result, iob_result):
            if isinstance(result, asyncio.CancelledError):
                raise result

        failure: Optional[BaseException] = None

        state: Optional[LoopState] = None
        if isinstance(loop_result, BaseException):
            logger.warning("Loop state unavailable: %s", loop_result)
            failure = loop_result
        else:
            state = loop_result
            if state.error is not None:
                failure = state.error

        iob: Optional[IOBStatus] = None
        if isinstance(iob_result, BaseException):
            logger.warning("Insulin on board unavailable: %s", iob_result)
            if failure is None:
                failure = iob_result
        else:
            iob = IOBStatus(timestamp=iob_result.start_date, iob=iob_result.value)

        pump_manager_status: Optional[PumpManagerStatus] = None
        reservoir: Optional[ReservoirValue] = None
        if self.pump_manager is not None:
            try:
                pump_manager_status = self.pump_manager.status
            except Exception as exc:
                logger.warning("Pump status unavailable: %s", exc)
                if failure is None:
                    failure = exc
        if pump_manager_status is not None:
            try:
                reservoir = self.dose_store.last_reservoir_value
            except Exception as exc:
                logger.warning("Reservoir reading unavailable: %s", exc)
                if failure is None:
                    failure = exc

        return StatusRecord(
            timestamp=at,
            insulin_on_board=iob,
            carbs_on_board=self._carbs_on_board(state),
            predicted=self._predicted(state),
            recommended_temp_basal=self._recommended_temp_basal(state),
            recommended_bolus=state.recommended_bolus if state is not None else None,
            enacted_temp_basal=self._enacted_temp_basal(pump_manager_status),
            failure_reason=str(failure) if failure is not None else None,
            pump_status=self._pump_status(pump_manager_status, reservoir, at),
            uploader_status=self.uploader_status(at),
            override_status=self.override_status(at),
        )

    # ------------------------------------------------------------------
    # Pieces
    # ------------------------------------------------------------------

    @staticmethod
    def _carbs_on_board(state: Optional[LoopState]) -> Optional[COBStatus]:
        if state is None or state.carbs_on_board is None:
            return None
        return COBStatus(cob=state.carbs_on_board.grams, timestamp=state.carbs_on_board.start_date)

    @staticmethod
    def _predicted(state: Optional[LoopState]) -> Optional[PredictedBG]:
        if state is None or not state.predicted_glucose:
            return None
        values = tuple(value.value_in(GlucoseUnit.MG_DL) for value in state.predicted_glucose)
        return PredictedBG(start_date=state.predicted_glucose[0].start_date, values=values)

    @staticmethod
    def _recommended_temp_basal(state: Optional[LoopState]) -> Optional[RecommendedTempBasal]:
        if state is None or state.recommended_temp_basal is None:
            return None
        recommendation = state.recommended_temp_basal
        return RecommendedTempBasal(
            timestamp=recommendation.date,
            rate=recommendation.units_per_hour,
            duration=recommendation.duration,
        )

    def _enacted_temp_basal(self, status: Optional[PumpManagerStatus]) -> Optional[LoopEnacted]:
        if status is None:
            return None
        temp_basal = status.basal_delivery_state.temp_basal
        if temp_basal is None:
            return None
        last = self.last_enacted_temp_basal
        if last is not None and last.start_date == temp_basal.start_date:
            return None
        self.last_enacted_temp_basal = temp_basal
        return LoopEnacted(
            rate=temp_basal.units_per_hour,
            duration=temp_basal.duration,
            timestamp=temp_basal.start_date,
            received=True,
        )

    def _pump_status(
        self,
        status: Optional[PumpManagerStatus],
        last_reservoir: Optional[ReservoirValue],
        at: datetime,
    ) -> Optional[PumpStatus]:
        if status is None:
            return None
        battery = None
        if status.battery_charge_remaining is not None:
            battery = int(round(status.battery_charge_remaining * 100))

        reservoir = None
        if last_reservoir is not None and ensure_aware(last_reservoir.start_date) > at - self.config.reservoir_recency:
            reservoir = last_reservoir.unit_volume

        return PumpStatus(
            clock=at,
            pump_id=status.device.local_identifier or "Unknown",
            manufacturer=status.device.manufacturer,
            model=status.device.model,
            battery_percent=battery,
            suspended=status.basal_delivery_state.is_suspended,
            bolusing=status.is_bolusing,
            reservoir=reservoir,
            seconds_from_gmt=status.time_zone,
        )

    def uploader_status(self, at: Optional[datetime] = None) -> Optional[UploaderStatus]:
        device = self.uploader_device
        if device is None:
            return None
        return UploaderStatus(name=device.name, timestamp=ensure_aware(at), battery=device.battery_percent)

    def override_status(self, at: Optional[datetime] = None) -> OverrideStatus:
        at = ensure_aware(at)
        settings = self.settings_provider()
        override = settings.schedule_override
        schedule = settings.effective_range_schedule(at)
        if override is None or not override.is_active(at) or schedule is None:
            return OverrideStatus(timestamp=at, active=False)

        current = schedule.value_at(at)
        remaining = override.remaining(at)
        return OverrideStatus(
            timestamp=at,
            active=True,
            name=override.context.display_name,
            current_correction_range=(current.min_value, current.max_value),
            duration=float(round(remaining)) if remaining is not None else None,
            multiplier=override.settings.insulin_needs_scale_factor,
        )
