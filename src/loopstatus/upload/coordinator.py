"""
Upload Coordinator
==================
Decides when status, settings and glucose documents go to the monitoring
service.

* Device status is uploaded after every completed loop cycle. Uploads that
  carry only uploader (phone) telemetry are limited to one per throttle
  interval. The last-upload timestamp moves on every attempt, successful or
  not, so an unreachable site never causes an upload storm.
* Settings (the therapy profile) are uploaded when preferences change, and
  retried after each loop status upload until one succeeds.

All bookkeeping is in memory and runs on the event loop that owns the
coordinator; a restart may cause one redundant upload.
"""
from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Iterable, Optional

from loopstatus.api.interfaces import GlucoseTrend, GlucoseValue, StatusUploader, TherapySettings, UploadError
from loopstatus.core.config import SyncConfig
from loopstatus.core.devices.models import TempBasal
from loopstatus.core.settings import LoopSettings
from loopstatus.core.units import GlucoseUnit
from loopstatus.status.aggregator import StatusAggregator
from loopstatus.status.models import (
    DeviceStatus,
    GlucoseEntry,
    LoopStatus,
    OverrideStatus,
    PumpStatus,
    StatusRecord,
    UploaderStatus,
)
from loopstatus.status.profile import build_profile_set, missing_profile_inputs
from loopstatus.upload.events import Event, EventBus, LoopCompleted, LoopDataUpdated, LoopUpdateContext
from loopstatus.utils.clock import DISTANT_PAST, utcnow

logger = logging.getLogger("loopstatus.upload")

TREND_DIRECTIONS = {
    GlucoseTrend.UP: "SingleUp",
    GlucoseTrend.UP_UP: "DoubleUp",
    GlucoseTrend.UP_UP_UP: "DoubleUp",
    GlucoseTrend.DOWN: "SingleDown",
    GlucoseTrend.DOWN_DOWN: "DoubleDown",
    GlucoseTrend.DOWN_DOWN_DOWN: "DoubleDown",
    GlucoseTrend.FLAT: "Flat",
}


class UploadCoordinator:
    def __init__(
        self,
        aggregator: StatusAggregator,
        settings_provider: Callable[[], Optional[LoopSettings]],
        therapy_provider: Callable[[], Optional[TherapySettings]],
        uploader: Optional[StatusUploader] = None,
        config: Optional[SyncConfig] = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.aggregator = aggregator
        self.settings_provider = settings_provider
        self.therapy_provider = therapy_provider
        self.uploader = uploader
        self.config = config or SyncConfig()
        self.clock = clock

        self.last_device_status_upload: Optional[datetime] = None
        self.last_settings_upload: datetime = DISTANT_PAST
        self.last_settings_update: datetime = DISTANT_PAST

    @property
    def last_enacted_temp_basal(self) -> Optional[TempBasal]:
        return self.aggregator.last_enacted_temp_basal

    @property
    def settings_upload_pending(self) -> bool:
        return self.last_settings_update > self.last_settings_upload

    def attach(self, bus: EventBus) -> None:
        bus.subscribe(self.handle_event)

    # ------------------------------------------------------------------
    # Event handlers
    # ------------------------------------------------------------------

    async def handle_event(self, event: Event) -> None:
        if isinstance(event, LoopCompleted):
            await self.handle_loop_completed(event)
        elif isinstance(event, LoopDataUpdated):
            await self.handle_loop_data_updated(event)

    async def handle_loop_data_updated(self, event: LoopDataUpdated) -> None:
        if event.context is not LoopUpdateContext.PREFERENCES:
            return
        self.last_settings_update = self.clock()
        await self.upload_settings()

    async def handle_loop_completed(self, event: Optional[LoopCompleted] = None) -> None:
        if self.uploader is None:
            return
        record = await self.aggregator.build(self.clock())
        await self.upload_loop_status(record)
        if self.settings_upload_pending:
            await self.upload_settings()

    # ------------------------------------------------------------------
    # Device status
    # ------------------------------------------------------------------

    async def upload_loop_status(self, record: StatusRecord) -> bool:
        logger.info("Uploading loop status")
        return await self.upload_device_status(
            pump_status=record.pump_status,
            loop_status=record.loop_status(self.config.app_name, self.config.app_version),
            uploader_status=record.uploader_status,
            override_status=record.override_status,
        )

    async def upload_pump_status(self, pump_status: Optional[PumpStatus], device_name: Optional[str] = None) -> bool:
        return await self.upload_device_status(pump_status=pump_status, device_name=device_name)

    async def upload_uploader_status(self) -> bool:
        return await self.upload_device_status(uploader_status=self.aggregator.uploader_status(self.clock()))

    async def upload_device_status(
        self,
        pump_status: Optional[PumpStatus] = None,
        loop_status: Optional[LoopStatus] = None,
        uploader_status: Optional[UploaderStatus] = None,
        override_status: Optional[OverrideStatus] = None,
        device_name: Optional[str] = None,
    ) -> bool:
        """
        Send one devicestatus document. Returns False when nothing was sent
        (no uploader, or throttled uploader-only telemetry).
        """
        if self.uploader is None:
            return False

        now = self.clock()
        if pump_status is None and loop_status is None and uploader_status is not None:
            last = self.last_device_status_upload
            if last is not None and now - last < self.config.device_status_throttle:
                logger.debug("Skipping uploader status, last upload at %s", last.isoformat())
                return False

        device_status = DeviceStatus(
            device=f"loop://{device_name}" if device_name else self.config.device_identifier,
            timestamp=now,
            pump_status=pump_status,
            uploader_status=uploader_status,
            loop_status=loop_status,
            override_status=override_status,
        )

        self.last_device_status_upload = now
        try:
            await self.uploader.upload_device_status(device_status.to_dict())
        except UploadError as exc:
            logger.error("Device status upload failed: %s", exc)
        return True

    # ------------------------------------------------------------------
    # Settings / profile
    # ------------------------------------------------------------------

    async def upload_settings(self) -> bool:
        if self.uploader is None:
            return False
        settings = self.settings_provider()
        therapy = self.therapy_provider()
        missing = missing_profile_inputs(settings, therapy)
        if missing:
            logger.info("Not uploading settings due to incomplete configuration: %s", ", ".join(missing))
            return False

        profile_set = build_profile_set(settings, therapy, self.clock(), entered_by=self.config.entered_by)
        logger.info("Uploading profile")
        try:
            await self.uploader.upload_profile(profile_set.to_dict())
        except UploadError as exc:
            logger.error("Settings upload failed: %s", exc)
            return False
        self.last_settings_upload = self.clock()
        return True

    # ------------------------------------------------------------------
    # Glucose
    # ------------------------------------------------------------------

    async def upload_glucose(self, values: Iterable[GlucoseValue], trend: Optional[GlucoseTrend] = None) -> bool:
        if self.uploader is None:
            return False
        direction = TREND_DIRECTIONS.get(trend) if trend is not None else None
        entries = [
            GlucoseEntry(
                glucose_mgdl=int(value.value_in(GlucoseUnit.MG_DL)),
                date=value.start_date,
                device=self.config.device_identifier,
                direction=direction,
            ).to_dict()
            for value in values
        ]
        if not entries:
            return False
        try:
            await self.uploader.upload_entries(entries)
        except UploadError as exc:
            logger.error("Glucose upload failed: %s", exc)
            return False
        return True
