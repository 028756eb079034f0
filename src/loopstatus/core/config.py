from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from typing import Optional

from loopstatus.core.settings import LoopSettings


@dataclass
class SyncConfig:
    """
    Central configuration for status aggregation, uploads and settings storage.
    """
    # Reported identity
    device_name: str = "loopstatus"
    app_name: str = "Loop"
    app_version: str = "0.1.0"
    entered_by: str = "Loop"

    # Upload policy
    device_status_throttle_minutes: float = 5.0
    reservoir_recency_minutes: float = LoopSettings.RECENCY_INTERVAL.total_seconds() / 60.0

    # Nightscout site
    nightscout_url: Optional[str] = None
    nightscout_api_secret: Optional[str] = None
    nightscout_token: Optional[str] = None
    upload_timeout_seconds: float = 10.0

    # Persisted settings (JSON raw form)
    settings_path: Optional[str] = None

    @property
    def device_status_throttle(self) -> timedelta:
        return timedelta(minutes=self.device_status_throttle_minutes)

    @property
    def reservoir_recency(self) -> timedelta:
        return timedelta(minutes=self.reservoir_recency_minutes)

    @property
    def device_identifier(self) -> str:
        return f"loop://{self.device_name}"
