from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from loopstatus.core.settings import LoopSettings


class SyncConfigModel(BaseModel):
    model_config = ConfigDict(extra="forbid")

    device_name: str = Field(default="loopstatus", min_length=1)
    app_name: str = Field(default="Loop", min_length=1)
    app_version: str = Field(default="0.1.0", min_length=1)
    entered_by: str = Field(default="Loop", min_length=1)

    device_status_throttle_minutes: float = Field(default=5.0, ge=0.0, le=60.0)
    reservoir_recency_minutes: float = Field(
        default=LoopSettings.RECENCY_INTERVAL.total_seconds() / 60.0, gt=0.0, le=120.0
    )

    nightscout_url: Optional[str] = None
    nightscout_api_secret: Optional[str] = None
    nightscout_token: Optional[str] = None
    upload_timeout_seconds: float = Field(default=10.0, gt=0.0, le=120.0)

    settings_path: Optional[str] = None

    @field_validator("nightscout_url", mode="before")
    @classmethod
    def _normalize_url(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return None
        value = str(value).strip()
        if not value:
            return None
        if not value.startswith(("http://", "https://")):
            raise ValueError("nightscout_url must start with http:// or https://")
        return value.rstrip("/")
