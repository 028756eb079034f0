from __future__ import annotations

import hashlib
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import httpx

from loopstatus.api.interfaces import StatusUploader, UploadError
from loopstatus.core.config import SyncConfig

logger = logging.getLogger("loopstatus.nightscout")


@dataclass
class NightscoutConfig:
    url: str
    api_secret: Optional[str] = None
    token: Optional[str] = None
    timeout_seconds: float = 10.0

    @classmethod
    def from_sync_config(cls, config: SyncConfig) -> Optional["NightscoutConfig"]:
        if not config.nightscout_url:
            return None
        return cls(
            url=config.nightscout_url,
            api_secret=config.nightscout_api_secret,
            token=config.nightscout_token,
            timeout_seconds=config.upload_timeout_seconds,
        )


def _looks_like_jwt(token: str) -> bool:
    return len(token) > 20 and token.count(".") >= 2


def auth_headers(config: NightscoutConfig) -> Dict[str, str]:
    headers: Dict[str, str] = {}
    if config.token:
        if _looks_like_jwt(config.token):
            headers["Authorization"] = f"Bearer {config.token}"
        else:
            headers["API-SECRET"] = hashlib.sha1(config.token.encode("utf-8")).hexdigest()
    if config.api_secret:
        headers["API-SECRET"] = hashlib.sha1(config.api_secret.encode("utf-8")).hexdigest()
    return headers


class NightscoutUploader(StatusUploader):
    """Posts devicestatus, profile and entries documents to a Nightscout site."""

    def __init__(self, config: NightscoutConfig, client: Optional[httpx.AsyncClient] = None) -> None:
        self.config = config
        headers = auth_headers(config)
        headers["Accept"] = "application/json"
        self.client = client or httpx.AsyncClient(
            base_url=config.url.rstrip("/"),
            timeout=config.timeout_seconds,
            headers=headers,
        )
        if client is not None:
            self.client.headers.update(headers)

    async def _post(self, path: str, payload: Any) -> None:
        try:
            response = await self.client.post(path, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            logger.error("Nightscout rejected upload to %s (status %s)", path, status)
            raise UploadError(f"Nightscout returned status {status} for {path}", status_code=status) from exc
        except httpx.HTTPError as exc:
            raise UploadError(f"Nightscout unreachable for {path}: {exc}") from exc

    async def upload_device_status(self, device_status: Dict[str, Any]) -> None:
        await self._post("/api/v1/devicestatus", [device_status])

    async def upload_profile(self, profile_set: Dict[str, Any]) -> None:
        await self._post("/api/v1/profile", profile_set)

    async def upload_entries(self, entries: List[Dict[str, Any]]) -> None:
        if not entries:
            return
        await self._post("/api/v1/entries", entries)

    async def aclose(self) -> None:
        await self.client.aclose()
