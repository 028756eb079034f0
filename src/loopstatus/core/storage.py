from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Callable, Optional, Union

from loopstatus.core.config import SyncConfig
from loopstatus.core.settings import LoopSettings
from loopstatus.upload.events import EventBus, LoopDataUpdated, LoopUpdateContext
from loopstatus.utils.io import read_json, write_json

logger = logging.getLogger("loopstatus.storage")


class SettingsRepository:
    """Keeps the settings raw form in a JSON file."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path).expanduser()

    @classmethod
    def from_config(cls, config: SyncConfig) -> Optional["SettingsRepository"]:
        """Repository at ``config.settings_path``, or None when settings are not persisted."""
        if not config.settings_path:
            return None
        return cls(config.settings_path)

    def load(self) -> LoopSettings:
        """Read the stored settings, falling back to defaults when unusable."""
        if not self.path.is_file():
            logger.info("No stored settings at %s, using defaults", self.path)
            return LoopSettings()
        try:
            raw = read_json(self.path)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Could not read settings from %s: %s", self.path, exc)
            return LoopSettings()
        settings = LoopSettings.from_raw(raw)
        if settings is None:
            logger.warning("Stored settings at %s have an unsupported version, using defaults", self.path)
            return LoopSettings()
        return settings

    def save(self, settings: LoopSettings) -> None:
        write_json(self.path, settings.to_raw())


class SettingsManager:
    """
    Owns the live ``LoopSettings``.

    Every change is made on a copy, persisted, and only then swapped in, so
    readers never see a half-applied update. Each persisted change publishes
    ``LoopDataUpdated(PREFERENCES)``.
    """

    def __init__(
        self,
        repository: Optional[SettingsRepository] = None,
        bus: Optional[EventBus] = None,
        settings: Optional[LoopSettings] = None,
    ) -> None:
        self.repository = repository
        self.bus = bus
        if settings is None:
            settings = repository.load() if repository is not None else LoopSettings()
        self._settings = settings

    @property
    def settings(self) -> LoopSettings:
        return self._settings

    def update(self, mutate: Callable[[LoopSettings], None]) -> LoopSettings:
        draft = self._settings.copy()
        mutate(draft)
        if self.repository is not None:
            self.repository.save(draft)
        self._settings = draft
        if self.bus is not None:
            self.bus.publish(LoopDataUpdated(LoopUpdateContext.PREFERENCES))
        return draft
