from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Union

import yaml
from pydantic import ValidationError

from loopstatus.core.config import SyncConfig
from loopstatus.validation.schemas import SyncConfigModel


def validate_sync_config_dict(data: Dict[str, Any]) -> SyncConfigModel:
    return SyncConfigModel.model_validate(data or {})


def load_sync_config(path: Union[str, Path]) -> SyncConfig:
    """Read a YAML configuration file into a ``SyncConfig``."""
    config_path = Path(path)
    data = yaml.safe_load(config_path.read_text())
    model = validate_sync_config_dict(data)
    return SyncConfig(**model.model_dump())


def format_validation_error(error: ValidationError) -> List[str]:
    lines: List[str] = []
    for entry in error.errors():
        loc = ".".join(str(item) for item in entry.get("loc", []))
        msg = entry.get("msg", "Invalid value")
        lines.append(f"{loc}: {msg}")
    return lines


__all__ = [
    "SyncConfigModel",
    "validate_sync_config_dict",
    "load_sync_config",
    "format_validation_error",
]
