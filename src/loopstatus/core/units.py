from __future__ import annotations

from enum import Enum
from typing import Optional

# mg/dL per mmol/L for glucose
MGDL_PER_MMOLL = 18.01559


class GlucoseUnit(Enum):
    MG_DL = "mg/dL"
    MMOL_L = "mmol/L"

    @classmethod
    def from_string(cls, value: Optional[str]) -> Optional["GlucoseUnit"]:
        """Parse a unit string, returning None for anything unrecognised."""
        if not isinstance(value, str):
            return None
        normalized = value.strip().lower()
        for unit in cls:
            if unit.value.lower() == normalized:
                return unit
        return None

    def convert(self, value: float, to_unit: "GlucoseUnit") -> float:
        if self is to_unit:
            return value
        if self is GlucoseUnit.MMOL_L:
            return value * MGDL_PER_MMOLL
        return value / MGDL_PER_MMOLL

    @property
    def short_name(self) -> str:
        return self.value
