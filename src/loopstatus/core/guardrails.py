from __future__ import annotations

from typing import List, Optional

import numpy as np

from loopstatus.core.units import GlucoseUnit


def _integer_steps(low: int, high: int) -> List[float]:
    return [float(value) for value in np.arange(low, high + 1)]


def _tenth_steps(low: float, high: float) -> List[float]:
    # work in integer tenths so float drift never adds or drops a step
    tenths = np.arange(int(round(low * 10)), int(round(high * 10)) + 1)
    return [round(float(value) / 10.0, 1) for value in tenths]


def allowed_sensitivity_values(unit: Optional[GlucoseUnit]) -> List[float]:
    """Values offered when editing insulin sensitivity. Empty for unknown units."""
    if unit is GlucoseUnit.MG_DL:
        return _integer_steps(10, 500)
    if unit is GlucoseUnit.MMOL_L:
        return _tenth_steps(6.0, 27.0)
    return []


def allowed_correction_range_values(unit: Optional[GlucoseUnit]) -> List[float]:
    """Values offered for correction range bounds. Empty for unknown units."""
    if unit is GlucoseUnit.MG_DL:
        return _integer_steps(60, 180)
    if unit is GlucoseUnit.MMOL_L:
        return _tenth_steps(3.3, 10.0)
    return []
