"""Glucose unit conversion between mmol/L and mg/dL."""

from __future__ import annotations

import math
from dataclasses import dataclass

MMOL_TO_MG_DL = 18.0143

MMOL_L = "mmol/L"
MG_DL = "mg/dL"


@dataclass(frozen=True)
class UnitConfig:
    """Native unit of the portal and target unit of the downstream tool."""

    native_unit: str = MMOL_L
    target_unit: str = MG_DL

    def __post_init__(self) -> None:
        for unit in (self.native_unit, self.target_unit):
            if unit not in (MMOL_L, MG_DL):
                raise ValueError(f"Unsupported glucose unit: {unit}")


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (no banker's rounding)."""
    return int(math.floor(value + 0.5))


class UnitConverter:
    """Convert glucose values between the native and the target unit."""

    def __init__(self, config: UnitConfig | None = None) -> None:
        self._config = config or UnitConfig()

    @property
    def config(self) -> UnitConfig:
        return self._config

    def to_target(self, native: float) -> int | float:
        """Convert a native value to the target unit.

        mg/dL targets are whole numbers; mmol/L targets keep one decimal.
        """
        if self._config.native_unit == self._config.target_unit:
            value = native
        elif self._config.native_unit == MMOL_L:
            value = native * MMOL_TO_MG_DL
        else:
            value = native / MMOL_TO_MG_DL
        if self._config.target_unit == MG_DL:
            return round_half_up(value)
        return round_half_up(value * 10) / 10

    def to_native(self, target: float) -> float:
        """Convert a target-unit value back to the native unit (2 decimals)."""
        if self._config.native_unit == self._config.target_unit:
            return float(target)
        if self._config.native_unit == MMOL_L:
            return round(target / MMOL_TO_MG_DL, 2)
        return round(target * MMOL_TO_MG_DL, 2)

    def native_as_mmol(self, native: float) -> float:
        """Express a native value in mmol/L, the unit validity bounds use."""
        if self._config.native_unit == MMOL_L:
            return native
        return native / MMOL_TO_MG_DL
