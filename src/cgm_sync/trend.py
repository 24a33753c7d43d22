"""Mapping of heterogeneous upstream trend codes to canonical directions."""

from __future__ import annotations

from cgm_sync.model import Direction

_TREND_MAP: dict[str, Direction] = {
    # Text codes
    "RISING_QUICKLY": Direction.DOUBLE_UP,
    "RISING": Direction.SINGLE_UP,
    "RISING_SLIGHTLY": Direction.FORTY_FIVE_UP,
    "STEADY": Direction.FLAT,
    "FALLING_SLIGHTLY": Direction.FORTY_FIVE_DOWN,
    "FALLING": Direction.SINGLE_DOWN,
    "FALLING_QUICKLY": Direction.DOUBLE_DOWN,
    "NONE": Direction.NONE,
    "NOT_COMPUTABLE": Direction.NOT_COMPUTABLE,
    "RATE_OUT_OF_RANGE": Direction.RATE_OUT_OF_RANGE,
    # Dexcom-style numeric codes
    "0": Direction.NONE,
    "1": Direction.DOUBLE_UP,
    "2": Direction.SINGLE_UP,
    "3": Direction.FORTY_FIVE_UP,
    "4": Direction.FLAT,
    "5": Direction.FORTY_FIVE_DOWN,
    "6": Direction.SINGLE_DOWN,
    "7": Direction.DOUBLE_DOWN,
    "9": Direction.NOT_COMPUTABLE,
}


def _code_key(code: object) -> str | None:
    if code is None or isinstance(code, bool):
        return None
    if isinstance(code, float):
        if not code.is_integer():
            return None
        code = int(code)
    text = str(code).strip().upper()
    return text or None


class TrendMapper:
    """Resolve trend codes; anything unknown becomes ``Direction.NONE``."""

    def __init__(self, overrides: dict[str, Direction] | None = None) -> None:
        self._map = dict(_TREND_MAP)
        if overrides:
            self._map.update({k.upper(): v for k, v in overrides.items()})

    def direction(self, code: object) -> Direction:
        key = _code_key(code)
        if key is None:
            return Direction.NONE
        return self._map.get(key, Direction.NONE)
