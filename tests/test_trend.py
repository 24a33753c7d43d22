from __future__ import annotations

import pytest

from cgm_sync.model import Direction
from cgm_sync.trend import TrendMapper

_PAIRS = [
    ("RISING_QUICKLY", "1", Direction.DOUBLE_UP),
    ("RISING", "2", Direction.SINGLE_UP),
    ("RISING_SLIGHTLY", "3", Direction.FORTY_FIVE_UP),
    ("STEADY", "4", Direction.FLAT),
    ("FALLING_SLIGHTLY", "5", Direction.FORTY_FIVE_DOWN),
    ("FALLING", "6", Direction.SINGLE_DOWN),
    ("FALLING_QUICKLY", "7", Direction.DOUBLE_DOWN),
    ("NOT_COMPUTABLE", "9", Direction.NOT_COMPUTABLE),
    ("NONE", "0", Direction.NONE),
]


@pytest.mark.parametrize(("text", "numeric", "expected"), _PAIRS)
def test_text_and_numeric_codes_agree(
    text: str, numeric: str, expected: Direction
) -> None:
    mapper = TrendMapper()
    assert mapper.direction(text) == expected
    assert mapper.direction(numeric) == expected
    assert mapper.direction(int(numeric)) == expected


@pytest.mark.parametrize("code", [None, "", "SIDEWAYS", "8", 42, 3.5, True])
def test_unknown_codes_map_to_none(code: object) -> None:
    assert TrendMapper().direction(code) is Direction.NONE


def test_codes_are_case_and_whitespace_insensitive() -> None:
    mapper = TrendMapper()
    assert mapper.direction(" steady ") is Direction.FLAT
    assert mapper.direction(7.0) is Direction.DOUBLE_DOWN


def test_rate_out_of_range() -> None:
    assert TrendMapper().direction("RATE_OUT_OF_RANGE") is Direction.RATE_OUT_OF_RANGE
    assert Direction.RATE_OUT_OF_RANGE.value == "RateOutOfRange"
