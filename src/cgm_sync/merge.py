"""Combine the per-band raw series into one newest-first stream."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Mapping
from dataclasses import replace
from datetime import datetime

from dateutil import tz

from cgm_sync.model import Band, RawPoint
from cgm_sync.timestamps import from_epoch_seconds, parse_instant

logger = logging.getLogger("cgm_sync.merge")

#: Concatenation order, as the portal's graph API lists its series.
BAND_ORDER: tuple[Band, ...] = (Band.HIGH, Band.NORMAL, Band.LOW)

_UNDATED = datetime.min.replace(tzinfo=tz.UTC)


def format_number(value: float | int | None) -> str:
    """Render a number without a trailing ``.0`` (``5.0`` -> ``5``)."""
    if value is None:
        return "none"
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def synthetic_id(source: str, point: RawPoint) -> str:
    """Stable identifier for points the portal does not identify itself."""
    return f"{source}_{format_number(point.epoch_seconds)}_{format_number(point.value_native)}"


def point_instant(point: RawPoint) -> datetime:
    """Upstream instant of a point: its label, else its epoch seconds.

    Raises:
        ValueError: If neither is usable.
    """
    if point.timestamp_label:
        try:
            return parse_instant(point.timestamp_label)
        except ValueError:
            pass
    return from_epoch_seconds(point.epoch_seconds)


def _sort_key(point: RawPoint) -> datetime:
    try:
        return point_instant(point)
    except ValueError:
        return _UNDATED


class SeriesMerger:
    """Concatenate bands, assign identifiers and order newest first.

    Bands are mutually exclusive upstream, so no deduplication happens here:
    a point present in two bands is kept twice.
    """

    def __init__(self, source: str = "glooko") -> None:
        self._source = source

    def merge(self, bands: Mapping[Band, Iterable[RawPoint]]) -> list[RawPoint]:
        points: list[RawPoint] = []
        counts: dict[str, int] = {}
        for band in BAND_ORDER:
            before = len(points)
            for point in bands.get(band, ()):
                if point.record_id is None:
                    point = replace(point, record_id=synthetic_id(self._source, point))
                points.append(point)
            counts[band.value] = len(points) - before

        # sorted() stays stable with reverse=True: ties keep input order.
        merged = sorted(points, key=_sort_key, reverse=True)
        logger.debug("Merged %d points %s", len(merged), counts)
        return merged
