"""Normalization of merged raw points into downstream ``sgv`` records."""

from __future__ import annotations

import logging
import math
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any

from dateutil import tz

from cgm_sync.merge import point_instant, synthetic_id
from cgm_sync.model import OPTIONAL_FIELDS, NormalizedRecord, RawPoint
from cgm_sync.timestamps import epoch_millis, format_instant
from cgm_sync.trend import TrendMapper
from cgm_sync.units import UnitConfig, UnitConverter

logger = logging.getLogger("cgm_sync.transform")

# Plausible sensor range, in mmol/L, exclusive on both ends.
MIN_NATIVE_MMOL = 0.0
MAX_NATIVE_MMOL = 30.0


@dataclass(frozen=True)
class TransformConfig:
    """Settings for record normalization.

    Attributes:
        timestamp_correction: Subtracted from every upstream instant.  The
            observed portal labels local (UTC+2) times as UTC; other
            deployments may need a different value, or zero.
        display_timezone:     IANA zone used for ``localTime``.
        display_format:       strftime pattern for ``localTime``.
        device_label:         Device name when the point carries none.
        source:               Prefix for synthetic record identifiers.
    """

    timestamp_correction: timedelta = timedelta(hours=2)
    display_timezone: str = "Europe/Helsinki"
    display_format: str = "%d.%m.%Y %H:%M:%S"
    device_label: str = "glooko-cgm"
    source: str = "glooko"


@dataclass
class TransformOutcome:
    records: list[NormalizedRecord] = field(default_factory=list)
    dropped: int = 0


class RecordTransformer:
    """Turn raw points into validated, newest-first normalized records."""

    def __init__(
        self,
        config: TransformConfig | None = None,
        trend_mapper: TrendMapper | None = None,
    ) -> None:
        self._config = config or TransformConfig()
        self._trends = trend_mapper or TrendMapper()
        self._display_tz = tz.gettz(self._config.display_timezone) or tz.UTC

    def transform(
        self, points: Iterable[RawPoint], unit_config: UnitConfig | None = None
    ) -> TransformOutcome:
        """Normalize points, dropping corrupt or out-of-range values.

        Args:
            points:      Raw points, usually the merger's output.
            unit_config: Native/target units; mmol/L to mg/dL by default.

        Returns:
            TransformOutcome with records sorted newest first and the number
            of points dropped by validation.
        """
        converter = UnitConverter(unit_config)
        outcome = TransformOutcome()
        for point in points:
            record = self._normalize(point, converter)
            if record is None:
                outcome.dropped += 1
            else:
                outcome.records.append(record)

        outcome.records.sort(key=lambda r: r.epoch_millis, reverse=True)
        if outcome.dropped:
            logger.info(
                "Transformed %d records, dropped %d invalid",
                len(outcome.records),
                outcome.dropped,
            )
        else:
            logger.debug("Transformed %d records", len(outcome.records))
        return outcome

    def _normalize(
        self, point: RawPoint, converter: UnitConverter
    ) -> NormalizedRecord | None:
        native = _as_float(point.value_native)
        if native is None or not _in_range(converter.native_as_mmol(native)):
            logger.debug("Dropping out-of-range value %r", point.value_native)
            return None
        try:
            corrected = point_instant(point) - self._config.timestamp_correction
            millis = epoch_millis(corrected)
            iso = format_instant(corrected)
            local = self._local_time(corrected)
        except (ValueError, OverflowError):
            logger.debug("Dropping point without a usable timestamp: %r", point)
            return None

        return NormalizedRecord(
            value_target_unit=converter.to_target(native),
            value_native_unit=native,
            epoch_millis=millis,
            iso_timestamp=iso,
            local_display_time=local,
            direction=self._trends.direction(point.trend_code),
            device_label=point.device_name or self._config.device_label,
            source_id=point.record_id or synthetic_id(self._config.source, point),
            opt=_optional_fields(point),
        )

    def _local_time(self, instant: datetime) -> str:
        return instant.astimezone(self._display_tz).strftime(
            self._config.display_format
        )


def _as_float(value: object) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _in_range(mmol: float) -> bool:
    return MIN_NATIVE_MMOL < mmol < MAX_NATIVE_MMOL


def _optional_fields(point: RawPoint) -> dict[str, Any]:
    return {
        key: getattr(point, attr)
        for attr, key in OPTIONAL_FIELDS
        if getattr(point, attr) is not None
    }
