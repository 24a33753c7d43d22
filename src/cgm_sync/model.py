"""Typed models for raw portal points, normalized entries and sync state."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from cgm_sync.timestamps import format_instant, utc_now


class Band(str, Enum):
    """Upstream glucose-range category a raw point was delivered in."""

    LOW = "LOW"
    NORMAL = "NORMAL"
    HIGH = "HIGH"


class FetchMode(str, Enum):
    FULL = "FULL"
    INCREMENTAL = "INCREMENTAL"


class Direction(str, Enum):
    """Trend arrows understood by the downstream monitoring tool."""

    DOUBLE_UP = "DoubleUp"
    SINGLE_UP = "SingleUp"
    FORTY_FIVE_UP = "FortyFiveUp"
    FLAT = "Flat"
    FORTY_FIVE_DOWN = "FortyFiveDown"
    SINGLE_DOWN = "SingleDown"
    DOUBLE_DOWN = "DoubleDown"
    NONE = "NONE"
    NOT_COMPUTABLE = "NOT COMPUTABLE"
    RATE_OUT_OF_RANGE = "RateOutOfRange"


#: Instrument fields copied onto the output entry when the source has them.
OPTIONAL_FIELDS: tuple[tuple[str, str], ...] = (
    ("transmitter_id", "transmitterId"),
    ("noise", "noise"),
    ("filtered", "filtered"),
    ("unfiltered", "unfiltered"),
    ("rssi", "rssi"),
)


@dataclass(frozen=True)
class RawPoint:
    """One reading exactly as the portal delivered it.

    Attributes:
        band:            Range category the point came from.
        epoch_seconds:   Upstream epoch timestamp (seconds).
        value_native:    Glucose in the portal's native unit (mmol/L).
        timestamp_label: Upstream ISO-8601 label for the same instant.
        meal_tag:        Free-text meal annotation, may be empty.
        calculated:      True when the portal interpolated the value.
        trend_code:      Textual or numeric trend code, None when absent.
        record_id:       Native identifier, or the synthetic one assigned on merge.
        device_name:     Device label reported upstream, if any.
    """

    band: Band
    epoch_seconds: float | None
    value_native: float | None
    timestamp_label: str = ""
    meal_tag: str = ""
    calculated: bool = False
    trend_code: str | int | None = None
    record_id: str | None = None
    device_name: str | None = None
    transmitter_id: str | None = None
    noise: int | None = None
    filtered: float | None = None
    unfiltered: float | None = None
    rssi: int | None = None


@dataclass(frozen=True)
class NormalizedRecord:
    """One sensor glucose value in the downstream record format."""

    value_target_unit: int | float
    value_native_unit: float
    epoch_millis: int
    iso_timestamp: str
    local_display_time: str
    direction: Direction
    device_label: str
    source_id: str
    opt: dict[str, Any] = field(default_factory=dict)
    kind: str = "sgv"

    def to_entry(self) -> dict[str, Any]:
        """Render the JSON shape the monitoring tool ingests."""
        entry: dict[str, Any] = {
            "type": self.kind,
            "sgv": self.value_target_unit,
            "sgv_native": self.value_native_unit,
            "date": self.epoch_millis,
            "dateString": self.iso_timestamp,
            "localTime": self.local_display_time,
            "direction": self.direction.value,
            "device": self.device_label,
            "sourceId": self.source_id,
        }
        entry.update(self.opt)
        return entry


@dataclass(frozen=True)
class Checkpoint:
    """Marker of the newest processed reading, persisted between cycles."""

    last_record_id: str | None = None
    last_reading_time: datetime | None = None
    identity: str | None = None
    saved_at: datetime = field(default_factory=utc_now)

    @property
    def is_incremental(self) -> bool:
        return bool(self.last_record_id) and self.last_reading_time is not None

    def to_json(self) -> dict[str, Any]:
        return {
            "lastRecordId": self.last_record_id,
            "lastReadingTime": (
                format_instant(self.last_reading_time)
                if self.last_reading_time
                else None
            ),
            "identity": self.identity,
            "savedAt": format_instant(self.saved_at),
        }


@dataclass(frozen=True)
class FetchWindow:
    start: datetime
    end: datetime
    mode: FetchMode

    @property
    def hours(self) -> float:
        return (self.end - self.start) / timedelta(hours=1)

    @property
    def expected_points(self) -> int:
        """Upper bound on readings at one per 5 minutes, capped at 10 days."""
        return min(2880, max(0, math.ceil(self.hours * 12)))


@dataclass(frozen=True)
class Session:
    """Authenticated portal session handle."""

    identity: str
    credential_header: str
    expires_at: datetime | None = None

    def is_valid(self, now: datetime) -> bool:
        return self.expires_at is None or self.expires_at > now


@dataclass(frozen=True)
class SyncOptions:
    lookback_hours: float = 24
    force_full: bool = False


@dataclass
class SyncResult:
    """Outcome of one sync cycle.

    ``records`` is newest first and always empty when ``success`` is False.
    ``session`` is the session to hand to the next cycle.
    """

    success: bool
    records: list[NormalizedRecord] = field(default_factory=list)
    error: str | None = None
    duration_millis: int = 0
    mode: FetchMode | None = None
    window: FetchWindow | None = None
    session: Session | None = None
    checkpoint: Checkpoint | None = None
    dropped: int = 0
    warnings: list[str] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.records)

    @property
    def latest(self) -> NormalizedRecord | None:
        return self.records[0] if self.records else None

    @property
    def oldest(self) -> NormalizedRecord | None:
        return self.records[-1] if self.records else None
