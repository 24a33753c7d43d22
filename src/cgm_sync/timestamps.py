"""Instant parsing and formatting shared by the checkpoint and the transformer."""

from __future__ import annotations

from datetime import datetime, timedelta

from dateutil import parser, tz

_EPOCH = datetime(1970, 1, 1, tzinfo=tz.UTC)


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(tz=tz.UTC)


def parse_instant(value: object) -> datetime:
    """Parse an ISO-8601 string or datetime into an aware UTC datetime.

    Naive values are assumed to be UTC.

    Raises:
        ValueError: If the value is empty or not a timestamp.
    """
    if isinstance(value, datetime):
        dt = value
    elif isinstance(value, str) and value.strip():
        dt = parser.isoparse(value.strip())
    else:
        raise ValueError(f"Not a timestamp: {value!r}")
    if dt.tzinfo is None:
        return dt.replace(tzinfo=tz.UTC)
    return dt.astimezone(tz.UTC)


def from_epoch_seconds(epoch: object) -> datetime:
    """Convert epoch seconds (int, float or numeric string) to aware UTC."""
    if epoch is None or isinstance(epoch, bool):
        raise ValueError(f"Not an epoch value: {epoch!r}")
    try:
        return datetime.fromtimestamp(float(epoch), tz=tz.UTC)
    except (OverflowError, OSError) as exc:
        raise ValueError(f"Epoch out of range: {epoch!r}") from exc


def format_instant(dt: datetime) -> str:
    """Format as ``YYYY-MM-DDTHH:MM:SS.mmmZ`` (millisecond precision, UTC)."""
    utc = parse_instant(dt)
    return utc.strftime("%Y-%m-%dT%H:%M:%S.") + f"{utc.microsecond // 1000:03d}Z"


def epoch_millis(dt: datetime) -> int:
    """Milliseconds since the epoch for an aware datetime."""
    return (parse_instant(dt) - _EPOCH) // timedelta(milliseconds=1)
