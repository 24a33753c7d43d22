"""Derivation of the fetch window for a cycle."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, time, timedelta
from enum import Enum
from typing import cast

from dateutil import tz

from cgm_sync.model import Checkpoint, FetchMode, FetchWindow


class FullWindowPolicy(str, Enum):
    """How a FULL fetch chooses its window."""

    ROLLING = "rolling"  # [now - lookback, now]
    CALENDAR_DAY = "calendar_day"  # the UTC day containing now


@dataclass(frozen=True)
class WindowPlanner:
    full_policy: FullWindowPolicy = FullWindowPolicy.ROLLING

    def plan(
        self,
        now: datetime,
        checkpoint: Checkpoint | None,
        lookback_hours: float,
        force_full: bool = False,
    ) -> FetchWindow:
        """Return the window to fetch and whether it is FULL or INCREMENTAL.

        Args:
            now:            Current aware time.
            checkpoint:     Last persisted checkpoint, None if there is none.
            lookback_hours: Look-back used for rolling FULL windows.
            force_full:     Ignore the checkpoint.

        Raises:
            ValueError: If ``lookback_hours`` is not positive.
        """
        if lookback_hours <= 0:
            raise ValueError(f"lookback_hours must be positive, got {lookback_hours}")

        if force_full or checkpoint is None or not checkpoint.is_incremental:
            return self._full_window(now, lookback_hours)

        start = cast(datetime, checkpoint.last_reading_time)
        if start > now:
            # Clock skew: never fetch from the future.
            return FetchWindow(start=now, end=now, mode=FetchMode.INCREMENTAL)
        return FetchWindow(start=start, end=now, mode=FetchMode.INCREMENTAL)

    def _full_window(self, now: datetime, lookback_hours: float) -> FetchWindow:
        if self.full_policy is FullWindowPolicy.CALENDAR_DAY:
            today = now.astimezone(tz.UTC).date()
            day_start = datetime.combine(today, time.min, tzinfo=tz.UTC)
            day_end = datetime.combine(today, time.max, tzinfo=tz.UTC)
            return FetchWindow(start=day_start, end=day_end, mode=FetchMode.FULL)
        return FetchWindow(
            start=now - timedelta(hours=lookback_hours),
            end=now,
            mode=FetchMode.FULL,
        )
