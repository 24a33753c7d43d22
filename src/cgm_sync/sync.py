"""One end-to-end fetch cycle: auth, plan, fetch, merge, transform, persist.

Usage::

    orchestrator = SyncOrchestrator(authenticator, fetcher, CheckpointStore(path))
    result = orchestrator.run_cycle(SyncOptions(lookback_hours=24))
    next_result = orchestrator.run_cycle(SyncOptions(), session=result.session)

Only one cycle may run at a time against a given checkpoint file; callers
serialize invocations.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from cgm_sync.checkpoint import CheckpointStore
from cgm_sync.errors import AuthError, AuthExpiredError, CheckpointWriteError
from cgm_sync.merge import SeriesMerger, point_instant
from cgm_sync.model import (
    Checkpoint,
    FetchWindow,
    NormalizedRecord,
    RawPoint,
    Session,
    SyncOptions,
    SyncResult,
)
from cgm_sync.sources.base import Authenticator, RawSeriesFetcher
from cgm_sync.timestamps import utc_now
from cgm_sync.transform import RecordTransformer
from cgm_sync.units import UnitConfig
from cgm_sync.window import WindowPlanner

logger = logging.getLogger("cgm_sync.sync")


def session_needs_refresh(
    session: Session | None, now: datetime, force: bool = False
) -> bool:
    """Return True when a new session must be obtained before fetching."""
    return force or session is None or not session.is_valid(now)


@dataclass
class _Attempt:
    session: Session
    window: FetchWindow
    merged: list[RawPoint]
    records: list[NormalizedRecord]
    dropped: int
    now: datetime


class SyncOrchestrator:
    """Run sync cycles against one checkpoint file.

    Retries cover the whole cycle (re-authenticate, re-plan, re-fetch), up to
    ``max_retries`` attempts, sleeping ``retry_base_delay * attempt`` seconds
    between them.  ``AuthError`` is fatal; ``AuthExpiredError`` forces a new
    login on the next attempt.
    """

    def __init__(
        self,
        authenticator: Authenticator,
        fetcher: RawSeriesFetcher,
        store: CheckpointStore,
        planner: WindowPlanner | None = None,
        merger: SeriesMerger | None = None,
        transformer: RecordTransformer | None = None,
        unit_config: UnitConfig | None = None,
        max_retries: int = 3,
        retry_base_delay: float = 5.0,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self._auth = authenticator
        self._fetcher = fetcher
        self._store = store
        self._planner = planner or WindowPlanner()
        self._merger = merger or SeriesMerger()
        self._transformer = transformer or RecordTransformer()
        self._unit_config = unit_config
        self._max_retries = max_retries
        self._retry_base_delay = retry_base_delay
        self._clock = clock
        self._sleep = sleep
        self._last_session: Session | None = None

    def load_checkpoint(self) -> Checkpoint | None:
        return self._store.load()

    def save_checkpoint(self, checkpoint: Checkpoint) -> Checkpoint:
        return self._store.save(checkpoint)

    def run_cycle(
        self, options: SyncOptions | None = None, session: Session | None = None
    ) -> SyncResult:
        """Run one cycle.  Never raises; failures come back in the result.

        Args:
            options: Look-back and force-full settings.
            session: Session from a previous cycle, reused while still valid.

        Returns:
            SyncResult with newest-first records on success, or an error
            message and no records on failure.
        """
        options = options or SyncOptions()
        started = time.monotonic()
        checkpoint = self._store.load()

        try:
            attempt = self._run_with_retries(options, checkpoint, session)
        except Exception as exc:
            logger.error("Sync cycle failed: %s", exc)
            return SyncResult(
                success=False,
                error=str(exc) or exc.__class__.__name__,
                duration_millis=_elapsed_millis(started),
                session=None if isinstance(exc, AuthError) else self._last_session,
                checkpoint=checkpoint,
            )

        result = SyncResult(
            success=True,
            records=attempt.records,
            mode=attempt.window.mode,
            window=attempt.window,
            session=attempt.session,
            checkpoint=checkpoint,
            dropped=attempt.dropped,
        )
        if attempt.merged:
            self._advance_checkpoint(result, checkpoint, attempt)
        else:
            logger.info("No new readings available")

        result.duration_millis = _elapsed_millis(started)
        logger.info(
            "Sync %s: %d records in %d ms",
            attempt.window.mode.value,
            result.count,
            result.duration_millis,
        )
        return result

    def _run_with_retries(
        self,
        options: SyncOptions,
        checkpoint: Checkpoint | None,
        session: Session | None,
    ) -> _Attempt:
        self._last_session = session
        if options.lookback_hours <= 0:
            raise ValueError(
                f"lookback_hours must be positive, got {options.lookback_hours}"
            )
        force_new = False
        for attempt_no in range(1, self._max_retries + 1):
            try:
                now = self._clock()
                if session is None or session_needs_refresh(session, now, force_new):
                    session = self._auth.authenticate(force_new=force_new)
                    self._last_session = session
                force_new = False
                return self._attempt(options, checkpoint, session, now)
            except AuthExpiredError as exc:
                logger.warning(
                    "Session expired, re-authenticating (%d/%d): %s",
                    attempt_no,
                    self._max_retries,
                    exc,
                )
                session = None
                self._last_session = None
                force_new = True
                if attempt_no >= self._max_retries:
                    raise
            except AuthError:
                raise
            except Exception as exc:
                logger.warning(
                    "Fetch attempt %d/%d failed: %s",
                    attempt_no,
                    self._max_retries,
                    exc,
                )
                if attempt_no >= self._max_retries:
                    raise
            self._sleep(self._retry_base_delay * attempt_no)
        raise RuntimeError("unreachable")

    def _attempt(
        self,
        options: SyncOptions,
        checkpoint: Checkpoint | None,
        session: Session,
        now: datetime,
    ) -> _Attempt:
        window = self._planner.plan(
            now, checkpoint, options.lookback_hours, options.force_full
        )
        logger.info(
            "%s fetch %s -> %s (%.1f h)",
            window.mode.value,
            window.start.isoformat(),
            window.end.isoformat(),
            window.hours,
        )
        bands = self._fetcher.fetch(session, window)
        merged = self._merger.merge(bands)
        outcome = self._transformer.transform(merged, self._unit_config)
        return _Attempt(
            session=session,
            window=window,
            merged=merged,
            records=outcome.records,
            dropped=outcome.dropped,
            now=now,
        )

    def _advance_checkpoint(
        self,
        result: SyncResult,
        previous: Checkpoint | None,
        attempt: _Attempt,
    ) -> None:
        # Keyed on the upstream clock, not the corrected display time.
        found = _newest_not_after(attempt.merged, attempt.now)
        if found is None:
            logger.warning(
                "No reading at or before %s, checkpoint unchanged",
                attempt.now.isoformat(),
            )
            return
        newest, newest_time = found

        if (
            previous is not None
            and previous.last_reading_time is not None
            and newest_time < previous.last_reading_time
        ):
            logger.warning(
                "Newest reading %s is older than checkpoint %s, not saving",
                newest_time.isoformat(),
                previous.last_reading_time.isoformat(),
            )
            return

        checkpoint = Checkpoint(
            last_record_id=newest.record_id,
            last_reading_time=newest_time,
            identity=attempt.session.identity,
        )
        try:
            result.checkpoint = self._store.save(checkpoint)
        except CheckpointWriteError as exc:
            logger.warning("%s", exc)
            result.warnings.append(str(exc))


def _newest_not_after(
    merged: list[RawPoint], now: datetime
) -> tuple[RawPoint, datetime] | None:
    """First point of the newest-first stream dated at or before ``now``."""
    for point in merged:
        try:
            instant = point_instant(point)
        except ValueError:
            continue
        if instant <= now:
            return point, instant
        logger.warning(
            "Ignoring future reading %s for the checkpoint", instant.isoformat()
        )
    return None


def _elapsed_millis(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
