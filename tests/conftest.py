"""Shared fakes for the sync core tests."""

from __future__ import annotations

from collections.abc import Callable
from datetime import datetime, timedelta

import pytest
from dateutil import tz

from cgm_sync.model import Band, FetchWindow, RawPoint, Session
from cgm_sync.sources.base import Authenticator, RawSeriesFetcher

NOW = datetime(2026, 10, 19, 12, 0, tzinfo=tz.UTC)


def make_point(
    when: datetime,
    value: float | None,
    band: Band = Band.NORMAL,
    **kwargs: object,
) -> RawPoint:
    """Raw graph-style point at ``when`` with label and epoch in sync."""
    return RawPoint(
        band=band,
        epoch_seconds=int(when.timestamp()),
        value_native=value,
        timestamp_label=when.strftime("%Y-%m-%dT%H:%M:%S.000Z"),
        **kwargs,  # type: ignore[arg-type]
    )


class FakeAuthenticator(Authenticator):
    def __init__(self, error: Exception | None = None) -> None:
        self.calls: list[bool] = []
        self._error = error

    def authenticate(self, force_new: bool = False) -> Session:
        self.calls.append(force_new)
        if self._error is not None:
            raise self._error
        return Session(
            identity="patient-1",
            credential_header=f"session=s{len(self.calls)}",
            expires_at=NOW + timedelta(hours=23),
        )


class FakeFetcher(RawSeriesFetcher):
    """Returns (or raises) one scripted response per call."""

    def __init__(self, *responses: dict[Band, list[RawPoint]] | Exception) -> None:
        self._responses = list(responses)
        self.windows: list[FetchWindow] = []
        self.sessions: list[Session] = []

    def fetch(self, session: Session, window: FetchWindow) -> dict[Band, list[RawPoint]]:
        self.sessions.append(session)
        self.windows.append(window)
        response = self._responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


@pytest.fixture
def clock() -> Callable[[], datetime]:
    return lambda: NOW
