"""Glooko portal collaborators: HTTP fetcher and pre-obtained session.

The fetcher tries the external CGM readings API first and falls back to the
internal graph API, which returns the readings split into three range series
(``cgmHigh``, ``cgmNormal``, ``cgmLow``).  Graph points look like::

    {"x": 1760868300, "y": 6.4, "timestamp": "2025-10-19T10:05:00.000Z",
     "value": 11529, "mealTag": "", "calculated": false}

where ``y`` is mmol/L and ``x`` epoch seconds.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta
from typing import Any

import httpx

from cgm_sync.errors import AuthError, AuthExpiredError, CgmSyncError, TransportError
from cgm_sync.model import Band, FetchWindow, RawPoint, Session
from cgm_sync.sources.base import Authenticator, RawSeriesFetcher
from cgm_sync.timestamps import format_instant, utc_now
from cgm_sync.units import UnitConverter

logger = logging.getLogger("cgm_sync.sources.glooko")

DEFAULT_WEB_URL = "https://eu.my.glooko.com"
DEFAULT_API_URL = "https://eu.api.glooko.com"
EXTERNAL_API_URL = "https://externalapi.glooko.com/api/v2/external/cgm/readings"

_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

_GRAPH_SERIES: tuple[tuple[str, Band], ...] = (
    ("cgmHigh", Band.HIGH),
    ("cgmNormal", Band.NORMAL),
    ("cgmLow", Band.LOW),
)

SESSION_TTL = timedelta(hours=23)


class StaticSessionAuthenticator(Authenticator):
    """Issue sessions from a patient id and cookie header obtained elsewhere.

    Logging in through the portal's web form is not done here; the cookie
    comes from a browser session and is renewed by the user when it lapses.
    """

    def __init__(
        self,
        identity: str | None,
        credential_header: str | None,
        ttl: timedelta = SESSION_TTL,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._identity = identity
        self._credential_header = credential_header
        self._ttl = ttl
        self._clock = clock
        self._session: Session | None = None

    def authenticate(self, force_new: bool = False) -> Session:
        now = self._clock()
        if not force_new and self._session is not None and self._session.is_valid(now):
            logger.debug("Using cached session")
            return self._session
        if not self._identity or not self._credential_header:
            raise AuthError("Patient id and session cookie are required", status=401)
        self._session = Session(
            identity=self._identity,
            credential_header=self._credential_header,
            expires_at=now + self._ttl,
        )
        logger.info("Session issued for patient %s", self._identity)
        return self._session


class GlookoFetcher(RawSeriesFetcher):
    """Fetch CGM readings with the external API, falling back to the graph API."""

    def __init__(
        self,
        api_url: str = DEFAULT_API_URL,
        web_url: str = DEFAULT_WEB_URL,
        external_api_url: str | None = EXTERNAL_API_URL,
        timeout: float = 30.0,
        http_client: httpx.Client | None = None,
    ) -> None:
        """Create the fetcher.

        Args:
            api_url:          Regional API base URL (graph API).
            web_url:          Regional web URL, sent as Referer/Origin.
            external_api_url: External readings endpoint; None skips it.
            timeout:          Per-request timeout in seconds.
            http_client:      Optional pre-configured httpx client (for testing).
        """
        self._api_url = api_url.rstrip("/")
        self._web_url = web_url.rstrip("/")
        self._external_api_url = external_api_url
        self._timeout = timeout
        self._http_client = http_client
        self._converter = UnitConverter()

    def fetch(self, session: Session, window: FetchWindow) -> dict[Band, list[RawPoint]]:
        params: list[tuple[str, str]] = [
            ("patient", session.identity),
            ("startDate", format_instant(window.start)),
            ("endDate", format_instant(window.end)),
        ]

        external_error: CgmSyncError | None = None
        if self._external_api_url:
            try:
                payload = self._get(
                    self._external_api_url, params, session, fetch_site="cross-site"
                )
                bands = self._bands_from_external(payload)
                logger.info("External API returned %d readings", _count(bands))
                return bands
            except CgmSyncError as exc:
                logger.info("External API failed, trying graph API: %s", exc)
                external_error = exc

        graph_params = params + [
            ("series[]", name) for name, _ in _GRAPH_SERIES
        ] + [
            ("locale", "en"),
            ("insulinTooltips", "true"),
            ("filterBgReadings", "true"),
            ("splitByDay", "false"),
        ]
        try:
            payload = self._get(
                f"{self._api_url}/api/v3/graph/data",
                graph_params,
                session,
                fetch_site="same-site",
            )
            bands = _bands_from_graph(payload)
        except CgmSyncError as exc:
            if external_error is None:
                raise
            message = f"External API: {external_error}, Graph API: {exc}"
            if isinstance(exc, AuthExpiredError) or isinstance(
                external_error, AuthExpiredError
            ):
                raise AuthExpiredError(message, status=401) from exc
            raise TransportError(message) from exc

        logger.info(
            "Graph API returned %s",
            ", ".join(f"{band.value}={len(points)}" for band, points in bands.items()),
        )
        return bands

    def _get(
        self,
        url: str,
        params: list[tuple[str, str]],
        session: Session,
        fetch_site: str,
    ) -> Any:
        headers = {
            "Accept": "application/json",
            "Cookie": session.credential_header,
            "User-Agent": _USER_AGENT,
            "Referer": f"{self._web_url}/",
            "Origin": self._web_url,
            "Sec-Fetch-Dest": "empty",
            "Sec-Fetch-Mode": "cors",
            "Sec-Fetch-Site": fetch_site,
        }
        logger.debug("GET %s", url)
        try:
            if self._http_client is not None:
                response = self._http_client.get(
                    url, params=params, headers=headers, timeout=self._timeout
                )
            else:
                with httpx.Client() as client:
                    response = client.get(
                        url, params=params, headers=headers, timeout=self._timeout
                    )
            response.raise_for_status()
            return response.json()
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            if status in (401, 403):
                raise AuthExpiredError(f"HTTP {status} from {url}", status=status) from exc
            raise TransportError(f"HTTP {status} from {url}", status=status) from exc
        except httpx.HTTPError as exc:
            raise TransportError(f"{exc.__class__.__name__}: {exc}") from exc
        except ValueError as exc:
            raise TransportError(f"Invalid JSON from {url}: {exc}") from exc

    def _bands_from_external(self, payload: Any) -> dict[Band, list[RawPoint]]:
        """External readings are already in mg/dL and carry their own ids."""
        if isinstance(payload, dict):
            readings = payload.get("readings", [])
        else:
            readings = payload
        if not isinstance(readings, list):
            raise TransportError("External API response has no readings list")

        points: list[RawPoint] = []
        for item in readings:
            if not isinstance(item, dict):
                continue
            record_id = _first(item, "guid", "id", "recordId")
            value = item.get("value")
            native = item.get("y")
            if native is None and isinstance(value, (int, float)):
                native = self._converter.to_native(value)
            points.append(
                RawPoint(
                    band=Band.NORMAL,
                    epoch_seconds=item.get("x"),
                    value_native=native,
                    timestamp_label=str(
                        item.get("timestampUTC") or item.get("timestamp") or ""
                    ),
                    trend_code=_first(item, "trend", "trendArrow", "trendValue"),
                    record_id=str(record_id) if record_id is not None else None,
                    device_name=item.get("deviceName"),
                    transmitter_id=item.get("transmitterId"),
                    noise=item.get("noise"),
                    filtered=item.get("filtered"),
                    unfiltered=item.get("unfiltered"),
                    rssi=item.get("rssi"),
                )
            )
        return {Band.HIGH: [], Band.NORMAL: points, Band.LOW: []}


def _bands_from_graph(payload: Any) -> dict[Band, list[RawPoint]]:
    if not isinstance(payload, dict):
        raise TransportError("Graph API response is not an object")
    series = payload.get("series") or {}
    if not isinstance(series, dict):
        raise TransportError("Graph API 'series' is not an object")
    bands: dict[Band, list[RawPoint]] = {}
    for name, band in _GRAPH_SERIES:
        items = series.get(name) or []
        if not isinstance(items, list):
            raise TransportError(f"Graph API series {name!r} is not a list")
        bands[band] = [
            RawPoint(
                band=band,
                epoch_seconds=item.get("x"),
                value_native=item.get("y"),
                timestamp_label=str(item.get("timestamp") or ""),
                meal_tag=str(item.get("mealTag") or ""),
                calculated=bool(item.get("calculated", False)),
            )
            for item in items
            if isinstance(item, dict)
        ]
    return bands


def _first(item: dict[str, Any], *keys: str) -> Any:
    for key in keys:
        if item.get(key) is not None:
            return item[key]
    return None


def _count(bands: dict[Band, list[RawPoint]]) -> int:
    return sum(len(points) for points in bands.values())
