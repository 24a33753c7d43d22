"""Collaborator interfaces the sync core depends on."""

from __future__ import annotations

from abc import ABC, abstractmethod

from cgm_sync.model import Band, FetchWindow, RawPoint, Session


class Authenticator(ABC):
    """Produces portal sessions."""

    @abstractmethod
    def authenticate(self, force_new: bool = False) -> Session:
        """Return a usable session.

        Args:
            force_new: Discard any cached session and log in again.

        Raises:
            AuthError: If the credentials are rejected.
        """


class RawSeriesFetcher(ABC):
    """Retrieves raw glucose points for a time window."""

    @abstractmethod
    def fetch(self, session: Session, window: FetchWindow) -> dict[Band, list[RawPoint]]:
        """Fetch the raw points in ``window`` grouped by band.

        Raises:
            AuthExpiredError: If the portal rejects the session.
            TransportError: On network errors, timeouts or bad responses.
        """
