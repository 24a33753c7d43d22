"""Error taxonomy for a sync cycle."""

from __future__ import annotations


class CgmSyncError(Exception):
    """Base class for all cgm_sync errors."""


class AuthError(CgmSyncError):
    """Credentials rejected or the portal login flow changed. Not retried."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class AuthExpiredError(AuthError):
    """Session lapsed; the cycle is retried with a fresh authentication."""


class TransportError(CgmSyncError):
    """Network failure, timeout or unexpected upstream response."""

    def __init__(self, message: str, status: int | None = None) -> None:
        super().__init__(message)
        self.status = status


class CheckpointWriteError(CgmSyncError):
    """The checkpoint file could not be written."""
