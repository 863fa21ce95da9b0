# src/classsync/core/errors.py

"""Exception types raised by the ClassSync core and its backend adapters."""

from __future__ import annotations


class ClassSyncError(Exception):
    """Base exception for all ClassSync errors."""


class ConfigurationError(ClassSyncError):
    """The backend is unreachable or not configured; the session is blocked."""


class AuthError(ClassSyncError):
    """Bad credentials or a missing required sign-up field. Shown inline, user retries."""


class BannedError(ClassSyncError):
    """A banned profile attempted a write that requires an active session."""

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"Profile '{user_id}' is banned")


class NotSignedInError(ClassSyncError):
    """An operation needed a signed-in profile and there is none."""


class BackendError(ClassSyncError):
    """A backend call failed (network, policy rejection, conflict)."""

    def __init__(self, message: str, *, table: str | None = None, op: str | None = None):
        self.table = table
        self.op = op
        super().__init__(message)


class RemoteWriteError(BackendError):
    """A write to the backend failed. Never silently downgraded to device storage."""
