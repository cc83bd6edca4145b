"""Domain-specific exceptions.

Remote and storage failures are raised by the adapters and converted into
reported error strings by the sync orchestrator; they never escape a sync run.
"""

from __future__ import annotations


class ReadSyncError(Exception):
    """Base exception for all sync engine errors."""

    def __init__(self, message: str, details: dict | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.details = details or {}


class RemoteStoreError(ReadSyncError):
    """A remote store call failed; the local replica stays authoritative."""

    def __init__(
        self,
        message: str,
        *,
        retryable: bool = True,
        status_code: int | None = None,
        details: dict | None = None,
    ) -> None:
        super().__init__(message, details)
        self.retryable = retryable
        self.status_code = status_code


class RemoteTimeoutError(RemoteStoreError):
    """A remote call did not complete within its deadline."""


class RemoteUnavailableError(RemoteStoreError):
    """The remote store is not configured or cannot be reached at all."""


class LocalStoreError(ReadSyncError):
    """The device-local store could not be read or written."""


class MalformedRecordError(ReadSyncError):
    """A persisted or fetched record is missing required fields."""


class InvalidStateTransitionError(ReadSyncError):
    """Raised when a state machine is driven through a transition it does not allow."""
