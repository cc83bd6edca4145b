"""Result and status models returned by the sync orchestrator."""

from __future__ import annotations

from enum import StrEnum

from pydantic import BaseModel, Field


class SyncState(StrEnum):
    IDLE = "idle"
    PULLING = "pulling"
    MERGING = "merging"
    PERSISTING = "persisting"
    PUSHING = "pushing"
    ERROR = "error"


class SyncResult(BaseModel):
    """Outcome of a full (or single-entity) sync run."""

    success: bool = False
    bookmarks_synced: int = 0
    progress_synced: int = 0
    errors: list[str] = Field(default_factory=list)
    retryable_errors: list[str] = Field(default_factory=list)
    permanent_errors: list[str] = Field(default_factory=list)
    correlation_id: str | None = None
    duration_seconds: float = 0.0


class SyncStatus(BaseModel):
    state: SyncState = SyncState.IDLE
    is_syncing: bool = False
    last_sync_at: int | None = None
    last_error: str | None = None


class MutationResult(BaseModel):
    """Outcome of an optimistic local mutation and its optional remote write."""

    applied_locally: bool = False
    pushed_remote: bool = False
    rolled_back: bool = False
    error: str | None = None


def record_error(result: SyncResult, message: str, retryable: bool) -> None:
    if message not in result.errors:
        result.errors.append(message)
    if retryable:
        result.retryable_errors.append(message)
    else:
        result.permanent_errors.append(message)
