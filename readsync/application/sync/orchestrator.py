"""Sync orchestrator: reconciles the local replica with the remote store.

The local store is authoritative. Every mutation lands locally first and is
then mirrored remotely on a best-effort basis; a full sync pulls the remote
replica, merges it with the local one, persists the merged superset locally
and pushes back whatever the remote replica is missing.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from readsync.application.sync.optimistic import (
    OptimisticMutation,
    describe_error,
    run_optimistic,
)
from readsync.application.sync.results import (
    MutationResult,
    SyncResult,
    SyncState,
    SyncStatus,
    record_error,
)
from readsync.config import ProgressConfig, SyncConfig
from readsync.core.async_utils import raise_if_cancelled, wait_with_timeout
from readsync.core.logging_utils import generate_correlation_id
from readsync.core.time_utils import now_ms
from readsync.domain.exceptions import InvalidStateTransitionError, RemoteUnavailableError
from readsync.domain.merge import (
    diverged_progress,
    index_by_title,
    local_only,
    merge_bookmarks,
    merge_progress,
    merge_progress_record,
    sort_bookmarks,
    sort_progress,
)
from readsync.domain.progress import (
    ChapterPosition,
    apply_chapter_position,
    is_chapter_read,
    title_completion_percent,
)
from readsync.utils.retry_utils import is_transient_error

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from readsync.adapters.remote.protocols import LocalStoreProtocol, RemoteStoreProtocol
    from readsync.config import AppConfig
    from readsync.domain.models import Bookmark, ReadingProgress

logger = logging.getLogger(__name__)

BOOKMARKS_LABEL = "Bookmarks"
PROGRESS_LABEL = "Progress"

_ALLOWED_TRANSITIONS: dict[SyncState, frozenset[SyncState]] = {
    SyncState.IDLE: frozenset({SyncState.PULLING}),
    SyncState.PULLING: frozenset({SyncState.MERGING, SyncState.ERROR}),
    SyncState.MERGING: frozenset({SyncState.PERSISTING, SyncState.ERROR}),
    SyncState.PERSISTING: frozenset({SyncState.PUSHING, SyncState.ERROR}),
    SyncState.PUSHING: frozenset({SyncState.IDLE, SyncState.ERROR}),
    SyncState.ERROR: frozenset({SyncState.IDLE}),
}


@dataclass
class SyncContext:
    """Everything the orchestrator depends on, injected explicitly.

    ``remote`` is ``None`` when no remote store is configured; the engine then
    runs purely local.
    """

    local: LocalStoreProtocol
    remote: RemoteStoreProtocol | None = None
    sync: SyncConfig = field(default_factory=SyncConfig)
    progress: ProgressConfig = field(default_factory=ProgressConfig)
    remote_timeout: float | None = 30.0
    clock: Callable[[], int] = now_ms

    @classmethod
    def from_config(
        cls,
        config: AppConfig,
        local: LocalStoreProtocol,
        remote: RemoteStoreProtocol | None,
        **kwargs: Any,
    ) -> SyncContext:
        # One call covers the client's own retries plus their backoff.
        remote_timeout = config.remote.timeout_sec * (config.remote.max_retries + 1) + 15.0
        return cls(
            local=local,
            remote=remote,
            sync=config.sync,
            progress=config.progress,
            remote_timeout=remote_timeout,
            **kwargs,
        )


class SyncOrchestrator:
    """Per-user sync state machine plus the optimistic mutation entry points.

    Every entry point that touches the local replica, signed out or not, is
    serialized through one device-wide lock.
    A ``full_sync`` issued while another one for the same user is in flight
    awaits and returns the in-flight result. Cancelling any caller, including
    the one that started the run, never cancels the run for the others.
    """

    def __init__(self, context: SyncContext) -> None:
        self._ctx = context
        self._replica_lock = asyncio.Lock()
        self._inflight: dict[str, asyncio.Task[SyncResult]] = {}
        self._states: dict[str, SyncState] = {}
        self._last_errors: dict[str, str | None] = {}

    @property
    def context(self) -> SyncContext:
        return self._ctx

    # ------------------------------------------------------------------
    # Full sync
    # ------------------------------------------------------------------

    async def full_sync(self, user_id: str) -> SyncResult:
        """Sync bookmarks and progress for *user_id*. Never raises (except on cancellation)."""
        inflight = self._inflight.get(user_id)
        if inflight is not None and not inflight.done():
            logger.info("full_sync_coalesced", extra={"user_id": user_id})
            return await asyncio.shield(inflight)

        task = asyncio.create_task(self._run_full_sync(user_id))
        self._inflight[user_id] = task
        task.add_done_callback(lambda done: self._forget_inflight(user_id, done))
        return await asyncio.shield(task)

    async def sync_if_needed(self, user_id: str) -> SyncResult | None:
        if not await self.is_sync_needed():
            return None
        return await self.full_sync(user_id)

    async def is_sync_needed(self, now: int | None = None) -> bool:
        last_sync_at = await self._ctx.local.get_last_sync_at()
        if last_sync_at is None:
            return True
        current = self._ctx.clock() if now is None else now
        return current - last_sync_at > self._ctx.sync.interval_ms

    async def sync_bookmarks_only(self, user_id: str) -> SyncResult:
        return await self._run_partial(user_id, BOOKMARKS_LABEL)

    async def sync_progress_only(self, user_id: str) -> SyncResult:
        return await self._run_partial(user_id, PROGRESS_LABEL)

    async def get_status(self, user_id: str) -> SyncStatus:
        inflight = self._inflight.get(user_id)
        return SyncStatus(
            state=self._states.get(user_id, SyncState.IDLE),
            is_syncing=inflight is not None and not inflight.done(),
            last_sync_at=await self._ctx.local.get_last_sync_at(),
            last_error=self._last_errors.get(user_id),
        )

    async def _run_full_sync(self, user_id: str) -> SyncResult:
        correlation_id = generate_correlation_id()
        started = time.perf_counter()
        result = SyncResult(correlation_id=correlation_id)
        logger.info(
            "full_sync_started", extra={"user_id": user_id, "correlation_id": correlation_id}
        )

        async with self._replica_lock:
            result.bookmarks_synced = await self._guarded_subflow(
                user_id, BOOKMARKS_LABEL, result, self._sync_bookmarks
            )
            result.progress_synced = await self._guarded_subflow(
                user_id, PROGRESS_LABEL, result, self._sync_progress
            )

            result.success = not result.errors
            if result.success:
                await self._ctx.local.set_last_sync_at(self._ctx.clock())

        result.duration_seconds = round(time.perf_counter() - started, 3)
        self._last_errors[user_id] = result.errors[0] if result.errors else None
        logger.info(
            "full_sync_completed",
            extra={
                "user_id": user_id,
                "correlation_id": correlation_id,
                "success": result.success,
                "bookmarks_synced": result.bookmarks_synced,
                "progress_synced": result.progress_synced,
                "error_count": len(result.errors),
                "duration_ms": int(result.duration_seconds * 1000),
            },
        )
        return result

    async def _run_partial(self, user_id: str, label: str) -> SyncResult:
        result = SyncResult(correlation_id=generate_correlation_id())
        subflow = self._sync_bookmarks if label == BOOKMARKS_LABEL else self._sync_progress
        async with self._replica_lock:
            synced = await self._guarded_subflow(user_id, label, result, subflow)
        if label == BOOKMARKS_LABEL:
            result.bookmarks_synced = synced
        else:
            result.progress_synced = synced
        result.success = not result.errors
        self._last_errors[user_id] = result.errors[0] if result.errors else None
        return result

    async def _guarded_subflow(
        self,
        user_id: str,
        label: str,
        result: SyncResult,
        subflow: Callable[[str, str], Awaitable[int]],
    ) -> int:
        """Run one entity sub-flow, converting any failure into a reported error."""
        correlation_id = result.correlation_id or ""
        try:
            return await subflow(user_id, correlation_id)
        except Exception as exc:
            raise_if_cancelled(exc)
            message = f"{label}: {describe_error(exc)}"
            record_error(result, message, is_transient_error(exc))
            logger.warning(
                "sync_subflow_failed",
                extra={
                    "user_id": user_id,
                    "correlation_id": correlation_id,
                    "entity": label.lower(),
                    "state": self._states.get(user_id, SyncState.IDLE).value,
                    "error": message,
                },
            )
            if self._states.get(user_id, SyncState.IDLE) is not SyncState.IDLE:
                self._transition(user_id, SyncState.ERROR)
                self._transition(user_id, SyncState.IDLE)
            return 0
        finally:
            # Cancelled mid-flow: the local replica only ever received a superset.
            if self._states.get(user_id, SyncState.IDLE) is not SyncState.IDLE:
                self._states[user_id] = SyncState.IDLE

    async def _sync_bookmarks(self, user_id: str, correlation_id: str) -> int:
        self._transition(user_id, SyncState.PULLING)
        remote = self._require_remote(user_id)
        remote_items = await self._call_remote(remote.fetch_bookmarks(user_id))

        self._transition(user_id, SyncState.MERGING)
        local_items = await self._ctx.local.load_bookmarks()
        merged = merge_bookmarks(local_items, remote_items)

        self._transition(user_id, SyncState.PERSISTING)
        await self._ctx.local.save_bookmarks(merged)

        self._transition(user_id, SyncState.PUSHING)
        pending = local_only(local_items, remote_items)
        if pending:
            await self._call_remote(remote.upsert_bookmarks(user_id, pending))

        logger.info(
            "bookmarks_synced",
            extra={
                "user_id": user_id,
                "correlation_id": correlation_id,
                "local_count": len(local_items),
                "remote_count": len(remote_items),
                "merged_count": len(merged),
                "pushed_count": len(pending),
            },
        )
        self._transition(user_id, SyncState.IDLE)
        return len(merged)

    async def _sync_progress(self, user_id: str, correlation_id: str) -> int:
        self._transition(user_id, SyncState.PULLING)
        remote = self._require_remote(user_id)
        remote_items = await self._call_remote(remote.fetch_progress(user_id))

        self._transition(user_id, SyncState.MERGING)
        local_items = await self._ctx.local.load_progress()
        merged = merge_progress(local_items, remote_items)

        self._transition(user_id, SyncState.PERSISTING)
        await self._ctx.local.save_progress(merged)

        self._transition(user_id, SyncState.PUSHING)
        pending = diverged_progress(merged, remote_items)
        if pending:
            await self._call_remote(remote.upsert_progress_batch(user_id, pending))

        logger.info(
            "progress_synced",
            extra={
                "user_id": user_id,
                "correlation_id": correlation_id,
                "local_count": len(local_items),
                "remote_count": len(remote_items),
                "merged_count": len(merged),
                "pushed_count": len(pending),
            },
        )
        self._transition(user_id, SyncState.IDLE)
        return len(merged)

    # ------------------------------------------------------------------
    # Bookmarks
    # ------------------------------------------------------------------

    async def add_bookmark(self, user_id: str | None, bookmark: Bookmark) -> MutationResult:
        async with self._replica_lock:
            return await self._add_bookmark_locked(user_id, bookmark)

    async def remove_bookmark(self, user_id: str | None, title_id: str) -> MutationResult:
        async with self._replica_lock:
            return await self._remove_bookmark_locked(user_id, title_id)

    async def toggle_bookmark(self, user_id: str | None, bookmark: Bookmark) -> bool:
        """Flip the bookmark state of ``bookmark.title_id``; returns the new state."""
        async with self._replica_lock:
            current = await self._ctx.local.load_bookmarks()
            if any(item.title_id == bookmark.title_id for item in current):
                await self._remove_bookmark_locked(user_id, bookmark.title_id)
                return False
            await self._add_bookmark_locked(user_id, bookmark)
            return True

    async def is_bookmarked(self, title_id: str) -> bool:
        return any(item.title_id == title_id for item in await self._ctx.local.load_bookmarks())

    async def list_bookmarks(self) -> list[Bookmark]:
        return sort_bookmarks(await self._ctx.local.load_bookmarks())

    async def _add_bookmark_locked(
        self, user_id: str | None, bookmark: Bookmark
    ) -> MutationResult:
        previous = await self._ctx.local.load_bookmarks()
        updated = [item for item in previous if item.title_id != bookmark.title_id]
        updated.append(bookmark)
        remote = self._remote_for(user_id)

        async def _apply() -> None:
            await self._ctx.local.save_bookmarks(sort_bookmarks(updated))

        async def _rollback() -> None:
            await self._ctx.local.save_bookmarks(previous)

        return await self._run_mutation(
            OptimisticMutation(
                name="add_bookmark",
                apply=_apply,
                remote=(lambda: remote.upsert_bookmark(user_id, bookmark))
                if remote is not None and user_id
                else None,
                rollback=_rollback,
            ),
            user_id,
        )

    async def _remove_bookmark_locked(self, user_id: str | None, title_id: str) -> MutationResult:
        previous = await self._ctx.local.load_bookmarks()
        remaining = [item for item in previous if item.title_id != title_id]
        remote = self._remote_for(user_id)

        async def _apply() -> None:
            await self._ctx.local.save_bookmarks(remaining)

        async def _rollback() -> None:
            await self._ctx.local.save_bookmarks(previous)

        return await self._run_mutation(
            OptimisticMutation(
                name="remove_bookmark",
                apply=_apply,
                remote=(lambda: remote.delete_bookmark(user_id, title_id))
                if remote is not None and user_id
                else None,
                rollback=_rollback,
            ),
            user_id,
        )

    # ------------------------------------------------------------------
    # Reading progress
    # ------------------------------------------------------------------

    async def update_progress(
        self, user_id: str | None, progress: ReadingProgress, *, push_remote: bool = True
    ) -> MutationResult:
        """Store *progress*, merged with any existing local record so nothing regresses."""
        async with self._replica_lock:
            return await self._replace_progress_locked(
                user_id,
                lambda existing: merge_progress_record(existing, progress)
                if existing is not None
                else progress,
                title_id=progress.title_id,
                push_remote=push_remote,
                operation="update_progress",
            )

    async def on_progress_update(
        self,
        user_id: str | None,
        title_id: str,
        chapter_id: str,
        percent: int,
        *,
        push_remote: bool,
        chapter_title: str = "",
        display_title: str = "",
        cover_image: str = "",
        total_chapters: int | None = None,
    ) -> MutationResult:
        """Apply one debounced reading position from the progress tracker."""
        position = ChapterPosition(
            title_id=title_id,
            chapter_id=chapter_id,
            percent=percent,
            chapter_title=chapter_title,
            display_title=display_title,
            cover_image=cover_image,
            total_chapters=total_chapters,
        )
        threshold = self._ctx.progress.completion_threshold
        async with self._replica_lock:
            result = await self._replace_progress_locked(
                user_id,
                lambda existing: apply_chapter_position(
                    existing, position, now=self._ctx.clock(), completion_threshold=threshold
                ),
                title_id=title_id,
                push_remote=push_remote,
                operation="on_progress_update",
            )
        logger.debug(
            "progress_update_applied",
            extra={
                "user_id": user_id,
                "title_id": title_id,
                "chapter_id": chapter_id,
                "percent": percent,
                "push_remote": push_remote,
                "pushed": result.pushed_remote,
            },
        )
        return result

    async def clear_history(self, user_id: str | None) -> MutationResult:
        async with self._replica_lock:
            previous = await self._ctx.local.load_progress()
            remote = self._remote_for(user_id)

            async def _rollback() -> None:
                await self._ctx.local.save_progress(previous)

            result = await self._run_mutation(
                OptimisticMutation(
                    name="clear_history",
                    apply=self._ctx.local.clear_progress,
                    remote=(lambda: remote.clear_progress(user_id))
                    if remote is not None and user_id
                    else None,
                    rollback=_rollback,
                ),
                user_id,
            )
        logger.info(
            "reading_history_cleared",
            extra={"user_id": user_id, "cleared": len(previous), "remote": result.pushed_remote},
        )
        return result

    async def get_reading_history(self) -> list[ReadingProgress]:
        return sort_progress(await self._ctx.local.load_progress())

    async def get_recently_read(self, limit: int = 10) -> list[ReadingProgress]:
        if limit <= 0:
            return []
        return (await self.get_reading_history())[:limit]

    async def get_title_record(self, title_id: str) -> ReadingProgress | None:
        return index_by_title(await self._ctx.local.load_progress()).get(title_id)

    async def get_chapter_progress(self, title_id: str, chapter_id: str) -> int:
        record = await self.get_title_record(title_id)
        if record is None:
            return 0
        return record.chapter_progress.get(chapter_id, 0)

    async def is_chapter_read(self, title_id: str, chapter_id: str) -> bool:
        return is_chapter_read(
            await self.get_title_record(title_id),
            chapter_id,
            completion_threshold=self._ctx.progress.completion_threshold,
        )

    async def get_title_progress(self, title_id: str) -> int | None:
        return title_completion_percent(await self.get_title_record(title_id))

    async def _replace_progress_locked(
        self,
        user_id: str | None,
        build: Callable[[ReadingProgress | None], ReadingProgress],
        *,
        title_id: str,
        push_remote: bool,
        operation: str,
    ) -> MutationResult:
        previous = await self._ctx.local.load_progress()
        records = index_by_title(previous)
        record = build(records.get(title_id))
        records[title_id] = record
        remote = self._remote_for(user_id) if push_remote else None

        async def _apply() -> None:
            await self._ctx.local.save_progress(sort_progress(records.values()))

        async def _rollback() -> None:
            await self._ctx.local.save_progress(previous)

        return await self._run_mutation(
            OptimisticMutation(
                name=operation,
                apply=_apply,
                remote=(lambda: remote.upsert_progress(user_id, record))
                if remote is not None and user_id
                else None,
                rollback=_rollback,
            ),
            user_id,
        )

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    async def _run_mutation(
        self, mutation: OptimisticMutation, user_id: str | None
    ) -> MutationResult:
        return await run_optimistic(
            mutation,
            rollback_on_failure=self._ctx.sync.rollback_on_remote_failure,
            timeout=self._ctx.remote_timeout,
            user_id=user_id,
        )

    async def _call_remote(self, awaitable: Awaitable[Any]) -> Any:
        return await wait_with_timeout(awaitable, self._ctx.remote_timeout)

    def _remote_for(self, user_id: str | None) -> RemoteStoreProtocol | None:
        if not user_id:
            return None
        return self._ctx.remote

    def _require_remote(self, user_id: str) -> RemoteStoreProtocol:
        if not user_id:
            msg = "not signed in"
            raise RemoteUnavailableError(msg, retryable=False)
        if self._ctx.remote is None:
            msg = "remote store not configured"
            raise RemoteUnavailableError(msg, retryable=False)
        return self._ctx.remote

    def _transition(self, user_id: str, new_state: SyncState) -> None:
        current = self._states.get(user_id, SyncState.IDLE)
        if new_state not in _ALLOWED_TRANSITIONS[current]:
            msg = f"cannot move sync state from {current.value} to {new_state.value}"
            raise InvalidStateTransitionError(
                msg, {"from": current.value, "to": new_state.value}
            )
        self._states[user_id] = new_state

    def _forget_inflight(self, user_id: str, task: asyncio.Task[SyncResult]) -> None:
        if self._inflight.get(user_id) is task:
            del self._inflight[user_id]
