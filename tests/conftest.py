"""Pytest configuration and shared fixtures.

Provides in-memory replicas of the local and remote stores, a controllable
clock and small record factories shared by the sync engine tests.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from readsync.application.sync.orchestrator import SyncContext, SyncOrchestrator
from readsync.config import ProgressConfig, SyncConfig
from readsync.domain.exceptions import RemoteStoreError
from readsync.domain.models import Bookmark, ReadingProgress


class ManualClock:
    """Epoch-milliseconds clock that only moves when told to."""

    def __init__(self, start: int = 1_700_000_000_000) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


class InMemoryLocalStore:
    """LocalStoreProtocol implementation that records every write."""

    def __init__(
        self,
        bookmarks: list[Bookmark] | None = None,
        progress: list[ReadingProgress] | None = None,
        last_sync_at: int | None = None,
    ) -> None:
        self.bookmarks = list(bookmarks or [])
        self.progress = list(progress or [])
        self.last_sync_at = last_sync_at
        self.writes: list[str] = []

    async def load_bookmarks(self) -> list[Bookmark]:
        return list(self.bookmarks)

    async def save_bookmarks(self, bookmarks: list[Bookmark]) -> None:
        self.writes.append("bookmarks")
        self.bookmarks = list(bookmarks)

    async def load_progress(self) -> list[ReadingProgress]:
        return list(self.progress)

    async def save_progress(self, records: list[ReadingProgress]) -> None:
        self.writes.append("progress")
        self.progress = list(records)

    async def clear_progress(self) -> None:
        self.writes.append("progress")
        self.progress = []

    async def get_last_sync_at(self) -> int | None:
        return self.last_sync_at

    async def set_last_sync_at(self, value: int) -> None:
        self.writes.append("cursor")
        self.last_sync_at = value

    def snapshot(self) -> tuple[Any, ...]:
        return (
            [b.model_dump() for b in self.bookmarks],
            [p.model_dump() for p in self.progress],
            self.last_sync_at,
        )


class FakeRemoteStore:
    """RemoteStoreProtocol implementation keyed by user id.

    ``failures`` maps a method name to the exception it should raise.
    """

    def __init__(self) -> None:
        self.bookmarks: dict[str, dict[str, Bookmark]] = {}
        self.progress: dict[str, dict[str, ReadingProgress]] = {}
        self.failures: dict[str, BaseException] = {}
        self.calls: list[tuple[str, str]] = []

    def fail(self, method: str, exc: BaseException | None = None) -> None:
        self.failures[method] = exc or RemoteStoreError("network unreachable")

    def _record(self, method: str, user_id: str) -> None:
        self.calls.append((method, user_id))
        exc = self.failures.get(method)
        if exc is not None:
            raise exc

    def calls_to(self, method: str) -> int:
        return sum(1 for name, _ in self.calls if name == method)

    async def fetch_bookmarks(self, user_id: str) -> list[Bookmark]:
        self._record("fetch_bookmarks", user_id)
        return list(self.bookmarks.get(user_id, {}).values())

    async def fetch_progress(self, user_id: str) -> list[ReadingProgress]:
        self._record("fetch_progress", user_id)
        return list(self.progress.get(user_id, {}).values())

    async def upsert_bookmark(self, user_id: str, bookmark: Bookmark) -> None:
        self._record("upsert_bookmark", user_id)
        self.bookmarks.setdefault(user_id, {})[bookmark.title_id] = bookmark

    async def upsert_bookmarks(self, user_id: str, bookmarks: list[Bookmark]) -> None:
        self._record("upsert_bookmarks", user_id)
        for bookmark in bookmarks:
            self.bookmarks.setdefault(user_id, {})[bookmark.title_id] = bookmark

    async def delete_bookmark(self, user_id: str, title_id: str) -> None:
        self._record("delete_bookmark", user_id)
        self.bookmarks.get(user_id, {}).pop(title_id, None)

    async def upsert_progress(self, user_id: str, progress: ReadingProgress) -> None:
        self._record("upsert_progress", user_id)
        self.progress.setdefault(user_id, {})[progress.title_id] = progress

    async def upsert_progress_batch(self, user_id: str, records: list[ReadingProgress]) -> None:
        self._record("upsert_progress_batch", user_id)
        for record in records:
            self.progress.setdefault(user_id, {})[record.title_id] = record

    async def clear_progress(self, user_id: str) -> None:
        self._record("clear_progress", user_id)
        self.progress.pop(user_id, None)


def _bookmark(title_id: str, added_at: int = 1_000, title: str | None = None) -> Bookmark:
    return Bookmark(title_id=title_id, title=title or title_id.title(), added_at=added_at)


def _progress(title_id: str, updated_at: int = 1_000, **fields: Any) -> ReadingProgress:
    return ReadingProgress(title_id=title_id, updated_at=updated_at, **fields)


@pytest.fixture
def make_bookmark() -> Callable[..., Bookmark]:
    return _bookmark


@pytest.fixture
def make_progress() -> Callable[..., ReadingProgress]:
    return _progress


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock()


@pytest.fixture
def local_store() -> InMemoryLocalStore:
    return InMemoryLocalStore()


@pytest.fixture
def remote_store() -> FakeRemoteStore:
    return FakeRemoteStore()


@pytest.fixture
def make_orchestrator(
    local_store: InMemoryLocalStore, remote_store: FakeRemoteStore, clock: ManualClock
) -> Callable[..., SyncOrchestrator]:
    def _factory(
        *,
        local: Any = None,
        remote: Any = remote_store,
        sync: SyncConfig | None = None,
        progress: ProgressConfig | None = None,
        remote_timeout: float | None = 5.0,
    ) -> SyncOrchestrator:
        return SyncOrchestrator(
            SyncContext(
                local=local if local is not None else local_store,
                remote=remote,
                sync=sync or SyncConfig(),
                progress=progress or ProgressConfig(),
                remote_timeout=remote_timeout,
                clock=clock,
            )
        )

    return _factory


@pytest.fixture
def db_path(tmp_path) -> str:
    return str(tmp_path / "readsync.db")
