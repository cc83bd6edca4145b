"""Protocol definitions (ports) for the sync engine.

Keeping these as Protocols isolates the orchestration from the concrete
SQLite and HTTP implementations, and lets tests substitute in-memory fakes.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from readsync.domain.models import Bookmark, ReadingProgress


class RemoteStoreProtocol(Protocol):
    """Remote replica shared by all devices of a user.

    Every method raises :class:`~readsync.domain.exceptions.RemoteStoreError`
    on failure and never partially applies a single record.
    """

    async def fetch_bookmarks(self, user_id: str) -> list[Bookmark]: ...

    async def fetch_progress(self, user_id: str) -> list[ReadingProgress]: ...

    async def upsert_bookmark(self, user_id: str, bookmark: Bookmark) -> None: ...

    async def upsert_bookmarks(self, user_id: str, bookmarks: list[Bookmark]) -> None: ...

    async def delete_bookmark(self, user_id: str, title_id: str) -> None: ...

    async def upsert_progress(self, user_id: str, progress: ReadingProgress) -> None: ...

    async def upsert_progress_batch(
        self, user_id: str, records: list[ReadingProgress]
    ) -> None: ...

    async def clear_progress(self, user_id: str) -> None: ...


class LocalStoreProtocol(Protocol):
    """Device-local replica; always available, authoritative on remote failure."""

    async def load_bookmarks(self) -> list[Bookmark]: ...

    async def save_bookmarks(self, bookmarks: list[Bookmark]) -> None: ...

    async def load_progress(self) -> list[ReadingProgress]: ...

    async def save_progress(self, records: list[ReadingProgress]) -> None: ...

    async def clear_progress(self) -> None: ...

    async def get_last_sync_at(self) -> int | None: ...

    async def set_last_sync_at(self, value: int) -> None: ...
