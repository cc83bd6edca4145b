"""Remote store decorator that caches fetch results for a short TTL."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from readsync.infrastructure.cache import TtlCache

if TYPE_CHECKING:
    from readsync.adapters.remote.protocols import RemoteStoreProtocol
    from readsync.domain.models import Bookmark, ReadingProgress

logger = logging.getLogger(__name__)

BOOKMARKS_ENTITY = "bookmarks"
PROGRESS_ENTITY = "progress"


class CachedRemoteStore:
    """Wrap a remote store and memoize ``fetch_*`` per ``(entity, user_id)``.

    Any mutation for a user invalidates that user's cached entity, so a fetch
    after a write always goes to the network.
    """

    def __init__(self, inner: RemoteStoreProtocol, cache: TtlCache) -> None:
        self._inner = inner
        self._cache = cache

    @property
    def inner(self) -> RemoteStoreProtocol:
        return self._inner

    async def fetch_bookmarks(self, user_id: str) -> list[Bookmark]:
        key = (BOOKMARKS_ENTITY, user_id)
        cached = self._cache.get(key)
        if cached is not None:
            return list(cached)
        bookmarks = await self._inner.fetch_bookmarks(user_id)
        self._cache.set(key, list(bookmarks))
        return bookmarks

    async def fetch_progress(self, user_id: str) -> list[ReadingProgress]:
        key = (PROGRESS_ENTITY, user_id)
        cached = self._cache.get(key)
        if cached is not None:
            return list(cached)
        records = await self._inner.fetch_progress(user_id)
        self._cache.set(key, list(records))
        return records

    async def upsert_bookmark(self, user_id: str, bookmark: Bookmark) -> None:
        try:
            await self._inner.upsert_bookmark(user_id, bookmark)
        finally:
            self._invalidate(BOOKMARKS_ENTITY, user_id)

    async def upsert_bookmarks(self, user_id: str, bookmarks: list[Bookmark]) -> None:
        try:
            await self._inner.upsert_bookmarks(user_id, bookmarks)
        finally:
            self._invalidate(BOOKMARKS_ENTITY, user_id)

    async def delete_bookmark(self, user_id: str, title_id: str) -> None:
        try:
            await self._inner.delete_bookmark(user_id, title_id)
        finally:
            self._invalidate(BOOKMARKS_ENTITY, user_id)

    async def upsert_progress(self, user_id: str, progress: ReadingProgress) -> None:
        try:
            await self._inner.upsert_progress(user_id, progress)
        finally:
            self._invalidate(PROGRESS_ENTITY, user_id)

    async def upsert_progress_batch(self, user_id: str, records: list[ReadingProgress]) -> None:
        try:
            await self._inner.upsert_progress_batch(user_id, records)
        finally:
            self._invalidate(PROGRESS_ENTITY, user_id)

    async def clear_progress(self, user_id: str) -> None:
        try:
            await self._inner.clear_progress(user_id)
        finally:
            self._invalidate(PROGRESS_ENTITY, user_id)

    def _invalidate(self, entity: str, user_id: str) -> None:
        if self._cache.invalidate((entity, user_id)):
            logger.debug("remote_cache_invalidated", extra={"entity": entity, "user_id": user_id})
