"""SQLite implementation of the device-local replica.

Each collection is stored as one JSON document in the ``key_value_entry``
table, so a save is always a whole-collection replace. Documents that no
longer parse are treated as empty collections rather than errors.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime
from typing import Any

from readsync.core.time_utils import UTC
from readsync.db.models import KeyValueEntry
from readsync.domain.models import Bookmark, ReadingProgress, parse_records
from readsync.infrastructure.persistence.sqlite.base import SqliteBaseRepository

logger = logging.getLogger(__name__)

BOOKMARKS_KEY = "bookmarks"
PROGRESS_KEY = "reading_progress"
LAST_SYNC_KEY = "last_sync_at"


class SqliteLocalStore(SqliteBaseRepository):
    """Durable local store for bookmarks, reading progress and the sync cursor."""

    async def load_bookmarks(self) -> list[Bookmark]:
        raw = await self._load_document(BOOKMARKS_KEY)
        return parse_records(Bookmark, self._as_list(BOOKMARKS_KEY, raw), source="local")

    async def save_bookmarks(self, bookmarks: list[Bookmark]) -> None:
        payload = [bookmark.model_dump(mode="json") for bookmark in bookmarks]
        await self._save_document(BOOKMARKS_KEY, payload)

    async def load_progress(self) -> list[ReadingProgress]:
        raw = await self._load_document(PROGRESS_KEY)
        return parse_records(ReadingProgress, self._as_list(PROGRESS_KEY, raw), source="local")

    async def save_progress(self, records: list[ReadingProgress]) -> None:
        payload = [record.model_dump(mode="json") for record in records]
        await self._save_document(PROGRESS_KEY, payload)

    async def clear_progress(self) -> None:
        await self._save_document(PROGRESS_KEY, [])

    async def get_last_sync_at(self) -> int | None:
        raw = await self._load_document(LAST_SYNC_KEY)
        if isinstance(raw, bool) or not isinstance(raw, int | float):
            if raw is not None:
                logger.warning("local_cursor_invalid", extra={"value_type": type(raw).__name__})
            return None
        return int(raw)

    async def set_last_sync_at(self, value: int) -> None:
        await self._save_document(LAST_SYNC_KEY, int(value))

    async def _load_document(self, key: str) -> Any:
        def _query() -> str | None:
            entry = KeyValueEntry.get_or_none(KeyValueEntry.key == key)
            return entry.value if entry is not None else None

        text = await self._execute(_query, operation_name=f"load_{key}", read_only=True)

        if text is None:
            return None
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            logger.warning(
                "local_document_corrupt",
                extra={"key": key, "error": str(exc), "length": len(text)},
            )
            return None

    async def _save_document(self, key: str, payload: Any) -> None:
        text = json.dumps(payload, ensure_ascii=False, separators=(",", ":"))

        def _upsert() -> None:
            KeyValueEntry.insert(
                key=key, value=text, updated_at=datetime.now(UTC)
            ).on_conflict_replace().execute()

        await self._execute(_upsert, operation_name=f"save_{key}")

    @staticmethod
    def _as_list(key: str, raw: Any) -> list[Any]:
        if raw is None:
            return []
        if not isinstance(raw, list):
            logger.warning(
                "local_document_unexpected_shape",
                extra={"key": key, "value_type": type(raw).__name__},
            )
            return []
        return raw
