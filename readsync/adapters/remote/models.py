"""Pydantic models for the remote store's PostgREST rows."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from readsync.core.time_utils import iso_to_ms, ms_to_iso
from readsync.domain.exceptions import MalformedRecordError
from readsync.domain.models import Bookmark, ReadingProgress

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

DomainT = TypeVar("DomainT", Bookmark, ReadingProgress)


def _timestamp_ms(value: str, field_name: str, title_id: str) -> int:
    parsed = iso_to_ms(value)
    if parsed is None:
        msg = f"row {title_id!r} has an unreadable {field_name}: {value!r}"
        raise MalformedRecordError(msg, {"title_id": title_id, "field": field_name})
    return parsed


def _build(record_type: type[DomainT], title_id: str, **fields: Any) -> DomainT:
    try:
        return record_type(title_id=title_id, **fields)
    except ValidationError as exc:
        msg = f"row {title_id!r} is not a valid {record_type.__name__}"
        raise MalformedRecordError(
            msg, {"title_id": title_id, "error_count": exc.error_count()}
        ) from exc


class BookmarkRow(BaseModel):
    """Row of the ``user_bookmarks`` table."""

    model_config = ConfigDict(extra="ignore")

    user_id: str
    manhwa_id: str
    title: str
    image: str | None = None
    provider: str = "mgeko"
    created_at: str | None = None

    @classmethod
    def from_domain(cls, user_id: str, bookmark: Bookmark, *, provider: str) -> BookmarkRow:
        return cls(
            user_id=user_id,
            manhwa_id=bookmark.title_id,
            title=bookmark.title,
            image=bookmark.image,
            provider=provider,
            created_at=ms_to_iso(bookmark.added_at),
        )

    def to_domain(self) -> Bookmark:
        added_at = (
            _timestamp_ms(self.created_at, "created_at", self.manhwa_id) if self.created_at else 0
        )
        return _build(
            Bookmark, self.manhwa_id, title=self.title, image=self.image, added_at=added_at
        )


class ProgressRow(BaseModel):
    """Row of the ``reading_progress`` table."""

    model_config = ConfigDict(extra="ignore")

    user_id: str
    manhwa_id: str
    manhwa_title: str | None = None
    manhwa_image: str | None = None
    last_chapter_id: str | None = None
    last_chapter_title: str | None = None
    chapters_read: list[str] | None = Field(default_factory=list)
    chapter_progress: dict[str, Any] | None = Field(default_factory=dict)
    total_chapters: int | None = None
    provider: str = "mgeko"
    last_read_at: str

    @classmethod
    def from_domain(
        cls, user_id: str, progress: ReadingProgress, *, provider: str
    ) -> ProgressRow:
        return cls(
            user_id=user_id,
            manhwa_id=progress.title_id,
            manhwa_title=progress.display_title,
            manhwa_image=progress.cover_image,
            last_chapter_id=progress.last_chapter_id,
            last_chapter_title=progress.last_chapter_title,
            chapters_read=list(progress.chapters_read),
            chapter_progress=dict(progress.chapter_progress),
            total_chapters=progress.total_chapters,
            provider=provider,
            last_read_at=ms_to_iso(progress.updated_at),
        )

    def to_domain(self) -> ReadingProgress:
        return _build(
            ReadingProgress,
            self.manhwa_id,
            display_title=self.manhwa_title,
            cover_image=self.manhwa_image,
            last_chapter_id=self.last_chapter_id or "",
            last_chapter_title=self.last_chapter_title,
            chapters_read=self.chapters_read or [],
            chapter_progress=self.chapter_progress or {},
            total_chapters=self.total_chapters,
            updated_at=_timestamp_ms(self.last_read_at, "last_read_at", self.manhwa_id),
        )


def parse_rows(
    row_model: type[BookmarkRow] | type[ProgressRow],
    raw_rows: Iterable[Any],
    *,
    table: str,
) -> list[Any]:
    """Convert raw rows into domain records, skipping rows that do not validate.

    Rows whose columns do not match the table model are skipped, and so are
    rows that match but cannot form a domain record (:class:`MalformedRecordError`).
    """
    records: list[Any] = []
    skipped = 0
    for raw in raw_rows:
        try:
            records.append(row_model.model_validate(raw).to_domain())
        except ValidationError as exc:
            skipped += 1
            logger.warning(
                "remote_row_skipped",
                extra={"table": table, "error_count": exc.error_count()},
            )
        except MalformedRecordError as exc:
            skipped += 1
            logger.warning(
                "remote_row_skipped",
                extra={"table": table, "error": exc.message, **exc.details},
            )
    if skipped:
        logger.info(
            "remote_rows_summary",
            extra={"table": table, "skipped_count": skipped, "kept": len(records)},
        )
    return records
