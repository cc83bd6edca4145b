"""Domain records synchronized between the device and the remote store.

Records are immutable pydantic models: every mutation produces a new record,
so a write is always a whole-record replace and never a field patch.
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, TypeVar

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

if TYPE_CHECKING:
    from collections.abc import Iterable

logger = logging.getLogger(__name__)

_DIGITS = re.compile(r"(\d+)")

RecordT = TypeVar("RecordT", bound=BaseModel)


def chapter_sort_key(chapter_id: str) -> tuple[Any, ...]:
    """Natural ordering key so ``"chapter-2"`` sorts before ``"chapter-10"``."""
    parts = _DIGITS.split(chapter_id)
    return tuple((0, int(part), "") if part.isdigit() else (1, 0, part) for part in parts)


def clamp_percent(value: Any) -> int:
    """Round and clamp a progress percentage into ``0..100``."""
    try:
        numeric = float(value)
    except (TypeError, ValueError) as exc:
        msg = f"progress must be numeric, got {value!r}"
        raise ValueError(msg) from exc
    if not math.isfinite(numeric):
        msg = f"progress must be finite, got {value!r}"
        raise ValueError(msg)
    return max(0, min(100, round(numeric)))


class Bookmark(BaseModel):
    """A bookmarked title. Presence is the only state that matters."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    title_id: str = Field(alias="titleId", min_length=1)
    title: str
    image: str | None = None
    added_at: int = Field(alias="addedAt", ge=0)

    @field_validator("image", mode="before")
    @classmethod
    def _blank_image_is_none(cls, value: Any) -> str | None:
        if value in (None, ""):
            return None
        return str(value)


class ReadingProgress(BaseModel):
    """Per-title reading state.

    ``chapters_read`` has set semantics and is kept in natural chapter order.
    ``chapter_progress`` maps chapter id to an integer percent in ``0..100``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    title_id: str = Field(alias="titleId", min_length=1)
    display_title: str = Field(default="", alias="displayTitle")
    cover_image: str = Field(default="", alias="coverImage")
    last_chapter_id: str = Field(default="", alias="lastChapterId")
    last_chapter_title: str = Field(default="", alias="lastChapterTitle")
    chapters_read: list[str] = Field(default_factory=list, alias="chaptersRead")
    chapter_progress: dict[str, int] = Field(default_factory=dict, alias="chapterProgress")
    total_chapters: int | None = Field(default=None, alias="totalChapters")
    updated_at: int = Field(alias="updatedAt", ge=0)

    @field_validator("display_title", "cover_image", "last_chapter_title", mode="before")
    @classmethod
    def _none_is_blank(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("chapters_read", mode="before")
    @classmethod
    def _normalize_chapters_read(cls, value: Any) -> list[str]:
        if value is None:
            return []
        if not isinstance(value, list | tuple | set | frozenset):
            msg = "chaptersRead must be a list of chapter ids"
            raise ValueError(msg)
        return sorted({str(item) for item in value}, key=chapter_sort_key)

    @field_validator("chapter_progress", mode="before")
    @classmethod
    def _normalize_chapter_progress(cls, value: Any) -> dict[str, int]:
        if value is None:
            return {}
        if not isinstance(value, Mapping):
            msg = "chapterProgress must be a mapping of chapter id to percent"
            raise ValueError(msg)
        return {str(chapter): clamp_percent(percent) for chapter, percent in value.items()}

    @field_validator("total_chapters", mode="before")
    @classmethod
    def _zero_total_is_unknown(cls, value: Any) -> int | None:
        if value in (None, "", 0):
            return None
        try:
            return int(value)
        except (TypeError, ValueError) as exc:
            msg = "totalChapters must be an integer"
            raise ValueError(msg) from exc


class SyncCursor(BaseModel):
    """Last successful full sync for the signed-in user."""

    model_config = ConfigDict(frozen=True)

    last_sync_at: int | None = None


def parse_records(
    model: type[RecordT],
    raw_items: Iterable[Any],
    *,
    source: str,
) -> list[RecordT]:
    """Validate raw dicts into *model*, skipping (and logging) malformed entries.

    One bad record never poisons the rest of the collection.
    """
    records: list[RecordT] = []
    skipped = 0
    for item in raw_items:
        if isinstance(item, model):
            records.append(item)
            continue
        try:
            records.append(model.model_validate(item))
        except ValidationError as exc:
            skipped += 1
            logger.warning(
                "malformed_record_skipped",
                extra={
                    "source": source,
                    "record_type": model.__name__,
                    "error_count": exc.error_count(),
                },
            )
    if skipped:
        logger.info(
            "malformed_records_summary",
            extra={"source": source, "skipped_count": skipped, "kept": len(records)},
        )
    return records
