"""Pure rules for folding a chapter position into a ReadingProgress record."""

from __future__ import annotations

from dataclasses import dataclass

from readsync.domain.models import ReadingProgress, chapter_sort_key, clamp_percent

DEFAULT_COMPLETION_THRESHOLD = 90


@dataclass(frozen=True)
class ChapterPosition:
    """A debounced reading position reported by the progress tracker."""

    title_id: str
    chapter_id: str
    percent: int
    chapter_title: str = ""
    display_title: str = ""
    cover_image: str = ""
    total_chapters: int | None = None


def apply_chapter_position(
    existing: ReadingProgress | None,
    position: ChapterPosition,
    *,
    now: int,
    completion_threshold: int = DEFAULT_COMPLETION_THRESHOLD,
) -> ReadingProgress:
    """Return a new record with *position* folded into *existing*.

    Per-chapter percent only ever rises, a chapter at or past
    *completion_threshold* joins ``chapters_read`` (idempotently), and the
    opened chapter becomes the title's last chapter.
    """
    percent = clamp_percent(position.percent)

    if existing is None:
        return ReadingProgress(
            title_id=position.title_id,
            display_title=position.display_title,
            cover_image=position.cover_image,
            last_chapter_id=position.chapter_id,
            last_chapter_title=position.chapter_title,
            chapters_read=[position.chapter_id] if percent >= completion_threshold else [],
            chapter_progress={position.chapter_id: percent},
            total_chapters=position.total_chapters,
            updated_at=now,
        )

    chapter_progress = dict(existing.chapter_progress)
    chapter_progress[position.chapter_id] = max(
        chapter_progress.get(position.chapter_id, 0), percent
    )

    chapters_read = set(existing.chapters_read)
    if chapter_progress[position.chapter_id] >= completion_threshold:
        chapters_read.add(position.chapter_id)

    total = max(existing.total_chapters or 0, position.total_chapters or 0)

    chapter_title = position.chapter_title
    if not chapter_title and position.chapter_id == existing.last_chapter_id:
        chapter_title = existing.last_chapter_title

    return existing.model_copy(
        update={
            "display_title": position.display_title or existing.display_title,
            "cover_image": position.cover_image or existing.cover_image,
            "last_chapter_id": position.chapter_id,
            "last_chapter_title": chapter_title,
            "chapters_read": sorted(chapters_read, key=chapter_sort_key),
            "chapter_progress": chapter_progress,
            "total_chapters": total or None,
            "updated_at": max(now, existing.updated_at),
        }
    )


def is_chapter_read(
    record: ReadingProgress | None,
    chapter_id: str,
    *,
    completion_threshold: int = DEFAULT_COMPLETION_THRESHOLD,
) -> bool:
    """A chapter counts as read when listed, or when its percent passed the threshold."""
    if record is None:
        return False
    if chapter_id in record.chapters_read:
        return True
    return record.chapter_progress.get(chapter_id, 0) >= completion_threshold


def title_completion_percent(record: ReadingProgress | None) -> int | None:
    """Share of the title's chapters read, or ``None`` while the total is unknown."""
    if record is None or not record.total_chapters:
        return None
    return min(100, round(len(record.chapters_read) / record.total_chapters * 100))
