"""Conflict-free merge rules for bookmarks and reading progress.

Every function here is pure and total: given two replicas of the same
collection it returns one convergent collection and never raises. Merging is
commutative and idempotent for reading progress, so calling it more often
than necessary is always safe.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, TypeVar

from readsync.domain.models import Bookmark, ReadingProgress, chapter_sort_key

if TYPE_CHECKING:
    from collections.abc import Iterable

RecordT = TypeVar("RecordT", Bookmark, ReadingProgress)


def index_by_title(records: Iterable[RecordT]) -> dict[str, RecordT]:
    """Key records by ``title_id``; the last duplicate in *records* wins."""
    return {record.title_id: record for record in records}


def sort_bookmarks(bookmarks: Iterable[Bookmark]) -> list[Bookmark]:
    """Newest bookmark first; ``title_id`` breaks ties so output is deterministic."""
    return sorted(bookmarks, key=lambda b: (-b.added_at, b.title_id))


def sort_progress(records: Iterable[ReadingProgress]) -> list[ReadingProgress]:
    """Most recently read first; ``title_id`` breaks ties."""
    return sorted(records, key=lambda p: (-p.updated_at, p.title_id))


def merge_bookmarks(local: Iterable[Bookmark], remote: Iterable[Bookmark]) -> list[Bookmark]:
    """Union of both bookmark replicas.

    Remote entries seed the result, so the remote copy wins a key collision
    (it is the one shared across devices). Local entries missing remotely are
    added. Every key from either side appears exactly once.
    """
    merged = index_by_title(remote)
    for bookmark in local:
        merged.setdefault(bookmark.title_id, bookmark)
    return sort_bookmarks(merged.values())


def merge_progress_record(local: ReadingProgress, remote: ReadingProgress) -> ReadingProgress:
    """Merge two records for the same title.

    Monotonic fields (chapters read, per-chapter percent, total chapters,
    timestamp) take the union or max. Presentation fields come from the record
    with the newer ``updated_at``; on a tie the remote record is used.
    """
    base = local if local.updated_at > remote.updated_at else remote

    chapter_progress = dict(remote.chapter_progress)
    for chapter_id, percent in local.chapter_progress.items():
        chapter_progress[chapter_id] = max(chapter_progress.get(chapter_id, 0), percent)

    total = max(local.total_chapters or 0, remote.total_chapters or 0)
    ordered_progress = sorted(chapter_progress.items(), key=lambda kv: chapter_sort_key(kv[0]))

    return ReadingProgress(
        title_id=base.title_id,
        display_title=base.display_title,
        cover_image=base.cover_image,
        last_chapter_id=base.last_chapter_id,
        last_chapter_title=base.last_chapter_title,
        chapters_read=sorted(
            set(local.chapters_read) | set(remote.chapters_read), key=chapter_sort_key
        ),
        chapter_progress=dict(ordered_progress),
        total_chapters=total or None,
        updated_at=max(local.updated_at, remote.updated_at),
    )


def merge_progress(
    local: Iterable[ReadingProgress], remote: Iterable[ReadingProgress]
) -> list[ReadingProgress]:
    """Merge two reading-progress replicas key by key.

    Titles present on one side only are copied unchanged; titles present on
    both are combined with :func:`merge_progress_record`.
    """
    local_map = index_by_title(local)
    remote_map = index_by_title(remote)

    merged: dict[str, ReadingProgress] = {}
    for title_id in local_map.keys() | remote_map.keys():
        local_item = local_map.get(title_id)
        remote_item = remote_map.get(title_id)
        if local_item is not None and remote_item is not None:
            merged[title_id] = merge_progress_record(local_item, remote_item)
        else:
            merged[title_id] = local_item or remote_item  # type: ignore[assignment]
    return sort_progress(merged.values())


def local_only(local: Iterable[RecordT], remote: Iterable[RecordT]) -> list[RecordT]:
    """Records present locally whose ``title_id`` the remote replica lacks."""
    remote_keys = {record.title_id for record in remote}
    return [record for record in local if record.title_id not in remote_keys]


def diverged_progress(
    merged: Iterable[ReadingProgress], remote: Iterable[ReadingProgress]
) -> list[ReadingProgress]:
    """Merged records the remote replica does not yet hold verbatim.

    Covers local-only titles as well as titles where the merge raised
    progress beyond what the remote copy knows.
    """
    remote_map = index_by_title(remote)
    return [record for record in merged if remote_map.get(record.title_id) != record]
