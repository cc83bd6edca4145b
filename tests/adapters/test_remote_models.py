"""Tests for converting PostgREST rows into domain records."""

from __future__ import annotations

import pytest

from readsync.adapters.remote.models import BookmarkRow, ProgressRow, parse_rows
from readsync.domain.exceptions import MalformedRecordError


def test_progress_row_with_unreadable_timestamp_is_malformed():
    row = ProgressRow(user_id="u1", manhwa_id="solo", last_read_at="not a date")

    with pytest.raises(MalformedRecordError) as excinfo:
        row.to_domain()

    assert excinfo.value.details == {"title_id": "solo", "field": "last_read_at"}


def test_row_with_blank_title_id_is_malformed():
    row = BookmarkRow(user_id="u1", manhwa_id="", title="Nameless")

    with pytest.raises(MalformedRecordError) as excinfo:
        row.to_domain()

    assert excinfo.value.details["title_id"] == ""
    assert excinfo.value.__cause__ is not None


def test_bookmark_without_created_at_defaults_to_epoch():
    bookmark = BookmarkRow(user_id="u1", manhwa_id="solo", title="Solo").to_domain()

    assert bookmark.added_at == 0


def test_parse_rows_skips_malformed_and_invalid_rows():
    rows = [
        {"user_id": "u1", "manhwa_id": "ok", "title": "OK", "created_at": "2024-01-02T00:00:00Z"},
        {"user_id": "u1", "manhwa_id": "late", "title": "Late", "created_at": "someday"},
        {"user_id": "u1", "manhwa_id": "", "title": "Blank"},
        {"user_id": "u1", "title": "no id"},
    ]

    bookmarks = parse_rows(BookmarkRow, rows, table="user_bookmarks")

    assert [b.title_id for b in bookmarks] == ["ok"]
    assert bookmarks[0].added_at == 1704153600000
