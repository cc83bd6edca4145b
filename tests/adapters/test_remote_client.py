"""Tests for the Supabase remote store client using httpx.MockTransport."""

from __future__ import annotations

import json

import httpx
import pytest

from readsync.adapters.remote import SupabaseRemoteStore
from readsync.config import RemoteConfig
from readsync.domain.exceptions import (
    RemoteStoreError,
    RemoteTimeoutError,
    RemoteUnavailableError,
)
from readsync.domain.models import Bookmark, ReadingProgress

BASE_URL = "https://project.supabase.co"


class RecordingHandler:
    """MockTransport handler that replays queued responses and records requests."""

    def __init__(self, *responses: httpx.Response | Exception) -> None:
        self.responses = list(responses)
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(item, Exception):
            raise item
        return item


def _store(handler: RecordingHandler, **kwargs) -> SupabaseRemoteStore:
    return SupabaseRemoteStore(
        BASE_URL,
        "anon-key",
        "user-token",
        provider="mgeko",
        retry_base_delay=0.001,
        retry_max_delay=0.002,
        transport=httpx.MockTransport(handler),
        **kwargs,
    )


@pytest.mark.asyncio
async def test_fetch_bookmarks_maps_rows():
    handler = RecordingHandler(
        httpx.Response(
            200,
            json=[
                {
                    "user_id": "u1",
                    "manhwa_id": "solo",
                    "title": "Solo Leveling",
                    "image": "https://img/solo.jpg",
                    "provider": "mgeko",
                    "created_at": "2024-01-02T03:04:05.678Z",
                },
                {"user_id": "u1", "title": "missing manhwa_id"},
            ],
        )
    )

    async with _store(handler) as store:
        bookmarks = await store.fetch_bookmarks("u1")

    assert bookmarks == [
        Bookmark(
            title_id="solo",
            title="Solo Leveling",
            image="https://img/solo.jpg",
            added_at=1704164645678,
        )
    ]
    request = handler.requests[0]
    assert request.method == "GET"
    assert request.url.path == "/rest/v1/user_bookmarks"
    assert request.url.params["user_id"] == "eq.u1"
    assert request.url.params["order"] == "created_at.desc"
    assert request.headers["apikey"] == "anon-key"
    assert request.headers["Authorization"] == "Bearer user-token"


@pytest.mark.asyncio
async def test_fetch_progress_maps_rows_and_skips_bad_timestamps():
    handler = RecordingHandler(
        httpx.Response(
            200,
            json=[
                {
                    "user_id": "u1",
                    "manhwa_id": "solo",
                    "manhwa_title": "Solo Leveling",
                    "manhwa_image": None,
                    "last_chapter_id": "12",
                    "last_chapter_title": "Chapter 12",
                    "chapters_read": ["11", "10"],
                    "chapter_progress": {"12": 40},
                    "total_chapters": 0,
                    "last_read_at": "2024-01-02T03:04:05.678Z",
                },
                {"user_id": "u1", "manhwa_id": "bad", "last_read_at": "not a date"},
            ],
        )
    )

    async with _store(handler) as store:
        records = await store.fetch_progress("u1")

    assert len(records) == 1
    record = records[0]
    assert record.title_id == "solo"
    assert record.display_title == "Solo Leveling"
    assert record.cover_image == ""
    assert record.chapters_read == ["10", "11"]
    assert record.chapter_progress == {"12": 40}
    assert record.total_chapters is None
    assert record.updated_at == 1704164645678
    assert handler.requests[0].url.params["order"] == "last_read_at.desc"


@pytest.mark.asyncio
async def test_upsert_progress_posts_idempotent_rows():
    handler = RecordingHandler(httpx.Response(201))
    record = ReadingProgress(
        title_id="solo",
        display_title="Solo Leveling",
        last_chapter_id="12",
        chapters_read=["10"],
        chapter_progress={"12": 40},
        total_chapters=200,
        updated_at=1704164645678,
    )

    async with _store(handler) as store:
        await store.upsert_progress("u1", record)

    request = handler.requests[0]
    assert request.method == "POST"
    assert request.url.path == "/rest/v1/reading_progress"
    assert request.url.params["on_conflict"] == "user_id,manhwa_id"
    assert "resolution=merge-duplicates" in request.headers["Prefer"]
    body = json.loads(request.content)
    assert body == [
        {
            "user_id": "u1",
            "manhwa_id": "solo",
            "manhwa_title": "Solo Leveling",
            "manhwa_image": "",
            "last_chapter_id": "12",
            "last_chapter_title": "",
            "chapters_read": ["10"],
            "chapter_progress": {"12": 40},
            "total_chapters": 200,
            "provider": "mgeko",
            "last_read_at": "2024-01-02T03:04:05.678Z",
        }
    ]


@pytest.mark.asyncio
async def test_upsert_bookmarks_with_empty_batch_sends_nothing():
    handler = RecordingHandler(httpx.Response(201))

    async with _store(handler) as store:
        await store.upsert_bookmarks("u1", [])
        await store.upsert_progress_batch("u1", [])

    assert handler.requests == []


@pytest.mark.asyncio
async def test_delete_bookmark_and_clear_progress_filters():
    handler = RecordingHandler(httpx.Response(204))

    async with _store(handler) as store:
        await store.delete_bookmark("u1", "solo")
        await store.clear_progress("u1")

    delete_bookmark, clear = handler.requests
    assert delete_bookmark.method == "DELETE"
    assert delete_bookmark.url.params["manhwa_id"] == "eq.solo"
    assert delete_bookmark.url.params["user_id"] == "eq.u1"
    assert clear.url.path == "/rest/v1/reading_progress"
    assert "manhwa_id" not in clear.url.params


@pytest.mark.asyncio
async def test_transient_status_is_retried():
    handler = RecordingHandler(httpx.Response(503), httpx.Response(200, json=[]))

    async with _store(handler) as store:
        assert await store.fetch_bookmarks("u1") == []

    assert len(handler.requests) == 2


@pytest.mark.asyncio
async def test_exhausted_retries_raise_retryable_error():
    handler = RecordingHandler(httpx.Response(503))

    async with _store(handler, max_retries=2) as store:
        with pytest.raises(RemoteStoreError) as exc_info:
            await store.fetch_progress("u1")

    assert exc_info.value.status_code == 503
    assert exc_info.value.retryable is True
    assert len(handler.requests) == 3


@pytest.mark.asyncio
async def test_client_error_is_permanent_and_not_retried():
    handler = RecordingHandler(httpx.Response(401, json={"message": "JWT expired"}))

    async with _store(handler) as store:
        with pytest.raises(RemoteStoreError) as exc_info:
            await store.delete_bookmark("u1", "solo")

    assert exc_info.value.status_code == 401
    assert exc_info.value.retryable is False
    assert len(handler.requests) == 1


@pytest.mark.asyncio
async def test_timeout_maps_to_remote_timeout_error():
    handler = RecordingHandler(httpx.ReadTimeout("too slow"))

    async with _store(handler, max_retries=1) as store:
        with pytest.raises(RemoteTimeoutError):
            await store.fetch_bookmarks("u1")

    assert len(handler.requests) == 2


@pytest.mark.asyncio
async def test_non_list_payload_is_rejected():
    handler = RecordingHandler(httpx.Response(200, json={"rows": []}))

    async with _store(handler) as store:
        with pytest.raises(RemoteStoreError) as exc_info:
            await store.fetch_bookmarks("u1")

    assert exc_info.value.retryable is False


@pytest.mark.asyncio
async def test_calls_outside_context_manager_fail():
    store = _store(RecordingHandler(httpx.Response(200, json=[])))

    with pytest.raises(RemoteUnavailableError):
        await store.fetch_bookmarks("u1")


def test_from_config_requires_enabled_remote():
    with pytest.raises(RemoteUnavailableError):
        SupabaseRemoteStore.from_config(RemoteConfig())

    store = SupabaseRemoteStore.from_config(
        RemoteConfig(url="https://project.supabase.co/", anon_key="anon", provider="MGEKO")
    )
    assert store.base_url == BASE_URL
    assert store.provider == "mgeko"
    assert store.access_token == ""
