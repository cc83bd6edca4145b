"""Supabase (PostgREST) client for the remote bookmark and progress tables."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

import httpx

from readsync.adapters.remote.models import BookmarkRow, ProgressRow, parse_rows
from readsync.domain.exceptions import (
    RemoteStoreError,
    RemoteTimeoutError,
    RemoteUnavailableError,
)
from readsync.utils.retry_utils import RETRYABLE_STATUS_CODES, retry_with_backoff

if TYPE_CHECKING:
    from typing import Self

    from readsync.config import RemoteConfig
    from readsync.domain.models import Bookmark, ReadingProgress

logger = logging.getLogger(__name__)

BOOKMARKS_PATH = "/rest/v1/user_bookmarks"
PROGRESS_PATH = "/rest/v1/reading_progress"
CONFLICT_KEY = "user_id,manhwa_id"

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 0.5
DEFAULT_MAX_DELAY = 8.0


class SupabaseRemoteStore:
    """Async HTTP client for the remote replica.

    Upserts are idempotent on ``(user_id, manhwa_id)``. Failures are raised
    as :class:`RemoteStoreError` once transient errors have exhausted their
    retries.
    """

    def __init__(
        self,
        base_url: str,
        anon_key: str,
        access_token: str = "",
        timeout: float = 10.0,
        *,
        provider: str = "mgeko",
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_base_delay: float = DEFAULT_BASE_DELAY,
        retry_max_delay: float = DEFAULT_MAX_DELAY,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        """Initialize the remote store client.

        Args:
            base_url: Project URL, e.g. ``https://xyz.supabase.co``
            anon_key: Public API key sent as ``apikey``
            access_token: User session token; the anon key is used when empty
            timeout: Per-request timeout in seconds
            provider: Content provider tag written into every row
            max_retries: Maximum number of retry attempts for transient failures
            retry_base_delay: Base delay between retries in seconds
            retry_max_delay: Maximum delay between retries in seconds
            transport: Optional httpx transport (tests use ``httpx.MockTransport``)
        """
        self.base_url = base_url.rstrip("/")
        self.anon_key = anon_key
        self.access_token = access_token
        self.timeout = timeout
        self.provider = provider
        self.max_retries = max_retries
        self.retry_base_delay = retry_base_delay
        self.retry_max_delay = retry_max_delay
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

    @classmethod
    def from_config(cls, config: RemoteConfig, **kwargs: Any) -> SupabaseRemoteStore:
        if not config.enabled:
            msg = "remote store is not configured (SUPABASE_URL / SUPABASE_ANON_KEY)"
            raise RemoteUnavailableError(msg, retryable=False)
        return cls(
            config.url,
            config.anon_key,
            config.access_token,
            config.timeout_sec,
            provider=config.provider,
            max_retries=config.max_retries,
            **kwargs,
        )

    async def __aenter__(self) -> Self:
        self._client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={
                "apikey": self.anon_key,
                "Authorization": f"Bearer {self.access_token or self.anon_key}",
                "Content-Type": "application/json",
            },
            timeout=self.timeout,
            transport=self._transport,
        )
        return self

    async def __aexit__(self, *args: object) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            msg = "Client not initialized. Use async context manager."
            raise RemoteUnavailableError(msg, retryable=False)
        return self._client

    async def fetch_bookmarks(self, user_id: str) -> list[Bookmark]:
        rows = await self._fetch_rows(
            BOOKMARKS_PATH,
            params={"select": "*", "user_id": f"eq.{user_id}", "order": "created_at.desc"},
            operation="fetch_bookmarks",
        )
        bookmarks = parse_rows(BookmarkRow, rows, table="user_bookmarks")
        logger.debug(
            "remote_bookmarks_fetched", extra={"user_id": user_id, "count": len(bookmarks)}
        )
        return bookmarks

    async def fetch_progress(self, user_id: str) -> list[ReadingProgress]:
        rows = await self._fetch_rows(
            PROGRESS_PATH,
            params={"select": "*", "user_id": f"eq.{user_id}", "order": "last_read_at.desc"},
            operation="fetch_progress",
        )
        records = parse_rows(ProgressRow, rows, table="reading_progress")
        logger.debug("remote_progress_fetched", extra={"user_id": user_id, "count": len(records)})
        return records

    async def upsert_bookmark(self, user_id: str, bookmark: Bookmark) -> None:
        await self.upsert_bookmarks(user_id, [bookmark])

    async def upsert_bookmarks(self, user_id: str, bookmarks: list[Bookmark]) -> None:
        if not bookmarks:
            return
        rows = [
            BookmarkRow.from_domain(user_id, bookmark, provider=self.provider).model_dump()
            for bookmark in bookmarks
        ]
        await self._upsert(BOOKMARKS_PATH, rows, operation="upsert_bookmarks")
        logger.info("remote_bookmarks_upserted", extra={"user_id": user_id, "count": len(rows)})

    async def delete_bookmark(self, user_id: str, title_id: str) -> None:
        await self._request(
            "DELETE",
            BOOKMARKS_PATH,
            params={"user_id": f"eq.{user_id}", "manhwa_id": f"eq.{title_id}"},
            operation="delete_bookmark",
        )
        logger.info("remote_bookmark_deleted", extra={"user_id": user_id, "title_id": title_id})

    async def upsert_progress(self, user_id: str, progress: ReadingProgress) -> None:
        await self.upsert_progress_batch(user_id, [progress])

    async def upsert_progress_batch(self, user_id: str, records: list[ReadingProgress]) -> None:
        if not records:
            return
        rows = [
            ProgressRow.from_domain(user_id, record, provider=self.provider).model_dump()
            for record in records
        ]
        await self._upsert(PROGRESS_PATH, rows, operation="upsert_progress")
        logger.info("remote_progress_upserted", extra={"user_id": user_id, "count": len(rows)})

    async def clear_progress(self, user_id: str) -> None:
        await self._request(
            "DELETE",
            PROGRESS_PATH,
            params={"user_id": f"eq.{user_id}"},
            operation="clear_progress",
        )
        logger.info("remote_progress_cleared", extra={"user_id": user_id})

    async def _fetch_rows(
        self, path: str, *, params: dict[str, str], operation: str
    ) -> list[Any]:
        response = await self._request("GET", path, params=params, operation=operation)
        try:
            data = response.json()
        except ValueError as exc:
            msg = f"{operation} returned invalid JSON"
            raise RemoteStoreError(msg, retryable=False) from exc
        if not isinstance(data, list):
            msg = f"{operation} returned {type(data).__name__}, expected a list of rows"
            raise RemoteStoreError(msg, retryable=False)
        return data

    async def _upsert(self, path: str, rows: list[dict[str, Any]], *, operation: str) -> None:
        await self._request(
            "POST",
            path,
            params={"on_conflict": CONFLICT_KEY},
            json=rows,
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
            operation=operation,
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        operation: str,
        params: dict[str, str] | None = None,
        json: Any = None,
        headers: dict[str, str] | None = None,
    ) -> httpx.Response:
        client = self.client

        async def _send() -> httpx.Response:
            response = await client.request(
                method, path, params=params, json=json, headers=headers
            )
            response.raise_for_status()
            return response

        try:
            return await retry_with_backoff(
                _send,
                max_retries=self.max_retries,
                base_delay=self.retry_base_delay,
                max_delay=self.retry_max_delay,
                operation_name=operation,
            )
        except httpx.HTTPStatusError as exc:
            status = exc.response.status_code
            msg = f"{operation} failed with HTTP {status}"
            raise RemoteStoreError(
                msg,
                retryable=status in RETRYABLE_STATUS_CODES,
                status_code=status,
                details={"body": exc.response.text[:500]},
            ) from exc
        except httpx.TimeoutException as exc:
            msg = f"{operation} timed out after {self.timeout}s"
            raise RemoteTimeoutError(msg) from exc
        except httpx.HTTPError as exc:
            msg = f"{operation} failed: {exc}"
            raise RemoteStoreError(msg) from exc
