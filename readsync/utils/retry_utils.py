"""Retry utilities for remote store calls that fail with transient errors.

Network blips, rate limits and gateway errors are common on mobile links; a
short exponential backoff absorbs most of them before the sync engine has to
fall back to "local authoritative, remote stale".
"""

from __future__ import annotations

import asyncio
import logging
import random
from typing import TYPE_CHECKING, TypeVar

import httpx

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

T = TypeVar("T")

# HTTP status codes that should trigger a retry
RETRYABLE_STATUS_CODES = frozenset({408, 425, 429, 500, 502, 503, 504})

_TRANSIENT_KEYWORDS = (
    "timeout",
    "timed out",
    "connection",
    "network",
    "rate limit",
    "too many requests",
    "temporary",
    "unavailable",
    "bad gateway",
    "try again",
)


def is_transient_error(error: BaseException) -> bool:
    """Determine if an error is transient and worth retrying.

    Transient errors include connection failures, timeouts, rate limiting and
    temporary server errors (5xx). Errors carrying an explicit ``retryable``
    attribute are trusted as-is.
    """
    explicit = getattr(error, "retryable", None)
    if isinstance(explicit, bool):
        return explicit

    if isinstance(error, httpx.HTTPStatusError):
        return error.response.status_code in RETRYABLE_STATUS_CODES
    if isinstance(error, (httpx.TimeoutException, httpx.TransportError, TimeoutError)):
        return True

    error_str = str(error).lower()
    if any(keyword in error_str for keyword in _TRANSIENT_KEYWORDS):
        return True

    exception_type = type(error).__name__.lower()
    return any(name in exception_type for name in ("timeout", "connectionerror", "networkerror"))


def calculate_delay(attempt: int, base_delay: float, max_delay: float, jitter: float) -> float:
    """Exponential backoff delay for *attempt* (0-indexed) with proportional jitter."""
    delay = min(base_delay * (2**attempt), max_delay)
    return delay + delay * jitter * random.random()


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    *,
    max_retries: int = 3,
    base_delay: float = 0.5,
    max_delay: float = 8.0,
    jitter: float = 0.1,
    operation_name: str = "operation",
) -> T:
    """Execute an async callable, retrying transient failures with backoff.

    Non-transient errors propagate immediately. When retries are exhausted the
    last error is re-raised unchanged so callers can map it to their own
    error taxonomy.

    Example:
        >>> rows = await retry_with_backoff(
        ...     lambda: client.get("/rest/v1/user_bookmarks"),
        ...     operation_name="fetch_bookmarks",
        ... )
    """
    attempt = 0
    while True:
        try:
            return await func()
        except Exception as exc:
            if isinstance(exc, asyncio.CancelledError) or not is_transient_error(exc):
                raise
            if attempt >= max_retries:
                logger.warning(
                    "retry_exhausted",
                    extra={
                        "operation": operation_name,
                        "attempts": attempt + 1,
                        "error": str(exc),
                    },
                )
                raise

            delay = calculate_delay(attempt, base_delay, max_delay, jitter)
            logger.debug(
                "retrying_after_transient_error",
                extra={
                    "operation": operation_name,
                    "attempt": attempt + 1,
                    "max_retries": max_retries,
                    "delay_seconds": round(delay, 2),
                    "error": str(exc),
                },
            )
            await asyncio.sleep(delay)
            attempt += 1
