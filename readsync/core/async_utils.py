"""Async helper utilities."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Awaitable

T = TypeVar("T")


def raise_if_cancelled(exc: BaseException) -> None:
    """Re-raise ``asyncio.CancelledError`` so broad handlers never swallow cancellation."""

    if isinstance(exc, asyncio.CancelledError):  # pragma: no cover - simple guard
        raise exc


async def wait_with_timeout(awaitable: Awaitable[T], timeout: float | None) -> T:
    """Await *awaitable*, bounded by *timeout* seconds when one is given.

    ``None`` or a non-positive timeout waits indefinitely. Expiry surfaces as
    the builtin ``TimeoutError``.
    """
    if timeout is None or timeout <= 0:
        return await awaitable
    return await asyncio.wait_for(awaitable, timeout=timeout)
