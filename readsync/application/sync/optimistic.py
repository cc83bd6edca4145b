"""Optimistic mutation helper: apply locally, then try the remote write."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

from readsync.application.sync.results import MutationResult
from readsync.core.async_utils import raise_if_cancelled, wait_with_timeout
from readsync.domain.exceptions import ReadSyncError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OptimisticMutation:
    """A local change paired with the remote write that mirrors it.

    ``remote`` is ``None`` for local-only mutations (signed out, or a caller
    that asked not to push). ``rollback`` restores the previous local state
    and is only used when rollback on remote failure is enabled.
    """

    name: str
    apply: Callable[[], Awaitable[None]]
    remote: Callable[[], Awaitable[None]] | None = None
    rollback: Callable[[], Awaitable[None]] | None = None


def describe_error(exc: BaseException) -> str:
    """Short human-readable message for an exception caught at a sync boundary."""
    if isinstance(exc, ReadSyncError):
        return exc.message
    if isinstance(exc, TimeoutError):
        return "remote call timed out"
    return str(exc) or type(exc).__name__


async def run_optimistic(
    mutation: OptimisticMutation,
    *,
    rollback_on_failure: bool = False,
    timeout: float | None = None,
    user_id: str | None = None,
) -> MutationResult:
    """Apply *mutation* locally, then attempt its remote counterpart.

    Local failures propagate. A remote failure never does: it is reported in
    the returned :class:`MutationResult`, and the local change is kept unless
    *rollback_on_failure* is set.
    """
    await mutation.apply()
    result = MutationResult(applied_locally=True)

    if mutation.remote is None:
        return result

    try:
        await wait_with_timeout(mutation.remote(), timeout)
    except Exception as exc:
        raise_if_cancelled(exc)
        result.error = describe_error(exc)
        logger.warning(
            "optimistic_remote_write_failed",
            extra={
                "operation": mutation.name,
                "user_id": user_id,
                "error": result.error,
                "rollback": rollback_on_failure and mutation.rollback is not None,
            },
        )
        if rollback_on_failure and mutation.rollback is not None:
            await mutation.rollback()
            result.applied_locally = False
            result.rolled_back = True
        return result

    result.pushed_remote = True
    return result
