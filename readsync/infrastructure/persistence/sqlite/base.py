from __future__ import annotations

from typing import TYPE_CHECKING, Any

import peewee

from readsync.domain.exceptions import LocalStoreError

if TYPE_CHECKING:
    from collections.abc import Callable

    from readsync.db.session import DatabaseSessionManager


class SqliteBaseRepository:
    """Base repository for the SQLite-backed local replica.

    Peewee and timeout failures surface as :class:`LocalStoreError` so callers
    only deal with the domain error taxonomy.
    """

    def __init__(self, session_manager: DatabaseSessionManager) -> None:
        self._session = session_manager

    async def _execute(
        self,
        operation: Callable[..., Any],
        *args: Any,
        operation_name: str = "repository_operation",
        read_only: bool = False,
        **kwargs: Any,
    ) -> Any:
        try:
            return await self._session._safe_db_operation(
                operation,
                *args,
                operation_name=operation_name,
                read_only=read_only,
                **kwargs,
            )
        except (peewee.PeeweeException, TimeoutError) as exc:
            action = "read" if read_only else "write"
            msg = f"local store {action} failed during {operation_name}: {exc}"
            raise LocalStoreError(msg, {"operation": operation_name}) from exc
