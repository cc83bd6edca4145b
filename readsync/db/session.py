"""Database session management for the local SQLite replica.

One ``DatabaseSessionManager`` owns the peewee database for the lifetime of
the engine. Blocking peewee calls run in worker threads; writes are
serialized, reads go straight through thanks to WAL mode.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Any

import peewee
from playhouse.sqlite_ext import SqliteExtDatabase

from readsync.db.models import ALL_MODELS, database_proxy

if TYPE_CHECKING:
    from collections.abc import Callable

DB_OPERATION_TIMEOUT = 30.0
DB_MAX_RETRIES = 3
LOCK_RETRY_BASE_DELAY = 0.1

SQLITE_PRAGMAS = {
    "journal_mode": "wal",
    "synchronous": "normal",
    "foreign_keys": 1,
}

logger = logging.getLogger(__name__)


def _is_lock_contention(error: peewee.OperationalError) -> bool:
    message = str(error).lower()
    return "locked" in message or "busy" in message


@dataclass
class DatabaseSessionManager:
    """Peewee session for the device-local replica.

    Attributes:
        path: SQLite file path. ``":memory:"`` works for a single thread only,
            since every worker thread would open its own empty database.
        operation_timeout: Default per-operation timeout in seconds
        max_retries: Retries when SQLite reports the database as locked or busy
    """

    path: str
    operation_timeout: float = DB_OPERATION_TIMEOUT
    max_retries: int = DB_MAX_RETRIES
    _database: SqliteExtDatabase = field(init=False, repr=False)
    _write_lock: asyncio.Lock = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.path != ":memory:":
            Path(self.path).parent.mkdir(parents=True, exist_ok=True)
        self._database = SqliteExtDatabase(
            self.path, pragmas=SQLITE_PRAGMAS, check_same_thread=False
        )
        database_proxy.initialize(self._database)
        self._write_lock = asyncio.Lock()

    @property
    def database(self) -> SqliteExtDatabase:
        return self._database

    def connection_context(self) -> Any:
        return self._database.connection_context()

    def migrate(self) -> None:
        """Create the key-value table when it does not exist yet."""
        with self._database.connection_context(), self._database.bind_ctx(ALL_MODELS):
            self._database.create_tables(ALL_MODELS, safe=True)
        logger.info("db_migrated", extra={"path": self._display_path()})

    def close(self) -> None:
        if not self._database.is_closed():
            self._database.close()

    async def _safe_db_operation(
        self,
        operation: Callable[..., Any],
        *args: Any,
        timeout: float | None = None,
        operation_name: str = "database_operation",
        read_only: bool = False,
        **kwargs: Any,
    ) -> Any:
        """Run a blocking peewee *operation* off the event loop.

        Raises:
            TimeoutError: If the operation does not finish within the timeout
            peewee.OperationalError: If the database stays locked after retries
        """
        deadline = self.operation_timeout if timeout is None else timeout

        def _in_connection() -> Any:
            with self._database.connection_context():
                return operation(*args, **kwargs)

        async def _dispatch() -> Any:
            if read_only:
                return await asyncio.to_thread(_in_connection)
            async with self._write_lock:
                return await asyncio.to_thread(_in_connection)

        attempt = 0
        while True:
            try:
                return await asyncio.wait_for(_dispatch(), timeout=deadline)
            except TimeoutError:
                logger.error(
                    "db_operation_timeout",
                    extra={"operation": operation_name, "timeout": deadline, "attempt": attempt},
                )
                raise
            except peewee.OperationalError as exc:
                if not _is_lock_contention(exc) or attempt >= self.max_retries:
                    logger.error(
                        "db_operational_error",
                        extra={"operation": operation_name, "attempt": attempt, "error": str(exc)},
                    )
                    raise
                attempt += 1
                delay = LOCK_RETRY_BASE_DELAY * (2**attempt)
                logger.warning(
                    "db_locked_retrying",
                    extra={
                        "operation": operation_name,
                        "attempt": attempt,
                        "max_retries": self.max_retries,
                        "delay_seconds": delay,
                    },
                )
                await asyncio.sleep(delay)

    def _display_path(self) -> str:
        if self.path == ":memory:":
            return self.path
        return Path(self.path).name
