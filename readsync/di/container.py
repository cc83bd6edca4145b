import logging
from collections.abc import AsyncIterator
from contextlib import AsyncExitStack, asynccontextmanager
from dataclasses import dataclass

from readsync.adapters.remote.cached import CachedRemoteStore
from readsync.adapters.remote.client import SupabaseRemoteStore
from readsync.adapters.remote.protocols import RemoteStoreProtocol
from readsync.application.sync.orchestrator import SyncContext, SyncOrchestrator
from readsync.config import AppConfig, load_config
from readsync.core.logging_utils import get_logger, setup_json_logging
from readsync.db.session import DatabaseSessionManager
from readsync.infrastructure.cache import TtlCache
from readsync.infrastructure.persistence.sqlite.local_store import SqliteLocalStore

logger = get_logger(__name__)


@dataclass
class SyncEngine:
    """Wired-up sync components sharing one database and one HTTP client."""

    config: AppConfig
    db: DatabaseSessionManager
    local: SqliteLocalStore
    remote: RemoteStoreProtocol | None
    orchestrator: SyncOrchestrator


@asynccontextmanager
async def open_sync_engine(
    cfg: AppConfig | None = None,
    *,
    db: DatabaseSessionManager | None = None,
    remote: RemoteStoreProtocol | None = None,
) -> AsyncIterator[SyncEngine]:
    """Construct a SyncEngine and release its resources on exit.

    Args:
        cfg: Application configuration. If None, loads from environment.
        db: Database session manager. If None, creates and migrates one from config.
        remote: Remote store. If None and Supabase is configured, an HTTP client
            wrapped in a TTL fetch cache is created.
    """
    cfg = cfg or load_config()

    async with AsyncExitStack() as stack:
        if db is None:
            db = DatabaseSessionManager(
                path=cfg.runtime.db_path,
                operation_timeout=cfg.database.operation_timeout,
                max_retries=cfg.database.max_retries,
            )
            db.migrate()
            stack.callback(db.close)

        if remote is None and cfg.remote.enabled:
            client = await stack.enter_async_context(SupabaseRemoteStore.from_config(cfg.remote))
            remote = CachedRemoteStore(
                client, TtlCache(cfg.remote.fetch_cache_ttl_sec, name="remote_fetch")
            )
        elif remote is None:
            logger.info("sync_engine_local_only", extra={"db_path": cfg.runtime.db_path})

        local = SqliteLocalStore(db)
        orchestrator = SyncOrchestrator(SyncContext.from_config(cfg, local, remote))
        yield SyncEngine(
            config=cfg, db=db, local=local, remote=remote, orchestrator=orchestrator
        )


def configure_logging(cfg: AppConfig) -> None:
    """Apply the runtime logging settings."""
    if cfg.runtime.log_json or cfg.runtime.log_file:
        setup_json_logging(cfg.runtime.log_level, log_file=cfg.runtime.log_file)
    else:
        logging.basicConfig(
            level=getattr(logging, cfg.runtime.log_level, logging.INFO),
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        )
