"""Command-line access to the sync engine.

Usage:
    # Run a full sync for a user and print the result
    python -m readsync.cli.sync --user-id USER sync

    # Show the cursor, whether a sync is due and local counts
    python -m readsync.cli.sync --user-id USER status

    # Dump the local replica as JSON
    python -m readsync.cli.sync export

    # Use another database file
    python -m readsync.cli.sync --db /tmp/readsync.db status
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import TYPE_CHECKING, Any

from readsync.config import load_config
from readsync.core.time_utils import ms_to_iso
from readsync.di.container import configure_logging, open_sync_engine

if TYPE_CHECKING:
    from readsync.di.container import SyncEngine

logger = logging.getLogger(__name__)

COMMANDS = ("status", "sync", "export")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m readsync.cli.sync",
        description="Inspect and synchronize the local reading replica.",
    )
    parser.add_argument("command", choices=COMMANDS, nargs="?", default="status")
    parser.add_argument("--user-id", dest="user_id", default=None, help="Signed-in user id")
    parser.add_argument("--db", dest="db_path", default=None, help="Override DB_PATH")
    parser.add_argument(
        "--json", dest="as_json", action="store_true", help="Print machine-readable output"
    )
    return parser


async def cmd_status(engine: SyncEngine, user_id: str | None, *, as_json: bool) -> int:
    orchestrator = engine.orchestrator
    last_sync_at = await engine.local.get_last_sync_at()
    payload: dict[str, Any] = {
        "last_sync_at": ms_to_iso(last_sync_at) if last_sync_at else None,
        "sync_needed": await orchestrator.is_sync_needed(),
        "bookmarks": len(await orchestrator.list_bookmarks()),
        "titles_in_history": len(await orchestrator.get_reading_history()),
        "remote_configured": engine.remote is not None,
    }
    if user_id:
        status = await orchestrator.get_status(user_id)
        payload["state"] = status.state.value
        payload["last_error"] = status.last_error

    if as_json:
        print(json.dumps(payload, indent=2))
    else:
        for key, value in payload.items():
            print(f"{key:>18}: {value}")
    return 0


async def cmd_sync(engine: SyncEngine, user_id: str | None, *, as_json: bool) -> int:
    if not user_id:
        print("Error: --user-id is required for sync")
        return 2
    result = await engine.orchestrator.full_sync(user_id)
    if as_json:
        print(result.model_dump_json(indent=2))
    else:
        print(f"Success: {result.success}")
        print(f"Bookmarks synced: {result.bookmarks_synced}")
        print(f"Progress synced: {result.progress_synced}")
        for error in result.errors:
            print(f"  ! {error}")
    return 0 if result.success else 1


async def cmd_export(engine: SyncEngine) -> int:
    bookmarks = await engine.orchestrator.list_bookmarks()
    history = await engine.orchestrator.get_reading_history()
    payload = {
        "bookmarks": [bookmark.model_dump(mode="json", by_alias=True) for bookmark in bookmarks],
        "history": [record.model_dump(mode="json", by_alias=True) for record in history],
    }
    print(json.dumps(payload, indent=2, ensure_ascii=False))
    return 0


async def run(args: argparse.Namespace) -> int:
    overrides = {"DB_PATH": args.db_path} if args.db_path else None
    try:
        cfg = load_config(overrides)
    except RuntimeError as exc:
        print(f"Error: {exc}")
        return 2

    configure_logging(cfg)
    async with open_sync_engine(cfg) as engine:
        if args.command == "sync":
            return await cmd_sync(engine, args.user_id, as_json=args.as_json)
        if args.command == "export":
            return await cmd_export(engine)
        return await cmd_status(engine, args.user_id, as_json=args.as_json)


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        print("\nInterrupted by user")
        return 130


if __name__ == "__main__":
    sys.exit(main())
