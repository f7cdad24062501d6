"""
Battleboard CLI Commands.

Commands for running the ingestion service and for driving single
iterations of each loop by hand.
"""

from __future__ import annotations

import argparse
import asyncio
import signal
from dataclasses import asdict
from typing import Any

from ..core.client import GameInfoClient
from ..core.config import get_settings
from ..core.formatters import format_unix, get_utc_timestamp
from ..core.logging import get_logger
from ..services.battles.discovery import BattleDiscovery
from ..services.battles.queue import BattleWorkQueue
from ..services.battles.worker import BattleWorker
from ..services.killfeed.expunge import CleanupTask
from ..services.killfeed.ingest import KillFeedIngestor
from ..services.notifications.discord_client import DiscordClient
from ..services.scheduler import BattleboardService
from ..services.store.sqlite import SQLiteBattleboardStore

logger = get_logger(__name__)


def _client() -> GameInfoClient:
    s = get_settings()
    return GameInfoClient(base_url=s.base_url, timeout=s.request_timeout, max_attempts=s.max_attempts)


async def _open_store(read_only: bool = False) -> SQLiteBattleboardStore:
    s = get_settings()
    store = SQLiteBattleboardStore(s.db_path, read_only=read_only, region=s.region)
    await store.initialize()
    return store


# =============================================================================
# run
# =============================================================================


def cmd_run(args: argparse.Namespace) -> dict:
    """
    Run every loop in the foreground until interrupted.

    Use Ctrl+C (or SIGTERM) to stop.
    """

    async def run_service() -> None:
        service = BattleboardService()
        stop_event = asyncio.Event()

        def signal_handler() -> None:
            logger.info("Shutdown signal received")
            stop_event.set()

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, signal_handler)
            except NotImplementedError:
                # Windows doesn't support add_signal_handler
                pass

        await service.run_forever(stop_event)

    try:
        asyncio.run(run_service())
    except KeyboardInterrupt:
        print("\nInterrupted")
    return {}


# =============================================================================
# poll-kills
# =============================================================================


def cmd_poll_kills(args: argparse.Namespace) -> dict:
    """Run one kill-feed cycle."""
    s = get_settings()

    async def run_cycle() -> dict[str, Any]:
        store = await _open_store()
        try:
            async with _client() as client:
                ingestor = KillFeedIngestor(
                    client,
                    store,
                    page_size=s.kill_page_size,
                    recent_ids_limit=s.recent_ids_limit,
                    max_pages=s.max_overlap_pages,
                )
                stats = await ingestor.run_once()
        finally:
            await store.close()
        return asdict(stats)

    result = asyncio.run(run_cycle())
    result["query_timestamp"] = get_utc_timestamp()
    return result


# =============================================================================
# discover
# =============================================================================


def cmd_discover(args: argparse.Namespace) -> dict:
    """Run one discovery + enqueue pass (nothing is processed)."""
    s = get_settings()

    async def run_pass() -> dict[str, Any]:
        store = await _open_store()
        try:
            async with _client() as client:
                work_queue = BattleWorkQueue(s.work_queue_size)
                discovery = BattleDiscovery(
                    client,
                    store,
                    work_queue,
                    page_size=s.battle_page_size,
                    max_pages=s.max_discovery_pages,
                    enqueue_limit=s.enqueue_limit,
                )
                inserted = await discovery.fetch_new_battles()
                eligible = await discovery.enqueue_new_battles()
                stats = discovery.last_stats
        finally:
            await store.close()
        return {
            "boundary_battle_id": stats.boundary_battle_id,
            "pages": stats.pages,
            "seen": stats.seen,
            "inserted": inserted,
            "eligible": eligible,
        }

    result = asyncio.run(run_pass())
    result["query_timestamp"] = get_utc_timestamp()
    return result


# =============================================================================
# process
# =============================================================================


def cmd_process(args: argparse.Namespace) -> dict:
    """Fetch and process one battle through the worker path."""
    s = get_settings()

    async def run_battle() -> dict[str, Any]:
        store = await _open_store()
        notifier = DiscordClient(s.discord_webhook_url) if s.discord_webhook_url else None
        try:
            async with _client() as client:
                worker = BattleWorker(
                    client,
                    store,
                    BattleWorkQueue(1),
                    region=s.region,
                    kills_page_size=s.battle_kills_page_size,
                    notifier=notifier,
                    notify_min_players=s.notify_min_players,
                )
                status = await worker.process_battle_id(args.battle_id)
                battle = await store.get_battle(args.battle_id)
        finally:
            if notifier is not None:
                await notifier.close()
            await store.close()

        result: dict[str, Any] = {"battle_id": args.battle_id, "status": status}
        if battle is not None:
            result["battle"] = asdict(battle)
        if status != "processed":
            result["error"] = "battle_not_processed"
        return result

    result = asyncio.run(run_battle())
    result["query_timestamp"] = get_utc_timestamp()
    return result


# =============================================================================
# cleanup
# =============================================================================


def cmd_cleanup(args: argparse.Namespace) -> dict:
    """Delete kill events older than the retention window."""
    s = get_settings()
    days = args.days if args.days is not None else s.kill_retention_days

    async def run_cleanup() -> dict[str, Any]:
        store = await _open_store()
        try:
            stats = await CleanupTask(store, retention_days=days).run_once()
        finally:
            await store.close()
        return {"retention_days": days, **asdict(stats)}

    result = asyncio.run(run_cleanup())
    result["query_timestamp"] = get_utc_timestamp()
    return result


# =============================================================================
# status
# =============================================================================


def cmd_status(args: argparse.Namespace) -> dict:
    """Show store statistics and queue counts."""
    s = get_settings()
    if not s.db_path.exists():
        return {
            "error": "no_database",
            "message": f"No database at {s.db_path}",
            "query_timestamp": get_utc_timestamp(),
        }

    async def read_stats() -> dict[str, Any]:
        store = await _open_store(read_only=True)
        try:
            stats = await store.get_stats()
        finally:
            await store.close()
        return {
            "database": str(s.db_path),
            "region": s.region,
            "kills": stats.total_kills,
            "oldest_kill": format_unix(stats.oldest_kill_time),
            "newest_kill": format_unix(stats.newest_kill_time),
            "battles": stats.total_battles,
            "alliance_rows": stats.total_alliance_rows,
            "guild_rows": stats.total_guild_rows,
            "player_rows": stats.total_player_rows,
            "battle_kill_rows": stats.total_battle_kill_rows,
            "queue": stats.queue_counts,
            "stuck_processing": stats.queue_counts.get("processing", 0),
            "database_size_bytes": stats.database_size_bytes,
        }

    result = asyncio.run(read_stats())
    result["query_timestamp"] = get_utc_timestamp()
    return result


# =============================================================================
# Parser Registration
# =============================================================================


def register_parsers(subparsers) -> None:
    """Register battleboard command parsers."""

    run_parser = subparsers.add_parser("run", help="Run all ingestion loops until interrupted")
    run_parser.set_defaults(func=cmd_run)

    poll_parser = subparsers.add_parser("poll-kills", help="Run one kill-feed cycle")
    poll_parser.set_defaults(func=cmd_poll_kills)

    discover_parser = subparsers.add_parser(
        "discover",
        help="Run one battle discovery + enqueue pass",
    )
    discover_parser.set_defaults(func=cmd_discover)

    process_parser = subparsers.add_parser("process", help="Process a single battle")
    process_parser.add_argument("battle_id", type=int, help="Remote battle ID")
    process_parser.set_defaults(func=cmd_process)

    cleanup_parser = subparsers.add_parser("cleanup", help="Delete old kill events")
    cleanup_parser.add_argument(
        "--days",
        type=int,
        help="Retention in days (default: ALBION_KILL_RETENTION_DAYS or 14)",
    )
    cleanup_parser.set_defaults(func=cmd_cleanup)

    status_parser = subparsers.add_parser("status", help="Show store statistics")
    status_parser.set_defaults(func=cmd_status)
