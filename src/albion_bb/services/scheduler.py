"""
Battleboard Service.

Wires the timer loops together:

- kill feed: overlap poll + save every 10s
- retention cleanup: at startup, then hourly
- battle discovery: discover + enqueue every 60s
- battle worker: drains the work queue one battle at a time

Each loop owns its own store connection so one loop's transaction never
interleaves with another loop's statements.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any, Optional

from ..core.client import GameInfoClient
from ..core.config import get_settings
from ..core.logging import get_logger
from .battles.discovery import BattleDiscovery, BattleDiscoveryTask
from .battles.queue import BattleWorkQueue
from .battles.worker import BattleWorker
from .killfeed.expunge import CleanupTask
from .killfeed.ingest import KillFeedIngestor
from .notifications.discord_client import DiscordClient
from .store.sqlite import SQLiteBattleboardStore

if TYPE_CHECKING:
    from ..core.config import BattleboardSettings

logger = get_logger(__name__)


class BattleboardService:
    """
    Runs every ingestion loop until stopped.

    Usage:
        service = BattleboardService()
        await service.start()
        ...
        await service.stop()
    """

    def __init__(self, settings: Optional[BattleboardSettings] = None):
        self.settings = settings or get_settings()
        self.client: Optional[GameInfoClient] = None
        self.notifier: Optional[DiscordClient] = None
        self.work_queue = BattleWorkQueue(self.settings.work_queue_size)
        self._stores: list[SQLiteBattleboardStore] = []

        self.kill_feed: Optional[KillFeedIngestor] = None
        self.cleanup: Optional[CleanupTask] = None
        self.discovery: Optional[BattleDiscoveryTask] = None
        self.worker: Optional[BattleWorker] = None
        self._started = False

    async def _open_store(self) -> SQLiteBattleboardStore:
        store = SQLiteBattleboardStore(self.settings.db_path, region=self.settings.region)
        await store.initialize()
        self._stores.append(store)
        return store

    async def start(self) -> None:
        """Open connections and start all loops."""
        if self._started:
            logger.warning("Service already running")
            return

        s = self.settings
        self.client = GameInfoClient(
            base_url=s.base_url,
            timeout=s.request_timeout,
            max_attempts=s.max_attempts,
        )
        await self.client.__aenter__()

        if s.discord_webhook_url:
            self.notifier = DiscordClient(s.discord_webhook_url)

        self.kill_feed = KillFeedIngestor(
            self.client,
            await self._open_store(),
            interval_seconds=s.kill_poll_interval_seconds,
            page_size=s.kill_page_size,
            recent_ids_limit=s.recent_ids_limit,
            max_pages=s.max_overlap_pages,
        )
        self.cleanup = CleanupTask(
            await self._open_store(),
            retention_days=s.kill_retention_days,
            interval_seconds=s.cleanup_interval_seconds,
        )
        discovery = BattleDiscovery(
            self.client,
            await self._open_store(),
            self.work_queue,
            page_size=s.battle_page_size,
            max_pages=s.max_discovery_pages,
            enqueue_limit=s.enqueue_limit,
        )
        self.discovery = BattleDiscoveryTask(discovery, s.battle_poll_interval_seconds)
        self.worker = BattleWorker(
            self.client,
            await self._open_store(),
            self.work_queue,
            region=s.region,
            kills_page_size=s.battle_kills_page_size,
            notifier=self.notifier,
            notify_min_players=s.notify_min_players,
        )

        self.cleanup.start()
        self.kill_feed.start()
        self.discovery.start()
        self.worker.start()
        self._started = True

        logger.info(
            "Battleboard service started (region=%s, db=%s)",
            s.region,
            s.db_path,
        )

    async def stop(self) -> None:
        """Stop all loops and release connections."""
        for loop in (self.discovery, self.kill_feed, self.cleanup, self.worker):
            if loop is not None:
                await loop.stop()

        for store in self._stores:
            await store.close()
        self._stores.clear()

        if self.notifier is not None:
            await self.notifier.close()
            self.notifier = None

        if self.client is not None:
            await self.client.__aexit__(None, None, None)
            self.client = None

        if self._started:
            logger.info("Battleboard service stopped")
        self._started = False

    async def run_forever(self, stop_event: Optional[asyncio.Event] = None) -> None:
        """Start, wait until stop_event is set (or cancelled), then stop."""
        stop_event = stop_event or asyncio.Event()
        await self.start()
        try:
            await stop_event.wait()
        finally:
            await self.stop()

    def get_status(self) -> dict[str, Any]:
        """Loop and queue status for reporting."""
        loops: dict[str, Any] = {}
        for loop in (self.kill_feed, self.cleanup, self.discovery):
            if loop is not None:
                loops[loop.name] = {
                    "running": loop.is_running,
                    "iterations": loop.iterations,
                    "consecutive_errors": loop.consecutive_errors,
                }
        status: dict[str, Any] = {
            "running": self._started,
            "loops": loops,
            "work_queue_depth": len(self.work_queue),
        }
        if self.worker is not None:
            status["worker"] = vars(self.worker.metrics).copy()
        if self.notifier is not None:
            status["notifications"] = self.notifier.get_metrics()
        return status
