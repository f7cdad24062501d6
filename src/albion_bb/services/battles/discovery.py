"""
Battle Discovery.

Turns the rolling, newest-first battle list into a durable backlog of
queued work items, and hands eligible items to the worker's queue.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional, Protocol

from ...core.logging import get_logger
from ..periodic import PeriodicTask
from .queue import BattleWorkQueue, WorkItem

if TYPE_CHECKING:
    from ...models.gameinfo import BattleSummary
    from ..store.sqlite import SQLiteBattleboardStore

logger = get_logger(__name__)

DEFAULT_PAGE_SIZE = 51
DEFAULT_MAX_PAGES = 10
DEFAULT_ENQUEUE_LIMIT = 100
DEFAULT_POLL_INTERVAL_SECONDS = 60.0


class BattleListSource(Protocol):
    """Anything that can page the recent battle list (GameInfoClient)."""

    async def fetch_recent_battles(self, offset: int, limit: int) -> list[BattleSummary]: ...


@dataclass
class DiscoveryStats:
    """Statistics from one discovery + enqueue pass."""

    boundary_battle_id: Optional[int] = None
    pages: int = 0
    seen: int = 0
    inserted: list[int] = field(default_factory=list)
    offered: int = 0


class BattleDiscovery:
    """
    Discover new battles and feed the work queue.

    Usage:
        discovery = BattleDiscovery(client, store, work_queue)
        new_ids = await discovery.fetch_new_battles()
        handed_off = await discovery.enqueue_new_battles()
    """

    def __init__(
        self,
        client: BattleListSource,
        store: SQLiteBattleboardStore,
        work_queue: BattleWorkQueue,
        page_size: int = DEFAULT_PAGE_SIZE,
        max_pages: int = DEFAULT_MAX_PAGES,
        enqueue_limit: int = DEFAULT_ENQUEUE_LIMIT,
    ):
        self.client = client
        self.store = store
        self.work_queue = work_queue
        self.page_size = page_size
        self.max_pages = max_pages
        self.enqueue_limit = enqueue_limit
        self.last_stats = DiscoveryStats()

    async def fetch_new_battles(self) -> list[int]:
        """
        Insert battles newer than the last queued one as queued items.

        The newest queued battle (by start time) is the boundary. The
        battle list is paged newest-first until the boundary ID shows up,
        a short page comes back, or max_pages is reached. With no boundary
        only the first page is taken. Battles already in the queue are
        dropped; the rest are inserted newest first in one transaction.

        Returns:
            Inserted battle IDs in insertion order
        """
        stats = DiscoveryStats()
        self.last_stats = stats

        last = await self.store.get_last_queued_battle()
        boundary = last.battle_id if last else None
        stats.boundary_battle_id = boundary
        page_limit = self.max_pages if boundary is not None else 1

        collected: list[BattleSummary] = []
        offset = 0
        while stats.pages < page_limit:
            page = await self.client.fetch_recent_battles(offset, self.page_size)
            stats.pages += 1

            reached_boundary = False
            for battle in page:
                if battle.id == boundary:
                    reached_boundary = True
                    break
                collected.append(battle)

            if reached_boundary or len(page) < self.page_size:
                break
            offset += self.page_size

        # Pages can shift between requests; keep the first copy of each ID
        unique: dict[int, BattleSummary] = {}
        for battle in collected:
            unique.setdefault(battle.id, battle)
        stats.seen = len(unique)

        existing = await self.store.existing_battle_ids(unique.keys())
        new_battles = sorted(
            (b for b in unique.values() if b.id not in existing),
            key=lambda b: b.start_time,
            reverse=True,
        )

        if new_battles:
            stats.inserted = await self.store.enqueue_battles(
                [(b.id, int(b.start_time.timestamp())) for b in new_battles]
            )

        logger.info(
            "Battles: %d seen over %d page(s), %d new (boundary=%s)",
            stats.seen,
            stats.pages,
            len(stats.inserted),
            boundary,
        )
        return stats.inserted

    async def enqueue_new_battles(self) -> int:
        """
        Offer queued and failed items to the work queue without blocking.

        Items already pending are skipped; once the queue is full the
        rest are left for the next pass.

        Returns:
            Number of items accepted by the work queue
        """
        items = await self.store.select_eligible(self.enqueue_limit)
        accepted = 0
        for item in items:
            if self.work_queue.full():
                logger.debug(
                    "Work queue full; %d eligible battle(s) deferred", len(items) - accepted
                )
                break
            if self.work_queue.offer(WorkItem(queue_id=item.queue_id, battle_id=item.battle_id)):
                accepted += 1

        self.last_stats.offered = accepted
        if accepted:
            logger.info("Enqueued %d battle(s) for processing", accepted)
        return accepted


class BattleDiscoveryTask(PeriodicTask):
    """Timer loop: discovery, then enqueue."""

    name = "battle-discovery"

    def __init__(
        self,
        discovery: BattleDiscovery,
        interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
    ):
        super().__init__(interval_seconds)
        self.discovery = discovery

    async def run_once(self) -> DiscoveryStats:
        await self.discovery.fetch_new_battles()
        await self.discovery.enqueue_new_battles()
        return self.discovery.last_stats
