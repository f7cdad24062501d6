"""
Bounded in-memory work queue between the enqueue pass and the battle worker.

Offers never block. A battle already pending in the queue is not added
twice; when the queue is full the offer is dropped. Dropped battles stay
queued or failed in the store and are offered again on the next pass.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 100


@dataclass(frozen=True)
class WorkItem:
    """One battle for the worker to process."""

    queue_id: int
    battle_id: int


@dataclass
class WorkQueueMetrics:
    """Queue metrics for observability."""

    offered_total: int = 0
    accepted_total: int = 0
    dropped_full_total: int = 0
    skipped_pending_total: int = 0
    completed_total: int = 0
    queue_depth: int = 0


class BattleWorkQueue:
    """
    FIFO of WorkItems backed by asyncio.Queue.

    A battle ID stays "pending" from a successful offer until the worker
    calls task_done() for it.
    """

    def __init__(self, maxsize: int = DEFAULT_QUEUE_SIZE):
        """
        Args:
            maxsize: Maximum number of waiting items
        """
        self._queue: asyncio.Queue[WorkItem] = asyncio.Queue(maxsize=maxsize)
        self._pending: set[int] = set()
        self.maxsize = maxsize
        self.metrics = WorkQueueMetrics()

    def offer(self, item: WorkItem) -> bool:
        """
        Add an item without blocking.

        Returns:
            True if accepted, False if already pending or the queue is full
        """
        self.metrics.offered_total += 1

        if item.battle_id in self._pending:
            self.metrics.skipped_pending_total += 1
            return False

        try:
            self._queue.put_nowait(item)
        except asyncio.QueueFull:
            self.metrics.dropped_full_total += 1
            logger.debug("Work queue full; battle %d left for the next pass", item.battle_id)
            return False

        self._pending.add(item.battle_id)
        self.metrics.accepted_total += 1
        self.metrics.queue_depth = self._queue.qsize()
        return True

    async def get(self) -> WorkItem:
        """Wait for the next item."""
        item = await self._queue.get()
        self.metrics.queue_depth = self._queue.qsize()
        return item

    def get_nowait(self) -> WorkItem | None:
        """Next item, or None when empty."""
        try:
            item = self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None
        self.metrics.queue_depth = self._queue.qsize()
        return item

    def task_done(self, item: WorkItem) -> None:
        """Mark an item finished so its battle can be offered again."""
        self._pending.discard(item.battle_id)
        self.metrics.completed_total += 1
        self._queue.task_done()

    async def join(self) -> None:
        """Wait until every accepted item has been marked done."""
        await self._queue.join()

    def is_pending(self, battle_id: int) -> bool:
        return battle_id in self._pending

    def full(self) -> bool:
        return self._queue.full()

    def __len__(self) -> int:
        return self._queue.qsize()
