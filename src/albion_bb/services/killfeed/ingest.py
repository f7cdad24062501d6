"""
Kill Feed Ingestor.

Runs the overlap poller on a timer and persists whatever it returns,
including partial results from a cycle that hit a fetch error.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

from ...core.logging import get_logger
from ..periodic import PeriodicTask
from .poller import DEFAULT_MAX_PAGES, KillEventSource, fetch_until_overlap

if TYPE_CHECKING:
    from ..store.sqlite import SQLiteBattleboardStore

logger = get_logger(__name__)

DEFAULT_POLL_INTERVAL_SECONDS = 10.0
DEFAULT_PAGE_SIZE = 51
DEFAULT_RECENT_IDS_LIMIT = 500


@dataclass
class IngestCycleStats:
    """Statistics from one kill-feed cycle."""

    fetched: int = 0
    pages: int = 0
    saved: int = 0
    skipped: int = 0
    errored: int = 0
    duplicates: int = 0
    stop_reason: str = ""
    fetch_error: Optional[str] = None
    duration_seconds: float = 0.0


class KillFeedIngestor(PeriodicTask):
    """
    Periodic kill-feed ingestion.

    Each cycle: read the recent event IDs, poll until overlap, save the
    new events in one transaction.
    """

    name = "kill-feed"

    def __init__(
        self,
        client: KillEventSource,
        store: SQLiteBattleboardStore,
        interval_seconds: float = DEFAULT_POLL_INTERVAL_SECONDS,
        page_size: int = DEFAULT_PAGE_SIZE,
        recent_ids_limit: int = DEFAULT_RECENT_IDS_LIMIT,
        max_pages: int = DEFAULT_MAX_PAGES,
    ):
        super().__init__(interval_seconds)
        self.client = client
        self.store = store
        self.page_size = page_size
        self.recent_ids_limit = recent_ids_limit
        self.max_pages = max_pages

    async def run_once(self) -> IngestCycleStats:
        """
        Run a single poll-and-save cycle.

        Returns:
            Statistics from the cycle
        """
        start_time = time.time()
        stats = IngestCycleStats()

        known_ids = await self.store.lookup_recent_event_ids(self.recent_ids_limit)
        poll = await fetch_until_overlap(self.client, self.page_size, known_ids, self.max_pages)

        stats.fetched = len(poll.events)
        stats.pages = poll.pages
        stats.stop_reason = poll.stop_reason
        if poll.error is not None:
            stats.fetch_error = str(poll.error)

        if poll.events:
            saved = await self.store.save_kill_events(poll.events, known_ids)
            stats.saved = saved.saved
            stats.skipped = saved.skipped
            stats.errored = saved.errored
            stats.duplicates = saved.duplicates

        stats.duration_seconds = time.time() - start_time

        logger.info(
            "Kills: %d fetched over %d page(s) (%s), %d saved, %d skipped, %d errored",
            stats.fetched,
            stats.pages,
            stats.stop_reason,
            stats.saved,
            stats.skipped,
            stats.errored,
        )
        return stats
