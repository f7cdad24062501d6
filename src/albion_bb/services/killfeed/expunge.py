"""
Retention cleanup for the kill-event table.

Deletes kill events older than the retention window once at startup and
then hourly.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import TYPE_CHECKING

from ...core.logging import get_logger
from ..periodic import PeriodicTask

if TYPE_CHECKING:
    from ..store.sqlite import SQLiteBattleboardStore

logger = get_logger(__name__)

DEFAULT_RETENTION_DAYS = 14
DEFAULT_CLEANUP_INTERVAL_SECONDS = 3600.0  # 1 hour


@dataclass
class CleanupStats:
    """Statistics from a cleanup run."""

    kills_deleted: int = 0
    duration_seconds: float = 0.0


class CleanupTask(PeriodicTask):
    """Background task that expunges kill events past retention."""

    name = "kill-cleanup"

    def __init__(
        self,
        store: SQLiteBattleboardStore,
        retention_days: int = DEFAULT_RETENTION_DAYS,
        interval_seconds: float = DEFAULT_CLEANUP_INTERVAL_SECONDS,
    ):
        """
        Args:
            store: Store to clean
            retention_days: How long to keep kill events
            interval_seconds: How often to run cleanup
        """
        super().__init__(
            interval_seconds,
            error_backoff_seconds=60.0,
            max_error_backoff_seconds=3600.0,
        )
        self.store = store
        self.retention_days = retention_days

    async def run_once(self) -> CleanupStats:
        start_time = time.time()
        stats = CleanupStats()

        stats.kills_deleted = await self.store.cleanup_kill_events(self.retention_days)
        stats.duration_seconds = time.time() - start_time

        if stats.kills_deleted > 0:
            logger.info(
                "Expunged %d kill events older than %d days in %.2fs",
                stats.kills_deleted,
                self.retention_days,
                stats.duration_seconds,
            )
        else:
            logger.debug("Cleanup complete: no kill events to delete")

        return stats
