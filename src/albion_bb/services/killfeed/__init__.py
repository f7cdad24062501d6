"""
Kill Feed.

Overlap polling of the flat kill-event feed, persistence of new events
and retention cleanup.
"""

from .expunge import CleanupStats, CleanupTask
from .ingest import IngestCycleStats, KillFeedIngestor
from .poller import PollResult, fetch_until_overlap

__all__ = [
    "CleanupStats",
    "CleanupTask",
    "IngestCycleStats",
    "KillFeedIngestor",
    "PollResult",
    "fetch_until_overlap",
]
