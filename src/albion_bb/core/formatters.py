"""
Timestamp formatting helpers for CLI output.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional


def get_utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def format_datetime(dt: datetime) -> str:
    """Format as ISO 8601 with a Z suffix, second precision."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def get_utc_timestamp() -> str:
    """
    Get current UTC timestamp string.

    Returns:
        ISO format timestamp like "2026-01-15T12:30:00Z"
    """
    return format_datetime(get_utc_now())


def format_unix(ts: Optional[int]) -> Optional[str]:
    """Format a stored Unix timestamp, passing None through."""
    if ts is None:
        return None
    return format_datetime(datetime.fromtimestamp(ts, tz=timezone.utc))
