"""
Overlap Poller for the flat kill-event feed.

The feed has no cursor. Each cycle pages newest-first from offset 0 and
stops as soon as a page overlaps with events already known, so a poller
that fell behind catches up without re-reading the whole history.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional, Protocol

from ...core.client import new_cache_token
from ...core.errors import BattleboardError
from ...core.logging import get_logger

if TYPE_CHECKING:
    from ...models.gameinfo import KillEvent

logger = get_logger(__name__)

DEFAULT_MAX_PAGES = 5

# Why a cycle stopped paginating
STOP_EMPTY = "empty"
STOP_OVERLAP = "overlap"
STOP_SHORT_PAGE = "short_page"
STOP_MAX_PAGES = "max_pages"
STOP_ERROR = "error"


class KillEventSource(Protocol):
    """Anything that can fetch a page of kill events (GameInfoClient)."""

    async def fetch_kill_events(
        self, offset: int, limit: int, cache_token: Optional[str] = None
    ) -> list[KillEvent]: ...


@dataclass
class PollResult:
    """Everything fetched in one poll cycle."""

    events: list[KillEvent] = field(default_factory=list)
    pages: int = 0
    known_seen: int = 0
    stop_reason: str = ""
    cache_token: str = ""
    error: Optional[BattleboardError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def fetch_until_overlap(
    client: KillEventSource,
    page_size: int,
    known_ids: set[int],
    max_pages: int = DEFAULT_MAX_PAGES,
) -> PollResult:
    """
    Fetch kill-event pages until the feed overlaps with known events.

    One cache token is used for every page of the cycle. Per page:
    zero events stops; the events are accumulated; any known ID stops
    (overlap reached); a short page stops (end of data). Never more than
    max_pages pages are fetched.

    A fetch failure mid-cycle does not raise: the events accumulated so
    far are returned together with the error.

    Args:
        client: Kill event source
        page_size: Events per page
        known_ids: Recently stored event IDs
        max_pages: Hard cap on pages per cycle

    Returns:
        PollResult with the accumulated events, newest first
    """
    result = PollResult(cache_token=new_cache_token())
    offset = 0

    while result.pages < max_pages:
        try:
            page = await client.fetch_kill_events(offset, page_size, cache_token=result.cache_token)
        except BattleboardError as e:
            logger.warning(
                "Kill feed fetch failed at offset %d after %d page(s): %s",
                offset,
                result.pages,
                e,
            )
            result.error = e
            result.stop_reason = STOP_ERROR
            return result

        result.pages += 1

        if not page:
            result.stop_reason = STOP_EMPTY
            break

        result.events.extend(page)
        known_on_page = sum(1 for event in page if event.event_id in known_ids)
        result.known_seen += known_on_page

        logger.debug(
            "Kill feed page %d: %d events, %d known",
            result.pages,
            len(page),
            known_on_page,
        )

        if known_on_page > 0:
            result.stop_reason = STOP_OVERLAP
            break

        if len(page) < page_size:
            result.stop_reason = STOP_SHORT_PAGE
            break

        offset += page_size
    else:
        result.stop_reason = STOP_MAX_PAGES
        if known_ids:
            logger.warning(
                "Kill feed did not overlap within %d pages; events may have been missed",
                max_pages,
            )

    return result
