"""
Battle Worker.

Processes one queued battle at a time:

    queued -> processing -> processed | failed

The item is marked processing with a standalone write. The battle detail
and its full kill list are fetched, aggregated, and saved together with
the processed status in one transaction. A uniqueness conflict on the
battle ID means an earlier attempt already committed, so the item is
marked processed. Any other error marks it failed; failed items are
picked up again by the next enqueue pass.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional, Protocol

from ...core.constants import (
    SOURCE_MANUAL,
    STATUS_FAILED,
    STATUS_PROCESSED,
    STATUS_PROCESSING,
)
from ...core.errors import UniqueConstraintError
from ...core.logging import get_logger
from ..notifications.formatter import format_battle_summary
from ..store.protocol import (
    AllianceRollup,
    BattleRecord,
    GuildRollup,
    KillRecord,
    PlayerRollup,
)
from .aggregation import (
    AllianceInput,
    GuildInput,
    map_alliance_data,
    map_guild_data,
    map_player_data,
    top_alliances_by_participation,
    top_guilds_by_participation,
)
from .queue import BattleWorkQueue, WorkItem

if TYPE_CHECKING:
    from ...models.gameinfo import BattleDetail, KillEvent
    from ..notifications.discord_client import DiscordClient
    from ..store.sqlite import SQLiteBattleboardStore

logger = get_logger(__name__)

DEFAULT_KILLS_PAGE_SIZE = 50
DEFAULT_NOTIFY_MIN_PLAYERS = 20

# Returned when the processing write fails; the stored status is unchanged
OUTCOME_UNCLAIMED = "unclaimed"


class BattleSource(Protocol):
    """Anything that can fetch battle details and kills (GameInfoClient)."""

    async def fetch_battle(self, battle_id: int) -> BattleDetail: ...

    async def fetch_battle_kills(
        self, battle_id: int, offset: int, limit: int
    ) -> list[KillEvent]: ...


@dataclass
class BattleResults:
    """Everything written for one processed battle."""

    battle: BattleRecord
    alliances: list[AllianceRollup] = field(default_factory=list)
    guilds: list[GuildRollup] = field(default_factory=list)
    players: list[PlayerRollup] = field(default_factory=list)
    kills: list[KillRecord] = field(default_factory=list)


@dataclass
class WorkerMetrics:
    """Worker outcome counters."""

    processed_total: int = 0
    duplicate_total: int = 0
    failed_total: int = 0
    double_failure_total: int = 0
    unclaimed_total: int = 0
    notified_total: int = 0
    last_battle_id: Optional[int] = None


def build_battle_results(
    detail: BattleDetail, events: list[KillEvent], region: str
) -> BattleResults:
    """Aggregate a battle's kill list into the rows the store persists."""
    start_time = int(detail.start_time.timestamp())

    alliance_inputs = [
        AllianceInput(id=alliance.id or key, name=alliance.name, start_time=start_time)
        for key, alliance in detail.alliances.items()
    ]
    guild_inputs = [
        GuildInput(
            id=guild.id or key,
            name=guild.name,
            alliance_id=guild.alliance_id,
            alliance_name=guild.alliance_name,
            start_time=start_time,
        )
        for key, guild in detail.guilds.items()
    ]

    alliances = map_alliance_data(alliance_inputs, events)
    guilds = map_guild_data(guild_inputs, events)
    players = map_player_data(start_time, events)

    battle = BattleRecord(
        battle_id=detail.id,
        region=region,
        start_time=start_time,
        end_time=int(detail.end_time.timestamp()),
        total_fame=detail.total_fame,
        total_kills=detail.total_kills,
        num_players=len(detail.players),
        alliances=top_alliances_by_participation(alliances),
        guilds=top_guilds_by_participation(guilds),
    )

    return BattleResults(
        battle=battle,
        alliances=alliances,
        guilds=guilds,
        players=players,
        kills=[KillRecord.from_event(event) for event in events],
    )


class BattleWorker:
    """
    Single consumer of the battle work queue.

    Usage:
        worker = BattleWorker(client, store, work_queue)
        worker.start()
        ...
        await worker.stop()
    """

    def __init__(
        self,
        client: BattleSource,
        store: SQLiteBattleboardStore,
        work_queue: BattleWorkQueue,
        region: Optional[str] = None,
        kills_page_size: int = DEFAULT_KILLS_PAGE_SIZE,
        notifier: Optional[DiscordClient] = None,
        notify_min_players: int = DEFAULT_NOTIFY_MIN_PLAYERS,
    ):
        self.client = client
        self.store = store
        self.work_queue = work_queue
        self.region = region or store.region
        self.kills_page_size = kills_page_size
        self.notifier = notifier
        self.notify_min_players = notify_min_players
        self.metrics = WorkerMetrics()
        self._running = False
        self._task: asyncio.Task | None = None

    # -------------------------------------------------------------------------
    # Processing
    # -------------------------------------------------------------------------

    async def fetch_all_kills(self, battle_id: int, total_kills: int) -> list[KillEvent]:
        """
        Page /events/battle/{id} until offset reaches total_kills.

        Repeated event IDs across pages are kept once.
        """
        events: dict[int, KillEvent] = {}
        offset = 0
        while offset < total_kills:
            page = await self.client.fetch_battle_kills(battle_id, offset, self.kills_page_size)
            logger.debug(
                "Battle %d kills: offset %d returned %d events", battle_id, offset, len(page)
            )
            if not page:
                break
            for event in page:
                events.setdefault(event.event_id, event)
            offset += self.kills_page_size
        return list(events.values())

    async def process(self, item: WorkItem) -> str:
        """
        Process one work item through to a terminal status.

        Returns:
            The status the item ended in (processed, failed), processing
            when even the terminal status write failed, or unclaimed when the
            item could not be marked processing and was left untouched.
        """
        self.metrics.last_battle_id = item.battle_id
        try:
            await self.store.set_queue_status(item.queue_id, STATUS_PROCESSING)
        except Exception as e:
            logger.error("Battle %d: could not mark processing: %s", item.battle_id, e)
            self.metrics.unclaimed_total += 1
            return OUTCOME_UNCLAIMED

        start = time.time()
        try:
            detail = await self.client.fetch_battle(item.battle_id)
            events = await self.fetch_all_kills(item.battle_id, detail.total_kills)
            results = build_battle_results(detail, events, self.region)
            await self.store.save_battle_results(
                item.queue_id,
                results.battle,
                results.alliances,
                results.guilds,
                results.players,
                results.kills,
            )

        except asyncio.CancelledError:
            raise

        except UniqueConstraintError as e:
            if not e.is_for("battles", "battle_id"):
                return await self._fail(item, e)
            logger.info("Battle %d already saved; marking processed", item.battle_id)
            self.metrics.duplicate_total += 1
            return await self._finish(item, STATUS_PROCESSED)

        except Exception as e:
            return await self._fail(item, e)

        self.metrics.processed_total += 1
        logger.info(
            "Battle %d processed: %d kills, %d alliances, %d guilds, %d players in %.2fs",
            item.battle_id,
            len(results.kills),
            len(results.alliances),
            len(results.guilds),
            len(results.players),
            time.time() - start,
        )

        await self._notify(results)
        return STATUS_PROCESSED

    async def _fail(self, item: WorkItem, error: BaseException) -> str:
        logger.error("Battle %d failed: %s", item.battle_id, error, exc_info=error)
        self.metrics.failed_total += 1
        return await self._finish(item, STATUS_FAILED)

    async def _finish(self, item: WorkItem, status: str) -> str:
        """Best-effort terminal status write."""
        try:
            await self.store.set_queue_status(item.queue_id, status)
        except Exception as e:
            self.metrics.double_failure_total += 1
            logger.error(
                "Battle %d: could not mark %s, item left processing: %s",
                item.battle_id,
                status,
                e,
            )
            return STATUS_PROCESSING
        return status

    async def _notify(self, results: BattleResults) -> None:
        """Post a battle summary; failures never affect the queue status."""
        if self.notifier is None:
            return
        if results.battle.num_players < self.notify_min_players:
            return

        try:
            payload = format_battle_summary(results.battle, results.alliances, results.guilds)
            sent = await self.notifier.send(payload)
        except Exception as e:
            logger.warning("Battle %d summary not sent: %s", results.battle.battle_id, e)
            return

        if sent.success:
            self.metrics.notified_total += 1
        else:
            logger.warning(
                "Battle %d summary not sent: %s", results.battle.battle_id, sent.error
            )

    async def process_battle_id(self, battle_id: int) -> str:
        """
        Queue a battle if needed and process it directly.

        Used by the CLI to process one battle outside the timer loops. A
        battle not yet in the queue is added as a manual row, which discovery
        does not use as its boundary.
        """
        item = await self.store.get_queue_item(battle_id)
        if item is None:
            detail = await self.client.fetch_battle(battle_id)
            await self.store.enqueue_battles(
                [(battle_id, int(detail.start_time.timestamp()))],
                self.region,
                source=SOURCE_MANUAL,
            )
            item = await self.store.get_queue_item(battle_id)
            assert item is not None
        return await self.process(WorkItem(queue_id=item.queue_id, battle_id=item.battle_id))

    # -------------------------------------------------------------------------
    # Consumer Loop
    # -------------------------------------------------------------------------

    async def run_once(self) -> Optional[str]:
        """Process the next waiting item, if any, without blocking."""
        item = self.work_queue.get_nowait()
        if item is None:
            return None
        try:
            return await self.process(item)
        finally:
            self.work_queue.task_done(item)

    async def run(self) -> None:
        """Drain the work queue one battle at a time until cancelled."""
        self._running = True
        logger.info("Battle worker started")

        while self._running:
            try:
                item = await self.work_queue.get()
            except asyncio.CancelledError:
                break
            try:
                await self.process(item)
            except asyncio.CancelledError:
                logger.warning("Battle %d interrupted while processing", item.battle_id)
                break
            finally:
                self.work_queue.task_done(item)

        self._running = False
        logger.info("Battle worker stopped")

    def start(self) -> asyncio.Task:
        if self._task is not None and not self._task.done():
            raise RuntimeError("Battle worker already running")
        self._task = asyncio.create_task(self.run(), name="albion-battle-worker")
        return self._task

    async def stop(self, timeout: float = 5.0) -> None:
        self._running = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await asyncio.wait_for(self._task, timeout=timeout)
            except asyncio.TimeoutError:
                logger.warning("Battle worker did not stop within timeout")
            except asyncio.CancelledError:
                pass
        self._task = None
