"""
Battleboard Store Protocol Interface.

Defines the record types persisted by the store and the abstract interface
used by the kill-feed ingestor, battle discovery and the battle worker.

Timestamps are stored as Unix seconds (int).
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Iterable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional, Protocol, runtime_checkable

if TYPE_CHECKING:
    from ...models.gameinfo import KillEvent

# =============================================================================
# Data Classes
# =============================================================================


@dataclass
class KillRecord:
    """Flattened kill event as stored in the kills table."""

    event_id: int
    timestamp: int  # Unix timestamp
    battle_id: int
    killer_name: str
    killer_guild: str
    killer_alliance: str
    killer_weapon: str
    killer_item_power: float
    victim_name: str
    victim_guild: str
    victim_alliance: str
    victim_weapon: str
    victim_item_power: float
    participant_count: int
    fame: int

    @classmethod
    def from_event(cls, event: KillEvent) -> KillRecord:
        """Flatten a validated kill event into a row."""
        return cls(
            event_id=event.event_id,
            timestamp=int(event.timestamp.timestamp()),
            battle_id=event.battle_id,
            killer_name=event.killer.name,
            killer_guild=event.killer.guild_name,
            killer_alliance=event.killer.alliance_name,
            killer_weapon=event.killer.weapon,
            killer_item_power=event.killer.average_item_power,
            victim_name=event.victim.name,
            victim_guild=event.victim.guild_name,
            victim_alliance=event.victim.alliance_name,
            victim_weapon=event.victim.weapon,
            victim_item_power=event.victim.average_item_power,
            participant_count=len(event.participants),
            fame=event.total_victim_kill_fame,
        )


@dataclass
class SaveResult:
    """Outcome of a batch kill-event save."""

    saved: int = 0
    skipped: int = 0  # already known or already stored
    errored: int = 0  # lost to a failed transaction
    duplicates: int = 0  # repeats within the incoming batch

    @property
    def distinct(self) -> int:
        return self.saved + self.skipped + self.errored


@dataclass
class BattleQueueItem:
    """A discovered battle awaiting (or done with) processing."""

    queue_id: int
    battle_id: int
    region: str
    status: str  # 'queued', 'processing', 'processed', 'failed'
    start_time: int
    updated_at: int
    source: str = "discovery"  # or "manual" when queued from the CLI


@dataclass
class BattleRecord:
    """Battle header row written once per processed battle."""

    battle_id: int
    region: str
    start_time: int
    end_time: int
    total_fame: int
    total_kills: int
    num_players: int
    alliances: str  # top alliances by participation, comma-joined
    guilds: str  # top guilds by participation, comma-joined
    processed_at: int = 0


@dataclass
class AllianceRollup:
    """Per-battle alliance statistics."""

    alliance_id: str
    name: str
    start_time: int
    players: int = 0
    kills: int = 0
    deaths: int = 0
    kill_fame: int = 0
    death_fame: int = 0
    average_item_power: float = 0.0


@dataclass
class GuildRollup:
    """Per-battle guild statistics."""

    guild_id: str
    name: str
    alliance_id: str
    alliance_name: str
    start_time: int
    players: int = 0
    kills: int = 0
    deaths: int = 0
    kill_fame: int = 0
    death_fame: int = 0
    average_item_power: float = 0.0


@dataclass
class PlayerRollup:
    """Per-battle player statistics."""

    player_id: str
    name: str
    start_time: int
    alliance_id: str = ""
    alliance_name: str = ""
    guild_id: str = ""
    guild_name: str = ""
    kills: int = 0
    deaths: int = 0
    kill_fame: int = 0
    death_fame: int = 0
    weapon: str = ""
    average_item_power: float = 0.0
    damage: float = 0.0
    healing: float = 0.0
    players: int = 0  # total distinct players in the battle


@dataclass
class StoreStats:
    """Storage statistics for observability."""

    total_kills: int
    total_battles: int
    total_alliance_rows: int
    total_guild_rows: int
    total_player_rows: int
    total_battle_kill_rows: int
    queue_counts: dict[str, int] = field(default_factory=dict)
    oldest_kill_time: Optional[int] = None
    newest_kill_time: Optional[int] = None
    database_size_bytes: int = 0


# =============================================================================
# Protocol
# =============================================================================


@runtime_checkable
class BattleboardStore(Protocol):
    """
    Abstract interface for battleboard storage.

    Implementations must provide:
    - Unique event IDs and battle IDs
    - All-or-nothing transactions via transaction()
    - UniqueConstraintError on unique index violations
    """

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    @abstractmethod
    async def initialize(self) -> None:
        """Open the store and apply migrations."""
        ...

    @abstractmethod
    async def close(self) -> None:
        """Release resources."""
        ...

    @abstractmethod
    def transaction(self) -> AbstractAsyncContextManager[None]:
        """Run the enclosed statements as one all-or-nothing unit."""
        ...

    # -------------------------------------------------------------------------
    # Kill Events
    # -------------------------------------------------------------------------

    @abstractmethod
    async def lookup_recent_event_ids(self, limit: int) -> set[int]:
        """Most recent `limit` event IDs by timestamp."""
        ...

    @abstractmethod
    async def existing_event_ids(self, event_ids: Iterable[int]) -> set[int]:
        """Subset of event_ids already stored."""
        ...

    @abstractmethod
    async def save_kill_events(
        self, events: list[KillEvent], known_ids: Optional[set[int]] = None
    ) -> SaveResult:
        """Persist new events in one transaction."""
        ...

    @abstractmethod
    async def cleanup_kill_events(self, retention_days: int = 14) -> int:
        """Delete events older than the retention window."""
        ...

    # -------------------------------------------------------------------------
    # Battle Queue
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_last_queued_battle(self) -> Optional[BattleQueueItem]:
        """Discovered queue item with the newest start time, any status."""
        ...

    @abstractmethod
    async def existing_battle_ids(self, battle_ids: Iterable[int]) -> set[int]:
        """Subset of battle_ids already present in the queue."""
        ...

    @abstractmethod
    async def enqueue_battles(
        self, items: list[tuple[int, int]], region: str, source: str = "discovery"
    ) -> list[int]:
        """Insert (battle_id, start_time) pairs as queued items from the given source."""
        ...

    @abstractmethod
    async def get_queue_item(self, battle_id: int) -> Optional[BattleQueueItem]:
        """Queue item for a battle, if discovered."""
        ...

    @abstractmethod
    async def select_eligible(self, limit: int = 100) -> list[BattleQueueItem]:
        """Queued or failed items, newest start time first."""
        ...

    @abstractmethod
    async def set_queue_status(self, queue_id: int, status: str) -> None:
        """Standalone status write."""
        ...

    @abstractmethod
    async def count_queue_by_status(self) -> dict[str, int]:
        """Number of queue items per status."""
        ...

    # -------------------------------------------------------------------------
    # Battle Results
    # -------------------------------------------------------------------------

    @abstractmethod
    async def save_battle_results(
        self,
        queue_id: int,
        battle: BattleRecord,
        alliances: list[AllianceRollup],
        guilds: list[GuildRollup],
        players: list[PlayerRollup],
        kills: list[KillRecord],
    ) -> None:
        """Save all battle rows and mark the item processed in one transaction."""
        ...

    @abstractmethod
    async def get_battle(self, battle_id: int) -> Optional[BattleRecord]:
        ...

    @abstractmethod
    async def get_alliance_rollups(self, battle_id: int) -> list[AllianceRollup]:
        ...

    @abstractmethod
    async def get_guild_rollups(self, battle_id: int) -> list[GuildRollup]:
        ...

    @abstractmethod
    async def get_player_rollups(self, battle_id: int) -> list[PlayerRollup]:
        ...

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    @abstractmethod
    async def get_stats(self) -> StoreStats:
        """Row counts, queue counts and database size."""
        ...
