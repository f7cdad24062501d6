"""
SQLite Implementation of the Battleboard Store.

Uses WAL mode so the kill-feed, cleanup and battle loops can each hold
their own connection to the same database file.
"""

from __future__ import annotations

import asyncio
import logging
import re
import sqlite3
import time
from collections.abc import AsyncIterator, Iterable
from contextlib import asynccontextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Optional

import aiosqlite

from ...core.constants import (
    ELIGIBLE_STATUSES,
    QUEUE_STATUSES,
    SOURCE_DISCOVERY,
    STATUS_PROCESSED,
    STATUS_QUEUED,
)
from ...core.errors import StoreError, UniqueConstraintError
from .migrations import MigrationRunner
from .protocol import (
    AllianceRollup,
    BattleQueueItem,
    BattleRecord,
    GuildRollup,
    KillRecord,
    PlayerRollup,
    SaveResult,
    StoreStats,
)

if TYPE_CHECKING:
    from ...models.gameinfo import KillEvent

logger = logging.getLogger(__name__)

# Keep IN (...) lists under SQLite's bound-parameter limit
_LOOKUP_CHUNK = 500

_UNIQUE_RE = re.compile(r"UNIQUE constraint failed: (.+)$")

_KILL_COLUMNS = (
    "event_id",
    "timestamp",
    "killer_name",
    "killer_guild",
    "killer_alliance",
    "killer_weapon",
    "killer_item_power",
    "victim_name",
    "victim_guild",
    "victim_alliance",
    "victim_weapon",
    "victim_item_power",
    "participant_count",
    "fame",
)


def _kill_values(kill: KillRecord) -> tuple:
    return tuple(getattr(kill, column) for column in _KILL_COLUMNS)


def _chunks(ids: list[int], size: int = _LOOKUP_CHUNK) -> Iterable[list[int]]:
    for start in range(0, len(ids), size):
        yield ids[start : start + size]


def translate_error(error: sqlite3.Error) -> StoreError:
    """
    Map a sqlite3 error onto the store's error types.

    "UNIQUE constraint failed: battles.battle_id" becomes
    UniqueConstraintError("battles", ("battle_id",)).
    """
    message = str(error)
    if isinstance(error, sqlite3.IntegrityError):
        match = _UNIQUE_RE.search(message)
        if match:
            qualified = [part.strip() for part in match.group(1).split(",")]
            table = qualified[0].split(".", 1)[0]
            columns = tuple(part.split(".", 1)[-1] for part in qualified)
            return UniqueConstraintError(table, columns, message)
    return StoreError(message)


class SQLiteBattleboardStore:
    """
    SQLite implementation of BattleboardStore.

    The connection runs in autocommit mode; multi-statement writes go
    through transaction(), which issues BEGIN/COMMIT/ROLLBACK explicitly.

    Connection configuration:
        PRAGMA journal_mode=WAL
        PRAGMA busy_timeout=5000
        PRAGMA synchronous=NORMAL
        PRAGMA foreign_keys=ON
    """

    def __init__(
        self,
        db_path: Path | str | None = None,
        read_only: bool = False,
        region: Optional[str] = None,
    ):
        """
        Initialize the store.

        Args:
            db_path: Path to database file. Defaults to {instance_root}/cache/battleboards.db.
            read_only: Open in read-only mode (for status queries).
            region: Region recorded on new queue items and battles.
        """
        if db_path is None or region is None:
            from ...core.config import get_settings

            settings = get_settings()
            db_path = db_path if db_path is not None else settings.db_path
            region = region or settings.region

        self.db_path = Path(db_path)
        self.read_only = read_only
        self.region = region
        self._db: aiosqlite.Connection | None = None
        self._tx_lock = asyncio.Lock()

    async def initialize(self) -> None:
        """
        Initialize database, running migrations if needed.

        Must be called before any other operations.
        """
        if self.read_only:
            uri = f"file:{self.db_path}?mode=ro"
            self._db = await aiosqlite.connect(uri, uri=True, isolation_level=None)
            await self._db.execute("PRAGMA query_only=ON")
        else:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            self._db = await aiosqlite.connect(self.db_path, isolation_level=None)

            await self._db.execute("PRAGMA journal_mode=WAL")
            await self._db.execute("PRAGMA busy_timeout=5000")
            await self._db.execute("PRAGMA synchronous=NORMAL")
            await self._db.execute("PRAGMA foreign_keys=ON")

            try:
                await MigrationRunner(self._db).run_migrations()
            except StoreError:
                await self._db.close()
                self._db = None
                raise

        self._db.row_factory = aiosqlite.Row

        logger.info(
            "Battleboard store initialized: %s (read_only=%s)",
            self.db_path,
            self.read_only,
        )

    async def close(self) -> None:
        """Close the store and release resources."""
        if self._db:
            await self._db.close()
            self._db = None
            logger.info("Battleboard store closed")

    @property
    def db(self) -> aiosqlite.Connection:
        """Get the database connection, raising if not initialized."""
        if self._db is None:
            raise RuntimeError("Store not initialized. Call initialize() first.")
        return self._db

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[None]:
        """
        Run the enclosed statements as one all-or-nothing unit.

        sqlite3 errors raised inside are rolled back and re-raised as
        StoreError (UniqueConstraintError for unique index violations).
        """
        async with self._tx_lock:
            try:
                await self.db.execute("BEGIN IMMEDIATE")
            except sqlite3.Error as e:
                raise translate_error(e) from e
            try:
                yield
            except sqlite3.Error as e:
                await self.db.execute("ROLLBACK")
                raise translate_error(e) from e
            except BaseException:
                await self.db.execute("ROLLBACK")
                raise
            else:
                try:
                    await self.db.execute("COMMIT")
                except sqlite3.Error as e:
                    await self.db.execute("ROLLBACK")
                    raise translate_error(e) from e

    async def _write(self, sql: str, params: tuple = ()) -> int:
        """Standalone autocommitted write; returns affected row count."""
        try:
            cursor = await self.db.execute(sql, params)
        except sqlite3.Error as e:
            raise translate_error(e) from e
        return cursor.rowcount

    # -------------------------------------------------------------------------
    # Kill Events
    # -------------------------------------------------------------------------

    async def lookup_recent_event_ids(self, limit: int) -> set[int]:
        """Most recent `limit` event IDs by timestamp, in one bounded read."""
        cursor = await self.db.execute(
            "SELECT event_id FROM kills ORDER BY timestamp DESC, event_id DESC LIMIT ?",
            (limit,),
        )
        rows = await cursor.fetchall()
        return {row["event_id"] for row in rows}

    async def existing_event_ids(self, event_ids: Iterable[int]) -> set[int]:
        """Subset of event_ids already stored."""
        found: set[int] = set()
        for chunk in _chunks(list(event_ids)):
            placeholders = ",".join("?" * len(chunk))
            cursor = await self.db.execute(
                f"SELECT event_id FROM kills WHERE event_id IN ({placeholders})",
                chunk,
            )
            found.update(row["event_id"] for row in await cursor.fetchall())
        return found

    async def save_kill_events(
        self, events: list[KillEvent], known_ids: Optional[set[int]] = None
    ) -> SaveResult:
        """
        Persist new kill events in one transaction.

        Repeats within the batch are dropped first (counted as duplicates).
        Events whose ID is in known_ids or already stored are skipped.
        If the transaction fails, every remaining event counts as errored.
        """
        result = SaveResult()

        unique: dict[int, KillEvent] = {}
        for event in events:
            if event.event_id in unique:
                result.duplicates += 1
                continue
            unique[event.event_id] = event

        known = known_ids or set()
        candidates = [event for event_id, event in unique.items() if event_id not in known]
        stored = await self.existing_event_ids(event.event_id for event in candidates)
        new_events = [event for event in candidates if event.event_id not in stored]
        result.skipped = len(unique) - len(new_events)

        if not new_events:
            return result

        records = [KillRecord.from_event(event) for event in new_events]
        columns = ", ".join(("battle_id",) + _KILL_COLUMNS)
        placeholders = ", ".join("?" * (len(_KILL_COLUMNS) + 1))
        try:
            async with self.transaction():
                await self.db.executemany(
                    f"INSERT INTO kills ({columns}) VALUES ({placeholders})",
                    [(record.battle_id,) + _kill_values(record) for record in records],
                )
        except StoreError as e:
            logger.warning("Failed to save %d kill events: %s", len(records), e)
            result.errored = len(records)
            return result

        result.saved = len(records)
        return result

    async def cleanup_kill_events(self, retention_days: int = 14) -> int:
        """Delete kill events older than now - retention_days. Idempotent."""
        cutoff = int(time.time()) - retention_days * 86400
        async with self.transaction():
            cursor = await self.db.execute("DELETE FROM kills WHERE timestamp < ?", (cutoff,))
            deleted = cursor.rowcount
        return deleted

    # -------------------------------------------------------------------------
    # Battle Queue
    # -------------------------------------------------------------------------

    def _row_to_queue_item(self, row: aiosqlite.Row) -> BattleQueueItem:
        return BattleQueueItem(
            queue_id=row["queue_id"],
            battle_id=row["battle_id"],
            region=row["region"],
            status=row["status"],
            start_time=row["start_time"],
            updated_at=row["updated_at"],
            source=row["source"],
        )

    async def get_last_queued_battle(self) -> Optional[BattleQueueItem]:
        """
        Discovered queue item with the newest start time, regardless of status.

        Rows queued by hand are ignored so they never move the discovery boundary.
        """
        cursor = await self.db.execute(
            """
            SELECT * FROM battle_queue
            WHERE source = ?
            ORDER BY start_time DESC, battle_id DESC
            LIMIT 1
            """,
            (SOURCE_DISCOVERY,),
        )
        row = await cursor.fetchone()
        return self._row_to_queue_item(row) if row else None

    async def existing_battle_ids(self, battle_ids: Iterable[int]) -> set[int]:
        """Subset of battle_ids already present in the queue, any status."""
        found: set[int] = set()
        for chunk in _chunks(list(battle_ids)):
            placeholders = ",".join("?" * len(chunk))
            cursor = await self.db.execute(
                f"SELECT battle_id FROM battle_queue WHERE battle_id IN ({placeholders})",
                chunk,
            )
            found.update(row["battle_id"] for row in await cursor.fetchall())
        return found

    async def enqueue_battles(
        self,
        items: list[tuple[int, int]],
        region: Optional[str] = None,
        source: str = SOURCE_DISCOVERY,
    ) -> list[int]:
        """
        Insert (battle_id, start_time) pairs as queued items in one transaction.

        Returns:
            Battle IDs actually inserted, in the given order.
        """
        region = region or self.region
        now = int(time.time())
        inserted: list[int] = []
        async with self.transaction():
            for battle_id, start_time in items:
                cursor = await self.db.execute(
                    """
                    INSERT OR IGNORE INTO battle_queue (
                        battle_id, region, status, start_time, created_at, updated_at, source
                    ) VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (battle_id, region, STATUS_QUEUED, start_time, now, now, source),
                )
                if cursor.rowcount:
                    inserted.append(battle_id)
        return inserted

    async def get_queue_item(self, battle_id: int) -> Optional[BattleQueueItem]:
        cursor = await self.db.execute(
            "SELECT * FROM battle_queue WHERE battle_id = ?",
            (battle_id,),
        )
        row = await cursor.fetchone()
        return self._row_to_queue_item(row) if row else None

    async def select_eligible(self, limit: int = 100) -> list[BattleQueueItem]:
        """Queued or failed items, most recent start time first."""
        placeholders = ",".join("?" * len(ELIGIBLE_STATUSES))
        cursor = await self.db.execute(
            f"""
            SELECT * FROM battle_queue
            WHERE status IN ({placeholders})
            ORDER BY start_time DESC, battle_id DESC
            LIMIT ?
            """,
            (*ELIGIBLE_STATUSES, limit),
        )
        return [self._row_to_queue_item(row) for row in await cursor.fetchall()]

    async def set_queue_status(self, queue_id: int, status: str) -> None:
        """Standalone status write, outside any transaction."""
        if status not in QUEUE_STATUSES:
            raise ValueError(f"Unknown queue status: {status}")
        await self._write(
            "UPDATE battle_queue SET status = ?, updated_at = ? WHERE queue_id = ?",
            (status, int(time.time()), queue_id),
        )

    async def count_queue_by_status(self) -> dict[str, int]:
        counts = dict.fromkeys(QUEUE_STATUSES, 0)
        cursor = await self.db.execute(
            "SELECT status, COUNT(*) AS n FROM battle_queue GROUP BY status"
        )
        for row in await cursor.fetchall():
            counts[row["status"]] = row["n"]
        return counts

    # -------------------------------------------------------------------------
    # Battle Results
    # -------------------------------------------------------------------------

    async def save_battle_results(
        self,
        queue_id: int,
        battle: BattleRecord,
        alliances: list[AllianceRollup],
        guilds: list[GuildRollup],
        players: list[PlayerRollup],
        kills: list[KillRecord],
    ) -> None:
        """
        Save the battle, its rollups and kill rows, then mark the queue item
        processed, all in one transaction.

        Raises:
            UniqueConstraintError: The battle was already saved
            StoreError: Any other database failure (nothing is written)
        """
        now = int(time.time())
        async with self.transaction():
            await self.db.execute(
                """
                INSERT INTO battles (
                    battle_id, region, start_time, end_time, total_fame, total_kills,
                    num_players, alliances, guilds, processed_at
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    battle.battle_id,
                    battle.region,
                    battle.start_time,
                    battle.end_time,
                    battle.total_fame,
                    battle.total_kills,
                    battle.num_players,
                    battle.alliances,
                    battle.guilds,
                    now,
                ),
            )

            await self.db.executemany(
                """
                INSERT INTO battle_alliances (
                    battle_id, alliance_id, name, start_time, players, kills, deaths,
                    kill_fame, death_fame, average_item_power, position
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        battle.battle_id,
                        a.alliance_id,
                        a.name,
                        a.start_time,
                        a.players,
                        a.kills,
                        a.deaths,
                        a.kill_fame,
                        a.death_fame,
                        a.average_item_power,
                        position,
                    )
                    for position, a in enumerate(alliances)
                ],
            )

            await self.db.executemany(
                """
                INSERT INTO battle_guilds (
                    battle_id, guild_id, name, alliance_id, alliance_name, start_time,
                    players, kills, deaths, kill_fame, death_fame, average_item_power, position
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        battle.battle_id,
                        g.guild_id,
                        g.name,
                        g.alliance_id,
                        g.alliance_name,
                        g.start_time,
                        g.players,
                        g.kills,
                        g.deaths,
                        g.kill_fame,
                        g.death_fame,
                        g.average_item_power,
                        position,
                    )
                    for position, g in enumerate(guilds)
                ],
            )

            await self.db.executemany(
                """
                INSERT INTO battle_players (
                    battle_id, player_id, name, start_time, alliance_id, alliance_name,
                    guild_id, guild_name, kills, deaths, kill_fame, death_fame, weapon,
                    average_item_power, damage, healing, players
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                [
                    (
                        battle.battle_id,
                        p.player_id,
                        p.name,
                        p.start_time,
                        p.alliance_id,
                        p.alliance_name,
                        p.guild_id,
                        p.guild_name,
                        p.kills,
                        p.deaths,
                        p.kill_fame,
                        p.death_fame,
                        p.weapon,
                        p.average_item_power,
                        p.damage,
                        p.healing,
                        p.players,
                    )
                    for p in players
                ],
            )

            columns = ", ".join(("battle_id",) + _KILL_COLUMNS)
            placeholders = ", ".join("?" * (len(_KILL_COLUMNS) + 1))
            await self.db.executemany(
                f"INSERT OR IGNORE INTO battle_kills ({columns}) VALUES ({placeholders})",
                [(battle.battle_id,) + _kill_values(kill) for kill in kills],
            )

            await self.db.execute(
                "UPDATE battle_queue SET status = ?, updated_at = ? WHERE queue_id = ?",
                (STATUS_PROCESSED, now, queue_id),
            )

    async def get_battle(self, battle_id: int) -> Optional[BattleRecord]:
        cursor = await self.db.execute("SELECT * FROM battles WHERE battle_id = ?", (battle_id,))
        row = await cursor.fetchone()
        if row is None:
            return None
        return BattleRecord(
            battle_id=row["battle_id"],
            region=row["region"],
            start_time=row["start_time"],
            end_time=row["end_time"],
            total_fame=row["total_fame"],
            total_kills=row["total_kills"],
            num_players=row["num_players"],
            alliances=row["alliances"],
            guilds=row["guilds"],
            processed_at=row["processed_at"],
        )

    async def get_alliance_rollups(self, battle_id: int) -> list[AllianceRollup]:
        cursor = await self.db.execute(
            "SELECT * FROM battle_alliances WHERE battle_id = ? ORDER BY position",
            (battle_id,),
        )
        return [
            AllianceRollup(
                alliance_id=row["alliance_id"],
                name=row["name"],
                start_time=row["start_time"],
                players=row["players"],
                kills=row["kills"],
                deaths=row["deaths"],
                kill_fame=row["kill_fame"],
                death_fame=row["death_fame"],
                average_item_power=row["average_item_power"],
            )
            for row in await cursor.fetchall()
        ]

    async def get_guild_rollups(self, battle_id: int) -> list[GuildRollup]:
        cursor = await self.db.execute(
            "SELECT * FROM battle_guilds WHERE battle_id = ? ORDER BY position",
            (battle_id,),
        )
        return [
            GuildRollup(
                guild_id=row["guild_id"],
                name=row["name"],
                alliance_id=row["alliance_id"],
                alliance_name=row["alliance_name"],
                start_time=row["start_time"],
                players=row["players"],
                kills=row["kills"],
                deaths=row["deaths"],
                kill_fame=row["kill_fame"],
                death_fame=row["death_fame"],
                average_item_power=row["average_item_power"],
            )
            for row in await cursor.fetchall()
        ]

    async def get_player_rollups(self, battle_id: int) -> list[PlayerRollup]:
        cursor = await self.db.execute(
            "SELECT * FROM battle_players WHERE battle_id = ? ORDER BY name",
            (battle_id,),
        )
        return [
            PlayerRollup(
                player_id=row["player_id"],
                name=row["name"],
                start_time=row["start_time"],
                alliance_id=row["alliance_id"],
                alliance_name=row["alliance_name"],
                guild_id=row["guild_id"],
                guild_name=row["guild_name"],
                kills=row["kills"],
                deaths=row["deaths"],
                kill_fame=row["kill_fame"],
                death_fame=row["death_fame"],
                weapon=row["weapon"],
                average_item_power=row["average_item_power"],
                damage=row["damage"],
                healing=row["healing"],
                players=row["players"],
            )
            for row in await cursor.fetchall()
        ]

    async def count_battle_kills(self, battle_id: int) -> int:
        cursor = await self.db.execute(
            "SELECT COUNT(*) FROM battle_kills WHERE battle_id = ?",
            (battle_id,),
        )
        row = await cursor.fetchone()
        return row[0]

    # -------------------------------------------------------------------------
    # Maintenance
    # -------------------------------------------------------------------------

    async def _count(self, table: str) -> int:
        cursor = await self.db.execute(f"SELECT COUNT(*) FROM {table}")
        row = await cursor.fetchone()
        return row[0]

    async def get_stats(self) -> StoreStats:
        """Get storage statistics for observability."""
        cursor = await self.db.execute("SELECT MIN(timestamp), MAX(timestamp) FROM kills")
        row = await cursor.fetchone()
        oldest_time = row[0]
        newest_time = row[1]

        try:
            db_size = self.db_path.stat().st_size
        except OSError:
            db_size = 0

        return StoreStats(
            total_kills=await self._count("kills"),
            total_battles=await self._count("battles"),
            total_alliance_rows=await self._count("battle_alliances"),
            total_guild_rows=await self._count("battle_guilds"),
            total_player_rows=await self._count("battle_players"),
            total_battle_kill_rows=await self._count("battle_kills"),
            queue_counts=await self.count_queue_by_status(),
            oldest_kill_time=oldest_time,
            newest_kill_time=newest_time,
            database_size_bytes=db_size,
        )
