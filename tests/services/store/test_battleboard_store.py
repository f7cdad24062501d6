"""Tests for SQLiteBattleboardStore."""

from __future__ import annotations

from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone

import pytest

from albion_bb.core.errors import StoreError, UniqueConstraintError
from albion_bb.services.store import (
    KillRecord,
    MigrationRunner,
    PlayerRollup,
    SQLiteBattleboardStore,
)

pytestmark = pytest.mark.asyncio


class TestInitialize:
    """Tests for schema setup."""

    async def test_fresh_store_is_empty(self, store: SQLiteBattleboardStore) -> None:
        """Test that a new database has the schema and no rows."""
        stats = await store.get_stats()

        assert stats.total_kills == 0
        assert stats.total_battles == 0
        assert stats.queue_counts == {"queued": 0, "processing": 0, "processed": 0, "failed": 0}
        assert stats.oldest_kill_time is None

    async def test_migrations_recorded(self, store: SQLiteBattleboardStore) -> None:
        """Test that the applied migration version is tracked."""
        runner = MigrationRunner(store.db)

        assert await runner.get_current_version() == runner.latest_version == 2
        assert await runner.run_migrations() == 0

    async def test_reopen_existing_database(self, temp_db_path, kill_event) -> None:
        """Test that reopening keeps data and does not re-run migrations."""
        first = SQLiteBattleboardStore(db_path=temp_db_path, region="americas")
        await first.initialize()
        await first.save_kill_events([kill_event(1)])
        await first.close()

        second = SQLiteBattleboardStore(db_path=temp_db_path, region="americas")
        await second.initialize()
        try:
            assert await second.existing_event_ids([1]) == {1}
        finally:
            await second.close()

    async def test_uninitialized_store_raises(self, temp_db_path) -> None:
        """Test that using the store before initialize() fails clearly."""
        store = SQLiteBattleboardStore(db_path=temp_db_path, region="americas")

        with pytest.raises(RuntimeError, match="not initialized"):
            await store.lookup_recent_event_ids(10)


class TestKillEvents:
    """Tests for kill-event persistence."""

    async def test_save_new_events(self, store: SQLiteBattleboardStore, kill_event) -> None:
        """Test that new events are saved and counted."""
        events = [kill_event(3), kill_event(2), kill_event(1)]

        result = await store.save_kill_events(events)

        assert result.saved == 3
        assert result.skipped == 0
        assert result.errored == 0
        assert await store.existing_event_ids([1, 2, 3, 4]) == {1, 2, 3}

    async def test_batch_duplicates_dropped(
        self, store: SQLiteBattleboardStore, kill_event
    ) -> None:
        """Test that repeats inside one batch are saved once."""
        events = [kill_event(2), kill_event(1), kill_event(2)]

        result = await store.save_kill_events(events)

        assert result.saved == 2
        assert result.duplicates == 1
        assert result.distinct == 2

    async def test_already_stored_skipped(
        self, store: SQLiteBattleboardStore, kill_event
    ) -> None:
        """Test that saved + skipped covers every distinct input."""
        await store.save_kill_events([kill_event(1), kill_event(2)])

        result = await store.save_kill_events([kill_event(3), kill_event(2), kill_event(1)])

        assert result.saved == 1
        assert result.skipped == 2
        assert result.saved + result.skipped == 3

    async def test_known_ids_skipped_without_lookup(
        self, store: SQLiteBattleboardStore, kill_event
    ) -> None:
        """Test that IDs in known_ids are skipped even if not stored."""
        result = await store.save_kill_events([kill_event(5), kill_event(6)], known_ids={5})

        assert result.saved == 1
        assert result.skipped == 1
        assert await store.existing_event_ids([5, 6]) == {6}

    async def test_failed_transaction_counts_errored(
        self,
        store: SQLiteBattleboardStore,
        kill_event,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test that a failed transaction marks every new event errored."""

        @asynccontextmanager
        async def failing_transaction():
            raise StoreError("database is locked")
            yield

        monkeypatch.setattr(store, "transaction", failing_transaction)

        result = await store.save_kill_events([kill_event(1), kill_event(2)])

        assert result.saved == 0
        assert result.errored == 2
        assert result.distinct == 2

    async def test_flattened_columns(
        self, store: SQLiteBattleboardStore, event_payload, player_payload
    ) -> None:
        """Test that killer and victim details are flattened into the row."""
        from albion_bb.models.gameinfo import KillEvent

        killer = player_payload("Alice", guild="Knights", alliance="ALPHA", item_power=1400.0)
        victim = player_payload("Bob", guild="Rogues", alliance="BRAVO", weapon="T6_2H_BOW")
        event = KillEvent.model_validate(
            event_payload(77, killer, victim, fame=5000, participants=[killer, killer])
        )

        await store.save_kill_events([event])

        cursor = await store.db.execute("SELECT * FROM kills WHERE event_id = 77")
        row = await cursor.fetchone()
        assert row["killer_name"] == "Alice"
        assert row["killer_alliance"] == "ALPHA"
        assert row["killer_item_power"] == 1400.0
        assert row["victim_guild"] == "Rogues"
        assert row["victim_weapon"] == "T6_2H_BOW"
        assert row["participant_count"] == 2
        assert row["fame"] == 5000

    async def test_lookup_recent_ids(self, store: SQLiteBattleboardStore, kill_event) -> None:
        """Test that the recent-ID lookup returns the newest events."""
        now = datetime.now(timezone.utc)
        await store.save_kill_events(
            [
                kill_event(1, timestamp=now - timedelta(minutes=3)),
                kill_event(2, timestamp=now - timedelta(minutes=2)),
                kill_event(3, timestamp=now - timedelta(minutes=1)),
            ]
        )

        assert await store.lookup_recent_event_ids(2) == {2, 3}

    async def test_cleanup_respects_retention(
        self, store: SQLiteBattleboardStore, kill_event
    ) -> None:
        """Test that cleanup deletes only events older than retention."""
        now = datetime.now(timezone.utc)
        await store.save_kill_events(
            [
                kill_event(1, timestamp=now - timedelta(days=20)),
                kill_event(2, timestamp=now - timedelta(days=1)),
            ]
        )

        assert await store.cleanup_kill_events(retention_days=14) == 1
        assert await store.cleanup_kill_events(retention_days=14) == 0
        assert await store.existing_event_ids([1, 2]) == {2}


class TestBattleQueue:
    """Tests for the persistent battle queue."""

    async def test_enqueue_ignores_existing(self, store: SQLiteBattleboardStore) -> None:
        """Test that enqueue returns only newly inserted battles."""
        assert await store.enqueue_battles([(10, 100), (11, 200)]) == [10, 11]
        assert await store.enqueue_battles([(11, 200), (12, 50)]) == [12]

        item = await store.get_queue_item(12)
        assert item is not None
        assert item.status == "queued"
        assert item.region == "americas"

    async def test_last_queued_is_newest_start(self, store: SQLiteBattleboardStore) -> None:
        """Test that the boundary is the newest start time, any status."""
        await store.enqueue_battles([(10, 100), (11, 300), (12, 200)])
        item = await store.get_queue_item(11)
        await store.set_queue_status(item.queue_id, "processed")

        last = await store.get_last_queued_battle()

        assert last is not None
        assert last.battle_id == 11

    async def test_manual_rows_ignored_for_boundary(self, store: SQLiteBattleboardStore) -> None:
        """Test that a newer hand-queued battle does not become the boundary."""
        await store.enqueue_battles([(10, 100)])
        await store.enqueue_battles([(20, 500)], source="manual")

        last = await store.get_last_queued_battle()

        assert last.battle_id == 10
        assert last.source == "discovery"
        assert (await store.get_queue_item(20)).source == "manual"

    async def test_last_queued_empty(self, store: SQLiteBattleboardStore) -> None:
        """Test that an empty queue has no boundary."""
        assert await store.get_last_queued_battle() is None

    async def test_select_eligible(self, store: SQLiteBattleboardStore) -> None:
        """Test that only queued and failed items are eligible, newest first."""
        await store.enqueue_battles([(10, 100), (11, 300), (12, 200), (13, 400)])
        processed = await store.get_queue_item(13)
        failed = await store.get_queue_item(10)
        processing = await store.get_queue_item(12)
        await store.set_queue_status(processed.queue_id, "processed")
        await store.set_queue_status(failed.queue_id, "failed")
        await store.set_queue_status(processing.queue_id, "processing")

        eligible = await store.select_eligible()

        assert [item.battle_id for item in eligible] == [11, 10]
        assert await store.select_eligible(limit=1) == eligible[:1]

    async def test_set_status_rejects_unknown(self, store: SQLiteBattleboardStore) -> None:
        """Test that unknown statuses are refused."""
        await store.enqueue_battles([(10, 100)])
        item = await store.get_queue_item(10)

        with pytest.raises(ValueError):
            await store.set_queue_status(item.queue_id, "done")

    async def test_count_by_status(self, store: SQLiteBattleboardStore) -> None:
        await store.enqueue_battles([(10, 100), (11, 200)])
        item = await store.get_queue_item(10)
        await store.set_queue_status(item.queue_id, "failed")

        counts = await store.count_queue_by_status()

        assert counts == {"queued": 1, "processing": 0, "processed": 0, "failed": 1}


class TestBattleResults:
    """Tests for the battle results transaction."""

    async def _queue(self, store: SQLiteBattleboardStore, battle_id: int) -> int:
        await store.enqueue_battles([(battle_id, 100)])
        item = await store.get_queue_item(battle_id)
        return item.queue_id

    async def test_save_and_read_back(
        self,
        store: SQLiteBattleboardStore,
        sample_battle,
        sample_alliances,
        sample_guilds,
        sample_players,
        kill_event,
    ) -> None:
        """Test that every row and the processed status commit together."""
        queue_id = await self._queue(store, sample_battle.battle_id)
        kills = [KillRecord.from_event(kill_event(i)) for i in (1, 2, 3)]

        await store.save_battle_results(
            queue_id, sample_battle, sample_alliances, sample_guilds, sample_players, kills
        )

        battle = await store.get_battle(900)
        assert battle is not None
        assert battle.num_players == 30
        assert battle.alliances == "ALPHA, BRAVO"
        assert battle.processed_at > 0
        assert [a.name for a in await store.get_alliance_rollups(900)] == ["ALPHA", "BRAVO"]
        assert [g.alliance_name for g in await store.get_guild_rollups(900)] == ["ALPHA", "BRAVO"]
        assert [p.name for p in await store.get_player_rollups(900)] == ["Alice", "Bob"]
        assert await store.count_battle_kills(900) == 3
        assert (await store.get_queue_item(900)).status == "processed"

    async def test_duplicate_battle_raises_unique(
        self,
        store: SQLiteBattleboardStore,
        sample_battle,
        sample_alliances,
        sample_guilds,
        sample_players,
    ) -> None:
        """Test that saving a battle twice is a battle_id uniqueness conflict."""
        queue_id = await self._queue(store, sample_battle.battle_id)
        args = (queue_id, sample_battle, sample_alliances, sample_guilds, sample_players, [])
        await store.save_battle_results(*args)

        with pytest.raises(UniqueConstraintError) as exc_info:
            await store.save_battle_results(*args)

        assert exc_info.value.is_for("battles", "battle_id")
        assert len(await store.get_alliance_rollups(900)) == 2
        assert len(await store.get_player_rollups(900)) == 2

    async def test_failure_rolls_back_everything(
        self,
        store: SQLiteBattleboardStore,
        sample_battle,
        sample_alliances,
        sample_guilds,
    ) -> None:
        """Test that a failing statement leaves no partial battle behind."""
        queue_id = await self._queue(store, sample_battle.battle_id)
        players = [
            PlayerRollup("p1", "Alice", sample_battle.start_time),
            PlayerRollup("p1", "Alice", sample_battle.start_time),
        ]

        with pytest.raises(UniqueConstraintError) as exc_info:
            await store.save_battle_results(
                queue_id, sample_battle, sample_alliances, sample_guilds, players, []
            )

        assert exc_info.value.is_for("battle_players", "name")
        assert await store.get_battle(900) is None
        assert await store.get_alliance_rollups(900) == []
        assert (await store.get_queue_item(900)).status == "queued"

    async def test_duplicate_kill_rows_ignored(
        self,
        store: SQLiteBattleboardStore,
        sample_battle,
        kill_event,
    ) -> None:
        """Test that repeated kill rows within a battle are stored once."""
        queue_id = await self._queue(store, sample_battle.battle_id)
        kill = KillRecord.from_event(kill_event(1))

        await store.save_battle_results(queue_id, sample_battle, [], [], [], [kill, kill])

        assert await store.count_battle_kills(900) == 1
