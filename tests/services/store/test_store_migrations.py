"""Tests for the schema migration runner."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import aiosqlite
import pytest
import pytest_asyncio

from albion_bb.core.errors import StoreError
from albion_bb.services.store import MigrationRunner, SQLiteBattleboardStore
from albion_bb.services.store.migrations import discover_migrations


@pytest_asyncio.fixture
async def db(tmp_path: Path) -> AsyncGenerator[aiosqlite.Connection, None]:
    conn = await aiosqlite.connect(tmp_path / "migrations.db", isolation_level=None)
    yield conn
    await conn.close()


@pytest.fixture
def migrations_dir(tmp_path: Path) -> Path:
    directory = tmp_path / "sql"
    directory.mkdir()
    (directory / "001_create_alpha.sql").write_text("CREATE TABLE alpha (x INTEGER);\n")
    return directory


async def table_exists(db: aiosqlite.Connection, name: str) -> bool:
    cursor = await db.execute(
        "SELECT 1 FROM sqlite_master WHERE type = 'table' AND name = ?", (name,)
    )
    return await cursor.fetchone() is not None


class TestDiscoverMigrations:
    """Tests for migration file discovery."""

    def test_bundled_migrations_in_order(self):
        labels = [m.label for m in discover_migrations()]

        assert labels == ["001_initial_schema", "002_battle_queue_source"]

    def test_unexpected_names_ignored(self, migrations_dir: Path):
        (migrations_dir / "notes.sql").write_text("-- scratch\n")
        (migrations_dir / "2_Bad-Name.sql").write_text("-- scratch\n")

        assert [m.version for m in discover_migrations(migrations_dir)] == [1]

    def test_duplicate_versions_rejected(self, migrations_dir: Path):
        (migrations_dir / "001_create_beta.sql").write_text("CREATE TABLE beta (x INTEGER);\n")

        with pytest.raises(StoreError, match="Duplicate migration versions"):
            discover_migrations(migrations_dir)


class TestMigrationRunner:
    """Tests for applying migrations."""

    @pytest.mark.asyncio
    async def test_applies_pending_in_order(self, db, migrations_dir: Path):
        (migrations_dir / "002_create_beta.sql").write_text("CREATE TABLE beta (x INTEGER);\n")
        runner = MigrationRunner(db, migrations_dir)

        assert await runner.run_migrations() == 2

        assert await runner.get_current_version() == 2
        assert await runner.pending() == []
        assert await table_exists(db, "alpha")
        assert await table_exists(db, "beta")

    @pytest.mark.asyncio
    async def test_only_new_migrations_applied(self, db, migrations_dir: Path):
        await MigrationRunner(db, migrations_dir).run_migrations()
        (migrations_dir / "002_create_beta.sql").write_text("CREATE TABLE beta (x INTEGER);\n")
        runner = MigrationRunner(db, migrations_dir)

        assert [m.name for m in await runner.pending()] == ["create_beta"]
        assert await runner.run_migrations() == 1

    @pytest.mark.asyncio
    async def test_failed_migration_rolled_back(self, db, migrations_dir: Path):
        """Test that a failing script leaves no partial schema and no version row."""
        (migrations_dir / "002_broken.sql").write_text(
            "CREATE TABLE beta (x INTEGER);\nINSERT INTO missing_table VALUES (1);\n"
        )
        runner = MigrationRunner(db, migrations_dir)

        with pytest.raises(StoreError, match="002_broken"):
            await runner.run_migrations()

        assert await runner.get_current_version() == 1
        assert not await table_exists(db, "beta")
        assert not db.in_transaction

    @pytest.mark.asyncio
    async def test_newer_database_refused(self, db, migrations_dir: Path):
        runner = MigrationRunner(db, migrations_dir)
        await runner.run_migrations()
        await db.execute(
            "INSERT INTO schema_version (version, name, applied_at) VALUES (7, 'future', 0)"
        )

        with pytest.raises(StoreError, match="newer than the newest known migration"):
            await runner.run_migrations()

    @pytest.mark.asyncio
    async def test_store_refuses_newer_database(self, tmp_path: Path):
        """Test that the store closes its connection when the schema is too new."""
        db_path = tmp_path / "future.db"
        async with aiosqlite.connect(db_path, isolation_level=None) as conn:
            await conn.execute(
                "CREATE TABLE schema_version "
                "(version INTEGER PRIMARY KEY, name TEXT NOT NULL, applied_at INTEGER NOT NULL)"
            )
            await conn.execute("INSERT INTO schema_version VALUES (99, 'future', 0)")

        store = SQLiteBattleboardStore(db_path=db_path, region="americas")
        with pytest.raises(StoreError):
            await store.initialize()

        with pytest.raises(RuntimeError, match="not initialized"):
            _ = store.db
