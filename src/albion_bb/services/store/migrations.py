"""
Schema migrations for the battleboard store.

Each file in ``migrations/`` is named ``NNN_snake_case_name.sql``. A file is
applied as one script wrapped in ``BEGIN IMMEDIATE``/``COMMIT`` together with
its ``schema_version`` row, so a failing migration leaves neither a partial
schema nor a recorded version behind.

A database whose recorded version is newer than the newest file is refused
rather than opened with a schema this build does not know.
"""

from __future__ import annotations

import logging
import re
import sqlite3
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from ...core.errors import StoreError

if TYPE_CHECKING:
    import aiosqlite

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"

MIGRATION_FILENAME = re.compile(r"^(?P<version>\d{3})_(?P<name>[a-z0-9_]+)\.sql$")

VERSION_TABLE_SQL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    name TEXT NOT NULL,
    applied_at INTEGER NOT NULL
)
"""


@dataclass(frozen=True)
class Migration:
    """One versioned schema change."""

    version: int
    name: str
    path: Path

    @property
    def label(self) -> str:
        return f"{self.version:03d}_{self.name}"

    def script(self, applied_at: int) -> str:
        # name is restricted to [a-z0-9_] by MIGRATION_FILENAME
        return (
            "BEGIN IMMEDIATE;\n"
            f"{self.path.read_text()}\n"
            "INSERT INTO schema_version (version, name, applied_at) "
            f"VALUES ({self.version}, '{self.name}', {applied_at});\n"
            "COMMIT;\n"
        )


def discover_migrations(directory: Path = MIGRATIONS_DIR) -> list[Migration]:
    """
    Migration files in version order.

    Raises:
        StoreError: Two files share a version number
    """
    migrations: list[Migration] = []
    for path in sorted(directory.glob("*.sql")):
        match = MIGRATION_FILENAME.match(path.name)
        if match is None:
            logger.warning("Ignoring migration file with unexpected name: %s", path.name)
            continue
        migrations.append(Migration(int(match["version"]), match["name"], path))

    versions = [m.version for m in migrations]
    if len(versions) != len(set(versions)):
        raise StoreError(f"Duplicate migration versions in {directory}")
    return migrations


class MigrationRunner:
    """Brings a writable connection up to the newest schema version."""

    def __init__(self, db: aiosqlite.Connection, migrations_dir: Path = MIGRATIONS_DIR):
        self.db = db
        self.migrations = discover_migrations(migrations_dir)

    @property
    def latest_version(self) -> int:
        return self.migrations[-1].version if self.migrations else 0

    async def get_current_version(self) -> int:
        """Newest recorded version, 0 for a fresh database."""
        await self.db.execute(VERSION_TABLE_SQL)
        cursor = await self.db.execute("SELECT MAX(version) FROM schema_version")
        row = await cursor.fetchone()
        return row[0] if row and row[0] is not None else 0

    async def pending(self) -> list[Migration]:
        current = await self.get_current_version()
        return [m for m in self.migrations if m.version > current]

    async def run_migrations(self) -> int:
        """
        Apply every pending migration in order.

        Returns:
            Number of migrations applied.

        Raises:
            StoreError: The database is newer than this build, or a
                migration failed (it is rolled back)
        """
        current = await self.get_current_version()
        if current > self.latest_version:
            raise StoreError(
                f"Database schema version {current} is newer than the newest "
                f"known migration ({self.latest_version})"
            )

        pending = [m for m in self.migrations if m.version > current]
        for migration in pending:
            await self._apply(migration)

        if pending:
            logger.info(
                "Schema upgraded from version %d to %d (%d migration(s))",
                current,
                pending[-1].version,
                len(pending),
            )
        return len(pending)

    async def _apply(self, migration: Migration) -> None:
        logger.info("Applying migration %s", migration.label)
        try:
            await self.db.executescript(migration.script(int(time.time())))
        except sqlite3.Error as e:
            if self.db.in_transaction:
                await self.db.execute("ROLLBACK")
            raise StoreError(f"Migration {migration.label} failed: {e}") from e
