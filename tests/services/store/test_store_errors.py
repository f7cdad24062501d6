"""Tests for sqlite3 error translation."""

from __future__ import annotations

import sqlite3

from albion_bb.core.errors import StoreError, UniqueConstraintError
from albion_bb.services.store.sqlite import translate_error


class TestTranslateError:
    """Tests for sqlite3 error mapping."""

    def test_unique_single_column(self) -> None:
        error = translate_error(
            sqlite3.IntegrityError("UNIQUE constraint failed: battles.battle_id")
        )

        assert isinstance(error, UniqueConstraintError)
        assert error.table == "battles"
        assert error.columns == ("battle_id",)

    def test_unique_composite(self) -> None:
        error = translate_error(
            sqlite3.IntegrityError(
                "UNIQUE constraint failed: battle_guilds.battle_id, battle_guilds.guild_id"
            )
        )

        assert isinstance(error, UniqueConstraintError)
        assert error.is_for("battle_guilds", "guild_id")
        assert not error.is_for("battles", "guild_id")

    def test_other_errors(self) -> None:
        error = translate_error(sqlite3.OperationalError("database is locked"))

        assert type(error) is StoreError
        assert "locked" in error.message
