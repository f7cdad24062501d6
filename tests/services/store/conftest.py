"""Fixtures for battleboard store tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest
import pytest_asyncio

from albion_bb.services.store import (
    AllianceRollup,
    BattleRecord,
    GuildRollup,
    PlayerRollup,
    SQLiteBattleboardStore,
)

START_TIME = 1_792_411_200  # 2026-10-19 12:00:00 UTC


@pytest.fixture
def temp_db_path(tmp_path: Path) -> Path:
    """Create a temporary database path."""
    return tmp_path / "test_battleboards.db"


@pytest_asyncio.fixture
async def store(temp_db_path: Path) -> AsyncGenerator[SQLiteBattleboardStore, None]:
    """Create and initialize a test store."""
    store = SQLiteBattleboardStore(db_path=temp_db_path, region="americas")
    await store.initialize()
    yield store
    await store.close()


@pytest.fixture
def sample_battle() -> BattleRecord:
    """Create a sample battle header."""
    return BattleRecord(
        battle_id=900,
        region="americas",
        start_time=START_TIME,
        end_time=START_TIME + 600,
        total_fame=2_500_000,
        total_kills=12,
        num_players=30,
        alliances="ALPHA, BRAVO",
        guilds="Knights, Rogues",
    )


@pytest.fixture
def sample_alliances() -> list[AllianceRollup]:
    return [
        AllianceRollup("a1", "ALPHA", START_TIME, players=18, kills=8, deaths=4, kill_fame=1_500_000),
        AllianceRollup("b1", "BRAVO", START_TIME, players=12, kills=4, deaths=8, kill_fame=1_000_000),
    ]


@pytest.fixture
def sample_guilds() -> list[GuildRollup]:
    return [
        GuildRollup("g1", "Knights", "a1", "ALPHA", START_TIME, players=18, kills=8),
        GuildRollup("g2", "Rogues", "b1", "BRAVO", START_TIME, players=12, kills=4),
    ]


@pytest.fixture
def sample_players() -> list[PlayerRollup]:
    return [
        PlayerRollup("p2", "Bob", START_TIME, guild_name="Rogues", kills=1, players=2),
        PlayerRollup("p1", "Alice", START_TIME, guild_name="Knights", kills=3, players=2),
    ]
