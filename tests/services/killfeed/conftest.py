"""Fixtures for kill-feed tests."""

from __future__ import annotations

from collections.abc import AsyncGenerator
from pathlib import Path

import pytest_asyncio

from albion_bb.services.store import SQLiteBattleboardStore


@pytest_asyncio.fixture
async def store(tmp_path: Path) -> AsyncGenerator[SQLiteBattleboardStore, None]:
    """Create and initialize a test store."""
    store = SQLiteBattleboardStore(db_path=tmp_path / "killfeed.db", region="americas")
    await store.initialize()
    yield store
    await store.close()
