"""
Battleboard Store.

SQLite-backed persistence for kill events, the battle work queue and
per-battle rollups.
"""

from .migrations import MigrationRunner
from .protocol import (
    AllianceRollup,
    BattleboardStore,
    BattleQueueItem,
    BattleRecord,
    GuildRollup,
    KillRecord,
    PlayerRollup,
    SaveResult,
    StoreStats,
)
from .sqlite import SQLiteBattleboardStore

__all__ = [
    "AllianceRollup",
    "BattleQueueItem",
    "BattleRecord",
    "BattleboardStore",
    "GuildRollup",
    "KillRecord",
    "MigrationRunner",
    "PlayerRollup",
    "SQLiteBattleboardStore",
    "SaveResult",
    "StoreStats",
]
