"""
Albion Battleboards Models

Typed payloads from the gameinfo API.
"""

from albion_bb.models.gameinfo import (
    BattleAlliance,
    BattleDetail,
    BattleGuild,
    BattlePlayer,
    BattleSummary,
    Equipment,
    GameInfoModel,
    Item,
    KillEvent,
    PlayerSnapshot,
)

__all__ = [
    "BattleAlliance",
    "BattleDetail",
    "BattleGuild",
    "BattlePlayer",
    "BattleSummary",
    "Equipment",
    "GameInfoModel",
    "Item",
    "KillEvent",
    "PlayerSnapshot",
]
