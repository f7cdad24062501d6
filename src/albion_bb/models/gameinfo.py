"""
Pydantic models for gameinfo API payloads.

Battle payloads use camelCase keys; kill events use PascalCase keys.
Payloads are validated once at the client boundary and never mutated.
"""

from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

# Gameinfo timestamps carry up to 7 fractional digits ("...46.4426870Z")
_FRACTION_RE = re.compile(r"(\.\d{6})\d+")


def _normalize_timestamp(value: Any) -> Any:
    """Trim sub-microsecond digits so the value parses as a datetime."""
    if isinstance(value, str):
        return _FRACTION_RE.sub(r"\1", value)
    return value


def _none_to_empty(value: Any) -> Any:
    return "" if value is None else value


def _list_to_map(value: Any) -> Any:
    # The API sends [] instead of {} for empty maps
    if value is None or (isinstance(value, list) and not value):
        return {}
    return value


# =============================================================================
# Base Model
# =============================================================================


class GameInfoModel(BaseModel):
    """
    Base model for gameinfo payloads.

    Configuration:
    - frozen: Payloads are immutable once validated
    - extra="ignore": The API sends many fields we do not use
    - populate_by_name: Tests and callers may construct with field names
    """

    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)


# =============================================================================
# Kill Event Models
# =============================================================================


class Item(GameInfoModel):
    """A single equipped item."""

    type: str = Field(default="", alias="Type", description="Item type identifier")
    quality: int = Field(default=0, alias="Quality")

    @field_validator("type", mode="before")
    @classmethod
    def none_type(cls, v: Any) -> Any:
        return _none_to_empty(v)


class Equipment(GameInfoModel):
    """Equipment slots; only the main hand is used."""

    main_hand: Optional[Item] = Field(default=None, alias="MainHand")


class PlayerSnapshot(GameInfoModel):
    """
    A player's state as recorded on a single kill event.

    Group members are reported without item power, damage or healing;
    those fields default to zero.
    """

    id: str = Field(default="", alias="Id")
    name: str = Field(default="", alias="Name")
    guild_id: str = Field(default="", alias="GuildId")
    guild_name: str = Field(default="", alias="GuildName")
    alliance_id: str = Field(default="", alias="AllianceId")
    alliance_name: str = Field(default="", alias="AllianceName")
    kill_fame: int = Field(default=0, alias="KillFame")
    death_fame: int = Field(default=0, alias="DeathFame")
    average_item_power: float = Field(default=0.0, alias="AverageItemPower")
    damage_done: float = Field(default=0.0, alias="DamageDone")
    support_healing_done: float = Field(default=0.0, alias="SupportHealingDone")
    equipment: Equipment = Field(default_factory=Equipment, alias="Equipment")

    @field_validator(
        "id", "name", "guild_id", "guild_name", "alliance_id", "alliance_name", mode="before"
    )
    @classmethod
    def none_strings(cls, v: Any) -> Any:
        return _none_to_empty(v)

    @field_validator("equipment", mode="before")
    @classmethod
    def none_equipment(cls, v: Any) -> Any:
        return {} if v is None else v

    @property
    def weapon(self) -> str:
        """Main-hand weapon type, or empty string when unarmed."""
        if self.equipment.main_hand is None:
            return ""
        return self.equipment.main_hand.type


class KillEvent(GameInfoModel):
    """
    One kill from the flat event feed or a battle's event list.

    The flat feed spells the timestamp key "TimeStamp"; the battle
    variant spells it "Timestamp". Both are accepted.
    """

    event_id: int = Field(alias="EventId", description="Globally unique event ID")
    timestamp: datetime = Field(
        validation_alias=AliasChoices("TimeStamp", "Timestamp", "timestamp")
    )
    battle_id: int = Field(default=0, alias="BattleId")
    kill_area: str = Field(default="", alias="KillArea")
    type: str = Field(default="", alias="Type")
    killer: PlayerSnapshot = Field(alias="Killer")
    victim: PlayerSnapshot = Field(alias="Victim")
    total_victim_kill_fame: int = Field(default=0, alias="TotalVictimKillFame")
    group_members: list[PlayerSnapshot] = Field(default_factory=list, alias="GroupMembers")
    participants: list[PlayerSnapshot] = Field(default_factory=list, alias="Participants")

    @field_validator("timestamp", mode="before")
    @classmethod
    def trim_timestamp(cls, v: Any) -> Any:
        return _normalize_timestamp(v)

    @field_validator("group_members", "participants", mode="before")
    @classmethod
    def none_lists(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("kill_area", "type", mode="before")
    @classmethod
    def none_strings(cls, v: Any) -> Any:
        return _none_to_empty(v)


# =============================================================================
# Battle Models
# =============================================================================


class BattleAlliance(GameInfoModel):
    """Alliance counters as reported on a battle."""

    id: str = Field(default="")
    name: str = Field(default="")
    kills: int = Field(default=0)
    kill_fame: int = Field(default=0, alias="killFame")
    deaths: int = Field(default=0)


class BattleGuild(GameInfoModel):
    """Guild counters as reported on a battle."""

    id: str = Field(default="")
    name: str = Field(default="")
    alliance_id: str = Field(default="", alias="allianceId")
    alliance_name: str = Field(default="", alias="alliance")
    kills: int = Field(default=0)
    kill_fame: int = Field(default=0, alias="killFame")
    deaths: int = Field(default=0)

    @field_validator("alliance_id", "alliance_name", mode="before")
    @classmethod
    def none_strings(cls, v: Any) -> Any:
        return _none_to_empty(v)


class BattlePlayer(GameInfoModel):
    """Player counters as reported on a battle."""

    id: str = Field(default="")
    name: str = Field(default="")
    alliance_id: str = Field(default="", alias="allianceId")
    alliance_name: str = Field(default="", alias="allianceName")
    guild_id: str = Field(default="", alias="guildId")
    guild_name: str = Field(default="", alias="guildName")
    kills: int = Field(default=0)
    kill_fame: int = Field(default=0, alias="killFame")
    deaths: int = Field(default=0)

    @field_validator("alliance_id", "alliance_name", "guild_id", "guild_name", mode="before")
    @classmethod
    def none_strings(cls, v: Any) -> Any:
        return _none_to_empty(v)


class BattleSummary(GameInfoModel):
    """
    A battle as listed by /battles.

    The participant maps are keyed by remote ID and keep the API's order.
    """

    id: int = Field(description="Remote battle ID")
    start_time: datetime = Field(alias="startTime")
    end_time: datetime = Field(alias="endTime")
    total_fame: int = Field(default=0, alias="totalFame")
    total_kills: int = Field(default=0, alias="totalKills")
    alliances: dict[str, BattleAlliance] = Field(default_factory=dict)
    guilds: dict[str, BattleGuild] = Field(default_factory=dict)
    players: dict[str, BattlePlayer] = Field(default_factory=dict)

    @field_validator("start_time", "end_time", mode="before")
    @classmethod
    def trim_timestamp(cls, v: Any) -> Any:
        return _normalize_timestamp(v)

    @field_validator("alliances", "guilds", "players", mode="before")
    @classmethod
    def empty_maps(cls, v: Any) -> Any:
        return _list_to_map(v)

    @property
    def duration_seconds(self) -> int:
        return max(0, int((self.end_time - self.start_time).total_seconds()))


class BattleDetail(BattleSummary):
    """A battle as returned by /battles/{id}."""

    battle_timeout: int = Field(default=0, alias="battle_TIMEOUT")
