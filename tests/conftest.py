"""
Albion Battleboards Test Suite - Shared Fixtures and Configuration

Provides payload builders for gameinfo responses and resets module-level
singletons (settings, logging) between tests.
"""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Optional

import pytest

# =============================================================================
# Singleton Reset
# =============================================================================


@pytest.fixture(autouse=True)
def reset_all_singletons():
    """
    Reset module-level singletons between tests.

    Settings MUST be reset first since logging reads from settings.
    """
    from albion_bb.core.config import reset_settings
    from albion_bb.core.logging import reset_logging

    reset_settings()
    reset_logging()
    yield
    reset_settings()
    reset_logging()


@pytest.fixture(autouse=True)
def isolated_env(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point the database at a temp file and clear deployment settings."""
    db_path = tmp_path / "battleboards.db"
    monkeypatch.setenv("ALBION_DB_PATH", str(db_path))
    for name in (
        "ALBION_REGION",
        "ALBION_API_BASE_URL",
        "ALBION_DISCORD_WEBHOOK_URL",
        "ALBION_LOG_LEVEL",
        "ALBION_LOG_JSON",
        "ALBION_DEBUG",
    ):
        monkeypatch.delenv(name, raising=False)
    return db_path


# =============================================================================
# Gameinfo Payload Builders
# =============================================================================


def make_player_payload(
    name: str,
    guild: str = "",
    alliance: str = "",
    kill_fame: int = 0,
    item_power: float = 0.0,
    damage: float = 0.0,
    healing: float = 0.0,
    weapon: Optional[str] = "T8_MAIN_SWORD",
) -> dict[str, Any]:
    """Build a PascalCase player snapshot as the gameinfo API sends it."""
    return {
        "Id": f"id-{name}" if name else "",
        "Name": name,
        "GuildId": f"gid-{guild}" if guild else "",
        "GuildName": guild,
        "AllianceId": f"aid-{alliance}" if alliance else "",
        "AllianceName": alliance,
        "KillFame": kill_fame,
        "DeathFame": 0,
        "AverageItemPower": item_power,
        "DamageDone": damage,
        "SupportHealingDone": healing,
        "Equipment": {"MainHand": {"Type": weapon, "Quality": 2} if weapon else None},
    }


def make_event_payload(
    event_id: int,
    killer: dict[str, Any],
    victim: dict[str, Any],
    fame: int = 1000,
    group: Optional[list[dict[str, Any]]] = None,
    participants: Optional[list[dict[str, Any]]] = None,
    timestamp: Optional[datetime] = None,
    battle_id: int = 0,
) -> dict[str, Any]:
    """Build a kill event payload; group and participants default to the killer."""
    ts = timestamp or datetime.now(timezone.utc)
    return {
        "EventId": event_id,
        "TimeStamp": ts.strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
        "BattleId": battle_id,
        "KillArea": "OPEN_WORLD",
        "Type": "KILL",
        "Killer": killer,
        "Victim": victim,
        "TotalVictimKillFame": fame,
        "GroupMembers": group if group is not None else [killer],
        "Participants": participants if participants is not None else [killer],
    }


def make_battle_payload(
    battle_id: int,
    start_time: Optional[datetime] = None,
    duration_seconds: int = 600,
    total_kills: int = 0,
    total_fame: int = 0,
    alliances: Optional[dict[str, Any]] = None,
    guilds: Optional[dict[str, Any]] = None,
    players: Optional[dict[str, Any]] = None,
) -> dict[str, Any]:
    """Build a camelCase battle payload as /battles and /battles/{id} send it."""
    start = start_time or datetime(2026, 10, 19, 12, 0, 0, tzinfo=timezone.utc)
    end = datetime.fromtimestamp(start.timestamp() + duration_seconds, tz=timezone.utc)
    return {
        "id": battle_id,
        "startTime": start.strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
        "endTime": end.strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
        "timeout": end.strftime("%Y-%m-%dT%H:%M:%S.%fZ"),
        "totalFame": total_fame,
        "totalKills": total_kills,
        "alliances": alliances if alliances is not None else [],
        "guilds": guilds if guilds is not None else [],
        "players": players if players is not None else [],
        "battle_TIMEOUT": 120,
    }


@pytest.fixture
def player_payload() -> Callable[..., dict[str, Any]]:
    """Fixture providing the player snapshot payload builder."""
    return make_player_payload


@pytest.fixture
def event_payload() -> Callable[..., dict[str, Any]]:
    """Fixture providing the kill event payload builder."""
    return make_event_payload


@pytest.fixture
def battle_payload() -> Callable[..., dict[str, Any]]:
    """Fixture providing the battle payload builder."""
    return make_battle_payload


@pytest.fixture
def kill_event():
    """
    Fixture building validated KillEvent models.

    Usage:
        def test_something(kill_event):
            event = kill_event(1, killer="Alice", victim="Bob")
    """
    from albion_bb.models.gameinfo import KillEvent

    def build(
        event_id: int,
        killer: str = "Killer",
        victim: str = "Victim",
        timestamp: Optional[datetime] = None,
        **kwargs: Any,
    ) -> KillEvent:
        payload = make_event_payload(
            event_id,
            make_player_payload(killer),
            make_player_payload(victim),
            timestamp=timestamp,
            **kwargs,
        )
        return KillEvent.model_validate(payload)

    return build


@pytest.fixture
def battle_summary():
    """Fixture building validated BattleSummary models."""
    from albion_bb.models.gameinfo import BattleSummary

    def build(battle_id: int, start_time: Optional[datetime] = None, **kwargs: Any) -> BattleSummary:
        return BattleSummary.model_validate(make_battle_payload(battle_id, start_time, **kwargs))

    return build
