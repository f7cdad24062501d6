"""
Tests for gameinfo payload models.
"""

from __future__ import annotations

from datetime import datetime, timezone

import pytest
from pydantic import ValidationError

from albion_bb.models.gameinfo import (
    BattleDetail,
    BattleGuild,
    BattleSummary,
    KillEvent,
    PlayerSnapshot,
)


class TestKillEvent:
    """Test KillEvent parsing."""

    def test_parses_feed_payload(self, event_payload, player_payload):
        """PascalCase keys map onto snake_case fields."""
        killer = player_payload("Alice", guild="Knights", alliance="ALPHA", item_power=1350.5)
        victim = player_payload("Bob", guild="Rogues", alliance="BRAVO", weapon="T6_2H_BOW")
        event = KillEvent.model_validate(event_payload(42, killer, victim, fame=123_456))

        assert event.event_id == 42
        assert event.killer.name == "Alice"
        assert event.killer.guild_name == "Knights"
        assert event.killer.alliance_name == "ALPHA"
        assert event.killer.average_item_power == 1350.5
        assert event.victim.weapon == "T6_2H_BOW"
        assert event.total_victim_kill_fame == 123_456
        assert [m.name for m in event.group_members] == ["Alice"]

    def test_seven_digit_fraction_timestamp(self, event_payload, player_payload):
        """Timestamps with 100ns precision are accepted."""
        payload = event_payload(1, player_payload("A"), player_payload("B"))
        payload["TimeStamp"] = "2026-10-19T12:34:56.1234567Z"

        event = KillEvent.model_validate(payload)

        assert event.timestamp == datetime(2026, 10, 19, 12, 34, 56, 123456, tzinfo=timezone.utc)

    def test_battle_timestamp_spelling(self, event_payload, player_payload):
        """Battle event lists spell the key "Timestamp"."""
        payload = event_payload(1, player_payload("A"), player_payload("B"))
        payload["Timestamp"] = payload.pop("TimeStamp")

        event = KillEvent.model_validate(payload)

        assert event.timestamp.year > 2000

    def test_null_fields_become_empty(self, event_payload, player_payload):
        """Null names, lists and equipment degrade to empty values."""
        killer = player_payload("Alice")
        killer["GuildName"] = None
        killer["AllianceName"] = None
        killer["Equipment"] = None
        payload = event_payload(1, killer, player_payload("Bob"))
        payload["Participants"] = None

        event = KillEvent.model_validate(payload)

        assert event.killer.guild_name == ""
        assert event.killer.alliance_name == ""
        assert event.killer.weapon == ""
        assert event.participants == []

    def test_missing_event_id_rejected(self, event_payload, player_payload):
        """EventId is required."""
        payload = event_payload(1, player_payload("A"), player_payload("B"))
        del payload["EventId"]

        with pytest.raises(ValidationError):
            KillEvent.model_validate(payload)

    def test_models_are_frozen(self):
        """Validated payloads cannot be mutated."""
        snapshot = PlayerSnapshot(name="Alice")

        with pytest.raises(ValidationError):
            snapshot.name = "Mallory"


class TestBattleModels:
    """Test battle list and detail parsing."""

    def test_empty_maps_sent_as_lists(self, battle_payload):
        """The API sends [] for empty maps."""
        battle = BattleSummary.model_validate(battle_payload(1))

        assert battle.alliances == {}
        assert battle.guilds == {}
        assert battle.players == {}

    def test_maps_keep_api_order(self, battle_payload):
        """Participant maps preserve the order the API lists them in."""
        payload = battle_payload(
            1,
            alliances={
                "z": {"id": "z", "name": "Zulu", "kills": 1, "killFame": 10, "deaths": 0},
                "a": {"id": "a", "name": "Alpha", "kills": 0, "killFame": 0, "deaths": 1},
            },
        )

        battle = BattleSummary.model_validate(payload)

        assert list(battle.alliances) == ["z", "a"]
        assert battle.alliances["z"].kill_fame == 10

    def test_guild_alliance_alias(self):
        """Guild entries name their alliance under "alliance"."""
        guild = BattleGuild.model_validate(
            {"id": "g1", "name": "Knights", "alliance": "ALPHA", "allianceId": "a1"}
        )

        assert guild.alliance_name == "ALPHA"
        assert guild.alliance_id == "a1"

    def test_duration(self, battle_payload):
        """duration_seconds is end minus start."""
        battle = BattleDetail.model_validate(battle_payload(1, duration_seconds=754))

        assert battle.duration_seconds == 754
