"""
Battle aggregation engine.

Pure functions that fold a battle's kill events into alliance, guild and
player rollups. Nothing here touches the network or the store.

Attribution rules:
- A kill counts once for the killer's alliance, guild and name; a death
  once for the victim's. Empty names (NPCs, unattributed) are skipped.
- Kill fame: every group member of a kill adds its own reported kill fame
  for that event, undivided, to its alliance, guild and name.
- Death fame: the event's total victim kill fame, once per event, goes to
  the victim's alliance, guild and name.
- Members of an alliance or guild are the distinct names seen as group
  member, participant, victim or killer. When a name appears more than
  once, the snapshot with the higher average item power is kept.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from operator import attrgetter
from typing import Optional

from ...models.gameinfo import KillEvent, PlayerSnapshot
from ..store.protocol import AllianceRollup, GuildRollup, PlayerRollup

ScopeKey = Callable[[PlayerSnapshot], str]

by_alliance: ScopeKey = attrgetter("alliance_name")
by_guild: ScopeKey = attrgetter("guild_name")
by_name: ScopeKey = attrgetter("name")


@dataclass(frozen=True)
class AllianceInput:
    """An alliance listed on the battle header."""

    id: str
    name: str
    start_time: int


@dataclass(frozen=True)
class GuildInput:
    """A guild listed on the battle header."""

    id: str
    name: str
    alliance_id: str
    alliance_name: str
    start_time: int


# =============================================================================
# Player Identity
# =============================================================================


def resolve_players(events: Iterable[KillEvent]) -> dict[str, PlayerSnapshot]:
    """
    Pick one snapshot per player name across a battle.

    Pass 1 walks every event's group members, then killer, then victim,
    always overwriting. Pass 2 walks participants and only fills names
    pass 1 never saw. Group members, killers and victims carry richer
    data than participant entries.
    """
    events = list(events)
    players: dict[str, PlayerSnapshot] = {}

    for event in events:
        for snapshot in (*event.group_members, event.killer, event.victim):
            if snapshot.name:
                players[snapshot.name] = snapshot

    for event in events:
        for snapshot in event.participants:
            if snapshot.name and snapshot.name not in players:
                players[snapshot.name] = snapshot

    return players


def player_damage(events: Iterable[KillEvent]) -> dict[str, float]:
    """Damage done per name, summed over participant snapshots."""
    totals: dict[str, float] = defaultdict(float)
    for event in events:
        for snapshot in event.participants:
            if snapshot.name:
                totals[snapshot.name] += snapshot.damage_done
    return dict(totals)


def player_healing(events: Iterable[KillEvent]) -> dict[str, float]:
    """Support healing done per name, summed over participant snapshots."""
    totals: dict[str, float] = defaultdict(float)
    for event in events:
        for snapshot in event.participants:
            if snapshot.name:
                totals[snapshot.name] += snapshot.support_healing_done
    return dict(totals)


# =============================================================================
# Counters
# =============================================================================


def kill_counts(events: Iterable[KillEvent], key: ScopeKey) -> dict[str, int]:
    """Kills per scope, attributed to the killer."""
    counts: dict[str, int] = defaultdict(int)
    for event in events:
        scope = key(event.killer)
        if scope:
            counts[scope] += 1
    return dict(counts)


def death_counts(events: Iterable[KillEvent], key: ScopeKey) -> dict[str, int]:
    """Deaths per scope, attributed to the victim."""
    counts: dict[str, int] = defaultdict(int)
    for event in events:
        scope = key(event.victim)
        if scope:
            counts[scope] += 1
    return dict(counts)


def kill_fame(events: Iterable[KillEvent], key: ScopeKey) -> dict[str, int]:
    """Kill fame per scope, credited in full to every group member."""
    totals: dict[str, int] = defaultdict(int)
    for event in events:
        for member in event.group_members:
            scope = key(member)
            if scope:
                totals[scope] += member.kill_fame
    return dict(totals)


def death_fame(events: Iterable[KillEvent], key: ScopeKey) -> dict[str, int]:
    """Total victim kill fame per scope, once per event."""
    totals: dict[str, int] = defaultdict(int)
    for event in events:
        scope = key(event.victim)
        if scope:
            totals[scope] += event.total_victim_kill_fame
    return dict(totals)


def members(events: Iterable[KillEvent], key: ScopeKey) -> dict[str, dict[str, PlayerSnapshot]]:
    """
    Distinct players per scope, keyed by scope then player name.

    Keeps the snapshot with the higher average item power when a name
    is seen more than once (participants carry item power, group
    members do not).
    """
    result: dict[str, dict[str, PlayerSnapshot]] = {}
    for event in events:
        for snapshot in (*event.group_members, *event.participants, event.victim, event.killer):
            scope = key(snapshot)
            if not scope or not snapshot.name:
                continue
            roster = result.setdefault(scope, {})
            existing = roster.get(snapshot.name)
            if existing is None or existing.average_item_power < snapshot.average_item_power:
                roster[snapshot.name] = snapshot
    return result


def average_item_power(snapshots: Iterable[PlayerSnapshot]) -> float:
    """
    Mean average item power over snapshots with a positive value.

    Zero means the value was not reported, so it is left out.
    Returns 0.0 when nothing qualifies.
    """
    powers = [s.average_item_power for s in snapshots if s.average_item_power > 0]
    if not powers:
        return 0.0
    return sum(powers) / len(powers)


# =============================================================================
# Rollups
# =============================================================================


def map_alliance_data(
    alliances: Sequence[AllianceInput], events: Sequence[KillEvent]
) -> list[AllianceRollup]:
    """Alliance rollups in the order the alliances were given."""
    rosters = members(events, by_alliance)
    kills = kill_counts(events, by_alliance)
    deaths = death_counts(events, by_alliance)
    fame = kill_fame(events, by_alliance)
    lost = death_fame(events, by_alliance)

    result = []
    for alliance in alliances:
        roster = rosters.get(alliance.name, {})
        result.append(
            AllianceRollup(
                alliance_id=alliance.id,
                name=alliance.name,
                start_time=alliance.start_time,
                players=len(roster),
                kills=kills.get(alliance.name, 0),
                deaths=deaths.get(alliance.name, 0),
                kill_fame=fame.get(alliance.name, 0),
                death_fame=lost.get(alliance.name, 0),
                average_item_power=average_item_power(roster.values()),
            )
        )
    return result


def map_guild_data(guilds: Sequence[GuildInput], events: Sequence[KillEvent]) -> list[GuildRollup]:
    """Guild rollups in the order the guilds were given."""
    rosters = members(events, by_guild)
    kills = kill_counts(events, by_guild)
    deaths = death_counts(events, by_guild)
    fame = kill_fame(events, by_guild)
    lost = death_fame(events, by_guild)

    result = []
    for guild in guilds:
        roster = rosters.get(guild.name, {})
        result.append(
            GuildRollup(
                guild_id=guild.id,
                name=guild.name,
                alliance_id=guild.alliance_id,
                alliance_name=guild.alliance_name,
                start_time=guild.start_time,
                players=len(roster),
                kills=kills.get(guild.name, 0),
                deaths=deaths.get(guild.name, 0),
                kill_fame=fame.get(guild.name, 0),
                death_fame=lost.get(guild.name, 0),
                average_item_power=average_item_power(roster.values()),
            )
        )
    return result


def map_player_data(start_time: int, events: Sequence[KillEvent]) -> list[PlayerRollup]:
    """One rollup per resolved player name."""
    players = resolve_players(events)
    kills = kill_counts(events, by_name)
    deaths = death_counts(events, by_name)
    fame = kill_fame(events, by_name)
    lost = death_fame(events, by_name)
    damage = player_damage(events)
    healing = player_healing(events)

    return [
        PlayerRollup(
            player_id=snapshot.id,
            name=name,
            start_time=start_time,
            alliance_id=snapshot.alliance_id,
            alliance_name=snapshot.alliance_name,
            guild_id=snapshot.guild_id,
            guild_name=snapshot.guild_name,
            kills=kills.get(name, 0),
            deaths=deaths.get(name, 0),
            kill_fame=fame.get(name, 0),
            death_fame=lost.get(name, 0),
            weapon=snapshot.weapon,
            average_item_power=snapshot.average_item_power,
            damage=damage.get(name, 0.0),
            healing=healing.get(name, 0.0),
            players=len(players),
        )
        for name, snapshot in players.items()
    ]


# =============================================================================
# Participation Ranking
# =============================================================================


def _by_participation(
    rollups: Iterable[AllianceRollup | GuildRollup], limit: Optional[int]
) -> str:
    # sorted() is stable, so ties keep encounter order
    ranked = sorted((r for r in rollups if r.name), key=attrgetter("players"), reverse=True)
    if limit is not None:
        ranked = ranked[:limit]
    return ", ".join(r.name for r in ranked)


def top_alliances_by_participation(
    rollups: Iterable[AllianceRollup], limit: Optional[int] = None
) -> str:
    """Alliance names by distinct player count, descending, comma-joined."""
    return _by_participation(rollups, limit)


def top_guilds_by_participation(rollups: Iterable[GuildRollup], limit: Optional[int] = None) -> str:
    """Guild names by distinct player count, descending, comma-joined."""
    return _by_participation(rollups, limit)
