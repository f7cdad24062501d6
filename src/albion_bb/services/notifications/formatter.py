"""
Discord Message Formatter.

Formats processed battles as Discord webhook embeds.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from ..store.protocol import AllianceRollup, BattleRecord, GuildRollup

BATTLE_URL = "https://albiononline.com/killboard/battles/{battle_id}"

EMBED_COLOR = 0xC0392B  # Dark red
DEFAULT_TOP_N = 5


def format_fame(value: float) -> str:
    """
    Format fame in human-readable form.

    Args:
        value: Fame amount

    Returns:
        Formatted string (e.g., "1.5B", "350.0M", "45.0K")
    """
    if value >= 1_000_000_000:
        return f"{value / 1_000_000_000:.1f}B"
    elif value >= 1_000_000:
        return f"{value / 1_000_000:.1f}M"
    elif value >= 1_000:
        return f"{value / 1_000:.1f}K"
    else:
        return f"{value:.0f}"


def format_duration(seconds: int) -> str:
    """Format a duration as "1h 05m", "12m 30s" or "45s"."""
    seconds = max(0, int(seconds))
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}h {minutes:02d}m"
    if minutes:
        return f"{minutes}m {secs:02d}s"
    return f"{secs}s"


def _ranking_lines(rollups: list[AllianceRollup] | list[GuildRollup], top_n: int) -> str:
    ranked = sorted((r for r in rollups if r.name), key=lambda r: r.players, reverse=True)
    lines = [
        f"**{r.name}** • {r.players} players • {r.kills}/{r.deaths} K/D"
        f" • {format_fame(r.kill_fame)} fame"
        for r in ranked[:top_n]
    ]
    return "\n".join(lines) or "None"


def format_battle_summary(
    battle: BattleRecord,
    alliances: list[AllianceRollup],
    guilds: list[GuildRollup],
    top_n: int = DEFAULT_TOP_N,
) -> dict[str, Any]:
    """
    Format a processed battle as a Discord webhook payload.

    Args:
        battle: Battle header row
        alliances: Alliance rollups for the battle
        guilds: Guild rollups for the battle
        top_n: How many alliances and guilds to list

    Returns:
        Discord webhook payload dict
    """
    duration = format_duration(battle.end_time - battle.start_time)
    description = (
        f"{battle.num_players} players • {battle.total_kills} kills • "
        f"{format_fame(battle.total_fame)} fame • {duration}"
    )

    embed: dict[str, Any] = {
        "title": f"⚔️ Battle {battle.battle_id}",
        "description": description,
        "color": EMBED_COLOR,
        "url": BATTLE_URL.format(battle_id=battle.battle_id),
        "fields": [
            {"name": "Alliances", "value": _ranking_lines(alliances, top_n), "inline": False},
            {"name": "Guilds", "value": _ranking_lines(guilds, top_n), "inline": False},
        ],
        "footer": {"text": f"Battle ID: {battle.battle_id} • {battle.region}"},
        "timestamp": datetime.fromtimestamp(battle.start_time, tz=timezone.utc).isoformat(),
    }

    return {"embeds": [embed]}
