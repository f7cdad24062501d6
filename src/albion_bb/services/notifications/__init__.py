"""
Battle summary notifications (Discord webhooks).
"""

from .discord_client import DiscordClient, SendResult
from .formatter import format_battle_summary, format_duration, format_fame

__all__ = [
    "DiscordClient",
    "SendResult",
    "format_battle_summary",
    "format_duration",
    "format_fame",
]
