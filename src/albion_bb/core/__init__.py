"""
Albion Battleboards Core

Configuration, logging, errors, retries and the gameinfo HTTP client.
"""

from .client import GameInfoClient, new_cache_token
from .config import BattleboardSettings, get_settings, reset_settings
from .errors import (
    BattleboardError,
    FetchError,
    SchemaError,
    StoreError,
    TransientFetchError,
    UniqueConstraintError,
)
from .logging import get_logger, reset_logging, set_log_level

__all__ = [
    "BattleboardError",
    "BattleboardSettings",
    "FetchError",
    "GameInfoClient",
    "SchemaError",
    "StoreError",
    "TransientFetchError",
    "UniqueConstraintError",
    "get_logger",
    "get_settings",
    "new_cache_token",
    "reset_logging",
    "reset_settings",
    "set_log_level",
]
