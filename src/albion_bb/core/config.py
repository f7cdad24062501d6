"""
Albion Battleboards Centralized Configuration

Provides validated, type-safe access to all environment variables using Pydantic Settings.

Usage:
    from albion_bb.core.config import get_settings

    settings = get_settings()
    if settings.log_level == "DEBUG":
        ...

Data Paths:
    All data is stored in {instance_root}/cache/:
    - cache/battleboards.db: Kill events, battle queue and battle rollups

Environment Variables:
    ALBION_LOG_LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    ALBION_DEBUG: Legacy debug flag (enables DEBUG level if set)
    ALBION_LOG_JSON: Output logs as JSON
    ALBION_REGION: Game server region (americas, asia, europe)
    ALBION_API_BASE_URL: Override the gameinfo API base URL
    ALBION_DB_PATH: Override the database location
    ALBION_DISCORD_WEBHOOK_URL: Webhook for battle summaries
"""

from __future__ import annotations

import logging
from functools import lru_cache
from pathlib import Path
from typing import Literal, Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from .constants import GAMEINFO_BASE_URLS


def _find_project_root() -> Path | None:
    """
    Find the project root by searching upward for pyproject.toml.

    Returns:
        Directory containing pyproject.toml, or None if not found
    """
    current = Path(__file__).resolve().parent
    for _ in range(10):  # Limit search depth
        if (current / "pyproject.toml").exists():
            return current
        parent = current.parent
        if parent == current:
            break  # Reached filesystem root
        current = parent
    return None


def _find_project_env_file() -> Path | None:
    """Return the project .env file if one exists next to pyproject.toml."""
    root = _find_project_root()
    if root is None:
        return None
    env_file = root / ".env"
    return env_file if env_file.exists() else None


def _find_instance_root() -> Path:
    """
    Find the instance root directory.

    Resolution order:
    1. ALBION_INSTANCE_ROOT environment variable (explicit override)
    2. Project root (directory containing pyproject.toml)
    3. Current working directory (fallback)
    """
    import os

    override = os.environ.get("ALBION_INSTANCE_ROOT")
    if override:
        return Path(override)

    return _find_project_root() or Path.cwd()


# Resolve paths at module load time
_ENV_FILE = _find_project_env_file()
_INSTANCE_ROOT = _find_instance_root()


Region = Literal["americas", "asia", "europe"]


class BattleboardSettings(BaseSettings):
    """
    Battleboard configuration settings with validation.

    Environment variables are automatically loaded with the ALBION_ prefix.
    All settings have sensible defaults and validation.
    """

    model_config = SettingsConfigDict(
        env_prefix="ALBION_",
        env_file=_ENV_FILE,
        env_file_encoding="utf-8",
        extra="ignore",
        case_sensitive=False,
    )

    # =========================================================================
    # Logging Configuration
    # =========================================================================

    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO",
        description="Log level for battleboard components",
    )

    debug: bool = Field(
        default=False,
        description="Legacy debug flag (enables DEBUG level if set)",
    )

    log_json: bool = Field(
        default=False,
        description="Output logs in JSON format for machine parsing",
    )

    # =========================================================================
    # Remote API
    # =========================================================================

    region: Region = Field(
        default="americas",
        description="Game server region; selects the gameinfo base URL",
    )

    api_base_url: Optional[str] = Field(
        default=None,
        description="Explicit gameinfo API base URL (overrides region)",
    )

    request_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Per-request timeout in seconds",
    )

    max_attempts: int = Field(
        default=3,
        ge=1,
        description="Attempts per request before giving up",
    )

    # =========================================================================
    # Data Paths
    # =========================================================================

    instance_root: Path = Field(
        default=_INSTANCE_ROOT,
        description="Instance root directory (project root containing pyproject.toml)",
    )

    db_path_override: Optional[Path] = Field(
        default=None,
        validation_alias="ALBION_DB_PATH",
        description="Explicit database path",
    )

    # =========================================================================
    # Kill Feed
    # =========================================================================

    kill_poll_interval_seconds: float = Field(default=10.0, gt=0)
    kill_page_size: int = Field(default=51, ge=1)
    recent_ids_limit: int = Field(default=500, ge=1)
    max_overlap_pages: int = Field(default=5, ge=1)
    kill_retention_days: int = Field(default=14, ge=1)
    cleanup_interval_seconds: float = Field(default=3600.0, gt=0)

    # =========================================================================
    # Battles
    # =========================================================================

    battle_poll_interval_seconds: float = Field(default=60.0, gt=0)
    battle_page_size: int = Field(default=51, ge=1)
    max_discovery_pages: int = Field(default=10, ge=1)
    enqueue_limit: int = Field(default=100, ge=1)
    work_queue_size: int = Field(default=100, ge=1)
    battle_kills_page_size: int = Field(default=50, ge=1)

    # =========================================================================
    # Notifications
    # =========================================================================

    discord_webhook_url: Optional[str] = Field(
        default=None,
        description="Discord webhook for battle summaries (unset = disabled)",
    )

    notify_min_players: int = Field(
        default=20,
        ge=0,
        description="Only post summaries for battles with at least this many players",
    )

    # =========================================================================
    # Validators
    # =========================================================================

    @field_validator("log_level", mode="before")
    @classmethod
    def uppercase_log_level(cls, v: str) -> str:
        """Normalize log level to uppercase."""
        if isinstance(v, str):
            return v.upper()
        return v

    @field_validator("region", mode="before")
    @classmethod
    def lowercase_region(cls, v: str) -> str:
        """Normalize region to lowercase."""
        if isinstance(v, str):
            return v.lower()
        return v

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def effective_log_level(self) -> str:
        """Get effective log level, respecting legacy ALBION_DEBUG."""
        if self.debug and self.log_level == "INFO":
            return "DEBUG"
        return self.log_level

    @property
    def log_level_int(self) -> int:
        """Get effective log level as logging constant."""
        return getattr(logging, self.effective_log_level)

    @property
    def base_url(self) -> str:
        """Gameinfo API base URL for the configured region."""
        if self.api_base_url:
            return self.api_base_url.rstrip("/")
        return GAMEINFO_BASE_URLS[self.region]

    @property
    def cache_dir(self) -> Path:
        """Path to cache directory."""
        return self.instance_root / "cache"

    @property
    def db_path(self) -> Path:
        """Path to the battleboard database."""
        if self.db_path_override is not None:
            return self.db_path_override
        return self.cache_dir / "battleboards.db"


# =============================================================================
# Singleton Accessor
# =============================================================================


@lru_cache(maxsize=1)
def get_settings() -> BattleboardSettings:
    """
    Get the singleton settings instance.

    The settings are validated at first access.
    """
    return BattleboardSettings()


def reset_settings() -> None:
    """
    Reset the settings cache (for testing).

    After calling this, the next get_settings() call will
    reload settings from environment variables.
    """
    get_settings.cache_clear()


def is_json_logging() -> bool:
    """Check if JSON logging is enabled."""
    return get_settings().log_json
