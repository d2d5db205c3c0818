"""
Configuration management for Killboard Data.

Uses Pydantic settings for type-safe configuration with environment variable support.
All settings can be overridden via environment variables.
"""

from functools import lru_cache
from typing import Optional

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .types import BattleRange, GAMEINFO_SERVERS


class Settings(BaseSettings):
    """
    Application settings with environment variable support.

    All settings can be overridden via environment variables,
    e.g. GAMEINFO_SERVER=Europe or KILLS_TARGET=300.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        env_nested_delimiter="__",
    )

    # ==========================================================================
    # Application Metadata
    # ==========================================================================
    app_name: str = "Killboard Data Sync"
    app_version: str = "1.0.0"
    debug: bool = False
    environment: str = Field(default="development", description="development, staging, production")
    log_level: str = Field(default="INFO", description="Root log level for CLI and API")

    # ==========================================================================
    # Database Configuration
    # ==========================================================================
    database_url: Optional[str] = Field(
        default=None,
        description="PostgreSQL connection string",
    )
    neon_database_url: Optional[str] = Field(
        default=None,
        description="Alternative Neon-specific database URL",
    )
    database_pool_size: int = Field(default=10, ge=1, le=50)

    @computed_field
    @property
    def db_url(self) -> str:
        """Get the effective database URL."""
        return self.database_url or self.neon_database_url or ""

    # ==========================================================================
    # API Configuration (sync trigger)
    # ==========================================================================
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    sync_secret: Optional[str] = Field(
        default=None,
        description="Shared secret required on every sync trigger request",
    )

    # ==========================================================================
    # Gameinfo API
    # ==========================================================================
    gameinfo_server: str = Field(default="Americas", description="Americas, Europe, Asia")
    gameinfo_base_url: Optional[str] = Field(
        default=None,
        description="Override the server-derived gameinfo base URL",
    )
    gameinfo_timeout: float = Field(default=30.0, gt=0)
    page_delay_ms: int = Field(
        default=300,
        ge=200,
        le=300,
        description="Pause between paginated gameinfo requests",
    )

    @computed_field
    @property
    def gameinfo_url(self) -> str:
        """Get the effective gameinfo base URL for the configured server."""
        if self.gameinfo_base_url:
            return self.gameinfo_base_url
        return GAMEINFO_SERVERS.get(self.gameinfo_server, GAMEINFO_SERVERS["Americas"])

    # ==========================================================================
    # PvP Event Sync
    # ==========================================================================
    kills_target: int = Field(default=100, ge=1)
    battles_target: int = Field(default=50, ge=0)
    battle_range: BattleRange = BattleRange.DAY
    stat_update_attempts: int = Field(
        default=3,
        ge=1,
        description="Optimistic read-modify-write attempts per stat row",
    )

    # ==========================================================================
    # Guild Sync
    # ==========================================================================
    guild_safety_cap: int = Field(default=40, ge=1, description="Max guilds processed per run")
    guild_concurrency: int = Field(default=8, ge=1)
    guild_leaderboard_limit: int = Field(default=50, ge=1)
    guild_events_limit: int = Field(default=25, ge=1)

    # ==========================================================================
    # Meta Build Aggregation
    # ==========================================================================
    build_event_cap: int = Field(default=20000, ge=1, description="Max kill events per aggregation")
    build_page_size: int = Field(default=1000, ge=1)
    build_insert_batch_size: int = Field(default=100, ge=1)

    # ==========================================================================
    # Run Locking
    # ==========================================================================
    sync_lock_ttl_seconds: int = Field(
        default=900,
        ge=30,
        description="Seconds before an abandoned run lock may be taken over",
    )


@lru_cache
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()
