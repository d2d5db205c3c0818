"""
Core module for Killboard Data.

This module provides the foundational components:
- Configuration management (config.py)
- Payload schemas for the gameinfo API (schemas.py)
- Persisted row models (models.py)
- Enums and table names (types.py)
- Shared HTTP client infrastructure (http.py)

Usage:
    from killboard_data.core import Settings, get_settings
    from killboard_data.core import BattleRange, SyncKind
    from killboard_data.core.http import BaseApiClient, ExternalAPIError
"""

# Configuration
from .config import Settings, get_settings

# Types
from .types import (
    BattleRange,
    SyncKind,
    GAMEINFO_SERVERS,
    ALL_TABLES,
)

# Errors
from .errors import RunLockedError, SchemaError, StaleStatError

# Models
from .models import GuildBattleSummary, GuildPvPStat, MetaBuild, PlayerPvPStat, SyncRun

__all__ = [
    # Config
    "Settings",
    "get_settings",
    # Types
    "BattleRange",
    "SyncKind",
    "GAMEINFO_SERVERS",
    "ALL_TABLES",
    # Errors
    "RunLockedError",
    "SchemaError",
    "StaleStatError",
    # Models
    "GuildBattleSummary",
    "GuildPvPStat",
    "MetaBuild",
    "PlayerPvPStat",
    "SyncRun",
]
