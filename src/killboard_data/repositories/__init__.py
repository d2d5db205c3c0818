"""
Repository abstraction layer.

Provides database-agnostic interfaces for data persistence, with a
PostgreSQL implementation for production and an in-memory one for dry
runs and tests.

Usage:
    from killboard_data.repositories import get_repositories

    repos = get_repositories(db)
    repos.kill_events.insert(event, server="Americas")
    repos.meta_builds.list_all()
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from .base import (
    BattleRepository,
    GuildIntelRepository,
    GuildStatsRepository,
    KillEventRepository,
    MetaBuildRepository,
    PlayerStatsRepository,
    RepositorySet,
    SyncRunRepository,
)
from .memory import memory_repositories

if TYPE_CHECKING:
    from ..pg_connection import PostgresDB

__all__ = [
    "BattleRepository",
    "GuildIntelRepository",
    "GuildStatsRepository",
    "KillEventRepository",
    "MetaBuildRepository",
    "PlayerStatsRepository",
    "RepositorySet",
    "SyncRunRepository",
    "get_repositories",
    "memory_repositories",
]


def get_repositories(db: "PostgresDB") -> RepositorySet:
    """
    Get the PostgreSQL repository set for a database connection.

    Args:
        db: Database connection

    Returns:
        RepositorySet with all repository implementations
    """
    from .postgres import (
        PostgresBattleRepository,
        PostgresGuildIntelRepository,
        PostgresGuildStatsRepository,
        PostgresKillEventRepository,
        PostgresMetaBuildRepository,
        PostgresPlayerStatsRepository,
        PostgresSyncRunRepository,
    )

    return RepositorySet(
        kill_events=PostgresKillEventRepository(db),
        battles=PostgresBattleRepository(db),
        player_stats=PostgresPlayerStatsRepository(db),
        guild_stats=PostgresGuildStatsRepository(db),
        meta_builds=PostgresMetaBuildRepository(db),
        guild_intel=PostgresGuildIntelRepository(db),
        sync_runs=PostgresSyncRunRepository(db),
        atomic=db.transaction,
    )
