"""
Killboard Data

Ingestion and aggregation pipeline for Albion Online PvP data from the
public gameinfo API.

Key Features:
- Idempotent kill event ingestion (unique upstream event id)
- Incremental player and guild stats with optimistic versioning
- Full-table meta build aggregation over normalized equipment fingerprints
- Append-only guild leaderboard, member and battle snapshots
- Audited, lock-guarded runs triggered by cron, HTTP or CLI

Usage:
    from killboard_data import PostgresDB, get_repositories, PvPSeeder
    from killboard_data.providers import GameinfoClient

    db = PostgresDB()
    repos = get_repositories(db)

    async with GameinfoClient() as client:
        result = await PvPSeeder(repos, client).run(kills_target=100)
"""

from .aggregators import BuildAggregator
from .pg_connection import PostgresDB, get_postgres_db
from .repositories import RepositorySet, get_repositories, memory_repositories
from .schema import init_database, run_migrations
from .seeders import GuildSeeder, PvPSeeder

__all__ = [
    # Connection
    "PostgresDB",
    "get_postgres_db",
    # Schema
    "init_database",
    "run_migrations",
    # Repositories
    "RepositorySet",
    "get_repositories",
    "memory_repositories",
    # Engines
    "BuildAggregator",
    "GuildSeeder",
    "PvPSeeder",
]
