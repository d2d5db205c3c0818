"""
Sync engines.

Each engine runs under a per-kind run lock and records its outcome in
sync_runs (see base.BaseSeeder).

Usage:
    from killboard_data.seeders import PvPSeeder, GuildSeeder

    async with GameinfoClient() as client:
        result = await PvPSeeder(repos, client).run(kills_target=100)
"""

from .base import BaseSeeder
from .common import AggregationResult, GuildState, GuildSyncResult, IngestResult
from .guild_seeder import GuildSeeder
from .pvp_seeder import PvPSeeder

__all__ = [
    "BaseSeeder",
    "AggregationResult",
    "GuildState",
    "GuildSyncResult",
    "IngestResult",
    "GuildSeeder",
    "PvPSeeder",
]
