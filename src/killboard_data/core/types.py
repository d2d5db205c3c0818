"""
Shared enums and table names.

Table names live here so repositories, the schema helpers and the CLI
status command agree on a single spelling.
"""

from enum import Enum


class BattleRange(str, Enum):
    """Time window accepted by the gameinfo battles and guild fame endpoints."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"


class SyncKind(str, Enum):
    """Kinds of sync run recorded in sync_runs and guarded by sync_locks."""

    PVP = "pvp"
    GUILDS = "guilds"
    BUILDS = "builds"


GAMEINFO_SERVERS: dict[str, str] = {
    "Americas": "https://gameinfo.albiononline.com/api/gameinfo",
    "Europe": "https://gameinfo-ams.albiononline.com/api/gameinfo",
    "Asia": "https://gameinfo-sgp.albiononline.com/api/gameinfo",
}

# =============================================================================
# Table names
# =============================================================================

KILL_EVENTS_TABLE = "kill_events"
BATTLES_TABLE = "battles"
PLAYER_STATS_TABLE = "player_pvp_stats"
GUILD_STATS_TABLE = "guild_pvp_stats"
META_BUILDS_TABLE = "meta_builds"
GUILD_SNAPSHOTS_TABLE = "guild_snapshots"
GUILD_MEMBERS_TABLE = "guild_members"
GUILD_RANKINGS_TABLE = "guild_rankings"
GUILD_BATTLES_TABLE = "guild_battles"
SYNC_RUNS_TABLE = "sync_runs"
SYNC_LOCKS_TABLE = "sync_locks"

ALL_TABLES = (
    KILL_EVENTS_TABLE,
    BATTLES_TABLE,
    PLAYER_STATS_TABLE,
    GUILD_STATS_TABLE,
    META_BUILDS_TABLE,
    GUILD_SNAPSHOTS_TABLE,
    GUILD_MEMBERS_TABLE,
    GUILD_RANKINGS_TABLE,
    GUILD_BATTLES_TABLE,
    SYNC_RUNS_TABLE,
    SYNC_LOCKS_TABLE,
)
