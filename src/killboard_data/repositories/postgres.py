"""
PostgreSQL repository implementations.

Nested upstream structures (equipment, inventory, participants, battle
rosters, run counters) are stored as JSONB via psycopg's Json adapter.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import TYPE_CHECKING, Any, Optional

from psycopg.types.json import Json

from ..core.models import GuildBattleSummary, GuildPvPStat, MetaBuild, PlayerPvPStat, SyncRun
from ..core.schemas import (
    BattlePayload,
    GuildFameEntryPayload,
    GuildMemberPayload,
    GuildProfilePayload,
    KillEventPayload,
)
from ..core.types import (
    BATTLES_TABLE,
    GUILD_BATTLES_TABLE,
    GUILD_MEMBERS_TABLE,
    GUILD_RANKINGS_TABLE,
    GUILD_SNAPSHOTS_TABLE,
    GUILD_STATS_TABLE,
    KILL_EVENTS_TABLE,
    META_BUILDS_TABLE,
    PLAYER_STATS_TABLE,
    SYNC_LOCKS_TABLE,
    SYNC_RUNS_TABLE,
)
from .base import (
    BattleRepository,
    GuildIntelRepository,
    GuildStatsRepository,
    KillEventRepository,
    MetaBuildRepository,
    PlayerStatsRepository,
    SyncRunRepository,
)

if TYPE_CHECKING:
    from ..pg_connection import PostgresDB

logger = logging.getLogger(__name__)


def _optional_json(value: Any) -> Optional[Json]:
    return Json(value) if value is not None else None


# =============================================================================
# Kill events and battles
# =============================================================================


class PostgresKillEventRepository(KillEventRepository):
    """PostgreSQL implementation for kill events."""

    def __init__(self, db: "PostgresDB"):
        self.db = db

    def exists(self, event_id: int) -> bool:
        row = self.db.fetchone(
            f"SELECT 1 AS found FROM {KILL_EVENTS_TABLE} WHERE event_id = %s",
            (event_id,),
        )
        return row is not None

    def insert(self, event: KillEventPayload, server: str) -> bool:
        killer, victim = event.killer, event.victim
        rowcount = self.db.execute(
            f"""
            INSERT INTO {KILL_EVENTS_TABLE} (
                id, event_id, timestamp,
                killer_id, killer_name, killer_guild_id, killer_guild_name,
                killer_alliance_id, killer_alliance_name, killer_item_power,
                killer_damage_done, killer_equipment,
                victim_id, victim_name, victim_guild_id, victim_guild_name,
                victim_alliance_id, victim_alliance_name, victim_item_power,
                victim_equipment, victim_inventory,
                total_fame, location, battle_id, participants,
                number_of_participants, server
            )
            VALUES (
                %s, %s, %s,
                %s, %s, %s, %s, %s, %s, %s, %s, %s,
                %s, %s, %s, %s, %s, %s, %s, %s, %s,
                %s, %s, %s, %s, %s, %s
            )
            ON CONFLICT (event_id) DO NOTHING
            """,
            (
                uuid.uuid4(), event.event_id, event.timestamp,
                killer.id, killer.name, killer.guild_id, killer.guild_name,
                killer.alliance_id, killer.alliance_name, killer.average_item_power,
                killer.damage_done, _optional_json(killer.equipment_snapshot()),
                victim.id, victim.name, victim.guild_id, victim.guild_name,
                victim.alliance_id, victim.alliance_name, victim.average_item_power,
                _optional_json(victim.equipment_snapshot()), Json(victim.inventory_snapshot()),
                event.total_fame, event.location, event.battle_id,
                Json([p.snapshot() for p in event.participants]) if event.participants else None,
                event.number_of_participants, server,
            ),
        )
        return rowcount == 1

    def fetch_recent(self, limit: int, offset: int = 0) -> list[dict[str, Any]]:
        return self.db.fetchall(
            f"""
            SELECT event_id, timestamp, total_fame, killer_equipment, victim_equipment
            FROM {KILL_EVENTS_TABLE}
            ORDER BY timestamp DESC, event_id DESC
            LIMIT %s OFFSET %s
            """,
            (limit, offset),
        )

    def count(self) -> int:
        row = self.db.fetchone(f"SELECT COUNT(*) AS count FROM {KILL_EVENTS_TABLE}")
        return row["count"] if row else 0


class PostgresBattleRepository(BattleRepository):
    """PostgreSQL implementation for battles."""

    def __init__(self, db: "PostgresDB"):
        self.db = db

    def exists(self, battle_id: int) -> bool:
        row = self.db.fetchone(
            f"SELECT 1 AS found FROM {BATTLES_TABLE} WHERE battle_id = %s",
            (battle_id,),
        )
        return row is not None

    def upsert(self, battle: BattlePayload, server: str) -> None:
        self.db.execute(
            f"""
            INSERT INTO {BATTLES_TABLE} (
                battle_id, name, start_time, end_time, total_kills,
                total_fame, total_players, roster, server, updated_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, NOW())
            ON CONFLICT (battle_id) DO UPDATE SET
                name = EXCLUDED.name,
                start_time = EXCLUDED.start_time,
                end_time = EXCLUDED.end_time,
                total_kills = EXCLUDED.total_kills,
                total_fame = EXCLUDED.total_fame,
                total_players = EXCLUDED.total_players,
                roster = EXCLUDED.roster,
                server = EXCLUDED.server,
                updated_at = NOW()
            """,
            (
                battle.id, battle.name, battle.start_time, battle.end_time,
                battle.total_kills, battle.total_fame, battle.total_players,
                Json(battle.roster_snapshot()), server,
            ),
        )

    def count(self) -> int:
        row = self.db.fetchone(f"SELECT COUNT(*) AS count FROM {BATTLES_TABLE}")
        return row["count"] if row else 0


# =============================================================================
# Rolling stats
# =============================================================================

PLAYER_STAT_COLUMNS = [
    "player_name", "guild_id", "guild_name", "alliance_id", "alliance_name",
    "total_kills", "total_deaths", "total_fame", "kill_fame", "death_fame",
    "games_played", "last_seen_at", "last_kill_at", "last_death_at",
]

GUILD_STAT_COLUMNS = [
    "guild_name", "alliance_id", "alliance_name",
    "total_kills", "total_deaths", "weekly_kills", "weekly_deaths",
    "monthly_kills", "monthly_deaths", "last_seen_at",
]


class _VersionedStatsMixin:
    """Shared create/compare-and-swap SQL for the versioned stat tables."""

    db: "PostgresDB"
    table: str
    key: str
    columns: list[str]

    def _create(self, key_value: str, values: dict[str, Any]) -> bool:
        columns = [self.key] + self.columns + ["version"]
        placeholders = ", ".join(["%s"] * len(columns))
        rowcount = self.db.execute(
            f"""
            INSERT INTO {self.table} ({", ".join(columns)})
            VALUES ({placeholders})
            ON CONFLICT ({self.key}) DO NOTHING
            """,
            tuple([key_value] + [values[col] for col in self.columns] + [1]),
        )
        return rowcount == 1

    def _update(self, key_value: str, values: dict[str, Any], expected_version: int) -> bool:
        assignments = ", ".join(f"{col} = %s" for col in self.columns)
        rowcount = self.db.execute(
            f"""
            UPDATE {self.table}
            SET {assignments}, version = version + 1, updated_at = NOW()
            WHERE {self.key} = %s AND version = %s
            """,
            tuple([values[col] for col in self.columns] + [key_value, expected_version]),
        )
        return rowcount == 1


class PostgresPlayerStatsRepository(_VersionedStatsMixin, PlayerStatsRepository):
    """PostgreSQL implementation for player PvP stats."""

    table = PLAYER_STATS_TABLE
    key = "player_id"
    columns = PLAYER_STAT_COLUMNS

    def __init__(self, db: "PostgresDB"):
        self.db = db

    def get(self, player_id: str) -> Optional[PlayerPvPStat]:
        row = self.db.fetchone(f"SELECT * FROM {self.table} WHERE player_id = %s", (player_id,))
        return PlayerPvPStat.model_validate(row) if row else None

    def create(self, stat: PlayerPvPStat) -> bool:
        return self._create(stat.player_id, stat.model_dump())

    def update(self, stat: PlayerPvPStat, expected_version: int) -> bool:
        return self._update(stat.player_id, stat.model_dump(), expected_version)


class PostgresGuildStatsRepository(_VersionedStatsMixin, GuildStatsRepository):
    """PostgreSQL implementation for guild PvP stats."""

    table = GUILD_STATS_TABLE
    key = "guild_id"
    columns = GUILD_STAT_COLUMNS

    def __init__(self, db: "PostgresDB"):
        self.db = db

    def get(self, guild_id: str) -> Optional[GuildPvPStat]:
        row = self.db.fetchone(f"SELECT * FROM {self.table} WHERE guild_id = %s", (guild_id,))
        return GuildPvPStat.model_validate(row) if row else None

    def create(self, stat: GuildPvPStat) -> bool:
        return self._create(stat.guild_id, stat.model_dump())

    def update(self, stat: GuildPvPStat, expected_version: int) -> bool:
        return self._update(stat.guild_id, stat.model_dump(), expected_version)


# =============================================================================
# Meta builds
# =============================================================================

META_BUILD_COLUMNS = [
    "build_id", "weapon_type", "head_type", "armor_type", "shoes_type",
    "cape_type", "kills", "deaths", "win_rate", "popularity", "avg_fame",
    "sample_size", "is_healer", "rules_version",
]


class PostgresMetaBuildRepository(MetaBuildRepository):
    """PostgreSQL implementation for meta builds."""

    def __init__(self, db: "PostgresDB"):
        self.db = db

    def delete_all(self) -> int:
        return self.db.execute(f"DELETE FROM {META_BUILDS_TABLE}")

    def insert_batch(self, builds: list[MetaBuild]) -> int:
        if not builds:
            return 0
        placeholders = ", ".join(["%s"] * len(META_BUILD_COLUMNS))
        self.db.executemany(
            f"""
            INSERT INTO {META_BUILDS_TABLE} ({", ".join(META_BUILD_COLUMNS)})
            VALUES ({placeholders})
            """,
            [tuple(getattr(build, col) for col in META_BUILD_COLUMNS) for build in builds],
        )
        return len(builds)

    def list_all(self) -> list[MetaBuild]:
        rows = self.db.fetchall(
            f"SELECT * FROM {META_BUILDS_TABLE} ORDER BY popularity DESC, build_id"
        )
        return [MetaBuild.model_validate(row) for row in rows]


# =============================================================================
# Guild intel
# =============================================================================


class PostgresGuildIntelRepository(GuildIntelRepository):
    """PostgreSQL implementation for append-only guild snapshots."""

    def __init__(self, db: "PostgresDB"):
        self.db = db

    def insert_snapshot(
        self,
        profile: GuildProfilePayload,
        server: str,
        captured_at: datetime,
    ) -> None:
        self.db.execute(
            f"""
            INSERT INTO {GUILD_SNAPSHOTS_TABLE} (
                guild_id, guild_name, alliance_id, alliance_name, alliance_tag,
                member_count, kill_fame, death_fame, attacks_won, defenses_won,
                fame_ratio, founded_at, founder_id, founder_name, server, snapshot_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            (
                profile.guild_id, profile.guild_name, profile.alliance_id,
                profile.alliance_name, profile.alliance_tag, profile.member_count,
                profile.kill_fame, profile.death_fame, profile.attacks_won,
                profile.defenses_won, profile.fame_ratio, profile.founded_at,
                profile.founder_id, profile.founder_name, server, captured_at,
            ),
        )

    def insert_members(
        self,
        guild: GuildProfilePayload,
        members: list[GuildMemberPayload],
        server: str,
        captured_at: datetime,
    ) -> int:
        if not members:
            return 0
        self.db.executemany(
            f"""
            INSERT INTO {GUILD_MEMBERS_TABLE} (
                guild_id, guild_name, player_id, player_name, alliance_id,
                alliance_name, role, join_date, kill_fame, death_fame,
                fame_ratio, average_item_power, server, captured_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            [
                (
                    guild.guild_id, guild.guild_name, m.player_id, m.player_name,
                    m.alliance_id, m.alliance_name, m.role, m.join_date,
                    m.kill_fame, m.death_fame, m.fame_ratio, m.average_item_power,
                    server, captured_at,
                )
                for m in members
            ],
        )
        return len(members)

    def insert_rankings(
        self,
        range: str,
        entries: list[GuildFameEntryPayload],
        server: str,
        captured_at: datetime,
        metric: str = "kill_fame",
    ) -> int:
        if not entries:
            return 0
        self.db.executemany(
            f"""
            INSERT INTO {GUILD_RANKINGS_TABLE} (
                guild_id, guild_name, alliance_id, alliance_name, metric,
                range, rank, value, server, captured_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            [
                (
                    e.guild_id, e.guild_name, e.alliance_id, e.alliance_name, metric,
                    range, e.rank or position, e.total, server, captured_at,
                )
                for position, e in enumerate(entries, start=1)
            ],
        )
        return len(entries)

    def insert_battles(
        self,
        guild: GuildProfilePayload,
        summaries: list[GuildBattleSummary],
        server: str,
        captured_at: datetime,
    ) -> int:
        if not summaries:
            return 0
        self.db.executemany(
            f"""
            INSERT INTO {GUILD_BATTLES_TABLE} (
                guild_id, guild_name, battle_id, total_fame, kills, deaths,
                zones, server, captured_at
            )
            VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
            """,
            [
                (
                    guild.guild_id, guild.guild_name, s.battle_id, s.total_fame,
                    s.kills, s.deaths, s.zones_label, server, captured_at,
                )
                for s in summaries
            ],
        )
        return len(summaries)

    def list_rankings(self, range: Optional[str] = None) -> list[dict[str, Any]]:
        if range:
            return self.db.fetchall(
                f"SELECT * FROM {GUILD_RANKINGS_TABLE} WHERE range = %s ORDER BY captured_at, rank",
                (range,),
            )
        return self.db.fetchall(f"SELECT * FROM {GUILD_RANKINGS_TABLE} ORDER BY captured_at, range, rank")


# =============================================================================
# Sync runs and locks
# =============================================================================


class PostgresSyncRunRepository(SyncRunRepository):
    """PostgreSQL implementation for sync audit rows and run locks."""

    def __init__(self, db: "PostgresDB"):
        self.db = db

    def start(self, kind: str, params: dict[str, Any]) -> int:
        row = self.db.fetchone(
            f"""
            INSERT INTO {SYNC_RUNS_TABLE} (kind, started_at, params)
            VALUES (%s, NOW(), %s)
            RETURNING id
            """,
            (kind, Json(params)),
        )
        return row["id"]

    def finish(
        self,
        run_id: int,
        counters: dict[str, int],
        success: bool,
        error_message: Optional[str] = None,
    ) -> None:
        self.db.execute(
            f"""
            UPDATE {SYNC_RUNS_TABLE}
            SET finished_at = NOW(), counters = %s, success = %s, error_message = %s
            WHERE id = %s
            """,
            (Json(counters), success, error_message, run_id),
        )

    def recent(self, limit: int = 20, kind: Optional[str] = None) -> list[SyncRun]:
        if kind:
            rows = self.db.fetchall(
                f"SELECT * FROM {SYNC_RUNS_TABLE} WHERE kind = %s ORDER BY started_at DESC, id DESC LIMIT %s",
                (kind, limit),
            )
        else:
            rows = self.db.fetchall(
                f"SELECT * FROM {SYNC_RUNS_TABLE} ORDER BY started_at DESC, id DESC LIMIT %s",
                (limit,),
            )
        return [SyncRun.model_validate(row) for row in rows]

    def acquire_lock(self, kind: str, holder: str, ttl_seconds: int) -> bool:
        # Only an expired lock may be taken over
        rowcount = self.db.execute(
            f"""
            INSERT INTO {SYNC_LOCKS_TABLE} (kind, holder, acquired_at, expires_at)
            VALUES (%s, %s, NOW(), NOW() + %s * INTERVAL '1 second')
            ON CONFLICT (kind) DO UPDATE SET
                holder = EXCLUDED.holder,
                acquired_at = EXCLUDED.acquired_at,
                expires_at = EXCLUDED.expires_at
            WHERE {SYNC_LOCKS_TABLE}.expires_at < NOW()
            """,
            (kind, holder, ttl_seconds),
        )
        return rowcount == 1

    def release_lock(self, kind: str, holder: str) -> None:
        self.db.execute(
            f"DELETE FROM {SYNC_LOCKS_TABLE} WHERE kind = %s AND holder = %s",
            (kind, holder),
        )

    def lock_holder(self, kind: str) -> Optional[str]:
        row = self.db.fetchone(
            f"SELECT holder FROM {SYNC_LOCKS_TABLE} WHERE kind = %s AND expires_at >= NOW()",
            (kind,),
        )
        return row["holder"] if row else None
