"""
In-memory repository implementations.

Used by the CLI ``--dry-run`` flag and by the engine tests. The
semantics mirror the PostgreSQL implementations: unique event ids,
battle upserts, versioned stat rows, append-only guild rows and
expiring run locks. ``atomic`` blocks roll stored rows back on error.
"""

from __future__ import annotations

import threading
import uuid
from contextlib import contextmanager
from datetime import datetime, timedelta, timezone
from typing import Any, Iterator, Optional

from ..core.models import GuildBattleSummary, GuildPvPStat, MetaBuild, PlayerPvPStat, SyncRun
from ..core.schemas import (
    BattlePayload,
    GuildFameEntryPayload,
    GuildMemberPayload,
    GuildProfilePayload,
    KillEventPayload,
)
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


def _now() -> datetime:
    return datetime.now(timezone.utc)


class MemoryKillEventRepository(KillEventRepository):
    def __init__(self):
        self.rows: dict[int, dict[str, Any]] = {}
        self._lock = threading.Lock()

    def exists(self, event_id: int) -> bool:
        return event_id in self.rows

    def insert(self, event: KillEventPayload, server: str) -> bool:
        with self._lock:
            if event.event_id in self.rows:
                return False
            self.rows[event.event_id] = {
                "id": uuid.uuid4(),
                "event_id": event.event_id,
                "timestamp": event.timestamp,
                "killer_id": event.killer.id,
                "victim_id": event.victim.id,
                "killer_equipment": event.killer.equipment_snapshot(),
                "victim_equipment": event.victim.equipment_snapshot(),
                "victim_inventory": event.victim.inventory_snapshot(),
                "total_fame": event.total_fame,
                "location": event.location,
                "battle_id": event.battle_id,
                "server": server,
            }
            return True

    def fetch_recent(self, limit: int, offset: int = 0) -> list[dict[str, Any]]:
        ordered = sorted(
            self.rows.values(),
            key=lambda row: (row["timestamp"], row["event_id"]),
            reverse=True,
        )
        return ordered[offset:offset + limit]

    def count(self) -> int:
        return len(self.rows)


class MemoryBattleRepository(BattleRepository):
    def __init__(self):
        self.rows: dict[int, dict[str, Any]] = {}

    def exists(self, battle_id: int) -> bool:
        return battle_id in self.rows

    def upsert(self, battle: BattlePayload, server: str) -> None:
        self.rows[battle.id] = {
            "battle_id": battle.id,
            "name": battle.name,
            "start_time": battle.start_time,
            "end_time": battle.end_time,
            "total_kills": battle.total_kills,
            "total_fame": battle.total_fame,
            "total_players": battle.total_players,
            "roster": battle.roster_snapshot(),
            "server": server,
        }

    def count(self) -> int:
        return len(self.rows)


class _MemoryVersionedStats:
    """Compare-and-swap over a dict of pydantic rows."""

    key: str

    def __init__(self):
        self.rows: dict[str, Any] = {}
        self._lock = threading.Lock()

    def get(self, key_value: str):
        row = self.rows.get(key_value)
        return row.model_copy() if row is not None else None

    def create(self, stat) -> bool:
        key_value = getattr(stat, self.key)
        with self._lock:
            if key_value in self.rows:
                return False
            self.rows[key_value] = stat.model_copy(update={"version": 1})
            return True

    def update(self, stat, expected_version: int) -> bool:
        key_value = getattr(stat, self.key)
        with self._lock:
            current = self.rows.get(key_value)
            if current is None or current.version != expected_version:
                return False
            self.rows[key_value] = stat.model_copy(update={"version": expected_version + 1})
            return True


class MemoryPlayerStatsRepository(_MemoryVersionedStats, PlayerStatsRepository):
    key = "player_id"

    def get(self, player_id: str) -> Optional[PlayerPvPStat]:
        return super().get(player_id)


class MemoryGuildStatsRepository(_MemoryVersionedStats, GuildStatsRepository):
    key = "guild_id"

    def get(self, guild_id: str) -> Optional[GuildPvPStat]:
        return super().get(guild_id)


class MemoryMetaBuildRepository(MetaBuildRepository):
    def __init__(self):
        self.rows: dict[str, MetaBuild] = {}

    def delete_all(self) -> int:
        removed = len(self.rows)
        self.rows.clear()
        return removed

    def insert_batch(self, builds: list[MetaBuild]) -> int:
        ids = [build.build_id for build in builds]
        if len(set(ids)) != len(ids) or any(build_id in self.rows for build_id in ids):
            raise ValueError("duplicate build_id in meta build batch")
        for build in builds:
            self.rows[build.build_id] = build
        return len(builds)

    def list_all(self) -> list[MetaBuild]:
        return sorted(self.rows.values(), key=lambda b: (-b.popularity, b.build_id))


class MemoryGuildIntelRepository(GuildIntelRepository):
    def __init__(self):
        self.snapshots: list[dict[str, Any]] = []
        self.members: list[dict[str, Any]] = []
        self.rankings: list[dict[str, Any]] = []
        self.battles: list[dict[str, Any]] = []

    def insert_snapshot(
        self,
        profile: GuildProfilePayload,
        server: str,
        captured_at: datetime,
    ) -> None:
        self.snapshots.append({
            **profile.model_dump(),
            "fame_ratio": profile.fame_ratio,
            "server": server,
            "snapshot_at": captured_at,
        })

    def insert_members(
        self,
        guild: GuildProfilePayload,
        members: list[GuildMemberPayload],
        server: str,
        captured_at: datetime,
    ) -> int:
        for member in members:
            self.members.append({
                **member.model_dump(),
                "guild_id": guild.guild_id,
                "guild_name": guild.guild_name,
                "server": server,
                "captured_at": captured_at,
            })
        return len(members)

    def insert_rankings(
        self,
        range: str,
        entries: list[GuildFameEntryPayload],
        server: str,
        captured_at: datetime,
        metric: str = "kill_fame",
    ) -> int:
        for position, entry in enumerate(entries, start=1):
            self.rankings.append({
                "guild_id": entry.guild_id,
                "guild_name": entry.guild_name,
                "alliance_id": entry.alliance_id,
                "alliance_name": entry.alliance_name,
                "metric": metric,
                "range": range,
                "rank": entry.rank or position,
                "value": entry.total,
                "server": server,
                "captured_at": captured_at,
            })
        return len(entries)

    def insert_battles(
        self,
        guild: GuildProfilePayload,
        summaries: list[GuildBattleSummary],
        server: str,
        captured_at: datetime,
    ) -> int:
        for summary in summaries:
            self.battles.append({
                "guild_id": guild.guild_id,
                "guild_name": guild.guild_name,
                "battle_id": summary.battle_id,
                "total_fame": summary.total_fame,
                "kills": summary.kills,
                "deaths": summary.deaths,
                "zones": summary.zones_label,
                "server": server,
                "captured_at": captured_at,
            })
        return len(summaries)

    def list_rankings(self, range: Optional[str] = None) -> list[dict[str, Any]]:
        return [row for row in self.rankings if range is None or row["range"] == range]


class MemorySyncRunRepository(SyncRunRepository):
    def __init__(self):
        self.runs: dict[int, SyncRun] = {}
        self.locks: dict[str, tuple[str, datetime]] = {}
        self._next_id = 1
        self._lock = threading.Lock()

    def start(self, kind: str, params: dict[str, Any]) -> int:
        with self._lock:
            run_id = self._next_id
            self._next_id += 1
        self.runs[run_id] = SyncRun(id=run_id, kind=kind, started_at=_now(), params=params)
        return run_id

    def finish(
        self,
        run_id: int,
        counters: dict[str, int],
        success: bool,
        error_message: Optional[str] = None,
    ) -> None:
        self.runs[run_id] = self.runs[run_id].model_copy(update={
            "finished_at": _now(),
            "counters": dict(counters),
            "success": success,
            "error_message": error_message,
        })

    def recent(self, limit: int = 20, kind: Optional[str] = None) -> list[SyncRun]:
        runs = [run for run in self.runs.values() if kind is None or run.kind == kind]
        runs.sort(key=lambda run: run.id, reverse=True)
        return runs[:limit]

    def acquire_lock(self, kind: str, holder: str, ttl_seconds: int) -> bool:
        with self._lock:
            current = self.locks.get(kind)
            if current is not None and current[1] >= _now():
                return False
            self.locks[kind] = (holder, _now() + timedelta(seconds=ttl_seconds))
            return True

    def release_lock(self, kind: str, holder: str) -> None:
        with self._lock:
            current = self.locks.get(kind)
            if current is not None and current[0] == holder:
                del self.locks[kind]

    def lock_holder(self, kind: str) -> Optional[str]:
        current = self.locks.get(kind)
        if current is None or current[1] < _now():
            return None
        return current[0]


@contextmanager
def _rollback_on_error(repos: RepositorySet) -> Iterator[None]:
    """Restore the event, battle and stat rows if the block raises."""
    stores = [repos.kill_events, repos.battles, repos.player_stats, repos.guild_stats]
    saved = [dict(store.rows) for store in stores]
    try:
        yield
    except Exception:
        for store, rows in zip(stores, saved):
            store.rows.clear()
            store.rows.update(rows)
        raise


def memory_repositories() -> RepositorySet:
    """Build a fresh, empty in-memory repository set."""
    repos = RepositorySet(
        kill_events=MemoryKillEventRepository(),
        battles=MemoryBattleRepository(),
        player_stats=MemoryPlayerStatsRepository(),
        guild_stats=MemoryGuildStatsRepository(),
        meta_builds=MemoryMetaBuildRepository(),
        guild_intel=MemoryGuildIntelRepository(),
        sync_runs=MemorySyncRunRepository(),
    )
    repos.atomic = lambda: _rollback_on_error(repos)
    return repos
