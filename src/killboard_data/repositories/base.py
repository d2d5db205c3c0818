"""
Base repository protocols.

Defines abstract interfaces for the pipeline's persistence operations so
the engines can run against PostgreSQL or the in-memory store used for
dry runs and tests.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from contextlib import nullcontext
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, ContextManager, Optional

from ..core.models import GuildBattleSummary, GuildPvPStat, MetaBuild, PlayerPvPStat, SyncRun
from ..core.schemas import (
    BattlePayload,
    GuildFameEntryPayload,
    GuildMemberPayload,
    GuildProfilePayload,
    KillEventPayload,
)


class KillEventRepository(ABC):
    """
    Abstract interface for kill event storage.

    ``event_id`` is unique: a given upstream event is written at most once.
    """

    @abstractmethod
    def exists(self, event_id: int) -> bool:
        """Check whether an event id has already been stored."""
        ...

    @abstractmethod
    def insert(self, event: KillEventPayload, server: str) -> bool:
        """
        Insert a kill event under a freshly generated internal id.

        Returns:
            True if the row was written, False if the event id already existed
        """
        ...

    @abstractmethod
    def fetch_recent(self, limit: int, offset: int = 0) -> list[dict[str, Any]]:
        """
        Page through stored events, newest first.

        Each row carries at least ``event_id``, ``total_fame``,
        ``killer_equipment`` and ``victim_equipment``.
        """
        ...

    @abstractmethod
    def count(self) -> int:
        ...


class BattleRepository(ABC):
    """Abstract interface for battle storage (upsert keyed by battle id)."""

    @abstractmethod
    def exists(self, battle_id: int) -> bool:
        ...

    @abstractmethod
    def upsert(self, battle: BattlePayload, server: str) -> None:
        """Insert a battle or overwrite the stored copy."""
        ...

    @abstractmethod
    def count(self) -> int:
        ...


class PlayerStatsRepository(ABC):
    """
    Abstract interface for rolling player stats.

    Writes are optimistic: ``create`` fails if the row appeared meanwhile
    and ``update`` fails if the stored version moved past ``expected_version``.
    """

    @abstractmethod
    def get(self, player_id: str) -> Optional[PlayerPvPStat]:
        ...

    @abstractmethod
    def create(self, stat: PlayerPvPStat) -> bool:
        """Insert a new row at version 1. Returns False on conflict."""
        ...

    @abstractmethod
    def update(self, stat: PlayerPvPStat, expected_version: int) -> bool:
        """Write ``stat`` if the stored version still equals ``expected_version``."""
        ...


class GuildStatsRepository(ABC):
    """Abstract interface for rolling guild stats (same contract as players)."""

    @abstractmethod
    def get(self, guild_id: str) -> Optional[GuildPvPStat]:
        ...

    @abstractmethod
    def create(self, stat: GuildPvPStat) -> bool:
        ...

    @abstractmethod
    def update(self, stat: GuildPvPStat, expected_version: int) -> bool:
        ...


class MetaBuildRepository(ABC):
    """Abstract interface for the meta build table (fully replaced per run)."""

    @abstractmethod
    def delete_all(self) -> int:
        """Delete every row. Returns the number of rows removed."""
        ...

    @abstractmethod
    def insert_batch(self, builds: list[MetaBuild]) -> int:
        """Insert one batch atomically. Returns the number of rows written."""
        ...

    @abstractmethod
    def list_all(self) -> list[MetaBuild]:
        ...


class GuildIntelRepository(ABC):
    """Abstract interface for append-only guild snapshots."""

    @abstractmethod
    def insert_snapshot(
        self,
        profile: GuildProfilePayload,
        server: str,
        captured_at: datetime,
    ) -> None:
        ...

    @abstractmethod
    def insert_members(
        self,
        guild: GuildProfilePayload,
        members: list[GuildMemberPayload],
        server: str,
        captured_at: datetime,
    ) -> int:
        ...

    @abstractmethod
    def insert_rankings(
        self,
        range: str,
        entries: list[GuildFameEntryPayload],
        server: str,
        captured_at: datetime,
        metric: str = "kill_fame",
    ) -> int:
        """Append one leaderboard batch. Rank defaults to list position."""
        ...

    @abstractmethod
    def insert_battles(
        self,
        guild: GuildProfilePayload,
        summaries: list[GuildBattleSummary],
        server: str,
        captured_at: datetime,
    ) -> int:
        ...

    @abstractmethod
    def list_rankings(self, range: Optional[str] = None) -> list[dict[str, Any]]:
        ...


class SyncRunRepository(ABC):
    """Abstract interface for run audit rows and per-kind run locks."""

    @abstractmethod
    def start(self, kind: str, params: dict[str, Any]) -> int:
        """Record the start of a run and return its id."""
        ...

    @abstractmethod
    def finish(
        self,
        run_id: int,
        counters: dict[str, int],
        success: bool,
        error_message: Optional[str] = None,
    ) -> None:
        ...

    @abstractmethod
    def recent(self, limit: int = 20, kind: Optional[str] = None) -> list[SyncRun]:
        ...

    @abstractmethod
    def acquire_lock(self, kind: str, holder: str, ttl_seconds: int) -> bool:
        """Take the lock for ``kind`` unless a live lock is held by someone else."""
        ...

    @abstractmethod
    def release_lock(self, kind: str, holder: str) -> None:
        ...

    @abstractmethod
    def lock_holder(self, kind: str) -> Optional[str]:
        """Return the holder of a live lock, if any."""
        ...


@dataclass
class RepositorySet:
    """
    Collection of all repositories.

    Provides convenient access to all repository implementations.
    ``atomic`` opens a unit of work: every write made by any repository
    inside the block is kept or discarded together.
    """
    kill_events: KillEventRepository
    battles: BattleRepository
    player_stats: PlayerStatsRepository
    guild_stats: GuildStatsRepository
    meta_builds: MetaBuildRepository
    guild_intel: GuildIntelRepository
    sync_runs: SyncRunRepository
    atomic: Callable[[], ContextManager[Any]] = field(default=nullcontext, repr=False)
