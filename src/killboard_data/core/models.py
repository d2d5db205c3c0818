"""
Pydantic models for persisted pipeline rows.

These models are used for:
- Read-modify-write of the rolling player/guild stat rows
- Meta build rows written by the build aggregator
- Sync run audit rows returned by the trigger API
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, Field, computed_field

from .schemas import PlayerPayload


# =============================================================================
# Rolling PvP stats
# =============================================================================


def _latest(current: Optional[datetime], at: datetime) -> datetime:
    return max(current, at) if current else at


class PlayerPvPStat(BaseModel):
    """One row per player; counters only ever grow."""

    player_id: str
    player_name: str
    guild_id: Optional[str] = None
    guild_name: Optional[str] = None
    alliance_id: Optional[str] = None
    alliance_name: Optional[str] = None
    total_kills: int = 0
    total_deaths: int = 0
    total_fame: int = 0
    kill_fame: int = 0
    death_fame: int = 0
    games_played: int = 0
    last_seen_at: Optional[datetime] = None
    last_kill_at: Optional[datetime] = None
    last_death_at: Optional[datetime] = None
    version: int = 0

    @classmethod
    def empty(cls, player: PlayerPayload) -> "PlayerPvPStat":
        return cls(player_id=player.id, player_name=player.name)

    def _with_identity(self, player: PlayerPayload, at: datetime) -> dict[str, Any]:
        update: dict[str, Any] = {
            "games_played": self.games_played + 1,
            "last_seen_at": _latest(self.last_seen_at, at),
        }
        # Events arrive newest first; an older event must not roll the name or guild back.
        if self.last_seen_at is None or at >= self.last_seen_at:
            update.update({
                "player_name": player.name,
                "guild_id": player.guild_id,
                "guild_name": player.guild_name,
                "alliance_id": player.alliance_id,
                "alliance_name": player.alliance_name,
            })
        return update

    def with_kill(self, player: PlayerPayload, fame: int, at: datetime) -> "PlayerPvPStat":
        """Return the row after crediting one kill worth ``fame``."""
        return self.model_copy(update={
            **self._with_identity(player, at),
            "total_kills": self.total_kills + 1,
            "total_fame": self.total_fame + fame,
            "kill_fame": self.kill_fame + fame,
            "last_kill_at": _latest(self.last_kill_at, at),
        })

    def with_death(self, player: PlayerPayload, fame: int, at: datetime) -> "PlayerPvPStat":
        """Return the row after charging one death worth ``fame``."""
        return self.model_copy(update={
            **self._with_identity(player, at),
            "total_deaths": self.total_deaths + 1,
            "total_fame": self.total_fame + fame,
            "death_fame": self.death_fame + fame,
            "last_death_at": _latest(self.last_death_at, at),
        })


class GuildPvPStat(BaseModel):
    """
    One row per guild.

    Weekly and monthly counters are additive here; nothing in this
    pipeline resets them.
    """

    guild_id: str
    guild_name: str = ""
    alliance_id: Optional[str] = None
    alliance_name: Optional[str] = None
    total_kills: int = 0
    total_deaths: int = 0
    weekly_kills: int = 0
    weekly_deaths: int = 0
    monthly_kills: int = 0
    monthly_deaths: int = 0
    last_seen_at: Optional[datetime] = None
    version: int = 0

    @classmethod
    def empty(cls, player: PlayerPayload) -> "GuildPvPStat":
        return cls(guild_id=player.guild_id or "", guild_name=player.guild_name or "")

    def _with_identity(self, player: PlayerPayload, at: datetime) -> dict[str, Any]:
        update: dict[str, Any] = {"last_seen_at": _latest(self.last_seen_at, at)}
        if self.last_seen_at is None or at >= self.last_seen_at:
            update.update({
                "guild_name": player.guild_name or self.guild_name,
                "alliance_id": player.alliance_id,
                "alliance_name": player.alliance_name,
            })
        return update

    def with_kill(self, player: PlayerPayload, at: datetime) -> "GuildPvPStat":
        return self.model_copy(update={
            **self._with_identity(player, at),
            "total_kills": self.total_kills + 1,
            "weekly_kills": self.weekly_kills + 1,
            "monthly_kills": self.monthly_kills + 1,
        })

    def with_death(self, player: PlayerPayload, at: datetime) -> "GuildPvPStat":
        return self.model_copy(update={
            **self._with_identity(player, at),
            "total_deaths": self.total_deaths + 1,
            "weekly_deaths": self.weekly_deaths + 1,
            "monthly_deaths": self.monthly_deaths + 1,
        })


# =============================================================================
# Meta builds
# =============================================================================


class MetaBuild(BaseModel):
    """Aggregated performance of one normalized equipment fingerprint."""

    build_id: str
    weapon_type: Optional[str] = None
    head_type: Optional[str] = None
    armor_type: Optional[str] = None
    shoes_type: Optional[str] = None
    cape_type: Optional[str] = None
    kills: int = Field(ge=0)
    deaths: int = Field(ge=0)
    win_rate: float = Field(ge=0, le=1)
    popularity: float = Field(ge=0, le=1)
    avg_fame: float = Field(ge=0)
    sample_size: int = Field(ge=0)
    is_healer: bool = False
    rules_version: str


# =============================================================================
# Guild intel
# =============================================================================


class GuildBattleSummary(BaseModel):
    """One guild's share of a battle, derived from its recent kill events."""

    battle_id: int
    total_fame: int = 0
    kills: int = 0
    deaths: int = 0
    zones: list[str] = Field(default_factory=list)

    @property
    def zones_label(self) -> Optional[str]:
        return ", ".join(self.zones) if self.zones else None


# =============================================================================
# Sync audit
# =============================================================================


class SyncRun(BaseModel):
    """Audit row for one sync invocation."""

    id: int
    kind: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    params: dict[str, Any] = Field(default_factory=dict)
    counters: dict[str, int] = Field(default_factory=dict)
    success: Optional[bool] = None
    error_message: Optional[str] = None

    @computed_field
    @property
    def duration_seconds(self) -> Optional[float]:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()
