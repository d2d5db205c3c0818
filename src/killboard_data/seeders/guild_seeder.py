"""
Guild intelligence sync.

Snapshots the top guilds of the kill-fame leaderboards:
  1. Fetch the day/week/month leaderboards concurrently and append one
     ranking batch per range
  2. Collect the distinct guild ids (first-seen order), capped at
     ``guild_safety_cap``
  3. Process guilds concurrently, bounded by ``guild_concurrency``:
     profile snapshot, member list, battle summaries from recent events

Every guild table is append-only; rows from different runs are told
apart by their capture time. A failing guild is marked ERROR at the
step that failed and never affects the others.
"""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any, Callable, Optional

from ..core.config import Settings
from ..core.models import GuildBattleSummary
from ..core.schemas import GuildEventPayload, GuildFameEntryPayload, GuildProfilePayload
from ..core.types import BattleRange, SyncKind
from .base import BaseSeeder
from .common import GuildState, GuildSyncResult

if TYPE_CHECKING:
    from ..providers.gameinfo import GameinfoClient
    from ..repositories import RepositorySet

logger = logging.getLogger(__name__)

RANKING_METRIC = "kill_fame"


def summarize_guild_battles(guild_id: str, events: list[GuildEventPayload]) -> list[GuildBattleSummary]:
    """
    Group a guild's recent events by battle.

    Events without a battle id are ignored. Kills count events where the
    killer belongs to the guild, deaths those where the victim does.
    """
    summaries: dict[int, GuildBattleSummary] = {}

    for event in events:
        if not event.battle_id:
            continue
        summary = summaries.setdefault(event.battle_id, GuildBattleSummary(battle_id=event.battle_id))
        summary.total_fame += event.total_fame
        if event.killer and event.killer.guild_id == guild_id:
            summary.kills += 1
        if event.victim and event.victim.guild_id == guild_id:
            summary.deaths += 1
        if event.location and event.location not in summary.zones:
            summary.zones.append(event.location)

    return list(summaries.values())


class GuildSeeder(BaseSeeder[GuildSyncResult]):
    """Leaderboard-driven guild snapshot engine."""

    kind = SyncKind.GUILDS

    def __init__(
        self,
        repos: "RepositorySet",
        client: "GameinfoClient",
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        super().__init__(repos, settings)
        self.client = client
        self.server = client.server
        self.clock = clock

    async def _execute(self, **_: Any) -> GuildSyncResult:
        result = GuildSyncResult()
        captured_at = self.clock()

        leaderboards = await self._fetch_leaderboards(result)
        for range_value, entries in leaderboards.items():
            self._store_rankings(range_value, entries, captured_at, result)

        guild_ids = self._select_guilds(leaderboards)
        result.states = {guild_id: GuildState.QUEUED for guild_id in guild_ids}

        semaphore = asyncio.Semaphore(self.settings.guild_concurrency)

        async def bounded(guild_id: str) -> None:
            async with semaphore:
                await self.process_guild(guild_id, captured_at, result)

        await asyncio.gather(*(bounded(guild_id) for guild_id in guild_ids))

        logger.info(
            "Guild sync complete on %s: %d/%d guilds, %d members, %d rankings, %d battles, %d errors",
            self.server,
            result.guilds_processed,
            len(guild_ids),
            result.members_inserted,
            result.rankings_inserted,
            result.battles_recorded,
            result.errors,
        )
        return result

    def _counters(self, result: GuildSyncResult) -> dict[str, int]:
        return result.counters()

    # =========================================================================
    # Leaderboards
    # =========================================================================

    async def _fetch_leaderboards(
        self,
        result: GuildSyncResult,
    ) -> dict[str, list[GuildFameEntryPayload]]:
        ranges = list(BattleRange)
        limit = self.settings.guild_leaderboard_limit
        responses = await asyncio.gather(
            *(self.client.get_guild_fame(r, limit=limit) for r in ranges),
            return_exceptions=True,
        )

        leaderboards: dict[str, list[GuildFameEntryPayload]] = {}
        for range_, response in zip(ranges, responses):
            if isinstance(response, Exception):
                logger.error("Guild fame leaderboard (%s) failed: %s", range_.value, response)
                result.errors += 1
                continue
            leaderboards[range_.value] = response.items
        return leaderboards

    def _store_rankings(
        self,
        range_value: str,
        entries: list[GuildFameEntryPayload],
        captured_at: datetime,
        result: GuildSyncResult,
    ) -> None:
        try:
            result.rankings_inserted += self.repos.guild_intel.insert_rankings(
                range_value, entries, self.server, captured_at, metric=RANKING_METRIC,
            )
        except Exception as e:
            logger.error("Storing %s guild rankings failed: %s", range_value, e)
            result.errors += 1

    def _select_guilds(self, leaderboards: dict[str, list[GuildFameEntryPayload]]) -> list[str]:
        seen: dict[str, None] = {}
        for entries in leaderboards.values():
            for entry in entries:
                seen.setdefault(entry.guild_id, None)
        return list(seen)[: self.settings.guild_safety_cap]

    # =========================================================================
    # Per-guild processing
    # =========================================================================

    async def process_guild(
        self,
        guild_id: str,
        captured_at: datetime,
        result: GuildSyncResult,
    ) -> GuildState:
        """Run one guild through profile, members and battles."""
        state = GuildState.FETCHING_PROFILE
        try:
            result.states[guild_id] = state
            profile: GuildProfilePayload = await self.client.get_guild(guild_id)
            self.repos.guild_intel.insert_snapshot(profile, self.server, captured_at)

            state = GuildState.FETCHING_MEMBERS
            result.states[guild_id] = state
            members = await self.client.get_guild_members(guild_id)
            result.members_inserted += self.repos.guild_intel.insert_members(
                profile, members.items, self.server, captured_at,
            )

            state = GuildState.FETCHING_BATTLES
            result.states[guild_id] = state
            events = await self.client.get_guild_events(guild_id, limit=self.settings.guild_events_limit)
            summaries = summarize_guild_battles(guild_id, events.items)
            result.battles_recorded += self.repos.guild_intel.insert_battles(
                profile, summaries, self.server, captured_at,
            )

        except Exception as e:
            logger.error("Guild %s failed during %s: %s", guild_id, state.value, e)
            result.states[guild_id] = GuildState.ERROR
            result.errors += 1
            return GuildState.ERROR

        result.states[guild_id] = GuildState.DONE
        result.guilds_processed += 1
        return GuildState.DONE
