"""
PvP event ingestion.

Fetches recent kill events and battles from the gameinfo API and turns
them into deduplicated rows plus incrementally maintained player and
guild stats.

Per kill event:
  1. Skip (duplicate) if the event id is already stored
  2. Insert the event; a lost insert race also counts as a duplicate
  3. Credit the killer: kill, fame, games played, last kill time
  4. Charge the victim: death, fame, games played, last death time
  5. Credit the killer's guild and charge the victim's guild

Stat rows are updated optimistically against their ``version`` column.
Steps 2-5 run as one unit of work. If any of them fails, the event row is
rolled back together with the stats and the item counts as an error; the
next scheduled run picks it up again.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable, Optional, TypeVar

from ..core.config import Settings
from ..core.errors import SchemaError, StaleStatError
from ..core.http import ExternalAPIError
from ..core.models import GuildPvPStat, PlayerPvPStat
from ..core.schemas import BattlePayload, KillEventPayload, PlayerPayload
from ..core.types import GUILD_STATS_TABLE, PLAYER_STATS_TABLE, BattleRange, SyncKind
from .base import BaseSeeder
from .common import IngestResult

if TYPE_CHECKING:
    from ..providers.gameinfo import GameinfoClient
    from ..repositories import GuildStatsRepository, PlayerStatsRepository, RepositorySet

logger = logging.getLogger(__name__)

S = TypeVar("S", PlayerPvPStat, GuildPvPStat)


class PvPSeeder(BaseSeeder[IngestResult]):
    """Kill event and battle ingestion engine."""

    kind = SyncKind.PVP

    def __init__(
        self,
        repos: "RepositorySet",
        client: "GameinfoClient",
        settings: Optional[Settings] = None,
    ):
        super().__init__(repos, settings)
        self.client = client
        self.server = client.server

    async def _execute(
        self,
        kills_target: Optional[int] = None,
        battles_target: Optional[int] = None,
        range: BattleRange | str | None = None,
        **_: Any,
    ) -> IngestResult:
        kills_target = kills_target or self.settings.kills_target
        battles_target = self.settings.battles_target if battles_target is None else battles_target
        battle_range = BattleRange(range or self.settings.battle_range)

        result = IngestResult()

        events = await self._fetch_events(kills_target, result)
        battles = await self._fetch_battles(battle_range, battles_target, result) if battles_target else []
        result.fetched = len(events) + len(battles)

        self.ingest_events(events, result)
        self.ingest_battles(battles, result)

        logger.info(
            "PvP sync complete on %s: %d fetched, %d inserted (%d kills, %d battles), "
            "%d duplicates, %d errors, %d invalid",
            self.server,
            result.fetched,
            result.inserted,
            result.kills_inserted,
            result.battles_inserted,
            result.duplicates,
            result.errors,
            result.invalid,
        )
        return result

    def _counters(self, result: IngestResult) -> dict[str, int]:
        return result.to_dict()

    # =========================================================================
    # Fetching
    # =========================================================================

    async def _fetch_events(self, target: int, result: IngestResult) -> list[KillEventPayload]:
        try:
            parsed = await self.client.fetch_kill_events(target)
        except (ExternalAPIError, SchemaError) as e:
            logger.error("Kill event fetch failed, continuing without kills: %s", e)
            result.errors += 1
            return []
        result.invalid += parsed.invalid
        return parsed.items

    async def _fetch_battles(
        self,
        battle_range: BattleRange,
        target: int,
        result: IngestResult,
    ) -> list[BattlePayload]:
        try:
            parsed = await self.client.fetch_battles(battle_range, target)
        except (ExternalAPIError, SchemaError) as e:
            logger.error("Battle fetch failed, continuing without battles: %s", e)
            result.errors += 1
            return []
        result.invalid += parsed.invalid
        return parsed.items

    # =========================================================================
    # Kill events
    # =========================================================================

    def ingest_events(
        self,
        events: list[KillEventPayload],
        result: Optional[IngestResult] = None,
    ) -> IngestResult:
        """Persist a batch of validated kill events."""
        result = result or IngestResult()

        for event in events:
            try:
                if self.repos.kill_events.exists(event.event_id):
                    result.duplicates += 1
                    continue

                with self.repos.atomic():
                    stored = self.repos.kill_events.insert(event, self.server)
                    if stored:
                        self._apply_event_stats(event)

                if not stored:
                    logger.debug("Event %d inserted concurrently", event.event_id)
                    result.duplicates += 1
                    continue

                result.inserted += 1
                result.kills_inserted += 1

            except Exception as e:
                logger.error("Error processing kill event %s: %s", event.event_id, e)
                result.errors += 1

        return result

    def _apply_event_stats(self, event: KillEventPayload) -> None:
        fame, at = event.total_fame, event.timestamp
        killer, victim = event.killer, event.victim

        self._update_player(killer, lambda s: s.with_kill(killer, fame, at))
        self._update_player(victim, lambda s: s.with_death(victim, fame, at))

        if killer.guild_id:
            self._update_guild(killer, lambda s: s.with_kill(killer, at))
        if victim.guild_id:
            self._update_guild(victim, lambda s: s.with_death(victim, at))

    def _update_player(
        self,
        player: PlayerPayload,
        apply: Callable[[PlayerPvPStat], PlayerPvPStat],
    ) -> None:
        self._compare_and_swap(
            self.repos.player_stats,
            PLAYER_STATS_TABLE,
            player.id,
            lambda: PlayerPvPStat.empty(player),
            apply,
        )

    def _update_guild(
        self,
        player: PlayerPayload,
        apply: Callable[[GuildPvPStat], GuildPvPStat],
    ) -> None:
        self._compare_and_swap(
            self.repos.guild_stats,
            GUILD_STATS_TABLE,
            player.guild_id,
            lambda: GuildPvPStat.empty(player),
            apply,
        )

    def _compare_and_swap(
        self,
        repo: "PlayerStatsRepository | GuildStatsRepository",
        table: str,
        key: str,
        empty: Callable[[], S],
        apply: Callable[[S], S],
    ) -> None:
        """
        Optimistic read-modify-write of one stat row.

        Raises:
            StaleStatError: If every attempt lost a race
        """
        attempts = self.settings.stat_update_attempts
        for _ in range(attempts):
            current = repo.get(key)
            if current is None:
                if repo.create(apply(empty())):
                    return
            elif repo.update(apply(current), current.version):
                return
            logger.debug("Stale %s row %s, re-reading", table, key)
        raise StaleStatError(table, key, attempts)

    # =========================================================================
    # Battles
    # =========================================================================

    def ingest_battles(
        self,
        battles: list[BattlePayload],
        result: Optional[IngestResult] = None,
    ) -> IngestResult:
        """Upsert a batch of validated battles."""
        result = result or IngestResult()

        for battle in battles:
            try:
                existed = self.repos.battles.exists(battle.id)
                self.repos.battles.upsert(battle, self.server)
                if existed:
                    result.duplicates += 1
                else:
                    result.inserted += 1
                    result.battles_inserted += 1
            except Exception as e:
                logger.error("Error processing battle %s: %s", battle.id, e)
                result.errors += 1

        return result

