"""
Albion Online gameinfo API client.

Read-only access to kill events, battles, guild profiles, guild members
and the guild kill-fame leaderboard. Paginated endpoints are walked with
a fixed pause between pages; the API has no key and no documented rate
limit, so the pause is our only throttle.
"""

import asyncio
import logging
from typing import Any

import httpx

from ..core.config import Settings, get_settings
from ..core.http import BaseApiClient
from ..core.schemas import (
    BattlePayload,
    GuildEventPayload,
    GuildFameEntryPayload,
    GuildMemberPayload,
    GuildProfilePayload,
    KillEventPayload,
    ParseResult,
    parse_many,
    parse_one,
)
from ..core.types import BattleRange, GAMEINFO_SERVERS

logger = logging.getLogger(__name__)

KILLS_PAGE_SIZE = 51
BATTLES_PAGE_SIZE = 50


class GameinfoClient(BaseApiClient):
    """Gameinfo API client for one server (Americas, Europe or Asia)."""

    BASE_URL = GAMEINFO_SERVERS["Americas"]

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        settings = settings or get_settings()
        super().__init__(
            base_url=settings.gameinfo_url,
            timeout=settings.gameinfo_timeout,
            transport=transport,
        )
        self.server = settings.gameinfo_server
        self.page_delay = settings.page_delay_ms / 1000.0

    async def _paginate(
        self,
        path: str,
        target: int,
        page_size: int,
        params: dict[str, Any] | None = None,
    ) -> list[Any]:
        """
        Collect up to ``target`` raw items from an offset-paginated endpoint.

        Stops at the target or on the first page shorter than ``page_size``.
        Any non-2xx page aborts the whole call.
        """
        items: list[Any] = []
        offset = 0

        while len(items) < target:
            page = await self._get(path, {**(params or {}), "limit": page_size, "offset": offset})
            if not isinstance(page, list):
                # Let the schema layer reject it with a proper error
                return page

            items.extend(page)
            if len(page) < page_size:
                break

            offset += page_size
            if len(items) < target:
                await asyncio.sleep(self.page_delay)

        return items[:target]

    # =========================================================================
    # Kill events and battles
    # =========================================================================

    async def fetch_kill_events(self, target: int) -> ParseResult[KillEventPayload]:
        """Fetch the most recent ``target`` kill events."""
        raw = await self._paginate("/events", target, KILLS_PAGE_SIZE)
        result = parse_many(KillEventPayload, raw)
        logger.info(
            "Fetched %d kill events from %s (%d invalid)",
            len(result.items), self.server, result.invalid,
        )
        return result

    async def fetch_battles(
        self,
        range: BattleRange | str,
        target: int,
    ) -> ParseResult[BattlePayload]:
        """Fetch up to ``target`` recent battles for a time range."""
        range_value = BattleRange(range).value
        raw = await self._paginate(
            "/battles",
            target,
            BATTLES_PAGE_SIZE,
            {"range": range_value, "sort": "recent"},
        )
        result = parse_many(BattlePayload, raw)
        logger.info(
            "Fetched %d battles (%s) from %s (%d invalid)",
            len(result.items), range_value, self.server, result.invalid,
        )
        return result

    # =========================================================================
    # Guilds
    # =========================================================================

    async def get_guild(self, guild_id: str) -> GuildProfilePayload:
        """Get a guild profile."""
        return parse_one(GuildProfilePayload, await self._get(f"/guilds/{guild_id}"))

    async def get_guild_members(self, guild_id: str) -> ParseResult[GuildMemberPayload]:
        """Get the current member list of a guild."""
        return parse_many(GuildMemberPayload, await self._get(f"/guilds/{guild_id}/members"))

    async def get_guild_fame(
        self,
        range: BattleRange | str,
        limit: int = 50,
        offset: int = 0,
    ) -> ParseResult[GuildFameEntryPayload]:
        """Get the guild kill-fame leaderboard for a time range."""
        payload = await self._get(
            "/events/guildfame",
            {"range": BattleRange(range).value, "limit": limit, "offset": offset},
        )
        return parse_many(GuildFameEntryPayload, payload)

    async def get_guild_events(self, guild_id: str, limit: int = 25) -> ParseResult[GuildEventPayload]:
        """Get the most recent kill events involving a guild."""
        payload = await self._get("/events", {"guildId": guild_id, "limit": limit})
        return parse_many(GuildEventPayload, payload)
