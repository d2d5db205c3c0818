"""
Tests for the gameinfo client: pagination, parameters and failure mapping.

The upstream API is served by httpx.MockTransport, see conftest.FakeGameinfo.
"""

import httpx
import pytest

from killboard_data.core.config import Settings
from killboard_data.core.errors import SchemaError
from killboard_data.core.http import ExternalAPIError
from killboard_data.core.types import GAMEINFO_SERVERS
from killboard_data.providers.gameinfo import BATTLES_PAGE_SIZE, KILLS_PAGE_SIZE, GameinfoClient

from .conftest import battle, guild_fame_entry, guild_member, guild_profile, kill_event, paged


class TestPagination:
    async def test_stops_on_short_page(self, client, gameinfo):
        gameinfo.route("/events", paged([kill_event(i) for i in range(61)]))

        result = await client.fetch_kill_events(100)

        assert len(result.items) == 61
        offsets = [int(r.url.params["offset"]) for r in gameinfo.requests]
        assert offsets == [0, KILLS_PAGE_SIZE]

    async def test_stops_at_target(self, client, gameinfo):
        gameinfo.route("/events", paged([kill_event(i) for i in range(500)]))

        result = await client.fetch_kill_events(100)

        assert len(result.items) == 100
        assert gameinfo.calls["/events"] == 2
        assert all(r.url.params["limit"] == str(KILLS_PAGE_SIZE) for r in gameinfo.requests)

    async def test_target_within_first_page(self, client, gameinfo):
        gameinfo.route("/events", paged([kill_event(i) for i in range(200)]))

        result = await client.fetch_kill_events(10)

        assert [e.event_id for e in result.items] == list(range(10))
        assert gameinfo.calls["/events"] == 1

    async def test_battle_parameters(self, client, gameinfo):
        gameinfo.route("/battles", paged([battle(i) for i in range(1, 4)]))

        result = await client.fetch_battles("week", 50)

        assert len(result.items) == 3
        params = gameinfo.requests[0].url.params
        assert params["range"] == "week"
        assert params["sort"] == "recent"
        assert params["limit"] == str(BATTLES_PAGE_SIZE)

    async def test_invalid_items_are_counted(self, client, gameinfo):
        broken = kill_event(2)
        broken["Victim"] = None
        gameinfo.route("/events", paged([kill_event(1), broken]))

        result = await client.fetch_kill_events(10)

        assert len(result.items) == 1
        assert result.invalid == 1


class TestFailures:
    async def test_non_2xx_aborts_without_retry(self, client, gameinfo):
        gameinfo.route("/events", lambda request: httpx.Response(503, text="down"))

        with pytest.raises(ExternalAPIError) as exc_info:
            await client.fetch_kill_events(100)

        assert exc_info.value.status_code == 503
        assert gameinfo.calls["/events"] == 1

    async def test_failure_on_later_page_aborts(self, client, gameinfo):
        items = [kill_event(i) for i in range(200)]

        def handler(request):
            if int(request.url.params["offset"]) > 0:
                return httpx.Response(500)
            return items[:KILLS_PAGE_SIZE]

        gameinfo.route("/events", handler)

        with pytest.raises(ExternalAPIError):
            await client.fetch_kill_events(100)

    async def test_non_array_body_is_schema_error(self, client, gameinfo):
        gameinfo.route("/events", lambda request: {"error": "maintenance"})

        with pytest.raises(SchemaError):
            await client.fetch_kill_events(10)

    async def test_invalid_guild_profile(self, client, gameinfo):
        gameinfo.route("/guilds/G1", lambda request: {"Name": "no id"})

        with pytest.raises(SchemaError):
            await client.get_guild("G1")


class TestGuildEndpoints:
    async def test_guild_profile_and_members(self, client, gameinfo):
        gameinfo.route("/guilds/G1", lambda request: guild_profile("G1"))
        gameinfo.route("/guilds/G1/members", lambda request: [guild_member("P1", "G1"), guild_member("P2", "G1")])

        profile = await client.get_guild("G1")
        members = await client.get_guild_members("G1")

        assert profile.guild_name == "Guild G1"
        assert profile.alliance_tag == "ALY"
        assert [m.player_id for m in members.items] == ["P1", "P2"]

    async def test_guild_fame_parameters(self, client, gameinfo):
        gameinfo.route("/events/guildfame", lambda request: [guild_fame_entry("G1", 1)])

        result = await client.get_guild_fame("month", limit=20)

        assert result.items[0].guild_id == "G1"
        params = gameinfo.requests[0].url.params
        assert params["range"] == "month"
        assert params["limit"] == "20"
        assert params["offset"] == "0"

    async def test_guild_events_filter(self, client, gameinfo):
        gameinfo.route("/events", lambda request: [kill_event(1, battle_id=5)])

        result = await client.get_guild_events("G1", limit=25)

        assert result.items[0].battle_id == 5
        assert gameinfo.requests[0].url.params["guildId"] == "G1"


class TestServerSelection:
    def test_server_sets_base_url(self):
        settings = Settings(_env_file=None, gameinfo_server="Europe", gameinfo_base_url=None)
        assert settings.gameinfo_url == GAMEINFO_SERVERS["Europe"]

    def test_unknown_server_falls_back_to_americas(self):
        settings = Settings(_env_file=None, gameinfo_server="Mars", gameinfo_base_url=None)
        assert settings.gameinfo_url == GAMEINFO_SERVERS["Americas"]

    def test_page_delay_is_configured_in_milliseconds(self, settings):
        client = GameinfoClient(settings)
        assert client.page_delay == pytest.approx(0.2)
        assert client.server == "Americas"

    def test_page_delay_is_bounded(self):
        with pytest.raises(ValueError):
            Settings(_env_file=None, page_delay_ms=50)
