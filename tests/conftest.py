"""
Pytest configuration for killboard-data tests.

Provides upstream payload factories, a scripted gameinfo API served via
httpx.MockTransport, and in-memory repositories for engine tests.
"""

import os
from collections import defaultdict
from pathlib import Path
from typing import Any, Callable, Optional

import httpx
import pytest
from dotenv import load_dotenv

from killboard_data.core.config import Settings
from killboard_data.providers.gameinfo import GameinfoClient
from killboard_data.repositories import memory_repositories

load_dotenv(Path(__file__).parent.parent / ".env")

GAMEINFO_TEST_URL = "https://gameinfo.test/api/gameinfo"
SYNC_SECRET = "test-secret"


# =========================================================================
# Upstream payload factories
# =========================================================================


def equipment(main_hand: Optional[str] = None, armor: Optional[str] = None, **slots: str) -> dict:
    """Upstream equipment dict; extra slots by PascalCase name (Head=..., Cape=...)."""
    raw = {"MainHand": main_hand, "Armor": armor, **slots}
    return {slot: {"Type": item, "Count": 1, "Quality": 2} for slot, item in raw.items() if item}


def player(
    player_id: str,
    name: Optional[str] = None,
    guild_id: str = "",
    guild_name: str = "",
    gear: Optional[dict] = None,
) -> dict:
    return {
        "Id": player_id,
        "Name": name or player_id,
        "GuildId": guild_id,
        "GuildName": guild_name,
        "AllianceId": "",
        "AllianceName": "",
        "AverageItemPower": 1200.5,
        "DamageDone": 1500.0,
        "SupportHealingDone": 0.0,
        "Equipment": gear or {},
        "Inventory": [None, {"Type": "T4_POTION_HEAL", "Count": 2, "Quality": 0}],
    }


def kill_event(
    event_id: int,
    killer: Optional[dict] = None,
    victim: Optional[dict] = None,
    fame: int = 10000,
    minute: int = 0,
    battle_id: int = 0,
    location: Optional[str] = "Lymhurst",
) -> dict:
    return {
        "EventId": event_id,
        "TimeStamp": f"2025-01-15T12:{minute % 60:02d}:00.123456789Z",
        "Killer": killer or player("killer"),
        "Victim": victim or player("victim"),
        "TotalVictimKillFame": fame,
        "Location": location,
        "BattleId": battle_id,
        "Participants": [],
        "numberOfParticipants": 1,
    }


def battle(battle_id: int, side_a: int = 2, side_b: int = 1) -> dict:
    return {
        "id": battle_id,
        "name": f"Battle {battle_id}",
        "startTime": "2025-01-15T12:00:00Z",
        "endTime": "2025-01-15T12:30:00Z",
        "totalKills": 7,
        "totalFame": 250000,
        "players": {
            "a": [player(f"a{i}") for i in range(side_a)],
            "b": [player(f"b{i}") for i in range(side_b)],
        },
    }


def guild_fame_entry(guild_id: str, rank: int, total: int = 1_000_000) -> dict:
    return {"GuildId": guild_id, "GuildName": f"Guild {guild_id}", "Total": total, "Rank": rank}


def guild_profile(guild_id: str, kill_fame: int = 5_000_000, death_fame: int = 2_500_000) -> dict:
    return {
        "Id": guild_id,
        "Name": f"Guild {guild_id}",
        "AllianceId": "ALLY",
        "AllianceName": "Alliance",
        "AllianceTag": "ALY",
        "MemberCount": 2,
        "killFame": kill_fame,
        "DeathFame": death_fame,
        "AttacksWon": 3,
        "DefensesWon": 1,
        "Founded": "2019-07-10T00:00:00Z",
        "FounderId": "F1",
        "FounderName": "Founder",
    }


def guild_member(player_id: str, guild_id: str) -> dict:
    return {
        "Id": player_id,
        "Name": player_id,
        "GuildId": guild_id,
        "GuildName": f"Guild {guild_id}",
        "KillFame": 1000,
        "DeathFame": 500,
        "FameRatio": 2.0,
        "AverageItemPower": 1100.0,
    }


# =========================================================================
# Scripted gameinfo API
# =========================================================================


class FakeGameinfo:
    """
    Route table for httpx.MockTransport.

    Handlers receive the request and return an httpx.Response (or a
    JSON-able value, wrapped in a 200). Every request is recorded.
    """

    def __init__(self):
        self.routes: dict[str, Callable[[httpx.Request], Any]] = {}
        self.requests: list[httpx.Request] = []
        self.calls: dict[str, int] = defaultdict(int)

    def route(self, path: str, handler: Callable[[httpx.Request], Any]) -> None:
        self.routes[path] = handler

    def handle(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        path = request.url.path.removeprefix("/api/gameinfo")
        self.calls[path] += 1
        handler = self.routes.get(path)
        if handler is None:
            return httpx.Response(404, json={"error": f"no route for {path}"})
        result = handler(request)
        if isinstance(result, httpx.Response):
            return result
        return httpx.Response(200, json=result)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handle)


def paged(items: list[dict]) -> Callable[[httpx.Request], list[dict]]:
    """Serve ``items`` honoring the limit/offset query parameters."""

    def handler(request: httpx.Request) -> list[dict]:
        limit = int(request.url.params["limit"])
        offset = int(request.url.params.get("offset", 0))
        return items[offset:offset + limit]

    return handler


# =========================================================================
# Fixtures
# =========================================================================


@pytest.fixture
def settings() -> Settings:
    return Settings(
        _env_file=None,
        gameinfo_base_url=GAMEINFO_TEST_URL,
        gameinfo_server="Americas",
        sync_secret=SYNC_SECRET,
        page_delay_ms=200,
        database_url=None,
        neon_database_url=None,
    )


@pytest.fixture
def repos():
    return memory_repositories()


@pytest.fixture
def gameinfo() -> FakeGameinfo:
    return FakeGameinfo()


@pytest.fixture
def make_client(settings, gameinfo) -> Callable[..., GameinfoClient]:
    """Build gameinfo clients wired to the fake API, without page delays."""

    def factory(custom_settings: Optional[Settings] = None) -> GameinfoClient:
        client = GameinfoClient(custom_settings or settings, transport=gameinfo.transport)
        client.page_delay = 0
        return client

    return factory


@pytest.fixture
async def client(make_client):
    gameinfo_client = make_client()
    yield gameinfo_client
    await gameinfo_client.close()


@pytest.fixture(scope="session")
def neon_url():
    """Get the PostgreSQL database URL."""
    url = os.environ.get("DATABASE_URL") or os.environ.get("NEON_DATABASE_URL")
    if not url:
        pytest.skip("DATABASE_URL not set")
    return url
