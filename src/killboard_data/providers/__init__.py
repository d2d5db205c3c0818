"""
Upstream data providers.

Usage:
    from killboard_data.providers import GameinfoClient

    async with GameinfoClient() as client:
        kills = await client.fetch_kill_events(100)
"""

from .gameinfo import BATTLES_PAGE_SIZE, KILLS_PAGE_SIZE, GameinfoClient

__all__ = [
    "GameinfoClient",
    "KILLS_PAGE_SIZE",
    "BATTLES_PAGE_SIZE",
]
