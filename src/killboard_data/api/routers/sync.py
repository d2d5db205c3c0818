"""
Sync trigger router.

Endpoints:
- POST /pvp - Ingest recent kill events and battles
- POST /guilds - Snapshot leaderboard guilds
- POST /builds - Recompute the meta build table
- GET /runs - Recent sync audit rows

Every endpoint requires the shared sync secret. A run refused because
another run of the same kind holds the lock answers 409.
"""

import logging
from typing import Annotated, Any, Optional

from fastapi import APIRouter, Depends, Query, Request

from ...aggregators import BuildAggregator
from ...core.config import Settings
from ...core.errors import RunLockedError
from ...core.types import BattleRange, SyncKind
from ...seeders import GuildSeeder, PvPSeeder
from ..dependencies import (
    GameinfoDependency,
    ReposDependency,
    SettingsDependency,
    require_sync_secret,
)
from ..errors import RunLockedAPIError

logger = logging.getLogger(__name__)

router = APIRouter(dependencies=[Depends(require_sync_secret)])


def _int_or_default(value: Any, default: int, minimum: int) -> int:
    if isinstance(value, int) and not isinstance(value, bool) and value >= minimum:
        return value
    return default


def parse_pvp_trigger(body: Any, settings: Settings) -> dict[str, Any]:
    """
    Read ``{killsTarget, battlesTarget, range}`` from an optional body.

    Missing or invalid values fall back to the configured defaults.
    """
    body = body if isinstance(body, dict) else {}
    range_value = body.get("range")
    if range_value not in {r.value for r in BattleRange}:
        range_value = BattleRange(settings.battle_range).value

    return {
        "kills_target": _int_or_default(body.get("killsTarget"), settings.kills_target, 1),
        "battles_target": _int_or_default(body.get("battlesTarget"), settings.battles_target, 0),
        "range": range_value,
    }


async def _read_json(request: Request) -> Any:
    body = await request.body()
    if not body:
        return None
    try:
        return await request.json()
    except ValueError:
        logger.warning("Ignoring malformed sync trigger body")
        return None


@router.post("/pvp")
async def sync_pvp(
    request: Request,
    repos: ReposDependency,
    client: GameinfoDependency,
    settings: SettingsDependency,
) -> dict[str, Any]:
    """Fetch and ingest recent kill events and battles."""
    params = parse_pvp_trigger(await _read_json(request), settings)
    seeder = PvPSeeder(repos, client, settings)
    try:
        result = await seeder.run(**params)
    except RunLockedError as e:
        raise RunLockedAPIError(str(e)) from e

    return {"success": True, "run_id": seeder.run_id, **params, **result.to_dict()}


@router.post("/guilds")
async def sync_guilds(
    repos: ReposDependency,
    client: GameinfoDependency,
    settings: SettingsDependency,
) -> dict[str, Any]:
    """Snapshot the guilds on the kill-fame leaderboards."""
    seeder = GuildSeeder(repos, client, settings)
    try:
        result = await seeder.run()
    except RunLockedError as e:
        raise RunLockedAPIError(str(e)) from e

    return {"success": True, "run_id": seeder.run_id, **result.to_dict()}


@router.post("/builds")
async def sync_builds(
    repos: ReposDependency,
    settings: SettingsDependency,
) -> dict[str, Any]:
    """Recompute meta builds from stored kill events."""
    aggregator = BuildAggregator(repos, settings)
    try:
        result = await aggregator.run()
    except RunLockedError as e:
        raise RunLockedAPIError(str(e)) from e

    return {
        "success": True,
        "run_id": aggregator.run_id,
        "rules_version": aggregator.rules.version,
        **result.to_dict(),
    }


@router.get("/runs")
async def list_runs(
    repos: ReposDependency,
    limit: Annotated[int, Query(ge=1, le=200)] = 20,
    kind: Annotated[Optional[SyncKind], Query()] = None,
) -> dict[str, Any]:
    """Most recent sync runs, newest first."""
    runs = repos.sync_runs.recent(limit, kind.value if kind else None)
    return {"runs": [run.model_dump(mode="json") for run in runs]}
