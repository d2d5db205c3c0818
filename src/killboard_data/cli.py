#!/usr/bin/env python3
"""
Command-line interface for the killboard pipeline.

Usage:
    killboard-data init                                  # Apply migrations
    killboard-data sync-pvp --kills 300 --battles 50 --range week
    killboard-data sync-pvp --dry-run                    # Fetch + ingest in memory only
    killboard-data sync-guilds
    killboard-data aggregate-builds
    killboard-data runs --limit 10 --kind pvp
    killboard-data status
    killboard-data serve --port 8000

Exit codes: 0 on success, 1 on failure, 2 when another run of the same
kind holds the run lock.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from typing import Optional

from .core.config import get_settings
from .core.errors import RunLockedError
from .core.types import BattleRange, SyncKind

logger = logging.getLogger("killboard_data.cli")

EXIT_LOCKED = 2


def configure_logging(verbose: bool = False) -> None:
    level = logging.DEBUG if verbose else getattr(logging, get_settings().log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def get_db():
    """Get the pooled PostgreSQL connection."""
    from .pg_connection import PostgresDB

    return PostgresDB()


def _print_result(title: str, payload: dict) -> None:
    print(f"\n{title}")
    print("=" * 50)
    for key, value in payload.items():
        if isinstance(value, dict):
            print(f"{key}:")
            for sub_key, sub_value in value.items():
                print(f"  {sub_key}: {sub_value}")
        else:
            print(f"{key}: {value}")


def cmd_init(args: argparse.Namespace) -> int:
    """Initialize the database with schema."""
    from .schema import init_database

    db = get_db()

    try:
        logger.info("Initializing killboard database...")
        applied = init_database(db)
        logger.info("Database initialized (%d migrations applied)", applied)
        return 0
    except Exception as e:
        logger.error("Failed to initialize database: %s", e)
        return 1
    finally:
        db.close()


def cmd_status(args: argparse.Namespace) -> int:
    """Show database status."""
    from .repositories import get_repositories
    from .schema import get_schema_version, get_table_counts

    db = get_db()

    try:
        if not db.is_initialized():
            logger.info("Database is not initialized, run 'killboard-data init'")
            return 1

        print("\nKillboard Database Status")
        print("=" * 50)
        print(f"Schema Version: {get_schema_version(db)}")
        print(f"Gameinfo Server: {get_settings().gameinfo_server}")

        print("\nTable Counts:")
        for table, count in get_table_counts(db).items():
            print(f"  {table}: {count:,}")

        print("\nLast Runs:")
        runs = get_repositories(db).sync_runs
        for kind in SyncKind:
            last = runs.recent(1, kind.value)
            if not last:
                print(f"  {kind.value}: never")
                continue
            run = last[0]
            outcome = "running" if run.success is None else ("ok" if run.success else "failed")
            print(f"  {kind.value}: {run.started_at:%Y-%m-%d %H:%M:%S} ({outcome})")
        return 0
    finally:
        db.close()


async def _run_engine(args: argparse.Namespace, kind: SyncKind) -> int:
    from .aggregators import BuildAggregator
    from .providers.gameinfo import GameinfoClient
    from .repositories import get_repositories, memory_repositories
    from .seeders import GuildSeeder, PvPSeeder

    settings = get_settings()
    db = None
    if getattr(args, "dry_run", False):
        repos = memory_repositories()
        logger.info("Dry run: results are kept in memory only")
    else:
        db = get_db()
        repos = get_repositories(db)

    try:
        if kind is SyncKind.BUILDS:
            aggregator = BuildAggregator(repos, settings)
            result = await aggregator.run()
            _print_result("Meta build aggregation complete", result.to_dict())
            return 0

        async with GameinfoClient(settings) as client:
            if kind is SyncKind.PVP:
                params = {
                    "kills_target": args.kills or settings.kills_target,
                    "battles_target": settings.battles_target if args.battles is None else args.battles,
                    "range": args.range or BattleRange(settings.battle_range).value,
                }
                result = await PvPSeeder(repos, client, settings).run(**params)
                _print_result("PvP sync complete", result.to_dict())
            else:
                result = await GuildSeeder(repos, client, settings).run()
                _print_result("Guild sync complete", result.to_dict())
        return 0

    except RunLockedError as e:
        logger.error("%s", e)
        return EXIT_LOCKED
    except Exception as e:
        logger.error("%s sync failed: %s", kind.value, e)
        return 1
    finally:
        if db is not None:
            db.close()


def cmd_sync_pvp(args: argparse.Namespace) -> int:
    """Ingest recent kill events and battles."""
    return asyncio.run(_run_engine(args, SyncKind.PVP))


def cmd_sync_guilds(args: argparse.Namespace) -> int:
    """Snapshot the guilds on the kill-fame leaderboards."""
    return asyncio.run(_run_engine(args, SyncKind.GUILDS))


def cmd_aggregate_builds(args: argparse.Namespace) -> int:
    """Recompute the meta build table."""
    return asyncio.run(_run_engine(args, SyncKind.BUILDS))


def cmd_runs(args: argparse.Namespace) -> int:
    """List recent sync runs."""
    from .repositories import get_repositories

    db = get_db()

    try:
        runs = get_repositories(db).sync_runs.recent(args.limit, args.kind)
        if args.json:
            print(json.dumps([run.model_dump(mode="json") for run in runs], indent=2))
            return 0

        for run in runs:
            outcome = "running" if run.success is None else ("ok" if run.success else "FAILED")
            duration = f"{run.duration_seconds:.1f}s" if run.duration_seconds is not None else "-"
            counters = ", ".join(f"{k}={v}" for k, v in run.counters.items())
            print(f"#{run.id} {run.kind:<7} {run.started_at:%Y-%m-%d %H:%M:%S} {outcome:<7} {duration:>8} {counters}")
            if run.error_message:
                print(f"    error: {run.error_message}")
        return 0
    finally:
        db.close()


def cmd_serve(args: argparse.Namespace) -> int:
    """Serve the sync trigger API."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "killboard_data.api.main:app",
        host=args.host or settings.api_host,
        port=args.port or settings.api_port,
        log_level=settings.log_level.lower(),
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="killboard-data",
        description="Albion Online PvP ingestion and aggregation pipeline",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    subparsers.add_parser("init", help="Apply database migrations")
    subparsers.add_parser("status", help="Show database status")

    pvp_parser = subparsers.add_parser("sync-pvp", help="Ingest recent kill events and battles")
    pvp_parser.add_argument("--kills", type=int, help="Kill events to fetch (default: KILLS_TARGET)")
    pvp_parser.add_argument("--battles", type=int, help="Battles to fetch (default: BATTLES_TARGET)")
    pvp_parser.add_argument("--range", choices=[r.value for r in BattleRange], help="Battle time range")
    pvp_parser.add_argument("--dry-run", action="store_true", help="Ingest into memory, write nothing")

    guild_parser = subparsers.add_parser("sync-guilds", help="Snapshot leaderboard guilds")
    guild_parser.add_argument("--dry-run", action="store_true", help="Ingest into memory, write nothing")

    subparsers.add_parser("aggregate-builds", help="Recompute meta builds from stored kill events")

    runs_parser = subparsers.add_parser("runs", help="List recent sync runs")
    runs_parser.add_argument("--limit", type=int, default=20, help="Number of runs (default: 20)")
    runs_parser.add_argument("--kind", choices=[k.value for k in SyncKind], help="Filter by run kind")
    runs_parser.add_argument("--json", action="store_true", help="Print JSON instead of a table")

    serve_parser = subparsers.add_parser("serve", help="Serve the sync trigger API")
    serve_parser.add_argument("--host", help="Bind address (default: API_HOST)")
    serve_parser.add_argument("--port", type=int, help="Port (default: API_PORT)")

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    configure_logging(args.verbose)

    commands = {
        "init": cmd_init,
        "status": cmd_status,
        "sync-pvp": cmd_sync_pvp,
        "sync-guilds": cmd_sync_guilds,
        "aggregate-builds": cmd_aggregate_builds,
        "runs": cmd_runs,
        "serve": cmd_serve,
    }

    cmd_func = commands.get(args.command)
    if cmd_func:
        return cmd_func(args)
    else:
        parser.print_help()
        return 1


if __name__ == "__main__":
    sys.exit(main())
