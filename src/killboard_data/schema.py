"""
Database schema management for the killboard database.

Handles initialization, migrations, and table inspection for the CLI
status command.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import TYPE_CHECKING

from .core.types import ALL_TABLES

if TYPE_CHECKING:
    from .pg_connection import PostgresDB

logger = logging.getLogger(__name__)

MIGRATIONS_DIR = Path(__file__).parent / "migrations"
SCHEMA_VERSION = "4"


def get_migration_files() -> list[Path]:
    """Get all SQL migration files in order."""
    if not MIGRATIONS_DIR.exists():
        return []

    return sorted(MIGRATIONS_DIR.glob("*.sql"))


def run_migrations(db: "PostgresDB", force: bool = False) -> int:
    """
    Run all pending migrations.

    Migrations are idempotent SQL (CREATE ... IF NOT EXISTS), so forcing
    a re-run is safe.

    Args:
        db: Database connection
        force: If True, run all migrations even if already applied

    Returns:
        Number of migrations applied
    """
    migration_files = get_migration_files()
    if not migration_files:
        logger.warning("No migration files found in %s", MIGRATIONS_DIR)
        return 0

    applied = 0

    for migration_file in migration_files:
        migration_name = migration_file.stem

        if not force and db.is_initialized():
            if db.get_meta(f"migration_{migration_name}"):
                logger.debug("Skipping already applied migration: %s", migration_name)
                continue

        logger.info("Applying migration: %s", migration_name)

        try:
            db.executescript(migration_file.read_text())
            db.set_meta(f"migration_{migration_name}", "applied")
            applied += 1
            logger.info("Successfully applied migration: %s", migration_name)
        except Exception as e:
            logger.error("Failed to apply migration %s: %s", migration_name, e)
            raise

    return applied


def init_database(db: "PostgresDB") -> int:
    """
    Initialize the database with the full schema.

    Returns:
        Number of migrations applied
    """
    applied = run_migrations(db)
    db.set_meta("schema_version", SCHEMA_VERSION)
    logger.info("Database initialized with %d migrations", applied)
    return applied


def get_schema_version(db: "PostgresDB") -> str:
    """Get the current schema version."""
    if not db.is_initialized():
        return "0"

    return db.get_meta("schema_version") or "unknown"


def list_tables(db: "PostgresDB") -> list[str]:
    """List all tables in the public schema."""
    rows = db.fetchall(
        """
        SELECT table_name FROM information_schema.tables
        WHERE table_schema = 'public' AND table_type = 'BASE TABLE'
        ORDER BY table_name
        """
    )
    return [row["table_name"] for row in rows]


def get_table_counts(db: "PostgresDB") -> dict[str, int]:
    """Get row counts for the pipeline tables that exist."""
    existing = set(list_tables(db))
    counts = {}

    for table in ALL_TABLES:
        if table not in existing:
            continue
        result = db.fetchone(f"SELECT COUNT(*) AS count FROM {table}")
        counts[table] = result["count"] if result else 0

    return counts
