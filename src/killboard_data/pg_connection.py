"""
PostgreSQL access for the killboard store.

A psycopg3 connection pool with dict rows. Each helper runs one statement
on a borrowed connection and commits before returning it, unless it is
called inside ``transaction()``. Transactions cover one stored item and
never span a gameinfo request.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator, Optional, Sequence

import psycopg
from psycopg.rows import dict_row
from psycopg_pool import ConnectionPool

from .core.config import get_settings

logger = logging.getLogger(__name__)

Row = dict[str, Any]


class PostgresDB:
    """Pooled PostgreSQL handle shared by repositories, migrations and the API."""

    def __init__(
        self,
        connection_string: Optional[str] = None,
        min_pool_size: int = 1,
        max_pool_size: Optional[int] = None,
    ):
        """
        Args:
            connection_string: PostgreSQL URL. Falls back to DATABASE_URL / NEON_DATABASE_URL.
            min_pool_size: Connections kept open while idle.
            max_pool_size: Pool ceiling. Falls back to DATABASE_POOL_SIZE.
        """
        settings = get_settings()
        self.connection_string = connection_string or settings.db_url
        if not self.connection_string:
            raise ValueError("No database configured: set DATABASE_URL or pass connection_string")

        max_size = max_pool_size or settings.database_pool_size
        self._pool = ConnectionPool(
            self.connection_string,
            min_size=min(min_pool_size, max_size),
            max_size=max_size,
            kwargs={"row_factory": dict_row},
            open=True,
        )
        self._active: ContextVar[Optional[psycopg.Connection]] = ContextVar(
            f"pg_transaction_{id(self)}", default=None
        )
        logger.debug("Opened PostgreSQL pool (max %d connections)", max_size)

    @contextmanager
    def _statement(self) -> Iterator[psycopg.Cursor]:
        """
        Cursor for one statement.

        Inside ``transaction()`` the statement joins the open transaction;
        otherwise it runs on its own pooled connection and is committed.
        """
        conn = self._active.get()
        if conn is not None:
            with conn.cursor() as cur:
                yield cur
            return

        with self._pool.connection() as conn:
            with conn.cursor() as cur:
                yield cur
            conn.commit()

    @contextmanager
    def transaction(self) -> Iterator[psycopg.Connection]:
        """
        Group statements into one transaction.

        Every helper called inside the block (from this task or thread)
        uses the same connection. Commits on success, rolls back on any
        error. Nested calls join the outer transaction.
        """
        active = self._active.get()
        if active is not None:
            yield active
            return

        with self._pool.connection() as conn:
            token = self._active.set(conn)
            try:
                yield conn
                conn.commit()
            except Exception:
                conn.rollback()
                raise
            finally:
                self._active.reset(token)

    def execute(self, query: str, params: Sequence[Any] = ()) -> int:
        """Run one statement. Returns the affected row count."""
        with self._statement() as cur:
            cur.execute(query, params)
            return cur.rowcount

    def executemany(self, query: str, params_list: list[tuple]) -> None:
        """Run one statement per parameter set, all in a single commit."""
        with self._statement() as cur:
            cur.executemany(query, params_list)

    def executescript(self, sql: str) -> None:
        """Run a multi-statement script such as a migration file."""
        with self._statement() as cur:
            cur.execute(sql)

    def fetchone(self, query: str, params: Sequence[Any] = ()) -> Optional[Row]:
        with self._statement() as cur:
            cur.execute(query, params)
            row = cur.fetchone()
        return dict(row) if row else None

    def fetchall(self, query: str, params: Sequence[Any] = ()) -> list[Row]:
        with self._statement() as cur:
            cur.execute(query, params)
            rows = cur.fetchall()
        return [dict(row) for row in rows]

    def close(self) -> None:
        self._pool.close()

    def is_initialized(self) -> bool:
        """True once the ``meta`` table exists, i.e. migration 001 has run."""
        try:
            row = self.fetchone("SELECT to_regclass('public.meta') IS NOT NULL AS ready")
        except psycopg.Error as e:
            logger.warning("Could not inspect schema: %s", e)
            return False
        return bool(row and row["ready"])

    # =========================================================================
    # Metadata (schema version, applied migrations)
    # =========================================================================

    def get_meta(self, key: str) -> Optional[str]:
        row = self.fetchone("SELECT value FROM meta WHERE key = %s", (key,))
        return row["value"] if row else None

    def set_meta(self, key: str, value: str) -> None:
        self.execute(
            """
            INSERT INTO meta (key, value, updated_at)
            VALUES (%s, %s, NOW())
            ON CONFLICT (key) DO UPDATE SET value = EXCLUDED.value, updated_at = NOW()
            """,
            (key, value),
        )


_postgres_db: Optional[PostgresDB] = None


def get_postgres_db() -> PostgresDB:
    """Process-wide pool, created on first use."""
    global _postgres_db
    if _postgres_db is None:
        _postgres_db = PostgresDB()
    return _postgres_db


def close_postgres_db() -> None:
    global _postgres_db
    if _postgres_db is not None:
        _postgres_db.close()
        _postgres_db = None
