"""
Dependency injection for the sync trigger API.

Routes receive the repository set, a gameinfo client and the settings
through FastAPI dependencies so tests can swap in the in-memory store
and a mocked transport via ``app.dependency_overrides``.
"""

import hmac
import logging
from typing import Annotated, AsyncIterator, Optional

from fastapi import Depends, Header

from ..core.config import Settings, get_settings
from ..pg_connection import PostgresDB, close_postgres_db, get_postgres_db
from ..providers.gameinfo import GameinfoClient
from ..repositories import RepositorySet, get_repositories
from .errors import UnauthorizedError

logger = logging.getLogger(__name__)


# =============================================================================
# Database
# =============================================================================

def get_db() -> PostgresDB:
    """Dependency that provides the process-wide connection pool."""
    return get_postgres_db()


def close_db() -> None:
    """Release the pool. Called at app shutdown."""
    close_postgres_db()


DBDependency = Annotated[PostgresDB, Depends(get_db)]


def get_repos(db: DBDependency) -> RepositorySet:
    return get_repositories(db)


ReposDependency = Annotated[RepositorySet, Depends(get_repos)]
SettingsDependency = Annotated[Settings, Depends(get_settings)]


# =============================================================================
# Upstream client
# =============================================================================


async def get_gameinfo_client(settings: SettingsDependency) -> AsyncIterator[GameinfoClient]:
    """Yield a gameinfo client for the duration of one request."""
    async with GameinfoClient(settings) as client:
        yield client


GameinfoDependency = Annotated[GameinfoClient, Depends(get_gameinfo_client)]


# =============================================================================
# Authorization
# =============================================================================


def _bearer_token(authorization: Optional[str]) -> Optional[str]:
    if authorization and authorization.startswith("Bearer "):
        return authorization[len("Bearer "):]
    return None


def require_sync_secret(
    settings: SettingsDependency,
    authorization: Annotated[Optional[str], Header()] = None,
    x_cron_secret: Annotated[Optional[str], Header()] = None,
) -> None:
    """
    Accept ``Authorization: Bearer <secret>`` or ``x-cron-secret: <secret>``.

    An unset SYNC_SECRET rejects every request.

    Raises:
        UnauthorizedError: If no presented credential matches
    """
    secret = settings.sync_secret
    if not secret:
        logger.warning("SYNC_SECRET is not configured, rejecting sync trigger")
        raise UnauthorizedError()

    for candidate in (_bearer_token(authorization), x_cron_secret):
        if candidate and hmac.compare_digest(candidate.encode(), secret.encode()):
            return

    raise UnauthorizedError()
