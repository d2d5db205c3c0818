"""
Base class for sync engines.

Every engine run follows the same envelope:
  1. Take the per-kind run lock (refuse with RunLockedError if held)
  2. Record a sync_runs row with the run parameters
  3. Execute the engine
  4. Record completion counters, or the failure message
  5. Release the lock

The lock expires after ``sync_lock_ttl_seconds`` so a killed process
cannot wedge later runs.
"""

from __future__ import annotations

import logging
import os
import socket
import uuid
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING, Any, Generic, Optional, TypeVar

from ..core.config import Settings, get_settings
from ..core.errors import RunLockedError
from ..core.types import SyncKind

if TYPE_CHECKING:
    from ..repositories import RepositorySet

logger = logging.getLogger(__name__)

R = TypeVar("R")


def _holder_id() -> str:
    return f"{socket.gethostname()}:{os.getpid()}:{uuid.uuid4().hex[:8]}"


class BaseSeeder(ABC, Generic[R]):
    """
    Abstract base class for lock-guarded, audited sync runs.

    Subclasses must implement:
    - kind: The SyncKind recorded in sync_runs and sync_locks
    - _execute(): The engine body, returning a result object
    - _counters(): Flatten a result into the sync_runs counters
    """

    kind: SyncKind

    def __init__(
        self,
        repos: "RepositorySet",
        settings: Optional[Settings] = None,
    ):
        self.repos = repos
        self.settings = settings or get_settings()
        self.holder = _holder_id()
        self.run_id: Optional[int] = None

    # =========================================================================
    # Sync Tracking
    # =========================================================================

    def _start_sync(self, params: dict[str, Any]) -> int:
        """Record the start of a sync operation."""
        return self.repos.sync_runs.start(self.kind.value, params)

    def _complete_sync(self, run_id: int, counters: dict[str, int]) -> None:
        """Record successful sync completion."""
        self.repos.sync_runs.finish(run_id, counters, success=True)

    def _fail_sync(self, run_id: int, error_message: str) -> None:
        """Record sync failure."""
        self.repos.sync_runs.finish(run_id, {}, success=False, error_message=error_message)

    # =========================================================================
    # Run Lock
    # =========================================================================

    def _acquire_lock(self) -> None:
        acquired = self.repos.sync_runs.acquire_lock(
            self.kind.value,
            self.holder,
            self.settings.sync_lock_ttl_seconds,
        )
        if not acquired:
            raise RunLockedError(self.kind.value, self.repos.sync_runs.lock_holder(self.kind.value))

    def _release_lock(self) -> None:
        self.repos.sync_runs.release_lock(self.kind.value, self.holder)

    # =========================================================================
    # Run envelope
    # =========================================================================

    async def run(self, **params: Any) -> R:
        """
        Run the engine under the run lock and record the outcome.

        Raises:
            RunLockedError: If another run of the same kind holds the lock
        """
        self._acquire_lock()
        try:
            self.run_id = self._start_sync(params)
            try:
                result = await self._execute(**params)
            except Exception as e:
                logger.error("%s sync failed: %s", self.kind.value, e)
                self._fail_sync(self.run_id, str(e))
                raise
            self._complete_sync(self.run_id, self._counters(result))
            return result
        finally:
            self._release_lock()

    @abstractmethod
    async def _execute(self, **params: Any) -> R:
        ...

    @abstractmethod
    def _counters(self, result: R) -> dict[str, int]:
        ...
