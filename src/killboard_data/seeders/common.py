"""
Shared result types returned by the sync engines.
"""

from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


@dataclass
class IngestResult:
    """Result of a PvP ingestion run."""

    fetched: int = 0
    inserted: int = 0
    duplicates: int = 0
    errors: int = 0
    kills_inserted: int = 0
    battles_inserted: int = 0
    invalid: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


@dataclass
class AggregationResult:
    """Result of a meta build aggregation run."""

    events_processed: int = 0
    builds_found: int = 0
    builds_written: int = 0
    failed_batches: int = 0

    def to_dict(self) -> dict[str, int]:
        return asdict(self)


class GuildState(str, Enum):
    """Per-guild progress through one guild sync run."""

    QUEUED = "QUEUED"
    FETCHING_PROFILE = "FETCHING_PROFILE"
    FETCHING_MEMBERS = "FETCHING_MEMBERS"
    FETCHING_BATTLES = "FETCHING_BATTLES"
    DONE = "DONE"
    ERROR = "ERROR"


@dataclass
class GuildSyncResult:
    """Result of a guild intelligence run."""

    guilds_processed: int = 0
    members_inserted: int = 0
    rankings_inserted: int = 0
    battles_recorded: int = 0
    errors: int = 0
    states: dict[str, GuildState] = field(default_factory=dict)

    def counters(self) -> dict[str, int]:
        return {
            "guilds_processed": self.guilds_processed,
            "members_inserted": self.members_inserted,
            "rankings_inserted": self.rankings_inserted,
            "battles_recorded": self.battles_recorded,
            "errors": self.errors,
        }

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.counters(),
            "states": {guild_id: state.value for guild_id, state in self.states.items()},
        }
