"""
Declarative schemas for inbound gameinfo payloads.

Each model validates the fields the pipeline depends on, fills defaults
for optional ones and renames upstream PascalCase/camelCase keys into
our snake_case names (aliases carry the upstream spelling).

Granularity of failures:
- parse_many(): a payload that is not a JSON array raises SchemaError
  (the whole fetch is unusable); items that fail validation are skipped
  and counted in ParseResult.invalid.
- parse_one(): an invalid object raises SchemaError.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import Annotated, Any, Generic, Optional, TypeVar

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError

from .errors import SchemaError

logger = logging.getLogger(__name__)


def _blank_to_none(value: Any) -> Any:
    """Upstream sends "" for 'no guild' / 'no alliance'."""
    if isinstance(value, str) and not value.strip():
        return None
    return value


def _none_to_zero(value: Any) -> Any:
    return 0 if value is None else value


def _zero_to_none(value: Any) -> Any:
    return None if value in (0, "0") else value


_FRACTION = re.compile(r"(\.\d{6})\d+")


def _trim_fraction(value: Any) -> Any:
    """Gameinfo timestamps carry nanoseconds; datetime holds microseconds."""
    if isinstance(value, str):
        return _FRACTION.sub(r"\1", value, count=1)
    return value


OptStr = Annotated[Optional[str], BeforeValidator(_blank_to_none)]
Fame = Annotated[int, BeforeValidator(_none_to_zero)]
Timestamp = Annotated[datetime, BeforeValidator(_trim_fraction)]


class _Payload(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")


# =============================================================================
# Kill events
# =============================================================================


class EquipmentItem(_Payload):
    """One equipped or carried item."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    type: str = Field(alias="Type")
    count: Optional[int] = Field(default=None, alias="Count")
    quality: Optional[int] = Field(default=None, alias="Quality")


class Equipment(_Payload):
    """Equipment snapshot keyed by slot."""

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    main_hand: Optional[EquipmentItem] = Field(default=None, alias="MainHand")
    off_hand: Optional[EquipmentItem] = Field(default=None, alias="OffHand")
    head: Optional[EquipmentItem] = Field(default=None, alias="Head")
    armor: Optional[EquipmentItem] = Field(default=None, alias="Armor")
    shoes: Optional[EquipmentItem] = Field(default=None, alias="Shoes")
    bag: Optional[EquipmentItem] = Field(default=None, alias="Bag")
    cape: Optional[EquipmentItem] = Field(default=None, alias="Cape")
    mount: Optional[EquipmentItem] = Field(default=None, alias="Mount")
    potion: Optional[EquipmentItem] = Field(default=None, alias="Potion")
    food: Optional[EquipmentItem] = Field(default=None, alias="Food")

    def snapshot(self) -> dict[str, Any]:
        """Upstream-shaped dict for JSONB storage (slot names as sent)."""
        return self.model_dump(by_alias=True, exclude_none=True)


class PlayerPayload(_Payload):
    """Killer, victim or participant as embedded in an event."""

    id: str = Field(alias="Id")
    name: str = Field(alias="Name")
    guild_id: OptStr = Field(default=None, alias="GuildId")
    guild_name: OptStr = Field(default=None, alias="GuildName")
    alliance_id: OptStr = Field(default=None, alias="AllianceId")
    alliance_name: OptStr = Field(default=None, alias="AllianceName")
    average_item_power: Optional[float] = Field(default=None, alias="AverageItemPower")
    damage_done: Optional[float] = Field(default=None, alias="DamageDone")
    support_healing_done: Optional[float] = Field(default=None, alias="SupportHealingDone")
    equipment: Optional[Equipment] = Field(default=None, alias="Equipment")
    inventory: list[Optional[EquipmentItem]] = Field(default_factory=list, alias="Inventory")

    def equipment_snapshot(self) -> Optional[dict[str, Any]]:
        return self.equipment.snapshot() if self.equipment else None

    def inventory_snapshot(self) -> list[Optional[dict[str, Any]]]:
        return [
            item.model_dump(by_alias=True, exclude_none=True) if item else None
            for item in self.inventory
        ]

    def snapshot(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class KillEventPayload(_Payload):
    """A single PvP death record from GET /events."""

    event_id: int = Field(alias="EventId")
    timestamp: Timestamp = Field(alias="TimeStamp")
    killer: PlayerPayload = Field(alias="Killer")
    victim: PlayerPayload = Field(alias="Victim")
    total_fame: int = Field(alias="TotalVictimKillFame", ge=0)
    location: OptStr = Field(default=None, alias="Location")
    battle_id: Annotated[Optional[int], BeforeValidator(_zero_to_none)] = Field(
        default=None, alias="BattleId"
    )
    participants: list[PlayerPayload] = Field(default_factory=list, alias="Participants")
    number_of_participants: Optional[int] = Field(default=None, alias="numberOfParticipants")


# =============================================================================
# Battles
# =============================================================================


class BattleRoster(_Payload):
    a: list[PlayerPayload] = Field(default_factory=list)
    b: list[PlayerPayload] = Field(default_factory=list)


class BattlePayload(_Payload):
    """A clustered engagement from GET /battles."""

    id: int
    name: OptStr = None
    start_time: Timestamp = Field(alias="startTime")
    end_time: Timestamp = Field(alias="endTime")
    total_kills: int = Field(alias="totalKills")
    total_fame: int = Field(alias="totalFame")
    players: BattleRoster = Field(default_factory=BattleRoster)

    @property
    def total_players(self) -> int:
        return len(self.players.a) + len(self.players.b)

    def roster_snapshot(self) -> dict[str, Any]:
        return {
            "a": [p.snapshot() for p in self.players.a],
            "b": [p.snapshot() for p in self.players.b],
        }


# =============================================================================
# Guilds
# =============================================================================


class GuildProfilePayload(_Payload):
    """GET /guilds/{id}."""

    guild_id: str = Field(alias="Id")
    guild_name: str = Field(alias="Name")
    alliance_id: OptStr = Field(default=None, alias="AllianceId")
    alliance_name: OptStr = Field(default=None, alias="AllianceName")
    alliance_tag: OptStr = Field(default=None, alias="AllianceTag")
    member_count: Optional[int] = Field(default=None, alias="MemberCount")
    kill_fame: Fame = Field(default=0, alias="killFame")
    death_fame: Fame = Field(default=0, alias="DeathFame")
    attacks_won: Fame = Field(default=0, alias="AttacksWon")
    defenses_won: Fame = Field(default=0, alias="DefensesWon")
    founded_at: OptStr = Field(default=None, alias="Founded")
    founder_id: OptStr = Field(default=None, alias="FounderId")
    founder_name: OptStr = Field(default=None, alias="FounderName")

    @property
    def fame_ratio(self) -> Optional[float]:
        if self.kill_fame > 0 and self.death_fame > 0:
            return self.kill_fame / self.death_fame
        return None


class GuildMemberPayload(_Payload):
    """One entry of GET /guilds/{id}/members."""

    player_id: str = Field(alias="Id")
    player_name: str = Field(alias="Name")
    guild_id: OptStr = Field(default=None, alias="GuildId")
    guild_name: OptStr = Field(default=None, alias="GuildName")
    alliance_id: OptStr = Field(default=None, alias="AllianceId")
    alliance_name: OptStr = Field(default=None, alias="AllianceName")
    role: OptStr = Field(default=None, alias="Role")
    kill_fame: Fame = Field(default=0, alias="KillFame")
    death_fame: Fame = Field(default=0, alias="DeathFame")
    fame_ratio: Optional[float] = Field(default=None, alias="FameRatio")
    average_item_power: Optional[float] = Field(default=None, alias="AverageItemPower")
    join_date: OptStr = Field(default=None, alias="JoinDate")


class GuildFameEntryPayload(_Payload):
    """One entry of GET /events/guildfame."""

    guild_id: str = Field(alias="GuildId")
    guild_name: str = Field(alias="GuildName")
    alliance_id: OptStr = Field(default=None, alias="AllianceId")
    alliance_name: OptStr = Field(default=None, alias="AllianceName")
    alliance_tag: OptStr = Field(default=None, alias="AllianceTag")
    total: Fame = Field(default=0, alias="Total")
    rank: Optional[int] = Field(default=None, alias="Rank")


class GuildEventSide(_Payload):
    guild_id: OptStr = Field(default=None, alias="GuildId")
    guild_name: OptStr = Field(default=None, alias="GuildName")
    alliance_id: OptStr = Field(default=None, alias="AllianceId")
    alliance_name: OptStr = Field(default=None, alias="AllianceName")


class GuildEventPayload(_Payload):
    """Kill event as seen from GET /events?guildId=..., guild fields only."""

    event_id: int = Field(alias="EventId")
    timestamp: Timestamp = Field(alias="TimeStamp")
    total_fame: int = Field(alias="TotalVictimKillFame")
    location: OptStr = Field(default=None, alias="Location")
    killer: Optional[GuildEventSide] = Field(default=None, alias="Killer")
    victim: Optional[GuildEventSide] = Field(default=None, alias="Victim")
    battle_id: Annotated[Optional[int], BeforeValidator(_zero_to_none)] = Field(
        default=None, alias="BattleId"
    )


# =============================================================================
# Parsing helpers
# =============================================================================

M = TypeVar("M", bound=BaseModel)


@dataclass
class ParseResult(Generic[M]):
    """Valid items plus the number of items that were skipped."""

    items: list[M] = field(default_factory=list)
    invalid: int = 0


def parse_many(model: type[M], payload: Any) -> ParseResult[M]:
    """
    Validate a JSON array of upstream objects.

    Raises:
        SchemaError: If the payload itself is not an array
    """
    if not isinstance(payload, list):
        raise SchemaError(model.__name__, f"expected a JSON array, got {type(payload).__name__}")

    result: ParseResult[M] = ParseResult()
    for index, raw in enumerate(payload):
        try:
            result.items.append(model.model_validate(raw))
        except ValidationError as e:
            result.invalid += 1
            logger.warning(
                "Skipping invalid %s at index %d: %s",
                model.__name__, index, e.errors()[0].get("msg") if e.errors() else e,
            )
    return result


def parse_one(model: type[M], payload: Any) -> M:
    """
    Validate a single upstream object.

    Raises:
        SchemaError: If the object does not match the model
    """
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise SchemaError(model.__name__, str(e)) from e
