"""
Tests for inbound gameinfo payload validation.
"""

from datetime import timedelta

import pytest

from killboard_data.core.errors import SchemaError
from killboard_data.core.schemas import (
    BattlePayload,
    GuildEventPayload,
    GuildProfilePayload,
    KillEventPayload,
    parse_many,
    parse_one,
)

from .conftest import battle, equipment, guild_profile, kill_event, player


class TestKillEventPayload:
    def test_upstream_keys_are_renamed(self):
        raw = kill_event(
            42,
            killer=player("K1", name="Killer", guild_id="G1", guild_name="Red",
                          gear=equipment("T6_MAIN_SWORD@3", "T6_ARMOR_PLATE_SET1")),
            fame=12345,
            battle_id=777,
        )

        event = KillEventPayload.model_validate(raw)

        assert event.event_id == 42
        assert event.total_fame == 12345
        assert event.battle_id == 777
        assert event.killer.name == "Killer"
        assert event.killer.guild_id == "G1"
        assert event.killer.equipment.main_hand.type == "T6_MAIN_SWORD@3"

    def test_blank_guild_becomes_none(self):
        event = KillEventPayload.model_validate(kill_event(1, victim=player("V1", guild_id="")))
        assert event.victim.guild_id is None
        assert event.victim.alliance_name is None

    def test_zero_battle_id_means_no_battle(self):
        event = KillEventPayload.model_validate(kill_event(1, battle_id=0))
        assert event.battle_id is None

    def test_nanosecond_timestamp_is_accepted(self):
        event = KillEventPayload.model_validate(kill_event(1, minute=7))
        assert event.timestamp.minute == 7
        assert event.timestamp.microsecond == 123456
        assert event.timestamp.utcoffset() == timedelta(0)

    def test_missing_killer_is_invalid(self):
        raw = kill_event(1)
        del raw["Killer"]
        with pytest.raises(SchemaError):
            parse_one(KillEventPayload, raw)

    def test_negative_fame_is_invalid(self):
        with pytest.raises(SchemaError):
            parse_one(KillEventPayload, kill_event(1, fame=-5))

    def test_equipment_snapshot_keeps_upstream_slot_names(self):
        event = KillEventPayload.model_validate(
            kill_event(1, killer=player("K1", gear=equipment("T4_MAIN_AXE", Head="T4_HEAD_CLOTH_SET1")))
        )
        snapshot = event.killer.equipment_snapshot()

        assert snapshot["MainHand"]["Type"] == "T4_MAIN_AXE"
        assert snapshot["Head"]["Type"] == "T4_HEAD_CLOTH_SET1"
        assert "Armor" not in snapshot

    def test_inventory_snapshot_keeps_empty_slots(self):
        event = KillEventPayload.model_validate(kill_event(1))
        inventory = event.victim.inventory_snapshot()

        assert inventory[0] is None
        assert inventory[1]["Type"] == "T4_POTION_HEAL"


class TestBattlePayload:
    def test_total_players_counts_both_sides(self):
        parsed = BattlePayload.model_validate(battle(9, side_a=3, side_b=2))

        assert parsed.total_players == 5
        assert len(parsed.roster_snapshot()["a"]) == 3

    def test_empty_roster_defaults(self):
        raw = battle(9)
        del raw["players"]
        assert BattlePayload.model_validate(raw).total_players == 0


class TestGuildPayloads:
    def test_fame_ratio(self):
        profile = GuildProfilePayload.model_validate(guild_profile("G1", kill_fame=300, death_fame=100))
        assert profile.fame_ratio == 3.0

    def test_fame_ratio_undefined_without_deaths(self):
        profile = GuildProfilePayload.model_validate(guild_profile("G1", death_fame=0))
        assert profile.fame_ratio is None

    def test_null_fame_defaults_to_zero(self):
        raw = guild_profile("G1")
        raw["killFame"] = None
        assert GuildProfilePayload.model_validate(raw).kill_fame == 0

    def test_guild_event_without_sides(self):
        event = GuildEventPayload.model_validate({
            "EventId": 5,
            "TimeStamp": "2025-01-15T12:00:00Z",
            "TotalVictimKillFame": 100,
            "BattleId": 3,
        })
        assert event.killer is None
        assert event.battle_id == 3


class TestParseMany:
    def test_rejects_non_array(self):
        with pytest.raises(SchemaError, match="expected a JSON array"):
            parse_many(KillEventPayload, {"error": "maintenance"})

    def test_skips_and_counts_invalid_items(self):
        broken = kill_event(2)
        del broken["TimeStamp"]

        result = parse_many(KillEventPayload, [kill_event(1), broken, kill_event(3)])

        assert [e.event_id for e in result.items] == [1, 3]
        assert result.invalid == 1

    def test_empty_array(self):
        result = parse_many(BattlePayload, [])
        assert result.items == []
        assert result.invalid == 0
