"""
PostgreSQL tests for killboard-data.

These tests verify the SQL behind the repository contracts:
- Migrations apply idempotently
- ON CONFLICT dedup of kill events
- Version-checked stat updates
- Expiring run locks and JSONB audit rows

Rows are keyed by random ids and removed afterwards.
"""

import os
import uuid
from datetime import datetime, timezone

import pytest

from killboard_data.core.models import GuildPvPStat, PlayerPvPStat
from killboard_data.core.schemas import GuildProfilePayload, KillEventPayload
from killboard_data.core.types import ALL_TABLES

from .conftest import equipment, guild_profile, kill_event, player

# Skip all tests if DATABASE_URL is not set
pytestmark = pytest.mark.skipif(
    not os.getenv("DATABASE_URL") and not os.getenv("NEON_DATABASE_URL"),
    reason="DATABASE_URL environment variable not set",
)


@pytest.fixture(scope="module")
def db():
    from killboard_data.pg_connection import PostgresDB
    from killboard_data.schema import init_database

    url = os.getenv("DATABASE_URL") or os.getenv("NEON_DATABASE_URL")
    database = PostgresDB(connection_string=url)
    init_database(database)
    yield database
    database.close()


@pytest.fixture
def repos(db):
    from killboard_data.repositories import get_repositories

    return get_repositories(db)


def random_event_id() -> int:
    return 10**12 + uuid.uuid4().int % 10**9


class TestPostgresDBConnection:
    def test_fetchone_returns_dict(self, db):
        assert db.fetchone("SELECT 1 AS test") == {"test": 1}

    def test_transaction_rolls_back(self, db):
        key = f"test_{uuid.uuid4().hex}"
        with pytest.raises(RuntimeError):
            with db.transaction() as conn:
                conn.execute("INSERT INTO meta (key, value) VALUES (%s, 'x')", (key,))
                raise RuntimeError("abort")
        assert db.get_meta(key) is None


class TestSchema:
    def test_migrations_are_idempotent(self, db):
        from killboard_data.schema import get_schema_version, init_database, run_migrations

        assert init_database(db) == 0
        assert run_migrations(db, force=True) == 4
        assert get_schema_version(db) == "4"

    def test_tables_exist(self, db):
        from killboard_data.schema import list_tables

        assert set(ALL_TABLES) <= set(list_tables(db))


class TestKillEvents:
    def test_insert_is_deduplicated(self, db, repos):
        event_id = random_event_id()
        event = KillEventPayload.model_validate(
            kill_event(event_id, killer=player("K", gear=equipment("T4_MAIN_SWORD", "T4_ARMOR_PLATE_SET1")))
        )
        try:
            assert repos.kill_events.insert(event, "Americas") is True
            assert repos.kill_events.insert(event, "Americas") is False
            assert repos.kill_events.exists(event_id)

            row = db.fetchone("SELECT killer_equipment FROM kill_events WHERE event_id = %s", (event_id,))
            assert row["killer_equipment"]["MainHand"]["Type"] == "T4_MAIN_SWORD"
        finally:
            db.execute("DELETE FROM kill_events WHERE event_id = %s", (event_id,))

    def test_failed_unit_of_work_rolls_back_the_event(self, db, repos):
        event_id = random_event_id()
        event = KillEventPayload.model_validate(kill_event(event_id))
        try:
            with pytest.raises(RuntimeError):
                with repos.atomic():
                    assert repos.kill_events.insert(event, "Americas") is True
                    assert repos.kill_events.exists(event_id)
                    raise RuntimeError("stat write failed")

            assert not repos.kill_events.exists(event_id)
        finally:
            db.execute("DELETE FROM kill_events WHERE event_id = %s", (event_id,))


class TestVersionedStats:
    def test_compare_and_swap(self, db, repos):
        player_id = f"test-{uuid.uuid4().hex}"
        stat = PlayerPvPStat(player_id=player_id, player_name="Tester", total_kills=1)
        try:
            assert repos.player_stats.create(stat) is True
            assert repos.player_stats.create(stat) is False

            current = repos.player_stats.get(player_id)
            assert current.version == 1

            bumped = current.model_copy(update={"total_kills": 2})
            assert repos.player_stats.update(bumped, expected_version=1) is True
            assert repos.player_stats.update(bumped, expected_version=1) is False

            final = repos.player_stats.get(player_id)
            assert final.total_kills == 2
            assert final.version == 2
        finally:
            db.execute("DELETE FROM player_pvp_stats WHERE player_id = %s", (player_id,))


class TestSyncRuns:
    def test_lock_is_exclusive_until_released(self, db, repos):
        kind = f"test-{uuid.uuid4().hex[:8]}"
        try:
            assert repos.sync_runs.acquire_lock(kind, "holder-a", 60) is True
            assert repos.sync_runs.acquire_lock(kind, "holder-b", 60) is False
            assert repos.sync_runs.lock_holder(kind) == "holder-a"

            repos.sync_runs.release_lock(kind, "holder-b")
            assert repos.sync_runs.lock_holder(kind) == "holder-a"

            repos.sync_runs.release_lock(kind, "holder-a")
            assert repos.sync_runs.acquire_lock(kind, "holder-b", 60) is True
        finally:
            db.execute("DELETE FROM sync_locks WHERE kind = %s", (kind,))

    def test_expired_lock_can_be_taken_over(self, db, repos):
        kind = f"test-{uuid.uuid4().hex[:8]}"
        try:
            db.execute(
                "INSERT INTO sync_locks (kind, holder, expires_at) VALUES (%s, 'stale', NOW() - INTERVAL '1 minute')",
                (kind,),
            )
            assert repos.sync_runs.lock_holder(kind) is None
            assert repos.sync_runs.acquire_lock(kind, "fresh", 60) is True
            assert repos.sync_runs.lock_holder(kind) == "fresh"
        finally:
            db.execute("DELETE FROM sync_locks WHERE kind = %s", (kind,))

    def test_run_audit_round_trip(self, db, repos):
        kind = f"test-{uuid.uuid4().hex[:8]}"
        try:
            run_id = repos.sync_runs.start(kind, {"kills_target": 10})
            repos.sync_runs.finish(run_id, {"inserted": 4}, success=True)

            (run,) = repos.sync_runs.recent(5, kind)
            assert run.id == run_id
            assert run.params == {"kills_target": 10}
            assert run.counters == {"inserted": 4}
            assert run.success is True
            assert run.duration_seconds >= 0
        finally:
            db.execute("DELETE FROM sync_runs WHERE kind = %s", (kind,))


class TestGuildIntel:
    def test_snapshot_keeps_founder_details(self, db, repos):
        guild_id = f"test-{uuid.uuid4().hex}"
        profile = GuildProfilePayload.model_validate(guild_profile(guild_id))
        try:
            repos.guild_intel.insert_snapshot(profile, "Americas", datetime.now(timezone.utc))

            row = db.fetchone("SELECT * FROM guild_snapshots WHERE guild_id = %s", (guild_id,))
            assert row["founder_id"] == "F1"
            assert row["founder_name"] == "Founder"
            assert row["fame_ratio"] == pytest.approx(2.0)
        finally:
            db.execute("DELETE FROM guild_snapshots WHERE guild_id = %s", (guild_id,))

    def test_guild_stat_last_seen_round_trip(self, db, repos):
        guild_id = f"test-{uuid.uuid4().hex}"
        seen = datetime(2025, 1, 15, 12, 30, tzinfo=timezone.utc)
        try:
            assert repos.guild_stats.create(GuildPvPStat(guild_id=guild_id, guild_name="Red", last_seen_at=seen))
            assert repos.guild_stats.get(guild_id).last_seen_at == seen
        finally:
            db.execute("DELETE FROM guild_pvp_stats WHERE guild_id = %s", (guild_id,))
