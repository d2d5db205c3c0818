"""
API contract tests for the sync trigger API.

The app runs against in-memory repositories and the scripted gameinfo
transport via ``app.dependency_overrides``; no database is needed. The
lifespan is not entered, so the pool is never opened.
"""

from __future__ import annotations

import pytest
from starlette.testclient import TestClient

from killboard_data.api.dependencies import get_gameinfo_client, get_repos
from killboard_data.api.main import create_app
from killboard_data.api.routers.sync import parse_pvp_trigger
from killboard_data.core.config import get_settings

from .conftest import SYNC_SECRET, kill_event, paged

AUTH = {"Authorization": f"Bearer {SYNC_SECRET}"}


@pytest.fixture
def app(repos, settings, make_client, gameinfo):
    app = create_app()

    async def gameinfo_override():
        client = make_client()
        try:
            yield client
        finally:
            await client.close()

    app.dependency_overrides[get_settings] = lambda: settings
    app.dependency_overrides[get_repos] = lambda: repos
    app.dependency_overrides[get_gameinfo_client] = gameinfo_override

    gameinfo.route("/events", paged([kill_event(i, minute=i) for i in range(1, 4)]))
    gameinfo.route("/battles", paged([]))
    gameinfo.route("/events/guildfame", lambda request: [])
    return app


@pytest.fixture
def client(app):
    return TestClient(app)


# =========================================================================
# Health
# =========================================================================


class TestHealth:
    def test_health_needs_no_secret(self, client):
        r = client.get("/health")
        assert r.status_code == 200
        data = r.json()
        assert data["status"] == "healthy"
        assert "timestamp" in data


# =========================================================================
# Authorization
# =========================================================================


class TestAuthorization:
    @pytest.mark.parametrize("path", ["/sync/pvp", "/sync/guilds", "/sync/builds"])
    def test_missing_secret_is_rejected(self, client, repos, gameinfo, path):
        r = client.post(path)

        assert r.status_code == 401
        assert r.json()["error"]["code"] == "UNAUTHORIZED"
        assert repos.sync_runs.runs == {}
        assert gameinfo.requests == []

    def test_wrong_secret_is_rejected(self, client, repos):
        r = client.post("/sync/pvp", headers={"Authorization": "Bearer nope"})

        assert r.status_code == 401
        assert repos.kill_events.count() == 0

    def test_unset_secret_rejects_everything(self, app, client, settings):
        app.dependency_overrides[get_settings] = lambda: settings.model_copy(update={"sync_secret": None})

        r = client.post("/sync/pvp", headers=AUTH)

        assert r.status_code == 401

    def test_runs_listing_requires_secret(self, client):
        assert client.get("/sync/runs").status_code == 401

    def test_bearer_token_accepted(self, client):
        r = client.post("/sync/pvp", headers=AUTH)
        assert r.status_code == 200

    def test_cron_header_accepted(self, client):
        r = client.post("/sync/pvp", headers={"x-cron-secret": SYNC_SECRET})
        assert r.status_code == 200


# =========================================================================
# PvP trigger
# =========================================================================


class TestPvPTrigger:
    def test_defaults_without_body(self, client, repos):
        r = client.post("/sync/pvp", headers=AUTH)

        assert r.status_code == 200
        data = r.json()
        assert data["success"] is True
        assert data["kills_target"] == 100
        assert data["battles_target"] == 50
        assert data["range"] == "day"
        assert data["kills_inserted"] == 3
        assert repos.kill_events.count() == 3
        assert repos.sync_runs.runs[data["run_id"]].success is True

    def test_body_overrides(self, client, gameinfo):
        r = client.post(
            "/sync/pvp",
            headers=AUTH,
            json={"killsTarget": 2, "battlesTarget": 0, "range": "week"},
        )

        data = r.json()
        assert data["kills_target"] == 2
        assert data["battles_target"] == 0
        assert data["range"] == "week"
        assert data["kills_inserted"] == 2
        assert gameinfo.calls["/battles"] == 0

    def test_malformed_body_uses_defaults(self, client):
        r = client.post(
            "/sync/pvp",
            headers={**AUTH, "Content-Type": "application/json"},
            content=b"{not json",
        )

        assert r.status_code == 200
        assert r.json()["kills_target"] == 100

    def test_locked_run_returns_409(self, client, repos):
        repos.sync_runs.acquire_lock("pvp", "cron-host:42:beef", 900)

        r = client.post("/sync/pvp", headers=AUTH)

        assert r.status_code == 409
        error = r.json()["error"]
        assert error["code"] == "RUN_LOCKED"
        assert "cron-host:42:beef" in error["message"]


class TestParsePvPTrigger:
    @pytest.mark.parametrize("body", [
        None,
        [],
        "text",
        {},
        {"killsTarget": 0, "battlesTarget": -1, "range": "year"},
        {"killsTarget": "300", "battlesTarget": 1.5, "range": None},
        {"killsTarget": True, "battlesTarget": False},
    ])
    def test_invalid_values_fall_back(self, body, settings):
        assert parse_pvp_trigger(body, settings) == {
            "kills_target": 100,
            "battles_target": 50,
            "range": "day",
        }

    def test_valid_values_are_kept(self, settings):
        params = parse_pvp_trigger({"killsTarget": 1, "battlesTarget": 0, "range": "month"}, settings)
        assert params == {"kills_target": 1, "battles_target": 0, "range": "month"}


# =========================================================================
# Guilds, builds and runs
# =========================================================================


class TestOtherTriggers:
    def test_guild_sync(self, client, repos):
        r = client.post("/sync/guilds", headers=AUTH)

        assert r.status_code == 200
        data = r.json()
        assert data["success"] is True
        assert data["guilds_processed"] == 0
        assert data["states"] == {}

    def test_build_aggregation(self, client):
        r = client.post("/sync/builds", headers=AUTH)

        assert r.status_code == 200
        data = r.json()
        assert data["rules_version"] == "2025.1"
        assert data["events_processed"] == 0

    def test_runs_listing(self, client):
        client.post("/sync/pvp", headers=AUTH)
        client.post("/sync/builds", headers=AUTH)

        r = client.get("/sync/runs", headers=AUTH)
        runs = r.json()["runs"]
        assert [run["kind"] for run in runs] == ["builds", "pvp"]
        assert runs[1]["counters"]["kills_inserted"] == 3
        assert runs[1]["duration_seconds"] >= 0

        r = client.get("/sync/runs", headers=AUTH, params={"kind": "pvp", "limit": 5})
        assert [run["kind"] for run in r.json()["runs"]] == ["pvp"]

    def test_runs_limit_is_validated(self, client):
        r = client.get("/sync/runs", headers=AUTH, params={"limit": 0})
        assert r.status_code == 422
