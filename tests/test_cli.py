"""
CLI tests. Sync commands run with --dry-run against the scripted gameinfo API.
"""

import pytest

from killboard_data import cli
from killboard_data.providers import gameinfo as gameinfo_module

from .conftest import kill_event, paged


@pytest.fixture(autouse=True)
def cli_env(monkeypatch, settings, make_client, gameinfo):
    monkeypatch.setattr(cli, "get_settings", lambda: settings)
    monkeypatch.setattr(gameinfo_module, "GameinfoClient", lambda s: make_client(s))
    gameinfo.route("/events", paged([kill_event(i, minute=i) for i in range(1, 8)]))
    gameinfo.route("/battles", paged([]))
    gameinfo.route("/events/guildfame", lambda request: [])
    return gameinfo


class TestParser:
    def test_no_command_prints_help(self, capsys):
        assert cli.main([]) == 0
        assert "killboard-data" in capsys.readouterr().out

    def test_rejects_unknown_range(self):
        with pytest.raises(SystemExit) as exc_info:
            cli.build_parser().parse_args(["sync-pvp", "--range", "year"])
        assert exc_info.value.code == 2

    def test_sync_pvp_flags(self):
        args = cli.build_parser().parse_args(["sync-pvp", "--kills", "300", "--battles", "0", "--dry-run"])
        assert args.kills == 300
        assert args.battles == 0
        assert args.dry_run is True
        assert args.range is None


class TestDryRun:
    def test_sync_pvp(self, capsys, cli_env):
        code = cli.main(["sync-pvp", "--dry-run", "--kills", "5", "--battles", "0", "--range", "week"])

        assert code == 0
        out = capsys.readouterr().out
        assert "PvP sync complete" in out
        assert "kills_inserted: 5" in out
        assert cli_env.calls["/battles"] == 0

    def test_sync_pvp_defaults(self, capsys, cli_env):
        assert cli.main(["sync-pvp", "--dry-run"]) == 0

        assert "kills_inserted: 7" in capsys.readouterr().out
        assert cli_env.requests[-1].url.params["range"] == "day"

    def test_sync_guilds(self, capsys):
        assert cli.main(["sync-guilds", "--dry-run"]) == 0
        assert "guilds_processed: 0" in capsys.readouterr().out
