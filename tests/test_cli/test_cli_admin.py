"""CLI tests for the config and exclusions groups."""

from __future__ import annotations

import json

import httpx
import pytest

from restcache import __version__
from restcache.app import app
from restcache.config import load_global_config


@pytest.fixture(autouse=True)
def _isolated(isolated_config):
    return isolated_config


class TestRoot:
    def test_version(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--version"])
        assert result.exit_code == 0
        assert f"restcache {__version__}" in result.output

    def test_help_lists_groups(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--help"])
        for name in ("fetch", "lookup", "stats", "jobs", "config", "exclusions"):
            assert name in result.output


# ---------------------------------------------------------------------------
# config
# ---------------------------------------------------------------------------


class TestConfigCommands:
    def test_show(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--json", "--quiet", "config", "show"])
        assert result.exit_code == 0, result.output
        data = json.loads(result.stdout)
        assert data["jobs"]["trash"]["batch_limit"] == 1000
        assert data["logging"]["mode"] == "off"

    def test_show_effective(self, cli_runner, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RESTCACHE_LOG_MODE", "store")
        result = cli_runner.invoke(app, ["--json", "--quiet", "config", "show", "--effective"])
        assert json.loads(result.stdout)["logging"]["mode"] == "store"

    @pytest.mark.parametrize(
        "key, value, expected",
        [
            ("jobs.refresh.interval_minutes", "10", 10),
            ("cache.only_cache_200", "yes", True),
            ("cache.exclusions", "a.io, b.io", ["a.io", "b.io"]),
            ("cache.error_ttl_seconds", "null", None),
            ("cache_dir", "/tmp/restcache-store", "/tmp/restcache-store"),
            ("logging.mode", "file", "file"),
        ],
    )
    def test_set(self, cli_runner, key: str, value: str, expected) -> None:
        result = cli_runner.invoke(app, ["config", "set", key, value])
        assert result.exit_code == 0, result.output

        stored = load_global_config().model_dump(mode="json")
        for part in key.split("."):
            stored = stored[part]
        assert stored == expected

    def test_set_nonsense_interval_falls_back(self, cli_runner) -> None:
        cli_runner.invoke(app, ["config", "set", "jobs.expired.interval_hours", "-4"])
        assert load_global_config().jobs.expired.interval_hours == 1

    @pytest.mark.parametrize("key", ["nope", "jobs.nope", "jobs.refresh.nope", "jobs"])
    def test_set_unknown_key(self, cli_runner, key: str) -> None:
        assert cli_runner.invoke(app, ["config", "set", key, "1"]).exit_code == 2

    def test_set_non_integer(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["config", "set", "jobs.refresh.limit", "many"])
        assert result.exit_code == 2

    def test_reset_with_force(self, cli_runner) -> None:
        cli_runner.invoke(app, ["config", "set", "jobs.refresh.limit", "10"])
        result = cli_runner.invoke(app, ["--force", "config", "reset"])
        assert result.exit_code == 0
        assert load_global_config().jobs.refresh.limit == 2000

    def test_reset_declined(self, cli_runner) -> None:
        cli_runner.invoke(app, ["config", "set", "jobs.refresh.limit", "10"])
        cli_runner.invoke(app, ["config", "reset"], input="n\n")
        assert load_global_config().jobs.refresh.limit == 10


# ---------------------------------------------------------------------------
# exclusions
# ---------------------------------------------------------------------------


class TestExclusionCommands:
    def test_add_list_remove(self, cli_runner) -> None:
        assert cli_runner.invoke(app, ["exclusions", "add", "API.Example.com"]).exit_code == 0
        assert load_global_config().cache.exclusions == ["api.example.com"]

        listed = cli_runner.invoke(app, ["--plain", "exclusions", "list"])
        assert listed.stdout.splitlines() == ["Host", "api.example.com"]

        assert cli_runner.invoke(app, ["exclusions", "remove", "api.example.com"]).exit_code == 0
        assert load_global_config().cache.exclusions == []

    def test_add_twice(self, cli_runner) -> None:
        cli_runner.invoke(app, ["exclusions", "add", "a.io"])
        cli_runner.invoke(app, ["exclusions", "add", "a.io"])
        assert load_global_config().cache.exclusions == ["a.io"]

    def test_remove_unknown(self, cli_runner) -> None:
        assert cli_runner.invoke(app, ["exclusions", "remove", "a.io"]).exit_code == 1

    def test_excluded_host_is_not_cached(self, cli_runner, network, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(httpx, "HTTPTransport", lambda **kwargs: network.transport())
        cli_runner.invoke(app, ["exclusions", "add", "api.example.com"])

        cli_runner.invoke(app, ["--quiet", "fetch", "https://api.example.com/x"])
        cli_runner.invoke(app, ["--quiet", "fetch", "https://api.example.com/x"])

        assert len(network.calls) == 2
        assert cli_runner.invoke(app, ["lookup", "https://api.example.com/x"]).exit_code == 1
