"""CLI tests for fetch, lookup, stats and the job commands."""

from __future__ import annotations

import json
from datetime import timedelta

import httpx
import pytest

from restcache.app import app
from restcache.config import get_data_dir, resolve_config, store_dir
from restcache.expiration import utcnow
from restcache.keys import normalize_url
from restcache.store import DiskCacheStore

URL = "https://api.example.com/things?b=2&a=1"


@pytest.fixture(autouse=True)
def offline(isolated_config, network, monkeypatch: pytest.MonkeyPatch):
    """Route every client the CLI builds to the mock network."""
    monkeypatch.setattr(httpx, "HTTPTransport", lambda **kwargs: network.transport())
    return network


def _json(result) -> object:
    assert result.exit_code == 0, result.output
    return json.loads(result.stdout)


def _expire_and_flag(url: str) -> None:
    with DiskCacheStore(store_dir(resolve_config())) as store:
        key = normalize_url(url).key
        record = store.get(key)
        store.upsert(
            record.model_copy(
                update={
                    "expires_at": utcnow() - timedelta(hours=1),
                    "needs_refresh": True,
                    "pending_args": b'{"method": "GET"}',
                }
            )
        )


# ---------------------------------------------------------------------------
# fetch
# ---------------------------------------------------------------------------


class TestFetch:
    def test_second_fetch_served_from_cache(self, cli_runner, network) -> None:
        first = cli_runner.invoke(app, ["--json", "--quiet", "fetch", URL])
        second = cli_runner.invoke(app, ["--plain", "fetch", URL])

        assert _json(first) == {"call": 1}
        assert second.exit_code == 0, second.output
        assert "HTTP 200 from cache" in second.output
        assert len(network.calls) == 1

    def test_verbose_shows_cache_key(self, cli_runner) -> None:
        quiet = cli_runner.invoke(app, ["--plain", "--no-color", "fetch", URL])
        verbose = cli_runner.invoke(app, ["--plain", "--no-color", "--verbose", "fetch", URL])

        assert "[debug]" not in quiet.output
        assert f"[debug] Cache key {normalize_url(URL).key}" in verbose.output

    def test_no_cache(self, cli_runner, network) -> None:
        cli_runner.invoke(app, ["--quiet", "fetch", "--no-cache", URL])
        cli_runner.invoke(app, ["--quiet", "fetch", "--no-cache", URL])
        assert len(network.calls) == 2

    def test_headers_sent(self, cli_runner, network) -> None:
        result = cli_runner.invoke(app, ["--quiet", "fetch", "-H", "X-Api-Key: secret", URL])
        assert result.exit_code == 0, result.output
        assert network.calls[0].headers["x-api-key"] == "secret"

    def test_bad_header(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["fetch", "-H", "no-colon", URL])
        assert result.exit_code == 2

    def test_include_shows_status(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--plain", "--quiet", "fetch", "-i", URL])
        assert result.exit_code == 0, result.output
        assert "status_code\t200" in result.stdout

    def test_save_to_file(self, cli_runner, isolated_config, network) -> None:
        target = isolated_config / "body.json"
        result = cli_runner.invoke(app, ["--quiet", "fetch", "--save", str(target), URL])
        assert result.exit_code == 0, result.output
        assert json.loads(target.read_text()) == {"call": 1}
        cli_runner.invoke(app, ["--quiet", "fetch", URL])
        assert len(network.calls) == 2

    def test_network_failure_exit_code(self, cli_runner, network) -> None:
        network.fail_urls.add("https://api.example.com/down")
        result = cli_runner.invoke(app, ["fetch", "https://api.example.com/down"])
        assert result.exit_code == 6


# ---------------------------------------------------------------------------
# lookup / stats
# ---------------------------------------------------------------------------


class TestLookupAndStats:
    def test_lookup_after_fetch(self, cli_runner) -> None:
        cli_runner.invoke(app, ["--quiet", "fetch", "--tag", "things", "--expires", "2h", URL])
        data = _json(cli_runner.invoke(app, ["--json", "--quiet", "lookup", "https://api.example.com/things?a=1&b=2"]))

        assert data["key"] == normalize_url(URL).key
        assert data["url"] == "https://api.example.com/things?a=1&b=2"
        assert data["state"] == "fresh"
        assert data["tag"] == "things"
        assert data["needs_refresh"] is False

    def test_lookup_does_not_flag(self, cli_runner) -> None:
        cli_runner.invoke(app, ["--quiet", "fetch", URL])
        with DiskCacheStore(store_dir(resolve_config())) as store:
            key = normalize_url(URL).key
            store.upsert(store.get(key).model_copy(update={"expires_at": utcnow() - timedelta(hours=1)}))

        data = _json(cli_runner.invoke(app, ["--json", "--quiet", "lookup", URL]))
        assert data["state"] == "stale"
        assert data["needs_refresh"] is False

    @pytest.mark.parametrize("url", ["https://api.example.com/s?q=a b", "https://api.example.com/s?q=caf\xe9"])
    def test_lookup_finds_url_httpx_reencodes(self, cli_runner, url: str) -> None:
        assert cli_runner.invoke(app, ["--quiet", "fetch", url]).exit_code == 0
        data = _json(cli_runner.invoke(app, ["--json", "--quiet", "lookup", url]))
        assert data["state"] == "fresh"

    def test_lookup_missing(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["lookup", "https://api.example.com/unknown"])
        assert result.exit_code == 1

    def test_stats(self, cli_runner) -> None:
        cli_runner.invoke(app, ["--quiet", "fetch", URL])
        cli_runner.invoke(app, ["--quiet", "fetch", "https://api.example.com/other"])
        _expire_and_flag(URL)

        data = _json(cli_runner.invoke(app, ["--json", "--quiet", "stats"]))
        assert data["records"] == 2
        assert data["stale_queued"] == 1
        assert data["expired"] == 1


# ---------------------------------------------------------------------------
# jobs
# ---------------------------------------------------------------------------


class TestJobs:
    def test_refresh(self, cli_runner, network) -> None:
        cli_runner.invoke(app, ["--quiet", "fetch", URL])
        _expire_and_flag(URL)

        summary = _json(cli_runner.invoke(app, ["--json", "--quiet", "jobs", "refresh"]))

        assert summary["attempted"] == 1
        assert summary["succeeded"] == 1
        assert len(network.calls) == 2
        data = _json(cli_runner.invoke(app, ["--json", "--quiet", "lookup", URL]))
        assert data["state"] == "fresh"

    def test_refresh_failure_sets_exit_code(self, cli_runner, network) -> None:
        cli_runner.invoke(app, ["--quiet", "fetch", URL])
        _expire_and_flag(URL)
        network.fail_urls.add("https://api.example.com/things?a=1&b=2")

        result = cli_runner.invoke(app, ["--json", "jobs", "refresh"])
        assert result.exit_code == 1

    def test_expired_and_trash(self, cli_runner) -> None:
        assert _json(cli_runner.invoke(app, ["--json", "--quiet", "jobs", "expired"]))["deleted"] == 0
        assert _json(cli_runner.invoke(app, ["--json", "--quiet", "jobs", "trash"]))["batches"] == 1

    def test_trash_disabled(self, cli_runner, monkeypatch: pytest.MonkeyPatch) -> None:
        cli_runner.invoke(app, ["--quiet", "config", "set", "jobs.trash.older_than_days", "0"])
        result = cli_runner.invoke(app, ["--json", "jobs", "trash"])
        assert result.exit_code == 0
        assert "did not run" in result.output

    def test_run_once(self, cli_runner) -> None:
        result = cli_runner.invoke(app, ["--plain", "jobs", "run", "--once"])
        assert result.exit_code == 0, result.output
        lines = result.stdout.splitlines()
        assert lines[0].split("\t")[0] == "Job"
        assert [line.split("\t")[0] for line in lines[1:]] == ["refresh", "expired", "trash"]

    def test_logs_in_file_mode(self, cli_runner, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("RESTCACHE_LOG_MODE", "file")
        cli_runner.invoke(app, ["--quiet", "jobs", "refresh"])

        result = cli_runner.invoke(app, ["--plain", "jobs", "logs", "refresh"])
        assert result.exit_code == 0, result.output
        assert "All cache looks to be up to date." in result.stdout
        assert (get_data_dir() / "logs").is_dir()

    def test_logs_bad_date(self, cli_runner) -> None:
        assert cli_runner.invoke(app, ["jobs", "logs", "refresh", "--day", "yesterday"]).exit_code == 2
