"""Cache commands -- fetch through the cache, inspect records, manage exclusions.

``fetch`` sends a GET through :class:`~restcache.client.CachedClient` with
the user's configuration, so it reads and writes the same store the
background jobs maintain.  ``lookup`` and ``stats`` only read the store:
looking a record up here never flags it for refresh.
"""

from __future__ import annotations

import os
from typing import Any, Optional

import typer

from restcache.exceptions import RestCacheError
from restcache.exit_codes import EXIT_GENERIC_FAILURE, EXIT_INVALID_USAGE
from restcache.output import debug, error, format_response, info, print_table, success, warning

exclusions_app = typer.Typer(no_args_is_help=True)


def _parse_headers(values: Optional[list[str]]) -> dict[str, str]:
    headers: dict[str, str] = {}
    for value in values or []:
        name, sep, content = value.partition(":")
        if not sep or not name.strip():
            error(f"Invalid header {value!r}; expected 'Name: value'")
            raise typer.Exit(code=EXIT_INVALID_USAGE)
        headers[name.strip()] = content.strip()
    return headers


def fetch_command(
    url: str = typer.Argument(help="Absolute URL to GET."),
    header: Optional[list[str]] = typer.Option(
        None, "--header", "-H", help="Request header as 'Name: value'. Repeatable."
    ),
    expires: Optional[str] = typer.Option(
        None, "--expires", "-e", help="TTL: seconds, a duration like '10m' or '2h', or an ISO date."
    ),
    tag: str = typer.Option("", "--tag", help="Label stored with the record."),
    no_cache: bool = typer.Option(False, "--no-cache", help="Bypass the cache for this request."),
    update: bool = typer.Option(
        False, "--update", help="Store the response already queued for the next refresh."
    ),
    save: Optional[str] = typer.Option(
        None, "--save", help="Write the body to a file instead of stdout. Never cached."
    ),
    include: bool = typer.Option(False, "--include", "-i", help="Show status and headers."),
) -> None:
    """Send a GET request through the cache and print the response body.

    Example::

        restcache fetch https://api.example.com/things --expires 10m
        restcache fetch https://api.example.com/things -H "Accept: application/json"
    """
    from restcache.codec import FROM_CACHE
    from restcache.config import resolve_config
    from restcache.keys import normalize_url
    from restcache.runtime import Runtime

    headers = _parse_headers(header)
    cache: Any = "exclude" if no_cache else {"expires": expires, "tag": tag, "update": update}

    try:
        with Runtime(resolve_config()) as runtime:
            response = runtime.client.get(url, headers=headers, cache=cache, filename=save)
    except RestCacheError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    source = "cache" if response.extensions.get(FROM_CACHE) else "network"
    info(f"HTTP {response.status_code} from {source}")
    debug(f"Cache key {normalize_url(str(response.request.url)).key} for {response.request.url}")
    if include:
        format_response(
            {
                "status_code": response.status_code,
                "headers": dict(response.headers),
                "from_cache": source == "cache",
            }
        )
    if save:
        success(f"Saved {len(response.content)} bytes to {save}")
    else:
        format_response(response.text)


def lookup_command(
    url: str = typer.Argument(help="URL whose cache record to show."),
    body: bool = typer.Option(False, "--body", help="Print the cached body as well."),
) -> None:
    """Show the stored record for a URL without touching it.

    Example::

        restcache lookup "https://api.example.com/things?b=2&a=1"
    """
    from restcache.codec import deserialize_response
    from restcache.config import resolve_config, store_dir
    from restcache.expiration import is_expired, utcnow
    from restcache.keys import normalize_url, rebuild_url
    from restcache.store import DiskCacheStore

    try:
        normalized = normalize_url(url)
        with DiskCacheStore(store_dir(resolve_config())) as store:
            record = store.get(normalized.key)
    except RestCacheError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None

    if record is None:
        error(f"No cached record for {url} (key {normalized.key})")
        raise typer.Exit(code=EXIT_GENERIC_FAILURE)

    stale = record.needs_refresh or is_expired(record, utcnow())
    format_response(
        {
            "key": record.key,
            "url": rebuild_url(record.domain, record.path, record.query),
            "status_code": record.status_code,
            "state": "stale" if stale else "fresh",
            "expires_at": record.expires_at.isoformat(),
            "last_requested": record.last_requested.isoformat(),
            "needs_refresh": record.needs_refresh,
            "refresh_queued_args": record.pending_args is not None,
            "tag": record.tag,
            "payload_bytes": len(record.payload),
        }
    )
    if body:
        format_response(deserialize_response(record.payload).text)


def stats_command() -> None:
    """Show record counts and store size.

    Example::

        restcache stats --json
    """
    from restcache.config import resolve_config, store_dir
    from restcache.expiration import as_utc, utcnow
    from restcache.store import DiskCacheStore

    now = utcnow()
    try:
        with DiskCacheStore(store_dir(resolve_config())) as store:
            data = store.stats()
            everything = max(data["records"], 1)
            data["stale_queued"] = len(store.scan_where(lambda r: r.needs_refresh, everything))
            data["expired"] = len(
                store.scan_where(lambda r: as_utc(r.expires_at) < now, everything)
            )
    except RestCacheError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None
    format_response(data)


# ------------------------------------------------------------------ #
# Exclusions
# ------------------------------------------------------------------ #


def _warn_env_override() -> None:
    from restcache.config import ENV_EXCLUSIONS

    if os.environ.get(ENV_EXCLUSIONS) is not None:
        warning(f"{ENV_EXCLUSIONS} is set and overrides the saved exclusion list.")


@exclusions_app.command("list")
def exclusions_list() -> None:
    """List hosts whose requests are never cached."""
    from restcache.config import load_global_config

    _warn_env_override()
    hosts = load_global_config().cache.exclusions
    if not hosts:
        info("No excluded hosts.")
        return
    print_table(["Host"], [[host] for host in hosts], title="Excluded hosts")


@exclusions_app.command("add")
def exclusions_add(
    host: str = typer.Argument(help="Host name, e.g. api.example.com."),
) -> None:
    """Exclude a host from caching."""
    from restcache.config import load_global_config, save_global_config

    host = host.strip().lower()
    if not host:
        error("Host must not be empty")
        raise typer.Exit(code=EXIT_INVALID_USAGE)

    config = load_global_config()
    if host in config.cache.exclusions:
        info(f"{host} is already excluded.")
        return
    config.cache.exclusions.append(host)
    save_global_config(config)
    _warn_env_override()
    success(f"Excluded {host}")


@exclusions_app.command("remove")
def exclusions_remove(
    host: str = typer.Argument(help="Host name to cache again."),
) -> None:
    """Stop excluding a host."""
    from restcache.config import load_global_config, save_global_config

    host = host.strip().lower()
    config = load_global_config()
    if host not in config.cache.exclusions:
        error(f"{host} is not excluded")
        raise typer.Exit(code=EXIT_GENERIC_FAILURE)
    config.cache.exclusions.remove(host)
    save_global_config(config)
    _warn_env_override()
    success(f"Removed {host}")
