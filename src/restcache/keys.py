"""Cache key derivation from request URLs.

Every lookup and every write goes through :func:`normalize_url`, so two
requests that differ only in query-parameter order or in letter case land
on the same record.  The key is the md5 hex digest of the lowercased
``domain + path + query`` concatenation, where:

* ``domain`` is ``scheme://[user[:pass]@]host[:port]``, with the scheme and
  auth parts left out entirely when the URL has none;
* ``query`` is the raw query string split on ``&``, sorted as plain
  strings (not decoded key/value pairs), rejoined with ``&`` and followed by
  ``#fragment`` when the URL carries one.

No ``?`` separator is part of the hashed string.

URLs are first put in the form httpx sends them in (percent-encoding,
lowercase scheme and host), so a raw URL typed by a caller and the
``request.url`` seen by the transport map to the same key.
"""

from __future__ import annotations

import hashlib
from typing import NamedTuple
from urllib.parse import urlsplit

import httpx

from restcache.exceptions import InvalidURLError


class NormalizedKey(NamedTuple):
    """The components a :class:`~restcache.models.CacheRecord` is keyed by."""

    key: str
    domain: str
    path: str
    query: str


def normalize_url(url: str) -> NormalizedKey:
    """Split *url* into its cache key components.

    Args:
        url: Absolute or scheme-less URL.

    Returns:
        A :class:`NormalizedKey` tuple.

    Raises:
        InvalidURLError: If the URL cannot be parsed (e.g. a non-numeric port).
    """
    try:
        parts = urlsplit(str(httpx.URL(url)))
        port = parts.port
    except (httpx.InvalidURL, ValueError) as exc:
        raise InvalidURLError(f"Cannot parse URL {url!r}: {exc}") from exc

    domain = _build_domain(parts.scheme, parts.username, parts.password, parts.hostname, port)
    query = sort_query(parts.query)
    if parts.fragment:
        query += f"#{parts.fragment}"

    return NormalizedKey(make_key(domain, parts.path, query), domain, parts.path, query)


def make_key(domain: str, path: str, query: str) -> str:
    """Hash already-normalized components into a 32-character key."""
    raw = (domain + path + query).lower()
    return hashlib.md5(raw.encode("utf-8")).hexdigest()


def sort_query(query: str) -> str:
    """Sort the ``&``-separated fragments of a raw query string."""
    if not query:
        return ""
    return "&".join(sorted(query.split("&")))


def rebuild_url(domain: str, path: str, query: str) -> str:
    """Reassemble a requestable URL from stored record components.

    The ``?`` separator is added only when there is an actual query string
    in front of an optional ``#fragment``.
    """
    url = f"{domain}{path}"
    query = query.strip()
    if not query:
        return url
    if query.startswith("#"):
        return url + query
    return f"{url}?{query}"


def _build_domain(
    scheme: str,
    username: str | None,
    password: str | None,
    hostname: str | None,
    port: int | None,
) -> str:
    prefix = f"{scheme}://" if scheme else ""
    auth = ""
    if username or password:
        auth = username or ""
        if password:
            auth += f":{password}"
        auth += "@"
    host = hostname or ""
    if ":" in host:
        host = f"[{host}]"
    suffix = f":{port}" if port is not None else ""
    return f"{prefix}{auth}{host}{suffix}"
