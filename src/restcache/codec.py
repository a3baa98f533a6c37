"""Encoding of cached payloads and replay arguments.

A payload is a JSON document holding the status code, HTTP version,
header pairs (order and repeats preserved) and the base64-encoded body.
The body is stored decoded, so transfer-level headers that describe the
wire encoding (``Content-Encoding``, ``Content-Length``,
``Transfer-Encoding``) are dropped before storing; httpx recomputes the
length when the response is rebuilt.

Any failure on either side raises :class:`~restcache.exceptions.SerializationError`,
which callers treat as a cache miss (read) or a skipped write.
"""

from __future__ import annotations

import base64
import binascii
import json
from typing import Optional

import httpx
from pydantic import ValidationError

from restcache.exceptions import SerializationError
from restcache.models import RequestArgs

_WIRE_HEADERS = frozenset({"content-encoding", "content-length", "transfer-encoding"})

FROM_CACHE = "restcache.from_cache"
"""Response extension set to ``True`` on responses rebuilt from the cache."""


def serialize_response(response: httpx.Response) -> bytes:
    """Encode a fully read :class:`httpx.Response` into a payload blob."""
    try:
        content = response.content
    except httpx.ResponseNotRead as exc:
        raise SerializationError("Response body has not been read") from exc

    headers = [
        [name, value]
        for name, value in response.headers.multi_items()
        if name.lower() not in _WIRE_HEADERS
    ]
    document = {
        "status_code": response.status_code,
        "http_version": response.http_version,
        "headers": headers,
        "content": base64.b64encode(content).decode("ascii"),
    }
    return json.dumps(document, separators=(",", ":")).encode("utf-8")


def deserialize_response(blob: bytes, request: Optional[httpx.Request] = None) -> httpx.Response:
    """Rebuild an :class:`httpx.Response` from a payload blob.

    Args:
        blob: Bytes produced by :func:`serialize_response`.
        request: Request to attach to the rebuilt response.

    Raises:
        SerializationError: If the blob is not a valid payload.
    """
    try:
        document = json.loads(blob)
        content = base64.b64decode(document["content"], validate=True)
        headers = [(str(name), str(value)) for name, value in document["headers"]]
        status_code = int(document["status_code"])
        http_version = str(document.get("http_version") or "HTTP/1.1")
    except (ValueError, TypeError, KeyError, binascii.Error) as exc:
        raise SerializationError(f"Corrupt cached payload: {exc}") from exc

    return httpx.Response(
        status_code=status_code,
        headers=headers,
        content=content,
        request=request,
        extensions={"http_version": http_version.encode("ascii"), FROM_CACHE: True},
    )


def serialize_args(args: RequestArgs) -> bytes:
    """Encode replay arguments for :attr:`~restcache.models.CacheRecord.pending_args`."""
    return args.model_dump_json().encode("utf-8")


def deserialize_args(blob: bytes) -> RequestArgs:
    """Decode replay arguments.

    Raises:
        SerializationError: If the blob is not a valid :class:`RequestArgs` document.
    """
    try:
        return RequestArgs.model_validate_json(blob)
    except (ValidationError, ValueError) as exc:
        raise SerializationError(f"Corrupt replay arguments: {exc}") from exc
