"""Tests for payload and replay-argument encoding."""

from __future__ import annotations

import gzip

import httpx
import pytest

from restcache.codec import (
    FROM_CACHE,
    deserialize_args,
    deserialize_response,
    serialize_args,
    serialize_response,
)
from restcache.exceptions import SerializationError
from restcache.models import CacheDirective, RequestArgs


class TestResponsePayload:
    def test_write_then_read_is_lossless(self) -> None:
        original = httpx.Response(
            201,
            headers=[("content-type", "application/json"), ("set-cookie", "a=1"), ("set-cookie", "b=2")],
            content=b'{"ok": true}',
        )
        restored = deserialize_response(serialize_response(original))

        assert restored.status_code == 201
        assert restored.content == b'{"ok": true}'
        assert restored.headers.get_list("set-cookie") == ["a=1", "b=2"]
        assert restored.headers["content-type"] == "application/json"
        assert restored.extensions[FROM_CACHE] is True

    def test_binary_body(self) -> None:
        body = bytes(range(256))
        restored = deserialize_response(serialize_response(httpx.Response(200, content=body)))
        assert restored.content == body

    def test_decoded_body_drops_wire_headers(self) -> None:
        raw = gzip.compress(b"hello")
        original = httpx.Response(
            200,
            headers={"content-encoding": "gzip", "content-length": str(len(raw))},
            content=raw,
        )
        original.read()
        restored = deserialize_response(serialize_response(original))

        assert restored.content == b"hello"
        assert "content-encoding" not in restored.headers
        assert restored.headers["content-length"] == "5"

    def test_attaches_request(self) -> None:
        request = httpx.Request("GET", "https://h.io/p")
        blob = serialize_response(httpx.Response(200, content=b"x"))
        assert deserialize_response(blob, request).request is request

    def test_unread_stream_raises(self) -> None:
        response = httpx.Response(200, stream=httpx.ByteStream(b"x"))
        with pytest.raises(SerializationError):
            serialize_response(response)

    @pytest.mark.parametrize("blob", [b"not json", b"{}", b'{"content": "!!", "headers": [], "status_code": 200}'])
    def test_corrupt_payload_raises(self, blob: bytes) -> None:
        with pytest.raises(SerializationError):
            deserialize_response(blob)


class TestReplayArgs:
    def test_round_trip_keeps_directive(self) -> None:
        args = RequestArgs(
            headers={"accept": "application/json"},
            timeout=5.0,
            cache=CacheDirective(expires="10m", tag="things", update=True),
        )
        restored = deserialize_args(serialize_args(args))
        assert restored == args

    def test_exclude_survives(self) -> None:
        assert deserialize_args(serialize_args(RequestArgs(cache="exclude"))).cache == "exclude"

    def test_corrupt_args_raise(self) -> None:
        with pytest.raises(SerializationError):
            deserialize_args(b"\x00garbage")
