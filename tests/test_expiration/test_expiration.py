"""Tests for TTL parsing, expiration policy and the staleness transition."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest

from restcache.codec import deserialize_args
from restcache.expiration import ExpirationPolicy, as_utc, check_staleness, is_expired, parse_ttl
from restcache.models import CacheConfig, CacheDirective, CacheRecord, RequestArgs

NOW = datetime(2024, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
DAY = timedelta(days=1)


def _record(**overrides) -> CacheRecord:
    fields = dict(
        key="k" * 32,
        domain="https://h.io",
        path="/p",
        payload=b"{}",
        expires_at=NOW + DAY,
        last_requested=date(2024, 2, 1),
    )
    fields.update(overrides)
    return CacheRecord(**fields)


# ------------------------------------------------------------------ #
# parse_ttl
# ------------------------------------------------------------------ #


class TestParseTtl:
    @pytest.mark.parametrize(
        "spec, expected",
        [
            (None, NOW + DAY),
            ("", NOW + DAY),
            (600, NOW + timedelta(seconds=600)),
            (1.5, NOW + timedelta(seconds=1.5)),
            ("600", NOW + timedelta(seconds=600)),
            ("30s", NOW + timedelta(seconds=30)),
            ("10m", NOW + timedelta(minutes=10)),
            ("2h", NOW + timedelta(hours=2)),
            ("1d", NOW + timedelta(days=1)),
            ("1w", NOW + timedelta(weeks=1)),
            ("1h30m", NOW + timedelta(minutes=90)),
            (timedelta(hours=3), NOW + timedelta(hours=3)),
        ],
    )
    def test_relative_specs(self, spec, expected) -> None:
        assert parse_ttl(spec, NOW, DAY) == expected

    def test_absolute_iso_string(self) -> None:
        assert parse_ttl("2024-04-01T00:00:00Z", NOW, DAY) == datetime(
            2024, 4, 1, tzinfo=timezone.utc
        )

    def test_absolute_date(self) -> None:
        assert parse_ttl(date(2024, 4, 1), NOW, DAY) == datetime(2024, 4, 1, tzinfo=timezone.utc)

    def test_naive_datetime_is_utc(self) -> None:
        assert parse_ttl(datetime(2024, 4, 1, 6), NOW, DAY) == datetime(
            2024, 4, 1, 6, tzinfo=timezone.utc
        )

    @pytest.mark.parametrize(
        "spec", [0, -5, "-5", "0m", "soon", True, [1], "inf", "nan", "1e400", 10**12, "99999999w", timedelta.max]
    )
    def test_unusable_specs_fall_back_to_default(self, spec) -> None:
        assert parse_ttl(spec, NOW, DAY) == NOW + DAY


class TestAsUtc:
    def test_converts_offsets(self) -> None:
        plus_two = timezone(timedelta(hours=2))
        assert as_utc(datetime(2024, 3, 1, 14, tzinfo=plus_two)) == NOW


# ------------------------------------------------------------------ #
# ExpirationPolicy
# ------------------------------------------------------------------ #


class TestExpirationPolicy:
    def test_default_ttl_from_config(self) -> None:
        policy = ExpirationPolicy.from_config(CacheConfig(default_ttl_seconds=3600))
        assert policy.expiration_for(None, 200, NOW) == NOW + timedelta(hours=1)

    def test_non_200_capped_by_error_ttl(self) -> None:
        policy = ExpirationPolicy.from_config(CacheConfig(error_ttl_seconds=600))
        assert policy.expiration_for("1d", 404, NOW) == NOW + timedelta(minutes=10)

    def test_short_ttl_on_error_kept(self) -> None:
        policy = ExpirationPolicy.from_config(CacheConfig(error_ttl_seconds=600))
        assert policy.expiration_for(60, 500, NOW) == NOW + timedelta(seconds=60)

    def test_error_cap_disabled(self) -> None:
        policy = ExpirationPolicy.from_config(CacheConfig(error_ttl_seconds=None))
        assert policy.expiration_for("1d", 404, NOW) == NOW + DAY

    def test_200_not_capped(self) -> None:
        policy = ExpirationPolicy()
        assert policy.expiration_for("2d", 200, NOW) == NOW + 2 * DAY


# ------------------------------------------------------------------ #
# Staleness
# ------------------------------------------------------------------ #


class TestCheckStaleness:
    def test_fresh_record_unchanged(self) -> None:
        assert check_staleness(_record(), RequestArgs(), NOW) is None
        assert not is_expired(_record(), NOW)

    def test_expired_record_flagged_and_args_captured(self) -> None:
        args = RequestArgs(headers={"x-api-key": "abc"}, cache=CacheDirective(expires="1h"))
        updated = check_staleness(_record(expires_at=NOW - timedelta(seconds=1)), args, NOW)

        assert updated is not None
        assert updated.needs_refresh is True
        assert updated.last_requested == NOW.date()
        assert deserialize_args(updated.pending_args) == args

    def test_already_flagged_keeps_first_capture(self) -> None:
        first = RequestArgs(headers={"x": "first"}).model_dump_json().encode()
        record = _record(
            expires_at=NOW - DAY, needs_refresh=True, pending_args=first
        )
        updated = check_staleness(record, RequestArgs(headers={"x": "second"}), NOW)

        assert updated is not None
        assert updated.needs_refresh is True
        assert updated.pending_args == first
        assert updated.last_requested == NOW.date()

    def test_staleness_is_monotone(self) -> None:
        record = _record(expires_at=NOW - DAY)
        once = check_staleness(record, RequestArgs(), NOW)
        twice = check_staleness(once, RequestArgs(headers={"a": "b"}), NOW + DAY)
        assert twice.needs_refresh is True
        assert twice.pending_args == once.pending_args
