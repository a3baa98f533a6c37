"""TTL parsing, expiration dates, and the staleness state machine.

Records move through two states::

    FRESH --(expires_at passed, read)--> STALE_PENDING
    STALE_PENDING --(refresh succeeds)--> FRESH
    STALE_PENDING --(refresh fails)--> STALE_PENDING

The functions here are pure: the current time is always passed in, so the
engine and the jobs decide where "now" comes from (see :func:`utcnow`).
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Optional

from restcache.codec import serialize_args
from restcache.models import CacheConfig, CacheRecord, RequestArgs

_DURATION_RE = re.compile(r"^(?:\s*\d+\s*[smhdw])+\s*$", re.IGNORECASE)
_DURATION_PART_RE = re.compile(r"(\d+)\s*([smhdw])", re.IGNORECASE)
_UNIT_SECONDS = {"s": 1, "m": 60, "h": 3600, "d": 86400, "w": 604800}


def utcnow() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def parse_ttl(spec: Any, now: datetime, default: timedelta) -> datetime:
    """Turn a caller-supplied TTL specifier into an absolute expiration date.

    Accepted specifiers:

    * ``None`` or ``""`` -- ``now + default``
    * ``int`` / ``float`` / numeric string -- seconds from *now*
    * :class:`~datetime.timedelta` -- offset from *now*
    * duration string -- ``"30s"``, ``"10m"``, ``"2h"``, ``"1d"``, ``"1w"``,
      or combinations such as ``"1h30m"``
    * :class:`~datetime.datetime`, :class:`~datetime.date`, or an ISO-8601
      date/datetime string -- used as-is (naive values are UTC)

    Anything else, including non-positive durations and offsets too large
    to represent as a date, falls back to ``now + default``.
    """
    now = as_utc(now)
    fallback = now + default

    if spec is None or isinstance(spec, bool):
        return fallback
    if isinstance(spec, timedelta):
        return _offset(now, spec.total_seconds(), fallback)
    if isinstance(spec, datetime):
        try:
            return as_utc(spec)
        except OverflowError:
            return fallback
    if isinstance(spec, date):
        return datetime.combine(spec, time.min, tzinfo=timezone.utc)
    if isinstance(spec, (int, float)):
        return _offset(now, spec, fallback)
    if not isinstance(spec, str):
        return fallback

    text = spec.strip()
    if not text:
        return fallback
    try:
        seconds = float(text)
    except ValueError:
        pass
    else:
        return _offset(now, seconds, fallback)

    if _DURATION_RE.match(text):
        total = sum(
            int(amount) * _UNIT_SECONDS[unit.lower()]
            for amount, unit in _DURATION_PART_RE.findall(text)
        )
        return _offset(now, total, fallback)

    try:
        return as_utc(datetime.fromisoformat(text.replace("Z", "+00:00")))
    except (OverflowError, ValueError):
        return fallback


def _offset(now: datetime, seconds: float, fallback: datetime) -> datetime:
    # Non-positive, infinite, NaN and out-of-range offsets all fall back.
    if not seconds > 0:
        return fallback
    try:
        return now + timedelta(seconds=seconds)
    except (OverflowError, ValueError):
        return fallback


@dataclass(frozen=True)
class ExpirationPolicy:
    """Computes ``expires_at`` for a write.

    Attributes:
        default_ttl: Used when the caller supplies no TTL specifier.
        error_ttl: Upper bound on the lifetime of non-200 responses, or
            ``None`` to treat every status alike.
    """

    default_ttl: timedelta = timedelta(days=1)
    error_ttl: Optional[timedelta] = timedelta(minutes=10)

    @classmethod
    def from_config(cls, config: CacheConfig) -> ExpirationPolicy:
        error_ttl = None
        if config.error_ttl_seconds is not None and config.error_ttl_seconds > 0:
            error_ttl = timedelta(seconds=config.error_ttl_seconds)
        return cls(
            default_ttl=timedelta(seconds=config.default_ttl_seconds),
            error_ttl=error_ttl,
        )

    def expiration_for(self, ttl: Any, status_code: int, now: datetime) -> datetime:
        """Return the expiration date for a response with *status_code* written at *now*."""
        expires_at = parse_ttl(ttl, now, self.default_ttl)
        if status_code != 200 and self.error_ttl is not None:
            expires_at = min(expires_at, as_utc(now) + self.error_ttl)
        return expires_at


def is_expired(record: CacheRecord, now: datetime) -> bool:
    return as_utc(record.expires_at) < as_utc(now)


def check_staleness(
    record: CacheRecord, args: RequestArgs, now: datetime
) -> Optional[CacheRecord]:
    """Apply the read-side staleness transition to *record*.

    * Already flagged -- stays flagged, ``pending_args`` untouched,
      ``last_requested`` moves to today.
    * Expired -- flagged, *args* captured as ``pending_args``,
      ``last_requested`` moves to today.
    * Otherwise -- no change.

    Returns:
        The updated record to persist, or ``None`` when nothing changed.
    """
    today = as_utc(now).date()
    if record.needs_refresh:
        return record.model_copy(update={"last_requested": today})
    if is_expired(record, now):
        return record.model_copy(
            update={
                "needs_refresh": True,
                "pending_args": serialize_args(args),
                "last_requested": today,
            }
        )
    return None
