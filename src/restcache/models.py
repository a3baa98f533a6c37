"""Canonical Pydantic models shared across all restcache modules.

This is the single source of truth for data shapes in the project. The
models fall into two groups:

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`CacheConfig`, :class:`RequestConfig`, :class:`RefreshJobConfig`,
    :class:`ExpiredJobConfig`, :class:`TrashJobConfig`, :class:`JobsConfig`,
    :class:`LoggingConfig`, and :class:`GlobalConfig`.

**Cache data models** -- written to and read from a
:class:`~restcache.store.CacheStore`:
    :class:`CacheDirective`, :class:`RequestArgs`, and :class:`CacheRecord`.

Numeric job settings never abort a job: values that are missing, negative,
or not numbers fall back to the field default.
"""

from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Any, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator


def _positive_int(value: Any, default: int) -> int:
    """Coerce *value* to a positive int, returning *default* when that fails."""
    if isinstance(value, bool):
        return default
    try:
        number = int(value)
    except (TypeError, ValueError):
        return default
    return number if number > 0 else default


def _field_default(model: type[BaseModel], info: ValidationInfo) -> Any:
    return model.model_fields[info.field_name].default


# --- Configuration ---


class CacheConfig(BaseModel):
    """Live-path cache settings stored in :class:`GlobalConfig`."""

    enabled: bool = Field(default=True, description="Enable response caching")
    default_ttl_seconds: int = Field(
        default=86400, description="TTL applied when a request carries no expiry directive"
    )
    error_ttl_seconds: Optional[int] = Field(
        default=600, description="Upper bound on the TTL of non-200 responses (null disables)"
    )
    only_cache_200: bool = Field(
        default=False, description="Skip writes for responses whose status is not 200"
    )
    exclusions: list[str] = Field(
        default_factory=list, description="Hosts whose requests are never cached"
    )

    @field_validator("default_ttl_seconds", mode="before")
    @classmethod
    def _ttl_fallback(cls, value: Any, info: ValidationInfo) -> int:
        return _positive_int(value, _field_default(cls, info))

    @field_validator("exclusions", mode="before")
    @classmethod
    def _split_exclusions(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [host.strip() for host in value.split(",") if host.strip()]
        return value


class RequestConfig(BaseModel):
    """HTTP settings used by :class:`~restcache.client.CachedClient` and refresh replays."""

    timeout: int = Field(default=30, description="Request timeout in seconds")
    verify_ssl: bool = Field(default=True, description="Verify SSL certificates")
    max_retries: int = Field(default=0, description="Retry attempts on network errors and 5xx")


class RefreshJobConfig(BaseModel):
    """Settings for the stale-entry refresh job."""

    interval_minutes: int = Field(default=5, description="Minutes between runs")
    limit: int = Field(default=2000, description="Records processed per run")

    @field_validator("interval_minutes", "limit", mode="before")
    @classmethod
    def _fallback(cls, value: Any, info: ValidationInfo) -> int:
        return _positive_int(value, _field_default(cls, info))


class ExpiredJobConfig(BaseModel):
    """Settings for the hard-expiry sweep."""

    interval_hours: int = Field(default=1, description="Hours between runs")
    limit: int = Field(default=2000, description="Records deleted per run")
    retention_days: int = Field(
        default=365, description="Delete records that expired more than this many days ago"
    )

    @field_validator("interval_hours", "limit", "retention_days", mode="before")
    @classmethod
    def _fallback(cls, value: Any, info: ValidationInfo) -> int:
        return _positive_int(value, _field_default(cls, info))


class TrashJobConfig(BaseModel):
    """Settings for the rolling trash collection.

    ``older_than_days`` of ``0`` disables the job entirely; negative or
    non-numeric values fall back to the default.
    """

    interval_hours: int = Field(default=24, description="Hours between runs")
    older_than_days: int = Field(
        default=7, description="Delete records not requested for this many days"
    )
    batch_limit: int = Field(default=1000, description="Records deleted per statement")
    compact: bool = Field(default=True, description="Compact the store after deleting")

    @field_validator("interval_hours", "batch_limit", mode="before")
    @classmethod
    def _fallback(cls, value: Any, info: ValidationInfo) -> int:
        return _positive_int(value, _field_default(cls, info))

    @field_validator("older_than_days", mode="before")
    @classmethod
    def _retention(cls, value: Any, info: ValidationInfo) -> int:
        if value == 0 or value == "0":
            return 0
        return _positive_int(value, _field_default(cls, info))


class JobsConfig(BaseModel):
    """Scheduling and batch settings for the three background jobs."""

    refresh: RefreshJobConfig = Field(default_factory=RefreshJobConfig)
    expired: ExpiredJobConfig = Field(default_factory=ExpiredJobConfig)
    trash: TrashJobConfig = Field(default_factory=TrashJobConfig)


LogMode = Literal["off", "file", "store", "console"]


class LoggingConfig(BaseModel):
    """Where background jobs write their run logs."""

    mode: LogMode = Field(default="off", description="Job log mode: off, file, store, console")

    @field_validator("mode", mode="before")
    @classmethod
    def _mode_fallback(cls, value: Any) -> str:
        value = str(value or "off").lower()
        return value if value in ("off", "file", "store", "console") else "off"


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/restcache/config.json``.

    Loaded and saved by :func:`~restcache.config.load_global_config` and
    :func:`~restcache.config.save_global_config`. Environment variables
    layered on top by :func:`~restcache.config.resolve_config` take
    precedence over the file.
    """

    cache_dir: Optional[str] = Field(
        default=None, description="Store directory (defaults to the XDG cache dir)"
    )
    cache: CacheConfig = Field(default_factory=CacheConfig)
    request: RequestConfig = Field(default_factory=RequestConfig)
    jobs: JobsConfig = Field(default_factory=JobsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


# --- Cache data ---


TTLSpec = Union[int, float, str]


class CacheDirective(BaseModel):
    """Per-request caching instructions supplied by the caller.

    Attributes:
        expires: TTL specifier -- seconds, a duration string such as
            ``"10m"``, or an absolute ISO-8601 date. ``None`` means the
            process-wide default TTL.
        tag: Free-form grouping label stored on the record.
        update: Write the record already flagged for refresh.
    """

    expires: Optional[TTLSpec] = None
    tag: str = ""
    update: bool = False

    @field_validator("expires", mode="before")
    @classmethod
    def _flatten_expires(cls, value: Any) -> Any:
        if isinstance(value, timedelta):
            return value.total_seconds()
        if isinstance(value, (date, datetime)):
            return value.isoformat()
        return value


class RequestArgs(BaseModel):
    """The replayable parameters of an outgoing call.

    Travels with each request in ``request.extensions["restcache"]`` and is
    captured into :attr:`CacheRecord.pending_args` when a record turns
    stale, so that the refresh job can repeat the exact call later.
    """

    model_config = ConfigDict(extra="ignore")

    method: str = "GET"
    headers: dict[str, str] = Field(default_factory=dict)
    timeout: Optional[float] = None
    filename: Optional[str] = None
    force_fresh: bool = False
    cache: Optional[Union[Literal["exclude"], CacheDirective]] = None

    @property
    def directive(self) -> CacheDirective:
        """The cache directive, or an empty one when the caller gave none."""
        if isinstance(self.cache, CacheDirective):
            return self.cache
        return CacheDirective()


class CacheRecord(BaseModel):
    """One stored response, keyed by normalized request identity."""

    key: str
    domain: str
    path: str = ""
    query: str = ""
    payload: bytes
    expires_at: datetime
    last_requested: date
    tag: str = ""
    needs_refresh: bool = False
    pending_args: Optional[bytes] = None
    status_code: int = 200
