"""Exception hierarchy for restcache.

All exceptions inherit from :class:`RestCacheError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`restcache.exit_codes`.
The top-level error handler in :func:`restcache.app.main` catches
``RestCacheError`` and exits with the appropriate code.

Inside the library these errors never escape the live request path: the
engine logs and swallows them so that caching stays best-effort.

Subclass hierarchy::

    RestCacheError (exit 1)
    +-- InvalidUsageError   (exit 2)
    +-- InvalidURLError     (exit 2)
    +-- TransportError      (exit 6)
    +-- StorageError        (exit 8)
    +-- SerializationError  (exit 9)
    +-- ConfigError         (exit 1)
"""

from restcache.exit_codes import (
    EXIT_CONNECTION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_SERIALIZATION_ERROR,
    EXIT_STORAGE_ERROR,
)


class RestCacheError(Exception):
    """Base exception for all restcache errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`restcache.exit_codes`.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(RestCacheError):
    """Raised for invalid CLI arguments or missing required parameters."""

    exit_code = EXIT_INVALID_USAGE


class InvalidURLError(RestCacheError):
    """Raised when a URL cannot be split into cache key components."""

    exit_code = EXIT_INVALID_USAGE


class TransportError(RestCacheError):
    """Raised when a live or replayed HTTP call fails at the network level."""

    exit_code = EXIT_CONNECTION_ERROR


class StorageError(RestCacheError):
    """Raised when a cache store operation fails."""

    exit_code = EXIT_STORAGE_ERROR


class SerializationError(RestCacheError):
    """Raised when a response payload or replay arguments cannot be (de)serialized."""

    exit_code = EXIT_SERIALIZATION_ERROR


class ConfigError(RestCacheError):
    """Raised for configuration problems (unreadable config file, invalid JSON)."""

    exit_code = EXIT_GENERIC_FAILURE
