"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~restcache.exceptions.RestCacheError` subclass.
Cron wrappers and CI scripts can inspect the exit code of a
``restcache jobs ...`` invocation without parsing stderr.

Example::

    $ restcache fetch http://unreachable.invalid/
    $ echo $?
    6   # EXIT_CONNECTION_ERROR -- the request never reached the server
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments (including malformed URLs)."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_STORAGE_ERROR = 8
"""The cache store could not be read or written."""

EXIT_SERIALIZATION_ERROR = 9
"""A cached payload or replay argument blob could not be encoded or decoded."""
