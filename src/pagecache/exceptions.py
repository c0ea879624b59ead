"""Errors raised by the ``pagecache`` administration commands.

Each class carries the process ``exit_code`` that :func:`pagecache.app.main`
exits with when the error reaches the top level. The request pipeline
catches these itself: an unreadable config turns caching off for the
request, and a storage failure is logged while the page is served live.

Hierarchy::

    PageCacheError      exit 1
    +-- InvalidUsageError   exit 2   bad arguments (e.g. a relative purge path)
    +-- ConfigError         exit 1   unreadable or invalid config.json
    +-- StorageError        exit 5   storage root missing or not writable
    +-- RateLimitError      exit 6   ``clear`` repeated inside its cooldown
"""

from pagecache.exit_codes import (
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_RATE_LIMITED,
    EXIT_STORAGE_ERROR,
)


class PageCacheError(Exception):
    """Failure reported to the operator on stderr.

    Args:
        message: Text shown after the ``Error:`` prefix.
        exit_code: Replaces the class default for this instance.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(PageCacheError):
    exit_code = EXIT_INVALID_USAGE


class ConfigError(PageCacheError):
    """The config file exists but cannot be read or does not validate."""


class StorageError(PageCacheError):
    """The storage root cannot be created or written."""

    exit_code = EXIT_STORAGE_ERROR


class RateLimitError(PageCacheError):
    """An administrative action was repeated inside its cooldown window."""

    exit_code = EXIT_RATE_LIMITED
