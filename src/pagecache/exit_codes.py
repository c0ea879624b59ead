"""Process exit codes for the ``pagecache`` CLI.

Deployment hooks that run ``pagecache clear`` or ``pagecache init`` can
branch on these without parsing stderr. Values follow the
`clig.dev <https://clig.dev/>`_ convention of small, stable codes.

Example::

    $ pagecache clear --user deploy
    $ echo $?
    6   # cleared less than a minute ago
"""

EXIT_GENERIC_FAILURE = 1
"""Unclassified failure, including an unreadable config file."""

EXIT_INVALID_USAGE = 2
"""Bad arguments, unknown config keys, or values that fail validation."""

EXIT_STORAGE_ERROR = 5
"""The cache storage root is missing, unwritable, or otherwise unusable."""

EXIT_RATE_LIMITED = 6
"""``clear`` was throttled by the per-user cooldown."""
