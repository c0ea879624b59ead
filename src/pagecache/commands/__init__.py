"""Built-in CLI commands for pagecache.

Each module in this package defines commands registered on the root Typer
application in :mod:`pagecache.app`:

* :mod:`~pagecache.commands.cache` -- ``stats``, ``clear``, ``purge``,
  ``init``, ``teardown``.
* :mod:`~pagecache.commands.config` -- the ``config`` sub-command group.
"""
