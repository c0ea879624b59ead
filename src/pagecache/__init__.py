"""pagecache -- Full-page response caching for content sites.

This package decides whether a rendered page can be cached, derives a
deterministic key for it, stores the rendered body on the local filesystem,
and guards regeneration with a per-key lock so a burst of requests for the
same uncached page does not regenerate it N times.

The host application (a CMS, a WSGI app, ...) drives the cache through
:class:`~pagecache.cache.PageCache` and supplies its own request flags,
configuration, and content lookups through the contracts in
:mod:`pagecache.host`.

Typical workflow::

    pagecache init                 # create storage and default config
    pagecache stats                # hit ratio, entries, size on disk
    pagecache clear                # drop every cached page

Modules:
    app: Typer application and CLI entry point.
    models: Pydantic models shared across the package.
    config: XDG-aware configuration loading and precedence resolution.
    host: Abstract collaborator contracts implemented by the host.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr formatting with Rich support.
"""

__version__ = "0.1.0"
