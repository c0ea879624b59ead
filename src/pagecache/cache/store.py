"""Filesystem page store with TTL and atomic writes.

Each cached page is one file, ``<key>.html``, directly under the storage
root.  Writes go to a hidden temp file in the same directory and are moved
into place with ``os.replace``, so a concurrent reader sees either the
previous state or the complete new body, never a partial one.  The file's
mtime is the entry's creation time and drives TTL expiry.

On first use the root receives an ``.htaccess`` marker that denies direct
listing and only lets the cached ``.html`` bodies through, so a storage
root placed under a web-served directory does not leak lock markers or
temp files.

Every filesystem error on the request path is logged and swallowed: a
failed cache write must never turn a successfully rendered page into a
failed response.
"""

from __future__ import annotations

import logging
import os
import re
import tempfile
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Callable, Iterable, Iterator, Optional

from pagecache.cache.stats import StatsCounter
from pagecache.models import CacheEntry

logger = logging.getLogger(__name__)

BODY_SUFFIX = ".html"
ACCESS_MARKER = ".htaccess"
ACCESS_MARKER_CONTENT = (
    "Order deny,allow\n"
    "Deny from all\n"
    '<Files ~ "\\.html$">\n'
    "Allow from all\n"
    "</Files>\n"
)

_KEY_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


class PageStore:
    """Disk-backed store for rendered page bodies.

    Args:
        root: Directory holding the ``<key>.html`` files.  Created by
            :meth:`initialize` if missing.
        stats: Counter reset by :meth:`delete_all`.  Optional so the store
            can be used on its own.
        clock: Source of "now" in epoch seconds; injected by tests to move
            across TTL boundaries without sleeping.

    Example::

        store = PageStore("/var/cache/pagecache/pages")
        store.initialize()
        store.put(key, b"<html>...</html>")
        body = store.get(key, ttl_seconds=3600)
    """

    def __init__(
        self,
        root: str | Path,
        stats: Optional[StatsCounter] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._root = Path(root)
        self._stats = stats
        self._clock = clock
        self._ready = False

    @property
    def root(self) -> Path:
        """The storage root directory."""
        return self._root

    def path_for(self, key: str) -> Path:
        """Return the body file path for *key*.

        Raises:
            ValueError: If *key* contains anything but letters, digits,
                ``-`` and ``_``.
        """
        if not _KEY_PATTERN.match(key):
            raise ValueError(f"Invalid cache key: {key!r}")
        return self._root / f"{key}{BODY_SUFFIX}"

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def initialize(self) -> bool:
        """Create the storage root and access marker if they are missing.

        Safe to call on every request; after the first success it only
        re-checks when the root has disappeared.

        Returns:
            ``True`` if the root exists and is writable, ``False`` otherwise
            (the caller then serves the request live).
        """
        if self._ready and self._root.is_dir():
            return True
        try:
            self._root.mkdir(parents=True, exist_ok=True)
            if not os.access(self._root, os.W_OK):
                logger.warning("Cache root %s is not writable", self._root)
                return False
            marker = self._root / ACCESS_MARKER
            if not marker.exists():
                self._write_atomic(marker, ACCESS_MARKER_CONTENT.encode("utf-8"))
        except OSError as exc:
            logger.warning("Cannot initialise cache root %s: %s", self._root, exc)
            return False
        self._ready = True
        return True

    def destroy(self) -> int:
        """Remove every file under the root, then the root itself.

        Used when the cache is deactivated or uninstalled.  Missing roots
        are not an error.

        Returns:
            Number of files removed.
        """
        self._ready = False
        if not self._root.is_dir():
            return 0
        removed = 0
        for path in self._root.iterdir():
            if path.is_file():
                try:
                    path.unlink()
                    removed += 1
                except FileNotFoundError:
                    pass
        try:
            self._root.rmdir()
        except OSError as exc:
            logger.warning("Could not remove cache root %s: %s", self._root, exc)
        return removed

    # ------------------------------------------------------------------ #
    # Entries
    # ------------------------------------------------------------------ #

    def get(self, key: str, ttl_seconds: int = 0) -> Optional[bytes]:
        """Return the stored body for *key*, or ``None`` on a miss.

        Args:
            key: Cache key.
            ttl_seconds: Maximum entry age.  ``0`` disables expiry.

        Returns:
            The body bytes, or ``None`` if there is no entry, it is at least
            *ttl_seconds* old, or it could not be read.
        """
        path = self.path_for(key)
        try:
            created = path.stat().st_mtime
            if ttl_seconds > 0 and self._clock() - created >= ttl_seconds:
                return None
            return path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as exc:
            logger.warning("Could not read cache entry %s: %s", key, exc)
            return None

    def put(self, key: str, body: bytes | str) -> bool:
        """Store *body* under *key*, replacing any previous entry atomically.

        Empty bodies are not stored.  Filesystem failures are logged and
        reported through the return value only.

        Returns:
            ``True`` if the entry was written.
        """
        if isinstance(body, str):
            body = body.encode("utf-8")
        if not body:
            return False
        path = self.path_for(key)
        try:
            self._write_atomic(path, body)
        except OSError as exc:
            logger.warning("Could not write cache entry %s: %s", key, exc)
            return False
        logger.debug("Stored %d bytes under %s", len(body), key)
        return True

    def delete(self, key: str) -> int:
        """Remove the entry for *key*.  Returns ``1`` if a file was removed, else ``0``."""
        path = self.path_for(key)
        try:
            path.unlink()
        except FileNotFoundError:
            return 0
        except OSError as exc:
            logger.warning("Could not delete cache entry %s: %s", key, exc)
            return 0
        return 1

    def delete_many(self, keys: Iterable[str]) -> int:
        """Remove every entry in *keys*; returns how many existed."""
        return sum(self.delete(key) for key in keys)

    def delete_all(self) -> int:
        """Remove every cached body and reset the hit/miss counters.

        Lock markers and the access marker are left in place.

        Returns:
            Number of entries removed.
        """
        removed = self.delete_many(self.keys())
        if self._stats is not None:
            self._stats.reset()
        logger.info("Cleared %d cached pages from %s", removed, self._root)
        return removed

    def keys(self) -> list[str]:
        """Return the keys of all stored bodies, sorted."""
        if not self._root.is_dir():
            return []
        keys = (
            p.name[: -len(BODY_SUFFIX)]
            for p in self._root.glob(f"*{BODY_SUFFIX}")
            if p.is_file()
        )
        return sorted(key for key in keys if _KEY_PATTERN.match(key))

    def entries(self) -> Iterator[CacheEntry]:
        """Yield a :class:`~pagecache.models.CacheEntry` for each stored body."""
        for key in self.keys():
            path = self.path_for(key)
            try:
                st = path.stat()
            except FileNotFoundError:
                continue
            yield CacheEntry(
                key=key,
                path=str(path),
                size=st.st_size,
                created_at=datetime.fromtimestamp(st.st_mtime, tz=timezone.utc),
            )

    def size_bytes(self) -> int:
        """Total size of all stored bodies."""
        return sum(entry.size for entry in self.entries())

    def __len__(self) -> int:
        return len(self.keys())

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.path_for(key).is_file()

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    def _write_atomic(self, path: Path, data: bytes) -> None:
        """Write *data* to a temp file beside *path*, stamp it, then rename it over *path*."""
        path.parent.mkdir(parents=True, exist_ok=True)

        fd = None
        tmp_path: Optional[str] = None
        try:
            fd = tempfile.NamedTemporaryFile(
                mode="wb",
                dir=path.parent,
                prefix=f".{path.name}.",
                suffix=".tmp",
                delete=False,
            )
            tmp_path = fd.name
            fd.write(data)
            fd.flush()
            os.fsync(fd.fileno())
            fd.close()
            fd = None
            os.chmod(tmp_path, 0o644)
            now = self._clock()
            os.utime(tmp_path, (now, now))
            os.replace(tmp_path, path)
        except BaseException:
            if fd is not None:
                fd.close()
            if tmp_path is not None:
                try:
                    os.unlink(tmp_path)
                except OSError:
                    pass
            raise
