"""Turn content change events into targeted cache deletions.

When a content item is saved, trashed, deleted or its comments change, the
cached copies of its canonical page and of the home/listing view are
stale.  The coordinator recomputes every key that could hold those pages
with :func:`~pagecache.cache.keys.guest_variant_keys` and removes them.
Logged-in requests are never cached, so only guest keys are considered.
"""

from __future__ import annotations

import logging
from typing import Optional
from urllib.parse import urlsplit

from pydantic import ValidationError

from pagecache.cache.keys import guest_variant_keys
from pagecache.cache.store import PageStore
from pagecache.exceptions import PageCacheError
from pagecache.host import ConfigProvider, ContentResolver
from pagecache.models import CacheConfig, ContentEvent

logger = logging.getLogger(__name__)


class InvalidationCoordinator:
    """Delete the cached pages affected by a content change.

    Args:
        store: The page store to delete from.
        resolver: Resolves content IDs to canonical URLs.
        config_provider: Supplies the current mobile-caching setting, which
            decides how many key variants exist per path.
        home_path: Path of the home/listing view, invalidated on every change.
    """

    def __init__(
        self,
        store: PageStore,
        resolver: ContentResolver,
        config_provider: ConfigProvider,
        home_path: str = "/",
    ) -> None:
        self._store = store
        self._resolver = resolver
        self._config_provider = config_provider
        self._home_path = home_path

    def on_content_change(self, content_id: int) -> int:
        """Invalidate the page for *content_id* and the home view.

        Unknown content is ignored: there is nothing cached for it that can
        be located.

        Returns:
            Number of cached pages removed.
        """
        url = self._resolver.canonical_url(content_id)
        if url is None:
            logger.debug("No canonical URL for content %s; nothing to invalidate", content_id)
            return 0
        parts = urlsplit(url)
        removed = self.invalidate_path(parts.path or "/", parts.query)
        removed += self.invalidate_path(self._home_path)
        logger.debug("Invalidated %d pages for content %s", removed, content_id)
        return removed

    def invalidate_path(self, path: str, query_string: str = "") -> int:
        """Remove every guest variant cached for ``path?query_string``.

        If the configuration cannot be read, the variants for both the
        mobile-on and mobile-off layouts are removed.
        """
        try:
            configs = [self._config_provider.get_config()]
        except (PageCacheError, OSError, ValidationError) as exc:
            logger.warning("Config unavailable during invalidation, removing all variants: %s", exc)
            configs = [CacheConfig(cache_mobile=True), CacheConfig(cache_mobile=False)]
        keys: list[str] = []
        for config in configs:
            keys.extend(guest_variant_keys(path, query_string, config))
        return self._store.delete_many(keys)

    def handle(self, event: ContentEvent, content_id: Optional[int]) -> int:
        """Dispatch a content lifecycle event.

        A ``None`` *content_id* means the host could not tell what changed,
        so the whole cache is cleared.
        """
        logger.info("Content event %s for %s", event.value, content_id)
        if content_id is None:
            return self._store.delete_all()
        return self.on_content_change(content_id)
