"""Tests for content-change invalidation."""

from __future__ import annotations

from pagecache.cache.invalidation import InvalidationCoordinator
from pagecache.cache.keys import derive_key
from pagecache.cache.store import PageStore
from pagecache.exceptions import ConfigError
from pagecache.host import ConfigProvider, MappingContentResolver, StaticConfigProvider
from pagecache.models import CacheConfig, ContentEvent


class _BrokenConfig(ConfigProvider):
    def get_config(self) -> CacheConfig:
        raise ConfigError("config unreadable")


def _fill(store: PageStore, path: str, query: str = "") -> list[str]:
    keys = [
        derive_key(path, query, "mobile", False),
        derive_key(path, query, "desktop", False),
        derive_key(path, query, None, False),
    ]
    for key in keys:
        store.put(key, b"page")
    return keys


class TestOnContentChange:
    def test_removes_page_and_home_variants(
        self, store: PageStore, resolver: MappingContentResolver
    ) -> None:
        about = _fill(store, "/about/")
        home = _fill(store, "/")
        unrelated = _fill(store, "/contact/")
        coordinator = InvalidationCoordinator(store, resolver, StaticConfigProvider())

        removed = coordinator.on_content_change(42)

        # mobile caching on: mobile + desktop for the page and for home
        assert removed == 4
        assert about[0] not in store and about[1] not in store
        assert home[0] not in store and home[1] not in store
        assert all(key in store for key in unrelated)

    def test_mobile_off_removes_single_variant(
        self, store: PageStore, resolver: MappingContentResolver
    ) -> None:
        about = _fill(store, "/about/")
        coordinator = InvalidationCoordinator(
            store, resolver, StaticConfigProvider(CacheConfig(cache_mobile=False))
        )
        assert coordinator.on_content_change(42) == 1
        assert about[2] not in store
        assert about[0] in store

    def test_canonical_url_query_is_kept(
        self, store: PageStore, resolver: MappingContentResolver
    ) -> None:
        shop = _fill(store, "/shop/", "page=2")
        coordinator = InvalidationCoordinator(store, resolver, StaticConfigProvider())
        assert coordinator.on_content_change(7) == 2
        assert shop[0] not in store

    def test_unknown_content_is_noop(
        self, store: PageStore, resolver: MappingContentResolver
    ) -> None:
        home = _fill(store, "/")
        coordinator = InvalidationCoordinator(store, resolver, StaticConfigProvider())
        assert coordinator.on_content_change(999) == 0
        assert all(key in store for key in home)

    def test_custom_home_path(self, store: PageStore, resolver: MappingContentResolver) -> None:
        blog = _fill(store, "/blog/")
        coordinator = InvalidationCoordinator(
            store, resolver, StaticConfigProvider(), home_path="/blog/"
        )
        coordinator.on_content_change(42)
        assert blog[0] not in store and blog[1] not in store

    def test_config_failure_removes_all_layouts(
        self, store: PageStore, resolver: MappingContentResolver
    ) -> None:
        about = _fill(store, "/about/")
        coordinator = InvalidationCoordinator(store, resolver, _BrokenConfig())
        coordinator.invalidate_path("/about/")
        assert not any(key in store for key in about)


class TestHandle:
    def test_event_with_id_is_targeted(
        self, store: PageStore, resolver: MappingContentResolver
    ) -> None:
        unrelated = _fill(store, "/contact/")
        _fill(store, "/about/")
        coordinator = InvalidationCoordinator(store, resolver, StaticConfigProvider())
        assert coordinator.handle(ContentEvent.COMMENT_POSTED, 42) == 2
        assert all(key in store for key in unrelated)

    def test_event_without_id_clears_everything(
        self, store: PageStore, resolver: MappingContentResolver, stats
    ) -> None:
        _fill(store, "/contact/")
        _fill(store, "/about/")
        stats.record_hit()
        coordinator = InvalidationCoordinator(store, resolver, StaticConfigProvider())
        assert coordinator.handle(ContentEvent.SAVED, None) == 6
        assert len(store) == 0
        assert stats.snapshot().hits == 0

    def test_trashed_content_resolved_before_forget(
        self, store: PageStore, resolver: MappingContentResolver
    ) -> None:
        about = _fill(store, "/about/")
        coordinator = InvalidationCoordinator(store, resolver, StaticConfigProvider())
        coordinator.handle(ContentEvent.TRASHED, 42)
        resolver.forget(42)
        assert about[0] not in store
        assert coordinator.handle(ContentEvent.DELETED, 42) == 0
