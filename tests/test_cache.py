"""Unit tests for the response cache."""

import asyncio

import pytest

from core.cache import ResourceType, ResponseCache, make_cache_key
from core.config import CacheSettings
from tests.helpers import FakeClock


class TestCacheKey:
    """Tests for make_cache_key."""

    def test_equal_inputs_equal_keys(self) -> None:
        a = make_cache_key("GET", "/api/profiles", {"sort": "id", "page[size]": "10"})
        b = make_cache_key("get", "/api/profiles", {"page[size]": "10", "sort": "id"})

        assert a == b

    def test_different_inputs_different_keys(self) -> None:
        base = make_cache_key("GET", "/api/profiles", {"sort": "id"})

        assert base != make_cache_key("GET", "/api/profiles", {"sort": "-id"})
        assert base != make_cache_key("GET", "/api/lists", {"sort": "id"})
        assert base != make_cache_key("POST", "/api/profiles", {"sort": "id"})


class TestResourceType:
    """Tests for route-prefix resource type resolution."""

    def test_known_prefixes(self, cache: ResponseCache) -> None:
        assert cache.resource_type_for("/api/metrics") is ResourceType.METRICS
        assert cache.resource_type_for("/api/metrics/abc") is ResourceType.METRICS
        assert cache.resource_type_for("/api/profiles/01H/lists") is ResourceType.PROFILES

    def test_unknown_prefix_is_default(self, cache: ResponseCache) -> None:
        assert cache.resource_type_for("/api/accounts") is ResourceType.DEFAULT
        assert cache.resource_type_for("/api/profiles-import") is ResourceType.DEFAULT

    def test_configured_routes_prefer_longest_prefix(self) -> None:
        cache = ResponseCache(routes={"/api/metric": "default", "/api/metric-aggregates": "metrics"})

        assert cache.resource_type_for("/api/metric-aggregates") is ResourceType.METRICS

    def test_ttl_table_from_settings(self) -> None:
        settings = CacheSettings(ttl_seconds={"profiles": 42})
        cache = ResponseCache.from_settings(settings)

        assert cache.ttl_for(ResourceType.PROFILES) == 42
        assert cache.ttl_for(ResourceType.METRICS) == 3600


class TestGetSet:
    """Tests for lookup, insert and expiry."""

    def test_round_trip(self, cache: ResponseCache) -> None:
        value = {"data": [{"id": "1"}]}

        assert cache.set("k", value, ResourceType.PROFILES)
        assert cache.get("k") == value

    def test_miss_returns_none(self, cache: ResponseCache) -> None:
        assert cache.get("missing") is None
        assert not cache.has("missing")

    def test_expires_after_ttl(self, cache: ResponseCache, clock: FakeClock) -> None:
        """Entries are served strictly before expires_at and removed on the first late lookup."""
        cache.set("k", {"v": 1}, ResourceType.PROFILES)

        clock.advance(299)
        assert cache.get("k") == {"v": 1}

        clock.advance(1)
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_ttl_depends_on_resource_type(self, cache: ResponseCache, clock: FakeClock) -> None:
        cache.set("profile", 1, ResourceType.PROFILES)
        cache.set("metric", 2, ResourceType.METRICS)

        clock.advance(600)

        assert cache.get("profile") is None
        assert cache.get("metric") == 2

    def test_type_inferred_from_key_path(self, cache: ResponseCache) -> None:
        cache.set(make_cache_key("GET", "/api/templates/T1"), {"data": {}})

        assert cache.stats()["by_type"] == {"templates": 1}

    def test_none_not_stored(self, cache: ResponseCache) -> None:
        assert not cache.set("k", None)
        assert len(cache) == 0

    def test_disabled_cache_stores_nothing(self, clock: FakeClock) -> None:
        cache = ResponseCache(enabled=False, clock=clock)

        assert not cache.set("k", {"v": 1})
        assert cache.get("k") is None

    def test_hit_updates_last_accessed(self, cache: ResponseCache, clock: FakeClock) -> None:
        cache.set("k", 1)
        clock.advance(5)
        cache.get("k")

        assert cache._entries["k"].last_accessed_at == clock.now  # noqa: SLF001


class TestEviction:
    """Tests for size-bounded eviction."""

    def test_never_exceeds_max_size(self, cache: ResponseCache, clock: FakeClock) -> None:
        for i in range(50):
            clock.advance(1)
            cache.set(f"k{i}", i)
            assert len(cache) <= cache.max_size

    def test_evicts_least_recently_accessed(self, cache: ResponseCache, clock: FakeClock) -> None:
        """When full, the oldest fifth by last access is dropped first."""
        for i in range(10):
            clock.advance(1)
            cache.set(f"k{i}", i)
        # touch the two oldest so k2 and k3 become least recently used
        clock.advance(1)
        cache.get("k0")
        cache.get("k1")

        clock.advance(1)
        cache.set("new", "value")

        assert len(cache) == 9
        assert not cache.has("k2")
        assert not cache.has("k3")
        assert cache.get("k0") == 0
        assert cache.get("k1") == 1
        assert cache.get("new") == "value"

    def test_overwrite_does_not_evict(self, cache: ResponseCache) -> None:
        for i in range(10):
            cache.set(f"k{i}", i)

        cache.set("k5", "updated")

        assert len(cache) == 10
        assert cache.get("k5") == "updated"


class TestInvalidation:
    """Tests for clear, clear_type, invalidate and sweep."""

    def test_clear_type(self, cache: ResponseCache) -> None:
        cache.set("a", 1, ResourceType.PROFILES)
        cache.set("b", 2, ResourceType.PROFILES)
        cache.set("c", 3, ResourceType.LISTS)

        removed = cache.clear_type("profiles")

        assert removed == 2
        assert cache.stats()["by_type"] == {"lists": 1}

    def test_invalidate_pattern(self, cache: ResponseCache) -> None:
        cache.set(make_cache_key("GET", "/api/lists/L1"), 1)
        cache.set(make_cache_key("GET", "/api/lists/L1/profiles"), 2)
        cache.set(make_cache_key("GET", "/api/lists/L2"), 3)

        removed = cache.invalidate(r"/api/lists/L1\b")

        assert removed == 2
        assert len(cache) == 1

    def test_clear(self, cache: ResponseCache) -> None:
        cache.set("a", 1)
        cache.clear()

        assert len(cache) == 0

    def test_sweep_expired(self, cache: ResponseCache, clock: FakeClock) -> None:
        cache.set("short", 1, ResourceType.PROFILES)
        cache.set("long", 2, ResourceType.METRICS)
        clock.advance(301)

        assert cache.sweep_expired() == 1
        assert cache._entries.keys() == {"long"}  # noqa: SLF001

    def test_stats(self, cache: ResponseCache) -> None:
        cache.set("a", 1, ResourceType.FLOWS)

        assert cache.stats() == {"enabled": True, "size": 1, "max_size": 10, "by_type": {"flows": 1}}


class TestLifecycle:
    """Tests for the background sweep task."""

    def test_background_sweep_removes_expired(self, clock: FakeClock) -> None:
        cache = ResponseCache(sweep_interval=0.01, clock=clock)
        cache.set("a", 1, ResourceType.PROFILES)
        clock.advance(1000)

        async def run():
            cache.start()
            await asyncio.sleep(0.1)
            size = len(cache._entries)  # noqa: SLF001
            await cache.shutdown()
            return size

        assert asyncio.run(run()) == 0

    def test_shutdown_clears_entries(self, clock: FakeClock) -> None:
        cache = ResponseCache(clock=clock)

        async def run():
            cache.start()
            cache.set("a", 1)
            await cache.shutdown()

        asyncio.run(run())

        assert len(cache) == 0

    def test_start_outside_loop_fails(self) -> None:
        with pytest.raises(RuntimeError):
            ResponseCache().start()
