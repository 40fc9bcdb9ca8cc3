"""Unit tests for the process-local MemoryCache (LRU + TTL + pinned entries)."""

import pytest

from asset_portal.infrastructure.cache import MemoryCache

pytestmark = pytest.mark.unit


class TestMemoryCache:
    def test_set_then_get_returns_value(self, fake_clock):
        cache = MemoryCache(max_size=10, ttl_seconds=60, clock=fake_clock)

        cache.set("jobs", [{"id": 1}])

        assert cache.get("jobs") == [{"id": 1}]
        assert cache.stats()["hits"] == 1

    def test_missing_key_counts_as_miss(self, fake_clock):
        cache = MemoryCache(max_size=10, ttl_seconds=60, clock=fake_clock)

        assert cache.get("nope") is None
        assert cache.stats()["misses"] == 1

    def test_entries_expire_after_ttl(self, fake_clock):
        cache = MemoryCache(max_size=10, ttl_seconds=60, clock=fake_clock)
        cache.set("k", "v")

        fake_clock.advance(61)

        assert cache.get("k") is None
        assert cache.stats()["expired"] == 1

    def test_per_call_ttl_overrides_default(self, fake_clock):
        cache = MemoryCache(max_size=10, ttl_seconds=60, clock=fake_clock)
        cache.set("short", "v", ttl_seconds=5)

        fake_clock.advance(6)

        assert cache.get("short") is None

    def test_pinned_entries_never_expire(self, fake_clock):
        cache = MemoryCache(max_size=10, ttl_seconds=60, clock=fake_clock)
        cache.set("jobs", ["a"], ttl_seconds=0)

        fake_clock.advance(10_000)

        assert cache.get("jobs") == ["a"]

    def test_lru_eviction_skips_pinned_entries(self, fake_clock):
        cache = MemoryCache(max_size=2, ttl_seconds=60, clock=fake_clock)
        cache.set("pinned", 1, ttl_seconds=0)
        cache.set("a", 2)

        cache.set("b", 3)

        assert cache.get("pinned") == 1
        assert cache.get("a") is None
        assert cache.get("b") == 3
        assert cache.stats()["evictions"] == 1

    def test_get_refreshes_recency(self, fake_clock):
        cache = MemoryCache(max_size=2, ttl_seconds=60, clock=fake_clock)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.get("a")

        cache.set("c", 3)

        assert cache.get("a") == 1
        assert cache.get("b") is None

    def test_negative_ttl_is_rejected(self):
        cache = MemoryCache()

        with pytest.raises(ValueError):
            cache.set("k", "v", ttl_seconds=-1)

    def test_delete_and_clear(self):
        cache = MemoryCache()
        cache.set("a", 1)
        cache.set("b", 2, ttl_seconds=0)

        assert cache.delete("a") is True
        assert cache.delete("a") is False

        cache.clear()
        assert cache.get("b") is None
        assert cache.stats()["size"] == 0

    def test_invalid_construction(self):
        with pytest.raises(ValueError):
            MemoryCache(max_size=0)
        with pytest.raises(ValueError):
            MemoryCache(ttl_seconds=0)
