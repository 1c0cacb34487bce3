"""
Tests for core.security.cache.TTLCache
"""
import pytest

from core.security.cache import TTLCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


class TestTTLCache:
    def test_get_set(self, clock):
        cache = TTLCache(ttl_seconds=60, clock=clock)
        cache.set("user:1:effective", {"a"})
        assert cache.get("user:1:effective") == {"a"}
        assert cache.get("missing", "default") == "default"

    def test_entries_expire(self, clock):
        cache = TTLCache(ttl_seconds=60, clock=clock)
        cache.set("k", 1)
        clock.advance(59)
        assert cache.get("k") == 1
        clock.advance(1)
        assert cache.get("k") is None
        assert len(cache) == 0

    def test_per_entry_ttl(self, clock):
        cache = TTLCache(ttl_seconds=60, clock=clock)
        cache.set("short", 1, ttl=5)
        clock.advance(10)
        assert "short" not in cache

    def test_invalid_max_size(self):
        with pytest.raises(ValueError):
            TTLCache(ttl_seconds=1, max_size=0)

    # ── Eviction ──

    def test_evicts_oldest_when_full(self, clock):
        cache = TTLCache(ttl_seconds=60, max_size=2, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)
        assert "a" not in cache
        assert cache.get("b") == 2
        assert cache.get("c") == 3

    def test_evicts_expired_first(self, clock):
        cache = TTLCache(ttl_seconds=60, max_size=2, clock=clock)
        cache.set("a", 1, ttl=1)
        cache.set("b", 2)
        clock.advance(5)
        cache.set("c", 3)
        assert cache.get("b") == 2
        assert cache.get("c") == 3
        assert len(cache) == 2

    def test_overwrite_does_not_evict(self, clock):
        cache = TTLCache(ttl_seconds=60, max_size=2, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("a", 10)
        assert cache.get("a") == 10
        assert cache.get("b") == 2

    # ── Invalidation ──

    def test_delete_prefix(self, clock):
        cache = TTLCache(ttl_seconds=60, clock=clock)
        cache.set("user:1:effective", 1)
        cache.set("user:1:roles", 2)
        cache.set("user:12:effective", 3)
        assert cache.delete_prefix("user:1:") == 2
        assert cache.get("user:12:effective") == 3

    def test_delete(self, clock):
        cache = TTLCache(ttl_seconds=60, clock=clock)
        cache.set("k", 1)
        assert cache.delete("k") is True
        assert cache.delete("k") is False

    def test_purge_expired(self, clock):
        cache = TTLCache(ttl_seconds=60, clock=clock)
        cache.set("a", 1, ttl=1)
        cache.set("b", 2)
        clock.advance(2)
        assert cache.purge_expired() == 1
        assert len(cache) == 1

    def test_stats_and_clear(self, clock):
        cache = TTLCache(ttl_seconds=60, max_size=50, clock=clock)
        cache.set("k", 1)
        cache.get("k")
        cache.get("nope")
        stats = cache.stats()
        assert stats == {"size": 1, "max_size": 50, "ttl_seconds": 60, "hits": 1, "misses": 1}
        cache.clear()
        assert cache.stats()["size"] == 0
        assert cache.hits == 0
