"""Tests for SmartCache capacity, eviction order and TTL expiry."""

import threading

import pytest

from policydesk.cache import SmartCache


class FakeClock:
    """Manually advanced monotonic clock (seconds)."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


# -------------------------------------------------------------------
# Capacity
# -------------------------------------------------------------------

class TestCapacity:

    @pytest.mark.parametrize("capacity", [1, 2, 5, 20])
    def test_inserting_one_more_than_capacity_keeps_size(self, capacity):
        cache = SmartCache(max_size=capacity)
        for i in range(capacity + 1):
            cache.set(f"k{i}", i)
        assert len(cache) == capacity
        assert cache.stats().evictions == 1

    def test_replacing_existing_key_never_evicts(self):
        cache = SmartCache(max_size=2)
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("a", 10)
        assert len(cache) == 2
        assert cache.get("a") == 10
        assert cache.get("b") == 2
        assert cache.stats().evictions == 0

    def test_replacing_resets_access_count(self):
        cache = SmartCache(max_size=3)
        cache.set("a", 1)
        cache.get("a")
        cache.get("a")
        cache.set("a", 2)
        assert cache.peek("a").access_count == 0

    def test_invalid_sizes_rejected(self):
        with pytest.raises(ValueError):
            SmartCache(max_size=0)
        with pytest.raises(ValueError):
            SmartCache(ttl_ms=0)


# -------------------------------------------------------------------
# Eviction order
# -------------------------------------------------------------------

class TestEviction:

    def test_least_read_oldest_idle_entry_is_evicted(self):
        """k1 read twice; k2 is the oldest of the unread set."""
        clock = FakeClock()
        cache = SmartCache(max_size=3, clock=clock)
        for key in ("k1", "k2", "k3"):
            cache.set(key, key)
            clock.advance(1)
        cache.get("k1")
        cache.get("k1")

        cache.set("k4", "k4")

        assert "k2" not in cache.keys()
        assert sorted(cache.keys()) == ["k1", "k3", "k4"]

    def test_same_timestamp_ties_fall_back_to_insertion_order(self):
        clock = FakeClock()
        cache = SmartCache(max_size=3, clock=clock)
        for key in ("k1", "k2", "k3"):
            cache.set(key, key)
        cache.get("k1")
        cache.get("k1")

        cache.set("k4", "k4")

        assert sorted(cache.keys()) == ["k1", "k3", "k4"]

    def test_frequency_beats_recency(self):
        """A long-idle but frequently read entry outlives fresh one-offs."""
        clock = FakeClock()
        cache = SmartCache(max_size=2, clock=clock)
        cache.set("hot", 1)
        for _ in range(5):
            cache.get("hot")
        clock.advance(60)
        cache.set("fresh", 2)
        clock.advance(1)
        cache.get("fresh")

        cache.set("newer", 3)

        assert "hot" in cache.keys()
        assert "fresh" not in cache.keys()

    def test_recency_breaks_equal_frequency(self):
        clock = FakeClock()
        cache = SmartCache(max_size=2, clock=clock)
        cache.set("a", 1)
        cache.set("b", 2)
        clock.advance(1)
        cache.get("b")
        clock.advance(1)
        cache.get("a")

        cache.set("c", 3)

        assert sorted(cache.keys()) == ["a", "c"]


# -------------------------------------------------------------------
# TTL
# -------------------------------------------------------------------

class TestExpiry:

    def test_entry_unreachable_after_ttl(self):
        clock = FakeClock()
        cache = SmartCache(max_size=10, ttl_ms=1000, clock=clock)
        cache.set("k", "v")

        clock.advance(1.0)
        assert cache.get("k") == "v"

        clock.advance(0.001)
        assert cache.get("k") is None
        assert cache.has("k") is False
        assert len(cache) == 0

    def test_has_reports_expired_as_absent(self):
        clock = FakeClock()
        cache = SmartCache(ttl_ms=500, clock=clock)
        cache.set("k", "v")
        clock.advance(0.6)
        assert cache.has("k") is False
        assert "k" not in cache

    def test_reads_do_not_extend_ttl(self):
        clock = FakeClock()
        cache = SmartCache(ttl_ms=1000, clock=clock)
        cache.set("k", "v")
        clock.advance(0.9)
        assert cache.get("k") == "v"
        clock.advance(0.2)
        assert cache.get("k") is None

    def test_purge_expired(self):
        clock = FakeClock()
        cache = SmartCache(ttl_ms=1000, clock=clock)
        cache.set("old", 1)
        clock.advance(2)
        cache.set("new", 2)
        assert cache.purge_expired() == 1
        assert cache.keys() == ["new"]


# -------------------------------------------------------------------
# Stats and misc
# -------------------------------------------------------------------

class TestStats:

    def test_hit_rate_counts_hits_and_misses(self):
        cache = SmartCache()
        cache.set("a", 1)
        cache.get("a")
        cache.get("a")
        cache.get("missing")
        cache.get("missing")
        stats = cache.stats()
        assert stats.hits == 2
        assert stats.misses == 2
        assert stats.hit_rate == pytest.approx(0.5)

    def test_empty_cache_hit_rate_is_zero(self):
        stats = SmartCache(max_size=7).stats()
        assert stats.size == 0
        assert stats.max_size == 7
        assert stats.hit_rate == 0.0
        assert stats.approx_memory_bytes == 0

    def test_memory_estimate(self):
        cache = SmartCache()
        cache.set("ab", {"x": 1})
        # key "ab" (2) + '{"x": 1}' (8), two bytes per char
        assert cache.stats().approx_memory_bytes == (2 + 8) * 2

    def test_delete_and_clear(self):
        cache = SmartCache()
        cache.set("a", 1)
        cache.set("b", 2)
        assert cache.delete("a") is True
        assert cache.delete("a") is False
        cache.clear()
        assert len(cache) == 0

    def test_concurrent_sets_respect_capacity(self):
        cache = SmartCache(max_size=10)

        def writer(prefix):
            for i in range(200):
                cache.set(f"{prefix}-{i}", i)

        threads = [threading.Thread(target=writer, args=(p,)) for p in "abcd"]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert len(cache) == 10
