"""Tests for the in-process TTL cache."""

import unittest

from readsync.infrastructure.cache import CacheEntry, TtlCache, is_expired


class FakeMonotonic:
    def __init__(self) -> None:
        self.now = 100.0

    def __call__(self) -> float:
        return self.now


class TestIsExpired(unittest.TestCase):
    def test_entry_expires_at_ttl(self):
        entry = CacheEntry(value="x", inserted_at=10.0)

        assert not is_expired(entry, 39.9, 30)
        assert is_expired(entry, 40.0, 30)

    def test_non_positive_ttl_expires_everything(self):
        entry = CacheEntry(value="x", inserted_at=10.0)

        assert is_expired(entry, 10.0, 0)
        assert is_expired(entry, 10.0, -1)


class TestTtlCache(unittest.TestCase):
    def setUp(self):
        self.clock = FakeMonotonic()
        self.cache = TtlCache(30, clock=self.clock, name="test")

    def test_hit_before_expiry(self):
        self.cache.set(("bookmarks", "u1"), [1, 2])
        self.clock.now += 29

        assert self.cache.get(("bookmarks", "u1")) == [1, 2]
        assert ("bookmarks", "u1") in self.cache

    def test_miss_after_expiry_drops_entry(self):
        self.cache.set("k", "v")
        self.clock.now += 30

        assert self.cache.get("k") is None
        assert len(self.cache) == 0

    def test_invalidate(self):
        self.cache.set("k", "v")

        assert self.cache.invalidate("k") is True
        assert self.cache.invalidate("k") is False
        assert self.cache.get("k") is None

    def test_clear(self):
        self.cache.set("a", 1)
        self.cache.set("b", 2)

        self.cache.clear()

        assert len(self.cache) == 0

    def test_disabled_cache_never_stores(self):
        cache = TtlCache(0, clock=self.clock)

        cache.set("k", "v")

        assert not cache.enabled
        assert cache.get("k") is None
        assert "k" not in cache


if __name__ == "__main__":
    unittest.main()
