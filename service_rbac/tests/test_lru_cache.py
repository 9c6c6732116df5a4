"""
Unit tests for the decision LRU cache.
"""

import re
import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_rbac.app.cache.lru_cache import LruCache
from shared.errors import ConfigurationError


class TestLruCache:
    """Test cases for LruCache."""

    @pytest.fixture
    def cache(self, clock):
        """Create a small cache driven by the fake clock."""
        return LruCache(max_size=3, default_ttl=10, clock=clock)

    def test_set_and_get(self, cache):
        """Test storing and reading a value."""
        cache.set("a", 1)

        assert cache.get("a") == 1
        assert cache.has("a") is True
        assert "a" in cache

    def test_get_missing_returns_none(self, cache):
        """Test reading an absent key."""
        assert cache.get("missing") is None
        assert cache.has("missing") is False

    def test_falsy_values_are_hits(self, cache):
        """Test that stored False is distinguishable from a miss."""
        cache.set("flag", False)

        assert cache.get("flag") is False
        assert cache.has("flag") is True

    def test_stored_none_is_present(self, cache, clock):
        """Test that has() tells a stored None from a miss."""
        cache.set("empty", None)

        assert cache.get("empty") is None
        assert cache.has("empty") is True
        assert cache.has("missing") is False

        clock.advance(11)
        assert cache.has("empty") is False

    @pytest.mark.parametrize("max_size", [0, -1])
    def test_non_positive_max_size_rejected(self, max_size):
        """Test that an always-evicting cache cannot be built."""
        with pytest.raises(ConfigurationError) as exc_info:
            LruCache(max_size=max_size)

        assert exc_info.value.code == "CONFIGURATION_ERROR"

    def test_negative_default_ttl_rejected(self):
        """Test invalid default TTL."""
        with pytest.raises(ConfigurationError):
            LruCache(max_size=10, default_ttl=-1)

    def test_overflow_evicts_least_recently_inserted(self, cache):
        """Test that max_size + 1 inserts leave max_size entries."""
        for key in ("a", "b", "c", "d"):
            cache.set(key, key.upper())

        assert len(cache) == 3
        assert cache.keys() == ["b", "c", "d"]
        assert cache.get_stats()["evictions"] == 1

    def test_get_protects_key_from_eviction(self, cache):
        """Test that touching an old key keeps it alive."""
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)

        assert cache.get("a") == 1
        cache.set("d", 4)

        assert cache.get("a") == 1
        assert cache.get("b") is None
        assert len(cache) == 3

    def test_overwrite_moves_key_to_most_recent(self, cache):
        """Test that re-setting a key refreshes its recency."""
        cache.set("a", 1)
        cache.set("b", 2)
        cache.set("c", 3)
        cache.set("a", 10)
        cache.set("d", 4)

        assert cache.get("a") == 10
        assert "b" not in cache.keys()

    def test_entry_alive_until_ttl(self, cache, clock):
        """Test TTL boundaries."""
        cache.set("a", 1, ttl=5)

        clock.advance(4)
        assert cache.get("a") == 1

        clock.advance(2)
        assert cache.get("a") is None
        assert "a" not in cache.keys()

    def test_default_ttl_used(self, cache, clock):
        """Test that entries without a TTL use the default."""
        cache.set("a", 1)

        clock.advance(9)
        assert cache.get("a") == 1

        clock.advance(11)
        assert cache.get("a") is None

    def test_zero_ttl_expires_on_next_access(self, cache, clock):
        """Test that an explicit zero TTL is not replaced by the default."""
        cache.set("a", 1, ttl=0)

        clock.advance(0.001)
        assert cache.get("a") is None

    def test_cleanup_removes_only_expired(self, cache, clock):
        """Test eager expiry."""
        cache.set("short", 1, ttl=1)
        cache.set("long", 2, ttl=100)

        clock.advance(5)
        removed = cache.cleanup()

        assert removed == 1
        assert cache.keys() == ["long"]

    def test_delete_and_clear(self, cache):
        """Test explicit removal."""
        cache.set("a", 1)
        cache.set("b", 2)

        assert cache.delete("a") is True
        assert cache.delete("a") is False

        cache.clear()
        assert len(cache) == 0

    def test_invalidate_pattern_regex(self, clock):
        """Test invalidation with a compiled regex."""
        cache = LruCache(max_size=10, clock=clock)
        cache.set("rbac:role:user-1:admin:{}", True)
        cache.set("rbac:permission:user-1:read:{}", True)
        cache.set("rbac:role:user-2:admin:{}", True)

        removed = cache.invalidate_pattern(re.compile(r"^rbac:\w+:user-1:"))

        assert removed == 2
        assert cache.keys() == ["rbac:role:user-2:admin:{}"]

    def test_invalidate_pattern_predicate(self, clock):
        """Test invalidation with a callable."""
        cache = LruCache(max_size=10, clock=clock)
        cache.set("x:1", 1)
        cache.set("y:1", 2)

        removed = cache.invalidate_pattern(lambda key: key.startswith("x:"))

        assert removed == 1
        assert cache.keys() == ["y:1"]

    def test_refresh_restarts_ttl(self, cache, clock):
        """Test refreshing an entry."""
        cache.set("a", 1, ttl=5)
        clock.advance(4)

        assert cache.refresh("a", ttl=5) is True
        clock.advance(4)

        assert cache.get("a") == 1
        assert cache.refresh("missing") is False

    def test_stats(self, cache, clock):
        """Test statistics without side effects."""
        cache.set("a", 1, ttl=1)
        cache.set("b", 2)
        cache.get("b")
        cache.get("missing")
        clock.advance(2)

        stats = cache.get_stats()

        assert stats["size"] == 2
        assert stats["max_size"] == 3
        assert stats["hits"] == 1
        assert stats["misses"] == 1
        assert stats["hit_rate"] == 0.5
        assert stats["expired_entries"] == 1
        assert len(cache) == 2
