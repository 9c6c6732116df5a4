"""
In-process TTL + LRU cache for RBAC decisions.
"""

import re
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, List, Optional, Pattern, TypeVar, Union

from shared.logging import get_logger
from shared.errors import ConfigurationError


T = TypeVar("T")

KeyMatcher = Union[str, Pattern[str], Callable[[str], bool]]


@dataclass
class CacheEntry(Generic[T]):
    """Cached value with its insertion time and time-to-live (seconds)."""
    value: T
    timestamp: float
    ttl: float
    key: str

    def is_expired(self, now: float) -> bool:
        return now - self.timestamp > self.ttl


def _as_predicate(matcher: KeyMatcher) -> Callable[[str], bool]:
    if isinstance(matcher, str):
        matcher = re.compile(matcher)
    if hasattr(matcher, "search"):
        return lambda key: matcher.search(key) is not None
    return matcher


class LruCache(Generic[T]):
    """Bounded key/value store with per-entry expiry and LRU eviction.

    Entries are kept in access order (oldest first), so eviction and
    recency updates are O(1). Expired entries are dropped lazily on
    access or eagerly through :meth:`cleanup`.
    """

    def __init__(
        self,
        max_size: int = 1000,
        default_ttl: float = 300.0,
        clock: Optional[Callable[[], float]] = None,
        name: str = "decisions"
    ):
        if max_size <= 0:
            raise ConfigurationError(
                "Cache max_size must be positive",
                details={"max_size": max_size}
            )
        if default_ttl < 0:
            raise ConfigurationError(
                "Cache default_ttl must not be negative",
                details={"default_ttl": default_ttl}
            )

        self.max_size = max_size
        self.default_ttl = default_ttl
        self.name = name
        self.logger = get_logger(f"rbac.cache.{name}")
        self._clock = clock or time.monotonic
        self._entries: "OrderedDict[str, CacheEntry[T]]" = OrderedDict()

        self.hits = 0
        self.misses = 0
        self.evictions = 0

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.has(key)

    def set(self, key: str, value: T, ttl: Optional[float] = None) -> None:
        """Insert or overwrite ``key`` and mark it most recently used."""
        entry = CacheEntry(
            value=value,
            timestamp=self._clock(),
            ttl=self.default_ttl if ttl is None else ttl,
            key=key
        )

        self._entries[key] = entry
        self._entries.move_to_end(key)

        if len(self._entries) > self.max_size:
            evicted_key, _ = self._entries.popitem(last=False)
            self.evictions += 1
            self.logger.debug("Evicted least recently used entry", key=evicted_key)

    def get(self, key: str) -> Optional[T]:
        """Return the cached value, or ``None`` when missing or expired.

        A stored ``None`` is indistinguishable from a miss here; use
        :meth:`has` to tell them apart.
        """
        entry = self._live_entry(key)
        return entry.value if entry is not None else None

    def has(self, key: str) -> bool:
        return self._live_entry(key) is not None

    def _live_entry(self, key: str) -> Optional[CacheEntry[T]]:
        entry = self._entries.get(key)

        if entry is None:
            self.misses += 1
            return None

        if entry.is_expired(self._clock()):
            del self._entries[key]
            self.misses += 1
            return None

        self._entries.move_to_end(key)
        self.hits += 1
        return entry

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def refresh(self, key: str, ttl: Optional[float] = None) -> bool:
        """Restart the TTL of an existing entry without changing its value."""
        entry = self._entries.get(key)
        if entry is None:
            return False

        entry.timestamp = self._clock()
        entry.ttl = self.default_ttl if ttl is None else ttl
        self._entries.move_to_end(key)
        return True

    def cleanup(self) -> int:
        """Remove every expired entry; returns the number removed."""
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]

        for key in expired:
            del self._entries[key]

        if expired:
            self.logger.debug("Expired entries removed", removed_count=len(expired))

        return len(expired)

    def invalidate_pattern(self, matcher: KeyMatcher) -> int:
        """Remove entries whose key matches a regex or predicate."""
        predicate = _as_predicate(matcher)
        matched = [key for key in self._entries if predicate(key)]

        for key in matched:
            del self._entries[key]

        return len(matched)

    def keys(self) -> List[str]:
        """Keys in access order, least recently used first."""
        return list(self._entries.keys())

    def get_stats(self) -> Dict[str, Any]:
        """Get cache statistics."""
        now = self._clock()
        lookups = self.hits + self.misses

        return {
            "size": len(self._entries),
            "max_size": self.max_size,
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": (self.hits / lookups) if lookups else 0.0,
            "evictions": self.evictions,
            "expired_entries": sum(1 for e in self._entries.values() if e.is_expired(now)),
        }
