"""
Decision cache package.

Provides the bounded in-process cache used to memoize access decisions.
Entries carry a time-to-live and the cache evicts least recently used
keys once ``max_size`` is exceeded.
"""

from .lru_cache import LruCache, CacheEntry

__all__ = ["LruCache", "CacheEntry"]
