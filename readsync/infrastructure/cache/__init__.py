"""Cache helpers."""

from readsync.infrastructure.cache.ttl_cache import CacheEntry, TtlCache, is_expired

__all__ = [
    "CacheEntry",
    "TtlCache",
    "is_expired",
]
