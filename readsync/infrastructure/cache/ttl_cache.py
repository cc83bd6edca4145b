"""In-process TTL cache for remote fetch results.

Entries carry their insertion time and expiry is decided by the pure
:func:`is_expired` helper, so tests can drive the clock explicitly.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Generic, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable, Hashable

logger = logging.getLogger(__name__)

V = TypeVar("V")


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    value: V
    inserted_at: float


def is_expired(entry: CacheEntry[Any], now: float, ttl: float) -> bool:
    """An entry expires once it is *ttl* seconds old. A non-positive TTL expires everything."""
    if ttl <= 0:
        return True
    return now - entry.inserted_at >= ttl


class TtlCache(Generic[V]):
    """Key -> value map whose entries expire after ``ttl_seconds``.

    ``ttl_seconds <= 0`` disables the cache: ``set`` is a no-op and ``get``
    always misses.
    """

    def __init__(
        self,
        ttl_seconds: float,
        *,
        clock: Callable[[], float] = time.monotonic,
        name: str = "ttl_cache",
    ) -> None:
        self._ttl = float(ttl_seconds)
        self._clock = clock
        self._name = name
        self._entries: dict[Hashable, CacheEntry[V]] = {}

    @property
    def enabled(self) -> bool:
        return self._ttl > 0

    @property
    def ttl_seconds(self) -> float:
        return self._ttl

    def get(self, key: Hashable) -> V | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if is_expired(entry, self._clock(), self._ttl):
            del self._entries[key]
            logger.debug("cache_entry_expired", extra={"cache": self._name, "key": str(key)})
            return None
        logger.debug("cache_hit", extra={"cache": self._name, "key": str(key)})
        return entry.value

    def set(self, key: Hashable, value: V) -> None:
        if not self.enabled:
            return
        self._entries[key] = CacheEntry(value=value, inserted_at=self._clock())

    def invalidate(self, key: Hashable) -> bool:
        """Drop *key*; returns whether an entry was present."""
        return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: object) -> bool:
        entry = self._entries.get(key)  # type: ignore[call-overload]
        return entry is not None and not is_expired(entry, self._clock(), self._ttl)
