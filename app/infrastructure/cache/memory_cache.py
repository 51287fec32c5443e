"""
In-memory TTL cache partitioned by result kind.
Entries expire lazily on read; each partition is bounded by entry count and
evicts the oldest insertions first.
"""

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from app.core.config import settings
from app.core.logging import LoggerMixin, log_cache_event


class CacheKind(str, Enum):
    """Cache partitions."""

    GENERIC = "generic"
    TRANSFERS = "transfers"
    PROFILES = "profiles"
    FRIENDS = "friends"


@dataclass(frozen=True)
class CacheEntry:
    """A cached value and its absolute expiry on the cache clock."""

    value: Any
    expires_at: float


class _Partition:
    """One kind's store. Writers take the lock; readers never do."""

    def __init__(self, max_entries: int):
        self.max_entries = max_entries
        self.entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self.lock = threading.Lock()

    def discard(self, key: str, entry: CacheEntry) -> None:
        with self.lock:
            # Only drop the entry we saw; a concurrent set may have replaced it.
            if self.entries.get(key) is entry:
                del self.entries[key]

    def put(self, key: str, entry: CacheEntry) -> int:
        evicted = 0
        with self.lock:
            self.entries.pop(key, None)
            self.entries[key] = entry
            while len(self.entries) > self.max_entries:
                self.entries.popitem(last=False)
                evicted += 1
        return evicted


class MemoryCache(LoggerMixin):
    """Process-wide key/value store with per-kind TTLs and size bounds."""

    def __init__(
        self,
        ttls: Optional[Dict[str, int]] = None,
        max_entries: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._ttls = dict(ttls or settings.cache_ttls())
        self._max_entries = max_entries or settings.CACHE_MAX_ENTRIES
        self._clock = clock
        self._partitions: Dict[CacheKind, _Partition] = {
            kind: _Partition(self._max_entries) for kind in CacheKind
        }

    def default_ttl(self, kind: CacheKind) -> int:
        """Configured TTL for a kind, in seconds."""
        return self._ttls.get(CacheKind(kind).value, settings.CACHE_TTL_GENERIC)

    def get(self, kind: CacheKind, key: str) -> Optional[Any]:
        """Return the value iff present and not expired."""
        kind = CacheKind(kind)
        partition = self._partitions[kind]
        entry = partition.entries.get(key)
        if entry is None:
            log_cache_event(kind.value, key, "miss")
            return None

        if self._clock() >= entry.expires_at:
            partition.discard(key, entry)
            log_cache_event(kind.value, key, "expired")
            return None

        log_cache_event(kind.value, key, "hit")
        return entry.value

    def set(self, kind: CacheKind, key: str, value: Any, ttl: Optional[float] = None) -> None:
        """Store a value, replacing any previous entry for the key."""
        kind = CacheKind(kind)
        seconds = self.default_ttl(kind) if ttl is None else ttl
        entry = CacheEntry(value=value, expires_at=self._clock() + seconds)
        evicted = self._partitions[kind].put(key, entry)
        log_cache_event(kind.value, key, "set", ttl=seconds)
        if evicted:
            self.logger.info(f"Evicted {evicted} oldest {kind.value} cache entries")

    def delete(self, kind: CacheKind, key: str) -> bool:
        """Remove a key; returns True when something was removed."""
        partition = self._partitions[CacheKind(kind)]
        with partition.lock:
            return partition.entries.pop(key, None) is not None

    def clear(self, kind: CacheKind) -> None:
        """Drop every entry of one kind."""
        partition = self._partitions[CacheKind(kind)]
        with partition.lock:
            partition.entries.clear()

    def clear_all(self) -> None:
        """Drop every entry of every kind."""
        for kind in CacheKind:
            self.clear(kind)

    def size(self, kind: CacheKind) -> int:
        """Number of stored entries (expired ones included until read)."""
        return len(self._partitions[CacheKind(kind)].entries)

    def stats(self) -> Dict[str, int]:
        """Entry count per kind."""
        return {kind.value: self.size(kind) for kind in CacheKind}


# Global in-memory cache instance
memory_cache = MemoryCache()


def get_memory_cache() -> MemoryCache:
    """
    Get memory cache instance.

    Returns:
        MemoryCache: Process-wide cache instance
    """
    return memory_cache
