"""Fixed-capacity result cache for the dispatcher.

Entries expire after a TTL and are evicted frequency-first: when the
cache is full, the entry with the fewest reads goes, and among equally
read entries the one idle the longest goes. This is deliberately not
LRU. An entry read many times survives a burst of one-off inserts even
if it has been idle for a while.

Expiry is lazy: an expired entry is dropped when a read touches it,
there is no background sweeper.
"""

import json
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Generic, List, Optional, TypeVar

import structlog

from .models import CacheStats

logger = structlog.get_logger("policydesk.cache")

V = TypeVar("V")

DEFAULT_MAX_SIZE = 100
DEFAULT_TTL_MS = 5 * 60 * 1000


@dataclass
class CacheEntry(Generic[V]):
    """A cached value plus its access bookkeeping."""
    value: V
    expires_at: float
    access_count: int = 0
    last_accessed_at: float = 0.0


class SmartCache(Generic[V]):
    """Key -> value store with TTL expiry and frequency-then-recency eviction.

    Every public method holds an internal lock, so a single call is
    atomic even when the cache is shared across threads.

    Args:
        max_size: Capacity bound. Must be at least 1.
        ttl_ms: Lifetime of an entry in milliseconds.
        clock: Monotonic time source in seconds. Injectable for tests.
    """

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        ttl_ms: int = DEFAULT_TTL_MS,
        clock: Callable[[], float] = time.monotonic,
    ):
        if max_size < 1:
            raise ValueError(f"max_size must be >= 1, got {max_size}")
        if ttl_ms < 1:
            raise ValueError(f"ttl_ms must be >= 1, got {ttl_ms}")
        self.max_size = max_size
        self.ttl_ms = ttl_ms
        self._clock = clock
        self._entries: Dict[str, CacheEntry[V]] = {}
        self._lock = threading.RLock()
        self._hits = 0
        self._misses = 0
        self._evictions = 0

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    def set(self, key: str, value: V) -> None:
        """Store ``value`` under ``key`` with a fresh TTL and zero reads.

        When the key is new and the cache is full, exactly one entry is
        evicted first. Replacing an existing key never evicts.
        """
        with self._lock:
            now = self._clock()
            if key in self._entries:
                del self._entries[key]
            elif len(self._entries) >= self.max_size:
                self._evict_one()
            self._entries[key] = CacheEntry(
                value=value,
                expires_at=now + self.ttl_ms / 1000.0,
                access_count=0,
                last_accessed_at=now,
            )

    def get(self, key: str) -> Optional[V]:
        """Return the value for ``key``, or None if absent or expired.

        A hit bumps the entry's read count and last-access time.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None

            now = self._clock()
            if now > entry.expires_at:
                del self._entries[key]
                self._misses += 1
                logger.debug("cache_entry_expired", key=key)
                return None

            entry.access_count += 1
            entry.last_accessed_at = now
            self._hits += 1
            return entry.value

    def has(self, key: str) -> bool:
        """Same as ``get(key) is not None``; expired counts as absent."""
        return self.get(key) is not None

    def delete(self, key: str) -> bool:
        """Remove ``key``. Returns True if it was present."""
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        """Drop every entry. Hit/miss counters are kept."""
        with self._lock:
            self._entries.clear()

    def purge_expired(self) -> int:
        """Drop every expired entry now. Returns how many were dropped.

        Never called by the cache itself; hosts may call it to bound
        memory held by entries nobody reads any more.
        """
        with self._lock:
            now = self._clock()
            expired = [k for k, e in self._entries.items() if now > e.expires_at]
            for key in expired:
                del self._entries[key]
            return len(expired)

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    def stats(self) -> CacheStats:
        """Return size, capacity, hit rate and a rough memory estimate."""
        with self._lock:
            total = self._hits + self._misses
            return CacheStats(
                size=len(self._entries),
                max_size=self.max_size,
                hit_rate=self._hits / total if total else 0.0,
                approx_memory_bytes=self._estimate_memory(),
                hits=self._hits,
                misses=self._misses,
                evictions=self._evictions,
            )

    def keys(self) -> List[str]:
        """Keys currently stored, including not-yet-purged expired ones."""
        with self._lock:
            return list(self._entries)

    def peek(self, key: str) -> Optional[CacheEntry[V]]:
        """Return the raw entry without touching its counters or expiry."""
        with self._lock:
            return self._entries.get(key)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.has(key)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _evict_one(self) -> None:
        """Evict the least-read entry; ties go to the longest idle.

        ``min`` keeps the first of equal candidates, so remaining ties
        fall back to insertion order. Linear in cache size, which is
        bounded by ``max_size``.
        """
        if not self._entries:
            return
        victim = min(
            self._entries,
            key=lambda k: (
                self._entries[k].access_count,
                self._entries[k].last_accessed_at,
            ),
        )
        evicted = self._entries.pop(victim)
        self._evictions += 1
        logger.debug(
            "cache_entry_evicted",
            key=victim,
            access_count=evicted.access_count,
        )

    def _estimate_memory(self) -> int:
        # Rough UTF-16 estimate, good enough for a stats readout
        total = 0
        for key, entry in self._entries.items():
            total += len(key) * 2
            total += len(_to_json(entry.value)) * 2
        return total


def _to_json(value: Any) -> str:
    if hasattr(value, "model_dump_json"):
        return value.model_dump_json()
    try:
        return json.dumps(value, default=str)
    except (TypeError, ValueError):
        return repr(value)
