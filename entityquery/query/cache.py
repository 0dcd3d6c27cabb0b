"""
Result cache for entityquery.

Maps plan fingerprints to previously fetched results.

Features:
- LRU eviction bounded by entry count
- Optional time-to-live
- Thread-safe get/put from multiple workers

Entries are immutable: results are deep-copied on the way in and on the
way out, and a ``put`` for an existing key swaps the whole entry. The lock
guards the map structure only.

Example:
    >>> cache = ResultCache(max_entries=512, ttl_seconds=60)
    >>> cache.put(plan.fingerprint, records)
    >>> entry = cache.get(plan.fingerprint)
    >>> if entry is not None:
    ...     records = entry.result
"""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, Optional
import copy
import threading
import time

from ..core.exceptions import CacheError
from ..utils.logging import get_logger


logger = get_logger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    """A cached result. Never mutated after insertion."""

    fingerprint: str
    result: Any
    stored_at: float

    def age(self, now: Optional[float] = None) -> float:
        return (now if now is not None else time.time()) - self.stored_at


@dataclass
class CacheStats:
    """Statistics about the cache."""

    entries: int = 0
    hits: int = 0
    misses: int = 0
    puts: int = 0
    evictions: int = 0
    expirations: int = 0

    def to_dict(self) -> Dict[str, Any]:
        lookups = self.hits + self.misses
        return {
            "entries": self.entries,
            "hits": self.hits,
            "misses": self.misses,
            "puts": self.puts,
            "evictions": self.evictions,
            "expirations": self.expirations,
            "hit_rate": self.hits / lookups if lookups > 0 else 0,
        }


class ResultCache:
    """
    In-memory LRU cache of query results keyed by fingerprint.

    Args:
        max_entries: Maximum number of cached results
        ttl_seconds: Entry lifetime; None keeps entries until evicted
    """

    def __init__(
        self,
        max_entries: int = 1024,
        ttl_seconds: Optional[float] = None,
    ):
        if max_entries <= 0:
            raise ValueError(f"max_entries must be positive, got {max_entries}")
        if ttl_seconds is not None and ttl_seconds <= 0:
            raise ValueError(f"ttl_seconds must be positive, got {ttl_seconds}")

        self._max_entries = max_entries
        self._ttl_seconds = ttl_seconds
        self._entries: "OrderedDict[str, CacheEntry]" = OrderedDict()
        self._lock = threading.Lock()
        self._stats = CacheStats()

    @property
    def max_entries(self) -> int:
        return self._max_entries

    @property
    def ttl_seconds(self) -> Optional[float]:
        return self._ttl_seconds

    def get(self, fingerprint: str) -> Optional[CacheEntry]:
        """
        Look up an entry.

        Returns:
            A copy of the entry stored under exactly this fingerprint, or
            None on a miss

        Raises:
            CacheError: If the stored result cannot be copied out
        """
        now = time.time()

        with self._lock:
            entry = self._entries.get(fingerprint)

            if entry is not None and self._expired(entry, now):
                del self._entries[fingerprint]
                self._stats.expirations += 1
                entry = None

            if entry is None:
                self._stats.misses += 1
                return None

            self._entries.move_to_end(fingerprint)
            self._stats.hits += 1

        try:
            result = copy.deepcopy(entry.result)
        except Exception as e:
            raise CacheError(f"Failed to copy cached result: {e}") from e

        return CacheEntry(entry.fingerprint, result, entry.stored_at)

    def put(self, fingerprint: str, result: Any) -> CacheEntry:
        """
        Store a result, replacing any entry under the same fingerprint.

        Raises:
            CacheError: If the result cannot be copied in
        """
        try:
            frozen = copy.deepcopy(result)
        except Exception as e:
            raise CacheError(f"Failed to copy result into cache: {e}") from e

        entry = CacheEntry(fingerprint, frozen, time.time())

        with self._lock:
            self._entries[fingerprint] = entry
            self._entries.move_to_end(fingerprint)
            self._stats.puts += 1

            while len(self._entries) > self._max_entries:
                evicted, _ = self._entries.popitem(last=False)
                self._stats.evictions += 1
                logger.debug(f"Evicted cache entry {evicted[:24]}")

        return entry

    def invalidate(self, fingerprint: str) -> bool:
        """Drop one entry. Returns True if it existed."""
        with self._lock:
            return self._entries.pop(fingerprint, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def stats(self) -> CacheStats:
        with self._lock:
            stats = copy.copy(self._stats)
            stats.entries = len(self._entries)
        return stats

    def _expired(self, entry: CacheEntry, now: float) -> bool:
        return self._ttl_seconds is not None and entry.age(now) > self._ttl_seconds

    def __contains__(self, fingerprint: str) -> bool:
        with self._lock:
            entry = self._entries.get(fingerprint)
            return entry is not None and not self._expired(entry, time.time())

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __repr__(self) -> str:
        return f"ResultCache(entries={len(self)}, max_entries={self._max_entries})"
