# @TASK P2-T2.3 - Embedding cache with hit counting and least-used eviction
# @TEST tests/test_cache.py

"""Bounded in-memory embedding cache.

Two independent policies apply:

* **Staleness** (read side): an entry older than ``ttl_seconds`` is a miss.
  It stays in the cache until it is overwritten or evicted.
* **Capacity** (write side): once the cache grows past ``max_entries``,
  the ``evict_count`` entries with the fewest hits are removed.  Ties are
  broken by write order, oldest first.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

COMPRESSION_THRESHOLD = 1000


@dataclass(slots=True)
class CacheEntry:
    embedding: list[float]
    created_at: float
    hits: int = 1
    compressed: bool = False


def cache_key(text: str) -> str:
    """Content-derived cache key for *text*."""
    return "emb:" + hashlib.sha256(text.encode("utf-8")).hexdigest()


class EmbeddingCache:
    """Map of text hash to embedding vector.

    Args:
        max_entries: Size above which eviction runs.
        evict_count: Number of entries removed per eviction.
        ttl_seconds: Age after which an entry is treated as a miss.
        clock: Returns the current time in seconds (injectable for tests).
    """

    def __init__(
        self,
        max_entries: int = 500,
        evict_count: int = 100,
        ttl_seconds: float = 24 * 60 * 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._max_entries = max_entries
        self._evict_count = evict_count
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}

    @property
    def max_entries(self) -> int:
        return self._max_entries

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, text: str) -> bool:
        return cache_key(text) in self._entries

    def get_entry(self, text: str) -> CacheEntry | None:
        """Return the raw entry for *text* without touching hit counts."""
        return self._entries.get(cache_key(text))

    def lookup(self, text: str) -> list[float] | None:
        """Return the cached embedding for *text*, or ``None`` on a miss."""
        entry = self._entries.get(cache_key(text))
        if entry is None:
            return None
        if self._clock() - entry.created_at >= self._ttl_seconds:
            return None
        entry.hits += 1
        return entry.embedding

    def store(self, text: str, embedding: list[float]) -> None:
        """Insert or overwrite the entry for *text*, then enforce capacity."""
        key = cache_key(text)
        # Re-inserting moves the key to the end so ties evict by write order.
        self._entries.pop(key, None)
        self._entries[key] = CacheEntry(
            embedding=embedding,
            created_at=self._clock(),
            hits=1,
            compressed=len(json.dumps(embedding)) > COMPRESSION_THRESHOLD,
        )
        self.evict_if_over_capacity()

    def evict_if_over_capacity(self) -> int:
        """Remove the least-hit entries when over capacity. Returns the count removed."""
        if len(self._entries) <= self._max_entries:
            return 0

        # sorted() is stable, so equal hit counts keep insertion order.
        victims = sorted(self._entries.items(), key=lambda item: item[1].hits)[: self._evict_count]
        for key, _entry in victims:
            del self._entries[key]

        logger.info("Cleaned up %d embedding cache entries", len(victims))
        return len(victims)

    def clear(self) -> None:
        self._entries.clear()

    def stats(self) -> dict[str, int]:
        return {
            "size": len(self._entries),
            "total_hits": sum(entry.hits for entry in self._entries.values()),
            "compressed": sum(1 for entry in self._entries.values() if entry.compressed),
        }
