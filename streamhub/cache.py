"""Thread-safe bounded LRU map.

Backs the Twitch lookup caches (external id -> identity) and the webhook
dedup cache (message id -> timestamp). Capacity is a hard bound: every
insert that would exceed it evicts the least recently used entry while
holding the lock, so concurrent writers can never push the size past
``maxsize``.
"""

from __future__ import annotations

import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Generic, Hashable, TypeVar

V = TypeVar("V")

_MISSING = object()


@dataclass
class CacheStats:
    """Point-in-time statistics for an LRUCache."""

    size: int
    maxsize: int
    hits: int
    misses: int

    @property
    def hit_rate(self) -> float:
        total = self.hits + self.misses
        return self.hits / total if total else 0.0


class LRUCache(Generic[V]):
    """Fixed-capacity least-recently-used cache."""

    def __init__(self, maxsize: int = 128):
        if maxsize < 1:
            raise ValueError("maxsize must be >= 1")
        self._maxsize = maxsize
        self._data: OrderedDict[Hashable, V] = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0

    @property
    def maxsize(self) -> int:
        return self._maxsize

    def get(self, key: Hashable, default: V | None = None) -> V | None:
        """Return the cached value and mark it as most recently used."""
        with self._lock:
            value = self._data.get(key, _MISSING)
            if value is _MISSING:
                self._misses += 1
                return default
            self._data.move_to_end(key)
            self._hits += 1
            return value

    def set(self, key: Hashable, value: V) -> None:
        with self._lock:
            self._data[key] = value
            self._data.move_to_end(key)
            while len(self._data) > self._maxsize:
                self._data.popitem(last=False)

    def stats(self) -> CacheStats:
        with self._lock:
            return CacheStats(
                size=len(self._data),
                maxsize=self._maxsize,
                hits=self._hits,
                misses=self._misses,
            )

    def __contains__(self, key: Hashable) -> bool:
        # Membership checks do not refresh recency or touch the counters.
        with self._lock:
            return key in self._data

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
