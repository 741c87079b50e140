"""Bounded in-process cache with per-entry time-to-live."""

from __future__ import annotations

import logging
import time
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Callable

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 100


class CacheNamespace:
    """Namespaces shared by the feature orchestrators."""

    AI_SIMILAR = "ai_similar"
    AI_TRIVIA = "ai_trivia"
    AI_CHAT = "ai_chat"
    AI_RECOMMENDATION = "ai_recommendation"
    AI_INSIGHTS = "ai_insights"
    AI_ANALYSIS = "ai_analysis"


@dataclass(slots=True)
class CacheEntry:
    data: Any
    created_at: float
    ttl: float

    def is_expired(self, now: float) -> bool:
        return now - self.created_at >= self.ttl


class TieredCache:
    """Fast path in front of the durable store.

    Entries live only in process memory. When ``capacity`` is exceeded the
    oldest inserted entry is evicted; reads do not refresh an entry's slot.
    """

    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        *,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity < 1:
            raise ValueError("Cache capacity must be at least 1")
        self._capacity = capacity
        self._clock = clock
        self._entries: OrderedDict[tuple[str, str], CacheEntry] = OrderedDict()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._entries)

    def set(self, namespace: str, key: str, value: Any, ttl: float) -> None:
        """Store ``value`` for ``ttl`` seconds."""

        self._entries[(namespace, key)] = CacheEntry(
            data=value, created_at=self._clock(), ttl=float(ttl)
        )
        while len(self._entries) > self._capacity:
            evicted, _ = self._entries.popitem(last=False)
            logger.debug("Evicted %s/%s from memory cache", *evicted)

    def get(self, namespace: str, key: str) -> Any | None:
        """Return the cached value or ``None`` when absent or expired."""

        cache_key = (namespace, key)
        entry = self._entries.get(cache_key)
        if entry is None:
            return None
        if entry.is_expired(self._clock()):
            del self._entries[cache_key]
            logger.debug("Memory cache entry %s/%s expired", namespace, key)
            return None
        return entry.data

    def delete(self, namespace: str, key: str) -> None:
        self._entries.pop((namespace, key), None)

    def clear(self, namespace: str | None = None) -> None:
        """Drop every entry, or only those under ``namespace``."""

        if namespace is None:
            self._entries.clear()
            return
        for cache_key in [key for key in self._entries if key[0] == namespace]:
            del self._entries[cache_key]
