"""In-memory cache tier tests."""

from __future__ import annotations

import pytest

from app.services.tiered_cache import CacheNamespace, TieredCache


class FakeClock:
    def __init__(self) -> None:
        self.now = 1_000.0

    def __call__(self) -> float:
        return self.now


def test_capacity_evicts_first_inserted_entry() -> None:
    cache = TieredCache(capacity=3)
    for key in ("a", "b", "c", "d"):
        cache.set(CacheNamespace.AI_SIMILAR, key, key.upper(), ttl=60)

    assert cache.get(CacheNamespace.AI_SIMILAR, "a") is None
    assert [cache.get(CacheNamespace.AI_SIMILAR, key) for key in ("b", "c", "d")] == [
        "B",
        "C",
        "D",
    ]
    assert len(cache) == 3


def test_reads_do_not_refresh_insertion_order() -> None:
    cache = TieredCache(capacity=2)
    cache.set("ns", "a", 1, ttl=60)
    cache.set("ns", "b", 2, ttl=60)
    assert cache.get("ns", "a") == 1

    cache.set("ns", "c", 3, ttl=60)

    assert cache.get("ns", "a") is None
    assert cache.get("ns", "b") == 2


def test_expired_entries_are_evicted_on_read() -> None:
    clock = FakeClock()
    cache = TieredCache(capacity=5, clock=clock)
    cache.set("ns", "key", "value", ttl=10)

    clock.now += 9.9
    assert cache.get("ns", "key") == "value"

    clock.now += 0.1
    assert cache.get("ns", "key") is None
    assert len(cache) == 0


def test_namespaces_are_isolated_and_clearable() -> None:
    cache = TieredCache()
    cache.set(CacheNamespace.AI_TRIVIA, "x", "trivia", ttl=60)
    cache.set(CacheNamespace.AI_CHAT, "x", "chat", ttl=60)

    cache.clear(CacheNamespace.AI_TRIVIA)

    assert cache.get(CacheNamespace.AI_TRIVIA, "x") is None
    assert cache.get(CacheNamespace.AI_CHAT, "x") == "chat"


def test_capacity_must_be_positive() -> None:
    with pytest.raises(ValueError):
        TieredCache(capacity=0)
