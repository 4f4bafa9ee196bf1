from __future__ import annotations

import pytest

from fxengine.dal.cache import TTLCache


class FakeClock:
    def __init__(self) -> None:
        self.t = 0.0

    def __call__(self) -> float:
        return self.t


def test_entries_expire_after_ttl():
    clock = FakeClock()
    cache = TTLCache(10.0, clock=clock)
    cache.set("k", 1)

    clock.t = 9.9
    assert cache.get("k") == 1
    clock.t = 10.0
    assert cache.get("k") is None
    assert "k" not in cache


def test_get_or_compute_only_computes_on_miss():
    clock = FakeClock()
    cache = TTLCache(5.0, clock=clock)
    calls = []

    def compute():
        calls.append(1)
        return len(calls)

    assert cache.get_or_compute("k", compute) == 1
    assert cache.get_or_compute("k", compute) == 1
    clock.t = 6.0
    assert cache.get_or_compute("k", compute) == 2
    assert cache.hits == 1


def test_max_entries_evicts_oldest():
    clock = FakeClock()
    cache = TTLCache(100.0, max_entries=2, clock=clock)
    for i, key in enumerate("abc"):
        clock.t = float(i)
        cache.set(key, i)

    assert len(cache) == 2
    assert cache.get("a") is None
    assert cache.get("c") == 2


def test_invalidate_and_purge():
    clock = FakeClock()
    cache = TTLCache(1.0, clock=clock)
    cache.set("a", 1)
    cache.set("b", 2)
    cache.invalidate("a")
    assert cache.get("a") is None

    clock.t = 2.0
    assert cache.purge_expired() == 1
    assert len(cache) == 0


def test_negative_ttl_rejected():
    with pytest.raises(ValueError):
        TTLCache(-1.0)
