"""Tests for the TTL cache."""

import pytest
from carebill.utils.cache import TTLCache


class FakeClock:
    def __init__(self):
        self.now = 100.0

    def __call__(self):
        return self.now


def test_entries_expire_after_ttl():
    clock = FakeClock()
    cache = TTLCache(ttl_seconds=10, clock=clock)
    cache.set("codes", ["P", "WC"])

    clock.now = 109.9
    assert cache.get("codes") == ["P", "WC"]
    clock.now = 110.0
    assert cache.get("codes") is None
    assert "codes" not in cache


def test_per_entry_ttl():
    clock = FakeClock()
    cache = TTLCache(ttl_seconds=10, clock=clock)
    cache.set("short", 1, ttl_seconds=1)
    cache.set("long", 2)
    clock.now = 105
    assert "short" not in cache
    assert cache.get("long") == 2


def test_get_or_load_calls_loader_once():
    calls = []
    cache = TTLCache(clock=FakeClock())

    def loader():
        calls.append(1)
        return {"clinicians": ("Jane Doe",)}

    assert cache.get_or_load("options", loader) == cache.get_or_load("options", loader)
    assert len(calls) == 1


def test_cached_none_is_a_hit():
    calls = []
    cache = TTLCache(clock=FakeClock())
    cache.get_or_load("missing", lambda: calls.append(1))
    cache.get_or_load("missing", lambda: calls.append(1))
    assert len(calls) == 1


def test_invalidate():
    cache = TTLCache(clock=FakeClock())
    cache.set("a", 1)
    cache.set("b", 2)
    cache.invalidate("a")
    assert "a" not in cache
    assert len(cache) == 1
    cache.invalidate()
    assert len(cache) == 0


def test_caches_are_independent():
    first = TTLCache()
    second = TTLCache()
    first.set("key", 1)
    assert second.get("key") is None


def test_negative_ttl_rejected():
    with pytest.raises(ValueError):
        TTLCache(ttl_seconds=-1)
