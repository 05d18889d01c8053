"""Tests for the TTL cache and clocks."""

from datetime import datetime, timedelta, timezone

from core.cache import TTLCache
from core.clock import FixedClock, SystemClock


def test_fixed_clock_advances(clock):
    start = clock.now()
    clock.advance(seconds=30)
    assert clock.now() - start == timedelta(seconds=30)
    clock.advance(days=1)
    assert clock.today() == (start + timedelta(days=1, seconds=30)).date()


def test_fixed_clock_set():
    clock = FixedClock()
    target = datetime(2030, 5, 5, tzinfo=timezone.utc)
    clock.set(target)
    assert clock.now() == target


def test_system_clock_is_utc():
    assert SystemClock().now().tzinfo is timezone.utc


def test_get_set_evict(clock):
    cache = TTLCache(clock)
    assert cache.get("a") is None
    cache.set("a", 1)
    assert cache.get("a") == 1
    cache.evict("a")
    assert cache.get("a") is None
    cache.evict("missing")


def test_entry_expires(clock):
    cache = TTLCache(clock)
    cache.set("k", "v", ttl=60)
    clock.advance(seconds=59)
    assert cache.get("k") == "v"
    clock.advance(seconds=1)
    assert cache.get("k") is None
    assert len(cache) == 0


def test_no_ttl_never_expires(clock):
    cache = TTLCache(clock)
    cache.set("k", "v")
    clock.advance(days=3650)
    assert cache.get("k") == "v"


def test_default_ttl(clock):
    cache = TTLCache(clock, default_ttl=10)
    cache.set("k", "v")
    clock.advance(seconds=11)
    assert cache.get("k") is None


def test_clear_and_len(clock):
    cache = TTLCache(clock)
    cache.set(("AAPL", 1), [1])
    cache.set(("SPY", 1), [2])
    assert len(cache) == 2
    cache.clear()
    assert len(cache) == 0
