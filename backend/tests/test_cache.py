"""Tests for the read cache."""
import pytest

from infrawatch.services.cache import ReadCache


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def counter():
    calls = []

    async def compute():
        calls.append(1)
        return len(calls)

    return compute, calls


async def test_hit_within_ttl():
    clock = FakeClock()
    cache = ReadCache(ttl_seconds=60, clock=clock)
    compute, calls = counter()

    assert await cache.get_or_compute("stats", compute) == 1
    clock.now += 59
    assert await cache.get_or_compute("stats", compute) == 1
    assert len(calls) == 1


async def test_expires_after_ttl():
    clock = FakeClock()
    cache = ReadCache(ttl_seconds=60, clock=clock)
    compute, calls = counter()

    await cache.get_or_compute("stats", compute)
    clock.now += 60
    assert cache.get("stats") is None
    assert await cache.get_or_compute("stats", compute) == 2
    assert len(calls) == 2


async def test_keys_are_independent():
    cache = ReadCache(ttl_seconds=60, clock=FakeClock())

    async def for_limit(n):
        return f"limit={n}"

    assert await cache.get_or_compute("incidents", lambda: for_limit(5), key=5) == "limit=5"
    assert await cache.get_or_compute("incidents", lambda: for_limit(10), key=10) == "limit=10"
    assert cache.get("incidents", 5) == "limit=5"
    assert cache.get("incidents") is None


async def test_invalidate_tag_drops_only_tagged_entries():
    cache = ReadCache(ttl_seconds=60, clock=FakeClock())
    compute, calls = counter()

    await cache.get_or_compute("stats", compute, tags=["infra-data"])
    await cache.get_or_compute("monitors", compute, tags=["infra-data"])
    await cache.get_or_compute("other", compute)

    assert cache.invalidate_tag("infra-data") == 2
    assert cache.get("stats") is None
    assert cache.get("monitors") is None
    assert cache.get("other") == 3

    await cache.get_or_compute("stats", compute, tags=["infra-data"])
    assert len(calls) == 4


async def test_failed_compute_is_not_cached():
    cache = ReadCache(ttl_seconds=60, clock=FakeClock())

    async def broken():
        raise RuntimeError("db down")

    with pytest.raises(RuntimeError):
        await cache.get_or_compute("stats", broken)
    assert cache.get("stats") is None


def test_clear():
    cache = ReadCache()
    cache._entries[("stats", None)] = object()
    cache.clear()
    assert cache._entries == {}
