"""Tests for the dual-tier cache service."""

import asyncio
from unittest.mock import AsyncMock

import pytest

from src.cache.entry import CacheEntry, CacheState
from src.cache.memory import MemoryCacheTier
from src.cache.service import CacheService
from src.ingest.errors import CacheUnavailable, PipelineFetchError

KEY = "osint:all"


class Clock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakePersistentTier:
    def __init__(self, entry: CacheEntry | None = None, fail: bool = False):
        self.entry = entry
        self.fail = fail
        self.writes: list[CacheEntry] = []

    async def get(self, key, now, max_age):
        if self.fail:
            raise CacheUnavailable("database is locked")
        if self.entry is None or self.entry.age(now) >= max_age:
            return None
        return self.entry

    async def set(self, key, entry):
        if self.fail:
            raise CacheUnavailable("database is locked")
        self.writes.append(entry)

    async def close(self):
        pass


@pytest.fixture
def clock() -> Clock:
    return Clock()


@pytest.fixture
def cache(clock) -> CacheService:
    return CacheService(MemoryCacheTier(), fresh_seconds=300, stale_seconds=900, clock=clock)


def _counter(*values):
    """A fetch function returning *values* in order, recording calls."""
    fetch = AsyncMock(side_effect=list(values))
    return fetch


def test_entry_states():
    entry = CacheEntry(value=[], timestamp=0)
    assert entry.state(299, 300, 900) is CacheState.FRESH
    assert entry.state(300, 300, 900) is CacheState.STALE
    assert entry.state(900, 300, 900) is CacheState.EXPIRED


def test_stale_window_must_cover_fresh_window():
    with pytest.raises(ValueError):
        CacheService(fresh_seconds=600, stale_seconds=300)


async def test_miss_fetches_then_fresh_hit_serves_cache(cache):
    fetch = _counter(["a"], ["b"])

    first = await cache.get_or_fetch(KEY, fetch)
    second = await cache.get_or_fetch(KEY, fetch)

    assert first.from_cache is False
    assert first.value == ["a"]
    assert second.from_cache is True
    assert second.value == ["a"]
    assert fetch.await_count == 1


async def test_stale_entry_served_while_revalidating(cache, clock):
    fetch = _counter(["old"], ["new"])
    await cache.get_or_fetch(KEY, fetch)
    clock.advance(400)

    result = await cache.get_or_fetch(KEY, fetch)

    assert result.value == ["old"]
    assert result.from_cache is True
    assert cache.in_flight(KEY)

    await cache.drain()
    assert not cache.in_flight(KEY)
    assert fetch.await_count == 2

    refreshed = await cache.get_or_fetch(KEY, fetch)
    assert refreshed.value == ["new"]
    assert refreshed.from_cache is True


async def test_expired_entry_is_never_served(cache, clock):
    fetch = _counter(["old"], ["new"])
    await cache.get_or_fetch(KEY, fetch)
    clock.advance(901)

    result = await cache.get_or_fetch(KEY, fetch)

    assert result.value == ["new"]
    assert result.from_cache is False


async def test_concurrent_misses_share_one_fetch(cache):
    release = asyncio.Event()
    calls = 0

    async def slow_fetch():
        nonlocal calls
        calls += 1
        await release.wait()
        return ["shared"]

    waiters = [asyncio.create_task(cache.get_or_fetch(KEY, slow_fetch)) for _ in range(10)]
    await asyncio.sleep(0)
    assert cache.in_flight(KEY)
    release.set()
    results = await asyncio.gather(*waiters)

    assert calls == 1
    assert all(r.value == ["shared"] for r in results)
    assert not cache.in_flight(KEY)


async def test_force_refresh_joins_in_flight_fetch(cache):
    release = asyncio.Event()
    calls = 0

    async def slow_fetch():
        nonlocal calls
        calls += 1
        await release.wait()
        return [calls]

    first = asyncio.create_task(cache.get_or_fetch(KEY, slow_fetch))
    await asyncio.sleep(0)
    forced = asyncio.create_task(cache.get_or_fetch(KEY, slow_fetch, force_refresh=True))
    await asyncio.sleep(0)
    release.set()

    a, b = await asyncio.gather(first, forced)
    assert calls == 1
    assert a.value == b.value == [1]


async def test_force_refresh_fetches_even_when_fresh(cache):
    fetch = _counter(["a"], ["b"])
    await cache.get_or_fetch(KEY, fetch)

    result = await cache.get_or_fetch(KEY, fetch, force_refresh=True)

    assert result.value == ["b"]
    assert result.from_cache is False


async def test_failed_refresh_falls_back_to_cached_entry(cache, clock):
    fetch = _counter(["cached"], PipelineFetchError("all sources failed"))
    await cache.get_or_fetch(KEY, fetch)
    clock.advance(100)

    result = await cache.get_or_fetch(KEY, fetch, force_refresh=True)

    assert result.degraded is True
    assert result.from_cache is True
    assert result.value == ["cached"]
    assert "all sources failed" in result.error
    assert not cache.in_flight(KEY)


async def test_failure_without_cache_propagates(cache):
    fetch = _counter(PipelineFetchError("all sources failed"))

    with pytest.raises(PipelineFetchError):
        await cache.get_or_fetch(KEY, fetch)
    assert not cache.in_flight(KEY)


async def test_failure_after_expiry_propagates(cache, clock):
    fetch = _counter(["ancient"], PipelineFetchError("down"))
    await cache.get_or_fetch(KEY, fetch)
    clock.advance(1000)

    with pytest.raises(PipelineFetchError):
        await cache.get_or_fetch(KEY, fetch)


async def test_background_refresh_failure_keeps_stale_entry(cache, clock):
    fetch = _counter(["old"], RuntimeError("boom"))
    await cache.get_or_fetch(KEY, fetch)
    clock.advance(400)

    result = await cache.get_or_fetch(KEY, fetch)
    await cache.drain()

    assert result.value == ["old"]
    again = await cache.get_or_fetch(KEY, _counter(["unused"]))
    assert again.value == ["old"]
    await cache.drain()


async def test_persistent_hit_is_promoted_with_original_timestamp(clock):
    written_at = clock.now - 120
    persistent = FakePersistentTier(CacheEntry(value=["from-db"], timestamp=written_at, item_count=1))
    memory = MemoryCacheTier()
    cache = CacheService(memory, persistent, clock=clock)
    fetch = _counter(["network"])

    result = await cache.get_or_fetch(KEY, fetch)

    assert result.value == ["from-db"]
    assert result.from_cache is True
    assert result.fetched_at.timestamp() == written_at
    assert memory.get(KEY, clock.now, 900).timestamp == written_at
    fetch.assert_not_awaited()


async def test_writes_go_to_both_tiers(clock):
    persistent = FakePersistentTier()
    cache = CacheService(MemoryCacheTier(), persistent, clock=clock)

    await cache.get_or_fetch(KEY, _counter(["a", "b"]))

    assert len(persistent.writes) == 1
    assert persistent.writes[0].item_count == 2


async def test_unavailable_persistent_tier_is_a_miss(clock):
    cache = CacheService(MemoryCacheTier(), FakePersistentTier(fail=True), clock=clock)
    fetch = _counter(["fresh"])

    result = await cache.get_or_fetch(KEY, fetch)
    again = await cache.get_or_fetch(KEY, fetch)

    assert result.value == ["fresh"]
    assert again.from_cache is True
    assert fetch.await_count == 1


async def test_close_cancels_running_refreshes(cache):
    async def never():
        await asyncio.Event().wait()

    task = asyncio.create_task(cache.get_or_fetch(KEY, never))
    await asyncio.sleep(0)
    await cache.close()

    with pytest.raises(asyncio.CancelledError):
        await task
