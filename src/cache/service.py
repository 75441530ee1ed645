"""Dual-tier cache service with stale-while-revalidate and single-flight refreshes.

Lookup order is the in-process tier, then the persistent tier. A hit in the
persistent tier is copied back into the in-process tier with its original
timestamp.

Per key, an entry is:

- fresh (age < ``fresh_seconds``): served as is;
- stale (``fresh_seconds`` <= age < ``stale_seconds``): served immediately
  while a background refresh runs;
- expired (age >= ``stale_seconds``): never served, the caller waits for a fetch.

At most one fetch per key runs at a time in this process. Concurrent callers
share the same ``asyncio.Task``, and the ticket is removed when the task ends
however it ends.
"""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from src.cache.entry import CacheEntry, CacheState
from src.cache.memory import MemoryCacheTier
from src.cache.persistent import PersistentCacheTier
from src.ingest.errors import CacheUnavailable
from src.utils.logging_config import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

FetchFn = Callable[[], Awaitable[T]]


@dataclass(frozen=True)
class CacheResult(Generic[T]):
    value: T
    fetched_at: datetime
    from_cache: bool
    degraded: bool = False
    error: Optional[str] = None


def _default_count(value: Any) -> int:
    try:
        return len(value)
    except TypeError:
        return 0


class CacheService(Generic[T]):
    """Created once at startup and shared by every consumer."""

    def __init__(
        self,
        memory: Optional[MemoryCacheTier] = None,
        persistent: Optional[PersistentCacheTier] = None,
        *,
        fresh_seconds: float = 300,
        stale_seconds: float = 900,
        clock: Callable[[], float] = time.time,
        count: Callable[[Any], int] = _default_count,
    ) -> None:
        if stale_seconds < fresh_seconds:
            raise ValueError("stale_seconds must be >= fresh_seconds")
        self.memory = memory or MemoryCacheTier()
        self.persistent = persistent
        self.fresh_seconds = fresh_seconds
        self.stale_seconds = stale_seconds
        self._clock = clock
        self._count = count
        self._in_flight: dict[str, asyncio.Task] = {}

    def in_flight(self, key: str) -> bool:
        return key in self._in_flight

    async def get(self, key: str) -> tuple[Optional[CacheEntry], bool]:
        """Return ``(entry, found)`` for any entry younger than the stale window."""
        now = self._clock()
        entry = self.memory.get(key, now, self.stale_seconds)
        if entry is not None:
            return entry, True

        if self.persistent is None:
            return None, False

        try:
            entry = await self.persistent.get(key, now, self.stale_seconds)
        except CacheUnavailable as e:
            logger.warning("Persistent cache unavailable on read", cache_key=key, error=str(e))
            return None, False

        if entry is None:
            return None, False

        self.memory.set(key, entry)
        logger.debug("Persistent cache hit promoted", cache_key=key, age=round(entry.age(now), 1))
        return entry, True

    async def set(self, key: str, value: T) -> CacheEntry:
        """Atomically replace the entry for *key* in both tiers."""
        entry = CacheEntry(value=value, timestamp=self._clock(), item_count=self._count(value))
        self.memory.set(key, entry)

        if self.persistent is not None:
            try:
                await self.persistent.set(key, entry)
            except CacheUnavailable as e:
                logger.warning("Persistent cache unavailable on write", cache_key=key, error=str(e))
        return entry

    async def get_or_fetch(
        self,
        key: str,
        fetch_fn: FetchFn,
        force_refresh: bool = False,
    ) -> CacheResult:
        """Serve fresh or stale data immediately, fetching only when needed.

        ``force_refresh`` skips the freshness check but still joins a fetch
        that is already running for *key*. If the fetch fails and an entry
        inside the stale window exists, that entry is returned with
        ``degraded=True``. Otherwise the error propagates.
        """
        if not force_refresh:
            entry, found = await self.get(key)
            if found:
                state = entry.state(self._clock(), self.fresh_seconds, self.stale_seconds)
                if state is CacheState.STALE:
                    self._refresh_task(key, fetch_fn)
                    logger.debug("Serving stale entry while revalidating", cache_key=key)
                return CacheResult(value=entry.value, fetched_at=entry.fetched_at, from_cache=True)

        task = self._refresh_task(key, fetch_fn)
        try:
            entry = await asyncio.shield(task)
        except Exception as e:
            fallback, found = await self.get(key)
            if found:
                logger.warning("Fetch failed, serving cached entry", cache_key=key, error=str(e))
                return CacheResult(
                    value=fallback.value,
                    fetched_at=fallback.fetched_at,
                    from_cache=True,
                    degraded=True,
                    error=str(e),
                )
            raise

        return CacheResult(value=entry.value, fetched_at=entry.fetched_at, from_cache=False)

    def _refresh_task(self, key: str, fetch_fn: FetchFn) -> asyncio.Task:
        """Return the in-flight task for *key*, starting one if none is running."""
        task = self._in_flight.get(key)
        if task is not None:
            return task

        task = asyncio.create_task(self._run_fetch(key, fetch_fn), name=f"cache-refresh:{key}")
        self._in_flight[key] = task
        task.add_done_callback(lambda t: self._on_refresh_done(key, t))
        return task

    async def _run_fetch(self, key: str, fetch_fn: FetchFn) -> CacheEntry:
        try:
            value = await fetch_fn()
            return await self.set(key, value)
        finally:
            if self._in_flight.get(key) is asyncio.current_task():
                del self._in_flight[key]

    def _on_refresh_done(self, key: str, task: asyncio.Task) -> None:
        if task.cancelled():
            logger.warning("Cache refresh cancelled", cache_key=key)
            return
        error = task.exception()
        if error is not None:
            logger.warning("Cache refresh failed", cache_key=key, error=str(error))

    async def drain(self) -> None:
        """Wait for running refreshes to finish (shutdown and tests)."""
        tasks = list(self._in_flight.values())
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def close(self) -> None:
        tasks = list(self._in_flight.values())
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        if self.persistent is not None:
            await self.persistent.close()
