"""News service: fetch pipeline behind the dual-tier cache, plus activity scoring.

One cache key holds the full lookback window for every source. Region, hours,
``since`` and limit are applied per request on top of that snapshot. Activity
is always computed over the full activity window, regardless of the request's
filters.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional

import httpx
from pydantic import BaseModel

from src.activity.detector import SurgeDetector
from src.activity.source_activity import calculate_source_activity
from src.api.schemas.news import NewsResponse
from src.cache.memory import MemoryCacheTier
from src.cache.persistent import PersistentCacheTier
from src.cache.service import CacheService
from src.config.settings import AppSettings
from src.ingest.adapters import AdapterRegistry, TelegramMTProtoClient, build_adapter_registry
from src.ingest.errors import CacheUnavailable, PipelineFetchError, PulseError
from src.ingest.fetcher import BatchedFetcher
from src.ingest.models import ALL_REGION, NewsItem, Platform
from src.ingest.registry import SourceRegistry, load_source_registry
from src.utils.logging_config import get_logger

logger = get_logger(__name__)

MAIN_CACHE_KEY = "osint:all"
DEGRADED_MESSAGE = "Partial data - refresh failed"

DEFAULT_HOURS = 6
MAX_HOURS = 72
DEFAULT_LIMIT = 2000
MAX_LIMIT = 5000


class NewsSnapshot(BaseModel):
    """What a fetch cycle produces and what the cache stores."""

    items: list[NewsItem]
    sources_count: int = 0
    succeeded: list[str] = []
    failed: list[str] = []
    not_found: list[str] = []


class NewsSnapshotCodec:
    def dump(self, value: NewsSnapshot) -> dict:
        return value.model_dump(mode="json")

    def load(self, data: dict) -> NewsSnapshot:
        return NewsSnapshot.model_validate(data)

    def count(self, value: NewsSnapshot) -> int:
        return len(value.items)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class NewsService:
    """Serves the read path. Constructed once per process."""

    def __init__(
        self,
        registry: SourceRegistry,
        fetcher: BatchedFetcher,
        cache: CacheService,
        detector: SurgeDetector,
        *,
        lookback_hours: int = MAX_HOURS,
        cache_key: str = MAIN_CACHE_KEY,
        clock: Callable[[], datetime] = _utcnow,
        adapters: Optional[AdapterRegistry] = None,
        mtproto: Optional[TelegramMTProtoClient] = None,
    ) -> None:
        self.registry = registry
        self.fetcher = fetcher
        self.cache = cache
        self.detector = detector
        self.lookback_hours = lookback_hours
        self.cache_key = cache_key
        self.adapters = adapters
        self._clock = clock
        self._mtproto = mtproto
        self._sources_by_id = {source.id: source for source in registry.sources}

    async def fetch_snapshot(self) -> NewsSnapshot:
        """Run one fetch cycle over every registered source."""
        cutoff = self._clock() - timedelta(hours=self.lookback_hours)
        report = await self.fetcher.fetch_all(self.registry.sources, cutoff)

        if report.total_failure:
            raise PipelineFetchError(
                f"All {len(report.outcomes)} sources failed", failed_sources=len(report.outcomes)
            )

        return NewsSnapshot(
            items=report.items,
            sources_count=len(report.outcomes),
            succeeded=report.succeeded,
            failed=report.failed,
            not_found=report.not_found,
        )

    async def refresh(self) -> NewsSnapshot:
        """Force a fetch into the cache (warmup)."""
        result = await self.cache.get_or_fetch(self.cache_key, self.fetch_snapshot, force_refresh=True)
        return result.value

    async def get_news(
        self,
        region: str = ALL_REGION,
        hours: int = DEFAULT_HOURS,
        since: Optional[datetime] = None,
        force_refresh: bool = False,
        limit: int = DEFAULT_LIMIT,
    ) -> NewsResponse:
        hours = max(1, min(MAX_HOURS, hours))
        limit = max(1, min(MAX_LIMIT, limit))

        try:
            result = await self.cache.get_or_fetch(
                self.cache_key, self.fetch_snapshot, force_refresh=force_refresh
            )
        except PulseError as e:
            logger.error("News fetch failed with no cached data", error=str(e))
            return NewsResponse(
                items=[],
                activity={},
                source_activity={},
                fetched_at=None,
                from_cache=False,
                degraded=True,
                error=str(e),
                is_incremental=since is not None,
                total_items=0,
                hours_window=hours,
                sources_count=len(self.registry),
                region=region,
            )

        snapshot: NewsSnapshot = result.value
        now = self._clock()

        activity = self.detector.evaluate(snapshot.items, now)
        source_activity = calculate_source_activity(
            snapshot.items, self._sources_by_id, now, self.detector.window_hours
        )

        start = now - timedelta(hours=hours)
        items = [item for item in snapshot.items if item.timestamp >= start]
        if region != ALL_REGION:
            items = [item for item in items if item.region == region]
        if since is not None:
            items = [item for item in items if item.timestamp > since]

        error = None
        if result.degraded:
            logger.warning("Serving degraded news response", error=result.error)
            error = DEGRADED_MESSAGE

        return NewsResponse(
            items=items[:limit],
            activity=activity,
            source_activity=source_activity,
            fetched_at=result.fetched_at,
            from_cache=result.from_cache,
            degraded=result.degraded,
            error=error,
            is_incremental=since is not None,
            total_items=len(items),
            hours_window=hours,
            sources_count=snapshot.sources_count,
            region=region,
        )

    async def close(self) -> None:
        await self.cache.close()
        if self._mtproto is not None:
            await self._mtproto.disconnect()


async def run_prewarm_loop(
    service: NewsService,
    interval_seconds: float,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> None:
    """Refresh the main cache key on a timer until cancelled."""
    logger.info("Cache prewarm loop started", interval_seconds=interval_seconds)
    while True:
        try:
            snapshot = await service.refresh()
            logger.info("Cache prewarmed", items=len(snapshot.items), sources=snapshot.sources_count)
        except PulseError as e:
            logger.warning("Cache prewarm failed", error=str(e))
        except Exception as e:
            logger.error("Cache prewarm crashed", error=str(e), exc_info=True)
        await sleep(interval_seconds)


def _feed_platforms(names: tuple[str, ...]) -> list[Platform]:
    platforms = []
    for name in names:
        try:
            platforms.append(Platform(name))
        except ValueError:
            logger.warning("Ignoring unknown feed platform", platform=name)
    return platforms


async def build_news_service(settings: AppSettings, client: httpx.AsyncClient) -> NewsService:
    """Assemble registry, adapters, fetcher, cache and detector from settings."""
    registry = load_source_registry(settings.source_registry_path)

    mtproto = TelegramMTProtoClient(settings.telegram) if settings.telegram.is_configured else None
    if mtproto is None:
        logger.info("Telegram credentials not set, using web preview scraper")
    adapters = build_adapter_registry(client, settings.fetch, mtproto=mtproto)

    fetcher = BatchedFetcher(
        adapters,
        source_timeout=settings.fetch.source_timeout_seconds,
        aggregate_timeout=settings.fetch.aggregate_timeout_seconds,
    )

    codec = NewsSnapshotCodec()
    persistent = None
    if settings.cache.persistent_enabled:
        persistent = PersistentCacheTier(settings.cache.database_path, codec)
        try:
            await persistent.init()
        except CacheUnavailable as e:
            logger.warning("Persistent cache disabled", error=str(e))
            persistent = None

    cache = CacheService(
        MemoryCacheTier(),
        persistent,
        fresh_seconds=settings.cache.fresh_seconds,
        stale_seconds=settings.cache.stale_seconds,
        count=codec.count,
    )

    detector = SurgeDetector(
        registry.sources,
        window_hours=settings.activity.window_hours,
        feed_platforms=_feed_platforms(settings.activity.feed_platforms),
        excluded_regions=settings.activity.excluded_regions,
    )

    return NewsService(
        registry,
        fetcher,
        cache,
        detector,
        lookback_hours=settings.fetch.lookback_hours,
        adapters=adapters,
        mtproto=mtproto,
    )
