"""Tests for the news service read path."""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from conftest import NOW, make_item, make_source

from src.activity.baseline import FLAT_TIME_OF_DAY
from src.activity.detector import RegionStatus, SurgeDetector
from src.api.services.news_service import DEGRADED_MESSAGE, NewsService, NewsSnapshot, run_prewarm_loop
from src.cache.memory import MemoryCacheTier
from src.cache.service import CacheService
from src.ingest.errors import ParseError, PipelineFetchError
from src.ingest.fetcher import FetchOutcome, FetchReport
from src.ingest.models import Platform
from src.ingest.registry import SourceRegistry

SOURCES = [
    make_source("us-1", posts_per_day=24),
    make_source("eu-1", region="europe-russia", platform=Platform.TELEGRAM),
]

ITEMS = [
    make_item("us-recent", 10, source_id="us-1"),
    make_item("eu-recent", 30, source_id="eu-1", region="europe-russia", platform=Platform.TELEGRAM),
    make_item("us-hour-ago", 60, source_id="us-1"),
    make_item("us-day-ago", 60 * 24, source_id="us-1"),
]


def _report(items=ITEMS) -> FetchReport:
    outcomes = [
        FetchOutcome(source, items=[i for i in items if i.source_id == source.id]) for source in SOURCES
    ]
    return FetchReport(outcomes=outcomes, items=list(items), duration_ms=1.0)


def _failed_report() -> FetchReport:
    outcomes = [FetchOutcome(source, error=ParseError("bad", source_id=source.id)) for source in SOURCES]
    return FetchReport(outcomes=outcomes, items=[], duration_ms=1.0)


@pytest.fixture
def fetcher():
    fetcher = AsyncMock()
    fetcher.fetch_all = AsyncMock(return_value=_report())
    return fetcher


@pytest.fixture
def service(fetcher) -> NewsService:
    registry = SourceRegistry(SOURCES)
    return NewsService(
        registry,
        fetcher,
        CacheService(MemoryCacheTier()),
        SurgeDetector(registry.sources, time_of_day=FLAT_TIME_OF_DAY),
        clock=lambda: NOW,
    )


async def test_default_window_and_activity(service, fetcher):
    response = await service.get_news()

    assert [item.title for item in response.items] == ["Post us-recent", "Post eu-recent", "Post us-hour-ago"]
    assert response.total_items == 3
    assert response.hours_window == 6
    assert response.from_cache is False
    assert response.sources_count == 2
    assert response.activity["us"].count == 2
    assert response.activity["us"].status is RegionStatus.SCORED
    assert "us-1" in response.source_activity
    cutoff = fetcher.fetch_all.await_args.args[1]
    assert cutoff == NOW - timedelta(hours=72)


async def test_second_call_served_from_cache(service, fetcher):
    await service.get_news()
    response = await service.get_news(hours=48)

    assert response.from_cache is True
    assert response.total_items == 4
    assert fetcher.fetch_all.await_count == 1


async def test_region_filter(service):
    response = await service.get_news(region="europe-russia")

    assert [item.source_id for item in response.items] == ["eu-1"]
    assert response.region == "europe-russia"
    # activity always covers every region
    assert response.activity["us"].count == 2


async def test_since_returns_only_newer_items(service):
    since = NOW - timedelta(minutes=30)
    response = await service.get_news(since=since)

    assert [item.title for item in response.items] == ["Post us-recent"]
    assert response.is_incremental is True
    assert response.activity["all"].count == 3


async def test_limit_truncates_but_reports_total(service):
    response = await service.get_news(hours=72, limit=2)

    assert len(response.items) == 2
    assert response.total_items == 4


async def test_hours_clamped_to_lookback(service):
    response = await service.get_news(hours=500)
    assert response.hours_window == 72


async def test_total_failure_without_cache_returns_empty_error(service, fetcher):
    fetcher.fetch_all = AsyncMock(return_value=_failed_report())

    response = await service.get_news()

    assert response.items == []
    assert response.activity == {}
    assert response.degraded is True
    assert response.fetched_at is None
    assert "All 2 sources failed" in response.error


async def test_refresh_failure_serves_degraded_cache(service, fetcher):
    await service.get_news()
    fetcher.fetch_all = AsyncMock(return_value=_failed_report())

    response = await service.get_news(force_refresh=True)

    assert response.degraded is True
    assert response.from_cache is True
    assert response.error == DEGRADED_MESSAGE
    assert response.total_items == 3


async def test_fetch_snapshot_raises_on_total_failure(service, fetcher):
    fetcher.fetch_all = AsyncMock(return_value=_failed_report())

    with pytest.raises(PipelineFetchError) as exc_info:
        await service.fetch_snapshot()
    assert exc_info.value.failed_sources == 2


async def test_refresh_records_source_outcomes(service):
    snapshot = await service.refresh()

    assert isinstance(snapshot, NewsSnapshot)
    assert snapshot.sources_count == 2
    assert sorted(snapshot.succeeded) == ["eu-1", "us-1"]
    assert snapshot.failed == []


async def test_prewarm_loop_refreshes_until_cancelled(service):
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)
        if len(sleeps) == 2:
            raise asyncio.CancelledError

    service.refresh = AsyncMock(side_effect=[NewsSnapshot(items=[]), PipelineFetchError("down")])

    with pytest.raises(asyncio.CancelledError):
        await run_prewarm_loop(service, 60, sleep=fake_sleep)

    assert service.refresh.await_count == 2
    assert sleeps == [60, 60]


async def test_prewarm_loop_survives_unexpected_errors(service):
    sleeps = []

    async def fake_sleep(seconds):
        sleeps.append(seconds)
        if len(sleeps) == 3:
            raise asyncio.CancelledError

    service.refresh = AsyncMock(side_effect=[RuntimeError("db locked"), KeyError("items"), NewsSnapshot(items=[])])

    with pytest.raises(asyncio.CancelledError):
        await run_prewarm_loop(service, 30, sleep=fake_sleep)

    assert service.refresh.await_count == 3
