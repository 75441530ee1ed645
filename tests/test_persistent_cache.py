"""Tests for the SQLite-backed cache tier."""

import time
from pathlib import Path

import pytest

from conftest import make_item

from src.api.services.news_service import NewsSnapshot, NewsSnapshotCodec
from src.cache.entry import CacheEntry
from src.cache.persistent import PersistentCacheTier
from src.cache.service import CacheService
from src.ingest.errors import CacheUnavailable


@pytest.fixture
async def tier(tmp_path: Path):
    tier = PersistentCacheTier(str(tmp_path / "cache" / "news.db"), NewsSnapshotCodec())
    await tier.init()
    yield tier
    await tier.close()


def _snapshot() -> NewsSnapshot:
    return NewsSnapshot(
        items=[make_item("a", 1), make_item("b", 2, region="europe-russia")],
        sources_count=2,
        succeeded=["src-1"],
    )


async def test_round_trip_preserves_items(tier):
    now = time.time()
    await tier.set("osint:all", CacheEntry(value=_snapshot(), timestamp=now - 10, item_count=2))

    entry = await tier.get("osint:all", now, max_age=900)

    assert entry is not None
    assert entry.item_count == 2
    assert abs(entry.timestamp - (now - 10)) < 1
    assert [item.region for item in entry.value.items] == ["us", "europe-russia"]
    assert entry.value.items[0].timestamp.tzinfo is not None


async def test_rows_older_than_max_age_are_ignored(tier):
    now = time.time()
    await tier.set("osint:all", CacheEntry(value=_snapshot(), timestamp=now - 1000, item_count=2))

    assert await tier.get("osint:all", now, max_age=900) is None


async def test_upsert_replaces_row(tier):
    now = time.time()
    await tier.set("k", CacheEntry(value=_snapshot(), timestamp=now - 50, item_count=2))
    await tier.set("k", CacheEntry(value=NewsSnapshot(items=[]), timestamp=now, item_count=0))

    entry = await tier.get("k", now, max_age=900)
    assert entry.item_count == 0
    assert entry.value.items == []


async def test_missing_key_returns_none(tier):
    assert await tier.get("nope", time.time(), max_age=900) is None


async def test_uninitialized_tier_is_unavailable(tmp_path: Path):
    tier = PersistentCacheTier(str(tmp_path / "news.db"), NewsSnapshotCodec())

    with pytest.raises(CacheUnavailable):
        await tier.get("k", time.time(), max_age=900)


async def test_cold_start_reads_previous_process_write(tmp_path: Path):
    db_path = str(tmp_path / "news.db")
    codec = NewsSnapshotCodec()

    first = PersistentCacheTier(db_path, codec)
    await first.init()
    writer = CacheService(persistent=first, count=codec.count)
    await writer.set("osint:all", _snapshot())
    await writer.close()

    second = PersistentCacheTier(db_path, codec)
    await second.init()
    reader = CacheService(persistent=second, count=codec.count)

    async def should_not_fetch():
        raise AssertionError("cold start should be served from disk")

    result = await reader.get_or_fetch("osint:all", should_not_fetch)
    await reader.close()

    assert result.from_cache is True
    assert len(result.value.items) == 2
