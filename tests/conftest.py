"""Shared factories for sources and news items."""

from datetime import datetime, timedelta, timezone
from typing import Optional

import httpx
import pytest

from src.ingest.models import NewsItem, Platform, RateKind, Source, make_item_id

NOW = datetime(2025, 6, 15, 14, 0, tzinfo=timezone.utc)


def make_source(
    source_id: str = "src-1",
    platform: Platform = Platform.BLUESKY,
    region: str = "us",
    locator: str = "example.bsky.social",
    posts_per_day: float = 0.0,
    rate_kind: RateKind = RateKind.ESTIMATED,
    baseline_measured_at: Optional[datetime] = None,
) -> Source:
    return Source(
        id=source_id,
        name=source_id.replace("-", " ").title(),
        platform=platform,
        region=region,
        locator=locator,
        posts_per_day=posts_per_day,
        rate_kind=rate_kind,
        baseline_measured_at=baseline_measured_at,
    )


def make_item(
    key: str,
    minutes_ago: float = 0,
    *,
    source_id: str = "src-1",
    region: str = "us",
    platform: Platform = Platform.BLUESKY,
    now: datetime = NOW,
) -> NewsItem:
    return NewsItem(
        id=make_item_id(source_id, key),
        source_id=source_id,
        source_name=source_id,
        platform=platform,
        region=region,
        timestamp=now - timedelta(minutes=minutes_ago),
        title=f"Post {key}",
        content=f"Post {key}",
        url=f"https://example.com/{key}",
    )


def mock_client(handler) -> httpx.AsyncClient:
    """An AsyncClient whose requests are answered by *handler*."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def now() -> datetime:
    return NOW
