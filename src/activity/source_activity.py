"""Per-source activity: which sources are posting well above their own rate."""

from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta
from typing import Iterable, Mapping

from pydantic import BaseModel

from src.ingest.models import NewsItem, Source

FALLBACK_PPD = 3.0
ANOMALY_THRESHOLD = 2.5
MIN_ANOMALOUS_COUNT = 3


class SourceActivity(BaseModel):
    source_id: str
    posts_per_day: float
    recent_posts: int
    window_hours: float
    anomaly_ratio: float
    is_anomalous: bool


def effective_ppd(source: Source | None) -> float:
    if source is not None and source.posts_per_day > 0:
        return source.posts_per_day
    return FALLBACK_PPD


def calculate_source_activity(
    items: Iterable[NewsItem],
    sources: Mapping[str, Source],
    now: datetime,
    window_hours: float = 6,
) -> dict[str, SourceActivity]:
    """Profiles for every source with at least one post in the window."""
    start = now - timedelta(hours=window_hours)
    counts = Counter(item.source_id for item in items if start <= item.timestamp <= now)

    profiles: dict[str, SourceActivity] = {}
    for source_id, count in counts.items():
        ppd = effective_ppd(sources.get(source_id))
        expected = ppd * window_hours / 24
        ratio = round(count / expected, 1) if expected > 0 else 0.0
        profiles[source_id] = SourceActivity(
            source_id=source_id,
            posts_per_day=ppd,
            recent_posts=count,
            window_hours=window_hours,
            anomaly_ratio=ratio,
            is_anomalous=ratio >= ANOMALY_THRESHOLD and count >= MIN_ANOMALOUS_COUNT,
        )
    return profiles
