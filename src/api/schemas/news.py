"""Pydantic models for news API responses."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from src.activity.detector import RegionActivity
from src.activity.source_activity import SourceActivity
from src.ingest.models import NewsItem, Platform


class NewsResponse(BaseModel):
    """Filtered items plus a fresh activity snapshot."""

    items: list[NewsItem]
    activity: dict[str, RegionActivity]
    source_activity: dict[str, SourceActivity] = {}
    fetched_at: Optional[datetime] = None  # write time of the cache entry served
    from_cache: bool
    degraded: bool = False  # True when a failed refresh fell back to cached data
    error: Optional[str] = None
    is_incremental: bool = False
    total_items: int
    hours_window: int
    sources_count: int
    region: str = "all"


class DeadSource(BaseModel):
    """A source recently reported as missing by its platform."""

    source_id: str
    platform: Platform
    locator: str
    reason: str
    marked_at: datetime


class DeadSourcesResponse(BaseModel):
    sources: list[DeadSource]
    total: int
