"""Core data model for sources and normalized news items."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict

from src.ingest.regions import ALL_REGION, classify_region
from src.utils.logging_config import get_logger

logger = get_logger(__name__)

REGIONS: tuple[str, ...] = ("us", "latam", "middle-east", "europe-russia", "asia", "africa")


class Platform(str, Enum):
    """Platform families with one adapter each."""

    BLUESKY = "bluesky"
    TELEGRAM = "telegram"
    MASTODON = "mastodon"
    RSS = "rss"
    REDDIT = "reddit"


class RateKind(str, Enum):
    """Whether a source's posting rate was sampled or guessed."""

    MEASURED = "measured"
    ESTIMATED = "estimated"


@dataclass(frozen=True)
class Source:
    """One monitored account, channel or feed. Read-only to the pipeline."""

    id: str
    name: str
    platform: Platform
    region: str
    locator: str
    tier: int = 2
    posts_per_day: float = 0.0
    rate_kind: RateKind = RateKind.ESTIMATED
    baseline_measured_at: Optional[datetime] = None

    @property
    def is_rate_trusted(self) -> bool:
        return self.rate_kind is RateKind.MEASURED or self.baseline_measured_at is not None


class NewsItem(BaseModel):
    """One normalized post. Immutable once built by an adapter."""

    model_config = ConfigDict(frozen=True)

    id: str
    source_id: str
    source_name: str
    platform: Platform
    region: str
    timestamp: datetime
    title: str
    content: str = ""
    url: Optional[str] = None
    # set when the text moved the post out of its source's region
    source_region: Optional[str] = None


def make_item_id(source_id: str, guid_or_link: str) -> str:
    """Stable id for a post: the same post always hashes to the same id."""
    digest = hashlib.sha256(guid_or_link.encode("utf-8")).hexdigest()[:16]
    return f"{source_id}-{digest}"


def _parse_datetime(value: str) -> datetime:
    text = value.strip()
    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        pass
    # RFC 822 dates from syndication feeds
    return parsedate_to_datetime(text)


def normalize_timestamp(
    value: datetime | str | None,
    now: Optional[datetime] = None,
) -> datetime:
    """Return an aware UTC timestamp for a post.

    Naive values are taken as UTC. Timestamps in the future (clock or timezone
    drift on the publisher side) are clamped to ``now``. Unparsable values fall
    back to ``now``.
    """
    now = now or datetime.now(timezone.utc)

    if value is None or value == "":
        return now

    if isinstance(value, str):
        try:
            parsed = _parse_datetime(value)
        except (TypeError, ValueError):
            logger.warning("Unparsable post timestamp", value=value)
            return now
    else:
        parsed = value

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    else:
        parsed = parsed.astimezone(timezone.utc)

    return min(parsed, now)


def build_news_item(
    source: Source,
    *,
    guid: Optional[str],
    link: Optional[str],
    timestamp: datetime,
    title: str,
    content: str = "",
) -> NewsItem:
    """Normalize adapter output into a ``NewsItem`` with a stable id.

    Without a guid or link the id falls back to the post text. The timestamp is
    never part of the identity since undated posts get ``now`` on every fetch.
    """
    identity = guid or link or f"{title}\n{content}"
    placement = classify_region(title, content, source.region)
    return NewsItem(
        id=make_item_id(source.id, identity),
        source_id=source.id,
        source_name=source.name,
        platform=source.platform,
        region=placement.region,
        source_region=placement.source_region,
        timestamp=timestamp,
        title=title[:500],
        content=content,
        url=link or None,
    )


def merge_and_sort(items: list[NewsItem]) -> list[NewsItem]:
    """Deduplicate by id (first occurrence wins) and sort newest first."""
    seen: set[str] = set()
    unique: list[NewsItem] = []
    for item in items:
        if item.id in seen:
            continue
        seen.add(item.id)
        unique.append(item)
    unique.sort(key=lambda item: item.timestamp, reverse=True)
    return unique
