"""Platform adapters, one per ``Platform`` variant."""

from __future__ import annotations

from typing import Mapping, Optional

import httpx

from src.config.settings import FetchSettings
from src.ingest.adapters.base import DeadSourceCache, DeadSourceEntry, FetchResult, PlatformAdapter
from src.ingest.adapters.bluesky import BlueskyAdapter
from src.ingest.adapters.mastodon import MastodonAdapter
from src.ingest.adapters.reddit import RedditAdapter
from src.ingest.adapters.rss import RSSAdapter
from src.ingest.adapters.telegram import TelegramAdapter
from src.ingest.adapters.telegram_client import TelegramMTProtoClient
from src.ingest.models import Platform


class AdapterRegistry:
    """Adapters keyed by platform, built once at startup."""

    def __init__(self, adapters: Mapping[Platform, PlatformAdapter], dead_sources: DeadSourceCache) -> None:
        self._adapters = dict(adapters)
        self.dead_sources = dead_sources

    def get(self, platform: Platform) -> Optional[PlatformAdapter]:
        return self._adapters.get(platform)

    def __contains__(self, platform: Platform) -> bool:
        return platform in self._adapters


def build_adapter_registry(
    client: httpx.AsyncClient,
    settings: FetchSettings,
    *,
    mtproto: Optional[TelegramMTProtoClient] = None,
    dead_sources: Optional[DeadSourceCache] = None,
) -> AdapterRegistry:
    dead_sources = dead_sources or DeadSourceCache()
    common = {
        "max_pages": settings.max_pages,
        "timeout": settings.http_timeout_seconds,
        "user_agent": settings.user_agent,
        "dead_sources": dead_sources,
    }
    adapters: dict[Platform, PlatformAdapter] = {
        Platform.BLUESKY: BlueskyAdapter(client, **common),
        Platform.TELEGRAM: TelegramAdapter(client, mtproto=mtproto, **common),
        Platform.MASTODON: MastodonAdapter(client, **common),
        Platform.RSS: RSSAdapter(client, **common),
        Platform.REDDIT: RedditAdapter(client, **common),
    }
    return AdapterRegistry(adapters, dead_sources)


__all__ = [
    "AdapterRegistry",
    "BlueskyAdapter",
    "DeadSourceCache",
    "DeadSourceEntry",
    "FetchResult",
    "MastodonAdapter",
    "PlatformAdapter",
    "RSSAdapter",
    "RedditAdapter",
    "TelegramAdapter",
    "TelegramMTProtoClient",
    "build_adapter_registry",
]
