"""Application settings and runtime config resolution.

This module centralizes environment-backed defaults and resolution rules used by
the API, the fetch pipeline and the CLI.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

# API env names and defaults
ENV_API_HOST = "API_HOST"
ENV_API_PORT = "API_PORT"
DEFAULT_API_HOST = "0.0.0.0"
DEFAULT_API_PORT = 8111

# Cache env names and defaults
ENV_CACHE_FRESH_SECONDS = "CACHE_FRESH_SECONDS"
ENV_CACHE_STALE_SECONDS = "CACHE_STALE_SECONDS"
ENV_CACHE_DATABASE_PATH = "CACHE_DATABASE_PATH"
ENV_CACHE_PERSISTENT_ENABLED = "CACHE_PERSISTENT_ENABLED"
ENV_PREWARM_INTERVAL_SECONDS = "PREWARM_INTERVAL_SECONDS"

DEFAULT_CACHE_FRESH_SECONDS = 300
DEFAULT_CACHE_STALE_SECONDS = 900
DEFAULT_CACHE_DATABASE_PATH = "data/news_cache.db"
DEFAULT_CACHE_PERSISTENT_ENABLED = True
DEFAULT_PREWARM_INTERVAL_SECONDS = 0

# Fetch pipeline env names and defaults
ENV_HTTP_TIMEOUT_SECONDS = "HTTP_TIMEOUT_SECONDS"
ENV_SOURCE_TIMEOUT_SECONDS = "SOURCE_TIMEOUT_SECONDS"
ENV_AGGREGATE_TIMEOUT_SECONDS = "AGGREGATE_TIMEOUT_SECONDS"
ENV_FETCH_MAX_PAGES = "FETCH_MAX_PAGES"
ENV_FETCH_LOOKBACK_HOURS = "FETCH_LOOKBACK_HOURS"
ENV_FETCH_USER_AGENT = "FETCH_USER_AGENT"

DEFAULT_HTTP_TIMEOUT_SECONDS = 10.0
DEFAULT_SOURCE_TIMEOUT_SECONDS = 20.0
DEFAULT_AGGREGATE_TIMEOUT_SECONDS = 55.0
DEFAULT_FETCH_MAX_PAGES = 5
DEFAULT_FETCH_LOOKBACK_HOURS = 72
DEFAULT_FETCH_USER_AGENT = "OSINTPulse/0.3 (+https://github.com/osint-pulse)"

# Activity detector env names and defaults
ENV_ACTIVITY_WINDOW_HOURS = "ACTIVITY_WINDOW_HOURS"
ENV_ACTIVITY_FEED_PLATFORMS = "ACTIVITY_FEED_PLATFORMS"
ENV_ACTIVITY_EXCLUDED_REGIONS = "ACTIVITY_EXCLUDED_REGIONS"

DEFAULT_ACTIVITY_WINDOW_HOURS = 6
DEFAULT_ACTIVITY_FEED_PLATFORMS = ("bluesky", "telegram", "mastodon")
DEFAULT_ACTIVITY_EXCLUDED_REGIONS = ("latam", "asia", "africa")

# Rate limiting env names and defaults
ENV_NEWS_RATE_LIMIT = "NEWS_RATE_LIMIT"
ENV_NEWS_RATE_WINDOW_SECONDS = "NEWS_RATE_WINDOW_SECONDS"
ENV_NEWS_REFRESH_RATE_LIMIT = "NEWS_REFRESH_RATE_LIMIT"
DEFAULT_NEWS_RATE_LIMIT = 60
DEFAULT_NEWS_RATE_WINDOW_SECONDS = 60
DEFAULT_NEWS_REFRESH_RATE_LIMIT = 5

# Telegram MTProto credentials
ENV_TELEGRAM_API_ID = "TELEGRAM_API_ID"
ENV_TELEGRAM_API_HASH = "TELEGRAM_API_HASH"
ENV_TELEGRAM_SESSION = "TELEGRAM_SESSION"

# Source registry
ENV_SOURCE_REGISTRY_PATH = "SOURCE_REGISTRY_PATH"
DEFAULT_SOURCE_REGISTRY_PATH = Path(__file__).parent / "sources.json"


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on", "y"}


def _clamp(value, minimum, maximum):
    return max(minimum, min(maximum, value))


def _parse_csv(value: str) -> tuple[str, ...]:
    return tuple(part.strip().lower() for part in value.split(",") if part.strip())


def _read_int(env: Mapping[str, str], name: str, default: int) -> int:
    try:
        return int(env.get(name, str(default)))
    except ValueError:
        return default


def _read_float(env: Mapping[str, str], name: str, default: float) -> float:
    try:
        return float(env.get(name, str(default)))
    except ValueError:
        return default


@dataclass(frozen=True)
class APISettings:
    host: str
    port: int


@dataclass(frozen=True)
class CacheSettings:
    fresh_seconds: int
    stale_seconds: int
    database_path: str
    persistent_enabled: bool
    prewarm_interval_seconds: int


@dataclass(frozen=True)
class FetchSettings:
    http_timeout_seconds: float
    source_timeout_seconds: float
    aggregate_timeout_seconds: float
    max_pages: int
    lookback_hours: int
    user_agent: str


@dataclass(frozen=True)
class ActivitySettings:
    window_hours: int
    feed_platforms: tuple[str, ...]
    excluded_regions: tuple[str, ...]


@dataclass(frozen=True)
class RateLimitSettings:
    requests_per_window: int
    window_seconds: int
    refresh_requests_per_window: int


@dataclass(frozen=True)
class TelegramSettings:
    api_id: Optional[int]
    api_hash: Optional[str]
    session: Optional[str]

    @property
    def is_configured(self) -> bool:
        return bool(self.api_id and self.api_hash and self.session)


@dataclass(frozen=True)
class AppSettings:
    api: APISettings
    cache: CacheSettings
    fetch: FetchSettings
    activity: ActivitySettings
    rate_limit: RateLimitSettings
    telegram: TelegramSettings
    source_registry_path: Path


def resolve_api_settings(env: Mapping[str, str] = os.environ) -> APISettings:
    host = env.get(ENV_API_HOST, DEFAULT_API_HOST)
    try:
        port = int(env.get(ENV_API_PORT, str(DEFAULT_API_PORT)))
    except ValueError:
        port = DEFAULT_API_PORT

    return APISettings(host=host, port=port)


def resolve_cache_settings(env: Mapping[str, str] = os.environ) -> CacheSettings:
    fresh_seconds = _clamp(_read_int(env, ENV_CACHE_FRESH_SECONDS, DEFAULT_CACHE_FRESH_SECONDS), 1, 3600)
    stale_seconds = _clamp(_read_int(env, ENV_CACHE_STALE_SECONDS, DEFAULT_CACHE_STALE_SECONDS), 1, 86400)
    # The stale window always extends past the fresh window.
    stale_seconds = max(stale_seconds, fresh_seconds)

    raw_enabled = env.get(ENV_CACHE_PERSISTENT_ENABLED)
    persistent_enabled = _parse_bool(raw_enabled) if raw_enabled else DEFAULT_CACHE_PERSISTENT_ENABLED

    prewarm = _read_int(env, ENV_PREWARM_INTERVAL_SECONDS, DEFAULT_PREWARM_INTERVAL_SECONDS)
    prewarm = 0 if prewarm <= 0 else _clamp(prewarm, 30, 3600)

    return CacheSettings(
        fresh_seconds=fresh_seconds,
        stale_seconds=stale_seconds,
        database_path=env.get(ENV_CACHE_DATABASE_PATH, DEFAULT_CACHE_DATABASE_PATH),
        persistent_enabled=persistent_enabled,
        prewarm_interval_seconds=prewarm,
    )


def resolve_fetch_settings(env: Mapping[str, str] = os.environ) -> FetchSettings:
    user_agent = (env.get(ENV_FETCH_USER_AGENT) or "").strip() or DEFAULT_FETCH_USER_AGENT

    return FetchSettings(
        http_timeout_seconds=_clamp(
            _read_float(env, ENV_HTTP_TIMEOUT_SECONDS, DEFAULT_HTTP_TIMEOUT_SECONDS), 1.0, 30.0
        ),
        source_timeout_seconds=_clamp(
            _read_float(env, ENV_SOURCE_TIMEOUT_SECONDS, DEFAULT_SOURCE_TIMEOUT_SECONDS), 1.0, 60.0
        ),
        aggregate_timeout_seconds=_clamp(
            _read_float(env, ENV_AGGREGATE_TIMEOUT_SECONDS, DEFAULT_AGGREGATE_TIMEOUT_SECONDS), 5.0, 120.0
        ),
        max_pages=_clamp(_read_int(env, ENV_FETCH_MAX_PAGES, DEFAULT_FETCH_MAX_PAGES), 1, 20),
        lookback_hours=_clamp(_read_int(env, ENV_FETCH_LOOKBACK_HOURS, DEFAULT_FETCH_LOOKBACK_HOURS), 1, 72),
        user_agent=user_agent,
    )


def resolve_activity_settings(env: Mapping[str, str] = os.environ) -> ActivitySettings:
    window_hours = _clamp(_read_int(env, ENV_ACTIVITY_WINDOW_HOURS, DEFAULT_ACTIVITY_WINDOW_HOURS), 1, 24)

    raw_platforms = env.get(ENV_ACTIVITY_FEED_PLATFORMS)
    feed_platforms = _parse_csv(raw_platforms) if raw_platforms else DEFAULT_ACTIVITY_FEED_PLATFORMS

    raw_excluded = env.get(ENV_ACTIVITY_EXCLUDED_REGIONS)
    if raw_excluded is None:
        excluded_regions = DEFAULT_ACTIVITY_EXCLUDED_REGIONS
    else:
        excluded_regions = _parse_csv(raw_excluded)

    return ActivitySettings(
        window_hours=window_hours,
        feed_platforms=feed_platforms,
        excluded_regions=excluded_regions,
    )


def resolve_rate_limit_settings(env: Mapping[str, str] = os.environ) -> RateLimitSettings:
    return RateLimitSettings(
        requests_per_window=_clamp(_read_int(env, ENV_NEWS_RATE_LIMIT, DEFAULT_NEWS_RATE_LIMIT), 1, 1000),
        window_seconds=_clamp(
            _read_int(env, ENV_NEWS_RATE_WINDOW_SECONDS, DEFAULT_NEWS_RATE_WINDOW_SECONDS), 1, 3600
        ),
        refresh_requests_per_window=_clamp(
            _read_int(env, ENV_NEWS_REFRESH_RATE_LIMIT, DEFAULT_NEWS_REFRESH_RATE_LIMIT), 1, 200
        ),
    )


def resolve_telegram_settings(env: Mapping[str, str] = os.environ) -> TelegramSettings:
    raw_api_id = (env.get(ENV_TELEGRAM_API_ID) or "").strip()
    try:
        api_id = int(raw_api_id) if raw_api_id else None
    except ValueError:
        api_id = None

    api_hash = (env.get(ENV_TELEGRAM_API_HASH) or "").strip() or None
    session = (env.get(ENV_TELEGRAM_SESSION) or "").strip() or None

    return TelegramSettings(api_id=api_id, api_hash=api_hash, session=session)


def resolve_source_registry_path(env: Mapping[str, str] = os.environ) -> Path:
    if value := env.get(ENV_SOURCE_REGISTRY_PATH):
        return Path(value)
    return DEFAULT_SOURCE_REGISTRY_PATH


def get_app_settings(env: Mapping[str, str] = os.environ) -> AppSettings:
    return AppSettings(
        api=resolve_api_settings(env=env),
        cache=resolve_cache_settings(env=env),
        fetch=resolve_fetch_settings(env=env),
        activity=resolve_activity_settings(env=env),
        rate_limit=resolve_rate_limit_settings(env=env),
        telegram=resolve_telegram_settings(env=env),
        source_registry_path=resolve_source_registry_path(env=env),
    )
