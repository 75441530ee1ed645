"""News feed API routes."""

from __future__ import annotations

import math
import time
from collections import defaultdict, deque
from datetime import datetime, timezone
from threading import Lock
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status

from src.api.schemas.news import NewsResponse
from src.api.services.news_service import DEFAULT_HOURS, DEFAULT_LIMIT, MAX_HOURS, MAX_LIMIT, NewsService
from src.config.settings import resolve_rate_limit_settings
from src.ingest.models import ALL_REGION, REGIONS
from src.utils.logging_config import get_logger

logger = get_logger(__name__)

router = APIRouter(tags=["news"])

VALID_REGIONS = (ALL_REGION, *REGIONS)


class _SlidingWindowLimiter:
    """Simple in-memory sliding-window rate limiter."""

    def __init__(self) -> None:
        self._events: dict[str, deque[float]] = defaultdict(deque)
        self._lock = Lock()

    def allow(self, key: str, limit: int, window_seconds: int) -> bool:
        now = time.monotonic()
        threshold = now - window_seconds

        with self._lock:
            bucket = self._events[key]
            while bucket and bucket[0] <= threshold:
                bucket.popleft()

            if len(bucket) >= limit:
                return False

            bucket.append(now)
            return True

    def retry_after(self, key: str, window_seconds: int) -> int:
        """Seconds until the oldest event in *key*'s window expires."""
        with self._lock:
            bucket = self._events.get(key)
            if not bucket:
                return 0
            remaining = bucket[0] + window_seconds - time.monotonic()
        return max(1, math.ceil(remaining))

    def reset(self) -> None:
        with self._lock:
            self._events.clear()


_read_limiter = _SlidingWindowLimiter()
_refresh_limiter = _SlidingWindowLimiter()


def reset_rate_limiters() -> None:
    """Reset in-memory rate limit state (for tests)."""
    _read_limiter.reset()
    _refresh_limiter.reset()


def _get_client_identifier(request: Request) -> str:
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        first_hop = forwarded_for.split(",", maxsplit=1)[0].strip()
        if first_hop:
            return first_hop

    if request.client and request.client.host:
        return request.client.host

    return "unknown"


def _enforce_rate_limit(request: Request, force_refresh: bool) -> None:
    settings = resolve_rate_limit_settings()
    client_id = _get_client_identifier(request)

    checks = [(_read_limiter, settings.requests_per_window, "Rate limit exceeded. Please retry later.")]
    if force_refresh:
        checks.append(
            (_refresh_limiter, settings.refresh_requests_per_window, "refresh rate limit exceeded. Please retry later.")
        )

    for limiter, limit, detail in checks:
        if not limiter.allow(key=client_id, limit=limit, window_seconds=settings.window_seconds):
            retry_after = limiter.retry_after(client_id, settings.window_seconds)
            logger.warning("Rate limit exceeded", client_id=client_id, refresh=force_refresh)
            raise HTTPException(
                status_code=status.HTTP_429_TOO_MANY_REQUESTS,
                detail=detail,
                headers={"Retry-After": str(retry_after)},
            )


def _parse_since(raw: Optional[str]) -> Optional[datetime]:
    if not raw:
        return None
    try:
        parsed = datetime.fromisoformat(raw.strip().replace("Z", "+00:00"))
    except ValueError:
        logger.debug("Ignoring invalid since parameter", since=raw)
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def get_news_service(request: Request) -> NewsService:
    return request.app.state.news_service


@router.get("/news", response_model=NewsResponse)
async def get_news(
    request: Request,
    region: str = Query(ALL_REGION, description="Region id or 'all'"),
    hours: int = Query(DEFAULT_HOURS, description=f"Time window in hours (1-{MAX_HOURS})"),
    since: Optional[str] = Query(None, description="ISO-8601 watermark; only newer items are returned"),
    refresh: bool = Query(False, description="Bypass cache freshness (still joins an in-flight fetch)"),
    limit: int = Query(DEFAULT_LIMIT, description=f"Maximum items returned (1-{MAX_LIMIT})"),
    service: NewsService = Depends(get_news_service),
) -> NewsResponse:
    """Aggregated OSINT feed with per-region activity levels.

    Responses are served from the dual-tier cache. Total upstream failure
    still answers 200 with empty items and an ``error`` field.
    """
    _enforce_rate_limit(request, force_refresh=refresh)

    region = region.strip().lower()
    if region not in VALID_REGIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid region '{region}'. Valid options: {', '.join(VALID_REGIONS)}",
        )

    return await service.get_news(
        region=region,
        hours=max(1, min(MAX_HOURS, hours)),
        since=_parse_since(since),
        force_refresh=refresh,
        limit=max(1, min(MAX_LIMIT, limit)),
    )
