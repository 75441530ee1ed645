"""API Services."""

from src.api.services.news_service import (
    NewsService,
    NewsSnapshot,
    build_news_service,
    run_prewarm_loop,
)

__all__ = [
    "NewsService",
    "NewsSnapshot",
    "build_news_service",
    "run_prewarm_loop",
]
