"""API Routes."""

from src.api.routes.news import router as news_router
from src.api.routes.sources import router as sources_router

__all__ = ["news_router", "sources_router"]
