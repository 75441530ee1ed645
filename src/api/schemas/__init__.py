"""API Schemas - Pydantic models for request/response validation."""

from src.api.schemas.news import DeadSource, DeadSourcesResponse, NewsResponse

__all__ = [
    "DeadSource",
    "DeadSourcesResponse",
    "NewsResponse",
]
