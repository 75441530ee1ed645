"""API Middleware."""

from src.api.middleware.logging import LoggingMiddleware

__all__ = ["LoggingMiddleware"]
