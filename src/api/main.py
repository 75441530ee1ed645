"""
FastAPI Application Entry Point

This module provides the FastAPI application for the OSINT pulse news API.

Usage:
    uvicorn src.api.main:app --reload --port 8111

Or with the CLI:
    python -m src.api.main
"""

import asyncio
from contextlib import asynccontextmanager

import httpx
from dotenv import load_dotenv
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.api.middleware import LoggingMiddleware
from src.api.routes import news_router, sources_router
from src.api.services.news_service import build_news_service, run_prewarm_loop
from src.config.settings import get_app_settings, resolve_api_settings
from src.utils.logging_config import configure_logging, get_logger

# Load environment variables
load_dotenv()

# Initialize logging (must be called before creating loggers)
configure_logging()

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan - startup and shutdown events."""
    # Startup
    settings = get_app_settings()
    logger.info("Starting OSINT Pulse API", registry=str(settings.source_registry_path))

    client = httpx.AsyncClient(
        headers={"User-Agent": settings.fetch.user_agent},
        timeout=settings.fetch.http_timeout_seconds,
        limits=httpx.Limits(max_connections=100, max_keepalive_connections=20),
    )
    service = await build_news_service(settings, client)
    app.state.news_service = service
    app.state.dead_sources = service.adapters.dead_sources

    prewarm_task = None
    if settings.cache.prewarm_interval_seconds:
        prewarm_task = asyncio.create_task(
            run_prewarm_loop(service, settings.cache.prewarm_interval_seconds),
            name="cache-prewarm",
        )

    logger.info(
        "API ready",
        sources=len(service.registry),
        persistent_cache=service.cache.persistent is not None,
        prewarm_interval=settings.cache.prewarm_interval_seconds,
    )

    yield

    # Shutdown
    logger.info("Shutting down API")
    if prewarm_task is not None:
        prewarm_task.cancel()
        try:
            await prewarm_task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.warning("Prewarm task ended with an error", error=str(e))
    try:
        await service.close()
    except Exception as e:
        logger.warning("News service cleanup failed", error=str(e))
    await client.aclose()


# Create FastAPI app
app = FastAPI(
    title="OSINT Pulse API",
    description="Aggregated OSINT news feed with regional activity detection",
    version="0.3.0",
    lifespan=lifespan,
)

# Add logging middleware (must be added before other middleware for accurate timing)
app.add_middleware(LoggingMiddleware)

# Configure CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=[
        "http://localhost:3000",  # Next.js dev server
        "http://127.0.0.1:3000",
        "http://localhost:5173",  # Vite dev server (if used)
    ],
    allow_credentials=True,
    allow_methods=["GET"],
    allow_headers=["*"],
    expose_headers=["Retry-After", "X-Request-ID"],
)

app.include_router(news_router, prefix="/api")
app.include_router(sources_router, prefix="/api")


@app.get("/api/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "service": "osint-pulse-api"}


def main():
    """Run the API server."""
    import uvicorn

    api_settings = resolve_api_settings()

    uvicorn.run(
        "src.api.main:app",
        host=api_settings.host,
        port=api_settings.port,
        reload=True,
        log_level="info",
    )


if __name__ == "__main__":
    main()
