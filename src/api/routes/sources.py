"""Source registry maintenance routes."""

from __future__ import annotations

from datetime import datetime, timezone

from fastapi import APIRouter, Request

from src.api.schemas.news import DeadSource, DeadSourcesResponse

router = APIRouter(prefix="/sources", tags=["sources"])


@router.get("/dead", response_model=DeadSourcesResponse)
async def list_dead_sources(request: Request) -> DeadSourcesResponse:
    """Sources their platform reported as missing or private within the last hour."""
    entries = request.app.state.dead_sources.entries()
    sources = [
        DeadSource(
            source_id=entry.source_id,
            platform=entry.platform,
            locator=entry.locator,
            reason=entry.reason,
            marked_at=datetime.fromtimestamp(entry.marked_at, tz=timezone.utc),
        )
        for entry in sorted(entries, key=lambda e: e.marked_at, reverse=True)
    ]
    return DeadSourcesResponse(sources=sources, total=len(sources))
