"""Bluesky adapter using the public AppView author feed."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Optional

from src.ingest.adapters.base import FetchResult, PlatformAdapter
from src.ingest.errors import ParseError, SourceNotFound
from src.ingest.models import NewsItem, Platform, Source, build_news_item, normalize_timestamp

AUTHOR_FEED_URL = "https://public.api.bsky.app/xrpc/app.bsky.feed.getAuthorFeed"
PAGE_SIZE = 50

_PROFILE_URL_RE = re.compile(r"bsky\.app/profile/([^/?#]+)")


def extract_bluesky_handle(locator: str) -> str:
    """Accept a bare handle, ``@handle`` or a bsky.app profile/RSS URL."""
    match = _PROFILE_URL_RE.search(locator)
    if match:
        return match.group(1)
    return locator.strip().lstrip("@")


def _embed_text(embed: Optional[dict]) -> str:
    """Placeholder text for media-only posts."""
    if not embed:
        return "[No content]"

    embed_type = embed.get("$type", "")
    images = embed.get("images") or (embed.get("media") or {}).get("images") or []
    if "video" in embed_type:
        return "[Video]"
    if "images" in embed_type or images:
        alt = images[0].get("alt") if images else None
        return alt or "[Image]"
    external = embed.get("external") or {}
    if external.get("title"):
        return external["title"]
    return "[Media attachment]"


class BlueskyAdapter(PlatformAdapter):
    platform = Platform.BLUESKY

    async def _fetch(self, source: Source, cutoff: datetime) -> FetchResult:
        handle = extract_bluesky_handle(source.locator)
        if not handle:
            raise ParseError(f"Invalid Bluesky locator: {source.locator}", source_id=source.id)

        async def fetch_page(cursor: Optional[str]) -> tuple[list[NewsItem], Optional[str]]:
            params = {"actor": handle, "limit": PAGE_SIZE, "filter": "posts_no_replies"}
            if cursor:
                params["cursor"] = cursor

            response = await self._request(AUTHOR_FEED_URL, params=params, source=source)
            if response.status_code in (400, 404):
                error = self._json_or_empty(response)
                raise SourceNotFound(
                    f"{error.get('error', 'NotFound')}: {error.get('message', handle)}",
                    source_id=source.id,
                )
            if response.status_code != 200:
                raise ParseError(f"Unexpected HTTP {response.status_code}", source_id=source.id)

            data = self._json(response, source)
            feed = data.get("feed") if isinstance(data, dict) else None
            if not isinstance(feed, list):
                return [], None
            try:
                items = [self._to_item(source, entry) for entry in feed]
            except (KeyError, TypeError, AttributeError) as e:
                raise ParseError(f"Malformed author feed entry: {e}", source_id=source.id) from e
            return items, data.get("cursor")

        return await self._paginate(source, cutoff, fetch_page)

    @staticmethod
    def _json_or_empty(response) -> dict:
        try:
            body = response.json()
        except ValueError:
            return {}
        return body if isinstance(body, dict) else {}

    def _to_item(self, source: Source, entry: dict) -> NewsItem:
        post = entry["post"]
        record = post.get("record") or {}
        author = post.get("author") or {}

        text = (record.get("text") or "").strip() or _embed_text(post.get("embed"))
        rkey = post["uri"].rsplit("/", 1)[-1]
        link = f"https://bsky.app/profile/{author.get('handle', '')}/post/{rkey}"

        # Reposts are ordered by repost time, not by the original post's creation.
        reason = entry.get("reason") or {}
        if "reasonRepost" in reason.get("$type", "") and reason.get("indexedAt"):
            created = reason["indexedAt"]
        else:
            created = record.get("createdAt") or post.get("indexedAt")

        return build_news_item(
            source,
            guid=post["uri"],
            link=link,
            timestamp=normalize_timestamp(created),
            title=text,
            content=text,
        )
