"""Reddit adapter using the public listing JSON."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from typing import Optional

from src.ingest.adapters.base import FetchResult, PlatformAdapter
from src.ingest.errors import ParseError, SourceNotFound
from src.ingest.models import NewsItem, Platform, Source, build_news_item, normalize_timestamp

LISTING_URL = "https://www.reddit.com/r/{subreddit}/new.json"
PAGE_SIZE = 100

_SUBREDDIT_RE = re.compile(r"(?:reddit\.com)?/?r/([^/?#]+)")


def extract_subreddit(locator: str) -> str:
    match = _SUBREDDIT_RE.search(locator)
    if match:
        return match.group(1)
    return locator.strip()


class RedditAdapter(PlatformAdapter):
    platform = Platform.REDDIT

    async def _fetch(self, source: Source, cutoff: datetime) -> FetchResult:
        subreddit = extract_subreddit(source.locator)
        if not subreddit:
            raise ParseError(f"Invalid subreddit locator: {source.locator}", source_id=source.id)
        url = LISTING_URL.format(subreddit=subreddit)

        async def fetch_page(after: Optional[str]) -> tuple[list[NewsItem], Optional[str]]:
            params = {"limit": PAGE_SIZE, "raw_json": 1}
            if after:
                params["after"] = after

            response = await self._request(url, params=params, source=source)
            # Banned, private and unknown subreddits answer 403/404 or redirect to search.
            if response.status_code in (403, 404) or response.is_redirect:
                raise SourceNotFound(f"Subreddit r/{subreddit} unavailable", source_id=source.id)
            if response.status_code != 200:
                raise ParseError(f"Unexpected HTTP {response.status_code}", source_id=source.id)

            body = self._json(response, source)
            try:
                listing = body["data"]
                children = listing.get("children") or []
                items = [self._to_item(source, child["data"]) for child in children]
            except (KeyError, TypeError, AttributeError) as e:
                raise ParseError(f"Malformed listing: {e}", source_id=source.id) from e
            return items, listing.get("after")

        return await self._paginate(source, cutoff, fetch_page)

    def _to_item(self, source: Source, post: dict) -> NewsItem:
        permalink = f"https://www.reddit.com{post['permalink']}"
        external = post.get("url_overridden_by_dest")
        created = datetime.fromtimestamp(float(post["created_utc"]), tz=timezone.utc)
        title = post.get("title", "").strip() or "[No title]"

        return build_news_item(
            source,
            guid=post.get("name") or f"t3_{post['id']}",
            link=external or permalink,
            timestamp=normalize_timestamp(created),
            title=title,
            content=(post.get("selftext") or "").strip()[:1000],
        )
