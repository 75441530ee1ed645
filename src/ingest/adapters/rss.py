"""RSS/Atom adapter. Feeds are a single page, so the cutoff is a plain filter."""

from __future__ import annotations

import re
from datetime import datetime, timezone
from urllib.parse import parse_qsl, urlencode, urlsplit, urlunsplit

import feedparser

from src.ingest.adapters.base import FetchResult, PlatformAdapter
from src.ingest.errors import ParseError, SourceNotFound
from src.ingest.models import NewsItem, Platform, Source, build_news_item, normalize_timestamp

_HTML_TAG_RE = re.compile(r"<[^>]+>")
_TRACKING_PARAMS = ("utm_", "fbclid", "gclid", "mc_cid", "mc_eid")
_MAX_CONTENT = 1000


def clean_link(url: str) -> str:
    """Drop tracking query parameters so the same article keeps one link."""
    if not url:
        return url
    parts = urlsplit(url)
    query = [
        (key, value)
        for key, value in parse_qsl(parts.query, keep_blank_values=True)
        if not key.lower().startswith(_TRACKING_PARAMS)
    ]
    return urlunsplit(parts._replace(query=urlencode(query)))


def _entry_timestamp(entry) -> datetime | str | None:
    for key in ("published_parsed", "updated_parsed"):
        parsed = entry.get(key)
        if parsed:
            try:
                return datetime(*parsed[:6], tzinfo=timezone.utc)
            except (TypeError, ValueError):
                continue
    return entry.get("published") or entry.get("updated")


def _clean_text(raw: str) -> str:
    text = _HTML_TAG_RE.sub("", raw or "").strip()
    return text[:_MAX_CONTENT] + ("…" if len(text) > _MAX_CONTENT else "")


class RSSAdapter(PlatformAdapter):
    platform = Platform.RSS

    async def _fetch(self, source: Source, cutoff: datetime) -> FetchResult:
        response = await self._request(
            source.locator,
            headers={"Accept": "application/rss+xml, application/atom+xml, application/xml, text/xml"},
            source=source,
            follow_redirects=True,
        )
        if response.status_code in (404, 410):
            raise SourceNotFound(f"Feed not found: {source.locator}", source_id=source.id)
        if response.status_code != 200:
            raise ParseError(f"Unexpected HTTP {response.status_code}", source_id=source.id)

        parsed = feedparser.parse(response.content)
        if parsed.bozo and not parsed.entries:
            raise ParseError(f"Malformed feed: {parsed.get('bozo_exception')}", source_id=source.id)

        items: list[NewsItem] = []
        for entry in parsed.entries:
            timestamp = normalize_timestamp(_entry_timestamp(entry))
            if timestamp < cutoff:
                continue
            link = clean_link(entry.get("link", ""))
            title = _clean_text(entry.get("title", "")) or "Untitled"
            items.append(
                build_news_item(
                    source,
                    guid=entry.get("id") or link,
                    link=link,
                    timestamp=timestamp,
                    title=title,
                    content=_clean_text(entry.get("summary", "")),
                )
            )
        return FetchResult(items=items)
