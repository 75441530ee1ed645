"""Mastodon adapter: account lookup followed by the public statuses API."""

from __future__ import annotations

import re
from datetime import datetime
from typing import Optional

from bs4 import BeautifulSoup

from src.ingest.adapters.base import FetchResult, PlatformAdapter
from src.ingest.errors import ParseError, SourceNotFound
from src.ingest.models import NewsItem, Platform, Source, build_news_item, normalize_timestamp

PAGE_SIZE = 40
VISIBLE = {"public", "unlisted"}

_PROFILE_URL_RE = re.compile(r"https?://([^/]+)/@([^/?#]+)")
_ACCT_RE = re.compile(r"^@?([^@\s]+)@([^/\s]+)$")


def parse_mastodon_locator(locator: str) -> Optional[tuple[str, str]]:
    """Return ``(username, instance)`` from ``user@instance`` or a profile URL."""
    locator = locator.strip()
    match = _PROFILE_URL_RE.match(locator)
    if match:
        return match.group(2), match.group(1)
    match = _ACCT_RE.match(locator)
    if match:
        return match.group(1), match.group(2)
    return None


def strip_html(html: str) -> str:
    soup = BeautifulSoup(html or "", "html.parser")
    for br in soup.find_all("br"):
        br.replace_with("\n")
    paragraphs = [p.get_text().strip() for p in soup.find_all("p")]
    if paragraphs:
        return "\n\n".join(p for p in paragraphs if p)
    return soup.get_text().strip()


class MastodonAdapter(PlatformAdapter):
    platform = Platform.MASTODON

    async def _fetch(self, source: Source, cutoff: datetime) -> FetchResult:
        parsed = parse_mastodon_locator(source.locator)
        if parsed is None:
            raise ParseError(f"Invalid Mastodon locator: {source.locator}", source_id=source.id)
        username, instance = parsed

        response = await self._request(
            f"https://{instance}/api/v1/accounts/lookup",
            params={"acct": username},
            source=source,
        )
        if response.status_code in (404, 410):
            raise SourceNotFound(f"Account @{username}@{instance} not found", source_id=source.id)
        if response.status_code != 200:
            raise ParseError(f"Lookup failed with HTTP {response.status_code}", source_id=source.id)

        account = self._json(response, source)
        account_id = account.get("id") if isinstance(account, dict) else None
        if not account_id:
            raise ParseError("Account lookup returned no id", source_id=source.id)

        statuses_url = f"https://{instance}/api/v1/accounts/{account_id}/statuses"

        async def fetch_page(max_id: Optional[str]) -> tuple[list[NewsItem], Optional[str]]:
            params = {"limit": PAGE_SIZE, "exclude_replies": "true"}
            if max_id:
                params["max_id"] = max_id

            page = await self._request(statuses_url, params=params, source=source)
            if page.status_code != 200:
                raise ParseError(f"Statuses fetch failed with HTTP {page.status_code}", source_id=source.id)

            statuses = self._json(page, source)
            if not isinstance(statuses, list) or not statuses:
                return [], None

            try:
                items = [
                    self._to_item(source, status)
                    for status in statuses
                    if status.get("visibility") in VISIBLE
                ]
                next_max_id = statuses[-1]["id"]
                # filtered pages can be empty, so the cutoff is checked on the raw page
                if normalize_timestamp(statuses[-1].get("created_at")) < cutoff:
                    next_max_id = None
            except (KeyError, TypeError, AttributeError) as e:
                raise ParseError(f"Malformed status: {e}", source_id=source.id) from e
            return items, next_max_id

        return await self._paginate(source, cutoff, fetch_page)

    def _to_item(self, source: Source, status: dict) -> NewsItem:
        # Boosts carry the original post as the content.
        content = status.get("reblog") or status
        text = strip_html(content.get("content", "")) or (content.get("spoiler_text") or "[Media attachment]")

        return build_news_item(
            source,
            guid=str(status["id"]),
            link=status.get("url") or content.get("url"),
            timestamp=normalize_timestamp(status.get("created_at")),
            title=text,
            content=text,
        )
