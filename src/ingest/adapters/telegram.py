"""Telegram adapter: MTProto when configured, public web preview otherwise."""

from __future__ import annotations

import re
import time
from datetime import datetime
from typing import Callable, Optional

from bs4 import BeautifulSoup

from src.ingest.adapters.base import FetchResult, PlatformAdapter
from src.ingest.adapters.telegram_client import FloodWait, TelegramMTProtoClient
from src.ingest.errors import ParseError, SourceNotFound
from src.ingest.models import NewsItem, Platform, Source, build_news_item, normalize_timestamp
from src.utils.logging_config import get_logger

logger = get_logger(__name__)

WEB_PREVIEW_URL = "https://t.me/s/{handle}"
SCRAPER_TIMEOUT_SECONDS = 8.0
# Telegram serves the preview only to browser-like clients.
BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)
NOT_FOUND_MARKERS = ("tgme_page_context_bot", "If you have <strong>Telegram</strong>")

_HANDLE_RE = re.compile(r"t\.me/(?:s/)?([^/?#]+)")


def extract_telegram_handle(locator: str) -> str:
    match = _HANDLE_RE.search(locator)
    if match:
        return match.group(1)
    return locator.strip().lstrip("@")


def telegram_guid(handle: str, message_id: int) -> str:
    """Id shared by the MTProto and web preview paths. Handles are case-insensitive."""
    return f"telegram-{handle.lower()}/{message_id}"


def parse_preview_html(html: str) -> tuple[list[dict], Optional[int]]:
    """Parse a ``t.me/s/`` page into raw messages (newest first) and the oldest id seen."""
    soup = BeautifulSoup(html, "html.parser")
    messages: list[dict] = []
    oldest_id: Optional[int] = None

    for node in soup.select("div.tgme_widget_message[data-post]"):
        post = node["data-post"]
        try:
            message_id = int(post.rsplit("/", 1)[-1])
        except ValueError:
            continue
        oldest_id = message_id if oldest_id is None else min(oldest_id, message_id)

        text_node = node.select_one("div.tgme_widget_message_text")
        if text_node is None:
            continue
        for br in text_node.find_all("br"):
            br.replace_with("\n")
        text = text_node.get_text().strip()
        if not text:
            continue

        time_node = node.select_one("time[datetime]")
        messages.append(
            {
                "id": message_id,
                "post": post,
                "text": text,
                "datetime": time_node["datetime"] if time_node else None,
            }
        )

    # The preview lists messages oldest first.
    messages.sort(key=lambda m: m["id"], reverse=True)
    return messages, oldest_id


class TelegramAdapter(PlatformAdapter):
    platform = Platform.TELEGRAM

    def __init__(
        self,
        *args,
        mtproto: Optional[TelegramMTProtoClient] = None,
        clock: Callable[[], float] = time.monotonic,
        **kwargs,
    ) -> None:
        super().__init__(*args, **kwargs)
        self.mtproto = mtproto
        self._clock = clock
        # handle -> monotonic time when MTProto may be used again
        self._flood_until: dict[str, float] = {}

    def _mtproto_available(self, handle: str) -> bool:
        if self.mtproto is None or not self.mtproto.configured:
            return False
        until = self._flood_until.get(handle)
        if until is None:
            return True
        if self._clock() >= until:
            del self._flood_until[handle]
            return True
        return False

    async def _fetch(self, source: Source, cutoff: datetime) -> FetchResult:
        handle = extract_telegram_handle(source.locator)
        if not handle:
            raise ParseError(f"Invalid Telegram locator: {source.locator}", source_id=source.id)

        if self._mtproto_available(handle):
            try:
                messages = await self.mtproto.fetch_messages(handle, cutoff, source_id=source.id)
            except SourceNotFound:
                raise
            except FloodWait as e:
                self._flood_until[handle] = self._clock() + e.seconds
                logger.warning("Telegram FloodWait, using web preview", handle=handle, seconds=e.seconds)
            except Exception as e:
                logger.warning("Telegram MTProto failed, using web preview", handle=handle, error=str(e))
            else:
                items = [
                    build_news_item(
                        source,
                        guid=telegram_guid(handle, message.id),
                        link=f"https://t.me/{handle}/{message.id}",
                        timestamp=normalize_timestamp(message.date),
                        title=message.text,
                        content=message.text,
                    )
                    for message in messages
                ]
                return FetchResult(items=items)

        return await self._scrape(source, handle, cutoff)

    async def _scrape(self, source: Source, handle: str, cutoff: datetime) -> FetchResult:
        url = WEB_PREVIEW_URL.format(handle=handle)
        headers = {
            "User-Agent": BROWSER_USER_AGENT,
            "Accept": "text/html,application/xhtml+xml",
            "Accept-Language": "en-US,en;q=0.9",
        }

        async def fetch_page(before: Optional[str]) -> tuple[list[NewsItem], Optional[str]]:
            response = await self._request_preview(url, before, headers, source)
            if response.status_code == 404:
                raise SourceNotFound(f"Channel @{handle} not found", source_id=source.id)
            if response.status_code != 200:
                raise ParseError(f"Unexpected HTTP {response.status_code}", source_id=source.id)

            html = response.text
            if any(marker in html for marker in NOT_FOUND_MARKERS):
                raise SourceNotFound(f"Channel @{handle} is private or does not exist", source_id=source.id)

            messages, oldest_id = parse_preview_html(html)
            items = [
                build_news_item(
                    source,
                    guid=telegram_guid(handle, message["id"]),
                    link=f"https://t.me/{handle}/{message['id']}",
                    timestamp=normalize_timestamp(message["datetime"]),
                    title=message["text"],
                    content=message["text"],
                )
                for message in messages
            ]
            next_before = str(oldest_id) if oldest_id and oldest_id > 1 else None
            return items, next_before

        return await self._paginate(source, cutoff, fetch_page)

    async def _request_preview(self, url: str, before: Optional[str], headers: dict, source: Source):
        params = {"before": before} if before else None
        return await self._request(
            url,
            params=params,
            headers=headers,
            source=source,
            follow_redirects=True,
            timeout=min(self.timeout, SCRAPER_TIMEOUT_SECONDS),
        )
