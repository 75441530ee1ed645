"""Authenticated Telegram access over MTProto (Telethon).

Only used when ``TELEGRAM_API_ID``, ``TELEGRAM_API_HASH`` and
``TELEGRAM_SESSION`` are all set. Telethon is imported lazily so the web
scraper path has no MTProto start-up cost.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from src.config.settings import TelegramSettings
from src.ingest.errors import SourceNotFound, TransientFetchError
from src.utils.logging_config import get_logger

logger = get_logger(__name__)


class FloodWait(TransientFetchError):
    """Telegram asked us to back off for ``seconds``."""

    def __init__(self, seconds: int, source_id: Optional[str] = None) -> None:
        super().__init__(f"FloodWait for {seconds}s", source_id=source_id, status_code=420)
        self.seconds = seconds


@dataclass(frozen=True)
class TelegramMessage:
    id: int
    date: datetime
    text: str


class TelegramMTProtoClient:
    """Thin wrapper around a single shared ``TelegramClient`` session."""

    def __init__(self, settings: TelegramSettings) -> None:
        self._settings = settings
        self._client = None
        self._lock: asyncio.Lock | None = None

    @property
    def configured(self) -> bool:
        return self._settings.is_configured

    def _get_lock(self) -> asyncio.Lock:
        if self._lock is None:
            self._lock = asyncio.Lock()
        return self._lock

    async def _ensure_connected(self):
        if self._client is not None and self._client.is_connected():
            return self._client

        async with self._get_lock():
            if self._client is not None and self._client.is_connected():
                return self._client

            from telethon import TelegramClient
            from telethon.sessions import StringSession

            client = TelegramClient(
                StringSession(self._settings.session),
                self._settings.api_id,
                self._settings.api_hash,
            )
            await client.connect()
            if not await client.is_user_authorized():
                await client.disconnect()
                raise TransientFetchError("Telegram session is not authorized")

            logger.info("Telegram MTProto client connected")
            self._client = client
            return client

    async def fetch_messages(
        self,
        handle: str,
        cutoff: datetime,
        limit: int = 100,
        source_id: Optional[str] = None,
    ) -> list[TelegramMessage]:
        """Newest-first messages from *handle* posted at or after *cutoff*."""
        from telethon import errors

        client = await self._ensure_connected()
        messages: list[TelegramMessage] = []
        try:
            async for message in client.iter_messages(handle, limit=limit):
                if message.date < cutoff:
                    break
                text = (message.message or "").strip()
                if not text:
                    continue
                messages.append(TelegramMessage(id=message.id, date=message.date, text=text))
        except errors.FloodWaitError as e:
            raise FloodWait(e.seconds, source_id=source_id) from e
        except (
            errors.UsernameInvalidError,
            errors.UsernameNotOccupiedError,
            errors.ChannelPrivateError,
        ) as e:
            raise SourceNotFound(f"Channel @{handle} unavailable: {e}", source_id=source_id) from e
        except ValueError as e:
            # get_entity raises ValueError for unknown usernames
            raise SourceNotFound(f"Channel @{handle} not found: {e}", source_id=source_id) from e
        return messages

    async def disconnect(self) -> None:
        if self._client is not None:
            await self._client.disconnect()
            self._client = None
