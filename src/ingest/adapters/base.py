"""Adapter contract shared by every platform.

Adapters never raise past ``PlatformAdapter.fetch``: every failure becomes a
``FetchResult`` whose ``error`` is set, possibly alongside partial items.
"""

from __future__ import annotations

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, ClassVar, Optional

import httpx

from src.ingest.errors import FetchError, ParseError, SourceNotFound, TransientFetchError
from src.ingest.models import NewsItem, Platform, Source
from src.utils.logging_config import get_logger

logger = get_logger(__name__)

NOT_FOUND_TTL_SECONDS = 60 * 60
TIMEOUT_WINDOW_SECONDS = 30 * 60
TIMEOUT_THRESHOLD = 2

# One page of results plus the cursor for the next (older) page.
PageFetcher = Callable[[Optional[str]], Awaitable[tuple[list[NewsItem], Optional[str]]]]


@dataclass
class FetchResult:
    items: list[NewsItem] = field(default_factory=list)
    error: Optional[FetchError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


@dataclass(frozen=True)
class DeadSourceEntry:
    source_id: str
    platform: Platform
    locator: str
    reason: str
    marked_at: float


class DeadSourceCache:
    """Process-wide record of sources that recently 404'd or kept timing out.

    Not-found sources are skipped for an hour. A source that times out
    ``TIMEOUT_THRESHOLD`` times inside ``TIMEOUT_WINDOW_SECONDS`` is skipped for
    the rest of that window.
    """

    def __init__(
        self,
        not_found_ttl: float = NOT_FOUND_TTL_SECONDS,
        timeout_window: float = TIMEOUT_WINDOW_SECONDS,
        timeout_threshold: int = TIMEOUT_THRESHOLD,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._not_found_ttl = not_found_ttl
        self._timeout_window = timeout_window
        self._timeout_threshold = timeout_threshold
        self._clock = clock
        self._dead: dict[str, DeadSourceEntry] = {}
        # source id -> (first timeout in window, count)
        self._timeouts: dict[str, tuple[float, int]] = {}

    def mark_not_found(self, source: Source, reason: str) -> None:
        self._dead[source.id] = DeadSourceEntry(
            source_id=source.id,
            platform=source.platform,
            locator=source.locator,
            reason=reason,
            marked_at=self._clock(),
        )

    def is_dead(self, source_id: str) -> bool:
        entry = self._dead.get(source_id)
        if entry is None:
            return False
        if self._clock() - entry.marked_at > self._not_found_ttl:
            del self._dead[source_id]
            return False
        return True

    def record_timeout(self, source_id: str) -> int:
        now = self._clock()
        first, count = self._timeouts.get(source_id, (now, 0))
        if now - first > self._timeout_window:
            first, count = now, 0
        self._timeouts[source_id] = (first, count + 1)
        return count + 1

    def is_suppressed(self, source_id: str) -> bool:
        record = self._timeouts.get(source_id)
        if record is None:
            return False
        first, count = record
        if self._clock() - first > self._timeout_window:
            del self._timeouts[source_id]
            return False
        return count >= self._timeout_threshold

    def entries(self) -> list[DeadSourceEntry]:
        return [entry for source_id, entry in list(self._dead.items()) if self.is_dead(source_id)]

    def clear(self) -> None:
        self._dead.clear()
        self._timeouts.clear()


class PlatformAdapter(ABC):
    """Fetches recent posts for one source of a single platform."""

    platform: ClassVar[Platform]

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        max_pages: int = 5,
        timeout: float = 10.0,
        user_agent: str = "OSINTPulse/0.3",
        dead_sources: Optional[DeadSourceCache] = None,
    ) -> None:
        self.client = client
        self.max_pages = max_pages
        self.timeout = timeout
        self.user_agent = user_agent
        self.dead_sources = dead_sources or DeadSourceCache()

    async def fetch(self, source: Source, cutoff: datetime) -> FetchResult:
        """Return items newer than *cutoff*; never raises."""
        if self.dead_sources.is_dead(source.id):
            return FetchResult(error=SourceNotFound("Source marked dead", source_id=source.id))
        if self.dead_sources.is_suppressed(source.id):
            return FetchResult(
                error=TransientFetchError("Skipped after repeated timeouts", source_id=source.id)
            )

        try:
            result = await self._fetch(source, cutoff)
        except FetchError as e:
            e.source_id = e.source_id or source.id
            result = FetchResult(error=e)
        except Exception as e:
            logger.warning(
                "Adapter raised unexpectedly",
                source_id=source.id,
                platform=self.platform.value,
                error=str(e),
                exc_info=True,
            )
            result = FetchResult(error=ParseError(str(e) or type(e).__name__, source_id=source.id))

        self._record_outcome(source, result)
        return result

    def _record_outcome(self, source: Source, result: FetchResult) -> None:
        error = result.error
        if error is None:
            return

        if isinstance(error, SourceNotFound):
            self.dead_sources.mark_not_found(source, str(error))
            logger.warning(
                "Source not found, skipping for 1 hour",
                source_id=source.id,
                platform=self.platform.value,
                locator=source.locator,
                reason=str(error),
            )
        elif isinstance(error, TransientFetchError):
            if error.timed_out:
                count = self.dead_sources.record_timeout(source.id)
                logger.warning(
                    "Source timed out",
                    source_id=source.id,
                    platform=self.platform.value,
                    timeouts=count,
                    partial_items=len(result.items),
                )
            else:
                logger.warning(
                    "Transient fetch failure",
                    source_id=source.id,
                    platform=self.platform.value,
                    status_code=error.status_code,
                    partial_items=len(result.items),
                )
        else:
            logger.warning(
                "Failed to parse source",
                source_id=source.id,
                platform=self.platform.value,
                error=str(error),
            )

    @abstractmethod
    async def _fetch(self, source: Source, cutoff: datetime) -> FetchResult:
        """Platform-specific retrieval. May raise ``FetchError`` subclasses."""

    async def _request(
        self,
        url: str,
        *,
        params: Optional[dict] = None,
        headers: Optional[dict] = None,
        source: Optional[Source] = None,
        follow_redirects: bool = False,
        timeout: Optional[float] = None,
    ) -> httpx.Response:
        """GET *url*, mapping timeouts, transport errors, 429 and 5xx to ``TransientFetchError``.

        Other statuses are returned to the caller to interpret.
        """
        source_id = source.id if source else None
        timeout = timeout or self.timeout
        request_headers = {"User-Agent": self.user_agent, "Accept": "application/json"}
        if headers:
            request_headers.update(headers)

        try:
            response = await self.client.get(
                url,
                params=params,
                headers=request_headers,
                timeout=timeout,
                follow_redirects=follow_redirects,
            )
        except httpx.TimeoutException as e:
            raise TransientFetchError(
                f"Request timeout after {timeout}s", source_id=source_id, timed_out=True
            ) from e
        except httpx.TransportError as e:
            raise TransientFetchError(f"Transport error: {e}", source_id=source_id) from e

        if response.status_code == 429 or response.status_code >= 500:
            raise TransientFetchError(
                f"HTTP {response.status_code}",
                source_id=source_id,
                status_code=response.status_code,
            )
        return response

    def _json(self, response: httpx.Response, source: Source):
        try:
            return response.json()
        except ValueError as e:
            raise ParseError(f"Invalid JSON from {self.platform.value}", source_id=source.id) from e

    async def _paginate(self, source: Source, cutoff: datetime, fetch_page: PageFetcher) -> FetchResult:
        """Walk pages newest-first until the cutoff, the last cursor or ``max_pages``.

        A page may yield no items after filtering and still carry a cursor; paging
        continues. A transient or parse failure on any page keeps what was already
        collected.
        """
        items: list[NewsItem] = []
        cursor: Optional[str] = None

        for _ in range(self.max_pages):
            try:
                page_items, cursor = await fetch_page(cursor)
            except (TransientFetchError, ParseError) as e:
                e.source_id = e.source_id or source.id
                return FetchResult(items=items, error=e)

            reached_cutoff = False
            for item in page_items:
                if item.timestamp < cutoff:
                    reached_cutoff = True
                    break
                items.append(item)

            if reached_cutoff or not cursor:
                break

        return FetchResult(items=items)
