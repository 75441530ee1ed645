"""Batched, platform-aware fetcher.

Sources are split per platform and fetched in sequential batches. Each batch
runs its sources concurrently, and a cooperative sleep separates batches.
Platforms run in parallel with each other. Per-source failures are carried as
values on ``FetchOutcome`` and never abort a batch.
"""

from __future__ import annotations

import asyncio
import time
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from typing import Awaitable, Callable, Iterable, Mapping, Optional, Sequence

from src.ingest.adapters import AdapterRegistry
from src.ingest.errors import FetchError, ParseError, SourceNotFound, TransientFetchError
from src.ingest.models import NewsItem, Platform, Source, merge_and_sort
from src.utils.logging_config import get_logger, source_log_context

logger = get_logger(__name__)


@dataclass(frozen=True)
class BatchProfile:
    batch_size: int
    delay_seconds: float


# Federated servers each have their own strict per-IP limits, so Mastodon gets
# small batches and long pauses. The Bluesky AppView is a single endpoint.
BATCH_PROFILES: dict[Platform, BatchProfile] = {
    Platform.BLUESKY: BatchProfile(batch_size=30, delay_seconds=0.1),
    Platform.TELEGRAM: BatchProfile(batch_size=5, delay_seconds=0.3),
    Platform.MASTODON: BatchProfile(batch_size=5, delay_seconds=0.3),
    Platform.RSS: BatchProfile(batch_size=20, delay_seconds=0.1),
    Platform.REDDIT: BatchProfile(batch_size=10, delay_seconds=0.2),
}
DEFAULT_PROFILE = BatchProfile(batch_size=10, delay_seconds=0.2)


@dataclass
class FetchOutcome:
    source: Source
    items: list[NewsItem] = field(default_factory=list)
    error: Optional[FetchError] = None

    @property
    def succeeded(self) -> bool:
        # Partial data after a transient failure still counts as a success.
        return self.error is None or (isinstance(self.error, TransientFetchError) and bool(self.items))


@dataclass
class FetchReport:
    outcomes: list[FetchOutcome]
    items: list[NewsItem]
    duration_ms: float

    @property
    def succeeded(self) -> list[str]:
        return [o.source.id for o in self.outcomes if o.succeeded]

    @property
    def failed(self) -> list[str]:
        return [o.source.id for o in self.outcomes if not o.succeeded]

    @property
    def not_found(self) -> list[str]:
        return [o.source.id for o in self.outcomes if isinstance(o.error, SourceNotFound)]

    @property
    def total_failure(self) -> bool:
        return bool(self.outcomes) and not self.succeeded


def chunked(sources: Sequence[Source], size: int) -> list[list[Source]]:
    size = max(1, size)
    return [list(sources[i : i + size]) for i in range(0, len(sources), size)]


class BatchedFetcher:
    """Drives sources through their adapters under per-platform batch budgets."""

    def __init__(
        self,
        adapters: AdapterRegistry,
        *,
        profiles: Optional[Mapping[Platform, BatchProfile]] = None,
        source_timeout: float = 20.0,
        aggregate_timeout: float = 55.0,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.adapters = adapters
        self.profiles = dict(profiles or BATCH_PROFILES)
        self.source_timeout = source_timeout
        self.aggregate_timeout = aggregate_timeout
        self._sleep = sleep

    async def fetch_source(self, source: Source, cutoff: datetime) -> FetchOutcome:
        adapter = self.adapters.get(source.platform)
        if adapter is None:
            return FetchOutcome(
                source=source,
                error=ParseError(f"No adapter for platform {source.platform.value}", source_id=source.id),
            )

        try:
            with source_log_context(source.id, source.platform.value):
                result = await asyncio.wait_for(adapter.fetch(source, cutoff), timeout=self.source_timeout)
        except asyncio.TimeoutError:
            self.adapters.dead_sources.record_timeout(source.id)
            logger.warning("Source fetch timed out", source_id=source.id, timeout=self.source_timeout)
            return FetchOutcome(
                source=source,
                error=TransientFetchError(
                    f"Source timed out after {self.source_timeout}s",
                    source_id=source.id,
                    timed_out=True,
                ),
            )
        except Exception as e:
            logger.error("Adapter broke its no-raise contract", source_id=source.id, error=str(e), exc_info=True)
            return FetchOutcome(source=source, error=ParseError(str(e), source_id=source.id))

        return FetchOutcome(source=source, items=result.items, error=result.error)

    async def fetch_batch(
        self,
        sources: Sequence[Source],
        cutoff: datetime,
        batch_size: int,
        delay_seconds: float,
        collected: Optional[list[FetchOutcome]] = None,
    ) -> list[FetchOutcome]:
        """Fetch *sources* in sequential batches of *batch_size*.

        When *collected* is given, each outcome is appended as soon as it
        completes so a caller that cancels mid-way keeps finished work.
        """
        outcomes: list[FetchOutcome] = []

        async def run(source: Source) -> FetchOutcome:
            outcome = await self.fetch_source(source, cutoff)
            outcomes.append(outcome)
            if collected is not None:
                collected.append(outcome)
            return outcome

        for index, batch in enumerate(chunked(sources, batch_size)):
            if index > 0 and delay_seconds > 0:
                await self._sleep(delay_seconds)
            await asyncio.gather(*(run(source) for source in batch))

        return outcomes

    async def fetch_all(self, sources: Iterable[Source], cutoff: datetime) -> FetchReport:
        """Fetch every source, platforms in parallel, within the aggregate timeout."""
        started = time.perf_counter()
        sources = list(sources)

        grouped: dict[Platform, list[Source]] = defaultdict(list)
        for source in sources:
            grouped[source.platform].append(source)

        collected: list[FetchOutcome] = []
        tasks = []
        for platform, group in grouped.items():
            profile = self.profiles.get(platform, DEFAULT_PROFILE)
            tasks.append(
                asyncio.create_task(
                    self.fetch_batch(group, cutoff, profile.batch_size, profile.delay_seconds, collected),
                    name=f"fetch-{platform.value}",
                )
            )

        if tasks:
            _, pending = await asyncio.wait(tasks, timeout=self.aggregate_timeout)
            if pending:
                logger.warning(
                    "Aggregate fetch timed out; keeping completed sources",
                    timeout=self.aggregate_timeout,
                    pending_platforms=len(pending),
                )
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

        finished = {outcome.source.id for outcome in collected}
        for source in sources:
            if source.id not in finished:
                collected.append(
                    FetchOutcome(
                        source=source,
                        error=TransientFetchError(
                            "Aggregate fetch deadline reached", source_id=source.id, timed_out=True
                        ),
                    )
                )

        items = merge_and_sort([item for outcome in collected for item in outcome.items])
        duration_ms = (time.perf_counter() - started) * 1000

        report = FetchReport(outcomes=collected, items=items, duration_ms=round(duration_ms, 2))
        logger.info(
            "Fetch cycle completed",
            sources=len(sources),
            succeeded=len(report.succeeded),
            failed=len(report.failed),
            not_found=len(report.not_found),
            items=len(items),
            duration_ms=report.duration_ms,
        )
        return report
