"""Error taxonomy for the ingestion and caching pipeline.

Fetch errors are normally carried as values on a ``FetchResult`` rather than
raised; only the cache service and the API boundary raise them.
"""

from __future__ import annotations

from typing import Optional


class PulseError(Exception):
    """Base class for all pipeline errors."""


class FetchError(PulseError):
    """A single source could not be fully fetched."""

    def __init__(self, message: str, source_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.source_id = source_id


class SourceNotFound(FetchError):
    """The account, channel or feed does not exist (or is private).

    Reported for registry maintenance and never retried within the dead-source TTL.
    """


class TransientFetchError(FetchError):
    """Timeout, 429 or 5xx. Partial results collected so far are kept."""

    def __init__(
        self,
        message: str,
        source_id: Optional[str] = None,
        status_code: Optional[int] = None,
        timed_out: bool = False,
    ) -> None:
        super().__init__(message, source_id=source_id)
        self.status_code = status_code
        self.timed_out = timed_out


class ParseError(FetchError):
    """Malformed response or feed for one source."""


class CacheUnavailable(PulseError):
    """The persistent cache tier is unreachable."""


class PipelineFetchError(PulseError):
    """Every source failed; nothing usable was produced."""

    def __init__(self, message: str, failed_sources: int = 0) -> None:
        super().__init__(message)
        self.failed_sources = failed_sources
