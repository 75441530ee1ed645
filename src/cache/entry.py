"""Cache entry and freshness states."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Generic, Protocol, TypeVar

T = TypeVar("T")


class CacheState(str, Enum):
    FRESH = "fresh"
    STALE = "stale"
    EXPIRED = "expired"


@dataclass(frozen=True)
class CacheEntry(Generic[T]):
    """An immutable cached payload. Replaced on write, never mutated."""

    value: T
    timestamp: float  # wall-clock write time, epoch seconds
    item_count: int = 0

    def age(self, now: float) -> float:
        return max(0.0, now - self.timestamp)

    def state(self, now: float, fresh_seconds: float, stale_seconds: float) -> CacheState:
        age = self.age(now)
        if age < fresh_seconds:
            return CacheState.FRESH
        if age < stale_seconds:
            return CacheState.STALE
        return CacheState.EXPIRED

    @property
    def fetched_at(self) -> datetime:
        return datetime.fromtimestamp(self.timestamp, tz=timezone.utc)


class CacheCodec(Protocol):
    """How a payload is stored in the persistent tier."""

    def dump(self, value: Any) -> Any: ...

    def load(self, data: Any) -> Any: ...

    def count(self, value: Any) -> int: ...
