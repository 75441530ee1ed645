"""Tier 1: process-local cache."""

from __future__ import annotations

from typing import Optional

from src.cache.entry import CacheEntry


class MemoryCacheTier:
    """Dict-backed entries for the lifetime of the process.

    Writes replace the whole entry. Entries past ``max_age`` are dropped when
    they are next read.
    """

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}

    def get(self, key: str, now: float, max_age: float) -> Optional[CacheEntry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.age(now) >= max_age:
            del self._entries[key]
            return None
        return entry

    def set(self, key: str, entry: CacheEntry) -> None:
        self._entries[key] = entry

    def delete(self, key: str) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
