"""Dual-tier cache: in-process entries backed by a SQLite table."""

from src.cache.entry import CacheCodec, CacheEntry, CacheState
from src.cache.memory import MemoryCacheTier
from src.cache.persistent import PersistentCacheTier
from src.cache.service import CacheResult, CacheService

__all__ = [
    "CacheCodec",
    "CacheEntry",
    "CacheResult",
    "CacheService",
    "CacheState",
    "MemoryCacheTier",
    "PersistentCacheTier",
]
