"""Tier 2: SQLite-backed cache that survives restarts and cold starts."""

from __future__ import annotations

import os
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import JSON, Column, DateTime, Integer, String
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine
from sqlalchemy.future import select
from sqlalchemy.orm import declarative_base, sessionmaker

from src.cache.entry import CacheCodec, CacheEntry
from src.ingest.errors import CacheUnavailable
from src.utils.logging_config import get_logger

logger = get_logger(__name__)

Base = declarative_base()


class NewsCacheModel(Base):
    """One serialized payload per cache key."""

    __tablename__ = "news_cache"

    cache_key = Column(String(255), primary_key=True)
    data = Column(JSON, nullable=False)
    item_count = Column(Integer, nullable=False, default=0)
    fetched_at = Column(DateTime(timezone=True), nullable=False)


def _as_utc(value: datetime) -> datetime:
    # SQLite drops tzinfo on the way back out.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class PersistentCacheTier:
    """Read-if-fresh and unconditional upsert over the ``news_cache`` table.

    Every database failure surfaces as ``CacheUnavailable`` so callers can
    fall back to the in-process tier.
    """

    def __init__(self, db_path: str, codec: CacheCodec) -> None:
        self.db_path = db_path
        self.codec = codec
        self._engine = None
        self._session_factory = None

    async def init(self) -> None:
        """Create the engine and the table."""
        try:
            os.makedirs(os.path.dirname(self.db_path) or ".", exist_ok=True)
            self._engine = create_async_engine(f"sqlite+aiosqlite:///{self.db_path}", echo=False)
            async with self._engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
        except (SQLAlchemyError, OSError) as e:
            raise CacheUnavailable(f"Cannot open cache database {self.db_path}: {e}") from e

        self._session_factory = sessionmaker(self._engine, class_=AsyncSession, expire_on_commit=False)
        logger.info("Persistent cache ready", db_path=self.db_path)

    def _session(self) -> AsyncSession:
        if self._session_factory is None:
            raise CacheUnavailable("Persistent cache not initialized. Call init() first.")
        return self._session_factory()

    async def get(self, key: str, now: float, max_age: float) -> Optional[CacheEntry]:
        """Return the entry for *key* if it was written less than *max_age* seconds ago."""
        threshold = datetime.fromtimestamp(now, tz=timezone.utc) - timedelta(seconds=max_age)
        try:
            async with self._session() as session:
                result = await session.execute(
                    select(NewsCacheModel).where(NewsCacheModel.cache_key == key)
                )
                row = result.scalar_one_or_none()
        except SQLAlchemyError as e:
            raise CacheUnavailable(f"Cache read failed for {key}: {e}") from e

        if row is None:
            return None

        fetched_at = _as_utc(row.fetched_at)
        if fetched_at <= threshold:
            return None

        try:
            value = self.codec.load(row.data)
        except (TypeError, ValueError) as e:
            logger.warning("Discarding undecodable cache row", cache_key=key, error=str(e))
            return None

        return CacheEntry(value=value, timestamp=fetched_at.timestamp(), item_count=row.item_count)

    async def set(self, key: str, entry: CacheEntry) -> None:
        """Insert or replace the row for *key*."""
        values = {
            "cache_key": key,
            "data": self.codec.dump(entry.value),
            "item_count": entry.item_count,
            "fetched_at": entry.fetched_at,
        }
        stmt = sqlite_insert(NewsCacheModel).values(**values)
        stmt = stmt.on_conflict_do_update(
            index_elements=[NewsCacheModel.cache_key],
            set_={
                "data": stmt.excluded.data,
                "item_count": stmt.excluded.item_count,
                "fetched_at": stmt.excluded.fetched_at,
            },
        )
        try:
            async with self._session() as session:
                await session.execute(stmt)
                await session.commit()
        except SQLAlchemyError as e:
            raise CacheUnavailable(f"Cache write failed for {key}: {e}") from e

    async def close(self) -> None:
        if self._engine is not None:
            await self._engine.dispose()
            self._engine = None
            self._session_factory = None
