"""Source registry loader.

The registry is a hand-curated JSON list of sources maintained out of band.
The pipeline only reads it.
"""

from __future__ import annotations

import json
from collections import defaultdict
from datetime import datetime
from pathlib import Path
from typing import Iterable, Optional

from src.ingest.models import ALL_REGION, REGIONS, Platform, RateKind, Source
from src.utils.logging_config import get_logger

logger = get_logger(__name__)

# Parsed registries keyed by resolved path
_registry_cache: dict[Path, "SourceRegistry"] = {}


class SourceRegistry:
    """Immutable view over the configured sources."""

    def __init__(self, sources: Iterable[Source]) -> None:
        self._sources: tuple[Source, ...] = tuple(sources)
        self._by_id = {source.id: source for source in self._sources}

    def __len__(self) -> int:
        return len(self._sources)

    def __iter__(self):
        return iter(self._sources)

    @property
    def sources(self) -> tuple[Source, ...]:
        return self._sources

    def get(self, source_id: str) -> Optional[Source]:
        return self._by_id.get(source_id)

    def by_platform(self) -> dict[Platform, list[Source]]:
        grouped: dict[Platform, list[Source]] = defaultdict(list)
        for source in self._sources:
            grouped[source.platform].append(source)
        return dict(grouped)

    def for_region(self, region: str) -> list[Source]:
        return [source for source in self._sources if source.region == region]


def _parse_rate_kind(entry: dict) -> RateKind:
    raw = entry.get("rate_kind")
    if raw:
        return RateKind(str(raw).lower())
    # Without an explicit kind, only a recorded measurement makes the rate trusted.
    return RateKind.MEASURED if entry.get("baseline_measured_at") else RateKind.ESTIMATED


def _parse_source(entry: dict) -> Source:
    region = str(entry["region"]).lower()
    if region not in REGIONS and region != ALL_REGION:
        raise ValueError(f"Unknown region '{region}'")

    measured_at = entry.get("baseline_measured_at")
    baseline_measured_at = (
        datetime.fromisoformat(str(measured_at).replace("Z", "+00:00")) if measured_at else None
    )

    return Source(
        id=str(entry["id"]),
        name=str(entry.get("name") or entry["id"]),
        platform=Platform(str(entry["platform"]).lower()),
        region=region,
        locator=str(entry["locator"]),
        tier=int(entry.get("tier", 2)),
        posts_per_day=float(entry.get("posts_per_day", 0) or 0),
        rate_kind=_parse_rate_kind(entry),
        baseline_measured_at=baseline_measured_at,
    )


def parse_sources(entries: list[dict]) -> SourceRegistry:
    """Build a registry from raw dict entries, skipping invalid ones."""
    sources: list[Source] = []
    seen: set[str] = set()
    for entry in entries:
        try:
            source = _parse_source(entry)
        except (KeyError, TypeError, ValueError) as e:
            logger.warning("Skipping invalid registry entry", entry_id=entry.get("id"), error=str(e))
            continue
        if source.id in seen:
            logger.warning("Skipping duplicate registry entry", entry_id=source.id)
            continue
        seen.add(source.id)
        sources.append(source)
    return SourceRegistry(sources)


def load_source_registry(path: Path) -> SourceRegistry:
    """Load and cache the registry stored at *path*."""
    resolved = path.resolve()
    if resolved in _registry_cache:
        return _registry_cache[resolved]

    if not resolved.exists():
        raise FileNotFoundError(f"Source registry not found: {resolved}")

    with resolved.open(encoding="utf-8") as fh:
        raw = json.load(fh)

    entries = raw.get("sources", []) if isinstance(raw, dict) else raw
    registry = parse_sources(entries)
    logger.info("Source registry loaded", path=str(resolved), sources=len(registry))
    _registry_cache[resolved] = registry
    return registry


def clear_registry_cache() -> None:
    """Drop parsed registries (for tests)."""
    _registry_cache.clear()
