"""Regional surge detector.

Compares the observed post count per region in the activity window with
the time-of-day adjusted baseline and classifies each region.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Iterable, Optional, Sequence

from pydantic import BaseModel

from src.activity.baseline import (
    CONSERVATIVE_DEFAULT_PPD,
    DEFAULT_FEED_PLATFORMS,
    TIME_OF_DAY_MULTIPLIERS,
    region_daily_rates,
    round_half_up,
    time_of_day_multiplier,
    window_baseline,
)
from src.ingest.models import ALL_REGION, REGIONS, NewsItem, Platform, Source

DEFAULT_EXCLUDED_REGIONS: frozenset[str] = frozenset({"latam", "asia", "africa"})


class ActivityLevel(str, Enum):
    NORMAL = "normal"
    ELEVATED = "elevated"
    CRITICAL = "critical"


class RegionStatus(str, Enum):
    SCORED = "scored"
    NOT_ASSESSED = "not_assessed"  # excluded for thin source coverage
    UNSCORED = "unscored"  # no feed sources, so no baseline


class VsNormal(str, Enum):
    ABOVE = "above"
    BELOW = "below"
    NORMAL = "normal"


@dataclass(frozen=True)
class SurgeThresholds:
    critical_multiplier: float = 5.0
    critical_min_count: int = 50
    elevated_multiplier: float = 2.5
    elevated_min_count: int = 25
    above_ratio: float = 1.5
    below_ratio: float = 0.5


class RegionActivity(BaseModel):
    region: str
    status: RegionStatus
    count: int
    baseline: Optional[int] = None
    multiplier: Optional[float] = None
    level: Optional[ActivityLevel] = None
    vs_normal: Optional[VsNormal] = None
    percent_change: Optional[int] = None


def classify(multiplier: float, count: int, thresholds: SurgeThresholds = SurgeThresholds()) -> ActivityLevel:
    """Both the ratio and the absolute count must clear a level's bar.

    The count floor keeps tiny baselines from turning ordinary noise into a
    surge (baseline 2, count 10 is 5x but still normal).
    """
    if multiplier >= thresholds.critical_multiplier and count >= thresholds.critical_min_count:
        return ActivityLevel.CRITICAL
    if multiplier >= thresholds.elevated_multiplier and count >= thresholds.elevated_min_count:
        return ActivityLevel.ELEVATED
    return ActivityLevel.NORMAL


def compare_to_normal(multiplier: float, thresholds: SurgeThresholds = SurgeThresholds()) -> VsNormal:
    if multiplier >= thresholds.above_ratio:
        return VsNormal.ABOVE
    if multiplier <= thresholds.below_ratio:
        return VsNormal.BELOW
    return VsNormal.NORMAL


def score_region(
    region: str,
    count: int,
    baseline: int,
    thresholds: SurgeThresholds = SurgeThresholds(),
) -> RegionActivity:
    multiplier = count / baseline
    return RegionActivity(
        region=region,
        status=RegionStatus.SCORED,
        count=count,
        baseline=baseline,
        multiplier=multiplier,
        level=classify(multiplier, count, thresholds),
        vs_normal=compare_to_normal(multiplier, thresholds),
        percent_change=round_half_up((count - baseline) / baseline * 100),
    )


class SurgeDetector:
    """Produces one ``RegionActivity`` per region plus ``all``."""

    def __init__(
        self,
        sources: Iterable[Source],
        *,
        window_hours: float = 6,
        feed_platforms: Iterable[Platform] = DEFAULT_FEED_PLATFORMS,
        excluded_regions: Iterable[str] = DEFAULT_EXCLUDED_REGIONS,
        thresholds: SurgeThresholds = SurgeThresholds(),
        time_of_day: Sequence[float] = TIME_OF_DAY_MULTIPLIERS,
        conservative_default: float = CONSERVATIVE_DEFAULT_PPD,
    ) -> None:
        self.sources = tuple(sources)
        self.window_hours = window_hours
        self.feed_platforms = frozenset(feed_platforms)
        self.excluded_regions = frozenset(excluded_regions)
        self.thresholds = thresholds
        self.time_of_day = tuple(time_of_day)
        self.daily_rates = region_daily_rates(self.sources, self.feed_platforms, conservative_default)

    def baseline_for(self, region: str, now: datetime) -> Optional[int]:
        daily = self.daily_rates.get(region)
        if daily is None:
            return None
        return window_baseline(daily, self.window_hours, time_of_day_multiplier(now, self.time_of_day))

    def window_items(self, items: Iterable[NewsItem], now: datetime) -> list[NewsItem]:
        start = now - timedelta(hours=self.window_hours)
        return [
            item
            for item in items
            if item.platform in self.feed_platforms and start <= item.timestamp <= now
        ]

    def evaluate(self, items: Iterable[NewsItem], now: Optional[datetime] = None) -> dict[str, RegionActivity]:
        now = now or datetime.now(timezone.utc)
        in_window = self.window_items(items, now)

        counts = Counter(item.region for item in in_window)
        counts[ALL_REGION] = len(in_window)

        activity: dict[str, RegionActivity] = {}
        for region in (*REGIONS, ALL_REGION):
            count = counts.get(region, 0)
            baseline = self.baseline_for(region, now)

            if region in self.excluded_regions:
                activity[region] = RegionActivity(
                    region=region,
                    status=RegionStatus.NOT_ASSESSED,
                    count=count,
                    baseline=baseline,
                )
            elif baseline is None:
                activity[region] = RegionActivity(
                    region=region,
                    status=RegionStatus.UNSCORED,
                    count=count,
                )
            else:
                activity[region] = score_region(region, count, baseline, self.thresholds)

        return activity
