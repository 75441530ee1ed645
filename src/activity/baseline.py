"""Expected post counts per region.

Daily rates come from the source registry. Estimated (guessed) rates are
replaced with ``CONSERVATIVE_DEFAULT_PPD`` so that one inflated guess cannot
hide a real surge. The daily total is scaled to the activity window and then
to the current UTC time-of-day slot.

Time-of-day slots (UTC) and their weights, which sum to 4.0 so the daily
total is preserved:

    00:00-06:00  0.4  US evening/night, EU night
    06:00-12:00  0.8  EU morning
    12:00-18:00  1.5  US morning and EU afternoon overlap
    18:00-24:00  1.3  US afternoon, EU evening
"""

from __future__ import annotations

import math
from collections import defaultdict
from datetime import datetime
from typing import Iterable, Sequence

from src.ingest.models import ALL_REGION, Platform, Source

CONSERVATIVE_DEFAULT_PPD = 3.0

TIME_OF_DAY_MULTIPLIERS: tuple[float, float, float, float] = (0.4, 0.8, 1.5, 1.3)
FLAT_TIME_OF_DAY: tuple[float, float, float, float] = (1.0, 1.0, 1.0, 1.0)

DEFAULT_FEED_PLATFORMS: frozenset[Platform] = frozenset(
    {Platform.BLUESKY, Platform.TELEGRAM, Platform.MASTODON}
)


def round_half_up(value: float) -> int:
    """Round .5 away from zero for positive values (Python's round() is banker's)."""
    return int(math.floor(value + 0.5))


def effective_posts_per_day(source: Source, default: float = CONSERVATIVE_DEFAULT_PPD) -> float:
    if source.is_rate_trusted:
        return source.posts_per_day
    return default


def time_of_day_multiplier(
    now: datetime,
    profile: Sequence[float] = TIME_OF_DAY_MULTIPLIERS,
) -> float:
    slot = now.hour * len(profile) // 24
    return profile[slot]


def region_daily_rates(
    sources: Iterable[Source],
    feed_platforms: Iterable[Platform] = DEFAULT_FEED_PLATFORMS,
    default: float = CONSERVATIVE_DEFAULT_PPD,
) -> dict[str, float]:
    """Sum effective daily rates per region over feed-platform sources.

    Every feed source also counts toward ``all``. Regions without a feed
    source are absent from the result.
    """
    platforms = frozenset(feed_platforms)
    totals: dict[str, float] = defaultdict(float)
    for source in sources:
        if source.platform not in platforms:
            continue
        rate = effective_posts_per_day(source, default)
        if source.region != ALL_REGION:
            totals[source.region] += rate
        totals[ALL_REGION] += rate
    return dict(totals)


def window_baseline(daily_rate: float, window_hours: float, tod_multiplier: float) -> int:
    """Expected count for the window, never below 1."""
    flat = round_half_up(daily_rate * window_hours / 24)
    return max(1, round_half_up(flat * tod_multiplier))
