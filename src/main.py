"""
OSINT Pulse command line entry point.

Commands:
    serve     run the API server
    warmup    run one fetch cycle into the cache (cron-friendly)
    activity  run one fetch cycle and print the regional activity table
"""

import asyncio
import sys
from datetime import datetime, timezone
from typing import Optional

import httpx
from dotenv import load_dotenv

from src.activity.detector import RegionActivity
from src.api.services.news_service import NewsService, build_news_service
from src.config.settings import get_app_settings
from src.ingest.errors import PulseError
from src.utils.logging_config import configure_logging, get_logger

logger = get_logger(__name__)


def _format_activity_row(activity: RegionActivity) -> str:
    if activity.level is None:
        verdict = activity.status.value
        ratio = "-"
    else:
        verdict = activity.level.value
        ratio = f"{activity.multiplier:.2f}x"
    baseline = activity.baseline if activity.baseline is not None else "-"
    return f"{activity.region:<15} {activity.count:>6} {baseline!s:>9} {ratio:>8}  {verdict}"


async def _with_service(run) -> int:
    settings = get_app_settings()
    async with httpx.AsyncClient(
        headers={"User-Agent": settings.fetch.user_agent},
        timeout=settings.fetch.http_timeout_seconds,
    ) as client:
        service = await build_news_service(settings, client)
        try:
            return await run(service)
        finally:
            await service.close()


async def warmup() -> int:
    """Fetch every source once and write the result to both cache tiers."""

    async def run(service: NewsService) -> int:
        try:
            snapshot = await service.refresh()
        except PulseError as e:
            print(f"Warmup failed: {e}")
            return 1

        print(
            f"Cached {len(snapshot.items)} items from {len(snapshot.succeeded)}/"
            f"{snapshot.sources_count} sources under '{service.cache_key}'"
        )
        if snapshot.not_found:
            print(f"Not found ({len(snapshot.not_found)}): {', '.join(snapshot.not_found)}")
        return 0

    return await _with_service(run)


async def show_activity(hours: int) -> int:
    """Print per-region activity for the current window."""

    async def run(service: NewsService) -> int:
        response = await service.get_news(hours=hours)
        if response.error and not response.items:
            print(f"No data: {response.error}")
            return 1

        print(f"Activity at {datetime.now(timezone.utc):%Y-%m-%d %H:%M} UTC "
              f"({service.detector.window_hours}h window)")
        print(f"{'region':<15} {'count':>6} {'baseline':>9} {'ratio':>8}  level")
        print("-" * 50)
        for activity in response.activity.values():
            print(_format_activity_row(activity))

        anomalous = [s for s in response.source_activity.values() if s.is_anomalous]
        if anomalous:
            print("\nSources posting above their usual rate:")
            for profile in sorted(anomalous, key=lambda s: s.anomaly_ratio, reverse=True):
                print(f"  {profile.source_id}: {profile.recent_posts} posts ({profile.anomaly_ratio}x)")
        return 0

    return await _with_service(run)


def run_cli(argv: Optional[list[str]] = None) -> None:
    """CLI entry point for the pulse service."""
    import argparse

    parser = argparse.ArgumentParser(
        description="OSINT Pulse - multi-source news ingestion with regional surge detection"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("serve", help="Run the API server")
    subparsers.add_parser("warmup", help="Fetch all sources once and populate the cache")
    activity_parser = subparsers.add_parser("activity", help="Print the regional activity table")
    activity_parser.add_argument(
        "--hours",
        type=int,
        default=6,
        help="Item window in hours (default: 6)",
    )
    args = parser.parse_args(argv)

    load_dotenv()
    configure_logging()

    if args.command == "serve":
        from src.api.main import main as serve

        serve()
        return

    if args.command == "warmup":
        sys.exit(asyncio.run(warmup()))

    sys.exit(asyncio.run(show_activity(args.hours)))


if __name__ == "__main__":
    run_cli()
