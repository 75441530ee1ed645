"""Tests for the command line entry point."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src import main as cli
from src.activity.detector import RegionActivity, RegionStatus, score_region
from src.api.services.news_service import NewsSnapshot
from src.ingest.errors import PipelineFetchError


def test_activity_row_for_scored_region():
    row = cli._format_activity_row(score_region("us", count=30, baseline=6))
    assert row.split() == ["us", "30", "6", "5.00x", "elevated"]


def test_activity_row_for_unscored_region():
    row = cli._format_activity_row(RegionActivity(region="asia", status=RegionStatus.NOT_ASSESSED, count=4))
    assert row.split() == ["asia", "4", "-", "-", "not_assessed"]


def _fake_service(refresh) -> MagicMock:
    service = MagicMock()
    service.cache_key = "osint:all"
    service.refresh = refresh
    service.close = AsyncMock()
    return service


async def test_warmup_reports_counts(capsys):
    snapshot = NewsSnapshot(items=[], sources_count=3, succeeded=["a", "b"], failed=["c"], not_found=["c"])
    service = _fake_service(AsyncMock(return_value=snapshot))

    with patch.object(cli, "build_news_service", AsyncMock(return_value=service)):
        code = await cli.warmup()

    out = capsys.readouterr().out
    assert code == 0
    assert "2/3 sources" in out
    assert "Not found (1): c" in out
    service.close.assert_awaited_once()


async def test_warmup_failure_exit_code(capsys):
    service = _fake_service(AsyncMock(side_effect=PipelineFetchError("All 3 sources failed")))

    with patch.object(cli, "build_news_service", AsyncMock(return_value=service)):
        code = await cli.warmup()

    assert code == 1
    assert "Warmup failed" in capsys.readouterr().out
    service.close.assert_awaited_once()


def test_run_cli_dispatches_warmup():
    with (
        patch.object(cli, "configure_logging"),
        patch.object(cli, "load_dotenv"),
        patch.object(cli, "warmup", AsyncMock(return_value=0)) as warmup,
    ):
        with pytest.raises(SystemExit) as exc_info:
            cli.run_cli(["warmup"])

    assert exc_info.value.code == 0
    warmup.assert_awaited_once()


def test_run_cli_requires_command():
    with pytest.raises(SystemExit):
        cli.run_cli([])
