"""Tests for the operator CLI.

Command handlers are called directly with a mocked session; services and the
NS client are patched where they are looked up.
"""

import argparse
import uuid
from collections.abc import Generator
from datetime import UTC, datetime
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from freezegun import freeze_time
from railwatch.cli import cmd_check_route, cmd_plan, cmd_sweep, cmd_sync_stations, main
from railwatch.models.route import UrgencyLevel
from railwatch.services.check_scheduler import SweepResult
from railwatch.services.disruption_checker import CheckOutcome, CheckResult
from railwatch.services.ns_client import TransitApiError

from tests.helpers.fakes import make_route


def test_main_without_command(capsys: pytest.CaptureFixture[str]) -> None:
    """Test that running without a command prints help and fails."""
    assert main([]) == 1
    assert "sync-stations" in capsys.readouterr().out


@patch("railwatch.cli.NsApiClient")
@patch("railwatch.cli.StationService")
async def test_cmd_sync_stations_success(
    mock_service_class: MagicMock,
    mock_client_class: MagicMock,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Test that sync counts are printed."""
    mock_service_class.return_value.sync_stations = AsyncMock(return_value={"synced": 390, "skipped": 2, "total": 392})

    exit_code = await cmd_sync_stations(argparse.Namespace(), AsyncMock())

    assert exit_code == 0
    captured = capsys.readouterr()
    assert "Stations synced" in captured.out
    assert "390" in captured.out


@patch("railwatch.cli.NsApiClient")
@patch("railwatch.cli.StationService")
async def test_cmd_sync_stations_provider_failure(
    mock_service_class: MagicMock,
    mock_client_class: MagicMock,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Test that an NS outage is reported on stderr."""
    mock_service_class.return_value.sync_stations = AsyncMock(side_effect=TransitApiError("NS API returned 503"))

    exit_code = await cmd_sync_stations(argparse.Namespace(), AsyncMock())

    assert exit_code == 1
    assert "NS API unavailable" in capsys.readouterr().err


async def test_cmd_check_route_invalid_id(capsys: pytest.CaptureFixture[str]) -> None:
    """Test that a malformed route id is rejected before any work."""
    exit_code = await cmd_check_route(argparse.Namespace(route_id="not-a-uuid"), AsyncMock())

    assert exit_code == 1
    assert "Invalid route id" in capsys.readouterr().err


@pytest.mark.parametrize(
    ("outcome", "exit_code", "message"),
    [
        (CheckOutcome.CHECKED, 0, "Checked route"),
        (CheckOutcome.ROUTE_NOT_FOUND, 1, "Route not found"),
        (CheckOutcome.PROVIDER_UNAVAILABLE, 1, "cached disruptions left untouched"),
    ],
)
@patch("railwatch.cli.NsApiClient")
@patch("railwatch.cli.DisruptionChecker")
async def test_cmd_check_route_outcomes(
    mock_checker_class: MagicMock,
    mock_client_class: MagicMock,
    outcome: CheckOutcome,
    exit_code: int,
    message: str,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Test that each check outcome maps to an exit code."""
    route_id = uuid.uuid4()
    mock_checker_class.return_value.check_route = AsyncMock(
        return_value=CheckResult(route_id=route_id, outcome=outcome, disruptions_found=1, inserted=1, changed=True)
    )

    assert await cmd_check_route(argparse.Namespace(route_id=str(route_id)), AsyncMock()) == exit_code

    captured = capsys.readouterr()
    assert message in captured.out + captured.err
    mock_checker_class.return_value.check_route.assert_awaited_once_with(route_id, use_cache=False)


@patch("railwatch.cli.create_redis_client")
@patch("railwatch.cli.NsApiClient")
@patch("railwatch.cli.CheckScheduler")
async def test_cmd_sweep_reports_errors(
    mock_scheduler_class: MagicMock,
    mock_client_class: MagicMock,
    mock_create_redis: MagicMock,
    capsys: pytest.CaptureFixture[str],
) -> None:
    """Test that a sweep with failed routes exits non-zero and closes Redis."""
    mock_redis = AsyncMock()
    mock_create_redis.return_value = mock_redis
    mock_scheduler_class.return_value.run_morning_sweep = AsyncMock(
        return_value=SweepResult(weekday=1, routes_scheduled=2, routes_checked=1, follow_ups_scheduled=6, errors=1)
    )

    exit_code = await cmd_sweep(argparse.Namespace(), AsyncMock())

    assert exit_code == 1
    assert "Follow-ups enqueued:    6" in capsys.readouterr().out
    mock_redis.aclose.assert_awaited_once()


class TestCmdPlan:
    """Tests for the follow-up plan preview."""

    @pytest.fixture
    def repository(self) -> Generator[MagicMock]:
        """Patch the repository the plan command reads from."""
        with patch("railwatch.cli.SqlAlchemyRouteMonitorRepository") as mock_class:
            yield mock_class.return_value

    @freeze_time(datetime(2025, 3, 3, 4, 0, tzinfo=UTC))
    async def test_plan_for_scheduled_route(
        self, repository: MagicMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Test that a Monday 08:00 route prints its six follow-ups in local time."""
        route = make_route(["ASD", "UT"], departure_time="08:00", schedule_days=[1])
        repository.get_route = AsyncMock(return_value=route)

        assert await cmd_plan(argparse.Namespace(route_id=str(route.id)), AsyncMock()) == 0

        out = capsys.readouterr().out
        assert "departs 08:00 (normal)" in out
        assert out.count("T-") == 6
        assert "T- 60 min  at 07:00" in out
        assert "T- 10 min  at 07:50" in out

    @freeze_time(datetime(2025, 3, 3, 4, 0, tzinfo=UTC))
    async def test_plan_not_scheduled_today(
        self, repository: MagicMock, capsys: pytest.CaptureFixture[str]
    ) -> None:
        """Test that a route not scheduled on Monday says so."""
        route = make_route(["ASD", "UT"], schedule_days=[0, 6], urgency=UrgencyLevel.IMPORTANT)
        repository.get_route = AsyncMock(return_value=route)

        assert await cmd_plan(argparse.Namespace(route_id=str(route.id)), AsyncMock()) == 0
        assert "not scheduled today" in capsys.readouterr().out

    async def test_plan_unknown_route(self, repository: MagicMock, capsys: pytest.CaptureFixture[str]) -> None:
        """Test that an unknown route fails."""
        repository.get_route = AsyncMock(return_value=None)

        assert await cmd_plan(argparse.Namespace(route_id=str(uuid.uuid4())), AsyncMock()) == 1
        assert "Route not found" in capsys.readouterr().err
