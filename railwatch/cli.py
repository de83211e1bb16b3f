#!/usr/bin/env python3
"""Operator CLI for the disruption monitor.

Usage:
    # Refresh the station cache from NS
    railwatch sync-stations

    # Check one route now (bypasses the shared disruption cache)
    railwatch check-route <route-id>

    # Run the morning sweep now (enqueues follow-ups on the Celery broker)
    railwatch sweep

    # Show today's follow-up plan for a route without enqueueing anything
    railwatch plan <route-id>
"""

import argparse
import asyncio
import sys
import uuid
from datetime import UTC, datetime

from sqlalchemy.ext.asyncio import AsyncSession

from railwatch.core.config import settings
from railwatch.core.database import get_session_factory
from railwatch.core.logging import configure_logging
from railwatch.core.redis import create_redis_client
from railwatch.helpers.schedule_helpers import is_scheduled_today, plan_follow_ups
from railwatch.services.check_scheduler import CheckScheduler
from railwatch.services.disruption_checker import CheckOutcome, DisruptionChecker
from railwatch.services.follow_up_registry import FollowUpRegistry
from railwatch.services.ns_client import NsApiClient, TransitApiError
from railwatch.services.repository import SqlAlchemyRouteMonitorRepository
from railwatch.services.station_service import StationService


def _parse_route_id(value: str) -> uuid.UUID | None:
    try:
        return uuid.UUID(value)
    except ValueError:
        print(f"❌ Invalid route id: {value}", file=sys.stderr)
        return None


async def cmd_sync_stations(args: argparse.Namespace, session: AsyncSession) -> int:
    """
    Refresh the station cache.

    Args:
        args: Parsed command-line arguments
        session: Database session

    Returns:
        Exit code (0 for success, 1 for error)
    """
    try:
        result = await StationService(session).sync_stations(NsApiClient())
    except TransitApiError as e:
        print(f"❌ NS API unavailable: {e}", file=sys.stderr)
        return 1

    print("✅ Stations synced")
    print(f"   Upserted: {result['synced']}")
    print(f"   Skipped:  {result['skipped']}")
    print(f"   Total:    {result['total']}")
    return 0


async def cmd_check_route(args: argparse.Namespace, session: AsyncSession) -> int:
    """Check one route now and print what changed."""
    if (route_id := _parse_route_id(args.route_id)) is None:
        return 1

    checker = DisruptionChecker(SqlAlchemyRouteMonitorRepository(session), NsApiClient())
    result = await checker.check_route(route_id, use_cache=False)

    if result.outcome is CheckOutcome.ROUTE_NOT_FOUND:
        print(f"❌ Route not found: {route_id}", file=sys.stderr)
        return 1
    if result.outcome is CheckOutcome.PROVIDER_UNAVAILABLE:
        print("❌ NS API unavailable; cached disruptions left untouched", file=sys.stderr)
        return 1

    print(f"✅ Checked route {route_id}")
    print(f"   Disruptions found: {result.disruptions_found}")
    print(f"   Inserted / updated / retired: {result.inserted} / {result.updated} / {result.retired}")
    print(f"   Changed: {'yes' if result.changed else 'no'}")
    return 0


async def cmd_sweep(args: argparse.Namespace, session: AsyncSession) -> int:
    """Run the morning sweep now."""
    # Imported here so the other commands work without a broker configuration
    from railwatch.celery.tasks import enqueue_follow_up  # noqa: PLC0415

    repository = SqlAlchemyRouteMonitorRepository(session)
    redis_client = create_redis_client()
    try:
        scheduler = CheckScheduler(
            repository,
            DisruptionChecker(repository, NsApiClient()),
            enqueue_follow_up,
            registry=FollowUpRegistry(redis_client),
        )
        result = await scheduler.run_morning_sweep()
    finally:
        await redis_client.aclose()

    print(f"✅ Sweep finished for weekday {result.weekday}")
    print(f"   Routes scheduled today: {result.routes_scheduled}")
    print(f"   Routes checked:         {result.routes_checked}")
    print(f"   NS unavailable:         {result.provider_unavailable}")
    print(f"   Follow-ups enqueued:    {result.follow_ups_scheduled}")
    print(f"   Errors:                 {result.errors}")
    return 0 if result.errors == 0 else 1


async def cmd_plan(args: argparse.Namespace, session: AsyncSession) -> int:
    """Print today's follow-up plan for a route."""
    if (route_id := _parse_route_id(args.route_id)) is None:
        return 1

    route = await SqlAlchemyRouteMonitorRepository(session).get_route(route_id)
    if route is None:
        print(f"❌ Route not found: {route_id}", file=sys.stderr)
        return 1

    tz = settings.transit_tz
    now = datetime.now(UTC)
    if not is_scheduled_today(route.schedule_days, now, tz):
        print(f"ℹ️  {route.name} is not scheduled today")
        return 0

    follow_ups = plan_follow_ups(route.departure_time, route.urgency_level, now, tz)
    print(f"{route.name} departs {route.departure_time} ({route.urgency_level.value})")
    if not follow_ups:
        print("   No follow-ups left today")
    for follow_up in follow_ups:
        print(f"   T-{follow_up.offset_minutes:>3} min  at {follow_up.run_at.astimezone(tz):%H:%M}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """
    Main entry point for the CLI tool.

    Returns:
        Exit code (0 for success, non-zero for error)
    """
    parser = argparse.ArgumentParser(
        description="Rail disruption monitor operations",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    subparsers.add_parser("sync-stations", help="Refresh the station cache from NS")

    check_parser = subparsers.add_parser("check-route", help="Check one route for disruptions now")
    check_parser.add_argument("route_id", type=str, help="Route UUID")

    subparsers.add_parser("sweep", help="Run the morning sweep now")

    plan_parser = subparsers.add_parser("plan", help="Show today's follow-up plan for a route")
    plan_parser.add_argument("route_id", type=str, help="Route UUID")

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    command_handlers = {
        "sync-stations": cmd_sync_stations,
        "check-route": cmd_check_route,
        "sweep": cmd_sweep,
        "plan": cmd_plan,
    }

    if handler := command_handlers.get(args.command):
        configure_logging(log_level=settings.LOG_LEVEL)

        async def run_with_session() -> int:
            async with get_session_factory()() as session:
                try:
                    return await handler(args, session)
                except Exception as e:
                    print(f"❌ Unexpected error: {e}", file=sys.stderr)
                    return 1

        return asyncio.run(run_with_session())

    print(f"❌ Unknown command: {args.command}", file=sys.stderr)
    return 1


if __name__ == "__main__":
    sys.exit(main())
