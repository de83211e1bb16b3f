"""Morning sweep and pre-departure follow-up scheduling."""

import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, tzinfo
from typing import Protocol

import structlog

from railwatch.core.config import settings
from railwatch.core.telemetry import service_span
from railwatch.helpers.schedule_helpers import FollowUp, is_scheduled_today, plan_follow_ups, weekday_index
from railwatch.models.route import UrgencyLevel
from railwatch.services.disruption_checker import CheckOutcome, DisruptionChecker
from railwatch.services.follow_up_registry import FollowUpRegistry, slot_key
from railwatch.services.repository import RouteMonitorRepository

logger = structlog.get_logger(__name__)

# Enqueues check_route(route_id) to run after delay_seconds; returns the task id
FollowUpEnqueuer = Callable[[uuid.UUID, float], str]


class SchedulableRoute(Protocol):
    """The route fields follow-up planning needs."""

    @property
    def id(self) -> uuid.UUID: ...

    @property
    def departure_time(self) -> str: ...

    @property
    def urgency_level(self) -> UrgencyLevel: ...


@dataclass(frozen=True)
class RouteSnapshot:
    """Plain copy of a route, safe to use after the session rolls back."""

    id: uuid.UUID
    name: str
    departure_time: str
    urgency_level: UrgencyLevel


@dataclass
class SweepResult:
    """Statistics of one morning sweep."""

    weekday: int
    routes_scheduled: int = 0
    routes_checked: int = 0
    provider_unavailable: int = 0
    follow_ups_scheduled: int = 0
    errors: int = 0


class CheckScheduler:
    """
    Runs the morning sweep and plans follow-up checks.

    Enqueueing is delegated to ``enqueue_follow_up`` so the scheduling logic
    does not depend on the task queue.
    """

    def __init__(
        self,
        repository: RouteMonitorRepository,
        checker: DisruptionChecker,
        enqueue_follow_up: FollowUpEnqueuer,
        registry: FollowUpRegistry | None = None,
        tz: tzinfo | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            repository: Data access for routes
            checker: Disruption checker used for the immediate check
            enqueue_follow_up: Callable enqueueing a delayed check, returning its task id
            registry: Pending follow-up registry; None disables revocation tracking and dedupe
            tz: Civil timezone (defaults to the transit timezone)
            clock: Source of "now" (defaults to the current UTC time)
        """
        self.repository = repository
        self.checker = checker
        self.enqueue_follow_up = enqueue_follow_up
        self.registry = registry
        self.tz = tz or settings.transit_tz
        self.clock = clock or (lambda: datetime.now(UTC))

    async def run_morning_sweep(self) -> SweepResult:
        """
        Check every route scheduled for today and plan its follow-ups.

        The weekday is taken in the civil timezone. A failure on one route is
        logged and counted; the sweep carries on with the next.

        Returns:
            SweepResult with per-sweep statistics
        """
        now = self.clock()
        result = SweepResult(weekday=weekday_index(now, self.tz))

        with service_span("run_morning_sweep", "check-scheduler", weekday=result.weekday) as span:
            routes = [
                RouteSnapshot(
                    id=route.id,
                    name=route.name,
                    departure_time=route.departure_time,
                    urgency_level=route.urgency_level,
                )
                for route in await self.repository.list_routes()
                if is_scheduled_today(route.schedule_days, now, self.tz)
            ]
            result.routes_scheduled = len(routes)
            logger.info("morning_sweep_started", weekday=result.weekday, routes=len(routes))

            for route in routes:
                try:
                    check = await self.checker.check_route(route.id)
                    if check.outcome is CheckOutcome.ROUTE_NOT_FOUND:
                        continue
                    if check.outcome is CheckOutcome.PROVIDER_UNAVAILABLE:
                        # Still planned: the first follow-up retries the fetch
                        result.provider_unavailable += 1
                    else:
                        result.routes_checked += 1
                    follow_ups = await self.schedule_follow_ups(route, self.clock())
                    result.follow_ups_scheduled += len(follow_ups)
                except Exception:
                    result.errors += 1
                    logger.exception("morning_sweep_route_failed", route_id=str(route.id))
                    await self.repository.rollback()

            span.set_attribute("sweep.routes_checked", result.routes_checked)
            span.set_attribute("sweep.provider_unavailable", result.provider_unavailable)
            span.set_attribute("sweep.errors", result.errors)
            logger.info(
                "morning_sweep_completed",
                weekday=result.weekday,
                routes_scheduled=result.routes_scheduled,
                routes_checked=result.routes_checked,
                provider_unavailable=result.provider_unavailable,
                follow_ups=result.follow_ups_scheduled,
                errors=result.errors,
            )
        return result

    async def schedule_follow_ups(self, route: SchedulableRoute, now: datetime) -> list[FollowUp]:
        """
        Enqueue today's follow-up checks for a route.

        Each follow-up is enqueued independently: a failure is logged and the
        remaining ones are still attempted. Follow-ups already planned by an
        earlier sweep today are skipped.

        Args:
            route: Route to plan for
            now: Current instant

        Returns:
            Follow-ups that were enqueued
        """
        planned = plan_follow_ups(route.departure_time, route.urgency_level, now, self.tz)
        if not planned:
            logger.debug("no_follow_ups_departure_passed", route_id=str(route.id))
            return []

        already_scheduled: set[str] = set()
        if self.registry is not None:
            try:
                already_scheduled = await self.registry.scheduled_slots(route.id)
            except Exception:
                logger.exception("follow_up_registry_read_failed", route_id=str(route.id))
        enqueued: list[FollowUp] = []
        for follow_up in planned:
            if slot_key(follow_up.run_at) in already_scheduled:
                continue
            try:
                task_id = self.enqueue_follow_up(route.id, follow_up.delay_seconds)
            except Exception:
                logger.exception(
                    "follow_up_enqueue_failed",
                    route_id=str(route.id),
                    offset_minutes=follow_up.offset_minutes,
                )
                continue
            enqueued.append(follow_up)
            if self.registry is not None:
                try:
                    await self.registry.record(route.id, follow_up.run_at, task_id)
                except Exception:
                    logger.exception("follow_up_registry_record_failed", route_id=str(route.id))

        logger.info(
            "follow_ups_scheduled",
            route_id=str(route.id),
            urgency=route.urgency_level.value,
            count=len(enqueued),
            offsets=[f.offset_minutes for f in enqueued],
        )
        return enqueued
