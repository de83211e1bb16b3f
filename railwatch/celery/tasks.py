"""Celery tasks for disruption checks and station sync.

- run_morning_sweep: beat-triggered; checks today's routes and enqueues follow-ups
- check_route_disruptions: one-shot follow-up check of a single route
- sync_stations: beat-triggered or on demand; refreshes the station cache
"""

from collections.abc import Awaitable, Callable
from typing import Any, Protocol, TypedDict
from uuid import UUID

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from railwatch.celery.app import celery_app
from railwatch.celery.database import (
    get_worker_disruptions_cache,
    get_worker_loop,
    get_worker_redis_client,
    get_worker_session,
)
from railwatch.services.check_scheduler import CheckScheduler
from railwatch.services.disruption_checker import DisruptionChecker
from railwatch.services.follow_up_registry import FollowUpRegistry
from railwatch.services.ns_client import NsApiClient
from railwatch.services.repository import SqlAlchemyRouteMonitorRepository
from railwatch.services.station_service import StationService

logger = structlog.get_logger(__name__)

RETRY_COUNTDOWN = 60


def run_in_worker_loop[T](
    coro_func: Callable[..., Awaitable[T]],
    *args: Any,  # noqa: ANN401 - Pass-through args to async function
    **kwargs: Any,  # noqa: ANN401 - Pass-through kwargs to async function
) -> T:
    """
    Run an async function in the worker's persistent event loop.

    Args:
        coro_func: An async function (not coroutine) to execute
        *args: Positional arguments to pass to the async function
        **kwargs: Keyword arguments to pass to the async function

    Returns:
        The return value of the async function

    Raises:
        RuntimeError: If worker not initialized or event loop is closed
    """
    loop = get_worker_loop()
    return loop.run_until_complete(coro_func(*args, **kwargs))


class TaskRequest(Protocol):
    """Protocol for Celery task request object."""

    @property
    def retries(self) -> int:
        """Number of times task has been retried."""
        ...


class BoundTask(Protocol):
    """Protocol for Celery bound task self parameter."""

    @property
    def request(self) -> TaskRequest:
        """Task request object."""
        ...

    def retry(self, exc: Exception | None = None, countdown: int | None = None) -> Exception:
        """Retry the task (raises to signal the retry)."""
        ...


class MorningSweepTaskResult(TypedDict):
    """Result from run_morning_sweep task."""

    status: str
    weekday: int
    routes_scheduled: int
    routes_checked: int
    provider_unavailable: int
    follow_ups_scheduled: int
    errors: int


class RouteCheckTaskResult(TypedDict):
    """Result from check_route_disruptions task."""

    status: str
    route_id: str
    disruptions_found: int
    changed: bool


class StationSyncTaskResult(TypedDict):
    """Result from sync_stations task."""

    status: str
    synced: int
    skipped: int
    total: int


def enqueue_follow_up(route_id: UUID, delay_seconds: float) -> str:
    """
    Enqueue a one-shot check of a route after ``delay_seconds``.

    Returns:
        Celery task id
    """
    result = check_route_disruptions.apply_async(args=[str(route_id)], countdown=delay_seconds)
    return str(result.id)


def _build_checker(session: AsyncSession) -> tuple[SqlAlchemyRouteMonitorRepository, DisruptionChecker]:
    repository = SqlAlchemyRouteMonitorRepository(session)
    checker = DisruptionChecker(repository, NsApiClient(cache=get_worker_disruptions_cache()))
    return repository, checker


@celery_app.task(  # type: ignore[arg-type]
    bind=True,
    max_retries=3,
    name="railwatch.celery.tasks.run_morning_sweep",
)
def run_morning_sweep(self: BoundTask) -> MorningSweepTaskResult:
    """
    Check every route scheduled today and plan its follow-up checks.

    Runs at each configured morning time. Per-route failures are absorbed by
    the scheduler; only a failure of the sweep itself triggers a retry.

    Args:
        self: Celery task instance (bound via bind=True)

    Returns:
        MorningSweepTaskResult with sweep statistics

    Raises:
        Retry: If the sweep could not run
    """
    try:
        result = run_in_worker_loop(_run_morning_sweep_async)
        logger.info("morning_sweep_task_completed", result=result)
        return result
    except Exception as exc:
        logger.error(
            "morning_sweep_task_failed",
            error=str(exc),
            error_type=type(exc).__name__,
            retry_count=self.request.retries,
        )
        raise self.retry(exc=exc, countdown=RETRY_COUNTDOWN) from exc


async def _run_morning_sweep_async() -> MorningSweepTaskResult:
    session = None
    try:
        session = get_worker_session()
        repository, checker = _build_checker(session)
        scheduler = CheckScheduler(
            repository,
            checker,
            enqueue_follow_up,
            registry=FollowUpRegistry(get_worker_redis_client()),
        )
        sweep = await scheduler.run_morning_sweep()
        return MorningSweepTaskResult(
            status="success",
            weekday=sweep.weekday,
            routes_scheduled=sweep.routes_scheduled,
            routes_checked=sweep.routes_checked,
            provider_unavailable=sweep.provider_unavailable,
            follow_ups_scheduled=sweep.follow_ups_scheduled,
            errors=sweep.errors,
        )
    finally:
        if session is not None:
            await session.close()


@celery_app.task(
    name="railwatch.celery.tasks.check_route_disruptions",
)
def check_route_disruptions(route_id: str) -> RouteCheckTaskResult:
    """
    Check one route for disruptions.

    Not retried: the next follow-up is the retry. A route deleted in the
    meantime yields status "route_not_found".

    Args:
        route_id: Route UUID as string

    Returns:
        RouteCheckTaskResult with the check outcome
    """
    try:
        result = run_in_worker_loop(_check_route_async, UUID(route_id))
    except Exception as exc:
        logger.error(
            "check_route_task_failed",
            route_id=route_id,
            error=str(exc),
            error_type=type(exc).__name__,
        )
        raise
    logger.info("check_route_task_completed", result=result)
    return result


async def _check_route_async(route_id: UUID) -> RouteCheckTaskResult:
    session = None
    try:
        session = get_worker_session()
        _, checker = _build_checker(session)
        check = await checker.check_route(route_id)
        return RouteCheckTaskResult(
            status=check.outcome.value,
            route_id=str(route_id),
            disruptions_found=check.disruptions_found,
            changed=check.changed,
        )
    finally:
        if session is not None:
            await session.close()


@celery_app.task(  # type: ignore[arg-type]
    bind=True,
    max_retries=3,
    name="railwatch.celery.tasks.sync_stations",
)
def sync_stations(self: BoundTask) -> StationSyncTaskResult:
    """
    Refresh the station cache from the NS stations API.

    Args:
        self: Celery task instance (bound via bind=True)

    Returns:
        StationSyncTaskResult with upsert counts

    Raises:
        Retry: If the provider or the database failed
    """
    try:
        result = run_in_worker_loop(_sync_stations_async)
        logger.info("sync_stations_task_completed", result=result)
        return result
    except Exception as exc:
        logger.error(
            "sync_stations_task_failed",
            error=str(exc),
            error_type=type(exc).__name__,
            retry_count=self.request.retries,
        )
        raise self.retry(exc=exc, countdown=RETRY_COUNTDOWN) from exc


async def _sync_stations_async() -> StationSyncTaskResult:
    session = None
    try:
        session = get_worker_session()
        counts = await StationService(session).sync_stations(NsApiClient())
        return StationSyncTaskResult(status="success", **counts)
    finally:
        if session is not None:
            await session.close()
