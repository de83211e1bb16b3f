"""Checks a route against the provider and reconciles its disruption cache."""

import enum
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import UTC, datetime, tzinfo

import structlog

from railwatch.core.config import settings
from railwatch.core.telemetry import service_span
from railwatch.helpers.disruption_helpers import match_route_disruptions, reconcile_disruptions
from railwatch.services.ns_client import NsApiClient, TransitApiError
from railwatch.services.repository import RouteMonitorRepository

logger = structlog.get_logger(__name__)


class CheckOutcome(str, enum.Enum):
    """How a route check ended."""

    CHECKED = "checked"
    PROVIDER_UNAVAILABLE = "provider_unavailable"
    ROUTE_NOT_FOUND = "route_not_found"


@dataclass
class CheckResult:
    """Summary of a single route check."""

    route_id: uuid.UUID
    outcome: CheckOutcome
    disruptions_found: int = 0
    inserted: int = 0
    updated: int = 0
    retired: int = 0
    changed: bool = False


class DisruptionChecker:
    """
    Runs ``check_route`` for one route at a time.

    The route is read in its own short transaction, which is finished before
    the provider is queried, so no connection idles in a transaction or holds
    a lock during the HTTP call. Reconciliation then
    happens in one transaction that starts by locking the route's status row:
    upserts first, retirement second, status last.
    """

    def __init__(
        self,
        repository: RouteMonitorRepository,
        ns_client: NsApiClient,
        tz: tzinfo | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """
        Initialize the checker.

        Args:
            repository: Data access for routes, statuses and disruptions
            ns_client: NS API client
            tz: Civil timezone for rendering periods (defaults to the transit timezone)
            clock: Source of "now" (defaults to the current UTC time)
        """
        self.repository = repository
        self.ns_client = ns_client
        self.tz = tz or settings.transit_tz
        self.clock = clock or (lambda: datetime.now(UTC))

    async def check_route(self, route_id: uuid.UUID, *, use_cache: bool = True) -> CheckResult:
        """
        Fetch active disruptions for a route and reconcile the cached records.

        A provider failure leaves every record untouched. A missing route is a
        quiet no-op, which is what a follow-up firing after deletion sees.

        Args:
            route_id: Route to check
            use_cache: Allow reuse of a recently fetched provider list

        Returns:
            CheckResult describing the outcome and what changed
        """
        with service_span("check_route", "disruption-checker", route_id=str(route_id)) as span:
            route = await self.repository.get_route(route_id)
            if route is None:
                logger.info("route_check_route_not_found", route_id=str(route_id))
                span.set_attribute("check.outcome", CheckOutcome.ROUTE_NOT_FOUND.value)
                return CheckResult(route_id=route_id, outcome=CheckOutcome.ROUTE_NOT_FOUND)
            station_codes = route.station_codes
            # No transaction stays open across the HTTP call
            await self.repository.end_read()

            try:
                provider_disruptions = await self.ns_client.fetch_active_disruptions(use_cache=use_cache)
            except TransitApiError as e:
                logger.error("route_check_provider_unavailable", route_id=str(route_id), error=str(e))
                span.set_attribute("check.outcome", CheckOutcome.PROVIDER_UNAVAILABLE.value)
                return CheckResult(route_id=route_id, outcome=CheckOutcome.PROVIDER_UNAVAILABLE)

            observed = match_route_disruptions(provider_disruptions, station_codes, self.tz)
            now = self.clock()

            status = await self.repository.lock_route_status(route_id)
            if status is None:
                # Deleted while the provider was being queried
                await self.repository.rollback()
                logger.info("route_check_route_deleted_during_check", route_id=str(route_id))
                return CheckResult(route_id=route_id, outcome=CheckOutcome.ROUTE_NOT_FOUND)

            try:
                existing = list(await self.repository.list_disruptions(route_id))
                reconciled = reconcile_disruptions(route_id, existing, observed, now)
                await self.repository.add_disruptions(reconciled.inserted)

                status.last_checked_at = now
                status.has_active_disruptions = any(d.is_active for d in (*existing, *reconciled.inserted))
                if reconciled.changed:
                    status.changed_since_last_view = True

                await self.repository.commit()
            except Exception:
                await self.repository.rollback()
                raise

            result = CheckResult(
                route_id=route_id,
                outcome=CheckOutcome.CHECKED,
                disruptions_found=len(observed),
                inserted=len(reconciled.inserted),
                updated=reconciled.updated,
                retired=reconciled.retired,
                changed=reconciled.changed,
            )
            span.set_attribute("check.outcome", result.outcome.value)
            span.set_attribute("check.changed", result.changed)
            logger.info(
                "route_checked",
                route_id=str(route_id),
                found=result.disruptions_found,
                inserted=result.inserted,
                updated=result.updated,
                retired=result.retired,
                changed=result.changed,
            )
            return result
