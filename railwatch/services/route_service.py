"""Route management service."""

import uuid
from collections.abc import Sequence

import structlog
from fastapi import HTTPException, status
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from railwatch.core.config import settings
from railwatch.helpers.disruption_helpers import summarize_additional_travel_time
from railwatch.helpers.trip_helpers import RouteOption, build_route_options, collect_uic_codes
from railwatch.models.disruption import Disruption
from railwatch.models.route import Route, RouteStation, RouteStatus
from railwatch.models.space import SpaceMember
from railwatch.schemas.routes import (
    CreateRouteRequest,
    RouteListItemResponse,
    RouteStatsResponse,
    RouteStatusResponse,
    UpdateRouteRequest,
)
from railwatch.services.disruption_checker import CheckOutcome, CheckResult, DisruptionChecker
from railwatch.services.ns_client import NsApiClient, TransitApiError
from railwatch.services.repository import SqlAlchemyRouteMonitorRepository
from railwatch.services.station_service import StationService

logger = structlog.get_logger(__name__)


class RouteService:
    """Service for managing monitored routes."""

    def __init__(self, db: AsyncSession) -> None:
        """
        Initialize the route service.

        Args:
            db: Database session
        """
        self.db = db

    async def require_space_access(self, space_id: uuid.UUID, user_id: str) -> None:
        """
        Verify the user is a member of the space.

        Raises:
            HTTPException: 403 if the user is not a member
        """
        result = await self.db.execute(
            select(SpaceMember.id).where(
                SpaceMember.space_id == space_id,
                SpaceMember.user_id == user_id,
            )
        )
        if result.scalar_one_or_none() is None:
            logger.warning("space_access_denied", space_id=str(space_id), user_id=user_id)
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You do not have access to this space.",
            )

    async def get_route_for_user(
        self,
        route_id: uuid.UUID,
        user_id: str,
        *,
        load_relationships: bool = False,
    ) -> Route:
        """
        Get a route the user may access.

        Space routes require membership of the space; routes without a space
        are visible to their owner only.

        Args:
            route_id: Route UUID
            user_id: Caller id
            load_relationships: Whether to eager load stations and status

        Returns:
            Route object

        Raises:
            HTTPException: 404 if the route does not exist or belongs to someone else,
                403 if the caller is not a member of the route's space
        """
        query = select(Route).where(Route.id == route_id)
        if load_relationships:
            query = query.options(selectinload(Route.stations), selectinload(Route.status))

        result = await self.db.execute(query.execution_options(populate_existing=True))
        route = result.scalar_one_or_none()

        if route is not None and route.space_id is not None:
            await self.require_space_access(route.space_id, user_id)
        elif route is None or route.owner_id != user_id:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Route not found.",
            )

        return route

    async def _visible_routes(self, user_id: str, space_id: uuid.UUID | None) -> Sequence[Route]:
        query = select(Route).options(
            selectinload(Route.status),
            selectinload(Route.disruptions),
        )
        if space_id is not None:
            await self.require_space_access(space_id, user_id)
            query = query.where(Route.space_id == space_id)
        else:
            query = query.where(Route.owner_id == user_id, Route.space_id.is_(None))

        result = await self.db.execute(query.order_by(Route.created_at.desc()))
        return result.scalars().all()

    async def list_routes(self, user_id: str, space_id: uuid.UUID | None = None) -> list[RouteListItemResponse]:
        """
        List routes of a space, or the caller's personal routes, newest first.

        Args:
            user_id: Caller id
            space_id: Space to list; None lists routes without a space owned by the caller

        Returns:
            Routes joined with their status and active disruption summary

        Raises:
            HTTPException: 403 if the caller is not a member of the space
        """
        routes = await self._visible_routes(user_id, space_id)
        items = []
        for route in routes:
            active = [d for d in route.disruptions if d.is_active]
            items.append(
                RouteListItemResponse(
                    id=route.id,
                    name=route.name,
                    origin_code=route.origin_code,
                    origin_name=route.origin_name,
                    destination_code=route.destination_code,
                    destination_name=route.destination_name,
                    schedule_days=route.schedule_days,
                    departure_time=route.departure_time,
                    urgency_level=route.urgency_level,
                    space_id=route.space_id,
                    created_at=route.created_at,
                    status=(
                        RouteStatusResponse.model_validate(route.status)
                        if route.status is not None
                        else RouteStatusResponse()
                    ),
                    active_disruption_count=len(active),
                    additional_travel_time_summary=summarize_additional_travel_time(active),
                )
            )
        return items

    async def get_stats(self, user_id: str, space_id: uuid.UUID | None = None) -> RouteStatsResponse:
        """
        Aggregate disruption counts over the routes ``list_routes`` would return.

        Raises:
            HTTPException: 403 if the caller is not a member of the space
        """
        routes = await self._visible_routes(user_id, space_id)
        active_counts = [sum(1 for d in route.disruptions if d.is_active) for route in routes]
        return RouteStatsResponse(
            route_count=len(routes),
            active_disruption_count=sum(active_counts),
            routes_with_disruptions=sum(1 for count in active_counts if count > 0),
        )

    async def create_route(self, user_id: str, request: CreateRouteRequest) -> Route:
        """
        Create a route with its stations and an initial "never checked" status.

        Without an explicit station list the itinerary is origin and destination.

        Args:
            user_id: Caller id, stored as owner
            request: Route creation request

        Returns:
            Created route with stations and status loaded

        Raises:
            HTTPException: 403 if the caller is not a member of the requested space
        """
        if request.space_id is not None:
            await self.require_space_access(request.space_id, user_id)

        if request.stations:
            itinerary = [(station.code, station.name) for station in request.stations]
        else:
            itinerary = [
                (request.origin_code, request.origin_name),
                (request.destination_code, request.destination_name),
            ]

        route = Route(
            owner_id=user_id,
            space_id=request.space_id,
            name=request.name,
            origin_code=request.origin_code,
            origin_name=request.origin_name,
            destination_code=request.destination_code,
            destination_name=request.destination_name,
            schedule_days=request.schedule_days,
            departure_time=request.departure_time,
            urgency_level=request.urgency_level,
            stations=[
                RouteStation(station_code=code, station_name=name, order=order)
                for order, (code, name) in enumerate(itinerary)
            ],
            status=RouteStatus(
                last_checked_at=None,
                has_active_disruptions=False,
                changed_since_last_view=False,
            ),
        )

        self.db.add(route)
        await self.db.commit()

        logger.info("route_created", route_id=str(route.id), stations=len(itinerary), urgency=route.urgency_level.value)
        return await self.get_route_for_user(route.id, user_id, load_relationships=True)

    async def update_route(
        self,
        route_id: uuid.UUID,
        user_id: str,
        request: UpdateRouteRequest,
    ) -> Route:
        """
        Update route metadata.

        Args:
            route_id: Route UUID
            user_id: Caller id
            request: Update request

        Returns:
            Updated route with stations and status loaded

        Raises:
            HTTPException: 404/403 as in ``get_route_for_user``
        """
        route = await self.get_route_for_user(route_id, user_id)

        # Update only provided fields
        if request.name is not None:
            route.name = request.name
        if request.schedule_days is not None:
            route.schedule_days = request.schedule_days
        if request.departure_time is not None:
            route.departure_time = request.departure_time
        if request.urgency_level is not None:
            route.urgency_level = request.urgency_level

        await self.db.commit()

        return await self.get_route_for_user(route_id, user_id, load_relationships=True)

    async def delete_route(self, route_id: uuid.UUID, user_id: str) -> None:
        """
        Delete a route (and its stations, disruptions and status via CASCADE).

        Raises:
            HTTPException: 404/403 as in ``get_route_for_user``
        """
        route = await self.get_route_for_user(route_id, user_id)

        await self.db.delete(route)
        await self.db.commit()
        logger.info("route_deleted", route_id=str(route_id))

    async def get_route_disruptions(
        self,
        route_id: uuid.UUID,
        user_id: str,
        active: bool | None = None,
    ) -> list[Disruption]:
        """
        Cached disruptions of a route, most recently seen first.

        Args:
            route_id: Route UUID
            user_id: Caller id
            active: Filter on ``is_active``; None returns both

        Raises:
            HTTPException: 404/403 as in ``get_route_for_user``
        """
        await self.get_route_for_user(route_id, user_id)

        query = select(Disruption).where(Disruption.route_id == route_id)
        if active is not None:
            query = query.where(Disruption.is_active.is_(active))

        result = await self.db.execute(query.order_by(Disruption.last_seen.desc()))
        return list(result.scalars().all())

    async def mark_route_viewed(self, route_id: uuid.UUID, user_id: str) -> RouteStatus:
        """
        Clear the "changed since last view" flag of a route.

        The status row is locked like a check locks it, so a check committing a
        change at the same time is never overwritten by a stale status.

        Raises:
            HTTPException: 404/403 as in ``get_route_for_user``
        """
        await self.get_route_for_user(route_id, user_id)

        route_status = await SqlAlchemyRouteMonitorRepository(self.db).lock_route_status(route_id)
        if route_status is None:
            route_status = RouteStatus(route_id=route_id, has_active_disruptions=False)
            self.db.add(route_status)
        route_status.changed_since_last_view = False

        await self.db.commit()
        return route_status

    async def check_route_now(
        self,
        route_id: uuid.UUID,
        user_id: str,
        ns_client: NsApiClient,
    ) -> tuple[CheckResult, RouteStatus]:
        """
        Run a disruption check synchronously, bypassing the shared provider cache.

        Args:
            route_id: Route UUID
            user_id: Caller id
            ns_client: NS API client

        Returns:
            Tuple of the check result and the refreshed route status

        Raises:
            HTTPException: 404/403 as in ``get_route_for_user``, 503 if the provider is unavailable
        """
        await self.get_route_for_user(route_id, user_id)

        checker = DisruptionChecker(SqlAlchemyRouteMonitorRepository(self.db), ns_client)
        result = await checker.check_route(route_id, use_cache=False)

        if result.outcome is CheckOutcome.PROVIDER_UNAVAILABLE:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Disruption information is temporarily unavailable. Please try again later.",
            )
        if result.outcome is CheckOutcome.ROUTE_NOT_FOUND:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Route not found.",
            )

        route = await self.get_route_for_user(route_id, user_id, load_relationships=True)
        return result, route.status or RouteStatus(route_id=route_id)

    async def get_route_options(
        self,
        ns_client: NsApiClient,
        origin_code: str,
        destination_code: str,
    ) -> list[RouteOption]:
        """
        Plan selectable itineraries between two stations.

        Args:
            ns_client: NS API client
            origin_code: Origin station code
            destination_code: Destination station code

        Returns:
            Up to MAX_ROUTE_OPTIONS distinct itineraries

        Raises:
            HTTPException: 400 if origin equals destination, 503 if the trip planner fails
        """
        if origin_code.upper() == destination_code.upper():
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Origin and destination must differ.",
            )

        try:
            trips = await ns_client.fetch_trips(origin_code, destination_code)
        except TransitApiError as e:
            logger.error("route_options_provider_unavailable", origin=origin_code, destination=destination_code)
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Trip planner is temporarily unavailable. Please try again later.",
            ) from e

        stations_by_uic = await StationService(self.db).get_stations_by_uic_codes(collect_uic_codes(trips))
        options = build_route_options(trips, stations_by_uic, settings.MAX_ROUTE_OPTIONS)
        logger.info(
            "route_options_planned",
            origin=origin_code,
            destination=destination_code,
            trips=len(trips),
            options=len(options),
        )
        return options
