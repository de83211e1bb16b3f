"""Routes API endpoints for managing monitored rail routes."""

from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from railwatch.celery.app import celery_app
from railwatch.core.auth import get_current_user_id
from railwatch.core.database import get_db
from railwatch.core.redis import create_redis_client
from railwatch.models.disruption import Disruption
from railwatch.models.route import Route
from railwatch.schemas.routes import (
    CheckRouteResponse,
    CreateRouteRequest,
    DisruptionResponse,
    RouteListItemResponse,
    RouteOptionResponse,
    RouteOptionsRequest,
    RouteResponse,
    RouteStatsResponse,
    RouteStatusResponse,
    UpdateRouteRequest,
)
from railwatch.services.follow_up_registry import FollowUpRegistry, revoke_follow_ups
from railwatch.services.ns_client import NsApiClient, get_ns_client
from railwatch.services.route_service import RouteService

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/routes", tags=["routes"])


async def revoke_route_follow_ups(route_id: UUID) -> None:
    """Best-effort revocation of a deleted route's pending follow-up checks."""
    redis_client = create_redis_client()
    try:
        await revoke_follow_ups(FollowUpRegistry(redis_client), route_id, celery_app.control.revoke)
    except Exception as e:
        # Follow-ups that still fire find no route and no-op
        logger.warning("follow_up_revocation_failed", route_id=str(route_id), error=str(e))
    finally:
        await redis_client.aclose()


# ==================== Route Endpoints ====================


@router.get("", response_model=list[RouteListItemResponse])
async def list_routes(
    space_id: UUID | None = None,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> list[RouteListItemResponse]:
    """
    List routes of a space, or the caller's personal routes.

    Each route carries its status, its active disruption count and the worst
    additional travel time among its active disruptions.

    Args:
        space_id: Space to list; omitted lists personal routes
        user_id: Authenticated caller
        db: Database session

    Returns:
        Routes, newest first
    """
    return await RouteService(db).list_routes(user_id, space_id)


@router.get("/stats", response_model=RouteStatsResponse)
async def get_route_stats(
    space_id: UUID | None = None,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> RouteStatsResponse:
    """Aggregate disruption counts over the same routes as the list endpoint."""
    return await RouteService(db).get_stats(user_id, space_id)


@router.post("/options", response_model=list[RouteOptionResponse])
async def get_route_options(
    request: RouteOptionsRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    ns_client: NsApiClient = Depends(get_ns_client),
) -> list[RouteOptionResponse]:
    """
    Plan selectable itineraries between two stations.

    Args:
        request: Origin and destination station codes
        user_id: Authenticated caller
        db: Database session
        ns_client: NS API client

    Returns:
        Up to five distinct itineraries

    Raises:
        HTTPException: 503 if the NS trip planner is unavailable
    """
    options = await RouteService(db).get_route_options(ns_client, request.origin_code, request.destination_code)
    return [RouteOptionResponse.model_validate(option) for option in options]


@router.post("", response_model=RouteResponse, status_code=status.HTTP_201_CREATED)
async def create_route(
    request: CreateRouteRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Route:
    """
    Create a monitored route.

    The itinerary is the given station list, or origin and destination.

    Args:
        request: Route creation request
        user_id: Authenticated caller
        db: Database session

    Returns:
        Created route with stations and a "never checked" status
    """
    return await RouteService(db).create_route(user_id, request)


@router.get("/{route_id}", response_model=RouteResponse)
async def get_route(
    route_id: UUID,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Route:
    """
    Get a route with its stations and status.

    Raises:
        HTTPException: 404 if not found, 403 without space membership
    """
    return await RouteService(db).get_route_for_user(route_id, user_id, load_relationships=True)


@router.patch("/{route_id}", response_model=RouteResponse)
async def update_route(
    route_id: UUID,
    request: UpdateRouteRequest,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Route:
    """Update name, schedule, departure time or urgency of a route."""
    return await RouteService(db).update_route(route_id, user_id, request)


@router.delete("/{route_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_route(
    route_id: UUID,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> None:
    """
    Delete a route with its stations, disruptions and status.

    Pending follow-up checks are revoked when possible.

    Args:
        route_id: Route UUID
        user_id: Authenticated caller
        db: Database session
    """
    await RouteService(db).delete_route(route_id, user_id)
    await revoke_route_follow_ups(route_id)


# ==================== Disruption Endpoints ====================


@router.get("/{route_id}/disruptions", response_model=list[DisruptionResponse])
async def get_route_disruptions(
    route_id: UUID,
    active: bool | None = Query(None, description="Only active (true) or only retired (false) disruptions"),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> list[Disruption]:
    """
    Cached disruptions of a route, most recently seen first.

    Args:
        route_id: Route UUID
        active: Optional filter on the active flag
        user_id: Authenticated caller
        db: Database session

    Returns:
        Disruption records
    """
    return await RouteService(db).get_route_disruptions(route_id, user_id, active)


@router.post("/{route_id}/viewed", response_model=RouteStatusResponse)
async def mark_route_viewed(
    route_id: UUID,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> RouteStatusResponse:
    """Clear the route's "changed since last view" badge."""
    route_status = await RouteService(db).mark_route_viewed(route_id, user_id)
    return RouteStatusResponse.model_validate(route_status)


@router.post("/{route_id}/check", response_model=CheckRouteResponse)
async def check_route(
    route_id: UUID,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
    ns_client: NsApiClient = Depends(get_ns_client),
) -> CheckRouteResponse:
    """
    Check a route for disruptions now.

    On provider failure the cached disruptions and the last-checked time stay
    as they were.

    Args:
        route_id: Route UUID
        user_id: Authenticated caller
        db: Database session
        ns_client: NS API client

    Returns:
        Check summary with the refreshed status

    Raises:
        HTTPException: 503 if the NS API is unavailable
    """
    result, route_status = await RouteService(db).check_route_now(route_id, user_id, ns_client)
    return CheckRouteResponse(
        success=True,
        route_id=route_id,
        disruptions_found=result.disruptions_found,
        changed=result.changed,
        status=RouteStatusResponse.model_validate(route_status),
    )
