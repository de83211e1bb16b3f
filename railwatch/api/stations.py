"""API endpoints for the cached station directory."""

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from railwatch.celery.app import celery_app
from railwatch.core.auth import get_current_user_id
from railwatch.core.database import get_db
from railwatch.models.station import Station
from railwatch.schemas.stations import StationCountResponse, StationResponse, StationSyncQueuedResponse
from railwatch.services.station_service import StationService

router = APIRouter(prefix="/stations", tags=["stations"])

SYNC_STATIONS_TASK = "railwatch.celery.tasks.sync_stations"


@router.get("/search", response_model=list[StationResponse])
async def search_stations(
    q: str = Query(..., description="Code, name or synonym fragment"),
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> list[Station]:
    """
    Search stations by code, name or synonym.

    Queries shorter than two characters return an empty list.

    Args:
        q: Search text
        user_id: Authenticated caller
        db: Database session

    Returns:
        Up to ten stations, exact code match first
    """
    return await StationService(db).search_stations(q)


@router.get("/count", response_model=StationCountResponse)
async def get_station_count(
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> StationCountResponse:
    """Number of cached stations."""
    return StationCountResponse(count=await StationService(db).get_station_count())


@router.post("/sync", response_model=StationSyncQueuedResponse, status_code=status.HTTP_202_ACCEPTED)
async def sync_stations(
    user_id: str = Depends(get_current_user_id),
) -> StationSyncQueuedResponse:
    """Queue a refresh of the station cache from NS."""
    result = celery_app.send_task(SYNC_STATIONS_TASK)
    return StationSyncQueuedResponse(task_id=result.id)


@router.get("/{code}", response_model=StationResponse)
async def get_station(
    code: str,
    user_id: str = Depends(get_current_user_id),
    db: AsyncSession = Depends(get_db),
) -> Station:
    """
    Get a station by code.

    Raises:
        HTTPException: 404 if the station is not cached
    """
    return await StationService(db).get_station_by_code(code)
