"""Station cache: sync from NS and search."""

from collections.abc import Iterable
from typing import TypedDict

import structlog
from fastapi import HTTPException, status
from sqlalchemy import String, cast, func, or_, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from railwatch.core.telemetry import service_span
from railwatch.helpers.station_helpers import (
    MAX_SEARCH_RESULTS,
    escape_like,
    normalize_search_term,
    station_row_values,
    station_search_order,
)
from railwatch.helpers.trip_helpers import StationRef
from railwatch.models.station import Station
from railwatch.services.ns_client import NsApiClient

logger = structlog.get_logger(__name__)


class StationSyncResult(TypedDict):
    """Counts of one station sync."""

    synced: int
    skipped: int
    total: int


class StationService:
    """Service for the locally cached station directory."""

    def __init__(self, db: AsyncSession) -> None:
        """
        Initialize the station service.

        Args:
            db: Database session
        """
        self.db = db

    async def sync_stations(self, ns_client: NsApiClient) -> StationSyncResult:
        """
        Refresh the station cache from the provider.

        Every station with a code is upserted by code; existing stations that
        the provider no longer lists are kept.

        Args:
            ns_client: NS API client

        Returns:
            StationSyncResult with upserted, skipped and total counts

        Raises:
            TransitApiError: If the provider fails; the cache is left untouched
        """
        with service_span("sync_stations", "station-service") as span:
            provider_stations = await ns_client.fetch_stations()

            synced = 0
            skipped = 0
            for provider_station in provider_stations:
                if (values := station_row_values(provider_station)) is None:
                    skipped += 1
                    continue
                stmt = insert(Station).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=["code"],
                    set_={
                        column: stmt.excluded[column]
                        for column in values
                        if column != "code"
                    }
                    | {"updated_at": func.now()},
                )
                await self.db.execute(stmt)
                synced += 1

            await self.db.commit()

            span.set_attribute("stations.synced", synced)
            logger.info("stations_synced", synced=synced, skipped=skipped, total=len(provider_stations))
            return StationSyncResult(synced=synced, skipped=skipped, total=len(provider_stations))

    async def search_stations(self, query: str) -> list[Station]:
        """
        Search stations by code, name or synonym.

        Args:
            query: Free text; shorter than two characters yields no results

        Returns:
            Matching stations, exact code match first, then shortest name
        """
        if (term := normalize_search_term(query)) is None:
            return []

        pattern = f"%{escape_like(term)}%"
        result = await self.db.execute(
            select(Station)
            .where(
                or_(
                    Station.code.ilike(pattern, escape="\\"),
                    Station.name_long.ilike(pattern, escape="\\"),
                    Station.name_medium.ilike(pattern, escape="\\"),
                    Station.name_short.ilike(pattern, escape="\\"),
                    cast(Station.synonyms, String).ilike(pattern, escape="\\"),
                )
            )
            .order_by(*station_search_order(term))
            .limit(MAX_SEARCH_RESULTS)
        )
        return list(result.scalars().all())

    async def get_station_by_code(self, code: str) -> Station:
        """
        Get a station by its code (case-insensitive).

        Raises:
            HTTPException: 404 if the station is not cached
        """
        result = await self.db.execute(select(Station).where(func.upper(Station.code) == code.upper()))
        if not (station := result.scalar_one_or_none()):
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail=f"Station '{code}' not found.",
            )
        return station

    async def get_station_count(self) -> int:
        """Number of cached stations."""
        result = await self.db.execute(select(func.count()).select_from(Station))
        return result.scalar_one()

    async def get_stations_by_uic_codes(self, uic_codes: Iterable[str]) -> dict[str, StationRef]:
        """
        Batch lookup of cached stations by UIC code.

        Args:
            uic_codes: UIC codes referenced by trip legs

        Returns:
            Mapping of UIC code to station reference; unknown codes are absent
        """
        codes = [code for code in set(uic_codes) if code]
        if not codes:
            return {}
        result = await self.db.execute(select(Station).where(Station.uic_code.in_(codes)))
        return {
            station.uic_code: StationRef(code=station.code, name=station.name_long)
            for station in result.scalars().all()
        }
