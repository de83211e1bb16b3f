"""Tests for the stations API endpoints."""

from collections.abc import Generator
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from fastapi import HTTPException, status
from httpx import AsyncClient
from railwatch.api.stations import SYNC_STATIONS_TASK
from railwatch.models.station import Station

PREFIX = "/api/v1/stations"


def _station(code: str = "UT", name: str = "Utrecht Centraal") -> Station:
    return Station(
        code=code,
        uic_code="8400621",
        name_long=name,
        name_medium="Utrecht C.",
        name_short="Utrecht C",
        synonyms=["Utrecht"],
        lat=52.089,
        lng=5.110,
        country="NL",
    )


@pytest.fixture
def station_service() -> Generator[MagicMock]:
    """Patch StationService in the stations API module."""
    with patch("railwatch.api.stations.StationService") as mock_class:
        yield mock_class.return_value


class TestStationsApi:
    """Tests for station search, lookup, count and sync."""

    async def test_search(self, async_client: AsyncClient, station_service: MagicMock) -> None:
        """Test that search results are serialized."""
        station_service.search_stations = AsyncMock(return_value=[_station()])

        response = await async_client.get(f"{PREFIX}/search", params={"q": "utr"})

        assert response.status_code == status.HTTP_200_OK
        assert response.json()[0]["code"] == "UT"
        assert response.json()[0]["synonyms"] == ["Utrecht"]
        station_service.search_stations.assert_awaited_once_with("utr")

    async def test_search_requires_query(self, async_client: AsyncClient, station_service: MagicMock) -> None:
        """Test that q is mandatory."""
        response = await async_client.get(f"{PREFIX}/search")

        assert response.status_code == 422

    async def test_count(self, async_client: AsyncClient, station_service: MagicMock) -> None:
        """Test the station count."""
        station_service.get_station_count = AsyncMock(return_value=397)

        response = await async_client.get(f"{PREFIX}/count")

        assert response.json() == {"count": 397}

    async def test_get_station(self, async_client: AsyncClient, station_service: MagicMock) -> None:
        """Test lookup by code."""
        station_service.get_station_by_code = AsyncMock(return_value=_station())

        response = await async_client.get(f"{PREFIX}/ut")

        assert response.status_code == status.HTTP_200_OK
        assert response.json()["name_long"] == "Utrecht Centraal"
        station_service.get_station_by_code.assert_awaited_once_with("ut")

    async def test_get_station_not_found(self, async_client: AsyncClient, station_service: MagicMock) -> None:
        """Test that an unknown code is 404."""
        station_service.get_station_by_code = AsyncMock(
            side_effect=HTTPException(status_code=404, detail="Station 'XX' not found.")
        )

        response = await async_client.get(f"{PREFIX}/XX")

        assert response.status_code == status.HTTP_404_NOT_FOUND

    async def test_sync_is_queued(self, async_client: AsyncClient) -> None:
        """Test that a sync request queues the Celery task and returns 202."""
        with patch("railwatch.api.stations.celery_app") as mock_celery:
            mock_celery.send_task.return_value = MagicMock(id="task-77")
            response = await async_client.post(f"{PREFIX}/sync")

        assert response.status_code == status.HTTP_202_ACCEPTED
        assert response.json() == {"task_id": "task-77", "status": "queued"}
        mock_celery.send_task.assert_called_once_with(SYNC_STATIONS_TASK)
