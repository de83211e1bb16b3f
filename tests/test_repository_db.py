"""
Database-backed tests.

These cover what mocks cannot: the Alembic schema, SELECT ... FOR UPDATE
serialisation, ON CONFLICT upserts, cascades and SQL ordering. They run against
a throwaway PostgreSQL database and are skipped when no server is reachable.
"""

import asyncio
import uuid
from unittest.mock import AsyncMock, MagicMock
from zoneinfo import ZoneInfo

from railwatch.models.disruption import Disruption
from railwatch.models.route import Route, RouteStation, RouteStatus
from railwatch.models.station import Station
from railwatch.schemas.ns import NsDisruption, NsStation
from railwatch.services.disruption_checker import CheckOutcome, DisruptionChecker
from railwatch.services.repository import SqlAlchemyRouteMonitorRepository
from railwatch.services.route_service import RouteService
from railwatch.services.station_service import StationService
from sqlalchemy import func, select, text, update
from sqlalchemy.ext.asyncio import AsyncSession

from tests.helpers.database import DatabaseContext
from tests.helpers.fakes import FakeNsClient, make_route, ns_disruption


async def _store_route(session: AsyncSession, station_codes: list[str] | None = None) -> Route:
    route = make_route(station_codes or ["ASD", "UT"])
    session.add(route)
    await session.commit()
    return route


async def _count(
    session: AsyncSession, model: type[RouteStation | RouteStatus | Disruption], route_id: uuid.UUID
) -> int:
    result = await session.execute(select(func.count()).select_from(model).where(model.route_id == route_id))
    return result.scalar_one()


async def test_schema_is_at_head(db_session: AsyncSession) -> None:
    """Test that the migrated database records the single head revision."""
    result = await db_session.execute(text("SELECT version_num FROM alembic_version"))
    assert result.scalar_one() == "a3f91c2d7e40"


class TestSqlAlchemyRepository:
    """Tests for SqlAlchemyRouteMonitorRepository."""

    async def test_get_route_loads_ordered_stations(self, db_session: AsyncSession) -> None:
        """Test that the itinerary comes back in travel order."""
        route = await _store_route(db_session, ["ASD", "UT", "GD", "RTD"])
        db_session.expunge_all()

        loaded = await SqlAlchemyRouteMonitorRepository(db_session).get_route(route.id)

        assert loaded is not None
        assert loaded.station_codes == ["ASD", "UT", "GD", "RTD"]

    async def test_get_unknown_route(self, db_session: AsyncSession) -> None:
        """Test that a missing route is None rather than an error."""
        assert await SqlAlchemyRouteMonitorRepository(db_session).get_route(uuid.uuid4()) is None

    async def test_list_routes(self, db_session: AsyncSession) -> None:
        """Test that every stored route is listed with its stations."""
        first = await _store_route(db_session, ["ASD", "UT"])
        second = await _store_route(db_session, ["GD", "RTD"])
        db_session.expunge_all()

        routes = await SqlAlchemyRouteMonitorRepository(db_session).list_routes()

        assert {r.id: r.station_codes for r in routes} == {first.id: ["ASD", "UT"], second.id: ["GD", "RTD"]}

    async def test_lock_route_status(self, db_session: AsyncSession) -> None:
        """Test that the status row is returned for a route and None for an unknown id."""
        route = await _store_route(db_session)
        repository = SqlAlchemyRouteMonitorRepository(db_session)

        status = await repository.lock_route_status(route.id)
        missing = await repository.lock_route_status(uuid.uuid4())
        await repository.rollback()

        assert status is not None
        assert status.route_id == route.id
        assert missing is None

    async def test_added_disruptions_written_on_commit(self, db_session: AsyncSession) -> None:
        """Test that the checker's staged inserts are visible through list_disruptions."""
        route = await _store_route(db_session)
        repository = SqlAlchemyRouteMonitorRepository(db_session)

        await DisruptionChecker(repository, FakeNsClient([ns_disruption("ns-1", ["UT"])])).check_route(route.id)

        stored = await repository.list_disruptions(route.id)
        assert [d.disruption_id for d in stored] == ["ns-1"]
        assert stored[0].affected_stations == ["UT"]


class TestCheckerWithDatabase:
    """DisruptionChecker over the real repository."""

    async def test_content_change_keeps_row_identity(self, db_session: AsyncSession, amsterdam: ZoneInfo) -> None:
        """Test that a changed title updates the same row and flags the route."""
        route = await _store_route(db_session)
        ns_client = FakeNsClient([ns_disruption("ns-1", ["UT"])])
        checker = DisruptionChecker(SqlAlchemyRouteMonitorRepository(db_session), ns_client, tz=amsterdam)
        first = await checker.check_route(route.id)
        original = (await db_session.execute(select(Disruption.id).where(Disruption.route_id == route.id))).scalar_one()
        await db_session.execute(
            update(RouteStatus).where(RouteStatus.route_id == route.id).values(changed_since_last_view=False)
        )
        await db_session.commit()

        ns_client.disruptions = [ns_disruption("ns-1", ["UT"], title="Werkzaamheden verlengd")]
        second = await checker.check_route(route.id)

        assert (first.inserted, second.inserted, second.updated) == (1, 0, 1)
        rows = (await db_session.execute(select(Disruption).where(Disruption.route_id == route.id))).scalars().all()
        assert [(d.id, d.title) for d in rows] == [(original, "Werkzaamheden verlengd")]
        status = (
            await db_session.execute(select(RouteStatus).where(RouteStatus.route_id == route.id))
        ).scalar_one()
        assert status.changed_since_last_view is True

    async def test_route_deleted_before_check(self, db_session: AsyncSession) -> None:
        """Test that a follow-up for a deleted route is a quiet no-op."""
        checker = DisruptionChecker(SqlAlchemyRouteMonitorRepository(db_session), FakeNsClient())

        result = await checker.check_route(uuid.uuid4())

        assert result.outcome is CheckOutcome.ROUTE_NOT_FOUND

    async def test_overlapping_checks_insert_once(self, fresh_db: DatabaseContext, amsterdam: ZoneInfo) -> None:
        """Test that two checks racing on one route store the disruption once and keep the flag."""
        async with fresh_db.session_factory() as session:
            route = await _store_route(session)

        both_fetched = asyncio.Barrier(2)

        class GatedClient(FakeNsClient):
            async def fetch_active_disruptions(self, use_cache: bool = True) -> list[NsDisruption]:
                # Both checks hold provider data before either takes the lock
                await both_fetched.wait()
                return [ns_disruption("ns-1", ["UT"])]

        async def run_check() -> tuple[int, bool]:
            async with fresh_db.session_factory() as session:
                checker = DisruptionChecker(SqlAlchemyRouteMonitorRepository(session), GatedClient(), tz=amsterdam)
                result = await checker.check_route(route.id)
                return result.inserted, result.changed

        outcomes = await asyncio.gather(run_check(), run_check())

        assert sorted(outcomes) == [(0, False), (1, True)]
        async with fresh_db.session_factory() as session:
            assert await _count(session, Disruption, route.id) == 1
            status = (await session.execute(select(RouteStatus).where(RouteStatus.route_id == route.id))).scalar_one()
            assert status.changed_since_last_view is True
            assert status.has_active_disruptions is True


class TestRouteServiceWithDatabase:
    """RouteService behaviour that depends on the database."""

    async def test_delete_cascades(self, db_session: AsyncSession) -> None:
        """Test that deleting a route removes its stations, status and disruptions."""
        route = await _store_route(db_session)
        ns_client = FakeNsClient([ns_disruption("ns-1", ["UT"])])
        await DisruptionChecker(SqlAlchemyRouteMonitorRepository(db_session), ns_client).check_route(route.id)
        assert await _count(db_session, Disruption, route.id) == 1

        await RouteService(db_session).delete_route(route.id, "user-123")

        assert await _count(db_session, RouteStation, route.id) == 0
        assert await _count(db_session, RouteStatus, route.id) == 0
        assert await _count(db_session, Disruption, route.id) == 0

    async def test_mark_viewed_waits_for_in_flight_check(self, fresh_db: DatabaseContext) -> None:
        """Test that mark viewed blocks on the status lock instead of overwriting a concurrent check."""
        async with fresh_db.session_factory() as session:
            route = await _store_route(session)

        async with fresh_db.session_factory() as check_session, fresh_db.session_factory() as view_session:
            repository = SqlAlchemyRouteMonitorRepository(check_session)
            status = await repository.lock_route_status(route.id)
            assert status is not None

            viewed = asyncio.create_task(RouteService(view_session).mark_route_viewed(route.id, "user-123"))
            done, _ = await asyncio.wait({viewed}, timeout=0.5)
            assert not done

            status.changed_since_last_view = True
            await repository.commit()
            cleared = await viewed

        assert cleared.changed_since_last_view is False
        async with fresh_db.session_factory() as session:
            stored = (await session.execute(select(RouteStatus).where(RouteStatus.route_id == route.id))).scalar_one()
            assert stored.changed_since_last_view is False


class TestStationServiceWithDatabase:
    """Station sync and search against real SQL."""

    async def test_sync_twice_updates_in_place(self, db_session: AsyncSession) -> None:
        """Test that a second sync updates the cached station rather than duplicating it."""
        ns_client = MagicMock()
        ns_client.fetch_stations = AsyncMock(
            return_value=[NsStation.model_validate({"code": "UT", "UICCode": "8400621", "namen": {"lang": "Utrecht"}})]
        )
        service = StationService(db_session)
        await service.sync_stations(ns_client)

        ns_client.fetch_stations.return_value = [
            NsStation.model_validate({"code": "UT", "UICCode": "8400621", "namen": {"lang": "Utrecht Centraal"}})
        ]
        await service.sync_stations(ns_client)

        rows = (await db_session.execute(select(Station.code, Station.name_long))).all()
        assert [tuple(row) for row in rows] == [("UT", "Utrecht Centraal")]

    async def test_search_ranks_across_all_matches(self, db_session: AsyncSession) -> None:
        """Test that the exact code wins even when far more rows match than are returned."""
        db_session.add_all(
            Station(
                code=f"X{i:03d}",
                uic_code="",
                name_long=f"Utrecht Halte {i:03d}",
                name_medium=f"Utrecht H {i:03d}",
                name_short=f"X{i:03d}",
                synonyms=[],
            )
            for i in range(150)
        )
        db_session.add(
            Station(
                code="UT",
                uic_code="8400621",
                name_long="Utrecht Centraal",
                name_medium="Utrecht C.",
                name_short="Utrecht C",
                synonyms=[],
            )
        )
        await db_session.commit()

        stations = await StationService(db_session).search_stations("ut")

        assert len(stations) == 10
        assert stations[0].code == "UT"
        assert [s.name_long for s in stations[1:]] == [f"Utrecht Halte {i:03d}" for i in range(9)]
