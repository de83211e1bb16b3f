"""Typed data access for the disruption checker and the check scheduler."""

import uuid
from collections.abc import Sequence
from typing import Protocol

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from railwatch.models.disruption import Disruption
from railwatch.models.route import Route, RouteStatus


class RouteMonitorRepository(Protocol):
    """
    Exactly the entity operations the checker and scheduler need.

    ``lock_route_status`` opens the per-route critical section; it lasts until
    ``commit`` or ``rollback``.
    """

    async def get_route(self, route_id: uuid.UUID) -> Route | None:
        """Route with its ordered stations, or None when it does not exist."""
        ...

    async def list_routes(self) -> Sequence[Route]:
        """All routes with their stations."""
        ...

    async def lock_route_status(self, route_id: uuid.UUID) -> RouteStatus | None:
        """Status row of the route, locked against concurrent checks."""
        ...

    async def list_disruptions(self, route_id: uuid.UUID) -> Sequence[Disruption]:
        """All cached disruptions of the route, active and retired."""
        ...

    async def add_disruptions(self, disruptions: Sequence[Disruption]) -> None:
        """Stage newly observed disruptions for insert."""
        ...

    async def end_read(self) -> None:
        """Finish the read-only transaction left open by ``get_route``; loaded rows stay usable."""
        ...

    async def commit(self) -> None:
        """Commit the current unit of work."""
        ...

    async def rollback(self) -> None:
        """Abandon the current unit of work."""
        ...


class SqlAlchemyRouteMonitorRepository:
    """RouteMonitorRepository backed by an AsyncSession."""

    def __init__(self, db: AsyncSession) -> None:
        """
        Initialize the repository.

        Args:
            db: Database session
        """
        self.db = db

    async def get_route(self, route_id: uuid.UUID) -> Route | None:
        result = await self.db.execute(
            select(Route)
            .where(Route.id == route_id)
            .options(selectinload(Route.stations))
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_routes(self) -> Sequence[Route]:
        result = await self.db.execute(select(Route).options(selectinload(Route.stations)).order_by(Route.created_at))
        return result.scalars().all()

    async def lock_route_status(self, route_id: uuid.UUID) -> RouteStatus | None:
        # SELECT ... FOR UPDATE serialises checks of the same route
        result = await self.db.execute(
            select(RouteStatus)
            .where(RouteStatus.route_id == route_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def list_disruptions(self, route_id: uuid.UUID) -> Sequence[Disruption]:
        result = await self.db.execute(
            select(Disruption).where(Disruption.route_id == route_id).execution_options(populate_existing=True)
        )
        return result.scalars().all()

    async def add_disruptions(self, disruptions: Sequence[Disruption]) -> None:
        self.db.add_all(disruptions)

    async def end_read(self) -> None:
        # Sessions are created with expire_on_commit=False
        await self.db.commit()

    async def commit(self) -> None:
        await self.db.commit()

    async def rollback(self) -> None:
        await self.db.rollback()
