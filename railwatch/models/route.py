"""Monitored rail routes, their stations and derived status."""

import enum
import uuid
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    Enum,
    ForeignKey,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from railwatch.models.base import BaseModel

if TYPE_CHECKING:
    from railwatch.models.disruption import Disruption


class UrgencyLevel(str, enum.Enum):
    """How closely a route is watched before departure."""

    NORMAL = "normal"
    IMPORTANT = "important"


class Route(BaseModel):
    """A recurring journey a user wants monitored for disruptions."""

    __tablename__ = "routes"

    owner_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        index=True,
    )
    space_id: Mapped[uuid.UUID | None] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("spaces.id", ondelete="CASCADE"),
        nullable=True,
        index=True,
    )
    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )
    origin_code: Mapped[str] = mapped_column(String(16), nullable=False)
    origin_name: Mapped[str] = mapped_column(String(255), nullable=False)
    destination_code: Mapped[str] = mapped_column(String(16), nullable=False)
    destination_name: Mapped[str] = mapped_column(String(255), nullable=False)
    # Weekdays as integers, 0=Sunday .. 6=Saturday
    schedule_days: Mapped[list[int]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )
    # Local civil time "HH:MM" in the transit timezone
    departure_time: Mapped[str] = mapped_column(
        String(5),
        nullable=False,
    )
    urgency_level: Mapped[UrgencyLevel] = mapped_column(
        Enum(
            UrgencyLevel,
            name="urgency_level",
            create_constraint=True,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
        default=UrgencyLevel.NORMAL,
    )

    # Relationships
    stations: Mapped[list["RouteStation"]] = relationship(
        back_populates="route",
        cascade="all, delete-orphan",
        order_by="RouteStation.order",
    )
    status: Mapped["RouteStatus | None"] = relationship(
        back_populates="route",
        cascade="all, delete-orphan",
        uselist=False,
    )
    disruptions: Mapped[list["Disruption"]] = relationship(
        back_populates="route",
        cascade="all, delete-orphan",
    )

    @property
    def station_codes(self) -> list[str]:
        """Station codes of the stored itinerary, in travel order."""
        return [station.station_code for station in self.stations]

    def __repr__(self) -> str:
        """String representation of the route."""
        return f"<Route(id={self.id}, name={self.name}, urgency={self.urgency_level})>"


class RouteStation(BaseModel):
    """One station of a route's itinerary; ``order`` is dense and 0-based."""

    __tablename__ = "route_stations"

    route_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("routes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    station_code: Mapped[str] = mapped_column(String(16), nullable=False)
    station_name: Mapped[str] = mapped_column(String(255), nullable=False)
    order: Mapped[int] = mapped_column(Integer, nullable=False)

    route: Mapped[Route] = relationship(back_populates="stations")

    __table_args__ = (UniqueConstraint("route_id", "order", name="uq_route_station_order"),)

    def __repr__(self) -> str:
        """String representation of the route station."""
        return f"<RouteStation(route={self.route_id}, order={self.order}, code={self.station_code})>"


class RouteStatus(BaseModel):
    """
    Derived per-route status.

    Written by the disruption checker (and cleared by "mark viewed"). The row
    doubles as the per-route lock that serialises concurrent checks.
    """

    __tablename__ = "route_status"

    route_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("routes.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    # NULL means the route was never checked
    last_checked_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )
    has_active_disruptions: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )
    changed_since_last_view: Mapped[bool] = mapped_column(
        Boolean,
        nullable=False,
        default=False,
    )

    route: Mapped[Route] = relationship(back_populates="status")

    def __repr__(self) -> str:
        """String representation of the route status."""
        return (
            f"<RouteStatus(route={self.route_id}, active={self.has_active_disruptions}, "
            f"changed={self.changed_since_last_view})>"
        )
