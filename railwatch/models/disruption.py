"""Per-route cache of provider disruptions."""

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
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.dialects.postgresql import UUID
from sqlalchemy.orm import Mapped, mapped_column, relationship

from railwatch.models.base import BaseModel

if TYPE_CHECKING:
    from railwatch.models.route import Route


class DisruptionType(str, enum.Enum):
    """Kind of incident reported by NS."""

    MAINTENANCE = "MAINTENANCE"
    DISRUPTION = "DISRUPTION"
    CALAMITY = "CALAMITY"


class Disruption(BaseModel):
    """
    A disruption known to affect a route.

    Identified by ``(route_id, disruption_id)``. Records are retired with
    ``is_active=False`` rather than deleted; they only disappear with their route.
    """

    __tablename__ = "disruptions"

    route_id: Mapped[uuid.UUID] = mapped_column(
        UUID(as_uuid=True),
        ForeignKey("routes.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    disruption_id: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="External identifier assigned by the provider",
    )
    type: Mapped[DisruptionType] = mapped_column(
        Enum(
            DisruptionType,
            name="disruption_type",
            create_constraint=True,
            values_callable=lambda x: [e.value for e in x],
        ),
        nullable=False,
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    period: Mapped[str] = mapped_column(String(255), nullable=False)
    advice: Mapped[str | None] = mapped_column(Text, nullable=True)
    additional_travel_time_label: Mapped[str | None] = mapped_column(String(255), nullable=True)
    additional_travel_time_short_label: Mapped[str | None] = mapped_column(String(64), nullable=True)
    additional_travel_time_min: Mapped[int | None] = mapped_column(Integer, nullable=True)
    additional_travel_time_max: Mapped[int | None] = mapped_column(Integer, nullable=True)
    cause_label: Mapped[str | None] = mapped_column(String(255), nullable=True)
    impact_value: Mapped[int | None] = mapped_column(Integer, nullable=True)
    alternative_transport_label: Mapped[str | None] = mapped_column(String(255), nullable=True)
    affected_stations: Mapped[list[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
    )
    content_hash: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        comment="SHA-256 over the mutable content fields",
    )
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    last_seen: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    route: Mapped["Route"] = relationship(back_populates="disruptions")

    __table_args__ = (
        UniqueConstraint("route_id", "disruption_id", name="uq_disruption_route_external_id"),
        Index("ix_disruptions_route_active", "route_id", "is_active"),
    )

    def __repr__(self) -> str:
        """String representation of the disruption."""
        return f"<Disruption(route={self.route_id}, id={self.disruption_id}, active={self.is_active})>"
