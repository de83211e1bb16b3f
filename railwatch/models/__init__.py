"""Database models for the RailWatch application."""

# Import all models to register them with SQLAlchemy metadata
from railwatch.models.base import Base, BaseModel
from railwatch.models.disruption import Disruption, DisruptionType
from railwatch.models.route import Route, RouteStation, RouteStatus, UrgencyLevel
from railwatch.models.space import Space, SpaceMember, SpaceRole
from railwatch.models.station import Station

__all__ = [
    # Base
    "Base",
    "BaseModel",
    # Station cache
    "Station",
    # Route registry
    "Route",
    "RouteStation",
    "RouteStatus",
    "UrgencyLevel",
    # Disruption cache
    "Disruption",
    "DisruptionType",
    # Access control
    "Space",
    "SpaceMember",
    "SpaceRole",
]
