"""Pydantic schemas for route management."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from railwatch.helpers.schedule_helpers import parse_clock_time
from railwatch.models.disruption import DisruptionType
from railwatch.models.route import UrgencyLevel

MIN_ROUTE_STATIONS = 2
SUNDAY = 0
SATURDAY = 6


def _validate_departure_time(value: str) -> str:
    """
    Validate a 24h HH:MM departure time.

    Raises:
        ValueError: If the value is not HH:MM
    """
    parse_clock_time(value)
    return value


def _validate_schedule_days(days: list[int]) -> list[int]:
    """
    Validate weekdays (0=Sunday .. 6=Saturday) and return them sorted.

    Raises:
        ValueError: If a day is out of range or repeated
    """
    if any(day < SUNDAY or day > SATURDAY for day in days):
        msg = "Schedule days must be between 0 (Sunday) and 6 (Saturday)"
        raise ValueError(msg)
    if len(set(days)) != len(days):
        msg = "Schedule days must not contain duplicates"
        raise ValueError(msg)
    return sorted(days)


# ==================== Request Schemas ====================


class RouteStationRequest(BaseModel):
    """A station of a selected itinerary."""

    code: str = Field(..., min_length=1, max_length=16)
    name: str = Field(..., min_length=1, max_length=255)


class CreateRouteRequest(BaseModel):
    """Request to create a monitored route."""

    name: str = Field(..., min_length=1, max_length=255, description="Route name")
    origin_code: str = Field(..., min_length=1, max_length=16)
    origin_name: str = Field(..., min_length=1, max_length=255)
    destination_code: str = Field(..., min_length=1, max_length=16)
    destination_name: str = Field(..., min_length=1, max_length=255)
    schedule_days: list[int] = Field(..., description="Weekdays, 0=Sunday .. 6=Saturday")
    departure_time: str = Field(..., description="Civil departure time, HH:MM")
    urgency_level: UrgencyLevel = UrgencyLevel.NORMAL
    space_id: UUID | None = None
    stations: list[RouteStationRequest] | None = Field(
        None,
        description="Full station list of a selected itinerary; origin and destination are used when omitted",
    )

    @field_validator("departure_time")
    @classmethod
    def validate_departure_time(cls, value: str) -> str:
        """Validate HH:MM."""
        return _validate_departure_time(value)

    @field_validator("schedule_days")
    @classmethod
    def validate_schedule_days(cls, days: list[int]) -> list[int]:
        """Validate weekday numbers."""
        return _validate_schedule_days(days)

    @field_validator("stations")
    @classmethod
    def validate_stations(cls, stations: list[RouteStationRequest] | None) -> list[RouteStationRequest] | None:
        """An itinerary needs at least an origin and a destination."""
        if stations is not None and len(stations) < MIN_ROUTE_STATIONS:
            msg = f"A route needs at least {MIN_ROUTE_STATIONS} stations"
            raise ValueError(msg)
        return stations


class UpdateRouteRequest(BaseModel):
    """Partial update; only these fields of a route can change."""

    name: str | None = Field(None, min_length=1, max_length=255)
    schedule_days: list[int] | None = None
    departure_time: str | None = None
    urgency_level: UrgencyLevel | None = None

    @field_validator("departure_time")
    @classmethod
    def validate_departure_time(cls, value: str | None) -> str | None:
        """Validate HH:MM if provided."""
        return _validate_departure_time(value) if value is not None else None

    @field_validator("schedule_days")
    @classmethod
    def validate_schedule_days(cls, days: list[int] | None) -> list[int] | None:
        """Validate weekday numbers if provided."""
        return _validate_schedule_days(days) if days is not None else None


class RouteOptionsRequest(BaseModel):
    """Origin and destination to plan itineraries between."""

    origin_code: str = Field(..., min_length=1, max_length=16)
    destination_code: str = Field(..., min_length=1, max_length=16)


# ==================== Response Schemas ====================


class RouteStationResponse(BaseModel):
    """A station of a route's itinerary."""

    model_config = ConfigDict(from_attributes=True)

    station_code: str
    station_name: str
    order: int


class RouteStatusResponse(BaseModel):
    """Derived route status; ``last_checked_at`` is None until the first check."""

    model_config = ConfigDict(from_attributes=True)

    last_checked_at: datetime | None = None
    has_active_disruptions: bool = False
    changed_since_last_view: bool = False


class RouteResponse(BaseModel):
    """A route with its itinerary and status."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    owner_id: str
    space_id: UUID | None
    name: str
    origin_code: str
    origin_name: str
    destination_code: str
    destination_name: str
    schedule_days: list[int]
    departure_time: str
    urgency_level: UrgencyLevel
    created_at: datetime
    stations: list[RouteStationResponse]
    status: RouteStatusResponse | None = None


class RouteListItemResponse(BaseModel):
    """A route in a list, joined with its status and disruption summary."""

    id: UUID
    name: str
    origin_code: str
    origin_name: str
    destination_code: str
    destination_name: str
    schedule_days: list[int]
    departure_time: str
    urgency_level: UrgencyLevel
    space_id: UUID | None
    created_at: datetime
    status: RouteStatusResponse
    active_disruption_count: int
    additional_travel_time_summary: str | None = None


class RouteStatsResponse(BaseModel):
    """Aggregate counts over a set of routes."""

    route_count: int
    active_disruption_count: int
    routes_with_disruptions: int


class DisruptionResponse(BaseModel):
    """A cached disruption of a route."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    disruption_id: str
    type: DisruptionType
    title: str
    description: str
    period: str
    advice: str | None = None
    additional_travel_time_label: str | None = None
    additional_travel_time_short_label: str | None = None
    additional_travel_time_min: int | None = None
    additional_travel_time_max: int | None = None
    cause_label: str | None = None
    impact_value: int | None = None
    alternative_transport_label: str | None = None
    affected_stations: list[str]
    is_active: bool
    last_seen: datetime


class RouteOptionStationResponse(BaseModel):
    """A station of a planned itinerary."""

    model_config = ConfigDict(from_attributes=True)

    code: str
    name: str


class RouteOptionResponse(BaseModel):
    """A selectable itinerary."""

    model_config = ConfigDict(from_attributes=True)

    uid: str
    duration_in_minutes: int
    transfers: int
    via_stations: str
    stations: list[RouteOptionStationResponse]


class CheckRouteResponse(BaseModel):
    """Result of a manual check."""

    success: bool
    route_id: UUID
    disruptions_found: int
    changed: bool
    status: RouteStatusResponse
