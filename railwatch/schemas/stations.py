"""Pydantic schemas for the station cache."""

from pydantic import BaseModel, ConfigDict


class StationResponse(BaseModel):
    """A cached station."""

    model_config = ConfigDict(from_attributes=True)

    code: str
    uic_code: str
    name_long: str
    name_medium: str
    name_short: str
    synonyms: list[str]
    lat: float | None = None
    lng: float | None = None
    country: str


class StationCountResponse(BaseModel):
    """Number of cached stations."""

    count: int


class StationSyncQueuedResponse(BaseModel):
    """A station sync was handed to the worker."""

    task_id: str
    status: str = "queued"
