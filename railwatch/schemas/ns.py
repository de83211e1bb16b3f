"""Pydantic schemas for NS API payloads.

Only the fields the application reads are declared; everything else the
provider sends is ignored so new upstream fields never break parsing.
"""

from pydantic import BaseModel, ConfigDict, Field


class NsModel(BaseModel):
    """Base for provider payloads: unknown fields ignored, aliases or names accepted."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)


# ==================== Stations (nsapp-stations/v2) ====================


class NsStationNames(NsModel):
    """Dutch long/medium/short station names."""

    long: str | None = Field(None, alias="lang")
    medium: str | None = Field(None, alias="middel")
    short: str | None = Field(None, alias="kort")


class NsStation(NsModel):
    """One entry of the stations payload."""

    code: str | None = None
    uic_code: str | None = Field(None, alias="UICCode")
    names: NsStationNames | None = Field(None, alias="namen")
    synonyms: list[str] = Field(default_factory=list, alias="synoniemen")
    lat: float | None = None
    lng: float | None = None
    country: str | None = Field(None, alias="land")


class NsStationsResponse(NsModel):
    """Envelope of the stations endpoint."""

    payload: list[NsStation] = Field(default_factory=list)


# ==================== Disruptions (disruptions/v3) ====================


class NsLabel(NsModel):
    """Objects that only carry a human readable label."""

    label: str | None = None


class NsPhase(NsModel):
    """Lifecycle phase of a disruption."""

    id: str | None = None
    label: str | None = None


class NsSectionStation(NsModel):
    """A station referenced by a publication section."""

    station_code: str | None = Field(None, alias="stationCode")
    name: str | None = None


class NsSection(NsModel):
    """A stretch of track; its stations decide which routes are affected."""

    stations: list[NsSectionStation] = Field(default_factory=list)


class NsPublicationSection(NsModel):
    """Section a disruption is published for."""

    section: NsSection | None = None


class NsTimespan(NsModel):
    """A time window of a disruption with its situation, cause and advice."""

    start: str | None = None
    end: str | None = None
    period: str | None = None
    situation: NsLabel | None = None
    cause: NsLabel | None = None
    advices: list[str] = Field(default_factory=list)


class NsAlternativeTransportTimespan(NsModel):
    """A time window during which replacement transport runs."""

    start: str | None = None
    end: str | None = None
    alternative_transport: NsLabel | None = Field(None, alias="alternativeTransport")


class NsAdditionalTravelTime(NsModel):
    """Extra travel time summary, in minutes."""

    label: str | None = None
    short_label: str | None = Field(None, alias="shortLabel")
    minimum_duration_in_minutes: int | None = Field(None, alias="minimumDurationInMinutes")
    maximum_duration_in_minutes: int | None = Field(None, alias="maximumDurationInMinutes")


class NsImpact(NsModel):
    """Impact rating, 0 (none) to 5 (severe)."""

    value: int | None = None


class NsExpectedDuration(NsModel):
    """Expected duration text, e.g. "Verwachte duur: tot 14:00"."""

    description: str | None = None


class NsDisruption(NsModel):
    """
    A single disruption, maintenance or calamity record.

    ``id`` is the only required field; a record without one is malformed and
    skipped by the checker.
    """

    id: str
    type: str | None = None
    title: str | None = None
    description: str | None = None
    is_active: bool | None = Field(None, alias="isActive")
    phase: NsPhase | str | None = None
    timespans: list[NsTimespan] = Field(default_factory=list)
    alternative_transport_timespans: list[NsAlternativeTransportTimespan] = Field(
        default_factory=list, alias="alternativeTransportTimespans"
    )
    publication_sections: list[NsPublicationSection] = Field(default_factory=list, alias="publicationSections")
    summary_additional_travel_time: NsAdditionalTravelTime | None = Field(
        None, alias="summaryAdditionalTravelTime"
    )
    impact: NsImpact | None = None
    expected_duration: NsExpectedDuration | None = Field(None, alias="expectedDuration")


# ==================== Trips (reisinformatie-api/api/v3/trips) ====================


class NsStop(NsModel):
    """A stop as referenced from a trip leg."""

    name: str | None = None
    uic_code: str | None = Field(None, alias="uicCode")
    station_code: str | None = Field(None, alias="stationCode")


class NsLeg(NsModel):
    """One leg of a trip; only PUBLIC_TRANSIT legs contribute stations."""

    travel_type: str | None = Field(None, alias="travelType")
    origin: NsStop | None = None
    destination: NsStop | None = None
    stops: list[NsStop] = Field(default_factory=list)


class NsTrip(NsModel):
    """A planned journey between two stations."""

    uid: str | None = None
    planned_duration_in_minutes: int | None = Field(None, alias="plannedDurationInMinutes")
    transfers: int | None = None
    legs: list[NsLeg] = Field(default_factory=list)


class NsTripsResponse(NsModel):
    """Envelope of the trips endpoint."""

    trips: list[NsTrip] = Field(default_factory=list)
