"""Turning NS trip plans into selectable route itineraries."""

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field

from railwatch.schemas.ns import NsStop, NsTrip

PUBLIC_TRANSIT = "PUBLIC_TRANSIT"
MAX_VIA_STATIONS = 3
MIN_ITINERARY_STATIONS = 2
DIRECT_LABEL = "Direct"


@dataclass(frozen=True)
class StationRef:
    """A station as it appears in an itinerary."""

    code: str
    name: str


@dataclass
class RouteOption:
    """One distinct itinerary between origin and destination."""

    uid: str
    duration_in_minutes: int
    transfers: int
    via_stations: str
    stations: list[StationRef] = field(default_factory=list)


def collect_uic_codes(trips: Sequence[NsTrip]) -> set[str]:
    """All UIC codes referenced by the trips' legs, for a single batched station lookup."""
    codes: set[str] = set()
    for trip in trips:
        for leg in trip.legs:
            for stop in (leg.origin, *leg.stops, leg.destination):
                if stop is not None and stop.uic_code:
                    codes.add(stop.uic_code)
    return codes


def resolve_stop(stop: NsStop | None, stations_by_uic: Mapping[str, StationRef]) -> StationRef | None:
    """
    Resolve a trip stop to a station code.

    The station cache (keyed by UIC code) wins; otherwise a non-numeric
    station code from the payload is used as is.

    >>> resolve_stop(NsStop(uicCode="8400621", stationCode="8400621"), {}) is None
    True
    >>> resolve_stop(NsStop(stationCode="UT", name="Utrecht Centraal"), {})
    StationRef(code='UT', name='Utrecht Centraal')
    """
    if stop is None:
        return None
    if stop.uic_code and stop.uic_code in stations_by_uic:
        return stations_by_uic[stop.uic_code]
    if stop.station_code and not stop.station_code.isdigit():
        return StationRef(code=stop.station_code, name=stop.name or stop.station_code)
    return None


def trip_stations(trip: NsTrip, stations_by_uic: Mapping[str, StationRef]) -> list[StationRef]:
    """Stations a trip passes, in order, once each; walking and other non-train legs are skipped."""
    stations: list[StationRef] = []
    seen: set[str] = set()
    for leg in trip.legs:
        if leg.travel_type and leg.travel_type != PUBLIC_TRANSIT:
            continue
        for stop in (leg.origin, *leg.stops, leg.destination):
            ref = resolve_stop(stop, stations_by_uic)
            if ref is not None and ref.code not in seen:
                seen.add(ref.code)
                stations.append(ref)
    return stations


def via_label(stations: Sequence[StationRef]) -> str:
    """
    Short "via" text: up to about three evenly picked intermediate station names.

    >>> via_label([StationRef("ASD", "Amsterdam Centraal"), StationRef("UT", "Utrecht Centraal")])
    'Direct'
    >>> via_label([StationRef("A", "A"), StationRef("B", "B"), StationRef("C", "C"), StationRef("D", "D")])
    'B, C'
    """
    intermediate = list(stations[1:-1])
    if len(intermediate) > MAX_VIA_STATIONS:
        stride = math.ceil(len(intermediate) / MAX_VIA_STATIONS)
        intermediate = intermediate[::stride]
    return ", ".join(station.name for station in intermediate) or DIRECT_LABEL


def build_route_options(
    trips: Sequence[NsTrip],
    stations_by_uic: Mapping[str, StationRef],
    limit: int,
) -> list[RouteOption]:
    """
    Build up to ``limit`` distinct itineraries from a trip plan.

    Trips that resolve to fewer than two stations are dropped, as are trips
    whose station sequence was already offered.

    Args:
        trips: Trips from the NS trip planner
        stations_by_uic: Station cache entries keyed by UIC code
        limit: Maximum number of options

    Returns:
        Route options in provider order
    """
    options: list[RouteOption] = []
    seen_signatures: set[str] = set()
    for trip in trips:
        stations = trip_stations(trip, stations_by_uic)
        if len(stations) < MIN_ITINERARY_STATIONS:
            continue
        signature = "-".join(station.code for station in stations)
        if signature in seen_signatures:
            continue
        seen_signatures.add(signature)
        options.append(
            RouteOption(
                uid=trip.uid or signature,
                duration_in_minutes=trip.planned_duration_in_minutes or 0,
                transfers=trip.transfers or 0,
                via_stations=via_label(stations),
                stations=stations,
            )
        )
        if len(options) >= limit:
            break
    return options
