"""Helpers for turning NS disruption payloads into cached records and diffing them.

Everything here is pure: no I/O, no session. The checker feeds provider data
and the cached rows in, and persists whatever comes out.
"""

import hashlib
import json
import uuid
from collections.abc import Iterable, Sequence
from dataclasses import asdict, dataclass, field
from datetime import datetime, tzinfo

import structlog

from railwatch.models.disruption import Disruption, DisruptionType
from railwatch.schemas.ns import NsDisruption, NsPhase

logger = structlog.get_logger(__name__)

UNKNOWN_TITLE = "Unknown disruption"
UNKNOWN_PERIOD = "Onbekende periode"
PERIOD_DATETIME_FORMAT = "%d-%m-%Y %H:%M"
NS_DATETIME_FORMAT = "%Y-%m-%dT%H:%M:%S%z"


@dataclass(frozen=True)
class DisruptionContent:
    """
    The mutable, user-visible fields of a disruption.

    These are exactly the fields covered by the content fingerprint: a change
    in any of them marks the route as changed. Affected stations are not part
    of the content.
    """

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

    def fingerprint(self) -> str:
        """Return the SHA-256 content hash of this disruption."""
        return compute_content_hash(self)


@dataclass(frozen=True)
class ObservedDisruption:
    """A provider disruption that matched at least one station of a route."""

    disruption_id: str
    content: DisruptionContent
    affected_stations: tuple[str, ...]


@dataclass
class ReconcileResult:
    """Outcome of diffing observed disruptions against a route's cached rows."""

    inserted: list[Disruption] = field(default_factory=list)
    updated: int = 0
    refreshed: int = 0
    retired: int = 0

    @property
    def changed(self) -> bool:
        """True when anything the user would notice was inserted, updated or retired."""
        return bool(self.inserted) or self.updated > 0 or self.retired > 0


def compute_content_hash(content: DisruptionContent) -> str:
    """
    Hash the content fields with SHA-256 over a canonical JSON encoding.

    Keys are sorted so the hash is independent of field order.

    Args:
        content: Disruption content

    Returns:
        64-character hex digest

    Example:
        >>> c = DisruptionContent(type=DisruptionType.DISRUPTION, title="t", description="d", period="p")
        >>> len(compute_content_hash(c))
        64
    """
    data = asdict(content)
    data["type"] = content.type.value
    canonical = json.dumps(data, sort_keys=True, ensure_ascii=False)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def parse_ns_datetime(value: str | None) -> datetime | None:
    """
    Parse an NS timestamp such as ``2025-03-01T06:00:00+0100``.

    Returns None for missing or unparseable values.
    """
    if not value:
        return None
    try:
        return datetime.strptime(value, NS_DATETIME_FORMAT)
    except ValueError:
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            logger.debug("ns_datetime_unparseable", value=value)
            return None


def _format_local(moment: datetime, tz: tzinfo) -> str:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=tz)
    return moment.astimezone(tz).strftime(PERIOD_DATETIME_FORMAT)


def format_period(disruption: NsDisruption, tz: tzinfo) -> str:
    """
    Build the human-readable period of a disruption.

    Preference order: the first timespan's own period text, then its
    start/end rendered in the civil timezone, then the phase label.

    Args:
        disruption: Parsed provider record
        tz: Civil timezone used for rendering timestamps

    Returns:
        Period text, "Onbekende periode" when nothing is known
    """
    if disruption.timespans:
        timespan = disruption.timespans[0]
        if timespan.period:
            return timespan.period
        start = parse_ns_datetime(timespan.start)
        end = parse_ns_datetime(timespan.end)
        if start and end:
            return f"{_format_local(start, tz)} - {_format_local(end, tz)}"
        if start:
            return f"Vanaf {_format_local(start, tz)}"

    phase = disruption.phase
    if isinstance(phase, NsPhase):
        if phase.label:
            return phase.label
    elif phase:
        return phase

    return UNKNOWN_PERIOD


def parse_disruption_type(raw: str | None) -> DisruptionType:
    """Map the provider type to DisruptionType, defaulting to DISRUPTION."""
    if raw:
        try:
            return DisruptionType(raw.upper())
        except ValueError:
            logger.debug("unknown_disruption_type", type=raw)
    return DisruptionType.DISRUPTION


def extract_content(disruption: NsDisruption, tz: tzinfo) -> DisruptionContent:
    """
    Extract the cached content fields from a provider record.

    Args:
        disruption: Parsed provider record
        tz: Civil timezone for period rendering

    Returns:
        DisruptionContent with provider defaults applied
    """
    first_timespan = disruption.timespans[0] if disruption.timespans else None

    description = disruption.description or ""
    if not description and first_timespan and first_timespan.situation:
        description = first_timespan.situation.label or ""

    advice: str | None = None
    if first_timespan and first_timespan.advices:
        advice = "\n".join(first_timespan.advices)
    elif disruption.expected_duration and disruption.expected_duration.description:
        advice = disruption.expected_duration.description

    travel_time = disruption.summary_additional_travel_time
    alternative = next(
        (
            span.alternative_transport.label
            for span in disruption.alternative_transport_timespans
            if span.alternative_transport and span.alternative_transport.label
        ),
        None,
    )

    return DisruptionContent(
        type=parse_disruption_type(disruption.type),
        title=disruption.title or UNKNOWN_TITLE,
        description=description,
        period=format_period(disruption, tz),
        advice=advice,
        additional_travel_time_label=travel_time.label if travel_time else None,
        additional_travel_time_short_label=travel_time.short_label if travel_time else None,
        additional_travel_time_min=travel_time.minimum_duration_in_minutes if travel_time else None,
        additional_travel_time_max=travel_time.maximum_duration_in_minutes if travel_time else None,
        cause_label=first_timespan.cause.label if first_timespan and first_timespan.cause else None,
        impact_value=disruption.impact.value if disruption.impact else None,
        alternative_transport_label=alternative,
    )


def extract_affected_stations(disruption: NsDisruption, route_station_codes: Iterable[str]) -> list[str]:
    """
    List the route's station codes referenced by a disruption's publication sections.

    Codes are returned once each, in the order the provider lists them.

    >>> from railwatch.schemas.ns import NsDisruption
    >>> d = NsDisruption.model_validate({"id": "1", "publicationSections": [
    ...     {"section": {"stations": [{"stationCode": "UT"}, {"stationCode": "GD"}, {"stationCode": "UT"}]}}]})
    >>> extract_affected_stations(d, ["ASD", "UT"])
    ['UT']
    """
    route_codes = set(route_station_codes)
    affected: list[str] = []
    for publication in disruption.publication_sections:
        if publication.section is None:
            continue
        for station in publication.section.stations:
            code = station.station_code
            if code and code in route_codes and code not in affected:
                affected.append(code)
    return affected


def match_route_disruptions(
    disruptions: Sequence[NsDisruption],
    route_station_codes: Sequence[str],
    tz: tzinfo,
) -> list[ObservedDisruption]:
    """
    Keep the provider disruptions that touch the route and convert them.

    Disruptions without a matching station are dropped; duplicate external ids
    keep their first occurrence.

    Args:
        disruptions: All active provider disruptions
        route_station_codes: Station codes of the route's itinerary
        tz: Civil timezone for period rendering

    Returns:
        Observed disruptions, in provider order
    """
    observed: list[ObservedDisruption] = []
    seen_ids: set[str] = set()
    for disruption in disruptions:
        if disruption.id in seen_ids:
            continue
        affected = extract_affected_stations(disruption, route_station_codes)
        if not affected:
            continue
        seen_ids.add(disruption.id)
        observed.append(
            ObservedDisruption(
                disruption_id=disruption.id,
                content=extract_content(disruption, tz),
                affected_stations=tuple(affected),
            )
        )
    return observed


def _apply_content(record: Disruption, content: DisruptionContent, content_hash: str) -> None:
    for name, value in asdict(content).items():
        setattr(record, name, value)
    record.content_hash = content_hash


def reconcile_disruptions(
    route_id: uuid.UUID,
    existing: Sequence[Disruption],
    observed: Sequence[ObservedDisruption],
    now: datetime,
) -> ReconcileResult:
    """
    Diff the provider's view of a route against its cached disruptions.

    Inserts unknown disruptions, updates records whose fingerprint changed
    (in place, keeping the row id), refreshes ``last_seen`` on unchanged
    ones, then retires active records the provider no longer reports.
    Existing records are mutated; new ones are returned for the caller to add.

    Args:
        route_id: Route the records belong to
        existing: All cached disruptions of the route (active and retired)
        observed: Disruptions the provider currently reports for the route
        now: Check timestamp

    Returns:
        ReconcileResult describing what happened
    """
    result = ReconcileResult()
    by_external_id = {record.disruption_id: record for record in existing}
    observed_ids: set[str] = set()

    for item in observed:
        observed_ids.add(item.disruption_id)
        content_hash = item.content.fingerprint()
        record = by_external_id.get(item.disruption_id)

        if record is None:
            record = Disruption(
                id=uuid.uuid4(),
                route_id=route_id,
                disruption_id=item.disruption_id,
                affected_stations=list(item.affected_stations),
                is_active=True,
                last_seen=now,
            )
            _apply_content(record, item.content, content_hash)
            by_external_id[item.disruption_id] = record
            result.inserted.append(record)
            continue

        if record.content_hash != content_hash:
            _apply_content(record, item.content, content_hash)
            result.updated += 1
        else:
            result.refreshed += 1
        record.affected_stations = list(item.affected_stations)
        record.is_active = True
        record.last_seen = now

    for record in existing:
        if record.is_active and record.disruption_id not in observed_ids:
            record.is_active = False
            result.retired += 1

    return result


def format_additional_travel_time(minimum: int | None, maximum: int | None) -> str | None:
    """
    Render an extra travel time range.

    >>> format_additional_travel_time(15, 30)
    '+15-30 min'
    >>> format_additional_travel_time(None, 20)
    '+20 min'
    >>> format_additional_travel_time(None, None) is None
    True
    """
    if minimum is not None and maximum is not None and minimum != maximum:
        return f"+{minimum}-{maximum} min"
    single = maximum if maximum is not None else minimum
    return f"+{single} min" if single is not None else None


def summarize_additional_travel_time(disruptions: Iterable[Disruption]) -> str | None:
    """
    Summarise the worst extra travel time over a route's active disruptions.

    The disruption with the largest maximum (falling back to minimum) extra
    minutes wins; its short label, label or formatted range is returned.

    Args:
        disruptions: Disruptions of one route

    Returns:
        Summary label, or None when no active disruption carries travel time data
    """
    candidates: list[tuple[int, Disruption]] = []
    for disruption in disruptions:
        if not disruption.is_active:
            continue
        worst = disruption.additional_travel_time_max
        if worst is None:
            worst = disruption.additional_travel_time_min
        has_label = disruption.additional_travel_time_short_label or disruption.additional_travel_time_label
        if has_label or worst is not None:
            candidates.append((worst or 0, disruption))

    if not candidates:
        return None

    _, top = max(candidates, key=lambda candidate: candidate[0])
    return (
        top.additional_travel_time_short_label
        or top.additional_travel_time_label
        or format_additional_travel_time(top.additional_travel_time_min, top.additional_travel_time_max)
    )
