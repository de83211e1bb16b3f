"""Time arithmetic for the morning sweep and pre-departure follow-up checks.

Departure times are civil ("08:00" in the transit timezone) while follow-up
delays are real elapsed time, so every computation goes through aware
datetimes anchored to the transit timezone, never server-local time.
"""

from dataclasses import dataclass
from datetime import UTC, datetime, time, timedelta, tzinfo

from railwatch.models.route import UrgencyLevel


@dataclass(frozen=True)
class CadenceTier:
    """
    Evenly spaced offsets (minutes before departure): ``start, start - step, ...``
    down to but excluding ``stop``.
    """

    step: int
    start: int
    stop: int

    def offsets(self) -> list[int]:
        """All offsets of this tier, furthest from departure first."""
        return list(range(self.start, self.stop, -self.step))


# Normal routes: every 10 minutes during the last hour (60 .. 10)
# Important routes: every 10 minutes in the second hour (120 .. 70), then every
# 5 minutes in the last hour (55 .. 5). 60 belongs to neither so no minute repeats.
FOLLOW_UP_PLANS: dict[UrgencyLevel, tuple[CadenceTier, ...]] = {
    UrgencyLevel.NORMAL: (CadenceTier(step=10, start=60, stop=0),),
    UrgencyLevel.IMPORTANT: (
        CadenceTier(step=10, start=120, stop=60),
        CadenceTier(step=5, start=55, stop=0),
    ),
}


@dataclass(frozen=True)
class FollowUp:
    """A one-shot check planned ``offset_minutes`` before departure."""

    offset_minutes: int
    run_at: datetime
    delay_seconds: float


def ensure_aware(moment: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    return moment if moment.tzinfo is not None else moment.replace(tzinfo=UTC)


def parse_clock_time(value: str) -> time:
    """
    Parse a 24h ``HH:MM`` string.

    >>> parse_clock_time("08:05")
    datetime.time(8, 5)

    Raises:
        ValueError: If the value is not a valid HH:MM time
    """
    msg = f"Invalid time '{value}', expected HH:MM"
    hours, sep, minutes = value.partition(":")
    if not sep or len(hours) != 2 or len(minutes) != 2 or not (hours + minutes).isdigit():
        raise ValueError(msg)
    try:
        return time(int(hours), int(minutes))
    except ValueError as e:
        raise ValueError(msg) from e


def weekday_index(now: datetime, tz: tzinfo) -> int:
    """
    Day of week of ``now`` in the civil timezone, 0=Sunday .. 6=Saturday.

    >>> from zoneinfo import ZoneInfo
    >>> weekday_index(datetime(2025, 3, 2, 12, 0, tzinfo=UTC), ZoneInfo("Europe/Amsterdam"))
    0
    """
    local = ensure_aware(now).astimezone(tz)
    return (local.weekday() + 1) % 7


def is_scheduled_today(schedule_days: list[int], now: datetime, tz: tzinfo) -> bool:
    """Whether a route with ``schedule_days`` runs on the civil day containing ``now``."""
    return weekday_index(now, tz) in schedule_days


def departure_instant(departure_time: str, now: datetime, tz: tzinfo) -> datetime:
    """
    Today's departure as an aware datetime in the civil timezone.

    "Today" is the civil date of ``now`` in ``tz``; DST transitions are
    handled by the timezone database.

    Args:
        departure_time: Civil departure time, "HH:MM"
        now: Current instant
        tz: Civil timezone

    Returns:
        Aware datetime of today's departure
    """
    local_date = ensure_aware(now).astimezone(tz).date()
    return datetime.combine(local_date, parse_clock_time(departure_time), tzinfo=tz)


def minutes_until_departure(departure: datetime, now: datetime) -> float:
    """Real elapsed minutes from ``now`` until ``departure`` (negative once passed)."""
    return (departure - ensure_aware(now)).total_seconds() / 60


def follow_up_offsets(urgency: UrgencyLevel, minutes_until: float) -> list[int]:
    """
    Offsets (minutes before departure) still ahead of ``now``.

    Only offsets strictly smaller than ``minutes_until`` are kept, so each
    follow-up has a positive delay.

    >>> follow_up_offsets(UrgencyLevel.NORMAL, 55)
    [50, 40, 30, 20, 10]
    >>> follow_up_offsets(UrgencyLevel.NORMAL, -5)
    []
    """
    if minutes_until <= 0:
        return []
    return [offset for tier in FOLLOW_UP_PLANS[urgency] for offset in tier.offsets() if offset < minutes_until]


def plan_follow_ups(
    departure_time: str,
    urgency: UrgencyLevel,
    now: datetime,
    tz: tzinfo,
) -> list[FollowUp]:
    """
    Plan today's follow-up checks for a route.

    Args:
        departure_time: Civil departure time, "HH:MM"
        urgency: Urgency tier of the route
        now: Current instant
        tz: Civil timezone

    Returns:
        Follow-ups in chronological order; empty when departure has passed
    """
    now = ensure_aware(now)
    # Offsets are subtracted in UTC so they stay real elapsed minutes across DST changes
    departure = departure_instant(departure_time, now, tz).astimezone(UTC)
    follow_ups: list[FollowUp] = []
    for offset in follow_up_offsets(urgency, minutes_until_departure(departure, now)):
        run_at = departure - timedelta(minutes=offset)
        delay = (run_at - now).total_seconds()
        if delay <= 0:
            continue
        follow_ups.append(FollowUp(offset_minutes=offset, run_at=run_at, delay_seconds=delay))
    return follow_ups
