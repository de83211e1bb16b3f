"""Celery Beat periodic task schedules.

- run_morning_sweep: at each of MORNING_SWEEP_TIMES, civil time in the
  transit timezone (celery_app.conf.timezone)
- sync_stations: every STATION_SYNC_INTERVAL seconds (weekly by default)

Follow-up checks are not beat entries; the sweep enqueues them with a countdown.
"""

from typing import Any

from celery.schedules import crontab, schedule
from railwatch.celery.app import celery_app
from railwatch.core.config import settings

MORNING_SWEEP_TASK = "railwatch.celery.tasks.run_morning_sweep"
SYNC_STATIONS_TASK = "railwatch.celery.tasks.sync_stations"


def build_beat_schedule(sweep_times: list[str], station_sync_interval: float) -> dict[str, dict[str, Any]]:
    """
    Build the beat schedule.

    Args:
        sweep_times: Validated "HH:MM" civil times for the morning sweep
        station_sync_interval: Seconds between station syncs

    Returns:
        Mapping suitable for ``celery_app.conf.beat_schedule``
    """
    beat_schedule: dict[str, dict[str, Any]] = {}
    for sweep_time in sweep_times:
        hour, minute = sweep_time.split(":")
        beat_schedule[f"morning-sweep-{hour}{minute}"] = {
            "task": MORNING_SWEEP_TASK,
            "schedule": crontab(hour=int(hour), minute=int(minute)),
            "options": {
                "expires": 1800,  # A sweep picked up after half an hour is stale
            },
        }
    beat_schedule["sync-stations"] = {
        "task": SYNC_STATIONS_TASK,
        "schedule": schedule(run_every=station_sync_interval),
        "options": {
            "expires": 3600,
        },
    }
    return beat_schedule


celery_app.conf.beat_schedule = build_beat_schedule(settings.MORNING_SWEEP_TIMES, settings.STATION_SYNC_INTERVAL)
