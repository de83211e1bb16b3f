"""Celery application instance and configuration."""

import structlog
from celery.signals import beat_init, worker_ready
from opentelemetry import trace

from celery import Celery
from railwatch.core.config import require_config, settings
from railwatch.core.logging import configure_logging

logger = structlog.get_logger(__name__)

configure_logging(log_level=settings.LOG_LEVEL)

require_config("CELERY_BROKER_URL", "CELERY_RESULT_BACKEND")

celery_app = Celery("railwatch")

celery_app.conf.update(
    broker_url=settings.CELERY_BROKER_URL,
    result_backend=settings.CELERY_RESULT_BACKEND,
    # Serialization
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",
    # Beat crontabs are civil times in the transit timezone
    timezone=settings.TRANSIT_TIMEZONE,
    enable_utc=True,
    task_track_started=True,
    # A check is one HTTP call plus one transaction
    task_time_limit=300,
    task_soft_time_limit=240,
    # Results of one-shot follow-ups are never read after a day
    result_expires=86400,
    # Redis redelivers unacked messages after the visibility timeout; it must
    # outlast the longest follow-up countdown (a sweep plans at most a day ahead)
    broker_transport_options={"visibility_timeout": 86400},
    worker_hijack_root_logger=False,
)

# TracerProvider is set per worker process after fork (see database.py)
if settings.OTEL_ENABLED:
    from opentelemetry.instrumentation.celery import CeleryInstrumentor

    CeleryInstrumentor().instrument()
    logger.info("celery_otel_instrumentation_enabled")


@beat_init.connect
def init_beat_otel(
    **kwargs: object,
) -> None:
    """Give the beat scheduler process its own OpenTelemetry providers."""
    if settings.OTEL_ENABLED:
        try:
            from railwatch.core.telemetry import (  # noqa: PLC0415  # Lazy import for fork-safety
                get_tracer_provider,
                set_logger_provider,
            )

            if provider := get_tracer_provider():
                trace.set_tracer_provider(provider)
                logger.info("beat_otel_tracer_provider_initialized")

            set_logger_provider()
            logger.info("beat_otel_logger_provider_initialized")
        except Exception:
            logger.exception("beat_otel_initialization_failed")


@worker_ready.connect
def trigger_startup_tasks(
    **kwargs: object,
) -> None:
    """
    Populate the station cache when a worker starts.

    Sync is an upsert; a fresh database gets stations before the first weekly run.
    """
    try:
        celery_app.send_task("railwatch.celery.tasks.sync_stations")
        logger.info("worker_startup_station_sync_triggered")
    except Exception:
        logger.exception("worker_startup_tasks_failed")


# Registers tasks and populates celery_app.conf.beat_schedule
from railwatch.celery import (  # noqa: E402
    schedules,  # noqa: F401
    tasks,  # noqa: F401
)
