"""Logging configuration for the API, Celery workers and the CLI.

structlog is wired into the stdlib logging module so that structlog events and
third-party library records (Celery, httpx, SQLAlchemy) share one formatter,
one handler and correct log levels.
"""

import logging
import sys
from collections.abc import MutableMapping
from typing import TYPE_CHECKING, Any, ClassVar

import structlog
from opentelemetry import trace

if TYPE_CHECKING:
    from opentelemetry.util.types import Attributes

NOISY_LOGGERS = (
    "aiocache",
    "httpx",
    "httpcore",
    "celery.app.trace",
    "opentelemetry.instrumentation.celery",
    "opentelemetry.exporter.otlp.proto.http",
    "uvicorn.access",  # Replaced by AccessLoggingMiddleware
)


def _add_otel_context(
    logger: logging.Logger, method_name: str, event_dict: MutableMapping[str, Any]
) -> MutableMapping[str, Any]:
    """Add OpenTelemetry trace and span IDs to log events for correlation."""
    span = trace.get_current_span()
    if span and span.is_recording():
        ctx = span.get_span_context()
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


class AttrFilteredLoggingHandler:
    """OTEL LoggingHandler that drops attributes the OTLP exporter cannot serialize.

    structlog leaves a ``_logger`` attribute on stdlib records; the OTEL handler
    does not run formatters, so it has to be removed before export.
    """

    DROP_ATTRIBUTES: ClassVar[list[str]] = ["_logger"]

    def __new__(cls, *args: Any, **kwargs: Any) -> Any:  # noqa: ANN401
        """Create an instance of a LoggingHandler subclass built at runtime."""
        from opentelemetry.sdk._logs import LoggingHandler  # noqa: PLC0415

        runtime_class = type(
            "AttrFilteredLoggingHandler",
            (LoggingHandler,),
            {
                "DROP_ATTRIBUTES": cls.DROP_ATTRIBUTES,
                "_get_attributes": staticmethod(cls._get_attributes),
            },
        )
        return runtime_class(*args, **kwargs)

    @staticmethod
    def _get_attributes(record: logging.LogRecord) -> "Attributes":
        from opentelemetry.sdk._logs import LoggingHandler  # noqa: PLC0415

        attributes = LoggingHandler._get_attributes(record)
        if attributes is None:
            return None
        attributes_dict = dict(attributes)
        for attr in AttrFilteredLoggingHandler.DROP_ATTRIBUTES:
            attributes_dict.pop(attr, None)
        return attributes_dict  # type: ignore[return-value]


def configure_logging(*, log_level: str = "INFO") -> None:
    """
    Configure structlog to integrate with Python's logging module.

    Console rendering is used by default; DEBUG switches to JSON lines so the
    verbose output stays machine readable.

    Args:
        log_level: Log level string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    normalized_level = log_level.upper()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _add_otel_context,
    ]

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    if normalized_level == "DEBUG":
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(getattr(logging, normalized_level))

    # Lazy import: telemetry imports this module's logger setup indirectly
    from railwatch.core.config import settings  # noqa: PLC0415

    if settings.OTEL_ENABLED:
        from railwatch.core.telemetry import get_logger_provider  # noqa: PLC0415

        if logger_provider := get_logger_provider():
            otel_handler = AttrFilteredLoggingHandler(
                level=getattr(logging, settings.OTEL_LOG_LEVEL),
                logger_provider=logger_provider,
            )
            root_logger.addHandler(otel_handler)  # type: ignore[arg-type]
            structlog.get_logger(__name__).info(
                "otel_logging_handler_attached",
                level=settings.OTEL_LOG_LEVEL,
                endpoint=settings.OTEL_EXPORTER_OTLP_LOGS_ENDPOINT,
            )

    for logger_name in NOISY_LOGGERS:
        logging.getLogger(logger_name).setLevel(logging.WARNING)
