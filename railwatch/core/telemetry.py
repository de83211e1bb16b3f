"""OpenTelemetry tracing and log export."""

import threading
from collections.abc import Generator
from contextlib import contextmanager
from typing import TYPE_CHECKING

import structlog
from opentelemetry import trace
from opentelemetry._logs import set_logger_provider as otel_set_logger_provider
from opentelemetry.exporter.otlp.proto.http._log_exporter import OTLPLogExporter
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.redis import RedisInstrumentor
from opentelemetry.sdk._logs import LoggerProvider
from opentelemetry.sdk._logs.export import BatchLogRecordProcessor
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from opentelemetry.trace import SpanKind, Status, StatusCode

from railwatch import __version__
from railwatch.core.config import settings

if TYPE_CHECKING:
    from opentelemetry.trace.span import Span

logger = structlog.get_logger(__name__)

# Providers are created lazily so every forked worker builds its own
_tracer_provider: TracerProvider | None = None
_tracer_provider_lock = threading.Lock()
_logger_provider: LoggerProvider | None = None
_logger_provider_lock = threading.Lock()
_redis_instrumented: bool = False


def _resource() -> Resource:
    return Resource(
        attributes={
            "service.name": settings.OTEL_SERVICE_NAME,
            "service.version": __version__,
            "deployment.environment": settings.OTEL_ENVIRONMENT,
        }
    )


def parse_otlp_headers(headers_str: str) -> dict[str, str]:
    """
    Parse OTLP headers from comma-separated key=value pairs.

    Args:
        headers_str: Headers in format "key1=value1,key2=value2"

    Returns:
        Dictionary of parsed headers

    Example:
        >>> parse_otlp_headers("Authorization=Bearer token123,X-Custom=value")
        {'Authorization': 'Bearer token123', 'X-Custom': 'value'}
    """
    headers: dict[str, str] = {}
    for raw_pair in headers_str.split(","):
        pair = raw_pair.strip()
        if "=" in pair:
            key, value = pair.split("=", 1)
            headers[key.strip()] = value.strip()
        elif pair:
            logger.warning("otel_malformed_header", pair=pair)
    return headers


def get_tracer_provider() -> TracerProvider | None:
    """
    Get or create the process TracerProvider.

    Returns:
        TracerProvider if OTEL is enabled, None otherwise
    """
    if not settings.OTEL_ENABLED:
        return None

    global _tracer_provider  # noqa: PLW0603
    if _tracer_provider is None:
        with _tracer_provider_lock:
            if _tracer_provider is None:
                _tracer_provider = _create_tracer_provider()
    return _tracer_provider


def _create_tracer_provider() -> TracerProvider:
    provider = TracerProvider(resource=_resource())

    # RedisInstrumentor patches redis globally, so only once per process
    global _redis_instrumented  # noqa: PLW0603
    if not _redis_instrumented:
        try:
            RedisInstrumentor().instrument()
            _redis_instrumented = True
        except Exception:
            logger.exception("redis_instrumentation_failed")

    if settings.OTEL_EXPORTER_OTLP_TRACES_ENDPOINT:
        exporter = OTLPSpanExporter(
            endpoint=settings.OTEL_EXPORTER_OTLP_TRACES_ENDPOINT,
            headers=parse_otlp_headers(settings.OTEL_EXPORTER_OTLP_HEADERS or ""),
        )
        provider.add_span_processor(BatchSpanProcessor(exporter))
        logger.info(
            "otel_tracer_provider_created",
            endpoint=settings.OTEL_EXPORTER_OTLP_TRACES_ENDPOINT,
            service_name=settings.OTEL_SERVICE_NAME,
        )
    else:
        logger.warning("otel_no_traces_endpoint_configured", message="traces will not be exported")

    return provider


def shutdown_tracer_provider() -> None:
    """Flush pending spans. Safe to call when no provider was created."""
    if _tracer_provider is not None:
        _tracer_provider.shutdown()
        logger.info("otel_tracer_provider_shutdown")


def get_logger_provider() -> LoggerProvider | None:
    """
    Get or create the process LoggerProvider.

    Unlike traces, logs stay useful on stdout, so a missing OTLP logs endpoint
    only disables export.

    Returns:
        LoggerProvider if OTEL is enabled, None otherwise
    """
    if not settings.OTEL_ENABLED:
        return None

    global _logger_provider  # noqa: PLW0603
    if _logger_provider is None:
        with _logger_provider_lock:
            if _logger_provider is None:
                provider = LoggerProvider(resource=_resource())
                if settings.OTEL_EXPORTER_OTLP_LOGS_ENDPOINT:
                    exporter = OTLPLogExporter(
                        endpoint=settings.OTEL_EXPORTER_OTLP_LOGS_ENDPOINT,
                        headers=parse_otlp_headers(settings.OTEL_EXPORTER_OTLP_HEADERS or ""),
                    )
                    provider.add_log_record_processor(BatchLogRecordProcessor(exporter))
                _logger_provider = provider
    return _logger_provider


def set_logger_provider() -> None:
    """Install the process LoggerProvider globally (after fork)."""
    if provider := get_logger_provider():
        otel_set_logger_provider(provider)


AttributeValue = str | int | float | bool | list[str] | list[int] | list[float] | list[bool]


@contextmanager
def service_span(
    name: str,
    service: str,
    kind: SpanKind = SpanKind.INTERNAL,
    **attributes: AttributeValue,
) -> Generator["Span"]:
    """Context manager for service operation spans with explicit status.

    Sets StatusCode.OK on success; on failure the SDK records the exception
    and marks the span as errored. The tracer is looked up at call time so it
    uses the provider installed during startup.

    Args:
        name: Span name (e.g., "check_route", "fetch_disruptions")
        service: Value for the peer.service attribute (e.g., "ns-api")
        kind: Span kind (default INTERNAL, use CLIENT for external calls)
        **attributes: Additional span attributes

    Yields:
        Span: The active span for setting additional attributes
    """
    tracer = trace.get_tracer(__name__)
    with tracer.start_as_current_span(
        name,
        kind=kind,
        attributes={"peer.service": service, **attributes},
    ) as span:
        yield span
        span.set_status(Status(StatusCode.OK))
