"""Structured HTTP access logging."""

import time
import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.requests import Request
from starlette.responses import Response

logger = structlog.get_logger(__name__)

REQUEST_ID_HEADER = "x-request-id"
# Health endpoints are logged at debug to keep the access log readable
QUIET_PATHS = frozenset({"/health", "/ready"})


class AccessLoggingMiddleware(BaseHTTPMiddleware):
    """
    Log one ``http_request`` event per request.

    A request id (taken from ``X-Request-ID`` or generated) is bound to the
    structlog context for the duration of the request, so every log line
    emitted while handling it carries the same id. The id is echoed back in
    the response headers.
    """

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        """Process the request and log method, path, status and duration."""
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex
        structlog.contextvars.bind_contextvars(request_id=request_id)
        start_time = time.perf_counter()

        try:
            response = await call_next(request)
        finally:
            structlog.contextvars.unbind_contextvars("request_id")

        duration_ms = round((time.perf_counter() - start_time) * 1000, 2)
        response.headers[REQUEST_ID_HEADER] = request_id

        log_kwargs: dict[str, str | int | float] = {
            "method": request.method,
            "path": request.url.path,
            "status_code": response.status_code,
            "duration_ms": duration_ms,
            "client_ip": request.client.host if request.client else "unknown",
            "request_id": request_id,
        }
        if forwarded_for := request.headers.get("x-forwarded-for"):
            log_kwargs["forwarded_for"] = forwarded_for.split(",")[0].strip()

        if request.url.path in QUIET_PATHS:
            logger.debug("http_request", **log_kwargs)
        else:
            logger.info("http_request", **log_kwargs)

        return response
