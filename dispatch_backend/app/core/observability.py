"""
Request correlation and logging setup.

Each HTTP request gets a correlation id (taken from ``X-Correlation-ID``
when the caller sends one). It is echoed on the response and stamped on
every ``dispatch.*`` log record emitted while the request is handled, so
a dispatch or a QR confirmation can be followed across services.
"""

import logging
import time
import uuid
from contextvars import ContextVar

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from dispatch_backend.app.core.config import settings

CORRELATION_HEADER = "X-Correlation-ID"

correlation_id_var: ContextVar[str] = ContextVar("correlation_id", default="-")

logger = logging.getLogger("dispatch.http")


class CorrelationIdFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id_var.get()
        return True


def configure_logging(level: str = None) -> None:
    """Attach one stream handler to the ``dispatch`` logger tree. Idempotent."""
    root = logging.getLogger("dispatch")
    root.setLevel((level or settings.log_level).upper())
    
    if not root.handlers:
        handler = logging.StreamHandler()
        handler.addFilter(CorrelationIdFilter())
        handler.setFormatter(logging.Formatter(
            "%(asctime)s %(levelname)s [%(name)s] [%(correlation_id)s] %(message)s"
        ))
        root.addHandler(handler)


class ObservabilityMiddleware(BaseHTTPMiddleware):
    """Correlation id, timing header and one access log line per request."""

    async def dispatch(self, request: Request, call_next) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or uuid.uuid4().hex
        request.state.correlation_id = correlation_id
        token = correlation_id_var.set(correlation_id)
        started = time.perf_counter()
        try:
            response = await call_next(request)
            duration_ms = round((time.perf_counter() - started) * 1000, 2)
            
            response.headers[CORRELATION_HEADER] = correlation_id
            response.headers["X-Process-Time"] = str(duration_ms)
            
            if response.status_code >= 500:
                log = logger.error
            elif response.status_code >= 400:
                log = logger.warning
            else:
                log = logger.info
            log(
                "%s %s -> %s (%sms)",
                request.method, request.url.path, response.status_code, duration_ms,
                extra={"client_ip": request.client.host if request.client else "unknown"}
            )
            return response
        finally:
            correlation_id_var.reset(token)
