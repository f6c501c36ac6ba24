"""Initialise observability middleware and logging."""

from __future__ import annotations

import logging
import time
import uuid

from fastapi import FastAPI, Request, Response
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint

from sesame.config import Settings
from sesame.obs.redaction import redact_headers, redact_value

logger = logging.getLogger("sesame.access")


class _TraceIdMiddleware(BaseHTTPMiddleware):
    """Attach a ``X-Trace-Id`` header to every response."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        trace_id = request.headers.get("x-trace-id", uuid.uuid4().hex)
        request.state.trace_id = trace_id
        response = await call_next(request)
        response.headers["X-Trace-Id"] = trace_id
        return response


class _AccessLogMiddleware(BaseHTTPMiddleware):
    """Log one line per request with secrets redacted."""

    async def dispatch(self, request: Request, call_next: RequestResponseEndpoint) -> Response:
        start = time.perf_counter()
        response = await call_next(request)
        elapsed_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "%s %s -> %d (%.1f ms) trace=%s",
            request.method,
            redact_value(str(request.url.path)),
            response.status_code,
            elapsed_ms,
            getattr(request.state, "trace_id", "-"),
        )
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("request headers: %s", redact_headers(dict(request.headers)))
        return response


def init_observability(app: FastAPI, settings: Settings | None = None) -> None:
    """Set the package log level and wire up trace-id and access-log middleware."""
    if settings is None:
        settings = Settings()

    logging.getLogger("sesame").setLevel(settings.log_level.upper())

    # Added last runs first: the trace id is set before the access log reads it.
    app.add_middleware(_AccessLogMiddleware)
    app.add_middleware(_TraceIdMiddleware)
