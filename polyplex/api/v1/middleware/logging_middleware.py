"""Request / response logging middleware using structlog.

Every request gets a request id (taken from ``x-request-id`` or generated),
bound to the structlog context so engine events logged while serving the
request carry it too.
"""

from __future__ import annotations

import time
import uuid

import structlog
from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from polyplex.utils.logging import get_logger

logger = get_logger(__name__)

REQUEST_ID_HEADER = "x-request-id"


class LoggingMiddleware(BaseHTTPMiddleware):
    """Logs every HTTP request with timing and response status."""

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        start = time.perf_counter()
        request_id = request.headers.get(REQUEST_ID_HEADER) or uuid.uuid4().hex[:16]
        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(request_id=request_id)

        try:
            response = await call_next(request)
        except Exception:
            logger.error(
                "request_failed",
                method=request.method,
                path=request.url.path,
                elapsed_ms=round((time.perf_counter() - start) * 1000, 2),
            )
            raise

        elapsed_ms = round((time.perf_counter() - start) * 1000, 2)
        # Polling endpoints are noisy at info level.
        log_fn = logger.debug if request.method == "GET" and response.status_code < 400 else logger.info
        if response.status_code >= 400:
            log_fn = logger.warning
        log_fn(
            "request_completed",
            method=request.method,
            path=request.url.path,
            status_code=response.status_code,
            elapsed_ms=elapsed_ms,
        )
        response.headers[REQUEST_ID_HEADER] = request_id
        return response
