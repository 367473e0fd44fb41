"""Global error-handling middleware.

Translates engine exceptions into structured JSON error responses with
appropriate HTTP status codes.
"""

from __future__ import annotations

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware, RequestResponseEndpoint
from starlette.responses import Response

from polyplex.utils.exceptions import (
    GateIneligibleError,
    InvalidTransitionError,
    MalformedOutputError,
    PolyplexError,
    ProviderError,
    StoreError,
    StreamEntryNotFoundError,
    TaskNotFoundError,
)
from polyplex.utils.logging import get_logger

logger = get_logger(__name__)

# Map exception types to HTTP status codes.
_STATUS_MAP: dict[type, int] = {
    TaskNotFoundError: 404,
    StreamEntryNotFoundError: 404,
    InvalidTransitionError: 409,
    GateIneligibleError: 409,
    ProviderError: 502,
    MalformedOutputError: 422,
    StoreError: 500,
}


class ErrorHandlerMiddleware(BaseHTTPMiddleware):
    """Converts :class:`PolyplexError` subclasses to JSON error responses.

    Unknown exceptions are logged and returned as HTTP 500 with a generic
    body.
    """

    async def dispatch(
        self,
        request: Request,
        call_next: RequestResponseEndpoint,
    ) -> Response:
        try:
            return await call_next(request)

        except PolyplexError as exc:
            status_code = _STATUS_MAP.get(type(exc), 500)
            log_fn = logger.error if status_code >= 500 else logger.warning
            log_fn(
                "handled_error",
                error_type=type(exc).__name__,
                status_code=status_code,
                detail=str(exc),
                path=request.url.path,
            )
            return JSONResponse(
                status_code=status_code,
                content={"error": type(exc).__name__, "detail": str(exc)},
            )

        except Exception as exc:
            logger.error(
                "unhandled_error",
                error_type=type(exc).__name__,
                detail=str(exc),
                path=request.url.path,
                exc_info=True,
            )
            return JSONResponse(
                status_code=500,
                content={
                    "error": "InternalServerError",
                    "detail": "An unexpected error occurred.  Please try again later.",
                },
            )
