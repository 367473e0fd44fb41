"""Common response schemas used across all API endpoints."""

from pydantic import BaseModel


class ErrorResponse(BaseModel):
    """Standard error response returned by all endpoints on failure."""

    error: str
    detail: str = ""


class OkResponse(BaseModel):
    """Acknowledgement for operations with nothing else to return."""

    ok: bool = True
