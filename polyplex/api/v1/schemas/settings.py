"""Schemas for operator-editable runtime settings and provider status."""

from pydantic import BaseModel, Field


class SettingsUpdate(BaseModel):
    """Partial update; omitted fields keep their stored value."""

    default_provider: str | None = None
    default_model: str | None = None
    auto_approve: bool | None = None
    auto_approve_threshold: int | None = Field(default=None, ge=1, le=100)


class ProvidersResponse(BaseModel):
    default_provider: str
    providers: dict[str, bool]
