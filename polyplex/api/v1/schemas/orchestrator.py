"""Request schemas for the autopilot endpoints.

Out-of-range values are clamped by the scheduler rather than rejected.
"""

from pydantic import BaseModel


class OrchestratorStartRequest(BaseModel):
    seed_prompt: str = ""
    provider: str | None = None
    model: str | None = None
    target_count: int = 3
    infinite: bool = False
    max_active: int = 2
    tick_seconds: float = 8.0
    auto_approve_threshold: int = 93
