"""Request/response schemas for task submission, inspection and decisions."""

from pydantic import BaseModel, Field, field_validator

from polyplex.core.task.models import StreamEntry, Task


class PromptRequest(BaseModel):
    """Submit a requirement; the pipeline runs in the background."""

    prompt: str = Field(..., min_length=1, description="Natural-language requirement")
    provider: str | None = None
    model: str | None = None

    @field_validator("prompt")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("prompt must not be blank")
        return value.strip()


class PromptResponse(BaseModel):
    task_id: str


class RejectRequest(BaseModel):
    feedback: str = ""


class RejectResponse(BaseModel):
    ok: bool = True
    new_task_id: str


class ApproveResponse(BaseModel):
    ok: bool = True
    entry: StreamEntry


class StateResponse(BaseModel):
    """Everything an operator dashboard needs in one call."""

    tasks: list[Task]
    stream: list[StreamEntry]
    wisdom: list[str]
