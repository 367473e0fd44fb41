"""Task-related data models for the orchestration engine.

Defines tasks and their artifacts, the design produced for each task, the
immutable approved-stream entries, the autopilot state and the whole-document
snapshot persisted by the task store.
"""

from __future__ import annotations

import random
import time
import uuid
from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def new_task_id() -> str:
    """``task-<epoch ms>-<random>``: ids sort by creation time."""
    return f"task-{int(time.time() * 1000)}-{random.randint(0, 9999):04d}"


class TaskStatus(str, Enum):
    """Lifecycle states for a single task."""

    RUNNING = "running"
    PENDING_APPROVAL = "pending_approval"
    NEEDS_WORK = "needs_work"
    APPROVED = "approved"
    REJECTED = "rejected"
    ERROR = "error"


class TaskSource(str, Enum):
    MANUAL = "manual"
    AUTOPILOT = "autopilot"
    RETRY = "retry"


class ApprovalReason(str, Enum):
    MANUAL = "manual"
    AUTO = "auto"


# ---------------------------------------------------------------------------
# Model output shapes.  Completion responses may use camelCase or snake_case
# keys, so these accept both.
# ---------------------------------------------------------------------------


class _LenientModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    @model_validator(mode="before")
    @classmethod
    def _drop_nulls(cls, data):
        # null means "use the default"
        if isinstance(data, dict):
            return {key: value for key, value in data.items() if value is not None}
        return data


def _score(value) -> int:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0
    return max(0, min(100, round(number)))


class TechStack(_LenientModel):
    runtime: str = ""
    framework: str = ""
    database: str = ""
    auth: str = ""
    testing: str = ""
    other: list[str] = []

    @field_validator("other", mode="before")
    @classmethod
    def _listify(cls, value):
        return [value] if isinstance(value, str) else value


class DataModel(_LenientModel):
    name: str = ""
    attributes: dict[str, str] = Field(default_factory=dict, alias="fields")
    relations: list[str] = []


class ApiEndpoint(_LenientModel):
    method: str = ""
    path: str = ""
    auth: bool = False
    description: str = ""


class ArtifactSpec(_LenientModel):
    """One file the design asks the implement stage to produce."""

    path: str
    purpose: str = ""
    exports: list[str] = []
    dependencies: list[str] = []
    priority: int = 100


class Architecture(_LenientModel):
    project_name: str = ""
    description: str = ""
    tech_stack: TechStack = Field(default_factory=TechStack)
    architecture: str = ""
    data_models: list[DataModel] = []
    api_endpoints: list[ApiEndpoint] = []
    files: list[ArtifactSpec] = []
    environment_vars: list[str] = []
    implementation_notes: str = ""

    def ordered_files(self, limit: int) -> list[ArtifactSpec]:
        """Artifact specs by ascending priority (stable), capped at *limit*."""
        return sorted(self.files, key=lambda spec: spec.priority)[:limit]


class Critique(_LenientModel):
    score: int = 0
    summary: str = ""
    critical: list[str] = []
    major: list[str] = []
    minor: list[str] = []
    security: list[str] = []
    missing: list[str] = []

    @field_validator("score", mode="before")
    @classmethod
    def _clamp_score(cls, value) -> int:
        return _score(value)

    def render(self) -> str:
        """Plain-text rendering used as refine input."""
        lines = [self.summary] if self.summary else []
        for label in ("critical", "major", "minor", "security", "missing"):
            for item in getattr(self, label):
                lines.append(f"- [{label}] {item}")
        return "\n".join(lines) or "(no findings)"


class IntegrationIssue(_LenientModel):
    file: str = ""
    other: str = ""
    problem: str = ""


class IntegrationResult(_LenientModel):
    overall_score: int = 0
    compatible: bool = False
    issues: list[IntegrationIssue] = []
    missing: list[str] = []
    env_vars: list[str] = []
    summary: str = ""

    @field_validator("overall_score", mode="before")
    @classmethod
    def _clamp_score(cls, value) -> int:
        return _score(value)


# ---------------------------------------------------------------------------
# Persisted entities
# ---------------------------------------------------------------------------


class Artifact(BaseModel):
    """A generated unit of output belonging to exactly one task.

    Attributes:
        path: Identifier of the artifact (usually a file path).
        purpose: What the design says this artifact is for.
        content: Current content.
        score: Score from the most recent critique of ``content``.
        critique: The most recent critique of ``content``.
        depth: Depth at which ``content`` was last modified.
        refined: Whether ``content`` came from a refine pass.
        error: Set when generation failed; ``content`` then holds a marker.
    """

    path: str
    purpose: str = ""
    content: str = ""
    score: int | None = None
    critique: Critique | None = None
    depth: int = 0
    refined: bool = False
    error: str | None = None

    @property
    def failed(self) -> bool:
        return self.error is not None or not self.content.strip()

    def replace_content(self, content: str, depth: int, *, refined: bool) -> None:
        """Swap in new content; the old score no longer applies to it."""
        self.content = content
        self.depth = depth
        self.refined = refined
        self.error = None
        self.score = None
        self.critique = None

    def record_critique(self, critique: Critique) -> None:
        self.critique = critique
        self.score = critique.score


class Task(BaseModel):
    """A unit of work: one requirement driven through the pipeline.

    ``log`` is append-only; ``depth`` never decreases.
    """

    id: str = Field(default_factory=new_task_id)
    prompt: str
    original_prompt: str = ""
    provider: str = "openai"
    model: str | None = None
    status: TaskStatus = TaskStatus.RUNNING
    depth: int = 0
    wisdom: list[str] = []
    architecture: Architecture | None = None
    artifacts: list[Artifact] = []
    integration: IntegrationResult | None = None
    score: int | None = None
    summary: str | None = None
    log: list[str] = []
    created_at: datetime = Field(default_factory=utc_now)
    approved_at: datetime | None = None
    approval_reason: ApprovalReason | None = None
    parent_id: str | None = None
    source: TaskSource = TaskSource.MANUAL
    feedback: str | None = None

    @property
    def root_prompt(self) -> str:
        return self.original_prompt or self.prompt

    def scores(self) -> list[int]:
        return [artifact.score if artifact.score is not None else 0 for artifact in self.artifacts]

    def append_log(self, line: str) -> None:
        self.log.append(f"{utc_now():%H:%M:%S} {line}")


class StreamEntry(BaseModel):
    """Immutable snapshot of an approved task."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=lambda: f"y-{uuid.uuid4().hex[:12]}")
    task_id: str
    title: str
    project_name: str = ""
    description: str = ""
    tech_stack: TechStack = Field(default_factory=TechStack)
    score: int | None = None
    depth: int = 0
    artifact_count: int = 0
    artifacts: tuple[Artifact, ...] = ()
    architecture: Architecture | None = None
    integration: IntegrationResult | None = None
    provider: str = ""
    approved_at: datetime = Field(default_factory=utc_now)
    reason: ApprovalReason = ApprovalReason.MANUAL

    @classmethod
    def from_task(cls, task: Task, reason: ApprovalReason, approved_at: datetime) -> "StreamEntry":
        architecture = task.architecture.model_copy(deep=True) if task.architecture else None
        return cls(
            task_id=task.id,
            title=task.prompt,
            project_name=architecture.project_name if architecture else "",
            description=architecture.description if architecture else "",
            tech_stack=architecture.tech_stack if architecture else TechStack(),
            score=task.score,
            depth=task.depth,
            artifact_count=len(task.artifacts),
            artifacts=tuple(artifact.model_copy(deep=True) for artifact in task.artifacts),
            architecture=architecture,
            integration=task.integration.model_copy(deep=True) if task.integration else None,
            provider=task.provider,
            approved_at=approved_at,
            reason=reason,
        )


class RuntimeSettings(BaseModel):
    """Operator-editable settings persisted alongside the tasks."""

    default_provider: str = "openai"
    default_model: str = ""
    auto_approve: bool = False
    auto_approve_threshold: int = Field(default=93, ge=1, le=100)


class OrchestratorState(BaseModel):
    """Persisted state of the autopilot scheduler."""

    enabled: bool = False
    infinite: bool = False
    target_count: int = 3
    seed_prompt: str = ""
    provider: str = "openai"
    model: str = ""
    max_active: int = 2
    tick_seconds: float = 8.0
    auto_approve_threshold: int = 93
    total_created: int = 0
    last_tick_at: datetime | None = None
    status_message: str = "stopped"
    goal: int = 0


class StoreSnapshot(BaseModel):
    """The whole document held by a task store."""

    tasks: list[Task] = []
    stream: list[StreamEntry] = []
    wisdom: list[str] = []
    settings: RuntimeSettings = Field(default_factory=RuntimeSettings)
    orchestrator: OrchestratorState = Field(default_factory=OrchestratorState)

    def find_task(self, task_id: str) -> Task | None:
        for task in self.tasks:
            if task.id == task_id:
                return task
        return None

    def tasks_with_status(self, *statuses: TaskStatus) -> list[Task]:
        return [task for task in self.tasks if task.status in statuses]

    def replace_task(self, task: Task) -> None:
        for index, existing in enumerate(self.tasks):
            if existing.id == task.id:
                self.tasks[index] = task
                return
        self.tasks.append(task)

    def remove_task(self, task_id: str) -> bool:
        before = len(self.tasks)
        self.tasks = [task for task in self.tasks if task.id != task_id]
        return len(self.tasks) != before

    def active_count(self) -> int:
        """Tasks counting against the autopilot concurrency cap."""
        return len(self.tasks_with_status(TaskStatus.RUNNING, TaskStatus.PENDING_APPROVAL))
