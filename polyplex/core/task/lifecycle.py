"""Task lifecycle -- creation, pipeline launch and operator decisions.

State machine::

    running ──> pending_approval | needs_work | error
    pending_approval | needs_work | error ──> approved   (stream entry)
    running | pending_approval | needs_work | error ──> rejected (spawns a retry)
    any ──> deleted

Every transition is decided on a snapshot read inside a single
``store.edit()`` block, so concurrent requests cannot both approve a task.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from polyplex.config import Settings
from polyplex.core.task.models import (
    ApprovalReason,
    StoreSnapshot,
    StreamEntry,
    Task,
    TaskSource,
    TaskStatus,
    new_task_id,
    utc_now,
)
from polyplex.core.task.wisdom import WisdomMemory
from polyplex.storage.base import TaskStore
from polyplex.utils.exceptions import (
    InvalidTransitionError,
    StreamEntryNotFoundError,
    TaskNotFoundError,
)
from polyplex.utils.logging import get_logger

if TYPE_CHECKING:
    from polyplex.engine.pipeline import PipelineEngine

logger = get_logger("core.task.lifecycle")

APPROVABLE = frozenset({TaskStatus.PENDING_APPROVAL, TaskStatus.NEEDS_WORK, TaskStatus.ERROR})
REJECTABLE = frozenset(
    {TaskStatus.RUNNING, TaskStatus.PENDING_APPROVAL, TaskStatus.NEEDS_WORK, TaskStatus.ERROR}
)


def build_child_prompt(root_prompt: str, feedback: str | None) -> str:
    """Prompt for the retry spawned by a rejection."""
    note = (feedback or "").strip() or "none"
    return f"{root_prompt}\n\nPrevious rejection feedback: {note}"


def new_task(
    snapshot: StoreSnapshot,
    settings: Settings,
    prompt: str,
    provider: str | None = None,
    model: str | None = None,
    *,
    source: TaskSource = TaskSource.MANUAL,
    original_prompt: str | None = None,
    parent_id: str | None = None,
) -> Task:
    """Create a ``running`` task and add it to *snapshot*.

    Provider and model default to the runtime settings stored in the
    snapshot, then to the service configuration.
    """
    prompt = prompt.strip()
    if not prompt:
        raise ValueError("prompt must not be empty")
    task = Task(
        prompt=prompt,
        original_prompt=original_prompt or prompt,
        provider=provider or snapshot.settings.default_provider or settings.default_provider,
        model=model or snapshot.settings.default_model or settings.default_model or None,
        source=source,
        parent_id=parent_id,
    )
    while snapshot.find_task(task.id) is not None:
        task.id = new_task_id()
    task.append_log(f"Created ({source.value}) for provider {task.provider}")
    snapshot.tasks.append(task)
    return task


def commit_task(snapshot: StoreSnapshot, task: Task, reason: ApprovalReason) -> StreamEntry:
    """Approve *task* in place and append its stream entry to *snapshot*."""
    if task.status not in APPROVABLE:
        raise InvalidTransitionError(task.id, task.status.value, TaskStatus.APPROVED.value)
    approved_at = utc_now()
    task.status = TaskStatus.APPROVED
    task.approved_at = approved_at
    task.approval_reason = reason
    entry = StreamEntry.from_task(task, reason, approved_at)
    snapshot.stream.append(entry)
    task.append_log(f"Approved ({reason.value}) with score {task.score}; stream entry {entry.id}")
    logger.info("task_approved", task_id=task.id, entry_id=entry.id, reason=reason.value, score=task.score)
    return entry


class TaskLifecycle:
    """Operator-facing task operations.

    Owns the set of in-flight pipeline ``asyncio.Task`` objects so they are
    neither garbage collected nor forgotten at shutdown.

    Parameters
    ----------
    store:
        The task store.
    engine:
        Pipeline engine used to run tasks.
    settings:
        Service configuration (provider defaults).
    """

    def __init__(self, store: TaskStore, engine: PipelineEngine, settings: Settings) -> None:
        self.store = store
        self.engine = engine
        self.settings = settings
        self._pipelines: set[asyncio.Task] = set()

    @property
    def active_pipelines(self) -> int:
        return len(self._pipelines)

    # ------------------------------------------------------------------
    # Creation and execution
    # ------------------------------------------------------------------

    async def create(
        self,
        prompt: str,
        provider: str | None = None,
        model: str | None = None,
        *,
        source: TaskSource = TaskSource.MANUAL,
    ) -> Task:
        async with self.store.edit() as snapshot:
            task = new_task(snapshot, self.settings, prompt, provider, model, source=source)
        logger.info("task_created", task_id=task.id, source=source.value, provider=task.provider)
        return task

    def start(self, task_id: str) -> asyncio.Task:
        """Launch the pipeline for *task_id* without awaiting it."""
        pipeline = asyncio.create_task(self._run_pipeline(task_id), name=f"pipeline-{task_id}")
        self._pipelines.add(pipeline)
        pipeline.add_done_callback(self._pipelines.discard)
        return pipeline

    async def submit(self, prompt: str, provider: str | None = None, model: str | None = None) -> Task:
        """Create a manual task and start its pipeline."""
        task = await self.create(prompt, provider, model)
        self.start(task.id)
        return task

    async def _run_pipeline(self, task_id: str) -> None:
        try:
            await self.engine.run(task_id)
        except Exception as exc:
            logger.error("pipeline_crashed", task_id=task_id, error=str(exc), exc_info=True)

    async def drain(self, timeout: float | None = None) -> None:
        """Wait for every in-flight pipeline to finish.

        Pipelines still running after *timeout* seconds are cancelled; their
        tasks stay ``running`` in the store until :meth:`recover_interrupted`.
        """
        while self._pipelines:
            _, pending = await asyncio.wait(list(self._pipelines), timeout=timeout)
            if pending:
                for pipeline in pending:
                    pipeline.cancel()
                await asyncio.gather(*pending, return_exceptions=True)
                logger.warning("pipelines_cancelled", count=len(pending))
                return

    async def recover_interrupted(self) -> list[str]:
        """Mark tasks left ``running`` by a previous process as ``error``.

        Only call this before any pipeline is started in this process.
        """
        recovered: list[str] = []
        async with self.store.edit() as snapshot:
            for task in snapshot.tasks_with_status(TaskStatus.RUNNING):
                task.status = TaskStatus.ERROR
                task.summary = "Interrupted by a service restart"
                task.append_log("Error: pipeline interrupted by a service restart")
                recovered.append(task.id)
        if recovered:
            logger.warning("tasks_recovered", count=len(recovered), task_ids=recovered)
        return recovered

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    async def get(self, task_id: str) -> Task:
        snapshot = await self.store.read()
        task = snapshot.find_task(task_id)
        if task is None:
            raise TaskNotFoundError(task_id)
        return task

    # ------------------------------------------------------------------
    # Operator decisions
    # ------------------------------------------------------------------

    async def approve(self, task_id: str) -> StreamEntry:
        """Manually approve a task; a second approval is an error."""
        async with self.store.edit() as snapshot:
            task = snapshot.find_task(task_id)
            if task is None:
                raise TaskNotFoundError(task_id)
            return commit_task(snapshot, task, ApprovalReason.MANUAL)

    async def reject(self, task_id: str, feedback: str | None = None) -> Task:
        """Reject a task, remember the feedback and start a retry.

        Returns the newly created child task.
        """
        async with self.store.edit() as snapshot:
            task = snapshot.find_task(task_id)
            if task is None:
                raise TaskNotFoundError(task_id)
            if task.status not in REJECTABLE:
                raise InvalidTransitionError(task.id, task.status.value, TaskStatus.REJECTED.value)

            feedback = (feedback or "").strip() or None
            task.status = TaskStatus.REJECTED
            task.feedback = feedback
            task.append_log(f"Rejected: {feedback or 'no feedback'}")
            learned = WisdomMemory(snapshot.wisdom).append(feedback)

            child = new_task(
                snapshot,
                self.settings,
                build_child_prompt(task.root_prompt, feedback),
                task.provider,
                task.model,
                source=TaskSource.RETRY,
                original_prompt=task.root_prompt,
                parent_id=task.id,
            )

        logger.info("task_rejected", task_id=task_id, child_id=child.id, wisdom_added=learned)
        self.start(child.id)
        return child

    async def delete(self, task_id: str) -> None:
        async with self.store.edit() as snapshot:
            if not snapshot.remove_task(task_id):
                raise TaskNotFoundError(task_id)
        logger.info("task_deleted", task_id=task_id)

    async def delete_stream_entry(self, entry_id: str) -> None:
        async with self.store.edit() as snapshot:
            remaining = [entry for entry in snapshot.stream if entry.id != entry_id]
            if len(remaining) == len(snapshot.stream):
                raise StreamEntryNotFoundError(entry_id)
            snapshot.stream = remaining
        logger.info("stream_entry_deleted", entry_id=entry_id)

    async def reset(self) -> None:
        """Clear tasks and stream; wisdom and settings are kept."""
        async with self.store.edit() as snapshot:
            cleared = len(snapshot.tasks), len(snapshot.stream)
            snapshot.tasks = []
            snapshot.stream = []
        logger.info("store_reset", tasks=cleared[0], stream=cleared[1])
