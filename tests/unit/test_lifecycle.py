"""Tests for task lifecycle transitions."""
import pytest
from conftest import RecordingEngine

from polyplex.core.task.lifecycle import TaskLifecycle, build_child_prompt
from polyplex.core.task.models import ApprovalReason, TaskSource, TaskStatus
from polyplex.utils.exceptions import (
    InvalidTransitionError,
    StreamEntryNotFoundError,
    TaskNotFoundError,
)


@pytest.fixture
def engine():
    return RecordingEngine()


@pytest.fixture
def lifecycle(store, engine, settings):
    return TaskLifecycle(store, engine, settings)


async def _task_with_status(store, lifecycle, status, score=95):
    task = await lifecycle.create("build a counter")
    async with store.edit() as snapshot:
        stored = snapshot.find_task(task.id)
        stored.status = status
        stored.score = score
        stored.depth = 2
    return task


class TestCreate:
    @pytest.mark.asyncio
    async def test_defaults(self, lifecycle, store):
        task = await lifecycle.create("  build a counter  ")
        assert task.status == TaskStatus.RUNNING
        assert task.prompt == "build a counter"
        assert task.original_prompt == "build a counter"
        assert task.provider == "openai"
        assert task.source == TaskSource.MANUAL
        assert task.id.startswith("task-")
        assert (await store.read()).find_task(task.id) is not None

    @pytest.mark.asyncio
    async def test_runtime_settings_choose_provider(self, lifecycle, store):
        async with store.edit() as snapshot:
            snapshot.settings.default_provider = "anthropic"
        task = await lifecycle.create("x")
        assert task.provider == "anthropic"

    @pytest.mark.asyncio
    async def test_blank_prompt_rejected(self, lifecycle):
        with pytest.raises(ValueError):
            await lifecycle.create("   ")

    @pytest.mark.asyncio
    async def test_submit_starts_pipeline(self, lifecycle, engine):
        task = await lifecycle.submit("build a counter")
        await lifecycle.drain()
        assert engine.ran == [task.id]
        assert lifecycle.active_pipelines == 0


class TestApprove:
    @pytest.mark.asyncio
    async def test_approve_adds_one_stream_entry(self, lifecycle, store):
        task = await _task_with_status(store, lifecycle, TaskStatus.PENDING_APPROVAL, score=96)

        entry = await lifecycle.approve(task.id)

        snapshot = await store.read()
        assert len(snapshot.stream) == 1
        assert entry.score == 96
        assert entry.task_id == task.id
        assert entry.reason == ApprovalReason.MANUAL
        stored = snapshot.find_task(task.id)
        assert stored.status == TaskStatus.APPROVED
        assert stored.approval_reason == ApprovalReason.MANUAL

    @pytest.mark.asyncio
    async def test_needs_work_and_error_are_approvable(self, lifecycle, store):
        for status in (TaskStatus.NEEDS_WORK, TaskStatus.ERROR):
            task = await _task_with_status(store, lifecycle, status)
            await lifecycle.approve(task.id)
        assert len((await store.read()).stream) == 2

    @pytest.mark.asyncio
    async def test_second_approval_is_rejected(self, lifecycle, store):
        task = await _task_with_status(store, lifecycle, TaskStatus.PENDING_APPROVAL)
        await lifecycle.approve(task.id)

        with pytest.raises(InvalidTransitionError):
            await lifecycle.approve(task.id)

        assert len((await store.read()).stream) == 1

    @pytest.mark.asyncio
    async def test_running_task_cannot_be_approved(self, lifecycle):
        task = await lifecycle.create("x")
        with pytest.raises(InvalidTransitionError):
            await lifecycle.approve(task.id)

    @pytest.mark.asyncio
    async def test_stream_entry_survives_task_deletion(self, lifecycle, store):
        task = await _task_with_status(store, lifecycle, TaskStatus.PENDING_APPROVAL, score=91)
        entry = await lifecycle.approve(task.id)

        await lifecycle.delete(task.id)

        snapshot = await store.read()
        assert snapshot.find_task(task.id) is None
        assert [e.model_dump() for e in snapshot.stream] == [entry.model_dump()]
        assert snapshot.stream[0].score == 91

    @pytest.mark.asyncio
    async def test_unknown_task(self, lifecycle):
        with pytest.raises(TaskNotFoundError):
            await lifecycle.approve("task-nope")


class TestReject:
    @pytest.mark.asyncio
    async def test_reject_spawns_child_and_records_wisdom(self, lifecycle, store, engine):
        task = await _task_with_status(store, lifecycle, TaskStatus.NEEDS_WORK)

        child = await lifecycle.reject(task.id, "F")
        await lifecycle.drain()

        snapshot = await store.read()
        assert snapshot.wisdom == ["F"]
        assert len(snapshot.tasks) == 2
        assert child.parent_id == task.id
        assert "F" in child.prompt
        assert child.prompt == build_child_prompt("build a counter", "F")
        assert child.source == TaskSource.RETRY
        assert child.depth == 0
        assert child.status == TaskStatus.RUNNING
        assert snapshot.find_task(task.id).status == TaskStatus.REJECTED
        assert snapshot.find_task(task.id).feedback == "F"
        assert engine.ran == [child.id]

    @pytest.mark.asyncio
    async def test_empty_feedback_adds_no_wisdom(self, lifecycle, store):
        task = await _task_with_status(store, lifecycle, TaskStatus.ERROR)

        child = await lifecycle.reject(task.id, "  ")

        assert (await store.read()).wisdom == []
        assert child.prompt.endswith("Previous rejection feedback: none")

    @pytest.mark.asyncio
    async def test_retry_of_retry_uses_root_prompt(self, lifecycle, store):
        task = await _task_with_status(store, lifecycle, TaskStatus.NEEDS_WORK)
        child = await lifecycle.reject(task.id, "first")
        grandchild = await lifecycle.reject(child.id, "second")

        assert grandchild.original_prompt == "build a counter"
        assert "first" not in grandchild.prompt
        assert (await store.read()).wisdom == ["first", "second"]

    @pytest.mark.asyncio
    async def test_running_task_can_be_rejected(self, lifecycle):
        task = await lifecycle.create("x")
        child = await lifecycle.reject(task.id, "stop")
        assert child.parent_id == task.id

    @pytest.mark.asyncio
    async def test_approved_task_cannot_be_rejected(self, lifecycle, store):
        task = await _task_with_status(store, lifecycle, TaskStatus.PENDING_APPROVAL)
        await lifecycle.approve(task.id)
        with pytest.raises(InvalidTransitionError):
            await lifecycle.reject(task.id, "too late")
        assert (await store.read()).wisdom == []


class TestMaintenance:
    @pytest.mark.asyncio
    async def test_reset_keeps_wisdom(self, lifecycle, store):
        task = await _task_with_status(store, lifecycle, TaskStatus.PENDING_APPROVAL)
        await lifecycle.reject(task.id, "lesson")

        await lifecycle.reset()

        snapshot = await store.read()
        assert snapshot.tasks == []
        assert snapshot.stream == []
        assert snapshot.wisdom == ["lesson"]

    @pytest.mark.asyncio
    async def test_delete_stream_entry(self, lifecycle, store):
        task = await _task_with_status(store, lifecycle, TaskStatus.PENDING_APPROVAL)
        entry = await lifecycle.approve(task.id)

        await lifecycle.delete_stream_entry(entry.id)

        assert (await store.read()).stream == []
        with pytest.raises(StreamEntryNotFoundError):
            await lifecycle.delete_stream_entry(entry.id)

    @pytest.mark.asyncio
    async def test_delete_unknown_task(self, lifecycle):
        with pytest.raises(TaskNotFoundError):
            await lifecycle.delete("task-nope")

    @pytest.mark.asyncio
    async def test_recover_interrupted(self, lifecycle, store):
        running = await lifecycle.create("x")
        done = await _task_with_status(store, lifecycle, TaskStatus.NEEDS_WORK)

        recovered = await lifecycle.recover_interrupted()

        snapshot = await store.read()
        assert recovered == [running.id]
        assert snapshot.find_task(running.id).status == TaskStatus.ERROR
        assert "interrupted" in snapshot.find_task(running.id).log[-1]
        assert snapshot.find_task(done.id).status == TaskStatus.NEEDS_WORK
