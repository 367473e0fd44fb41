"""Task submission, inspection and operator decision endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from polyplex.api.v1.schemas.common import ErrorResponse, OkResponse
from polyplex.api.v1.schemas.task import (
    ApproveResponse,
    PromptRequest,
    PromptResponse,
    RejectRequest,
    RejectResponse,
)
from polyplex.core.task.lifecycle import TaskLifecycle
from polyplex.core.task.models import Task
from polyplex.dependencies import get_lifecycle

router = APIRouter()


@router.post(
    "/prompt",
    response_model=PromptResponse,
    status_code=202,
    summary="Submit a requirement",
    description="Create a task and start its pipeline in the background.",
)
async def submit_prompt(
    request: PromptRequest,
    lifecycle: TaskLifecycle = Depends(get_lifecycle),
) -> PromptResponse:
    task = await lifecycle.submit(request.prompt, request.provider, request.model)
    return PromptResponse(task_id=task.id)


@router.get(
    "/tasks/{task_id}",
    response_model=Task,
    responses={404: {"model": ErrorResponse}},
    summary="Get a task",
)
async def get_task(task_id: str, lifecycle: TaskLifecycle = Depends(get_lifecycle)) -> Task:
    return await lifecycle.get(task_id)


@router.post(
    "/tasks/{task_id}/approve",
    response_model=ApproveResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Approve a task",
    description="Commit the task's result to the approved stream.  Approving twice is a conflict.",
)
async def approve_task(task_id: str, lifecycle: TaskLifecycle = Depends(get_lifecycle)) -> ApproveResponse:
    entry = await lifecycle.approve(task_id)
    return ApproveResponse(entry=entry)


@router.post(
    "/tasks/{task_id}/reject",
    response_model=RejectResponse,
    responses={404: {"model": ErrorResponse}, 409: {"model": ErrorResponse}},
    summary="Reject a task",
    description="Record feedback as wisdom and start a retry task built from the original prompt.",
)
async def reject_task(
    task_id: str,
    request: RejectRequest,
    lifecycle: TaskLifecycle = Depends(get_lifecycle),
) -> RejectResponse:
    child = await lifecycle.reject(task_id, request.feedback)
    return RejectResponse(new_task_id=child.id)


@router.delete(
    "/tasks/{task_id}",
    response_model=OkResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Delete a task",
)
async def delete_task(task_id: str, lifecycle: TaskLifecycle = Depends(get_lifecycle)) -> OkResponse:
    await lifecycle.delete(task_id)
    return OkResponse()
