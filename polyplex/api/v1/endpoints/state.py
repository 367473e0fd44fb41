"""Whole-state view, stream maintenance and reset endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from polyplex.api.v1.schemas.common import ErrorResponse, OkResponse
from polyplex.api.v1.schemas.task import StateResponse
from polyplex.core.task.lifecycle import TaskLifecycle
from polyplex.dependencies import get_lifecycle, get_store
from polyplex.storage.base import TaskStore

router = APIRouter()


@router.get("/state", response_model=StateResponse, summary="Tasks, approved stream and wisdom")
async def get_state(store: TaskStore = Depends(get_store)) -> StateResponse:
    snapshot = await store.read()
    return StateResponse(tasks=snapshot.tasks, stream=snapshot.stream, wisdom=snapshot.wisdom)


@router.delete(
    "/stream/{entry_id}",
    response_model=OkResponse,
    responses={404: {"model": ErrorResponse}},
    summary="Delete an approved stream entry",
)
async def delete_stream_entry(
    entry_id: str,
    lifecycle: TaskLifecycle = Depends(get_lifecycle),
) -> OkResponse:
    await lifecycle.delete_stream_entry(entry_id)
    return OkResponse()


@router.post(
    "/reset",
    response_model=OkResponse,
    summary="Clear tasks and stream",
    description="Removes every task and stream entry.  Wisdom and settings are kept.",
)
async def reset(lifecycle: TaskLifecycle = Depends(get_lifecycle)) -> OkResponse:
    await lifecycle.reset()
    return OkResponse()
