"""Autopilot control endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from polyplex.api.v1.schemas.orchestrator import OrchestratorStartRequest
from polyplex.core.task.models import OrchestratorState
from polyplex.core.task.scheduler import AutopilotConfig, AutopilotScheduler
from polyplex.dependencies import get_scheduler

router = APIRouter()


@router.get("/orchestrator", response_model=OrchestratorState, summary="Autopilot state")
async def get_orchestrator(scheduler: AutopilotScheduler = Depends(get_scheduler)) -> OrchestratorState:
    return await scheduler.state()


@router.post(
    "/orchestrator/start",
    response_model=OrchestratorState,
    summary="Start the autopilot",
    description=(
        "Enable unattended task creation.  The goal is the current stream size plus "
        "``target_count``; one tick runs immediately."
    ),
)
async def start_orchestrator(
    request: OrchestratorStartRequest,
    scheduler: AutopilotScheduler = Depends(get_scheduler),
) -> OrchestratorState:
    return await scheduler.start(AutopilotConfig(**request.model_dump()))


@router.post("/orchestrator/stop", response_model=OrchestratorState, summary="Stop the autopilot")
async def stop_orchestrator(scheduler: AutopilotScheduler = Depends(get_scheduler)) -> OrchestratorState:
    return await scheduler.stop()
