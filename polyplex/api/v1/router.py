from fastapi import APIRouter

from polyplex.api.v1.endpoints import health, orchestrator, settings, state, tasks

v1_router = APIRouter()
v1_router.include_router(health.router, tags=["health"])
v1_router.include_router(tasks.router, tags=["tasks"])
v1_router.include_router(state.router, tags=["state"])
v1_router.include_router(settings.router, tags=["settings"])
v1_router.include_router(orchestrator.router, tags=["orchestrator"])
