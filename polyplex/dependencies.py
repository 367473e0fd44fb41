"""FastAPI dependency functions for injection into endpoint handlers.

Every service object is built once during the app lifespan and stored on
``app.state``; these functions simply look them up.
"""

from __future__ import annotations

from fastapi import Request

from polyplex.core.llm.client import GatewayFactory
from polyplex.core.task.lifecycle import TaskLifecycle
from polyplex.core.task.scheduler import AutopilotScheduler
from polyplex.storage.base import TaskStore


def get_store(request: Request) -> TaskStore:
    return request.app.state.store


def get_gateways(request: Request) -> GatewayFactory:
    return request.app.state.gateways


def get_lifecycle(request: Request) -> TaskLifecycle:
    return request.app.state.lifecycle


def get_scheduler(request: Request) -> AutopilotScheduler:
    return request.app.state.scheduler
