"""Runtime settings and provider availability endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends

from polyplex.api.v1.schemas.settings import ProvidersResponse, SettingsUpdate
from polyplex.core.llm.client import GatewayFactory
from polyplex.core.task.models import RuntimeSettings
from polyplex.dependencies import get_gateways, get_store
from polyplex.storage.base import TaskStore
from polyplex.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter()


@router.get("/settings", response_model=RuntimeSettings, summary="Get runtime settings")
async def get_settings(store: TaskStore = Depends(get_store)) -> RuntimeSettings:
    return (await store.read()).settings


@router.put("/settings", response_model=RuntimeSettings, summary="Update runtime settings")
async def update_settings(
    update: SettingsUpdate,
    store: TaskStore = Depends(get_store),
) -> RuntimeSettings:
    changes = update.model_dump(exclude_none=True)
    async with store.edit() as snapshot:
        snapshot.settings = snapshot.settings.model_copy(update=changes)
        current = snapshot.settings
    logger.info("settings_updated", fields=sorted(changes))
    return current


@router.get(
    "/providers",
    response_model=ProvidersResponse,
    summary="Provider availability",
    description="Which providers have credentials configured.  Keys are never returned.",
)
async def list_providers(
    store: TaskStore = Depends(get_store),
    gateways: GatewayFactory = Depends(get_gateways),
) -> ProvidersResponse:
    snapshot = await store.read()
    return ProvidersResponse(
        default_provider=snapshot.settings.default_provider or gateways.settings.default_provider,
        providers=gateways.availability(),
    )
