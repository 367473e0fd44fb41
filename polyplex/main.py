from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from polyplex.api.v1.middleware.error_handler import ErrorHandlerMiddleware
from polyplex.api.v1.middleware.logging_middleware import LoggingMiddleware
from polyplex.api.v1.router import v1_router
from polyplex.config import Settings, settings as default_settings
from polyplex.core.llm.client import GatewayFactory
from polyplex.core.task.lifecycle import TaskLifecycle
from polyplex.core.task.scheduler import AutopilotScheduler
from polyplex.engine.pipeline import PipelineEngine
from polyplex.storage.base import TaskStore
from polyplex.storage.json_store import JsonFileStore
from polyplex.utils.logging import get_logger, setup_logging


def build_services(app: FastAPI, settings: Settings, store: TaskStore, gateways) -> None:
    """Wire the engine objects onto ``app.state``."""
    engine = PipelineEngine(store, gateways, settings)
    lifecycle = TaskLifecycle(store, engine, settings)
    app.state.settings = settings
    app.state.store = store
    app.state.gateways = gateways
    app.state.engine = engine
    app.state.lifecycle = lifecycle
    app.state.scheduler = AutopilotScheduler(store, lifecycle, settings)


def create_app(
    settings: Settings | None = None,
    store: TaskStore | None = None,
    gateways=None,
) -> FastAPI:
    settings = settings or default_settings

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        setup_logging(debug=settings.debug)
        logger = get_logger("startup")
        logger.info("Starting Polyplex", version="0.1.0", store_path=settings.store_path)

        build_services(
            app,
            settings,
            store or JsonFileStore(settings.store_path),
            gateways or GatewayFactory(settings),
        )
        recovered = await app.state.lifecycle.recover_interrupted()
        resumed = await app.state.scheduler.resume()
        logger.info("Engine ready", recovered_tasks=len(recovered), autopilot_resumed=resumed)

        yield

        logger.info("Shutting down", active_pipelines=app.state.lifecycle.active_pipelines)
        await app.state.scheduler.shutdown()
        await app.state.lifecycle.drain(timeout=settings.shutdown_grace_seconds)

    app = FastAPI(
        title="Polyplex",
        description="Task orchestration and quality-gate engine for generated software",
        version="0.1.0",
        lifespan=lifespan,
    )

    # Middleware is applied in reverse order -- outermost first.
    # 1. CORS (outermost -- handles preflight before anything else)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    # 2. Error handler (catches exceptions from inner layers)
    app.add_middleware(ErrorHandlerMiddleware)
    # 3. Request/response logger (innermost -- logs timing around handler)
    app.add_middleware(LoggingMiddleware)

    app.include_router(v1_router, prefix="/api/v1")

    return app


app = create_app()
