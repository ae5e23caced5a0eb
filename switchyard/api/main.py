"""
Switchyard HTTP Application
============================

FastAPI surface over one RegistryManager.

Startup order:
  1. Logging and tracing (only when the app builds its own manager)
  2. Manager init, in the lifespan (worker pool, cache sweeper, health monitoring)

Shutdown reverses it through ``manager.cleanup()``.

Run with:
    uvicorn switchyard.api.main:create_app --factory
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from switchyard.core.config import ManagerConfig
from switchyard.core.exceptions import SwitchyardError
from switchyard.infra.telemetry import get_logger, init_tracing, setup_logging
from switchyard.manager import RegistryManager

from .middleware import RequestContextMiddleware, exception_handler, generic_exception_handler
from .routes import health_router, models_router, stats_router, tasks_router

logger = get_logger(__name__)

API_VERSION = "0.1.0"

def create_app(manager: RegistryManager | None = None) -> FastAPI:
    """Build the application around ``manager`` (a fresh one from env if None)."""
    if manager is None:
        config = ManagerConfig.from_env()
        setup_logging(level=config.log_level)
        init_tracing(exporter=config.tracing_exporter)
        manager = RegistryManager(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        await manager.init()
        logger.info("switchyard_api_started", models=len(manager.registry))
        try:
            yield
        finally:
            await manager.cleanup()
            logger.info("switchyard_api_stopped")

    app = FastAPI(
        title="Switchyard",
        description="Model routing control plane",
        version=API_VERSION,
        lifespan=lifespan,
    )
    app.state.manager = manager

    app.add_middleware(RequestContextMiddleware)
    app.add_exception_handler(SwitchyardError, exception_handler)
    app.add_exception_handler(Exception, generic_exception_handler)

    app.include_router(health_router)
    app.include_router(models_router)
    app.include_router(tasks_router)
    app.include_router(stats_router)
    return app
