"""
FastAPI application factory.

Usage::

    uvicorn cadence.api.app:create_app --factory

    # or with a prepared container (tests):
    app = create_app(container=CadenceContainer(settings, store=MemoryStore()))

The lifespan subscribes the event processor to the in-process bus on
startup and closes the container on shutdown.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI

from cadence import __version__
from cadence.api.deps import ContainerDep
from cadence.api.middleware.errors import cadence_error_handler, unhandled_exception_handler
from cadence.api.routers import automations, events, sync
from cadence.api.schemas import HealthResponse
from cadence.container import CadenceContainer
from cadence.core.errors import CadenceError
from cadence.core.logging import configure_logging, get_logger
from cadence.core.settings import CadenceSettings, get_settings

logger = get_logger(__name__)


@asynccontextmanager
async def _lifespan(app: FastAPI) -> AsyncIterator[None]:
    container: CadenceContainer = app.state.container
    logger.info("api.startup", version=__version__, database_url=container.settings.database_url)
    await container.start()
    yield
    await container.aclose()
    logger.info("api.shutdown")


def create_app(
    *,
    settings: CadenceSettings | None = None,
    container: CadenceContainer | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Overrides settings from the environment.
        container: Prepared container; built from ``settings`` when omitted.
    """
    if container is None:
        settings = settings or get_settings()
        configure_logging(level=settings.log_level, json_format=settings.log_json)
        container = CadenceContainer(settings)
    settings = container.settings

    app = FastAPI(
        title="Cadence",
        version=__version__,
        debug=settings.debug,
        lifespan=_lifespan,
    )
    app.state.settings = settings
    app.state.container = container

    app.add_exception_handler(CadenceError, cadence_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    prefix = settings.api_prefix
    app.include_router(events.router, prefix=prefix, tags=["events"])
    app.include_router(automations.router, prefix=prefix, tags=["automations"])
    app.include_router(sync.router, prefix=prefix, tags=["sync"])

    @app.get("/health", tags=["health"])
    def health(container: ContainerDep) -> HealthResponse:
        return HealthResponse(version=__version__, database=container.settings.database_url)

    return app
