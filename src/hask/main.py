"""
Hask Application Entry Point

This module defines the FastAPI application instance, registers all routers,
configures logging and exception handling, and provides a test-friendly
application factory.

Design Goals
------------
- Deterministic startup: tables exist and the vector index is rebuilt from
  stored chunks before the first request is served
- Centralized router registration
- Global exception safety net
- Test-friendly via create_app()
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from .config import settings
from .core.errors import (
    IngestionFailed,
    InvalidURLError,
    ProviderFailure,
    StorageError,
    ingestion_failed_handler,
    invalid_url_handler,
    provider_failure_handler,
    storage_error_handler,
    unhandled_exception_handler,
)
from .db.session import async_engine, init_models
from .api import (
    health_routes,
    url_routes,
    search_routes,
    index_routes,
)
from .api.dependencies import get_ingestion_pipeline


logger = logging.getLogger("hask.app")


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )


# ---------------------------------------------------------------------
# Lifespan
# ---------------------------------------------------------------------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """
    Startup: create the data directory and tables, then rebuild the vector
    index from the page store. Shutdown: dispose of the engine.
    """
    logger.info("Starting hask")

    if not settings.cohere_api_key.get_secret_value():
        logger.warning("HASK_COHERE_API_KEY is not set; provider calls will fail")

    db_path = settings.sqlite_path
    if db_path is not None:
        db_path.parent.mkdir(parents=True, exist_ok=True)

    await init_models(async_engine)

    count = await get_ingestion_pipeline().rebuild_index()
    logger.info("Vector index ready with %d chunks", count)

    yield

    logger.info("Shutting down hask")
    await async_engine.dispose()


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    This factory pattern allows:
    - Clean test instantiation
    - Isolated app instances for integration tests
    - Controlled dependency overrides in pytest

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    configure_logging()

    app = FastAPI(
        title="hask",
        version="0.1.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # --------------------------------------------------------------
    # Exception Handling
    # --------------------------------------------------------------

    app.add_exception_handler(IngestionFailed, ingestion_failed_handler)
    app.add_exception_handler(StorageError, storage_error_handler)
    app.add_exception_handler(ProviderFailure, provider_failure_handler)
    app.add_exception_handler(InvalidURLError, invalid_url_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(url_routes.router)
    app.include_router(search_routes.router)
    app.include_router(index_routes.router)

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn)
# ---------------------------------------------------------------------

app = create_app()


def run() -> None:
    import uvicorn

    uvicorn.run("hask.main:app", host=settings.host, port=settings.port)
