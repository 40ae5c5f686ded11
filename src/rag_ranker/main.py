"""
HTTP Application Entry Point

This module defines the FastAPI application instance, registers all routers,
configures exception handling, and provides a test-friendly application
factory.

Design Goals
------------
- Deterministic startup
- Centralized router registration
- RankError mapping plus a global exception safety net
- Test-friendly via create_app()
"""

from __future__ import annotations

import logging

from fastapi import FastAPI

from .api import document_routes, health_routes, search_routes
from .api.dependencies import get_vector_store
from .api.errors import rank_error_handler, unhandled_exception_handler
from .config import settings
from .core.errors import RankError


logger = logging.getLogger("rag_ranker.app")


# ---------------------------------------------------------------------
# Application Factory (Test-Friendly)
# ---------------------------------------------------------------------

def create_app() -> FastAPI:
    """
    Create and configure the FastAPI application.

    Returns
    -------
    FastAPI
        Fully configured FastAPI application.
    """
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = FastAPI(
        title="rag-ranker",
        version="1.0.0",
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
    )

    # --------------------------------------------------------------
    # Exception Handling
    # --------------------------------------------------------------

    app.add_exception_handler(RankError, rank_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)

    # --------------------------------------------------------------
    # Router Registration
    # --------------------------------------------------------------

    app.include_router(health_routes.router)
    app.include_router(document_routes.router)
    app.include_router(search_routes.router)

    # --------------------------------------------------------------
    # Lifecycle Hooks
    # --------------------------------------------------------------

    @app.on_event("startup")
    async def _startup() -> None:
        logger.info(
            "Starting rag-ranker (store=%s, model=%s)",
            settings.store_type,
            settings.embedding_model,
        )

    @app.on_event("shutdown")
    async def _shutdown() -> None:
        """
        Release the store's database connections, if it holds any.
        """
        if get_vector_store.cache_info().currsize:
            close = getattr(get_vector_store(), "close", None)
            if close is not None:
                await close()
        logger.info("Shutting down rag-ranker")

    return app


# ---------------------------------------------------------------------
# Default Application Instance (for Uvicorn)
# ---------------------------------------------------------------------

app = create_app()
