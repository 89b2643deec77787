from __future__ import annotations

"""Application factory for FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers and
store lifecycle) so tests can build isolated instances.
"""

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator

from fastapi import FastAPI

from civicsync.api.dependencies import get_vote_service
from civicsync.api.routes import health_router, issues_router
from civicsync.core.config import settings
from civicsync.core.exception_handlers import setup_exception_handlers
from civicsync.core.logging import configure_logging
from civicsync.core.middleware import request_id_middleware
from civicsync.core.openapi import apply_openapi_customizations
from civicsync.core.stores import close_stores, get_document_store

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Ensure the vote uniqueness index on startup; close stores on shutdown.

    Startup fails if the index cannot be created: without it concurrent
    toggles could store duplicate votes.
    """
    vote_service = get_vote_service(get_document_store())
    await vote_service.ensure_indexes()
    logger.info("app.started", extra={"app_env": settings.app_env})
    try:
        yield
    finally:
        await close_stores()
        logger.info("app.stopped")


def create_app() -> FastAPI:
    """Create and configure the FastAPI application instance.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    # Logging first so subsequent init logs are formatted as desired
    configure_logging(settings.log)

    app = FastAPI(
        title="CivicSync API",
        description=(
            "Civic issue reporting backend. Users report location-tagged issues "
            "(limited per user per window) and toggle votes on them; vote counts "
            "are always derived from stored votes."
        ),
        version="0.1.0",
        lifespan=lifespan,
    )

    app.middleware("http")(request_id_middleware)

    setup_exception_handlers(app)

    app.include_router(issues_router, prefix="/v1")
    app.include_router(health_router)

    apply_openapi_customizations(app)

    return app
