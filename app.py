"""
app.py: FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires the repository and services, registers routers, and runs
startup initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from backend.controllers.catalog_controller import router as catalog_router
from backend.controllers.quote_controller import router as quote_router
from backend.repository.data_repository import DataRepository
from backend.services.catalog_service import CatalogService
from backend.services.export_service import QuoteExportService
from backend.services.quote_service import QuoteSessionService
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Services receive the repository explicitly and are exposed through
    app.state for the dependency providers in backend/controllers.
    """
    settings = settings or get_settings()

    repository = DataRepository(settings)
    quote_service = QuoteSessionService(repository=repository, settings=settings)
    catalog_service = CatalogService(
        repository=repository,
        settings=settings,
        quote_service=quote_service,
    )
    export_service = QuoteExportService(repository=repository, settings=settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    app.include_router(quote_router)
    app.include_router(catalog_router)

    app.state.settings = settings
    app.state.repository = repository
    app.state.quote_service = quote_service
    app.state.catalog_service = catalog_service
    app.state.export_service = export_service

    return app


def _startup(app: FastAPI) -> None:
    """
    Idempotent startup sequence. Safe to re-run on server restarts.

    Schema must exist before the demo stay is seeded.
    """
    repository: DataRepository = app.state.repository
    settings: Settings = app.state.settings

    logger.info("Startup: initializing database schema")
    repository.initialize_database()

    if settings.seed_demo_data:
        logger.info("Startup: seeding demo stay (skipped if a stay exists)")
        repository.seed_demo_stay_if_empty()

    logger.info("Startup complete | database=%s", repository.database_path)


# Module-level app object for uvicorn
app = create_app()
