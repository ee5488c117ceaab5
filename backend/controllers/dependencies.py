"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from backend.services.catalog_service import CatalogService
from backend.services.export_service import QuoteExportService
from backend.services.quote_service import QuoteSessionService


def _require_state(request: Request, attribute: str, label: str):
    service = getattr(request.app.state, attribute, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} service is not initialized",
        )
    return service


def get_quote_service(request: Request) -> QuoteSessionService:
    return _require_state(request, "quote_service", "Quote")


def get_catalog_service(request: Request) -> CatalogService:
    return _require_state(request, "catalog_service", "Catalog")


def get_export_service(request: Request) -> QuoteExportService:
    return _require_state(request, "export_service", "Export")
