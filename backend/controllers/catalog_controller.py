"""HTTP controller layer for stay catalog edits."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, field_validator

from backend.controllers.dependencies import get_catalog_service
from backend.domain.constraints import (
    QuoteValidationError,
    SnapshotValidationError,
    UnknownReferenceError,
)
from backend.services.catalog_service import CatalogService
from backend.services.quote_service import StayNotFoundError
from backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["catalog"])


class PricingViewResponse(BaseModel):
    room_type_id: str
    pricing: dict[str, dict[str, float]]


class PricingUpdateRequest(BaseModel):
    """Keys are ``global`` or a sub-period id; a null price clears the tariff."""

    pricing: dict[str, dict[str, Optional[float]]]

    @field_validator("pricing")
    @classmethod
    def validate_prices(
        cls,
        value: dict[str, dict[str, Optional[float]]],
    ) -> dict[str, dict[str, Optional[float]]]:
        for prices in value.values():
            for bracket_id, price in prices.items():
                if not bracket_id.strip():
                    raise ValueError("age bracket id must be non-empty")
                if price is not None and price < 0:
                    raise ValueError("price must be >= 0")
        return value


class SubPeriodOrderRequest(BaseModel):
    sub_period_ids: list[str] = Field(min_length=1)


class SubPeriodResponse(BaseModel):
    sub_period_id: str
    name: str
    start_date: str
    end_date: str
    order: int = Field(ge=0)


@router.get(
    "/stays/{stay_id}/rooms/{room_type_id}/pricing",
    response_model=PricingViewResponse,
)
async def get_room_pricing(
    stay_id: str,
    room_type_id: str,
    service: CatalogService = Depends(get_catalog_service),
) -> PricingViewResponse:
    try:
        return PricingViewResponse(
            room_type_id=room_type_id,
            pricing=service.pricing_view(stay_id, room_type_id),
        )
    except (StayNotFoundError, UnknownReferenceError) as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc


@router.put(
    "/stays/{stay_id}/rooms/{room_type_id}/pricing",
    response_model=PricingViewResponse,
)
async def update_room_pricing(
    stay_id: str,
    room_type_id: str,
    payload: PricingUpdateRequest,
    service: CatalogService = Depends(get_catalog_service),
) -> PricingViewResponse:
    """Replace every tariff of the room with the submitted view."""
    try:
        pricing = service.update_pricing(stay_id, room_type_id, payload.pricing)
        return PricingViewResponse(room_type_id=room_type_id, pricing=pricing)
    except (StayNotFoundError, UnknownReferenceError) as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except SnapshotValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except Exception as exc:  # pragma: no cover
        logger.exception("Unexpected pricing update failure | room_type_id=%s", room_type_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update pricing",
        ) from exc


@router.post(
    "/stays/{stay_id}/sub_periods/reorder",
    response_model=list[SubPeriodResponse],
)
async def reorder_sub_periods(
    stay_id: str,
    payload: SubPeriodOrderRequest,
    service: CatalogService = Depends(get_catalog_service),
) -> list[SubPeriodResponse]:
    try:
        reordered = service.reorder_sub_periods(stay_id, payload.sub_period_ids)
    except StayNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except QuoteValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return [
        SubPeriodResponse(
            sub_period_id=item.sub_period_id,
            name=item.name,
            start_date=item.start_date.isoformat(),
            end_date=item.end_date.isoformat(),
            order=item.order,
        )
        for item in reordered
    ]
