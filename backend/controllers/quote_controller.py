"""HTTP controller layer for visitor quote sessions and quote export."""

from __future__ import annotations

from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status
from fastapi.responses import StreamingResponse
from pydantic import BaseModel, EmailStr, Field, field_validator, model_validator

from backend.controllers.dependencies import get_export_service, get_quote_service
from backend.domain.constraints import QuoteValidationError, UnknownReferenceError
from backend.domain.models import ContactDetails, QuoteStep
from backend.services.export_service import QuoteExportService
from backend.services.quote_service import (
    QuoteSessionService,
    SessionNotFoundError,
    StayNotFoundError,
    StepValidationError,
)
from backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["quotes"])


class ParticipantView(BaseModel):
    age_bracket_id: str
    label: str
    count: int = Field(ge=0)
    remaining: int


class RoomView(BaseModel):
    room_type_id: str
    name: str
    capacity: int = Field(gt=0)
    quantity: int = Field(ge=0)
    can_add: bool


class InstanceView(BaseModel):
    instance_key: str
    room_type_id: str
    instance_index: int = Field(ge=0)
    capacity: int = Field(gt=0)
    occupancy: int = Field(ge=0)
    occupants: dict[str, int]


class QuoteSessionResponse(BaseModel):
    session_id: str
    stay_id: str
    step: QuoteStep
    participants: list[ParticipantView]
    rooms: list[RoomView]
    instances: list[InstanceView]
    active_sub_period_ids: list[str]
    total_participants: int = Field(ge=0)
    total_capacity: int = Field(ge=0)
    total_assigned: int = Field(ge=0)
    total_price: float = Field(ge=0.0)
    has_undefined_pricing: bool
    guard_errors: dict[str, list[str]]


class ParticipantCountRequest(BaseModel):
    age_bracket_id: str = Field(min_length=1)
    count: int


class RoomQuantityRequest(BaseModel):
    room_type_id: str = Field(min_length=1)
    quantity: int


class AssignmentRequest(BaseModel):
    instance_key: str = Field(min_length=3)
    age_bracket_id: str = Field(min_length=1)
    delta: int


class SubPeriodSelectionRequest(BaseModel):
    sub_period_ids: list[str] = Field(default_factory=list)


class NavigateRequest(BaseModel):
    step: Optional[QuoteStep] = None
    direction: Optional[Literal["next", "previous"]] = None

    @model_validator(mode="after")
    def validate_single_target(self) -> "NavigateRequest":
        if (self.step is None) == (self.direction is None):
            raise ValueError("provide exactly one of step or direction")
        return self


class SubmitQuoteRequest(BaseModel):
    first_name: str = Field(min_length=1, max_length=100)
    last_name: str = Field(min_length=1, max_length=100)
    email: EmailStr
    phone: str = Field(min_length=1, max_length=40)
    check_in: date
    check_out: date
    special_requests: Optional[str] = Field(default=None, max_length=2000)

    @field_validator("first_name", "last_name", "phone")
    @classmethod
    def validate_not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("value must not be blank")
        return value.strip()


class SubmitQuoteResponse(BaseModel):
    quote_id: str
    quote_number: str
    status: Literal["PENDING", "NEEDS_PRICING"]
    total_price: float = Field(ge=0.0)
    has_undefined_pricing: bool
    submission: dict


def _not_found(exc: Exception) -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc))


def _session_response(service: QuoteSessionService, session) -> QuoteSessionResponse:
    return QuoteSessionResponse(**service.describe(session))


@router.post(
    "/stays/{stay_id}/quote_sessions",
    response_model=QuoteSessionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def start_quote_session(
    stay_id: str,
    service: QuoteSessionService = Depends(get_quote_service),
) -> QuoteSessionResponse:
    try:
        return _session_response(service, service.start_session(stay_id))
    except StayNotFoundError as exc:
        raise _not_found(exc) from exc
    except Exception as exc:  # pragma: no cover
        logger.exception("Unexpected failure starting quote session")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to start quote session",
        ) from exc


@router.get("/quote_sessions/{session_id}", response_model=QuoteSessionResponse)
async def get_quote_session(
    session_id: str,
    service: QuoteSessionService = Depends(get_quote_service),
) -> QuoteSessionResponse:
    try:
        return _session_response(service, service.get_session(session_id))
    except SessionNotFoundError as exc:
        raise _not_found(exc) from exc
    except Exception as exc:  # pragma: no cover
        logger.exception("Unexpected quote session lookup failure | session_id=%s", session_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to load quote session",
        ) from exc


@router.delete("/quote_sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def close_quote_session(
    session_id: str,
    service: QuoteSessionService = Depends(get_quote_service),
) -> Response:
    """Abandon a session that will not be submitted."""
    try:
        service.close_session(session_id)
    except SessionNotFoundError as exc:
        raise _not_found(exc) from exc
    except Exception as exc:  # pragma: no cover
        logger.exception("Unexpected quote session close failure | session_id=%s", session_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to close quote session",
        ) from exc
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.post("/quote_sessions/{session_id}/refresh", response_model=QuoteSessionResponse)
async def refresh_quote_session(
    session_id: str,
    service: QuoteSessionService = Depends(get_quote_service),
) -> QuoteSessionResponse:
    """Reload the stay catalog and rebase the session onto it."""
    try:
        return _session_response(service, service.refresh_snapshot(session_id))
    except (SessionNotFoundError, StayNotFoundError) as exc:
        raise _not_found(exc) from exc
    except Exception as exc:  # pragma: no cover
        logger.exception("Unexpected quote session refresh failure | session_id=%s", session_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to refresh quote session",
        ) from exc


@router.put("/quote_sessions/{session_id}/participants", response_model=QuoteSessionResponse)
async def set_participants(
    session_id: str,
    payload: ParticipantCountRequest,
    service: QuoteSessionService = Depends(get_quote_service),
) -> QuoteSessionResponse:
    """Set one bracket headcount; negative counts clamp to zero."""
    try:
        session = service.set_participant_count(session_id, payload.age_bracket_id, payload.count)
        return _session_response(service, session)
    except (SessionNotFoundError, UnknownReferenceError) as exc:
        raise _not_found(exc) from exc
    except Exception as exc:  # pragma: no cover
        logger.exception("Unexpected participant update failure | session_id=%s", session_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update participants",
        ) from exc


@router.put("/quote_sessions/{session_id}/rooms", response_model=QuoteSessionResponse)
async def set_room_quantity(
    session_id: str,
    payload: RoomQuantityRequest,
    service: QuoteSessionService = Depends(get_quote_service),
) -> QuoteSessionResponse:
    try:
        session = service.set_room_quantity(session_id, payload.room_type_id, payload.quantity)
        return _session_response(service, session)
    except (SessionNotFoundError, UnknownReferenceError) as exc:
        raise _not_found(exc) from exc
    except Exception as exc:  # pragma: no cover
        logger.exception("Unexpected room update failure | session_id=%s", session_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update rooms",
        ) from exc


@router.post("/quote_sessions/{session_id}/assignments", response_model=QuoteSessionResponse)
async def assign_occupants(
    session_id: str,
    payload: AssignmentRequest,
    service: QuoteSessionService = Depends(get_quote_service),
) -> QuoteSessionResponse:
    """Move participants in or out of a room instance, clamped to what fits."""
    try:
        session = service.assign_occupants(
            session_id,
            payload.instance_key,
            payload.age_bracket_id,
            payload.delta,
        )
        return _session_response(service, session)
    except (SessionNotFoundError, UnknownReferenceError) as exc:
        raise _not_found(exc) from exc
    except Exception as exc:  # pragma: no cover
        logger.exception("Unexpected assignment failure | session_id=%s", session_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to assign occupants",
        ) from exc


@router.put("/quote_sessions/{session_id}/sub_periods", response_model=QuoteSessionResponse)
async def select_sub_periods(
    session_id: str,
    payload: SubPeriodSelectionRequest,
    service: QuoteSessionService = Depends(get_quote_service),
) -> QuoteSessionResponse:
    try:
        session = service.select_sub_periods(session_id, payload.sub_period_ids)
        return _session_response(service, session)
    except QuoteValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except (SessionNotFoundError, UnknownReferenceError) as exc:
        raise _not_found(exc) from exc
    except Exception as exc:  # pragma: no cover
        logger.exception("Unexpected sub-period selection failure | session_id=%s", session_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to select sub-periods",
        ) from exc


@router.post("/quote_sessions/{session_id}/navigate", response_model=QuoteSessionResponse)
async def navigate(
    session_id: str,
    payload: NavigateRequest,
    service: QuoteSessionService = Depends(get_quote_service),
) -> QuoteSessionResponse:
    try:
        if payload.direction == "next":
            session = service.advance(session_id)
        elif payload.direction == "previous":
            session = service.go_back(session_id)
        else:
            session = service.navigate(session_id, payload.step)
        return _session_response(service, session)
    except StepValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={"step": exc.step.value, "errors": exc.errors},
        ) from exc
    except SessionNotFoundError as exc:
        raise _not_found(exc) from exc
    except Exception as exc:  # pragma: no cover
        logger.exception("Unexpected navigation failure | session_id=%s", session_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to navigate quote session",
        ) from exc


@router.post(
    "/quote_sessions/{session_id}/submit",
    response_model=SubmitQuoteResponse,
    status_code=status.HTTP_201_CREATED,
)
async def submit_quote(
    session_id: str,
    payload: SubmitQuoteRequest,
    service: QuoteSessionService = Depends(get_quote_service),
) -> SubmitQuoteResponse:
    contact = ContactDetails(
        first_name=payload.first_name,
        last_name=payload.last_name,
        email=str(payload.email),
        phone=payload.phone,
        check_in=payload.check_in.isoformat(),
        check_out=payload.check_out.isoformat(),
        special_requests=payload.special_requests,
    )
    try:
        return SubmitQuoteResponse(**service.submit(session_id, contact))
    except QuoteValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except (SessionNotFoundError, UnknownReferenceError) as exc:
        raise _not_found(exc) from exc
    except Exception as exc:  # pragma: no cover
        logger.exception("Unexpected quote submission failure | session_id=%s", session_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to submit quote",
        ) from exc


@router.get("/quotes/export")
async def export_quotes(
    stay_id: Optional[str] = Query(default=None, min_length=1),
    service: QuoteExportService = Depends(get_export_service),
) -> StreamingResponse:
    """Export stored quotes as CSV."""
    try:
        content = service.to_csv(stay_id)
    except Exception as exc:  # pragma: no cover
        logger.exception("Unexpected quote export failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to export quotes",
        ) from exc
    return StreamingResponse(
        iter([content]),
        media_type="text/csv",
        headers={"Content-Disposition": f"attachment; filename={service.filename}"},
    )
