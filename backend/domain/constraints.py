"""Domain-level validation rules for stay catalogs and quote requests."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from backend.domain.models import ContactDetails, StaySnapshot


_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_ISO_DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")


class UnknownReferenceError(LookupError):
    """Raised when an id does not exist in the stay snapshot.

    Indicates a stale snapshot or mismatched ids on the caller side.
    """


class SnapshotValidationError(ValueError):
    """Raised when a stay snapshot breaks a catalog invariant."""


class QuoteValidationError(ValueError):
    """Raised when contact details, dates or a submission are invalid."""


@dataclass(frozen=True)
class QuoteEngineConfig:
    capacity_safety_factor: Optional[float]
    max_room_quantity: int


def validate_engine_config(config: QuoteEngineConfig) -> None:
    if config.capacity_safety_factor is not None and config.capacity_safety_factor < 1.0:
        raise ValueError("capacity_safety_factor must be >= 1 when set")
    if config.max_room_quantity <= 0:
        raise ValueError("max_room_quantity must be > 0")


def validate_snapshot(snapshot: StaySnapshot) -> None:
    if snapshot.start_date >= snapshot.end_date:
        raise SnapshotValidationError("stay start_date must be before end_date")
    if (
        snapshot.min_days is not None
        and snapshot.max_days is not None
        and snapshot.min_days > snapshot.max_days
    ):
        raise SnapshotValidationError("min_days cannot exceed max_days")

    bracket_ids = set()
    for bracket in snapshot.age_brackets:
        if bracket.bracket_id in bracket_ids:
            raise SnapshotValidationError(f"duplicate age bracket {bracket.bracket_id}")
        bracket_ids.add(bracket.bracket_id)
        if (
            bracket.min_age is not None
            and bracket.max_age is not None
            and bracket.min_age > bracket.max_age
        ):
            raise SnapshotValidationError(
                f"age bracket {bracket.bracket_id} has min_age > max_age"
            )

    sub_period_ids = set()
    for sub_period in snapshot.sub_periods:
        if sub_period.sub_period_id in sub_period_ids:
            raise SnapshotValidationError(f"duplicate sub-period {sub_period.sub_period_id}")
        sub_period_ids.add(sub_period.sub_period_id)
        if sub_period.start_date >= sub_period.end_date:
            raise SnapshotValidationError(
                f"sub-period {sub_period.sub_period_id} must start before it ends"
            )

    room_ids = set()
    for room in snapshot.rooms:
        if room.room_type_id in room_ids:
            raise SnapshotValidationError(f"duplicate room type {room.room_type_id}")
        room_ids.add(room.room_type_id)
        if room.capacity <= 0:
            raise SnapshotValidationError(f"room type {room.room_type_id} capacity must be > 0")
        for tariff in room.tariffs:
            if tariff.room_type_id != room.room_type_id:
                raise SnapshotValidationError(
                    f"tariff for {tariff.room_type_id} embedded in room {room.room_type_id}"
                )
            if tariff.price < 0:
                raise SnapshotValidationError("tariff price cannot be negative")
            if tariff.age_bracket_id not in bracket_ids:
                raise SnapshotValidationError(
                    f"tariff references unknown age bracket {tariff.age_bracket_id}"
                )
            if tariff.sub_period_id is not None and tariff.sub_period_id not in sub_period_ids:
                raise SnapshotValidationError(
                    f"tariff references unknown sub-period {tariff.sub_period_id}"
                )


def parse_iso_date(value: str, field_name: str) -> date:
    if not _ISO_DATE_PATTERN.match(value or ""):
        raise QuoteValidationError(f"{field_name} must follow YYYY-MM-DD format")
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise QuoteValidationError(f"{field_name} must follow YYYY-MM-DD format") from exc


def validate_contact(contact: ContactDetails) -> None:
    if not contact.first_name.strip():
        raise QuoteValidationError("first_name is required")
    if not contact.last_name.strip():
        raise QuoteValidationError("last_name is required")
    if not _EMAIL_PATTERN.match(contact.email.strip()):
        raise QuoteValidationError("email is invalid")
    if not contact.phone.strip():
        raise QuoteValidationError("phone is required")


def validate_stay_dates(snapshot: StaySnapshot, check_in: str, check_out: str) -> int:
    """Validate requested dates against the stay and return the night count."""
    check_in_date = parse_iso_date(check_in, "check_in")
    check_out_date = parse_iso_date(check_out, "check_out")
    if check_in_date >= check_out_date:
        raise QuoteValidationError("check_in must be before check_out")
    if check_in_date < snapshot.start_date or check_out_date > snapshot.end_date:
        raise QuoteValidationError("requested dates are outside the stay period")

    nights = (check_out_date - check_in_date).days
    if snapshot.allow_partial_booking:
        if snapshot.min_days and nights < snapshot.min_days:
            raise QuoteValidationError(f"minimum {snapshot.min_days} nights required")
        if snapshot.max_days and nights > snapshot.max_days:
            raise QuoteValidationError(f"maximum {snapshot.max_days} nights allowed")
    return nights
