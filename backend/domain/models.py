"""Domain models for stay quoting: catalog snapshot, configuration, outputs."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Optional


GLOBAL_PRICING_KEY = "global"


class QuoteStep(str, Enum):
    PARTICIPANTS = "participants"
    ROOMS = "rooms"
    ASSIGNMENT = "assignment"


STEP_ORDER: tuple[QuoteStep, ...] = (
    QuoteStep.PARTICIPANTS,
    QuoteStep.ROOMS,
    QuoteStep.ASSIGNMENT,
)


@dataclass(frozen=True)
class AgeBracket:
    bracket_id: str
    label: str
    min_age: Optional[int] = None
    max_age: Optional[int] = None
    order: int = 0


@dataclass(frozen=True)
class SubPeriod:
    sub_period_id: str
    name: str
    start_date: date
    end_date: date
    order: int = 0


@dataclass(frozen=True)
class RoomTariff:
    """Price per occupant for the whole stay (not per night)."""

    room_type_id: str
    age_bracket_id: str
    sub_period_id: Optional[str]
    price: float


@dataclass(frozen=True)
class RoomType:
    room_type_id: str
    name: str
    capacity: int
    tariffs: tuple[RoomTariff, ...] = ()


@dataclass(frozen=True)
class StaySnapshot:
    """Immutable catalog of one stay, supplied by the persistence layer."""

    stay_id: str
    start_date: date
    end_date: date
    allow_partial_booking: bool
    age_brackets: tuple[AgeBracket, ...]
    sub_periods: tuple[SubPeriod, ...]
    rooms: tuple[RoomType, ...]
    min_days: Optional[int] = None
    max_days: Optional[int] = None
    name: str = ""

    def room(self, room_type_id: str) -> Optional[RoomType]:
        for room in self.rooms:
            if room.room_type_id == room_type_id:
                return room
        return None

    def bracket(self, bracket_id: str) -> Optional[AgeBracket]:
        for bracket in self.age_brackets:
            if bracket.bracket_id == bracket_id:
                return bracket
        return None

    @property
    def ordered_brackets(self) -> list[AgeBracket]:
        return sorted(self.age_brackets, key=lambda item: item.order)

    @property
    def ordered_sub_periods(self) -> list[SubPeriod]:
        return sorted(self.sub_periods, key=lambda item: (item.order, item.start_date))


@dataclass(frozen=True)
class ParticipantAllocation:
    age_bracket_id: str
    count: int


@dataclass(frozen=True)
class RoomSelection:
    room_type_id: str
    quantity: int


@dataclass(frozen=True)
class RoomInstance:
    room_type_id: str
    instance_index: int
    capacity: int
    name: str = ""

    @property
    def key(self) -> str:
        return instance_key(self.room_type_id, self.instance_index)


@dataclass(frozen=True)
class RoomAssignment:
    instance: RoomInstance
    occupants_by_bracket: dict[str, int]

    @property
    def occupancy(self) -> int:
        return sum(self.occupants_by_bracket.values())


@dataclass(frozen=True)
class QuoteConfiguration:
    """Canonical state of one quote session.

    Only counts and quantities are stored. Instances, capacities and prices
    are always derived against a snapshot, so re-pointing the configuration
    at a refreshed snapshot never leaves stale aggregates behind.
    Assignments are keyed by ``instance_key`` and hold bracket -> count.
    """

    stay_id: str
    step: QuoteStep = QuoteStep.PARTICIPANTS
    allocations: dict[str, int] = field(default_factory=dict)
    selections: dict[str, int] = field(default_factory=dict)
    assignments: dict[str, dict[str, int]] = field(default_factory=dict)
    selected_sub_period_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class StepValidation:
    is_valid: bool
    errors: list[str]


@dataclass(frozen=True)
class PriceLine:
    instance_key: str
    room_type_id: str
    instance_index: int
    age_bracket_id: str
    count: int
    unit_price: Optional[float]
    subtotal: float


@dataclass(frozen=True)
class PriceQuote:
    total: float
    has_undefined_pricing: bool
    lines: list[PriceLine] = field(default_factory=list)


@dataclass(frozen=True)
class ContactDetails:
    first_name: str
    last_name: str
    email: str
    phone: str
    check_in: str
    check_out: str
    special_requests: Optional[str] = None


@dataclass(frozen=True)
class OccupantCount:
    age_range_id: str
    count: int


@dataclass(frozen=True)
class SubmittedRoom:
    room_id: str
    quantity: int
    occupants: list[OccupantCount]


@dataclass(frozen=True)
class QuoteSubmission:
    first_name: str
    last_name: str
    email: str
    phone: str
    check_in: str
    check_out: str
    stay_id: str
    rooms: list[SubmittedRoom]
    participants: list[OccupantCount]
    special_requests: Optional[str] = None
    selected_sub_period_ids: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, object]:
        return {
            "firstName": self.first_name,
            "lastName": self.last_name,
            "email": self.email,
            "phone": self.phone,
            "checkIn": self.check_in,
            "checkOut": self.check_out,
            "specialRequests": self.special_requests,
            "stayId": self.stay_id,
            "rooms": [
                {
                    "roomId": room.room_id,
                    "quantity": room.quantity,
                    "occupants": [
                        {"ageRangeId": item.age_range_id, "count": item.count}
                        for item in room.occupants
                    ],
                }
                for room in self.rooms
            ],
            "participants": [
                {"ageRangeId": item.age_range_id, "count": item.count}
                for item in self.participants
            ],
            "selectedSubPeriods": list(self.selected_sub_period_ids),
        }


def instance_key(room_type_id: str, instance_index: int) -> str:
    return f"{room_type_id}:{instance_index}"


def parse_instance_key(key: str) -> tuple[str, int]:
    room_type_id, _, index = key.rpartition(":")
    if not room_type_id or not index.isdigit():
        raise ValueError(f"Malformed room instance key: {key!r}")
    return room_type_id, int(index)
