"""Quote configuration state machine and per-visitor session orchestration."""

from __future__ import annotations

import time
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from threading import RLock
from typing import Any, Callable, Iterable, Optional
from uuid import uuid4

from backend.domain.constraints import (
    QuoteEngineConfig,
    QuoteValidationError,
    validate_contact,
    validate_engine_config,
    validate_stay_dates,
)
from backend.domain.models import (
    STEP_ORDER,
    ContactDetails,
    OccupantCount,
    PriceQuote,
    QuoteConfiguration,
    QuoteStep,
    QuoteSubmission,
    StaySnapshot,
    StepValidation,
    SubmittedRoom,
    SubPeriod,
    instance_key,
    parse_instance_key,
)
from backend.repository.data_repository import DataRepository
from backend.services import allocation_service, assignment_service, inventory_service
from backend.services.allocation_service import ordered_assignment_keys, total_participants
from backend.services.assignment_service import occupancy, total_assigned
from backend.services.inventory_service import room_instances, total_capacity
from backend.services.pricing_service import active_sub_period_ids, select_sub_periods, total_price
from backend.services.tariff_service import TariffResolver
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class StepValidationError(Exception):
    """Raised when forward navigation is attempted while a guard fails."""

    def __init__(self, step: QuoteStep, errors: list[str]) -> None:
        super().__init__("; ".join(errors))
        self.step = step
        self.errors = errors


class StayNotFoundError(LookupError):
    """Raised when a stay id has no snapshot in the repository."""


class SessionNotFoundError(LookupError):
    """Raised when a quote session id is unknown or already closed."""


def _plural(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def validate_step(
    config: QuoteConfiguration,
    snapshot: StaySnapshot,
    step: QuoteStep,
) -> StepValidation:
    """Evaluate the forward guard of ``step`` and list every unmet condition."""
    errors: list[str] = []
    participants = total_participants(config)

    if step == QuoteStep.PARTICIPANTS:
        if participants == 0:
            errors.append("Select at least one participant")

    elif step == QuoteStep.ROOMS:
        if not config.selections:
            errors.append("Select at least one room")
        capacity = total_capacity(config, snapshot)
        if capacity < participants:
            errors.append(
                f"Total capacity ({capacity}) is insufficient for "
                f"{_plural(participants, 'participant')}"
            )

    elif step == QuoteStep.ASSIGNMENT:
        assigned = total_assigned(config)
        if assigned != participants:
            unassigned = participants - assigned
            errors.append(f"{_plural(unassigned, 'participant')} unassigned")
        for instance in room_instances(config, snapshot):
            used = occupancy(config, instance.key)
            if used > instance.capacity:
                errors.append(
                    f"{instance.name or instance.room_type_id} #{instance.instance_index + 1}: "
                    f"capacity exceeded ({used}/{instance.capacity})"
                )

    return StepValidation(is_valid=not errors, errors=errors)


def go_to(
    config: QuoteConfiguration,
    snapshot: StaySnapshot,
    step: QuoteStep,
) -> QuoteConfiguration:
    """Move to ``step``. Backward is always allowed and keeps later state."""
    target_position = STEP_ORDER.index(step)
    current_position = STEP_ORDER.index(config.step)
    if target_position <= current_position:
        return replace(config, step=step)

    for guarded_step in STEP_ORDER[:target_position]:
        validation = validate_step(config, snapshot, guarded_step)
        if not validation.is_valid:
            raise StepValidationError(guarded_step, validation.errors)
    return replace(config, step=step)


def go_next(config: QuoteConfiguration, snapshot: StaySnapshot) -> QuoteConfiguration:
    position = STEP_ORDER.index(config.step)
    if position == len(STEP_ORDER) - 1:
        validation = validate_step(config, snapshot, config.step)
        if not validation.is_valid:
            raise StepValidationError(config.step, validation.errors)
        return config
    return go_to(config, snapshot, STEP_ORDER[position + 1])


def go_previous(config: QuoteConfiguration) -> QuoteConfiguration:
    position = STEP_ORDER.index(config.step)
    return replace(config, step=STEP_ORDER[max(0, position - 1)])


def can_go_to(config: QuoteConfiguration, snapshot: StaySnapshot, step: QuoteStep) -> bool:
    try:
        go_to(config, snapshot, step)
    except StepValidationError:
        return False
    return True


def rebase(config: QuoteConfiguration, snapshot: StaySnapshot) -> QuoteConfiguration:
    """Re-point a configuration at a refreshed snapshot of the same stay.

    Ids missing from the new snapshot are dropped and every placement is
    replayed through ``assign`` so capacity and allocation clamps reflect
    the new catalog.
    """
    if snapshot.stay_id != config.stay_id:
        raise QuoteValidationError("snapshot belongs to another stay")

    allocations = {
        bracket_id: count
        for bracket_id, count in config.allocations.items()
        if snapshot.bracket(bracket_id) is not None and count > 0
    }
    selections = {
        room_type_id: quantity
        for room_type_id, quantity in config.selections.items()
        if snapshot.room(room_type_id) is not None and quantity > 0
    }
    known_periods = {item.sub_period_id for item in snapshot.sub_periods}
    selected_periods: tuple[str, ...] = ()
    if snapshot.allow_partial_booking:
        selected_periods = tuple(
            sub_period_id
            for sub_period_id in config.selected_sub_period_ids
            if sub_period_id in known_periods
        )

    rebased = replace(
        config,
        allocations=allocations,
        selections=selections,
        assignments={},
        selected_sub_period_ids=selected_periods,
    )
    for key in ordered_assignment_keys(config):
        room_type_id, index = parse_instance_key(key)
        if index >= selections.get(room_type_id, 0):
            continue
        for bracket_id, count in config.assignments[key].items():
            if bracket_id in allocations:
                rebased = assignment_service.assign(rebased, snapshot, key, bracket_id, count)

    step = QuoteStep.PARTICIPANTS
    for candidate in STEP_ORDER:
        if can_go_to(replace(rebased, step=QuoteStep.PARTICIPANTS), snapshot, candidate):
            step = candidate
        if candidate == config.step:
            break
    return replace(rebased, step=step)


def build_submission(
    config: QuoteConfiguration,
    snapshot: StaySnapshot,
    contact: ContactDetails,
) -> QuoteSubmission:
    validation = validate_step(config, snapshot, QuoteStep.ASSIGNMENT)
    if not validation.is_valid:
        raise QuoteValidationError("; ".join(validation.errors))
    validate_contact(contact)
    validate_stay_dates(snapshot, contact.check_in, contact.check_out)

    brackets_in_order = [bracket.bracket_id for bracket in snapshot.ordered_brackets]
    rooms: list[SubmittedRoom] = []
    for room_type_id, quantity in config.selections.items():
        per_bracket: dict[str, int] = {}
        for index in range(quantity):
            occupants = config.assignments.get(instance_key(room_type_id, index), {})
            for bracket_id, count in occupants.items():
                per_bracket[bracket_id] = per_bracket.get(bracket_id, 0) + count
        rooms.append(
            SubmittedRoom(
                room_id=room_type_id,
                quantity=quantity,
                occupants=[
                    OccupantCount(age_range_id=bracket_id, count=per_bracket[bracket_id])
                    for bracket_id in brackets_in_order
                    if per_bracket.get(bracket_id, 0) > 0
                ],
            )
        )

    participants = [
        OccupantCount(age_range_id=bracket_id, count=config.allocations[bracket_id])
        for bracket_id in brackets_in_order
        if config.allocations.get(bracket_id, 0) > 0
    ]
    return QuoteSubmission(
        first_name=contact.first_name.strip(),
        last_name=contact.last_name.strip(),
        email=contact.email.strip(),
        phone=contact.phone.strip(),
        check_in=contact.check_in,
        check_out=contact.check_out,
        stay_id=snapshot.stay_id,
        rooms=rooms,
        participants=participants,
        special_requests=contact.special_requests or None,
        selected_sub_period_ids=active_sub_period_ids(config, snapshot),
    )


def reorder_sub_periods(
    sub_periods: Iterable[SubPeriod],
    ordered_ids: list[str],
) -> list[SubPeriod]:
    """Return the sub-periods in the given order with ``order`` set to position."""
    by_id = {item.sub_period_id: item for item in sub_periods}
    if len(set(ordered_ids)) != len(ordered_ids):
        raise QuoteValidationError("sub-period ids must be unique")
    if set(ordered_ids) != set(by_id):
        raise QuoteValidationError("sub-period ids do not match the stay")
    return [replace(by_id[sub_period_id], order=position) for position, sub_period_id in enumerate(ordered_ids)]


@dataclass(frozen=True)
class QuoteSession:
    session_id: str
    snapshot: StaySnapshot
    configuration: QuoteConfiguration
    resolver: TariffResolver


class QuoteSessionService:
    """Keeps one configuration per visitor and applies engine operations to it.

    Sessions live in memory only. They are discarded on submission, on an
    explicit close, or once idle longer than ``quote_session_ttl_seconds``.
    """

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._engine_config = QuoteEngineConfig(
            capacity_safety_factor=self._settings.quote_capacity_safety_factor,
            max_room_quantity=self._settings.quote_max_room_quantity,
        )
        validate_engine_config(self._engine_config)
        self._clock = clock
        self._lock = RLock()
        self._sessions: dict[str, QuoteSession] = {}
        self._last_seen: dict[str, float] = {}

    def _load_snapshot(self, stay_id: str) -> StaySnapshot:
        snapshot = self._repository.load_stay_snapshot(stay_id)
        if snapshot is None:
            raise StayNotFoundError(f"Stay {stay_id} not found")
        return snapshot

    def _evict_expired(self) -> None:
        """Drop idle sessions. Caller holds the lock."""
        ttl = self._settings.quote_session_ttl_seconds
        if ttl is None:
            return
        cutoff = self._clock() - ttl
        expired = [session_id for session_id, seen in self._last_seen.items() if seen < cutoff]
        for session_id in expired:
            self._sessions.pop(session_id, None)
            self._last_seen.pop(session_id, None)
        if expired:
            logger.info("Idle quote sessions evicted | count=%s", len(expired))

    def _store(self, session: QuoteSession) -> None:
        self._sessions[session.session_id] = session
        self._last_seen[session.session_id] = self._clock()

    def _discard(self, session_id: str) -> Optional[QuoteSession]:
        self._last_seen.pop(session_id, None)
        return self._sessions.pop(session_id, None)

    @property
    def session_count(self) -> int:
        with self._lock:
            self._evict_expired()
            return len(self._sessions)

    def start_session(self, stay_id: str) -> QuoteSession:
        snapshot = self._load_snapshot(stay_id)
        session = QuoteSession(
            session_id=uuid4().hex,
            snapshot=snapshot,
            configuration=QuoteConfiguration(stay_id=stay_id),
            resolver=TariffResolver.from_snapshot(snapshot),
        )
        with self._lock:
            self._evict_expired()
            self._store(session)
        logger.info("Quote session started | session_id=%s | stay_id=%s", session.session_id, stay_id)
        return session

    def get_session(self, session_id: str) -> QuoteSession:
        with self._lock:
            self._evict_expired()
            session = self._sessions.get(session_id)
            if session is not None:
                self._last_seen[session_id] = self._clock()
        if session is None:
            raise SessionNotFoundError(f"Quote session {session_id} not found")
        return session

    def close_session(self, session_id: str) -> None:
        """Abandon a session without submitting it."""
        with self._lock:
            self._evict_expired()
            session = self._discard(session_id)
        if session is None:
            raise SessionNotFoundError(f"Quote session {session_id} not found")
        logger.info("Quote session closed | session_id=%s", session_id)

    def _mutate(
        self,
        session_id: str,
        operation: Callable[[QuoteConfiguration, StaySnapshot], QuoteConfiguration],
    ) -> QuoteSession:
        with self._lock:
            session = self.get_session(session_id)
            updated = replace(
                session,
                configuration=operation(session.configuration, session.snapshot),
            )
            self._store(updated)
        return updated

    def set_participant_count(self, session_id: str, bracket_id: str, count: int) -> QuoteSession:
        return self._mutate(
            session_id,
            lambda config, snapshot: allocation_service.set_count(config, snapshot, bracket_id, count),
        )

    def set_room_quantity(self, session_id: str, room_type_id: str, quantity: int) -> QuoteSession:
        return self._mutate(
            session_id,
            lambda config, snapshot: inventory_service.set_quantity(
                config, snapshot, room_type_id, quantity, self._engine_config
            ),
        )

    def assign_occupants(
        self,
        session_id: str,
        instance_key: str,
        bracket_id: str,
        delta: int,
    ) -> QuoteSession:
        return self._mutate(
            session_id,
            lambda config, snapshot: assignment_service.assign(
                config, snapshot, instance_key, bracket_id, delta
            ),
        )

    def select_sub_periods(self, session_id: str, sub_period_ids: list[str]) -> QuoteSession:
        return self._mutate(
            session_id,
            lambda config, snapshot: select_sub_periods(config, snapshot, sub_period_ids),
        )

    def navigate(self, session_id: str, step: QuoteStep) -> QuoteSession:
        return self._mutate(session_id, lambda config, snapshot: go_to(config, snapshot, step))

    def advance(self, session_id: str) -> QuoteSession:
        return self._mutate(session_id, go_next)

    def go_back(self, session_id: str) -> QuoteSession:
        return self._mutate(session_id, lambda config, snapshot: go_previous(config))

    def refresh_snapshot(self, session_id: str) -> QuoteSession:
        """Reload the stay catalog and rebase the session onto it."""
        with self._lock:
            session = self.get_session(session_id)
            snapshot = self._load_snapshot(session.snapshot.stay_id)
            updated = self._rebased(session, snapshot)
        logger.info("Quote session rebased | session_id=%s", session_id)
        return updated

    def refresh_stay(self, stay_id: str) -> int:
        """Rebase every open session of ``stay_id`` after a catalog edit."""
        snapshot = self._load_snapshot(stay_id)
        with self._lock:
            self._evict_expired()
            open_sessions = [
                session for session in self._sessions.values() if session.snapshot.stay_id == stay_id
            ]
            for session in open_sessions:
                self._rebased(session, snapshot)
        logger.info("Open quote sessions rebased | stay_id=%s | count=%s", stay_id, len(open_sessions))
        return len(open_sessions)

    def _rebased(self, session: QuoteSession, snapshot: StaySnapshot) -> QuoteSession:
        updated = QuoteSession(
            session_id=session.session_id,
            snapshot=snapshot,
            configuration=rebase(session.configuration, snapshot),
            resolver=TariffResolver.from_snapshot(snapshot),
        )
        self._sessions[session.session_id] = updated
        return updated

    def price(self, session_id: str) -> PriceQuote:
        session = self.get_session(session_id)
        return total_price(session.configuration, session.snapshot, session.resolver)

    def submit(self, session_id: str, contact: ContactDetails) -> dict[str, Any]:
        """Persist the session as a quote and close it.

        The session is taken out of the map before anything is stored, so a
        repeated submit of the same session finds nothing. It is put back when
        the submission is rejected or persistence fails.
        """
        with self._lock:
            session = self.get_session(session_id)
            self._discard(session_id)

        try:
            submission = build_submission(session.configuration, session.snapshot, contact)
            price = total_price(session.configuration, session.snapshot, session.resolver)
            status = "NEEDS_PRICING" if price.has_undefined_pricing else "PENDING"
            quote_number = self._next_quote_number()
            quote_id = self._repository.save_quote(
                submission=submission,
                quote_number=quote_number,
                status=status,
                total_price=price.total,
                has_undefined_pricing=price.has_undefined_pricing,
            )
        except Exception:
            with self._lock:
                self._store(session)
            raise

        if price.has_undefined_pricing:
            logger.warning(
                "Quote submitted with missing tariffs | quote_id=%s | stay_id=%s",
                quote_id,
                submission.stay_id,
            )
        logger.info(
            "Quote submitted | quote_id=%s | quote_number=%s | total=%.2f | status=%s",
            quote_id,
            quote_number,
            price.total,
            status,
        )
        return {
            "quote_id": quote_id,
            "quote_number": quote_number,
            "status": status,
            "total_price": price.total,
            "has_undefined_pricing": price.has_undefined_pricing,
            "submission": submission.to_dict(),
        }

    def _next_quote_number(self) -> str:
        year = datetime.now(timezone.utc).year
        suffix = str(time.time_ns() // 1_000_000)[-6:]
        return f"{self._settings.quote_number_prefix}-{year}-{suffix}"

    def describe(self, session: QuoteSession) -> dict[str, Any]:
        """Flatten a session into the payload the HTTP layer returns."""
        config = session.configuration
        snapshot = session.snapshot
        price = total_price(config, snapshot, session.resolver)

        participants = [
            {
                "age_bracket_id": bracket.bracket_id,
                "label": bracket.label,
                "count": allocation_service.allocation(config, bracket.bracket_id),
                "remaining": allocation_service.remaining(config, bracket.bracket_id),
            }
            for bracket in snapshot.ordered_brackets
        ]
        rooms = [
            {
                "room_type_id": room.room_type_id,
                "name": room.name,
                "capacity": room.capacity,
                "quantity": config.selections.get(room.room_type_id, 0),
                "can_add": inventory_service.can_add_room(
                    config, snapshot, room.room_type_id, self._engine_config
                ),
            }
            for room in snapshot.rooms
        ]
        instances = [
            {
                "instance_key": assignment.instance.key,
                "room_type_id": assignment.instance.room_type_id,
                "instance_index": assignment.instance.instance_index,
                "capacity": assignment.instance.capacity,
                "occupancy": assignment.occupancy,
                "occupants": dict(assignment.occupants_by_bracket),
            }
            for assignment in assignment_service.room_assignments(config, snapshot)
        ]
        guards = {
            step.value: validate_step(config, snapshot, step).errors for step in STEP_ORDER
        }
        return {
            "session_id": session.session_id,
            "stay_id": snapshot.stay_id,
            "step": config.step.value,
            "participants": participants,
            "rooms": rooms,
            "instances": instances,
            "active_sub_period_ids": active_sub_period_ids(config, snapshot),
            "total_participants": total_participants(config),
            "total_capacity": total_capacity(config, snapshot),
            "total_assigned": total_assigned(config),
            "total_price": price.total,
            "has_undefined_pricing": price.has_undefined_pricing,
            "guard_errors": guards,
        }
