"""Participant headcount per age bracket."""

from __future__ import annotations

from dataclasses import replace

from backend.domain.constraints import UnknownReferenceError
from backend.domain.models import (
    ParticipantAllocation,
    QuoteConfiguration,
    StaySnapshot,
    parse_instance_key,
)
from backend.utils.logger import get_logger


logger = get_logger(__name__)


def _require_bracket(snapshot: StaySnapshot, bracket_id: str) -> None:
    if snapshot.bracket(bracket_id) is None:
        raise UnknownReferenceError(f"Unknown age bracket {bracket_id}")


def ordered_assignment_keys(config: QuoteConfiguration) -> list[str]:
    """Assignment keys in selection order, then by instance index."""
    room_positions = {room_id: position for position, room_id in enumerate(config.selections)}

    def sort_key(key: str) -> tuple[int, int]:
        room_type_id, index = parse_instance_key(key)
        return room_positions.get(room_type_id, len(room_positions)), index

    return sorted(config.assignments, key=sort_key)


def total_participants(config: QuoteConfiguration) -> int:
    return sum(config.allocations.values())


def allocation(config: QuoteConfiguration, bracket_id: str) -> int:
    return config.allocations.get(bracket_id, 0)


def assigned_count(config: QuoteConfiguration, bracket_id: str) -> int:
    return sum(
        occupants.get(bracket_id, 0) for occupants in config.assignments.values()
    )


def remaining(config: QuoteConfiguration, bracket_id: str) -> int:
    """Participants of the bracket not yet placed in a room instance."""
    return allocation(config, bracket_id) - assigned_count(config, bracket_id)


def _trim_bracket(
    assignments: dict[str, dict[str, int]],
    ordered_keys: list[str],
    bracket_id: str,
    surplus: int,
) -> dict[str, dict[str, int]]:
    trimmed = {key: dict(occupants) for key, occupants in assignments.items()}
    for key in reversed(ordered_keys):
        if surplus <= 0:
            break
        current = trimmed[key].get(bracket_id, 0)
        if current <= 0:
            continue
        removed = min(current, surplus)
        trimmed[key][bracket_id] = current - removed
        if trimmed[key][bracket_id] == 0:
            del trimmed[key][bracket_id]
        if not trimmed[key]:
            del trimmed[key]
        surplus -= removed
    return trimmed


def set_count(
    config: QuoteConfiguration,
    snapshot: StaySnapshot,
    bracket_id: str,
    count: int,
) -> QuoteConfiguration:
    """Set the headcount of one bracket; negative input clamps to zero.

    Lowering a count below what is already placed removes the surplus
    occupants from the highest-indexed instances first.
    """
    _require_bracket(snapshot, bracket_id)
    new_count = max(0, int(count))

    allocations = dict(config.allocations)
    if new_count == 0:
        allocations.pop(bracket_id, None)
    else:
        allocations[bracket_id] = new_count

    assignments = config.assignments
    surplus = assigned_count(config, bracket_id) - new_count
    if surplus > 0:
        assignments = _trim_bracket(
            config.assignments,
            ordered_assignment_keys(config),
            bracket_id,
            surplus,
        )
        logger.debug(
            "Assignments reconciled after count change | bracket_id=%s | removed=%s",
            bracket_id,
            surplus,
        )
    return replace(config, allocations=allocations, assignments=assignments)


def participant_allocations(
    config: QuoteConfiguration,
    snapshot: StaySnapshot,
) -> list[ParticipantAllocation]:
    """All brackets of the stay in display order, including zero counts."""
    return [
        ParticipantAllocation(
            age_bracket_id=bracket.bracket_id,
            count=allocation(config, bracket.bracket_id),
        )
        for bracket in snapshot.ordered_brackets
    ]
