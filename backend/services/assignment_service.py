"""Placement of participants into concrete room instances."""

from __future__ import annotations

from dataclasses import replace

from backend.domain.constraints import UnknownReferenceError
from backend.domain.models import (
    QuoteConfiguration,
    RoomAssignment,
    RoomInstance,
    StaySnapshot,
    parse_instance_key,
)
from backend.services.allocation_service import remaining
from backend.services.inventory_service import room_instances
from backend.utils.logger import get_logger


logger = get_logger(__name__)


def require_instance(
    config: QuoteConfiguration,
    snapshot: StaySnapshot,
    instance_key: str,
) -> RoomInstance:
    try:
        room_type_id, index = parse_instance_key(instance_key)
    except ValueError as exc:
        raise UnknownReferenceError(str(exc)) from exc
    room = snapshot.room(room_type_id)
    if room is None or index >= config.selections.get(room_type_id, 0):
        raise UnknownReferenceError(f"Unknown room instance {instance_key}")
    return RoomInstance(
        room_type_id=room_type_id,
        instance_index=index,
        capacity=room.capacity,
        name=room.name,
    )


def occupancy(config: QuoteConfiguration, instance_key: str) -> int:
    return sum(config.assignments.get(instance_key, {}).values())


def is_over_capacity(
    config: QuoteConfiguration,
    snapshot: StaySnapshot,
    instance_key: str,
) -> bool:
    instance = require_instance(config, snapshot, instance_key)
    return occupancy(config, instance_key) > instance.capacity


def total_assigned(config: QuoteConfiguration) -> int:
    return sum(sum(occupants.values()) for occupants in config.assignments.values())


def room_assignments(
    config: QuoteConfiguration,
    snapshot: StaySnapshot,
) -> list[RoomAssignment]:
    """One assignment per selected instance, empty rooms included."""
    return [
        RoomAssignment(
            instance=instance,
            occupants_by_bracket=dict(config.assignments.get(instance.key, {})),
        )
        for instance in room_instances(config, snapshot)
    ]


def assign(
    config: QuoteConfiguration,
    snapshot: StaySnapshot,
    instance_key: str,
    bracket_id: str,
    delta: int,
) -> QuoteConfiguration:
    """Move ``delta`` participants of a bracket into (or out of) an instance.

    The new count is clamped to what is still unassigned for the bracket and
    to the free capacity of the instance. Out-of-range deltas never raise.
    """
    instance = require_instance(config, snapshot, instance_key)
    if snapshot.bracket(bracket_id) is None:
        raise UnknownReferenceError(f"Unknown age bracket {bracket_id}")

    occupants = dict(config.assignments.get(instance_key, {}))
    current = occupants.get(bracket_id, 0)
    proposed = current + int(delta)
    max_by_allocation = current + max(0, remaining(config, bracket_id))
    max_by_capacity = max(0, instance.capacity - (sum(occupants.values()) - current))
    new_count = max(0, min(proposed, max_by_allocation, max_by_capacity))

    if new_count != proposed:
        logger.debug(
            "Assignment clamped | instance=%s | bracket_id=%s | proposed=%s | applied=%s",
            instance_key,
            bracket_id,
            proposed,
            new_count,
        )
    if new_count == current:
        return config

    if new_count == 0:
        occupants.pop(bracket_id, None)
    else:
        occupants[bracket_id] = new_count

    assignments = dict(config.assignments)
    if occupants:
        assignments[instance_key] = occupants
    else:
        assignments.pop(instance_key, None)
    return replace(config, assignments=assignments)


def set_occupants(
    config: QuoteConfiguration,
    snapshot: StaySnapshot,
    instance_key: str,
    bracket_id: str,
    count: int,
) -> QuoteConfiguration:
    """Absolute form of ``assign``, subject to the same clamping."""
    current = config.assignments.get(instance_key, {}).get(bracket_id, 0)
    return assign(config, snapshot, instance_key, bracket_id, int(count) - current)
