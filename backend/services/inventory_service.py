"""Room-type quantities and the concrete room instances derived from them."""

from __future__ import annotations

from dataclasses import replace
from typing import Optional

from backend.domain.constraints import QuoteEngineConfig, UnknownReferenceError
from backend.domain.models import (
    QuoteConfiguration,
    RoomInstance,
    RoomSelection,
    RoomType,
    StaySnapshot,
    parse_instance_key,
)
from backend.services.allocation_service import total_participants
from backend.utils.logger import get_logger


logger = get_logger(__name__)

DEFAULT_ENGINE_CONFIG = QuoteEngineConfig(capacity_safety_factor=None, max_room_quantity=10)


def require_room(snapshot: StaySnapshot, room_type_id: str) -> RoomType:
    room = snapshot.room(room_type_id)
    if room is None:
        raise UnknownReferenceError(f"Unknown room type {room_type_id}")
    return room


def room_selections(config: QuoteConfiguration) -> list[RoomSelection]:
    return [
        RoomSelection(room_type_id=room_type_id, quantity=quantity)
        for room_type_id, quantity in config.selections.items()
    ]


def room_instances(config: QuoteConfiguration, snapshot: StaySnapshot) -> list[RoomInstance]:
    instances: list[RoomInstance] = []
    for room_type_id, quantity in config.selections.items():
        room = require_room(snapshot, room_type_id)
        instances.extend(
            RoomInstance(
                room_type_id=room_type_id,
                instance_index=index,
                capacity=room.capacity,
                name=room.name,
            )
            for index in range(quantity)
        )
    return instances


def total_capacity(config: QuoteConfiguration, snapshot: StaySnapshot) -> int:
    return sum(
        require_room(snapshot, room_type_id).capacity * quantity
        for room_type_id, quantity in config.selections.items()
    )


def capacity_limit(
    config: QuoteConfiguration,
    engine_config: QuoteEngineConfig,
) -> Optional[float]:
    """Largest total capacity the visitor may select, or None when unbounded."""
    if engine_config.capacity_safety_factor is None:
        return None
    return total_participants(config) * engine_config.capacity_safety_factor


def max_quantity(
    config: QuoteConfiguration,
    snapshot: StaySnapshot,
    room_type_id: str,
    engine_config: QuoteEngineConfig = DEFAULT_ENGINE_CONFIG,
) -> int:
    room = require_room(snapshot, room_type_id)
    current = config.selections.get(room_type_id, 0)
    limit = capacity_limit(config, engine_config)
    if limit is None:
        return engine_config.max_room_quantity

    other_capacity = total_capacity(config, snapshot) - current * room.capacity
    by_limit = int((limit - other_capacity) // room.capacity) if limit > other_capacity else 0
    # The safety factor only caps increases; an existing quantity stays reachable.
    return min(engine_config.max_room_quantity, max(current, by_limit))


def can_add_room(
    config: QuoteConfiguration,
    snapshot: StaySnapshot,
    room_type_id: str,
    engine_config: QuoteEngineConfig = DEFAULT_ENGINE_CONFIG,
) -> bool:
    current = config.selections.get(room_type_id, 0)
    return current < max_quantity(config, snapshot, room_type_id, engine_config)


def set_quantity(
    config: QuoteConfiguration,
    snapshot: StaySnapshot,
    room_type_id: str,
    quantity: int,
    engine_config: QuoteEngineConfig = DEFAULT_ENGINE_CONFIG,
) -> QuoteConfiguration:
    """Change how many instances of a room type are selected.

    Instances are indexed ``0..quantity-1``: growing appends new indices and
    shrinking drops the highest ones. Assignments of dropped instances are
    deleted and their occupants go back to the remaining pool.
    """
    require_room(snapshot, room_type_id)
    current = config.selections.get(room_type_id, 0)
    requested = max(0, int(quantity))
    if requested > current:
        requested = min(requested, max_quantity(config, snapshot, room_type_id, engine_config))
    requested = min(requested, engine_config.max_room_quantity)

    if requested != int(quantity):
        logger.debug(
            "Room quantity clamped | room_type_id=%s | requested=%s | applied=%s",
            room_type_id,
            quantity,
            requested,
        )

    selections = dict(config.selections)
    if requested == 0:
        selections.pop(room_type_id, None)
    else:
        selections[room_type_id] = requested

    assignments: dict[str, dict[str, int]] = {}
    released = 0
    for key, occupants in config.assignments.items():
        assigned_room_id, index = parse_instance_key(key)
        if assigned_room_id == room_type_id and index >= requested:
            released += sum(occupants.values())
            continue
        assignments[key] = occupants
    if released:
        logger.info(
            "Room instances removed with occupants | room_type_id=%s | released=%s",
            room_type_id,
            released,
        )
    return replace(config, selections=selections, assignments=assignments)
