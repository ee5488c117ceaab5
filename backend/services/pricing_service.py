"""Exact quote pricing over room assignments."""

from __future__ import annotations

from dataclasses import replace
from typing import Iterable, Optional

from backend.domain.constraints import QuoteValidationError, UnknownReferenceError
from backend.domain.models import PriceLine, PriceQuote, QuoteConfiguration, StaySnapshot
from backend.services.assignment_service import room_assignments
from backend.services.tariff_service import TariffResolver
from backend.utils.logger import get_logger


logger = get_logger(__name__)


def active_sub_period_ids(config: QuoteConfiguration, snapshot: StaySnapshot) -> list[str]:
    """Sub-periods the quote is priced over, in stay order.

    No explicit selection means the whole stay, i.e. every sub-period.
    """
    ordered = [item.sub_period_id for item in snapshot.ordered_sub_periods]
    if not config.selected_sub_period_ids or not snapshot.allow_partial_booking:
        return ordered
    selected = set(config.selected_sub_period_ids)
    return [sub_period_id for sub_period_id in ordered if sub_period_id in selected]


def select_sub_periods(
    config: QuoteConfiguration,
    snapshot: StaySnapshot,
    sub_period_ids: Iterable[str],
) -> QuoteConfiguration:
    requested = list(dict.fromkeys(sub_period_ids))
    known = {item.sub_period_id for item in snapshot.sub_periods}
    for sub_period_id in requested:
        if sub_period_id not in known:
            raise UnknownReferenceError(f"Unknown sub-period {sub_period_id}")
    if requested and not snapshot.allow_partial_booking:
        raise QuoteValidationError("this stay must be booked as a whole")
    return replace(config, selected_sub_period_ids=tuple(requested))


def total_price(
    config: QuoteConfiguration,
    snapshot: StaySnapshot,
    resolver: Optional[TariffResolver] = None,
) -> PriceQuote:
    """Sum occupant count x resolved stay price over every assignment.

    Tariffs are per full stay, so no night multiplier applies. An occupant
    without a configured tariff adds nothing to the total and flags the
    quote with ``has_undefined_pricing``.
    """
    resolver = resolver or TariffResolver.from_snapshot(snapshot)
    periods = active_sub_period_ids(config, snapshot)
    brackets_in_order = [bracket.bracket_id for bracket in snapshot.ordered_brackets]

    lines: list[PriceLine] = []
    total = 0.0
    has_undefined = False
    for assignment in room_assignments(config, snapshot):
        instance = assignment.instance
        for bracket_id in brackets_in_order:
            count = assignment.occupants_by_bracket.get(bracket_id, 0)
            if count <= 0:
                continue
            unit_price = resolver.stay_price(instance.room_type_id, bracket_id, periods)
            if unit_price is None:
                has_undefined = True
                subtotal = 0.0
            else:
                subtotal = unit_price * count
            total += subtotal
            lines.append(
                PriceLine(
                    instance_key=instance.key,
                    room_type_id=instance.room_type_id,
                    instance_index=instance.instance_index,
                    age_bracket_id=bracket_id,
                    count=count,
                    unit_price=unit_price,
                    subtotal=subtotal,
                )
            )

    if has_undefined:
        logger.debug(
            "Quote priced with gaps | stay_id=%s | total=%.2f",
            config.stay_id,
            total,
        )
    return PriceQuote(total=total, has_undefined_pricing=has_undefined, lines=lines)
