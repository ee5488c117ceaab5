"""Tariff resolution for (room type, age bracket, optional sub-period) lookups."""

from __future__ import annotations

from typing import Iterable, Mapping, Optional, Sequence

from backend.domain.constraints import SnapshotValidationError, UnknownReferenceError
from backend.domain.models import (
    GLOBAL_PRICING_KEY,
    PriceQuote,
    RoomTariff,
    RoomType,
    StaySnapshot,
)
from backend.utils.logger import get_logger


logger = get_logger(__name__)

TariffKey = tuple[str, str, Optional[str]]


class TariffResolver:
    """Indexes the tariff table of a snapshot and answers price lookups.

    A resolved price of ``None`` means "not configured", which callers must
    keep distinct from a configured price of ``0`` (free).
    """

    def __init__(
        self,
        rooms: Iterable[RoomType],
        bracket_ids: Optional[Iterable[str]] = None,
    ) -> None:
        self._prices: dict[TariffKey, float] = {}
        self._room_ids: set[str] = set()
        self._bracket_ids = set(bracket_ids) if bracket_ids is not None else None
        for room in rooms:
            self._room_ids.add(room.room_type_id)
            for tariff in room.tariffs:
                key = (room.room_type_id, tariff.age_bracket_id, tariff.sub_period_id)
                if key in self._prices:
                    raise SnapshotValidationError(
                        "duplicate tariff for room_type=%s bracket=%s sub_period=%s" % key
                    )
                self._prices[key] = float(tariff.price)

    @classmethod
    def from_snapshot(cls, snapshot: StaySnapshot) -> "TariffResolver":
        return cls(
            snapshot.rooms,
            bracket_ids=[bracket.bracket_id for bracket in snapshot.age_brackets],
        )

    def _check_refs(self, room_type_id: str, bracket_id: str) -> None:
        if room_type_id not in self._room_ids:
            raise UnknownReferenceError(f"Unknown room type {room_type_id}")
        if self._bracket_ids is not None and bracket_id not in self._bracket_ids:
            raise UnknownReferenceError(f"Unknown age bracket {bracket_id}")

    def price(
        self,
        room_type_id: str,
        bracket_id: str,
        sub_period_id: Optional[str] = None,
    ) -> Optional[float]:
        """Exact tariff first, then the global tariff when a sub-period was asked."""
        self._check_refs(room_type_id, bracket_id)
        exact = self._prices.get((room_type_id, bracket_id, sub_period_id))
        if exact is not None:
            return exact
        if sub_period_id is not None:
            return self._prices.get((room_type_id, bracket_id, None))
        return None

    def stay_price(
        self,
        room_type_id: str,
        bracket_id: str,
        sub_period_ids: Sequence[str],
    ) -> Optional[float]:
        """Per-occupant price over the active sub-periods.

        Without sub-periods this is the global tariff. With sub-periods every
        period contributes its own resolved price; a single unresolved period
        makes the whole price unresolved.
        """
        if not sub_period_ids:
            return self.price(room_type_id, bracket_id, None)
        total = 0.0
        for sub_period_id in sub_period_ids:
            resolved = self.price(room_type_id, bracket_id, sub_period_id)
            if resolved is None:
                return None
            total += resolved
        return total

    def has_variable_pricing(
        self,
        room_type_id: str,
        bracket_id: str,
        sub_period_ids: Sequence[str],
    ) -> bool:
        # An unresolved period counts as its own distinct value.
        resolved = {
            self.price(room_type_id, bracket_id, sub_period_id)
            for sub_period_id in sub_period_ids
        }
        return len(resolved) > 1

    def average_price_across_room_types(
        self,
        bracket_id: str,
        room_type_ids: Sequence[str],
        participant_count: int,
    ) -> Optional[float]:
        """Approximate bracket cost when no room assignment exists.

        Mean of each room type's global tariff for the bracket, multiplied by
        the participant count. Room types without a global tariff are skipped.
        Only meant for quote lists and exports; the assignment-exact total in
        ``pricing_service.total_price`` wins whenever assignments are known.
        """
        prices = []
        for room_type_id in room_type_ids:
            resolved = self.price(room_type_id, bracket_id, None)
            if resolved is not None:
                prices.append(resolved)
        if not prices:
            return None
        return sum(prices) / len(prices) * max(0, participant_count)

    def estimate_total_from_participants(
        self,
        allocations: Mapping[str, int],
        room_type_ids: Sequence[str],
    ) -> PriceQuote:
        """Participant-only estimate built on ``average_price_across_room_types``."""
        total = 0.0
        has_undefined = False
        for bracket_id, count in allocations.items():
            if count <= 0:
                continue
            estimate = self.average_price_across_room_types(bracket_id, room_type_ids, count)
            if estimate is None:
                has_undefined = True
                continue
            total += estimate
        return PriceQuote(total=total, has_undefined_pricing=has_undefined)

    def pricing_by_sub_period(
        self,
        room_type_id: str,
        sub_period_ids: Sequence[str] = (),
    ) -> dict[str, dict[str, float]]:
        """Flatten a room's tariffs into ``{"global" | sub_period_id: {bracket: price}}``."""
        if room_type_id not in self._room_ids:
            raise UnknownReferenceError(f"Unknown room type {room_type_id}")
        view: dict[str, dict[str, float]] = {GLOBAL_PRICING_KEY: {}}
        for sub_period_id in sub_period_ids:
            view[sub_period_id] = {}
        for (room_id, bracket_id, sub_period_id), price in sorted(
            self._prices.items(), key=lambda item: (item[0][1], item[0][2] or "")
        ):
            if room_id != room_type_id:
                continue
            key = sub_period_id or GLOBAL_PRICING_KEY
            view.setdefault(key, {})[bracket_id] = price
        return view


def tariffs_from_pricing_view(
    room_type_id: str,
    view: Mapping[str, Mapping[str, float]],
) -> list[RoomTariff]:
    """Turn an edited pricing-by-period view back into tariff rows."""
    tariffs: list[RoomTariff] = []
    for period_key, prices in view.items():
        sub_period_id = None if period_key == GLOBAL_PRICING_KEY else period_key
        for bracket_id, price in prices.items():
            if price is None:
                continue
            if float(price) < 0:
                raise SnapshotValidationError("tariff price cannot be negative")
            tariffs.append(
                RoomTariff(
                    room_type_id=room_type_id,
                    age_bracket_id=bracket_id,
                    sub_period_id=sub_period_id,
                    price=float(price),
                )
            )
    logger.debug(
        "Pricing view converted | room_type_id=%s | tariffs=%s",
        room_type_id,
        len(tariffs),
    )
    return tariffs
