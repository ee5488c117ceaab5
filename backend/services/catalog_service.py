"""Stay catalog edits: pricing-by-period view and sub-period ordering."""

from __future__ import annotations

from dataclasses import replace
from typing import Mapping, Optional

from backend.domain.constraints import (
    SnapshotValidationError,
    UnknownReferenceError,
    validate_snapshot,
)
from backend.domain.models import GLOBAL_PRICING_KEY, StaySnapshot, SubPeriod
from backend.repository.data_repository import DataRepository
from backend.services.quote_service import (
    QuoteSessionService,
    StayNotFoundError,
    reorder_sub_periods,
)
from backend.services.tariff_service import TariffResolver, tariffs_from_pricing_view
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class CatalogService:
    """Catalog edits for one stay. Open quote sessions of the stay are rebased after each write."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
        quote_service: Optional[QuoteSessionService] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)
        self._quote_service = quote_service or QuoteSessionService(
            repository=self._repository,
            settings=self._settings,
        )

    def _snapshot(self, stay_id: str) -> StaySnapshot:
        snapshot = self._repository.load_stay_snapshot(stay_id)
        if snapshot is None:
            raise StayNotFoundError(f"Stay {stay_id} not found")
        return snapshot

    def pricing_view(self, stay_id: str, room_type_id: str) -> dict[str, dict[str, float]]:
        snapshot = self._snapshot(stay_id)
        resolver = TariffResolver.from_snapshot(snapshot)
        return resolver.pricing_by_sub_period(
            room_type_id,
            [item.sub_period_id for item in snapshot.ordered_sub_periods],
        )

    def update_pricing(
        self,
        stay_id: str,
        room_type_id: str,
        view: Mapping[str, Mapping[str, Optional[float]]],
    ) -> dict[str, dict[str, float]]:
        """Replace a room's tariffs with the content of an edited view."""
        snapshot = self._snapshot(stay_id)
        room = snapshot.room(room_type_id)
        if room is None:
            raise UnknownReferenceError(f"Unknown room type {room_type_id}")

        known_periods = {item.sub_period_id for item in snapshot.sub_periods}
        for period_key in view:
            if period_key != GLOBAL_PRICING_KEY and period_key not in known_periods:
                raise UnknownReferenceError(f"Unknown sub-period {period_key}")

        tariffs = tariffs_from_pricing_view(room_type_id, view)
        candidate = replace(
            snapshot,
            rooms=tuple(
                replace(item, tariffs=tuple(tariffs)) if item.room_type_id == room_type_id else item
                for item in snapshot.rooms
            ),
        )
        try:
            validate_snapshot(candidate)
        except SnapshotValidationError:
            logger.warning("Pricing update rejected | stay_id=%s | room_type_id=%s", stay_id, room_type_id)
            raise
        self._repository.replace_room_tariffs(stay_id, room_type_id, tariffs)
        self._quote_service.refresh_stay(stay_id)
        return self.pricing_view(stay_id, room_type_id)

    def reorder_sub_periods(self, stay_id: str, ordered_ids: list[str]) -> list[SubPeriod]:
        snapshot = self._snapshot(stay_id)
        reordered = reorder_sub_periods(snapshot.sub_periods, ordered_ids)
        self._repository.save_sub_period_order(stay_id, reordered)
        self._quote_service.refresh_stay(stay_id)
        logger.info("Sub-periods reordered | stay_id=%s | order=%s", stay_id, ",".join(ordered_ids))
        return reordered
