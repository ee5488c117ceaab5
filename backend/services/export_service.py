"""Tabular export of submitted quotes."""

from __future__ import annotations

from typing import Optional

import pandas as pd

from backend.domain.models import StaySnapshot
from backend.repository.data_repository import DataRepository, QuoteRecord
from backend.services.tariff_service import TariffResolver
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class QuoteExportService:
    """Builds the quote list frame consumed by the CSV export endpoint.

    Quotes stored with room occupants carry their exact assignment-based
    total. Older quotes without occupants fall back to the participant-only
    estimate, flagged in the ``price_source`` column.
    """

    _COLUMNS = [
        "quote_number",
        "stay_id",
        "status",
        "first_name",
        "last_name",
        "email",
        "check_in",
        "check_out",
        "participants",
        "rooms",
        "sub_periods",
        "total_price",
        "price_source",
        "has_undefined_pricing",
        "created_at",
    ]

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    @property
    def filename(self) -> str:
        return self._settings.export_filename

    def build_frame(self, stay_id: Optional[str] = None) -> pd.DataFrame:
        records = self._repository.list_quotes(stay_id)
        snapshots: dict[str, Optional[StaySnapshot]] = {}
        rows = []
        for record in records:
            if record.stay_id not in snapshots:
                snapshots[record.stay_id] = self._repository.load_stay_snapshot(record.stay_id)
            rows.append(self._row(record, snapshots[record.stay_id]))

        frame = pd.DataFrame(rows, columns=self._COLUMNS)
        logger.info("Quote export built | rows=%s | stay_id=%s", len(frame), stay_id or "all")
        return frame

    def _row(self, record: QuoteRecord, snapshot: Optional[StaySnapshot]) -> dict[str, object]:
        total = record.total_price
        has_undefined = record.has_undefined_pricing
        source = "exact"
        if record.assigned_occupants == 0 and snapshot is not None:
            resolver = TariffResolver.from_snapshot(snapshot)
            known_rooms = [room_id for room_id in record.room_type_ids if snapshot.room(room_id)]
            known_brackets = {
                bracket_id: count
                for bracket_id, count in record.participants.items()
                if snapshot.bracket(bracket_id) is not None
            }
            estimate = resolver.estimate_total_from_participants(known_brackets, known_rooms)
            total = estimate.total
            has_undefined = estimate.has_undefined_pricing
            source = "estimate"

        return {
            "quote_number": record.quote_number,
            "stay_id": record.stay_id,
            "status": record.status,
            "first_name": record.first_name,
            "last_name": record.last_name,
            "email": record.email,
            "check_in": record.check_in,
            "check_out": record.check_out,
            "participants": sum(record.participants.values()),
            "rooms": ";".join(record.room_type_ids),
            "sub_periods": ";".join(record.sub_period_ids),
            "total_price": round(total, 2),
            "price_source": source,
            "has_undefined_pricing": has_undefined,
            "created_at": record.created_at,
        }

    def to_csv(self, stay_id: Optional[str] = None) -> str:
        return self.build_frame(stay_id).to_csv(index=False)
