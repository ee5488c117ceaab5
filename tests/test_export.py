from __future__ import annotations

import pytest

from backend.domain.models import OccupantCount, QuoteSubmission, SubmittedRoom
from backend.repository.data_repository import DEMO_STAY_ID, DataRepository
from backend.services.export_service import QuoteExportService


def _submission(rooms: list[SubmittedRoom], sub_period_ids: tuple[str, ...] = ()) -> QuoteSubmission:
    return QuoteSubmission(
        first_name="Alan",
        last_name="Turing",
        email="alan@example.com",
        phone="0700000000",
        check_in="2027-07-03",
        check_out="2027-07-17",
        stay_id=DEMO_STAY_ID,
        rooms=rooms,
        participants=[OccupantCount("adult", 2), OccupantCount("child", 1)],
        selected_sub_period_ids=list(sub_period_ids),
    )


@pytest.fixture
def repository(test_settings) -> DataRepository:
    repository = DataRepository(test_settings)
    repository.initialize_database()
    repository.seed_demo_stay_if_empty()
    return repository


def test_export_uses_exact_total_when_occupants_are_stored(repository, test_settings):
    occupants = [OccupantCount("adult", 2), OccupantCount("child", 1)]
    repository.save_quote(
        submission=_submission([SubmittedRoom("family", 1, occupants)]),
        quote_number="DEV-2027-000001",
        status="PENDING",
        total_price=1540.0,
        has_undefined_pricing=False,
    )

    frame = QuoteExportService(repository=repository, settings=test_settings).build_frame()

    assert len(frame) == 1
    row = frame.iloc[0]
    assert row["quote_number"] == "DEV-2027-000001"
    assert row["total_price"] == 1540.0
    assert row["price_source"] == "exact"
    assert row["participants"] == 3
    assert row["rooms"] == "family"


def test_export_falls_back_to_participant_estimate(repository, test_settings):
    repository.save_quote(
        submission=_submission([SubmittedRoom("family", 1, [])]),
        quote_number="DEV-2027-000002",
        status="PENDING",
        total_price=0.0,
        has_undefined_pricing=False,
    )

    frame = QuoteExportService(repository=repository, settings=test_settings).build_frame()

    row = frame.iloc[0]
    assert row["price_source"] == "estimate"
    # Family global tariffs: 2 adults x 290 + 1 child x 190.
    assert row["total_price"] == pytest.approx(770.0)
    assert not row["has_undefined_pricing"]


def test_export_flags_estimate_gaps(repository, test_settings):
    repository.save_quote(
        submission=_submission([SubmittedRoom("dorm", 1, [])]),
        quote_number="DEV-2027-000003",
        status="NEEDS_PRICING",
        total_price=0.0,
        has_undefined_pricing=True,
    )

    row = QuoteExportService(repository=repository, settings=test_settings).build_frame().iloc[0]

    assert row["total_price"] == pytest.approx(360.0)
    assert row["has_undefined_pricing"]


def test_csv_has_header_and_filters_by_stay(repository, test_settings):
    service = QuoteExportService(repository=repository, settings=test_settings)
    repository.save_quote(
        submission=_submission([SubmittedRoom("family", 1, [OccupantCount("adult", 2)])]),
        quote_number="DEV-2027-000004",
        status="PENDING",
        total_price=1160.0,
        has_undefined_pricing=False,
    )

    content = service.to_csv()
    assert content.splitlines()[0].startswith("quote_number,stay_id,status")
    assert "DEV-2027-000004" in content

    assert service.to_csv("another-stay").splitlines() == [content.splitlines()[0]]
    assert repository.count_quotes() == 1


def test_priced_sub_periods_are_stored_with_the_quote(repository, test_settings):
    repository.save_quote(
        submission=_submission(
            [SubmittedRoom("double", 1, [OccupantCount("adult", 2)])],
            sub_period_ids=("week-2", "week-1"),
        ),
        quote_number="DEV-2027-000005",
        status="PENDING",
        total_price=1280.0,
        has_undefined_pricing=False,
    )
    repository.save_quote(
        submission=_submission([SubmittedRoom("double", 1, [OccupantCount("adult", 1)])]),
        quote_number="DEV-2027-000006",
        status="PENDING",
        total_price=640.0,
        has_undefined_pricing=False,
    )

    records = repository.list_quotes(DEMO_STAY_ID)
    assert [record.sub_period_ids for record in records] == [("week-2", "week-1"), ()]

    frame = QuoteExportService(repository=repository, settings=test_settings).build_frame()
    assert frame["sub_periods"].tolist() == ["week-2;week-1", ""]
