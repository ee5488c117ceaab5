from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace

import pytest

from backend.domain.constraints import QuoteValidationError
from backend.domain.models import ContactDetails, QuoteStep, RoomTariff
from backend.repository.data_repository import DEMO_STAY_ID, DataRepository
from backend.services.catalog_service import CatalogService
from backend.services.quote_service import (
    QuoteSessionService,
    SessionNotFoundError,
    StayNotFoundError,
)

from conftest import make_snapshot


CONTACT = ContactDetails(
    first_name="Ada",
    last_name="Lovelace",
    email="ada@example.com",
    phone="0600000000",
    check_in="2027-07-01",
    check_out="2027-07-15",
)


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def _repository(settings, repository_class=DataRepository) -> DataRepository:
    repository = repository_class(settings)
    repository.initialize_database()
    repository.seed_demo_stay_if_empty()
    repository.save_stay_snapshot(make_snapshot())
    return repository


def _ready_to_submit(service: QuoteSessionService) -> str:
    session_id = service.start_session("stay-1").session_id
    service.set_participant_count(session_id, "adult", 2)
    service.navigate(session_id, QuoteStep.ROOMS)
    service.set_room_quantity(session_id, "double", 1)
    service.advance(session_id)
    service.assign_occupants(session_id, "double:0", "adult", 2)
    return session_id


@pytest.fixture
def service(test_settings) -> QuoteSessionService:
    return QuoteSessionService(repository=_repository(test_settings), settings=test_settings)


def test_sessions_are_isolated(service):
    first = service.start_session("stay-1")
    second = service.start_session("stay-1")

    service.set_participant_count(first.session_id, "adult", 2)

    assert service.get_session(first.session_id).configuration.allocations == {"adult": 2}
    assert service.get_session(second.session_id).configuration.allocations == {}


def test_unknown_stay_and_session(service):
    with pytest.raises(StayNotFoundError):
        service.start_session("ghost")
    with pytest.raises(SessionNotFoundError):
        service.get_session("ghost")


def test_concurrent_updates_are_serialized(service):
    session_id = service.start_session("stay-1").session_id
    service.set_participant_count(session_id, "adult", 20)
    service.set_room_quantity(session_id, "family", 5)

    def place(index: int) -> None:
        service.assign_occupants(session_id, f"family:{index % 5}", "adult", 1)

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(place, range(40)))

    config = service.get_session(session_id).configuration
    assert sum(sum(item.values()) for item in config.assignments.values()) == 20
    assert all(sum(item.values()) <= 4 for item in config.assignments.values())


def test_refresh_snapshot_picks_up_new_tariffs(service, test_settings):
    session_id = service.start_session(DEMO_STAY_ID).session_id
    service.set_participant_count(session_id, "child", 3)
    service.set_room_quantity(session_id, "dorm", 1)
    service.assign_occupants(session_id, "dorm:0", "child", 3)
    assert service.price(session_id).has_undefined_pricing is True

    repository = DataRepository(test_settings)
    dorm = repository.load_stay_snapshot(DEMO_STAY_ID).room("dorm")
    repository.replace_room_tariffs(
        DEMO_STAY_ID,
        "dorm",
        list(dorm.tariffs) + [RoomTariff("dorm", "child", None, 120.0)],
    )
    session = service.refresh_snapshot(session_id)

    assert session.configuration.assignments == {"dorm:0": {"child": 3}}
    quote = service.price(session_id)
    assert quote.has_undefined_pricing is False
    assert quote.total == 3 * 2 * 120.0


def test_pricing_update_rebases_open_sessions_of_the_stay(service, test_settings):
    demo_session = service.start_session(DEMO_STAY_ID).session_id
    service.set_participant_count(demo_session, "adult", 1)
    service.set_room_quantity(demo_session, "double", 1)
    service.assign_occupants(demo_session, "double:0", "adult", 1)
    other_session = service.start_session("stay-1").session_id
    other_snapshot = service.get_session(other_session).snapshot
    assert service.price(demo_session).total == 300.0 + 340.0

    catalog = CatalogService(
        repository=DataRepository(test_settings),
        settings=test_settings,
        quote_service=service,
    )
    catalog.update_pricing(DEMO_STAY_ID, "double", {"global": {"adult": 999.0}})

    assert service.price(demo_session).total == 2 * 999.0
    assert service.get_session(other_session).snapshot is other_snapshot


def test_submit_closes_session_and_persists(service, test_settings):
    session_id = _ready_to_submit(service)

    result = service.submit(session_id, CONTACT)

    assert result["total_price"] == 200.0
    assert result["status"] == "PENDING"
    assert result["submission"]["selectedSubPeriods"] == []
    assert len(result["quote_number"].split("-")[-1]) == 6
    assert DataRepository(test_settings).get_quote_status(result["quote_id"]) == "PENDING"
    with pytest.raises(SessionNotFoundError):
        service.get_session(session_id)


def test_repeated_submit_of_one_session_stores_one_quote(test_settings):
    class ResubmittingRepository(DataRepository):
        """Submits the same session again while the first submit is being stored."""

        service: QuoteSessionService
        session_id: str
        nested_errors: list[Exception]

        def save_quote(self, **kwargs):
            try:
                self.service.submit(self.session_id, CONTACT)
            except SessionNotFoundError as exc:
                self.nested_errors.append(exc)
            return super().save_quote(**kwargs)

    repository = _repository(test_settings, ResubmittingRepository)
    repository.nested_errors = []
    service = QuoteSessionService(repository=repository, settings=test_settings)
    repository.service = service
    repository.session_id = _ready_to_submit(service)

    service.submit(repository.session_id, CONTACT)

    assert len(repository.nested_errors) == 1
    assert repository.count_quotes() == 1


def test_rejected_submit_keeps_session_open(service):
    session_id = _ready_to_submit(service)

    with pytest.raises(QuoteValidationError):
        service.submit(session_id, replace(CONTACT, check_out="2027-06-30"))

    assert service.get_session(session_id).configuration.step == QuoteStep.ASSIGNMENT
    assert service.submit(session_id, CONTACT)["status"] == "PENDING"


def test_close_session_discards_configuration(service):
    session_id = service.start_session("stay-1").session_id

    service.close_session(session_id)

    assert service.session_count == 0
    with pytest.raises(SessionNotFoundError):
        service.get_session(session_id)
    with pytest.raises(SessionNotFoundError):
        service.close_session(session_id)


def test_idle_sessions_expire(test_settings):
    clock = FakeClock()
    settings = replace(test_settings, quote_session_ttl_seconds=60.0)
    service = QuoteSessionService(repository=_repository(settings), settings=settings, clock=clock)

    idle = service.start_session("stay-1").session_id
    clock.now += 30
    active = service.start_session("stay-1").session_id
    clock.now += 50
    service.get_session(active)
    clock.now += 50

    assert service.session_count == 1
    assert service.get_session(active).session_id == active
    with pytest.raises(SessionNotFoundError):
        service.get_session(idle)


def test_sessions_never_expire_without_ttl(test_settings):
    clock = FakeClock()
    settings = replace(test_settings, quote_session_ttl_seconds=None)
    service = QuoteSessionService(repository=_repository(settings), settings=settings, clock=clock)

    session_id = service.start_session("stay-1").session_id
    clock.now += 10 ** 9

    assert service.get_session(session_id).session_id == session_id
