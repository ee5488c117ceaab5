"""Tests for engine config, snapshot, contact and stay-date validation."""

from __future__ import annotations

from dataclasses import replace
from datetime import date

import pytest

from backend.domain.constraints import (
    QuoteEngineConfig,
    QuoteValidationError,
    SnapshotValidationError,
    validate_contact,
    validate_engine_config,
    validate_snapshot,
    validate_stay_dates,
)
from backend.domain.models import AgeBracket, ContactDetails, RoomTariff, RoomType, SubPeriod

from conftest import ADULT, make_snapshot, make_two_period_snapshot


def valid_contact(**overrides) -> ContactDetails:
    defaults = {
        "first_name": "Ada",
        "last_name": "Lovelace",
        "email": "ada@example.com",
        "phone": "0600000000",
        "check_in": "2027-07-01",
        "check_out": "2027-07-15",
    }
    defaults.update(overrides)
    return ContactDetails(**defaults)


# --- engine config ---

def test_valid_engine_config_passes() -> None:
    validate_engine_config(QuoteEngineConfig(capacity_safety_factor=2.0, max_room_quantity=10))
    validate_engine_config(QuoteEngineConfig(capacity_safety_factor=None, max_room_quantity=1))


def test_safety_factor_below_one_raises() -> None:
    with pytest.raises(ValueError):
        validate_engine_config(QuoteEngineConfig(capacity_safety_factor=0.5, max_room_quantity=10))


def test_max_room_quantity_zero_raises() -> None:
    with pytest.raises(ValueError):
        validate_engine_config(QuoteEngineConfig(capacity_safety_factor=None, max_room_quantity=0))


# --- snapshot ---

def test_valid_snapshots_pass() -> None:
    validate_snapshot(make_snapshot())
    validate_snapshot(make_two_period_snapshot())


def test_stay_dates_reversed_raise() -> None:
    with pytest.raises(SnapshotValidationError):
        validate_snapshot(make_snapshot(start_date=date(2027, 7, 15), end_date=date(2027, 7, 1)))


def test_min_days_above_max_days_raises() -> None:
    with pytest.raises(SnapshotValidationError):
        validate_snapshot(make_snapshot(min_days=10, max_days=3))


def test_duplicate_bracket_raises() -> None:
    with pytest.raises(SnapshotValidationError):
        validate_snapshot(make_snapshot(age_brackets=(ADULT, ADULT)))


def test_bracket_min_age_above_max_age_raises() -> None:
    broken = AgeBracket("teen", "Teens", min_age=17, max_age=12)
    with pytest.raises(SnapshotValidationError):
        validate_snapshot(make_snapshot(age_brackets=(ADULT, broken)))


def test_sub_period_must_start_before_it_ends() -> None:
    period = SubPeriod("p", "P", date(2027, 7, 5), date(2027, 7, 5))
    with pytest.raises(SnapshotValidationError):
        validate_snapshot(make_snapshot(sub_periods=(period,)))


def test_zero_capacity_room_raises() -> None:
    with pytest.raises(SnapshotValidationError):
        validate_snapshot(make_snapshot(rooms=(RoomType("cot", "Cot", 0),)))


def test_negative_tariff_raises() -> None:
    room = RoomType("double", "Double", 2, (RoomTariff("double", "adult", None, -1.0),))
    with pytest.raises(SnapshotValidationError):
        validate_snapshot(make_snapshot(rooms=(room,)))


def test_tariff_with_unknown_sub_period_raises() -> None:
    room = RoomType("double", "Double", 2, (RoomTariff("double", "adult", "ghost", 10.0),))
    with pytest.raises(SnapshotValidationError):
        validate_snapshot(make_snapshot(rooms=(room,)))


def test_tariff_embedded_in_wrong_room_raises() -> None:
    room = RoomType("double", "Double", 2, (RoomTariff("family", "adult", None, 10.0),))
    with pytest.raises(SnapshotValidationError):
        validate_snapshot(make_snapshot(rooms=(room,)))


def test_snapshot_errors_are_value_errors() -> None:
    with pytest.raises(ValueError):
        validate_snapshot(make_snapshot(rooms=(RoomType("cot", "Cot", -2),)))


# --- contact ---

def test_valid_contact_passes() -> None:
    validate_contact(valid_contact())


@pytest.mark.parametrize(
    "overrides",
    [
        {"first_name": "  "},
        {"last_name": ""},
        {"email": "not-an-email"},
        {"email": "a@b"},
        {"phone": " "},
    ],
)
def test_invalid_contact_raises(overrides) -> None:
    with pytest.raises(QuoteValidationError):
        validate_contact(valid_contact(**overrides))


# --- stay dates ---

def test_whole_stay_dates_return_nights() -> None:
    assert validate_stay_dates(make_snapshot(), "2027-07-01", "2027-07-15") == 14


def test_malformed_date_raises() -> None:
    with pytest.raises(QuoteValidationError, match="YYYY-MM-DD"):
        validate_stay_dates(make_snapshot(), "01/07/2027", "2027-07-15")


def test_check_in_must_precede_check_out() -> None:
    with pytest.raises(QuoteValidationError, match="before"):
        validate_stay_dates(make_snapshot(), "2027-07-10", "2027-07-10")


def test_dates_outside_stay_raise() -> None:
    with pytest.raises(QuoteValidationError, match="outside"):
        validate_stay_dates(make_snapshot(), "2027-06-30", "2027-07-10")


def test_partial_booking_enforces_min_days() -> None:
    snapshot = make_two_period_snapshot()
    with pytest.raises(QuoteValidationError, match="minimum 3 nights"):
        validate_stay_dates(snapshot, "2027-07-01", "2027-07-03")
    assert validate_stay_dates(snapshot, "2027-07-01", "2027-07-04") == 3


def test_partial_booking_enforces_max_days() -> None:
    snapshot = replace(make_two_period_snapshot(), max_days=7)
    with pytest.raises(QuoteValidationError, match="maximum 7 nights"):
        validate_stay_dates(snapshot, "2027-07-01", "2027-07-10")


def test_min_days_ignored_without_partial_booking() -> None:
    snapshot = make_snapshot(min_days=10)
    assert validate_stay_dates(snapshot, "2027-07-01", "2027-07-03") == 2
