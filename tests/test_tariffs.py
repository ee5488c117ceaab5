from __future__ import annotations

import pytest

from backend.domain.constraints import SnapshotValidationError, UnknownReferenceError
from backend.domain.models import GLOBAL_PRICING_KEY, RoomTariff, RoomType
from backend.services.tariff_service import TariffResolver, tariffs_from_pricing_view

from conftest import make_snapshot, make_two_period_snapshot


def test_exact_tariff_wins_over_global() -> None:
    room = RoomType(
        "double",
        "Double",
        2,
        (
            RoomTariff("double", "adult", None, 100.0),
            RoomTariff("double", "adult", "period-a", 80.0),
        ),
    )
    resolver = TariffResolver.from_snapshot(make_two_period_snapshot(rooms=(room,)))

    assert resolver.price("double", "adult", "period-a") == 80.0
    assert resolver.price("double", "adult", "period-b") == 100.0
    assert resolver.price("double", "adult", None) == 100.0


def test_global_only_tariff_answers_every_sub_period() -> None:
    room = RoomType("double", "Double", 2, (RoomTariff("double", "adult", None, 75.0),))
    snapshot = make_two_period_snapshot(rooms=(room,))
    resolver = TariffResolver.from_snapshot(snapshot)

    for period in snapshot.sub_periods:
        assert resolver.price("double", "adult", period.sub_period_id) == 75.0


def test_sub_period_tariff_does_not_answer_global_query() -> None:
    resolver = TariffResolver.from_snapshot(make_two_period_snapshot())

    assert resolver.price("double", "adult", None) is None


def test_missing_tariff_is_none_and_zero_is_a_price() -> None:
    room = RoomType("double", "Double", 2, (RoomTariff("double", "adult", None, 0.0),))
    resolver = TariffResolver.from_snapshot(make_snapshot(rooms=(room,)))

    assert resolver.price("double", "adult") == 0.0
    assert resolver.price("double", "child") is None


def test_unknown_references_raise() -> None:
    resolver = TariffResolver.from_snapshot(make_snapshot())

    with pytest.raises(UnknownReferenceError):
        resolver.price("suite", "adult")
    with pytest.raises(UnknownReferenceError):
        resolver.price("double", "senior")


def test_duplicate_tariff_rejected_at_build_time() -> None:
    room = RoomType(
        "double",
        "Double",
        2,
        (
            RoomTariff("double", "adult", None, 100.0),
            RoomTariff("double", "adult", None, 110.0),
        ),
    )
    with pytest.raises(SnapshotValidationError):
        TariffResolver([room])


def test_stay_price_sums_periods() -> None:
    resolver = TariffResolver.from_snapshot(make_two_period_snapshot())

    assert resolver.stay_price("double", "adult", ["period-a", "period-b"]) == 220.0
    assert resolver.stay_price("double", "adult", ["period-b"]) == 120.0
    assert resolver.stay_price("double", "child", ["period-a"]) is None


def test_stay_price_without_periods_uses_global() -> None:
    resolver = TariffResolver.from_snapshot(make_snapshot())

    assert resolver.stay_price("family", "child", []) == 50.0


def test_variable_pricing_detection() -> None:
    resolver = TariffResolver.from_snapshot(make_two_period_snapshot())

    assert resolver.has_variable_pricing("double", "adult", ["period-a", "period-b"]) is True
    assert resolver.has_variable_pricing("double", "adult", ["period-a"]) is False
    assert resolver.has_variable_pricing("double", "child", ["period-a", "period-b"]) is False


def test_unpriced_period_counts_as_variable() -> None:
    room = RoomType("double", "Double", 2, (RoomTariff("double", "adult", "period-a", 100.0),))
    resolver = TariffResolver.from_snapshot(make_two_period_snapshot(rooms=(room,)))

    assert resolver.has_variable_pricing("double", "adult", ["period-a", "period-b"]) is True


def test_average_price_across_room_types() -> None:
    resolver = TariffResolver.from_snapshot(make_snapshot())

    assert resolver.average_price_across_room_types("adult", ["double", "family"], 3) == pytest.approx(285.0)
    assert resolver.average_price_across_room_types("adult", ["double"], 0) == 0.0


def test_average_skips_room_types_without_global_price() -> None:
    rooms = (
        RoomType("double", "Double", 2, (RoomTariff("double", "adult", None, 100.0),)),
        RoomType("family", "Family", 4),
    )
    resolver = TariffResolver.from_snapshot(make_snapshot(rooms=rooms))

    assert resolver.average_price_across_room_types("adult", ["double", "family"], 2) == 200.0
    assert resolver.average_price_across_room_types("child", ["double", "family"], 2) is None


def test_estimate_total_from_participants() -> None:
    resolver = TariffResolver.from_snapshot(make_snapshot())

    estimate = resolver.estimate_total_from_participants({"adult": 2, "child": 1}, ["double", "family"])

    assert estimate.total == pytest.approx(245.0)
    assert estimate.has_undefined_pricing is False
    assert estimate.lines == []


def test_pricing_by_sub_period_view() -> None:
    snapshot = make_two_period_snapshot()
    resolver = TariffResolver.from_snapshot(snapshot)

    view = resolver.pricing_by_sub_period("double", ["period-a", "period-b"])

    assert view == {
        GLOBAL_PRICING_KEY: {},
        "period-a": {"adult": 100.0},
        "period-b": {"adult": 120.0},
    }


def test_tariffs_from_pricing_view_skips_cleared_prices() -> None:
    tariffs = tariffs_from_pricing_view(
        "double",
        {GLOBAL_PRICING_KEY: {"adult": 90.0, "child": None}, "period-a": {"adult": 0}},
    )

    assert RoomTariff("double", "adult", None, 90.0) in tariffs
    assert RoomTariff("double", "adult", "period-a", 0.0) in tariffs
    assert len(tariffs) == 2


def test_tariffs_from_pricing_view_rejects_negative_price() -> None:
    with pytest.raises(SnapshotValidationError):
        tariffs_from_pricing_view("double", {GLOBAL_PRICING_KEY: {"adult": -5.0}})
