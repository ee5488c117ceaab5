"""
Shared pytest fixtures: stay snapshots and tmp-path settings.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import date

import pytest

from backend.domain.models import AgeBracket, RoomTariff, RoomType, StaySnapshot, SubPeriod
from backend.utils.config import get_settings


ADULT = AgeBracket("adult", "Adults", min_age=18, order=0)
CHILD = AgeBracket("child", "Children", min_age=4, max_age=17, order=1)


def make_snapshot(**overrides) -> StaySnapshot:
    """Adults and children, a Double (2) and a Family (4) room, global tariffs only."""
    defaults = {
        "stay_id": "stay-1",
        "name": "Test stay",
        "start_date": date(2027, 7, 1),
        "end_date": date(2027, 7, 15),
        "allow_partial_booking": False,
        "age_brackets": (ADULT, CHILD),
        "sub_periods": (),
        "rooms": (
            RoomType(
                "double",
                "Double",
                2,
                (
                    RoomTariff("double", "adult", None, 100.0),
                    RoomTariff("double", "child", None, 60.0),
                ),
            ),
            RoomType(
                "family",
                "Family",
                4,
                (
                    RoomTariff("family", "adult", None, 90.0),
                    RoomTariff("family", "child", None, 50.0),
                ),
            ),
        ),
    }
    defaults.update(overrides)
    return StaySnapshot(**defaults)


def make_two_period_snapshot(**overrides) -> StaySnapshot:
    """Double room priced 100 for adults in period A and 120 in period B."""
    periods = (
        SubPeriod("period-a", "Period A", date(2027, 7, 1), date(2027, 7, 8), order=0),
        SubPeriod("period-b", "Period B", date(2027, 7, 8), date(2027, 7, 15), order=1),
    )
    rooms = (
        RoomType(
            "double",
            "Double",
            2,
            (
                RoomTariff("double", "adult", "period-a", 100.0),
                RoomTariff("double", "adult", "period-b", 120.0),
            ),
        ),
    )
    defaults = {
        "allow_partial_booking": True,
        "min_days": 3,
        "max_days": 14,
        "sub_periods": periods,
        "rooms": rooms,
    }
    defaults.update(overrides)
    return make_snapshot(**defaults)


@pytest.fixture
def snapshot() -> StaySnapshot:
    return make_snapshot()


@pytest.fixture
def two_period_snapshot() -> StaySnapshot:
    return make_two_period_snapshot()


@pytest.fixture
def test_settings(tmp_path):
    get_settings.cache_clear()
    return replace(
        get_settings(),
        database_path=tmp_path / "quotes_test.db",
        seed_demo_data=False,
    )
