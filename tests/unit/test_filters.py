"""Tests for chat_reconciler.core.filters module."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from chat_reconciler.core.filters import (
    DateWindow,
    ExclusionWindow,
    IntervalWindow,
    OpenWindow,
    as_utc,
    has_uncertain_data,
    is_state_achieved,
)
from chat_reconciler.types import ChannelAttributes
from tests.unit.conftest import build_channel

JAN = datetime(2021, 1, 1, tzinfo=timezone.utc)
FEB = datetime(2021, 2, 1, tzinfo=timezone.utc)
MAR = datetime(2021, 3, 1, tzinfo=timezone.utc)
APR = datetime(2021, 4, 1, tzinfo=timezone.utc)


# ---------------------------------------------------------------------------
# Strategy selection
# ---------------------------------------------------------------------------


class TestFromBounds:
    """Tests for DateWindow.from_bounds()."""

    def test_no_bounds_is_open(self):
        assert isinstance(DateWindow.from_bounds(), OpenWindow)

    def test_after_before_ordered_is_interval(self):
        window = DateWindow.from_bounds(before=MAR, after=FEB)
        assert isinstance(window, IntervalWindow)

    def test_after_later_than_before_is_exclusion(self):
        window = DateWindow.from_bounds(before=FEB, after=MAR)
        assert isinstance(window, ExclusionWindow)

    @pytest.mark.parametrize("bounds", [{"before": FEB}, {"after": FEB}])
    def test_single_bound_is_exclusion(self, bounds):
        assert isinstance(DateWindow.from_bounds(**bounds), ExclusionWindow)

    def test_naive_bounds_are_utc(self):
        window = DateWindow.from_bounds(before=datetime(2021, 3, 1), after=datetime(2021, 2, 1))
        assert window.before == MAR
        assert window.after == FEB


# ---------------------------------------------------------------------------
# Inclusion
# ---------------------------------------------------------------------------


class TestIncludes:
    """Tests for DateWindow.includes()."""

    def test_missing_timestamp_always_included(self):
        for window in (
            OpenWindow(),
            IntervalWindow(before=MAR, after=FEB),
            ExclusionWindow(before=FEB, after=MAR),
        ):
            assert window.includes(None)

    def test_open_window_includes_everything(self):
        assert OpenWindow().includes(JAN)
        assert OpenWindow().includes(APR)

    def test_interval_is_inclusive(self):
        window = IntervalWindow(before=MAR, after=FEB)
        assert window.includes(FEB)
        assert window.includes(MAR)
        assert window.includes(FEB + timedelta(days=3))
        assert not window.includes(JAN)
        assert not window.includes(APR)

    def test_exclusion_keeps_outside_of_middle(self):
        window = ExclusionWindow(before=FEB, after=MAR)
        assert window.includes(JAN)
        assert window.includes(FEB)
        assert window.includes(MAR)
        assert window.includes(APR)
        assert not window.includes(FEB + timedelta(days=3))

    def test_before_only(self):
        window = DateWindow.from_bounds(before=FEB)
        assert window.includes(JAN)
        assert window.includes(FEB)
        assert not window.includes(MAR)

    def test_after_only(self):
        window = DateWindow.from_bounds(after=FEB)
        assert not window.includes(JAN)
        assert window.includes(FEB)
        assert window.includes(MAR)

    def test_interval_and_exclusion_are_complements(self):
        interval = DateWindow.from_bounds(before=MAR, after=FEB)
        outside = DateWindow.from_bounds(before=FEB - timedelta(seconds=1), after=MAR + timedelta(seconds=1))
        for ts in (JAN, FEB, FEB + timedelta(days=10), MAR, APR):
            assert interval.includes(ts) != outside.includes(ts)

    def test_naive_timestamp_compared_as_utc(self):
        window = IntervalWindow(before=MAR, after=FEB)
        assert window.includes(datetime(2021, 2, 15))


class TestDescribe:
    """Tests for the human-readable window descriptions."""

    def test_descriptions(self):
        assert OpenWindow().describe() == "no date window"
        assert "only between" in IntervalWindow(before=MAR, after=FEB).describe()
        assert ExclusionWindow(after=FEB).describe().startswith("from")
        assert ExclusionWindow(before=FEB).describe().startswith("until")
        assert " and from " in ExclusionWindow(before=FEB, after=MAR).describe()


def test_as_utc_leaves_aware_values_alone():
    aware = datetime(2021, 1, 1, tzinfo=timezone(timedelta(hours=2)))
    assert as_utc(aware) is aware
    assert as_utc(None) is None


# ---------------------------------------------------------------------------
# State checks
# ---------------------------------------------------------------------------


class TestIsStateAchieved:
    """Tests for is_state_achieved()."""

    def test_migration_is_never_achieved(self):
        assert not is_state_achieved(ChannelAttributes(), None)
        assert not is_state_achieved(None, None)

    def test_missing_attributes_count_as_achieved(self):
        assert is_state_achieved(None, True)
        assert is_state_achieved(None, False)

    def test_matches_blocked_flag(self):
        blocked = ChannelAttributes(is_blocked=True)
        assert is_state_achieved(blocked, True)
        assert not is_state_achieved(blocked, False)
        assert is_state_achieved(ChannelAttributes(), False)


class TestHasUncertainData:
    """Tests for has_uncertain_data()."""

    def test_certain_channel(self):
        assert not has_uncertain_data(build_channel("100-200"))

    def test_no_members(self):
        assert has_uncertain_data(build_channel("100-200", members_count=0))

    def test_zero_listing_id(self):
        assert has_uncertain_data(build_channel("10-20", attributes={"listingId": 0}))

    def test_unknown_seller_and_buyer(self):
        channel = build_channel("10-20", attributes={"listingId": 3, "sellerId": 0, "buyerId": 0})
        assert has_uncertain_data(channel)

    def test_one_party_known_is_enough(self):
        channel = build_channel("10-20", attributes={"listingId": 3, "sellerId": 10})
        assert not has_uncertain_data(channel)

    def test_missing_attributes_are_not_uncertain(self):
        assert not has_uncertain_data(build_channel("10-20", raw_attributes=""))
