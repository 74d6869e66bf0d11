"""Tests for DateWindow and decimal helpers."""

from datetime import date, timedelta
from decimal import Decimal

import pytest
from hypothesis import given
from hypothesis import strategies as st

from fleet_kernel.domain.values import DateWindow, quantize_amount, quantize_rate, to_decimal


class TestDecimalHelpers:

    def test_amount_rounds_half_up(self):
        assert quantize_amount("2.345") == Decimal("2.35")
        assert quantize_amount("-2.345") == Decimal("-2.35")

    def test_rate_keeps_four_places(self):
        assert quantize_rate("0.33335") == Decimal("0.3334")

    @pytest.mark.parametrize("bad", [1.5, True, "abc"])
    def test_rejects_non_decimal(self, bad):
        with pytest.raises(ValueError):
            to_decimal(bad)

    def test_int_and_str_accepted(self):
        assert to_decimal(3) == Decimal("3")
        assert to_decimal("4.10") == Decimal("4.10")


class TestDateWindow:

    def test_reversed_window_rejected(self):
        with pytest.raises(ValueError):
            DateWindow(date(2024, 2, 1), date(2024, 1, 31))

    def test_contains_inclusive(self):
        w = DateWindow(date(2024, 1, 1), date(2024, 1, 31))
        assert w.contains(date(2024, 1, 1))
        assert w.contains(date(2024, 1, 31))
        assert not w.contains(date(2024, 2, 1))
        assert not w.contains(date(2023, 12, 31))

    def test_open_ended(self):
        w = DateWindow(date(2024, 1, 1))
        assert w.is_open_ended
        assert w.contains(date(2099, 1, 1))
        with pytest.raises(ValueError):
            list(w.days())
        with pytest.raises(ValueError):
            w.day_count()

    def test_shared_boundary_overlaps_adjacent_does_not(self):
        jan = DateWindow(date(2024, 1, 1), date(2024, 1, 31))
        assert jan.overlaps(DateWindow(date(2024, 1, 31), date(2024, 2, 29)))
        assert not jan.overlaps(DateWindow(date(2024, 2, 1)))

    def test_intersection(self):
        a = DateWindow(date(2024, 1, 10))
        b = DateWindow(date(2024, 1, 1), date(2024, 1, 20))
        assert a.intersection(b) == DateWindow(date(2024, 1, 10), date(2024, 1, 20))
        assert a.intersection(DateWindow(date(2023, 1, 1), date(2023, 1, 2))) is None
        assert a.intersection(DateWindow(date(2025, 1, 1))) == DateWindow(date(2025, 1, 1))

    def test_days_and_count(self):
        feb = DateWindow(date(2024, 2, 1), date(2024, 2, 29))
        assert feb.day_count() == 29
        assert len(list(feb.days())) == 29

    def test_str(self):
        assert str(DateWindow(date(2024, 1, 1))) == "[2024-01-01, open]"

    @given(
        a_start=st.dates(min_value=date(2024, 1, 1), max_value=date(2024, 12, 31)),
        a_len=st.integers(min_value=0, max_value=60),
        b_start=st.dates(min_value=date(2024, 1, 1), max_value=date(2024, 12, 31)),
        b_len=st.integers(min_value=0, max_value=60),
    )
    def test_overlap_is_symmetric_and_matches_intersection(self, a_start, a_len, b_start, b_len):
        a = DateWindow(a_start, a_start + timedelta(days=a_len))
        b = DateWindow(b_start, b_start + timedelta(days=b_len))
        assert a.overlaps(b) == b.overlaps(a)
        assert a.overlaps(b) == (a.intersection(b) is not None)
