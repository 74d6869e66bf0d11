"""Tests for the in-memory master data and usage adapters."""

from datetime import date
from decimal import Decimal

import pytest

from fleet_kernel.domain.master_data import InMemoryUsageSource, UsageRecord


class TestInMemoryMasterData:

    def test_lookups(self, master_data):
        assert master_data.get_person("own-1").name == "Olive Owner"
        assert master_data.get_person("nobody") is None
        assert master_data.get_shift("sh-3").cab_id == "cab-2"

    def test_listings_are_sorted(self, master_data):
        assert [p.person_id for p in master_data.list_persons()] == ["drv-1", "drv-2", "own-1", "own-2"]
        assert [s.shift_id for s in master_data.list_shifts()] == ["sh-1", "sh-2", "sh-3"]

    def test_ownership_both_directions(self, master_data):
        assert [o.owner_id for o in master_data.shift_ownerships("sh-2")] == ["own-1"]
        assert [o.shift_id for o in master_data.ownerships_of("own-1")] == ["sh-1", "sh-2"]

    def test_profiles_and_attributes(self, master_data):
        assert [a.shift_id for a in master_data.profile_assignments("prof-a")] == ["sh-1", "sh-3"]
        assert [v.cab_id for v in master_data.attribute_values("wheelchair")] == ["cab-2"]
        assert master_data.attribute_values("roof-sign") == ()


class TestUsage:

    def test_usage_between_is_inclusive(self, usage_source):
        assert len(usage_source.usage_between(date(2024, 6, 3), date(2024, 6, 5))) == 2
        assert len(usage_source.usage_between(date(2024, 6, 4), date(2024, 6, 4))) == 0

    def test_sorted_by_date(self, june_usage):
        source = InMemoryUsageSource(reversed(june_usage))
        assert [r.usage_date for r in source.usage_between(date(2024, 6, 1), date(2024, 6, 30))] == [
            date(2024, 6, 3), date(2024, 6, 5),
        ]

    def test_negative_usage_rejected(self):
        with pytest.raises(ValueError):
            UsageRecord("sh-1", "drv-1", date(2024, 6, 1), Decimal("-1"), 0)
        with pytest.raises(ValueError):
            UsageRecord("sh-1", "drv-1", date(2024, 6, 1), Decimal("1"), -1)

    def test_miles_coerced_to_decimal(self):
        assert UsageRecord("sh-1", "drv-1", date(2024, 6, 1), "12.5", 1).miles == Decimal("12.5")
