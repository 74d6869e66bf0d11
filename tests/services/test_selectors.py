"""Tests for the read-side selectors and the sequence service."""

from datetime import date
from decimal import Decimal
from uuid import uuid4

from fleet_kernel.domain.application_rule import SpecificPersonRule
from fleet_kernel.domain.dtos import ShiftType, StatementStatus
from fleet_kernel.selectors.rate_selector import RateSelector
from fleet_kernel.selectors.statement_selector import StatementSelector
from fleet_kernel.services.sequence_service import SequenceService

JUNE = (date(2024, 6, 1), date(2024, 6, 30))
MAY = (date(2024, 5, 1), date(2024, 5, 31))


class TestStatementSelector:

    def test_list_by_status(self, session, statement_service, settlement_service, actor_id):
        drv1 = statement_service.build("drv-1", *JUNE, actor_id)
        statement_service.build("drv-2", *JUNE, actor_id)
        settlement_service.post(drv1.statement_id, actor_id)

        selector = StatementSelector(session)
        assert [s.person_id for s in selector.list_by_status(StatementStatus.DRAFT)] == ["drv-2"]
        [posted] = selector.list_by_status(StatementStatus.POSTED)
        assert posted.statement_id == drv1.statement_id
        assert posted.line_items == ()

    def test_versions_for_period(self, session, statement_service, settlement_service, actor_id):
        original = statement_service.build("drv-1", *JUNE, actor_id)
        settlement_service.post(original.statement_id, actor_id)
        statement_service.create_revision(original.statement_id, actor_id)

        versions = StatementSelector(session).versions_for_period("drv-1", *JUNE)

        assert [(v.version, v.status) for v in versions] == [
            (1, StatementStatus.ARCHIVED), (2, StatementStatus.DRAFT),
        ]
        assert StatementSelector(session).find_for_period("drv-1", *JUNE).version == 2

    def test_latest_before_skips_archived(
        self, session, statement_service, settlement_service, expense_service, actor_id,
    ):
        expense_service.create_one_time(
            "fine", SpecificPersonRule("drv-1"), Decimal("10.00"), date(2024, 5, 15), actor_id,
        )
        may = statement_service.build("drv-1", *MAY, actor_id)
        settlement_service.post(may.statement_id, actor_id)
        revision = statement_service.create_revision(may.statement_id, actor_id)

        latest = StatementSelector(session).latest_before("drv-1", JUNE[0])

        assert latest.statement_id == revision.statement_id

    def test_latest_before_ignores_later_periods(self, session, statement_service, actor_id):
        statement_service.build("drv-1", *JUNE, actor_id)
        assert StatementSelector(session).latest_before("drv-1", JUNE[0]) is None

    def test_unknown_statement(self, session):
        assert StatementSelector(session).get(uuid4()) is None


class TestRateSelector:

    def test_rates_named_in_date_order(self, session, rate_service, stored_lease_rates, actor_id):
        base = stored_lease_rates[0]
        rate_service.supersede_rate(base.rate_id, Decimal("45.00"), date(2024, 7, 1), actor_id)

        versions = RateSelector(session).rates_named("LEASE_BASE")

        assert [v.value for v in versions] == [Decimal("40.0000"), Decimal("45.0000")]

    def test_overrides_for_owner_best_first(
        self, session, override_service, stored_lease_rates, actor_id,
    ):
        base = stored_lease_rates[0]
        override_service.create_override(
            base.rate_id, "own-1", Decimal("35.00"), date(2024, 1, 1), actor_id,
        )
        override_service.create_override(
            base.rate_id, "own-1", Decimal("30.00"), date(2024, 1, 1), actor_id,
            cab_id="cab-1", shift_type=ShiftType.NIGHT,
        )

        overrides = RateSelector(session).overrides_for_owner("own-1")

        assert [o.override_value for o in overrides] == [Decimal("30.0000"), Decimal("35.0000")]
        assert RateSelector(session).overrides_for_owner("own-2") == ()


class TestSequenceService:

    def test_values_increase(self, session):
        sequence = SequenceService(session)
        assert sequence.current_value("test_counter") is None

        first = sequence.next_value("test_counter")
        second = sequence.next_value("test_counter")

        assert second == first + 1
        assert sequence.current_value("test_counter") == second

    def test_counters_are_independent(self, session):
        sequence = SequenceService(session)
        sequence.next_value("counter_a")
        sequence.next_value("counter_a")

        assert sequence.next_value("counter_b") == 1
