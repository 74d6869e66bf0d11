"""
Tests for StatementBuilder and compute_net_due.

Covers:
- Sign convention per person type
- Line gathering per person (lease, expenses, revenue)
- Unrelated shifts and people never fail a person's statement
- Deterministic ordering and numbering
- Determinism of the whole draft
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from fleet_engines.charges import ChargeCalculator
from fleet_engines.statement_builder import (
    StatementBuilder,
    StatementInputs,
    compute_net_due,
    order_line_items,
)
from fleet_engines.target_resolver import ApplicationTargetResolver
from fleet_kernel.domain.application_rule import (
    AllActiveShiftsRule,
    SpecificPersonRule,
    SpecificShiftRule,
)
from fleet_kernel.domain.dtos import (
    BillingCadence,
    ExpenseCharge,
    LineItem,
    LineSide,
    LineSource,
    PersonType,
    RevenueRecord,
    ShiftType,
)
from fleet_kernel.domain.master_data import Shift, ShiftStatusRecord
from fleet_kernel.domain.values import DateWindow
from fleet_kernel.exceptions import TargetNotFoundError

JUNE_FROM = date(2024, 6, 1)
JUNE_TO = date(2024, 6, 30)


def _one_time(person_or_shift_rule, amount, on=date(2024, 6, 12)):
    return ExpenseCharge(
        charge_id=uuid4(), category_id="repair", rule=person_or_shift_rule,
        amount=Decimal(amount), occurred_on=on,
    )


class TestNetDue:

    def test_owner_sign(self):
        net = compute_net_due(
            PersonType.OWNER, Decimal("100"), Decimal("250"), Decimal("180"), Decimal("50"),
        )
        assert net == Decimal("120.00")

    def test_driver_sign(self):
        net = compute_net_due(
            PersonType.DRIVER, Decimal("100"), Decimal("250"), Decimal("180"), Decimal("50"),
        )
        assert net == Decimal("-20.00")

    def test_rounds_half_up(self):
        net = compute_net_due(PersonType.OWNER, Decimal("0"), Decimal("0.005"), Decimal("0"))
        assert net == Decimal("0.01")


class TestBuild:

    def test_driver_lease_statement(self, builder, june_usage):
        draft = builder.build(inputs=StatementInputs(
            person_id="drv-1", person_type=PersonType.DRIVER,
            period_from=JUNE_FROM, period_to=JUNE_TO, usage=tuple(june_usage),
        ))

        assert [li.source for li in draft.line_items] == [LineSource.LEASE_CHARGE]
        assert draft.total_expense == Decimal("65.00")
        assert draft.total_revenue == Decimal("0.00")
        assert draft.net_due == Decimal("-65.00")
        assert draft.total_owed == draft.net_due

    def test_owner_gets_lease_income_and_own_charges(self, builder, june_usage):
        draft = builder.build(inputs=StatementInputs(
            person_id="own-1", person_type=PersonType.OWNER,
            period_from=JUNE_FROM, period_to=JUNE_TO,
            previous_balance=Decimal("10.00"),
            charges=(
                _one_time(SpecificPersonRule("own-1"), "120.00"),
                _one_time(SpecificShiftRule("sh-2"), "15.00"),
                _one_time(SpecificPersonRule("own-2"), "999.00"),
            ),
            usage=tuple(june_usage),
        ))

        sources = sorted(li.source.value for li in draft.line_items)
        assert sources == ["lease_income", "one_time_expense", "one_time_expense"]
        assert draft.total_expense == Decimal("135.00")
        assert draft.total_revenue == Decimal("65.00")
        # owner: 10 + 135 - 65
        assert draft.net_due == Decimal("80.00")

    def test_revenue_filtered_by_person_and_period(self, builder):
        revenues = (
            RevenueRecord(uuid4(), "drv-2", date(2024, 6, 10), Decimal("40"), "Tips"),
            RevenueRecord(uuid4(), "drv-2", date(2024, 7, 1), Decimal("99"), "July"),
            RevenueRecord(uuid4(), "drv-1", date(2024, 6, 10), Decimal("77"), "Other"),
        )
        draft = builder.build(inputs=StatementInputs(
            person_id="drv-2", person_type=PersonType.DRIVER,
            period_from=JUNE_FROM, period_to=JUNE_TO, revenues=revenues,
        ))

        assert len(draft.line_items) == 1
        assert draft.line_items[0].side == LineSide.REVENUE
        assert draft.total_revenue == Decimal("40.00")
        assert draft.net_due == Decimal("40.00")

    def test_empty_period(self, builder):
        draft = builder.build(inputs=StatementInputs(
            person_id="drv-2", person_type=PersonType.DRIVER,
            period_from=JUNE_FROM, period_to=JUNE_TO,
        ))
        assert draft.line_items == ()
        assert draft.net_due == Decimal("0.00")

    def test_inverted_period_rejected(self):
        with pytest.raises(ValueError):
            StatementInputs(
                person_id="drv-1", person_type=PersonType.DRIVER,
                period_from=JUNE_TO, period_to=JUNE_FROM,
            )


class TestUnrelatedTargets:
    """A person's statement never resolves targets billed to somebody else."""

    @pytest.fixture
    def builder_for(self, rate_book):
        def _build(master_data):
            return StatementBuilder(ChargeCalculator(rate_book, ApplicationTargetResolver(master_data)))
        return _build

    def test_other_owners_inactive_shift(self, builder_for, master_data_factory, june_usage):
        active = DateWindow(date(2023, 1, 1))
        md = master_data_factory(status_history=[
            ShiftStatusRecord("sh-1", True, active),
            ShiftStatusRecord("sh-2", True, active),
            ShiftStatusRecord("sh-3", True, DateWindow(date(2023, 1, 1), date(2024, 6, 9))),
            ShiftStatusRecord("sh-3", False, DateWindow(date(2024, 6, 10))),
        ])
        daily_sh3 = ExpenseCharge(
            charge_id=uuid4(), category_id="radio", rule=SpecificShiftRule("sh-3"),
            amount=Decimal("2.00"), billing_cadence=BillingCadence.DAILY,
            effective_from=date(2024, 1, 1),
        )
        builder = builder_for(md)

        draft = builder.build(inputs=StatementInputs(
            person_id="own-1", person_type=PersonType.OWNER,
            period_from=JUNE_FROM, period_to=JUNE_TO,
            charges=(daily_sh3,), usage=tuple(june_usage),
        ))

        assert [li.source for li in draft.line_items] == [LineSource.LEASE_INCOME]
        with pytest.raises(TargetNotFoundError):
            builder.build(inputs=StatementInputs(
                person_id="own-2", person_type=PersonType.OWNER,
                period_from=JUNE_FROM, period_to=JUNE_TO, charges=(daily_sh3,),
            ))

    def test_unowned_shift_under_all_active_shifts(self, builder_for, master_data_factory, shifts, june_usage):
        active = DateWindow(date(2023, 1, 1))
        fleet = shifts + [Shift("sh-9", "cab-3", ShiftType.NIGHT)]
        md = master_data_factory(
            shifts=fleet,
            status_history=[ShiftStatusRecord(s.shift_id, True, active) for s in fleet],
        )
        monthly_all = ExpenseCharge(
            charge_id=uuid4(), category_id="insurance", rule=AllActiveShiftsRule(),
            amount=Decimal("25.00"), billing_cadence=BillingCadence.MONTHLY,
            effective_from=date(2024, 1, 1),
        )
        builder = builder_for(md)

        driver = builder.build(inputs=StatementInputs(
            person_id="drv-1", person_type=PersonType.DRIVER,
            period_from=JUNE_FROM, period_to=JUNE_TO,
            charges=(monthly_all,), usage=tuple(june_usage),
        ))
        owner = builder.build(inputs=StatementInputs(
            person_id="own-1", person_type=PersonType.OWNER,
            period_from=JUNE_FROM, period_to=JUNE_TO,
            charges=(monthly_all,), usage=tuple(june_usage),
        ))

        assert [li.source for li in driver.line_items] == [LineSource.LEASE_CHARGE]
        assert sorted(
            li.target_id for li in owner.line_items if li.source == LineSource.RECURRING_EXPENSE
        ) == ["sh-1", "sh-2"]
        assert owner.total_expense == Decimal("50.00")


class TestDeterminism:

    def test_same_inputs_same_draft(self, builder, june_usage):
        inputs = StatementInputs(
            person_id="own-1", person_type=PersonType.OWNER,
            period_from=JUNE_FROM, period_to=JUNE_TO,
            charges=(_one_time(SpecificPersonRule("own-1"), "120.00"),),
            usage=tuple(june_usage),
        )
        assert builder.build(inputs=inputs) == builder.build(inputs=inputs)

    def test_input_order_does_not_change_lines(self, builder):
        a = _one_time(SpecificPersonRule("own-1"), "10.00", date(2024, 6, 20))
        b = _one_time(SpecificPersonRule("own-1"), "20.00", date(2024, 6, 2))

        first = builder.build(inputs=StatementInputs(
            person_id="own-1", person_type=PersonType.OWNER,
            period_from=JUNE_FROM, period_to=JUNE_TO, charges=(a, b),
        ))
        second = builder.build(inputs=StatementInputs(
            person_id="own-1", person_type=PersonType.OWNER,
            period_from=JUNE_FROM, period_to=JUNE_TO, charges=(b, a),
        ))

        assert first.line_items == second.line_items
        assert [li.occurred_on for li in first.line_items] == [date(2024, 6, 2), date(2024, 6, 20)]

    def test_order_line_items_numbers_from_one(self):
        lines = [
            LineItem(LineSide.REVENUE, LineSource.REVENUE, "b", Decimal("1"), date(2024, 6, 2)),
            LineItem(LineSide.EXPENSE, LineSource.ONE_TIME_EXPENSE, "a", Decimal("1"), date(2024, 6, 2)),
            LineItem(LineSide.EXPENSE, LineSource.ONE_TIME_EXPENSE, "z", Decimal("1"), date(2024, 6, 1)),
        ]
        ordered = order_line_items(lines)
        assert [li.line_no for li in ordered] == [1, 2, 3]
        assert [li.description for li in ordered] == ["z", "a", "b"]
