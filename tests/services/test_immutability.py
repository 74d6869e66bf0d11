"""
Tests for the ORM immutability listeners.

Each test mutates a persisted row directly, bypassing the services, and
expects the flush to be refused before any SQL reaches the database.
"""

from datetime import date
from decimal import Decimal

import pytest

from fleet_kernel.domain.application_rule import AllOwnersRule, SpecificPersonRule
from fleet_kernel.domain.dtos import BillingCadence, ChargedTo, UnitType
from fleet_kernel.exceptions import ImmutabilityViolationError, StatementLockedError
from fleet_kernel.models.audit_log import StatementAuditLogModel
from fleet_kernel.models.expense import ExpenseChargeModel
from fleet_kernel.models.rate import RateDefinitionModel, RateOverrideModel
from fleet_kernel.models.statement import StatementLineItemModel, StatementModel

JUNE = (date(2024, 6, 1), date(2024, 6, 30))


@pytest.fixture
def posted(statement_service, settlement_service, actor_id):
    draft = statement_service.build("drv-1", *JUNE, actor_id)
    return settlement_service.post(draft.statement_id, actor_id)


class TestAuditLog:

    def test_entry_cannot_be_updated(self, session, posted):
        entry = session.query(StatementAuditLogModel).filter_by(
            statement_id=posted.statement_id, seq=1,
        ).one()

        entry.reason = "rewritten"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_entry_cannot_be_deleted(self, session, posted):
        entry = session.query(StatementAuditLogModel).filter_by(
            statement_id=posted.statement_id, seq=1,
        ).one()

        session.delete(entry)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestStatements:

    def test_draft_fields_may_change(self, session, statement_service, actor_id):
        draft = statement_service.build("drv-1", *JUNE, actor_id)
        row = session.get(StatementModel, draft.statement_id)

        row.total_expense = Decimal("1.00")
        session.flush()

    def test_financial_field_frozen_after_post(self, session, posted):
        row = session.get(StatementModel, posted.statement_id)

        row.total_expense = Decimal("1.00")
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "Statement"

    def test_posted_statement_cannot_be_deleted(self, session, posted):
        session.delete(session.get(StatementModel, posted.statement_id))
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_line_item_frozen_after_post(self, session, posted):
        line = session.query(StatementLineItemModel).filter_by(
            statement_id=posted.statement_id,
        ).first()

        line.amount = Decimal("0.01")
        with pytest.raises(StatementLockedError):
            session.flush()

    def test_line_item_cannot_be_added_after_post(self, session, posted):
        row = session.get(StatementModel, posted.statement_id)

        row.line_items.append(StatementLineItemModel(
            line_no=99,
            side="expense",
            source="one_time_expense",
            description="sneaked in",
            amount=Decimal("5.00"),
            occurred_on=date(2024, 6, 30),
        ))
        with pytest.raises(StatementLockedError):
            session.flush()


class TestRatesAndOverrides:

    @pytest.fixture
    def rate_row(self, session, rate_service, actor_id):
        rate = rate_service.create_rate(
            name="CLEANING",
            unit_type=UnitType.FLAT_PERIODIC,
            value=Decimal("12.00"),
            charged_to=ChargedTo.OWNER,
            billing_cadence=BillingCadence.MONTHLY,
            effective_from=date(2024, 1, 1),
            actor_id=actor_id,
        )
        return session.get(RateDefinitionModel, rate.rate_id)

    def test_effective_to_set_once(self, session, rate_row):
        rate_row.effective_to = date(2024, 6, 30)
        session.flush()

        rate_row.effective_to = date(2024, 7, 31)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_name_frozen(self, session, rate_row):
        rate_row.name = "DEEP_CLEANING"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_deactivation_allowed(self, session, rate_row):
        rate_row.is_active = False
        session.flush()

    def test_override_value_frozen(self, session, rate_row, override_service, actor_id):
        override = override_service.create_override(
            rate_row.id, "own-1", Decimal("10.00"), date(2024, 1, 1), actor_id,
        )
        row = session.get(RateOverrideModel, override.override_id)

        row.override_value = Decimal("8.00")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestExpenseCharges:

    def test_amount_frozen(self, session, expense_service, actor_id):
        charge = expense_service.create_recurring(
            "insurance", AllOwnersRule(), Decimal("30.00"),
            BillingCadence.MONTHLY, date(2024, 1, 1), actor_id,
        )
        row = session.get(ExpenseChargeModel, charge.charge_id)

        row.amount = Decimal("25.00")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_rule_frozen(self, session, expense_service, actor_id):
        charge = expense_service.create_recurring(
            "insurance", AllOwnersRule(), Decimal("30.00"),
            BillingCadence.MONTHLY, date(2024, 1, 1), actor_id,
        )
        row = session.get(ExpenseChargeModel, charge.charge_id)

        row.application_rule = {"kind": "specific_person", "person_id": "own-1"}
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_description_may_change(self, session, expense_service, actor_id):
        charge = expense_service.create_one_time(
            "repair", SpecificPersonRule("own-1"), Decimal("120.00"), date(2024, 6, 12), actor_id,
        )
        row = session.get(ExpenseChargeModel, charge.charge_id)

        row.description = "Windscreen"
        session.flush()
