"""
ExpenseSelector -- expense charges and revenue records relevant to a period.
"""

from datetime import date

from sqlalchemy import and_, or_, select

from fleet_kernel.domain.application_rule import rule_from_dict
from fleet_kernel.domain.dtos import BillingCadence, ExpenseCharge, RevenueRecord
from fleet_kernel.models.expense import ExpenseChargeModel, RevenueRecordModel
from fleet_kernel.selectors.base import BaseSelector


def expense_to_dto(row: ExpenseChargeModel) -> ExpenseCharge:
    return ExpenseCharge(
        charge_id=row.id,
        category_id=row.category_id,
        rule=rule_from_dict(row.application_rule),
        amount=row.amount,
        billing_cadence=BillingCadence(row.billing_cadence) if row.billing_cadence else None,
        description=row.description,
        effective_from=row.effective_from,
        effective_to=row.effective_to,
        occurred_on=row.occurred_on,
        active=row.is_active,
    )


def revenue_to_dto(row: RevenueRecordModel) -> RevenueRecord:
    return RevenueRecord(
        revenue_id=row.id,
        person_id=row.person_id,
        revenue_date=row.revenue_date,
        amount=row.amount,
        description=row.description,
        category=row.category,
    )


class ExpenseSelector(BaseSelector[ExpenseChargeModel]):
    """Read-only queries over expense charges and revenue records."""

    def charges_for_period(self, period_from: date, period_to: date) -> tuple[ExpenseCharge, ...]:
        """Active charges whose window or occurrence date touches the period."""
        recurring = and_(
            ExpenseChargeModel.occurred_on.is_(None),
            ExpenseChargeModel.effective_from <= period_to,
            or_(
                ExpenseChargeModel.effective_to.is_(None),
                ExpenseChargeModel.effective_to >= period_from,
            ),
        )
        one_time = ExpenseChargeModel.occurred_on.between(period_from, period_to)
        rows = self.session.execute(
            select(ExpenseChargeModel)
            .where(ExpenseChargeModel.is_active.is_(True))
            .where(or_(recurring, one_time))
            .order_by(ExpenseChargeModel.created_at, ExpenseChargeModel.id)
        ).scalars().all()
        return tuple(expense_to_dto(r) for r in rows)

    def get_charge(self, charge_id) -> ExpenseCharge | None:
        row = self.session.get(ExpenseChargeModel, charge_id)
        return expense_to_dto(row) if row else None

    def revenue_for(
        self, person_id: str, period_from: date, period_to: date,
    ) -> tuple[RevenueRecord, ...]:
        rows = self.session.execute(
            select(RevenueRecordModel)
            .where(RevenueRecordModel.person_id == person_id)
            .where(RevenueRecordModel.revenue_date.between(period_from, period_to))
            .order_by(RevenueRecordModel.revenue_date, RevenueRecordModel.id)
        ).scalars().all()
        return tuple(revenue_to_dto(r) for r in rows)
