"""
ExpenseService -- registration of recurring and one-time expense charges.

Responsibility:
    Validates an expense charge through its DTO (application rule variant,
    amount, window/occurrence consistency) and persists it.  Targets are
    NOT resolved here: the rule is stored and expanded each time a
    statement is built, so target sets follow master data changes.

Architecture position:
    Kernel > Services.  Flushes, never commits.

Invariants enforced:
    - The stored rule is the tagged dict of a validated variant.
    - A charge is "edited" only by ending its window or deactivating it;
      rule, amount and cadence are frozen (db/immutability.py).

Failure modes:
    - InvalidApplicationRuleError / InvalidAmountError / InvalidRateWindowError
      from DTO construction.
    - ExpenseChargeNotFoundError for an unknown id.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from fleet_kernel.domain.application_rule import ApplicationRule, describe_rule, rule_to_dict
from fleet_kernel.domain.dtos import BillingCadence, ExpenseCharge
from fleet_kernel.exceptions import ExpenseChargeNotFoundError, InvalidRateWindowError
from fleet_kernel.logging_config import get_logger
from fleet_kernel.models.expense import ExpenseChargeModel
from fleet_kernel.selectors.expense_selector import expense_to_dto
from fleet_kernel.services.base import BaseService

logger = get_logger("services.expense")


class ExpenseService(BaseService[ExpenseChargeModel]):
    """Write side of expense charges."""

    def create_recurring(
        self,
        category_id: str,
        rule: ApplicationRule,
        amount: Decimal,
        billing_cadence: BillingCadence,
        effective_from: date,
        actor_id: UUID,
        effective_to: date | None = None,
        description: str = "",
    ) -> ExpenseCharge:
        charge = ExpenseCharge(
            charge_id=uuid4(),
            category_id=category_id,
            rule=rule,
            amount=amount,
            billing_cadence=billing_cadence,
            description=description,
            effective_from=effective_from,
            effective_to=effective_to,
        )
        return self._persist(charge, actor_id)

    def create_one_time(
        self,
        category_id: str,
        rule: ApplicationRule,
        amount: Decimal,
        occurred_on: date,
        actor_id: UUID,
        description: str = "",
    ) -> ExpenseCharge:
        charge = ExpenseCharge(
            charge_id=uuid4(),
            category_id=category_id,
            rule=rule,
            amount=amount,
            description=description,
            occurred_on=occurred_on,
        )
        return self._persist(charge, actor_id)

    def _persist(self, charge: ExpenseCharge, actor_id: UUID) -> ExpenseCharge:
        row = ExpenseChargeModel(
            id=charge.charge_id,
            category_id=charge.category_id,
            application_rule=rule_to_dict(charge.rule),
            amount=charge.amount,
            billing_cadence=charge.billing_cadence.value if charge.billing_cadence else None,
            description=charge.description,
            effective_from=charge.effective_from,
            effective_to=charge.effective_to,
            occurred_on=charge.occurred_on,
            is_active=True,
            created_by_id=actor_id,
        )
        self.session.add(row)
        self.session.flush()

        logger.info(
            "expense_charge_created",
            extra={
                "charge_id": str(row.id),
                "category_id": charge.category_id,
                "rule": describe_rule(charge.rule),
                "amount": str(charge.amount),
                "one_time": charge.is_one_time,
            },
        )
        return expense_to_dto(row)

    def _get_row(self, charge_id: UUID) -> ExpenseChargeModel:
        row = self.session.get(ExpenseChargeModel, charge_id)
        if row is None:
            raise ExpenseChargeNotFoundError(str(charge_id))
        return row

    def end_charge(self, charge_id: UUID, effective_to: date, actor_id: UUID) -> ExpenseCharge:
        """Close a recurring charge's window; later periods no longer bill it."""
        row = self._get_row(charge_id)
        label = f"expense {charge_id}"
        if row.occurred_on is not None:
            raise InvalidRateWindowError(
                label, row.occurred_on, effective_to,
                reason="one-time charges have no window to end",
            )
        if effective_to < row.effective_from:
            raise InvalidRateWindowError(label, row.effective_from, effective_to)

        row.effective_to = effective_to
        row.updated_by_id = actor_id
        self.session.flush()
        logger.info(
            "expense_charge_ended",
            extra={"charge_id": str(charge_id), "effective_to": effective_to.isoformat()},
        )
        return expense_to_dto(row)

    def deactivate(self, charge_id: UUID, actor_id: UUID) -> ExpenseCharge:
        row = self._get_row(charge_id)
        row.is_active = False
        row.updated_by_id = actor_id
        self.session.flush()
        logger.info("expense_charge_deactivated", extra={"charge_id": str(charge_id)})
        return expense_to_dto(row)
