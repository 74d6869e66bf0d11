"""
StatementBuilder -- aggregates a person's period into a statement draft.

Pure functions with deterministic behavior. No I/O.

Lines gathered for one person and period:

    - expense occurrences targeting the person, or targeting a shift the
      person owns on the occurrence date (shift charges go to the owner);
      targets billed to other people are never resolved
    - lease: LEASE_CHARGE for a driver on someone else's shift,
      LEASE_INCOME for the owner of that shift
    - per-unit rate charges and attribute surcharges billed to the person
    - the person's revenue records

Balance sign convention (kept as observed in production billing):

    owner   net_due = previous + expense - revenue - paid
    driver  net_due = previous + revenue - expense - paid

``total_owed`` is ``net_due`` before any payment.

Usage:
    builder = StatementBuilder(calculator)
    draft = builder.build(StatementInputs(person_id="D1", ...))
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal

from fleet_kernel.domain.dtos import (
    ExpenseCharge,
    LineItem,
    LineSide,
    LineSource,
    PersonType,
    RevenueRecord,
    StatementDraft,
)
from fleet_kernel.domain.master_data import UsageRecord
from fleet_kernel.domain.values import ZERO, DateWindow, quantize_amount
from fleet_kernel.logging_config import get_logger
from fleet_engines.charges import ChargeCalculator, PartyLine
from fleet_engines.target_resolver import shift_owner
from fleet_engines.tracer import traced_engine

logger = get_logger("engines.statement_builder")


def compute_net_due(
    person_type: PersonType,
    previous_balance: Decimal,
    total_expense: Decimal,
    total_revenue: Decimal,
    paid_amount: Decimal = ZERO,
) -> Decimal:
    if person_type == PersonType.OWNER:
        net = previous_balance + total_expense - total_revenue - paid_amount
    else:
        net = previous_balance + total_revenue - total_expense - paid_amount
    return quantize_amount(net)


def order_line_items(lines: Sequence[LineItem]) -> tuple[LineItem, ...]:
    """Deterministic order, numbered from 1."""
    ordered = sorted(lines, key=lambda li: li.sort_key())
    return tuple(replace(li, line_no=n) for n, li in enumerate(ordered, start=1))


@dataclass(frozen=True)
class StatementInputs:
    """Everything needed to build one statement, fetched before building."""

    person_id: str
    person_type: PersonType
    period_from: date
    period_to: date
    previous_balance: Decimal = ZERO
    charges: tuple[ExpenseCharge, ...] = ()
    usage: tuple[UsageRecord, ...] = ()
    revenues: tuple[RevenueRecord, ...] = ()

    def __post_init__(self) -> None:
        if self.period_to < self.period_from:
            raise ValueError(
                f"Statement period ends {self.period_to} before it starts {self.period_from}"
            )

    @property
    def period(self) -> DateWindow:
        return DateWindow(self.period_from, self.period_to)


class StatementBuilder:
    """Builds StatementDrafts from StatementInputs."""

    def __init__(self, calculator: ChargeCalculator):
        self._calculator = calculator

    @property
    def calculator(self) -> ChargeCalculator:
        return self._calculator

    @traced_engine("statement_builder", "1.0", fingerprint_fields=("inputs",))
    def build(self, inputs: StatementInputs) -> StatementDraft:
        """
        Raises:
            RateNotFoundError / TargetNotFoundError / OrphanedTargetError:
                any failure aborts the whole statement.
        """
        lines = list(self._expense_lines(inputs))
        lines.extend(self._rate_lines(inputs))
        lines.extend(self._revenue_lines(inputs))
        ordered = order_line_items(lines)

        total_expense = quantize_amount(
            sum((li.amount for li in ordered if li.side == LineSide.EXPENSE), ZERO)
        )
        total_revenue = quantize_amount(
            sum((li.amount for li in ordered if li.side == LineSide.REVENUE), ZERO)
        )
        previous = quantize_amount(inputs.previous_balance)
        net_due = compute_net_due(inputs.person_type, previous, total_expense, total_revenue)

        logger.debug(
            "statement_draft_built",
            extra={
                "person_id": inputs.person_id,
                "period_from": inputs.period_from,
                "period_to": inputs.period_to,
                "line_count": len(ordered),
                "total_expense": total_expense,
                "total_revenue": total_revenue,
                "net_due": net_due,
            },
        )
        return StatementDraft(
            person_id=inputs.person_id,
            person_type=inputs.person_type,
            period_from=inputs.period_from,
            period_to=inputs.period_to,
            previous_balance=previous,
            line_items=ordered,
            total_expense=total_expense,
            total_revenue=total_revenue,
            total_owed=net_due,
            net_due=net_due,
        )

    # ------------------------------------------------------------------

    def _expense_lines(self, inputs: StatementInputs):
        calc = self._calculator
        for charge in inputs.charges:
            yield from calc.compute_expense_occurrences(
                charge=charge, period=inputs.period, usage=inputs.usage,
                person_id=inputs.person_id,
            )

    def _rate_lines(self, inputs: StatementInputs):
        calc = self._calculator
        master = calc.target_resolver.master_data
        relevant = tuple(
            r for r in inputs.usage
            if inputs.period.contains(r.usage_date)
            and (
                r.driver_id == inputs.person_id
                or shift_owner(master, r.shift_id, r.usage_date) == inputs.person_id
            )
        )
        party_lines: list[PartyLine] = list(calc.compute_lease_lines(relevant))
        party_lines.extend(calc.compute_per_unit_charges(usage=relevant, period=inputs.period))

        if inputs.person_type == PersonType.OWNER:
            owned = sorted({
                o.shift_id
                for o in master.ownerships_of(inputs.person_id)
                if o.window.overlaps(inputs.period)
            })
            party_lines.extend(
                calc.compute_attribute_surcharges(shift_ids=owned, period=inputs.period)
            )

        for pl in party_lines:
            if pl.person_id == inputs.person_id:
                yield pl.line

    @staticmethod
    def _revenue_lines(inputs: StatementInputs):
        for record in inputs.revenues:
            if record.person_id != inputs.person_id:
                continue
            if not inputs.period.contains(record.revenue_date):
                continue
            yield LineItem(
                side=LineSide.REVENUE,
                source=LineSource.REVENUE,
                description=record.description or record.category,
                amount=record.amount,
                occurred_on=record.revenue_date,
                target_kind="person",
                target_id=record.person_id,
                reference_id=str(record.revenue_id),
            )
