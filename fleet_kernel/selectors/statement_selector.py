"""
StatementSelector -- read-only statement, payment and audit lookups.

Supports the two access paths the persistence boundary must serve
efficiently: by (person, period) and by status.  Both are backed by indexes
declared on StatementModel.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select

from fleet_kernel.domain.dtos import (
    AuditLogEntryInfo,
    LineItem,
    LineSide,
    LineSource,
    PaymentInfo,
    PaymentStatus,
    PersonType,
    StatementInfo,
    StatementStatus,
)
from fleet_kernel.models.statement import (
    StatementLineItemModel,
    StatementModel,
    StatementPaymentModel,
)
from fleet_kernel.selectors.base import BaseSelector
from fleet_kernel.services.statement_auditor import StatementAuditor

# Statements that no longer count as a predecessor for balance continuity
_SUPERSEDED = (StatementStatus.ARCHIVED.value, StatementStatus.CANCELLED.value)


def line_item_to_dto(row: StatementLineItemModel) -> LineItem:
    return LineItem(
        side=LineSide(row.side),
        source=LineSource(row.source),
        description=row.description,
        amount=row.amount,
        occurred_on=row.occurred_on,
        target_kind=row.target_kind,
        target_id=row.target_id,
        reference_id=row.reference_id,
        units=row.units,
        unit_rate=row.unit_rate,
        line_no=row.line_no,
    )


def statement_to_dto(row: StatementModel, include_lines: bool = True) -> StatementInfo:
    return StatementInfo(
        statement_id=row.id,
        person_id=row.person_id,
        person_type=PersonType(row.person_type),
        period_from=row.period_from,
        period_to=row.period_to,
        version=row.version,
        status=StatementStatus(row.status),
        previous_balance=row.previous_balance,
        total_expense=row.total_expense,
        total_revenue=row.total_revenue,
        paid_amount=row.paid_amount,
        total_owed=row.total_owed,
        net_due=row.net_due,
        line_items=tuple(line_item_to_dto(li) for li in row.line_items) if include_lines else (),
        parent_statement_id=row.parent_statement_id,
        posted_at=row.posted_at,
        posted_by=row.posted_by_id,
        locked_at=row.locked_at,
        locked_by=row.locked_by_id,
        archived_reason=row.archived_reason,
    )


def payment_to_dto(row: StatementPaymentModel) -> PaymentInfo:
    return PaymentInfo(
        payment_id=row.id,
        statement_id=row.statement_id,
        payment_number=row.payment_number,
        amount=row.amount,
        payment_date=row.payment_date,
        method=row.method,
        status=PaymentStatus(row.status),
        reference=row.reference,
        reversal_reason=row.reversal_reason,
    )


class StatementSelector(BaseSelector[StatementModel]):
    """Read-only statement queries."""

    def get(self, statement_id: UUID) -> StatementInfo | None:
        row = self.session.get(StatementModel, statement_id)
        return statement_to_dto(row) if row else None

    def find_for_period(
        self, person_id: str, period_from: date, period_to: date,
    ) -> StatementInfo | None:
        """Highest version for the (person, period) key, whatever its status."""
        row = self.session.execute(
            select(StatementModel)
            .where(StatementModel.person_id == person_id)
            .where(StatementModel.period_from == period_from)
            .where(StatementModel.period_to == period_to)
            .order_by(StatementModel.version.desc())
            .limit(1)
        ).scalar_one_or_none()
        return statement_to_dto(row) if row else None

    def versions_for_period(
        self, person_id: str, period_from: date, period_to: date,
    ) -> tuple[StatementInfo, ...]:
        rows = self.session.execute(
            select(StatementModel)
            .where(StatementModel.person_id == person_id)
            .where(StatementModel.period_from == period_from)
            .where(StatementModel.period_to == period_to)
            .order_by(StatementModel.version)
        ).scalars().all()
        return tuple(statement_to_dto(r, include_lines=False) for r in rows)

    def list_by_status(self, status: StatementStatus) -> tuple[StatementInfo, ...]:
        rows = self.session.execute(
            select(StatementModel)
            .where(StatementModel.status == status.value)
            .order_by(StatementModel.period_from, StatementModel.person_id, StatementModel.version)
        ).scalars().all()
        return tuple(statement_to_dto(r, include_lines=False) for r in rows)

    def latest_before(self, person_id: str, before: date) -> StatementInfo | None:
        """
        Most recent live statement of the person ending before ``before``.

        Archived and cancelled statements are skipped: a revision archives its
        parent, and the revision is the predecessor that counts.
        """
        row = self.session.execute(
            select(StatementModel)
            .where(StatementModel.person_id == person_id)
            .where(StatementModel.period_to < before)
            .where(StatementModel.status.not_in(_SUPERSEDED))
            .order_by(StatementModel.period_to.desc(), StatementModel.version.desc())
            .limit(1)
        ).scalar_one_or_none()
        return statement_to_dto(row, include_lines=False) if row else None

    def payments(self, statement_id: UUID) -> tuple[PaymentInfo, ...]:
        rows = self.session.execute(
            select(StatementPaymentModel)
            .where(StatementPaymentModel.statement_id == statement_id)
            .order_by(StatementPaymentModel.payment_number)
        ).scalars().all()
        return tuple(payment_to_dto(r) for r in rows)

    def audit_trail(self, statement_id: UUID) -> tuple[AuditLogEntryInfo, ...]:
        return StatementAuditor(self.session).trail(statement_id)
