"""
fleet_services.settlement_service -- applies settlement transitions.

Responsibility:
    Loads the statement row, asks the pure SettlementStateMachine for the
    transition, applies it together with any payment change, appends the
    audit entry and flushes once.  Status change, payment row, totals and
    audit entry therefore succeed or fail together in the caller's
    transaction.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

Invariants enforced:
    - Payment application and reversal read the statement FOR UPDATE;
      concurrent payments against one statement serialize.  The
      ``row_version`` column additionally rejects a write based on a stale
      read (OptimisticLockError).
    - ``net_due`` is always re-derived from the stored totals and
      ``paid_amount``; it is never adjusted incrementally.
    - Payments are reversed, never deleted.

Failure modes:
    - StatementNotFoundError / PaymentNotFoundError.
    - InvalidTransitionError, EmptyStatementError, PendingPaymentsError,
      PaymentNotReversibleError, ReasonRequiredError from the state machine.
    - OptimisticLockError on a stale or concurrent write.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from fleet_kernel.domain.clock import Clock, SystemClock
from fleet_kernel.domain.dtos import (
    AuditChangeType,
    PaymentInfo,
    PaymentStatus,
    PersonType,
    StatementInfo,
    StatementStatus,
)
from fleet_kernel.domain.values import ZERO, quantize_amount
from fleet_kernel.exceptions import (
    InvalidAmountError,
    InvalidTransitionError,
    OptimisticLockError,
    PaymentNotFoundError,
    StatementNotFoundError,
)
from fleet_kernel.logging_config import LogContext, get_logger
from fleet_kernel.models.statement import StatementModel, StatementPaymentModel
from fleet_kernel.selectors.statement_selector import payment_to_dto, statement_to_dto
from fleet_kernel.services.sequence_service import SequenceService
from fleet_kernel.services.statement_auditor import StatementAuditor
from fleet_engines.settlement import (
    SettlementEvent,
    SettlementStateMachine,
    Transition,
    allowed_events,
)
from fleet_engines.statement_builder import compute_net_due

logger = get_logger("services.settlement")


def _completed_total(row: StatementModel) -> Decimal:
    return quantize_amount(
        sum((p.amount for p in row.payments if p.status == PaymentStatus.COMPLETED.value), ZERO)
    )


class SettlementService:
    """
    Settlement lifecycle of persisted statements.

    Contract:
        Every public method performs exactly one transition (or raises
        before writing anything) and flushes, never commits.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()
        self._auditor = StatementAuditor(session, self._clock)
        self._sequence = SequenceService(session)

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _load(self, statement_id: UUID, for_update: bool = False) -> StatementModel:
        stmt = select(StatementModel).where(StatementModel.id == statement_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        row = self._session.execute(stmt).scalar_one_or_none()
        if row is None:
            raise StatementNotFoundError(str(statement_id))
        return row

    @staticmethod
    def _check_version(row: StatementModel, expected_version: int | None) -> None:
        if expected_version is not None and row.row_version != expected_version:
            raise OptimisticLockError(str(row.id), expected_version)

    def _payment(self, row: StatementModel, payment_id: UUID) -> StatementPaymentModel:
        for payment in row.payments:
            if payment.id == payment_id:
                return payment
        raise PaymentNotFoundError(str(payment_id), str(row.id))

    def _commit_transition(
        self,
        row: StatementModel,
        transition: Transition,
        actor_id: UUID,
        reason: str | None = None,
        payload: dict | None = None,
    ) -> None:
        row.status = transition.new_status.value
        row.updated_by_id = actor_id
        try:
            self._session.flush()
        except StaleDataError as exc:
            raise OptimisticLockError(str(row.id)) from exc
        self._auditor.record(
            statement_id=row.id,
            change_type=transition.change_type,
            previous_status=transition.previous_status,
            new_status=transition.new_status,
            actor_id=actor_id,
            reason=reason,
            payload=payload,
        )

    def _rederive(self, row: StatementModel) -> None:
        row.paid_amount = _completed_total(row)
        row.net_due = compute_net_due(
            PersonType(row.person_type),
            row.previous_balance,
            row.total_expense,
            row.total_revenue,
            row.paid_amount,
        )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def post(self, statement_id: UUID, actor_id: UUID) -> StatementInfo:
        """DRAFT -> POSTED.  Freezes line items."""
        row = self._load(statement_id)
        transition = SettlementStateMachine(row.id).post(
            StatementStatus(row.status), len(row.line_items),
        )
        row.posted_at = self._clock.now()
        row.posted_by_id = actor_id
        self._commit_transition(
            row, transition, actor_id,
            payload={"net_due": row.net_due, "line_count": len(row.line_items)},
        )
        logger.info(
            "statement_posted",
            extra={"statement_id": str(row.id), "person_id": row.person_id, "net_due": row.net_due},
        )
        return statement_to_dto(row)

    def lock(self, statement_id: UUID, actor_id: UUID) -> StatementInfo:
        """POSTED -> LOCKED, refused while a payment is still pending."""
        row = self._load(statement_id, for_update=True)
        pending = sum(1 for p in row.payments if p.status == PaymentStatus.PENDING.value)
        transition = SettlementStateMachine(row.id).lock(StatementStatus(row.status), pending)
        row.locked_at = self._clock.now()
        row.locked_by_id = actor_id
        self._commit_transition(row, transition, actor_id)
        logger.info("statement_locked", extra={"statement_id": str(row.id)})
        return statement_to_dto(row)

    def archive(self, statement_id: UUID, reason: str, actor_id: UUID) -> StatementInfo:
        row = self._load(statement_id, for_update=True)
        transition = SettlementStateMachine(row.id).archive(StatementStatus(row.status), reason)
        row.archived_reason = reason
        self._commit_transition(row, transition, actor_id, reason=reason)
        logger.info(
            "statement_archived",
            extra={"statement_id": str(row.id), "reason": reason},
        )
        return statement_to_dto(row)

    def cancel(self, statement_id: UUID, actor_id: UUID, reason: str | None = None) -> StatementInfo:
        row = self._load(statement_id)
        transition = SettlementStateMachine(row.id).cancel(StatementStatus(row.status))
        self._commit_transition(row, transition, actor_id, reason=reason)
        logger.info("statement_cancelled", extra={"statement_id": str(row.id)})
        return statement_to_dto(row)

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def _new_payment(
        self,
        row: StatementModel,
        amount: Decimal,
        payment_date: date,
        method: str,
        status: PaymentStatus,
        actor_id: UUID,
        reference: str | None,
    ) -> StatementPaymentModel:
        seq = self._sequence.next_value(SequenceService.PAYMENT)
        payment = StatementPaymentModel(
            payment_number=f"STPAY-{payment_date:%Y%m%d}-{seq:06d}",
            amount=amount,
            payment_date=payment_date,
            method=method,
            reference=reference,
            status=status.value,
            created_by_id=actor_id,
        )
        row.payments.append(payment)
        return payment

    def apply_payment(
        self,
        statement_id: UUID,
        amount: Decimal,
        payment_date: date,
        method: str,
        actor_id: UUID,
        reference: str | None = None,
        expected_version: int | None = None,
    ) -> PaymentInfo:
        """
        Record a COMPLETED payment on a LOCKED statement.

        ``paid_amount``, ``net_due``, the status (PAID once the total owed
        is covered) and one PAYMENT_APPLIED audit entry are written in a
        single flush.
        """
        amount = quantize_amount(amount)
        with LogContext.bind(statement_id=statement_id, actor_id=actor_id):
            row = self._load(statement_id, for_update=True)
            self._check_version(row, expected_version)
            machine = SettlementStateMachine(row.id)
            paid_after = _completed_total(row) + amount
            transition = machine.apply_payment(
                StatementStatus(row.status), amount, paid_after, row.total_owed,
            )

            payment = self._new_payment(
                row, amount, payment_date, method, PaymentStatus.COMPLETED, actor_id, reference,
            )
            self._rederive(row)
            self._commit_transition(
                row, transition, actor_id,
                payload={
                    "payment_number": payment.payment_number,
                    "amount": amount,
                    "paid_amount": row.paid_amount,
                    "net_due": row.net_due,
                },
            )
            logger.info(
                "payment_applied",
                extra={
                    "statement_id": str(row.id),
                    "payment_id": str(payment.id),
                    "amount": amount,
                    "paid_amount": row.paid_amount,
                    "net_due": row.net_due,
                    "new_status": row.status,
                },
            )
            return payment_to_dto(payment)

    def register_pending_payment(
        self,
        statement_id: UUID,
        amount: Decimal,
        payment_date: date,
        method: str,
        actor_id: UUID,
        reference: str | None = None,
    ) -> PaymentInfo:
        """
        Record a payment that has not cleared yet.

        Pending payments do not count towards ``paid_amount`` and block
        ``lock`` until confirmed.
        """
        amount = quantize_amount(amount)
        if amount <= ZERO:
            raise InvalidAmountError("payment amount", amount, "must be positive")
        row = self._load(statement_id, for_update=True)
        status = StatementStatus(row.status)
        if status not in (StatementStatus.POSTED, StatementStatus.LOCKED):
            raise InvalidTransitionError(str(row.id), status.value, "register_pending_payment")
        payment = self._new_payment(
            row, amount, payment_date, method, PaymentStatus.PENDING, actor_id, reference,
        )
        self._session.flush()
        logger.info(
            "payment_registered_pending",
            extra={"statement_id": str(row.id), "payment_id": str(payment.id), "amount": amount},
        )
        return payment_to_dto(payment)

    def confirm_payment(
        self,
        statement_id: UUID,
        payment_id: UUID,
        actor_id: UUID,
    ) -> PaymentInfo:
        """
        PENDING -> COMPLETED.

        On a LOCKED statement this is applied like ``apply_payment``.  On a
        POSTED statement the payment clears in place (status unchanged),
        which is what releases a ``lock`` blocked by it.
        """
        row = self._load(statement_id, for_update=True)
        payment = self._payment(row, payment_id)
        if payment.status != PaymentStatus.PENDING.value:
            raise InvalidTransitionError(str(payment_id), payment.status, "confirm_payment")
        status = StatementStatus(row.status)
        if status == StatementStatus.POSTED:
            transition = Transition(status, status, AuditChangeType.PAYMENT_APPLIED)
        else:
            paid_after = _completed_total(row) + payment.amount
            transition = SettlementStateMachine(row.id).apply_payment(
                status, payment.amount, paid_after, row.total_owed,
            )
        payment.status = PaymentStatus.COMPLETED.value
        payment.updated_by_id = actor_id
        self._rederive(row)
        self._commit_transition(
            row, transition, actor_id,
            payload={
                "payment_number": payment.payment_number,
                "amount": payment.amount,
                "paid_amount": row.paid_amount,
                "net_due": row.net_due,
            },
        )
        logger.info(
            "payment_confirmed",
            extra={"statement_id": str(row.id), "payment_id": str(payment_id)},
        )
        return payment_to_dto(payment)

    def reverse_payment(
        self,
        statement_id: UUID,
        payment_id: UUID,
        reason: str,
        actor_id: UUID,
        expected_version: int | None = None,
    ) -> PaymentInfo:
        """
        Reverse a COMPLETED payment.

        The statement returns to LOCKED unless its remaining payments still
        cover the total owed.  One PAYMENT_REVERSED audit entry.
        """
        with LogContext.bind(statement_id=statement_id, actor_id=actor_id):
            row = self._load(statement_id, for_update=True)
            self._check_version(row, expected_version)
            payment = self._payment(row, payment_id)
            paid_after = _completed_total(row)
            if payment.status == PaymentStatus.COMPLETED.value:
                paid_after -= payment.amount
            transition = SettlementStateMachine(row.id).reverse_payment(
                StatementStatus(row.status),
                str(payment_id),
                PaymentStatus(payment.status),
                paid_after,
                row.total_owed,
            )

            payment.status = PaymentStatus.REVERSED.value
            payment.reversed_at = self._clock.now()
            payment.reversal_reason = reason
            payment.updated_by_id = actor_id
            self._rederive(row)
            self._commit_transition(
                row, transition, actor_id, reason=reason,
                payload={
                    "payment_number": payment.payment_number,
                    "amount": payment.amount,
                    "paid_amount": row.paid_amount,
                    "net_due": row.net_due,
                },
            )
            logger.info(
                "payment_reversed",
                extra={
                    "statement_id": str(row.id),
                    "payment_id": str(payment_id),
                    "amount": payment.amount,
                    "net_due": row.net_due,
                    "new_status": row.status,
                },
            )
            return payment_to_dto(payment)

    def allowed_events(self, statement_id: UUID) -> frozenset[SettlementEvent]:
        return allowed_events(StatementStatus(self._load(statement_id).status))
