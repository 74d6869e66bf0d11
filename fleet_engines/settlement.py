"""
SettlementStateMachine -- statement lifecycle transitions and guards.

Pure functions with deterministic behavior. No I/O.

    DRAFT ---post---> POSTED ---lock---> LOCKED ---apply_payment---> PAID
      |                 |                  ^  |                        |
      |                 |                  |  +--apply_payment (partial)
      |                 |                  +------reverse_payment-------+
      +--cancel--> CANCELLED
    DRAFT | POSTED | LOCKED ---archive(reason)---> ARCHIVED

The machine only decides.  It returns a Transition describing the status
change and the audit change type; SettlementService applies it to the row
and writes the audit entry in the same flush.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum

from fleet_kernel.domain.dtos import AuditChangeType, PaymentStatus, StatementStatus
from fleet_kernel.domain.values import ZERO
from fleet_kernel.exceptions import (
    EmptyStatementError,
    InvalidAmountError,
    InvalidTransitionError,
    PaymentNotReversibleError,
    PendingPaymentsError,
    ReasonRequiredError,
)
from fleet_kernel.logging_config import get_logger

logger = get_logger("engines.settlement")


class SettlementEvent(str, Enum):
    POST = "post"
    LOCK = "lock"
    APPLY_PAYMENT = "apply_payment"
    REVERSE_PAYMENT = "reverse_payment"
    ARCHIVE = "archive"
    CANCEL = "cancel"


_S = StatementStatus

SETTLEMENT_TRANSITIONS: dict[tuple[StatementStatus, SettlementEvent], frozenset[StatementStatus]] = {
    (_S.DRAFT, SettlementEvent.POST): frozenset({_S.POSTED}),
    (_S.POSTED, SettlementEvent.LOCK): frozenset({_S.LOCKED}),
    (_S.LOCKED, SettlementEvent.APPLY_PAYMENT): frozenset({_S.LOCKED, _S.PAID}),
    (_S.LOCKED, SettlementEvent.REVERSE_PAYMENT): frozenset({_S.LOCKED}),
    (_S.PAID, SettlementEvent.REVERSE_PAYMENT): frozenset({_S.LOCKED, _S.PAID}),
    (_S.DRAFT, SettlementEvent.ARCHIVE): frozenset({_S.ARCHIVED}),
    (_S.POSTED, SettlementEvent.ARCHIVE): frozenset({_S.ARCHIVED}),
    (_S.LOCKED, SettlementEvent.ARCHIVE): frozenset({_S.ARCHIVED}),
    (_S.DRAFT, SettlementEvent.CANCEL): frozenset({_S.CANCELLED}),
}

TERMINAL_STATUSES: frozenset[StatementStatus] = frozenset({_S.ARCHIVED, _S.CANCELLED})

_CHANGE_TYPES = {
    SettlementEvent.POST: AuditChangeType.POSTED,
    SettlementEvent.LOCK: AuditChangeType.LOCKED,
    SettlementEvent.APPLY_PAYMENT: AuditChangeType.PAYMENT_APPLIED,
    SettlementEvent.REVERSE_PAYMENT: AuditChangeType.PAYMENT_REVERSED,
    SettlementEvent.ARCHIVE: AuditChangeType.ARCHIVED,
    SettlementEvent.CANCEL: AuditChangeType.CANCELLED,
}


@dataclass(frozen=True)
class Transition:
    previous_status: StatementStatus
    new_status: StatementStatus
    change_type: AuditChangeType


def allowed_events(status: StatementStatus) -> frozenset[SettlementEvent]:
    return frozenset(event for (s, event) in SETTLEMENT_TRANSITIONS if s == status)


class SettlementStateMachine:
    """
    Guards for every lifecycle event of one statement.

    Contract:
        Each method either returns the Transition to apply or raises; it
        never mutates anything.  An event that is not in the table for the
        current status raises InvalidTransitionError.
    """

    def __init__(self, statement_id: str):
        self._statement_id = str(statement_id)

    def _transition(
        self,
        status: StatementStatus,
        event: SettlementEvent,
        target: StatementStatus,
    ) -> Transition:
        allowed = SETTLEMENT_TRANSITIONS.get((status, event))
        if allowed is None or target not in allowed:
            logger.warning(
                "statement_transition_rejected",
                extra={
                    "statement_id": self._statement_id,
                    "current_status": status.value,
                    "event": event.value,
                },
            )
            raise InvalidTransitionError(self._statement_id, status.value, event.value)
        return Transition(status, target, _CHANGE_TYPES[event])

    def _check_event(self, status: StatementStatus, event: SettlementEvent) -> None:
        if (status, event) not in SETTLEMENT_TRANSITIONS:
            raise InvalidTransitionError(self._statement_id, status.value, event.value)

    def post(self, status: StatementStatus, line_count: int) -> Transition:
        self._check_event(status, SettlementEvent.POST)
        if line_count <= 0:
            raise EmptyStatementError(self._statement_id)
        return self._transition(status, SettlementEvent.POST, _S.POSTED)

    def lock(self, status: StatementStatus, pending_payments: int) -> Transition:
        self._check_event(status, SettlementEvent.LOCK)
        if pending_payments:
            raise PendingPaymentsError(self._statement_id, pending_payments)
        return self._transition(status, SettlementEvent.LOCK, _S.LOCKED)

    def apply_payment(
        self,
        status: StatementStatus,
        amount: Decimal,
        paid_after: Decimal,
        total_owed: Decimal,
    ) -> Transition:
        """LOCKED -> PAID once ``paid_after >= total_owed``, else stays LOCKED."""
        self._check_event(status, SettlementEvent.APPLY_PAYMENT)
        if amount <= ZERO:
            raise InvalidAmountError("payment amount", amount, "must be positive")
        target = _S.PAID if paid_after >= total_owed else _S.LOCKED
        return self._transition(status, SettlementEvent.APPLY_PAYMENT, target)

    def reverse_payment(
        self,
        status: StatementStatus,
        payment_id: str,
        payment_status: PaymentStatus,
        paid_after: Decimal,
        total_owed: Decimal,
    ) -> Transition:
        """Back to LOCKED unless the remaining payments still cover the total."""
        self._check_event(status, SettlementEvent.REVERSE_PAYMENT)
        if payment_status != PaymentStatus.COMPLETED:
            raise PaymentNotReversibleError(str(payment_id), payment_status.value)
        target = _S.PAID if status == _S.PAID and paid_after >= total_owed else _S.LOCKED
        return self._transition(status, SettlementEvent.REVERSE_PAYMENT, target)

    def archive(self, status: StatementStatus, reason: str | None) -> Transition:
        self._check_event(status, SettlementEvent.ARCHIVE)
        if not reason or not reason.strip():
            raise ReasonRequiredError(self._statement_id, SettlementEvent.ARCHIVE.value)
        return self._transition(status, SettlementEvent.ARCHIVE, _S.ARCHIVED)

    def cancel(self, status: StatementStatus) -> Transition:
        return self._transition(status, SettlementEvent.CANCEL, _S.CANCELLED)
