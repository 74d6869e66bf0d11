"""
StatementAuditor -- hash-chained settlement audit trail.

Responsibility:
    Appends one immutable audit entry per statement lifecycle change and
    validates the per-statement hash chain.

Architecture position:
    Kernel > Services.  Called by the statement and settlement services in
    the same flush as the change being recorded.

Invariants enforced:
    - Entries are append-only (ORM listener on StatementAuditLogModel).
    - ``seq`` is contiguous per statement; the (statement_id, seq) unique
      constraint rejects a concurrent writer that read the same tail.
    - hash = H(statement_id | seq | change_type | payload_hash | prev_hash).

Failure modes:
    - AuditChainBrokenError from ``verify_chain`` on any mismatch.
"""

from typing import Any
from uuid import UUID

from sqlalchemy import select

from fleet_kernel.domain.clock import Clock, SystemClock
from fleet_kernel.domain.dtos import AuditChangeType, AuditLogEntryInfo, StatementStatus
from fleet_kernel.exceptions import AuditChainBrokenError
from fleet_kernel.logging_config import get_logger
from fleet_kernel.models.audit_log import StatementAuditLogModel
from fleet_kernel.services.base import BaseService
from fleet_kernel.utils.hashing import hash_audit_entry, hash_payload, to_json_safe

logger = get_logger("services.statement_auditor")


def _to_dto(row: StatementAuditLogModel) -> AuditLogEntryInfo:
    return AuditLogEntryInfo(
        entry_id=row.id,
        statement_id=row.statement_id,
        seq=row.seq,
        change_type=AuditChangeType(row.change_type),
        previous_status=StatementStatus(row.previous_status) if row.previous_status else None,
        new_status=StatementStatus(row.new_status),
        changed_by=row.changed_by_id,
        changed_at=row.changed_at,
        reason=row.reason,
        payload=dict(row.payload or {}),
        prev_hash=row.prev_hash,
        hash=row.hash,
    )


class StatementAuditor(BaseService[StatementAuditLogModel]):
    """
    Writer and verifier of the statement audit trail.

    Guarantees:
        - ``record`` flushes exactly one entry and returns its DTO.
        - ``verify_chain`` returns True or raises; it never repairs.
    """

    def __init__(self, session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def _last_entry(self, statement_id: UUID) -> StatementAuditLogModel | None:
        return self.session.execute(
            select(StatementAuditLogModel)
            .where(StatementAuditLogModel.statement_id == statement_id)
            .order_by(StatementAuditLogModel.seq.desc())
            .limit(1)
        ).scalar_one_or_none()

    def record(
        self,
        statement_id: UUID,
        change_type: AuditChangeType,
        previous_status: StatementStatus | None,
        new_status: StatementStatus,
        actor_id: UUID,
        reason: str | None = None,
        payload: dict[str, Any] | None = None,
    ) -> AuditLogEntryInfo:
        last = self._last_entry(statement_id)
        seq = 1 if last is None else last.seq + 1
        prev_hash = None if last is None else last.hash

        payload_data = to_json_safe(payload or {})
        payload_hash = hash_payload(payload_data)
        entry_hash = hash_audit_entry(
            statement_id=str(statement_id),
            seq=seq,
            change_type=change_type.value,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
        )

        row = StatementAuditLogModel(
            statement_id=statement_id,
            seq=seq,
            change_type=change_type.value,
            previous_status=previous_status.value if previous_status else None,
            new_status=new_status.value,
            changed_by_id=actor_id,
            changed_at=self._clock.now(),
            reason=reason,
            payload=payload_data,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
            hash=entry_hash,
        )
        self.session.add(row)
        self.session.flush()

        logger.info(
            "statement_audit_recorded",
            extra={
                "statement_id": str(statement_id),
                "seq": seq,
                "change_type": change_type.value,
                "previous_status": previous_status.value if previous_status else None,
                "new_status": new_status.value,
            },
        )
        return _to_dto(row)

    def trail(self, statement_id: UUID) -> tuple[AuditLogEntryInfo, ...]:
        rows = self.session.execute(
            select(StatementAuditLogModel)
            .where(StatementAuditLogModel.statement_id == statement_id)
            .order_by(StatementAuditLogModel.seq)
        ).scalars().all()
        return tuple(_to_dto(r) for r in rows)

    def verify_chain(self, statement_id: UUID) -> bool:
        """
        Recompute every hash of the statement's trail.

        Raises:
            AuditChainBrokenError: on a payload, hash or linkage mismatch.
        """
        rows = self.session.execute(
            select(StatementAuditLogModel)
            .where(StatementAuditLogModel.statement_id == statement_id)
            .order_by(StatementAuditLogModel.seq)
        ).scalars().all()

        prev_hash = None
        for expected_seq, row in enumerate(rows, start=1):
            if row.seq != expected_seq or row.prev_hash != prev_hash:
                logger.critical(
                    "audit_chain_broken",
                    extra={"statement_id": str(statement_id), "seq": row.seq},
                )
                raise AuditChainBrokenError(
                    str(statement_id), row.seq, prev_hash or "GENESIS", row.prev_hash or "GENESIS",
                )
            payload_hash = hash_payload(row.payload or {})
            expected = hash_audit_entry(
                statement_id=str(statement_id),
                seq=row.seq,
                change_type=row.change_type,
                payload_hash=payload_hash,
                prev_hash=row.prev_hash,
            )
            if payload_hash != row.payload_hash or expected != row.hash:
                logger.critical(
                    "audit_chain_broken",
                    extra={"statement_id": str(statement_id), "seq": row.seq},
                )
                raise AuditChainBrokenError(str(statement_id), row.seq, expected, row.hash)
            prev_hash = row.hash
        return True
