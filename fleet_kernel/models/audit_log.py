"""
Module: fleet_kernel.models.audit_log
Responsibility: ORM persistence for the per-statement settlement audit trail.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Entries are append-only; no UPDATE or DELETE (db/immutability.py).
    - ``seq`` is contiguous per statement starting at 1.
    - hash = H(statement_id | seq | change_type | payload_hash | prev_hash),
      with prev_hash NULL only for the first entry of a statement.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - AuditChainBrokenError when StatementAuditor.verify_chain finds a
      mismatch.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from fleet_kernel.db.base import Base, UUIDString


class StatementAuditLogModel(Base):
    """
    One settlement lifecycle event of a statement.

    Contract:
        Written only by StatementAuditor in the same flush as the change it
        records, so the two succeed or fail together.
    """

    __tablename__ = "statement_audit_log"

    __table_args__ = (
        UniqueConstraint("statement_id", "seq", name="uq_audit_statement_seq"),
        Index("idx_audit_change_type", "change_type"),
    )

    statement_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    seq: Mapped[int] = mapped_column(Integer, nullable=False)

    change_type: Mapped[str] = mapped_column(String(30), nullable=False)

    previous_status: Mapped[str | None] = mapped_column(String(20), nullable=True)

    new_status: Mapped[str] = mapped_column(String(20), nullable=False)

    changed_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    changed_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    # Amounts and ids relevant to the change (payment id, totals, changed fields)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    hash: Mapped[str] = mapped_column(String(64), nullable=False)
