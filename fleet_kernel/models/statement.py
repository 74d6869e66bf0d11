"""
Module: fleet_kernel.models.statement
Responsibility: ORM persistence for period statements, their line items and
    the payments applied to them.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - One statement per (person, period_from, period_to, version): the unique
      constraint turns a concurrent duplicate build into an IntegrityError.
    - ``row_version`` is the optimistic-lock column.  A flush against a stale
      row raises StaleDataError, surfaced as OptimisticLockError.
    - Line items only change while the statement is DRAFT; statements only
      leave the database while DRAFT (db/immutability.py).

Audit relevance:
    Status transitions are recorded separately in statement_audit_log; the
    posted_at/locked_at stamps here are a convenience copy for lookups.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    Numeric,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleet_kernel.db.base import Base, TrackedBase, UUIDString


class StatementModel(TrackedBase):
    """A period statement for one person."""

    __tablename__ = "statements"

    __table_args__ = (
        UniqueConstraint(
            "person_id", "period_from", "period_to", "version",
            name="uq_statement_person_period_version",
        ),
        Index("idx_statement_person_period", "person_id", "period_from", "period_to"),
        Index("idx_statement_status", "status"),
    )

    person_id: Mapped[str] = mapped_column(String(100), nullable=False)

    person_type: Mapped[str] = mapped_column(String(20), nullable=False)

    period_from: Mapped[date] = mapped_column(Date, nullable=False)
    period_to: Mapped[date] = mapped_column(Date, nullable=False)

    # Revision number; revisions link back through parent_statement_id
    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    parent_statement_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("statements.id"),
        nullable=True,
    )

    status: Mapped[str] = mapped_column(String(20), nullable=False)

    previous_balance: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    total_expense: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    total_revenue: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    paid_amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    # Balance before payments; PAID once paid_amount reaches it
    total_owed: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)
    net_due: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)

    posted_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    posted_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    locked_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    archived_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    row_version: Mapped[int] = mapped_column(Integer, nullable=False)

    line_items: Mapped[list["StatementLineItemModel"]] = relationship(
        back_populates="statement",
        cascade="all, delete-orphan",
        order_by="StatementLineItemModel.line_no",
    )

    payments: Mapped[list["StatementPaymentModel"]] = relationship(
        back_populates="statement",
        cascade="all, delete-orphan",
        order_by="StatementPaymentModel.payment_number",
    )

    __mapper_args__ = {"version_id_col": row_version}

    def __repr__(self) -> str:
        return (
            f"<Statement {self.person_id} {self.period_from}..{self.period_to} "
            f"v{self.version}: {self.status}>"
        )


class StatementLineItemModel(Base):
    """One billed line of a statement."""

    __tablename__ = "statement_line_items"

    __table_args__ = (
        UniqueConstraint("statement_id", "line_no", name="uq_line_item_no"),
    )

    statement_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("statements.id"),
        nullable=False,
    )

    line_no: Mapped[int] = mapped_column(Integer, nullable=False)

    side: Mapped[str] = mapped_column(String(20), nullable=False)

    source: Mapped[str] = mapped_column(String(30), nullable=False)

    description: Mapped[str] = mapped_column(String(255), nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)

    occurred_on: Mapped[date] = mapped_column(Date, nullable=False)

    target_kind: Mapped[str | None] = mapped_column(String(20), nullable=True)
    target_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Expense charge, rate or revenue record that produced the line
    reference_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    units: Mapped[Decimal | None] = mapped_column(nullable=True)
    unit_rate: Mapped[Decimal | None] = mapped_column(nullable=True)

    statement: Mapped[StatementModel] = relationship(back_populates="line_items")


class StatementPaymentModel(TrackedBase):
    """A payment applied to a statement.  Reversed, never deleted."""

    __tablename__ = "statement_payments"

    __table_args__ = (
        Index("idx_payment_statement", "statement_id"),
    )

    statement_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("statements.id"),
        nullable=False,
    )

    # STPAY-<yyyymmdd>-<seq>
    payment_number: Mapped[str] = mapped_column(String(40), nullable=False, unique=True)

    amount: Mapped[Decimal] = mapped_column(Numeric(18, 2), nullable=False)

    payment_date: Mapped[date] = mapped_column(Date, nullable=False)

    method: Mapped[str] = mapped_column(String(30), nullable=False)

    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False)

    reversed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    reversal_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)

    statement: Mapped[StatementModel] = relationship(back_populates="payments")
