"""
Module: fleet_kernel.models.expense
Responsibility: ORM persistence for expense charges and revenue records.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - ``application_rule`` is stored in its tagged dict form and never
      changes after insert (db/immutability.py).  Targets are resolved when a
      statement is built, not stored here.
"""

from datetime import date
from decimal import Decimal

from sqlalchemy import JSON, Boolean, Date, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from fleet_kernel.db.base import TrackedBase


class ExpenseChargeModel(TrackedBase):
    """Recurring (effective window) or one-time (occurred_on) expense."""

    __tablename__ = "expense_charges"

    __table_args__ = (
        Index("idx_expense_category", "category_id"),
        Index("idx_expense_window", "effective_from", "effective_to"),
        Index("idx_expense_occurred", "occurred_on"),
    )

    category_id: Mapped[str] = mapped_column(String(100), nullable=False)

    # {"kind": "...", <variant fields>}
    application_rule: Mapped[dict] = mapped_column(JSON, nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    # NULL for one-time charges
    billing_cadence: Mapped[str | None] = mapped_column(String(20), nullable=True)

    description: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    effective_from: Mapped[date | None] = mapped_column(Date, nullable=True)
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)

    # One-time charges only
    occurred_on: Mapped[date | None] = mapped_column(Date, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    @property
    def is_one_time(self) -> bool:
        return self.occurred_on is not None


class RevenueRecordModel(TrackedBase):
    """Revenue credited to one person on one date."""

    __tablename__ = "revenue_records"

    __table_args__ = (
        Index("idx_revenue_person_date", "person_id", "revenue_date"),
    )

    person_id: Mapped[str] = mapped_column(String(100), nullable=False)

    revenue_date: Mapped[date] = mapped_column(Date, nullable=False)

    amount: Mapped[Decimal] = mapped_column(nullable=False)

    description: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    category: Mapped[str] = mapped_column(String(50), nullable=False, default="other")
