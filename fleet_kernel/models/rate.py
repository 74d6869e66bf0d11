"""
Module: fleet_kernel.models.rate
Responsibility: ORM persistence for versioned base rates and owner-scoped
    overrides.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Rate versions are append-only: ``value``, ``name`` and the window start
      never change; ``effective_to`` may be set exactly once (ORM listener in
      db/immutability.py).
    - Override ``priority`` is stored for querying only; it is always derived
      from the scope columns by the service that inserts the row.
    - ``seq`` is allocated by SequenceService and orders rows by creation.

Audit relevance:
    A rate that was ever effective is never deleted, so any statement can be
    recomputed from the rates that were in force when it was built.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import BigInteger, Boolean, Date, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from fleet_kernel.db.base import TrackedBase, UUIDString


class RateDefinitionModel(TrackedBase):
    """One version of a named base rate."""

    __tablename__ = "rate_definitions"

    __table_args__ = (
        Index("idx_rate_name_window", "name", "effective_from"),
        Index("idx_rate_seq", "seq", unique=True),
    )

    # Business name shared by all versions (e.g. "LEASE_MILEAGE")
    name: Mapped[str] = mapped_column(String(100), nullable=False)

    unit_type: Mapped[str] = mapped_column(String(30), nullable=False)

    # Per-unit rates keep 4 fractional digits
    value: Mapped[Decimal] = mapped_column(nullable=False)

    charged_to: Mapped[str] = mapped_column(String(20), nullable=False)

    billing_cadence: Mapped[str] = mapped_column(String(20), nullable=False)

    effective_from: Mapped[date] = mapped_column(Date, nullable=False)

    # NULL means open-ended; set once when the version is superseded
    effective_to: Mapped[date | None] = mapped_column(Date, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False)

    # Only used by ATTRIBUTE_SURCHARGE rates
    attribute_type_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)

    overrides: Mapped[list["RateOverrideModel"]] = relationship(
        back_populates="rate",
    )

    def __repr__(self) -> str:
        end = self.effective_to.isoformat() if self.effective_to else "open"
        return f"<RateDefinition {self.name} {self.effective_from}..{end}: {self.value}>"


class RateOverrideModel(TrackedBase):
    """Owner-scoped replacement value for one rate version."""

    __tablename__ = "rate_overrides"

    __table_args__ = (
        Index("idx_override_rate_owner", "rate_id", "owner_id"),
        Index("idx_override_seq", "seq", unique=True),
    )

    rate_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("rate_definitions.id"),
        nullable=False,
    )

    # Scope: owner is required, the rest are wildcards when NULL
    owner_id: Mapped[str] = mapped_column(String(100), nullable=False)
    cab_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    shift_type: Mapped[str | None] = mapped_column(String(20), nullable=True)
    day_of_week: Mapped[str | None] = mapped_column(String(20), nullable=True)

    override_value: Mapped[Decimal] = mapped_column(nullable=False)

    # Derived from scope; never accepted as input
    priority: Mapped[int] = mapped_column(Integer, nullable=False)

    start_date: Mapped[date] = mapped_column(Date, nullable=False)

    # Set at most once
    end_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False)

    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)

    rate: Mapped[RateDefinitionModel] = relationship(back_populates="overrides")

    def __repr__(self) -> str:
        return (
            f"<RateOverride rate={self.rate_id} owner={self.owner_id} "
            f"priority={self.priority}: {self.override_value}>"
        )
