"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Defines the immutable records that flow between the rate engine, the
    charge calculator, the statement builder and the persistence services:
    rate definitions and overrides, resolved rates, charge breakdowns,
    expense charges, line items, statements, payments and audit entries.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Engines accept and return these DTOs, never ORM rows.  Services convert
    ORM rows with ``_to_dto`` helpers at the persistence boundary.

Invariants enforced:
    - Rate values are held at 4 fractional digits, amounts at 2.
    - An override's priority is derived from its scope; it is never input.
    - A recurring expense charge has an effective window and no occurrence
      date; a one-time charge has an occurrence date and no window.

Failure modes:
    - InvalidRateWindowError / InvalidAmountError / InvalidApplicationRuleError
      when a DTO is constructed with inconsistent fields.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from fleet_kernel.domain.application_rule import ApplicationRule, validate_rule
from fleet_kernel.domain.values import (
    ZERO,
    DateWindow,
    quantize_amount,
    quantize_rate,
    to_decimal,
)
from fleet_kernel.exceptions import InvalidAmountError, InvalidRateWindowError

# =============================================================================
# Enumerations
# =============================================================================


class UnitType(str, Enum):
    """What one unit of a rate is priced against."""

    PER_MILE = "per_mile"
    PER_TRIP = "per_trip"
    FLAT_PERIODIC = "flat_periodic"
    ATTRIBUTE_SURCHARGE = "attribute_surcharge"


class ChargedTo(str, Enum):
    """Which party a rate is billed to."""

    DRIVER = "driver"
    OWNER = "owner"


class BillingCadence(str, Enum):
    """How often a rate or recurring charge produces an occurrence."""

    MONTHLY = "monthly"
    DAILY = "daily"
    PER_UNIT = "per_unit"


class ShiftType(str, Enum):
    DAY = "day"
    NIGHT = "night"


class DayOfWeek(str, Enum):
    MONDAY = "monday"
    TUESDAY = "tuesday"
    WEDNESDAY = "wednesday"
    THURSDAY = "thursday"
    FRIDAY = "friday"
    SATURDAY = "saturday"
    SUNDAY = "sunday"

    @classmethod
    def of(cls, day: date) -> DayOfWeek:
        return _WEEKDAYS[day.weekday()]


_WEEKDAYS = tuple(DayOfWeek)


class PersonType(str, Enum):
    DRIVER = "driver"
    OWNER = "owner"


class StatementStatus(str, Enum):
    """
    Settlement lifecycle of a statement.

    Contract:
        DRAFT -> POSTED -> LOCKED -> PAID, with DRAFT/POSTED/LOCKED -> ARCHIVED
        as the recall branch and DRAFT -> CANCELLED.  Only DRAFT statements
        accept line item changes.
    """

    DRAFT = "draft"
    POSTED = "posted"
    LOCKED = "locked"
    PAID = "paid"
    ARCHIVED = "archived"
    CANCELLED = "cancelled"

    @property
    def is_posted(self) -> bool:
        """True once the statement has been posted and not recalled."""
        return self in (StatementStatus.POSTED, StatementStatus.LOCKED, StatementStatus.PAID)


class PaymentStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    REVERSED = "reversed"


class LineSide(str, Enum):
    """Whether a line item adds to expenses or revenue of the statement."""

    EXPENSE = "expense"
    REVENUE = "revenue"


class LineSource(str, Enum):
    """What produced a line item."""

    RECURRING_EXPENSE = "recurring_expense"
    ONE_TIME_EXPENSE = "one_time_expense"
    LEASE_CHARGE = "lease_charge"
    LEASE_INCOME = "lease_income"
    PER_UNIT_CHARGE = "per_unit_charge"
    ATTRIBUTE_SURCHARGE = "attribute_surcharge"
    REVENUE = "revenue"


class AuditChangeType(str, Enum):
    CREATED = "created"
    REBUILT = "rebuilt"
    POSTED = "posted"
    LOCKED = "locked"
    PAYMENT_APPLIED = "payment_applied"
    PAYMENT_REVERSED = "payment_reversed"
    ARCHIVED = "archived"
    CANCELLED = "cancelled"
    DELETED = "deleted"


class RateSource(str, Enum):
    """Where a resolved rate value came from."""

    OVERRIDE = "override"
    BASE = "base"


# =============================================================================
# Rates and overrides
# =============================================================================

CAB_WEIGHT = 50
SHIFT_TYPE_WEIGHT = 30
DAY_OF_WEEK_WEIGHT = 20


def compute_priority(
    cab_id: str | None,
    shift_type: ShiftType | None,
    day_of_week: DayOfWeek | None,
) -> int:
    """
    Specificity priority of an override scope.

    The weights are chosen so that any scope with more constrained dimensions
    outranks one with fewer: cab+shift+day = 100, cab only = 50, no scope = 0.
    """
    priority = 0
    if cab_id is not None:
        priority += CAB_WEIGHT
    if shift_type is not None:
        priority += SHIFT_TYPE_WEIGHT
    if day_of_week is not None:
        priority += DAY_OF_WEEK_WEIGHT
    return priority


@dataclass(frozen=True)
class RateDefinition:
    """
    One version of a named base rate.

    Contract:
        Versions of the same ``name`` never have overlapping active windows.
        A version is never edited: the window is closed and a successor is
        created instead.

    Guarantees:
        - ``value`` is a non-negative Decimal quantized to 4 places.
        - ``effective_to`` is None or on/after ``effective_from``.
        - ``seq`` orders versions by creation.
    """

    rate_id: UUID
    name: str
    unit_type: UnitType
    value: Decimal
    charged_to: ChargedTo
    billing_cadence: BillingCadence
    effective_from: date
    effective_to: date | None = None
    active: bool = True
    seq: int = 0
    attribute_type_id: str | None = None
    notes: str | None = None

    def __post_init__(self) -> None:
        value = quantize_rate(self.value)
        if value < ZERO:
            raise InvalidAmountError("rate value", value, "must not be negative")
        object.__setattr__(self, "value", value)
        if self.effective_to is not None and self.effective_to < self.effective_from:
            raise InvalidRateWindowError(self.name, self.effective_from, self.effective_to)

    @property
    def window(self) -> DateWindow:
        return DateWindow(self.effective_from, self.effective_to)

    @property
    def is_closed(self) -> bool:
        return self.effective_to is not None

    def is_active_on(self, day: date) -> bool:
        return self.active and self.window.contains(day)


@dataclass(frozen=True)
class OverrideScope:
    """
    Scope of an override.  ``owner_id`` is required; a None dimension
    matches any value.
    """

    owner_id: str
    cab_id: str | None = None
    shift_type: ShiftType | None = None
    day_of_week: DayOfWeek | None = None

    def __post_init__(self) -> None:
        if not self.owner_id:
            raise ValueError("Override scope requires an owner_id")

    @property
    def priority(self) -> int:
        return compute_priority(self.cab_id, self.shift_type, self.day_of_week)

    def matches(
        self,
        owner_id: str,
        cab_id: str | None,
        shift_type: ShiftType | None,
        day_of_week: DayOfWeek | None,
    ) -> bool:
        if self.owner_id != owner_id:
            return False
        if self.cab_id is not None and self.cab_id != cab_id:
            return False
        if self.shift_type is not None and self.shift_type != shift_type:
            return False
        if self.day_of_week is not None and self.day_of_week != day_of_week:
            return False
        return True


@dataclass(frozen=True)
class RateOverride:
    """
    Owner-scoped replacement value for one rate definition.

    Guarantees:
        - ``priority`` is derived from ``scope`` and cannot be supplied.
        - ``seq`` is the creation order; among equal priorities the highest
          ``seq`` wins.
    """

    override_id: UUID
    rate_id: UUID
    scope: OverrideScope
    override_value: Decimal
    start_date: date
    end_date: date | None = None
    active: bool = True
    seq: int = 0
    notes: str | None = None

    def __post_init__(self) -> None:
        value = quantize_rate(self.override_value)
        if value < ZERO:
            raise InvalidAmountError("override value", value, "must not be negative")
        object.__setattr__(self, "override_value", value)
        if self.end_date is not None and self.end_date < self.start_date:
            raise InvalidRateWindowError(
                f"override {self.override_id}", self.start_date, self.end_date
            )

    @property
    def priority(self) -> int:
        return self.scope.priority

    @property
    def window(self) -> DateWindow:
        return DateWindow(self.start_date, self.end_date)

    def is_active_on(self, day: date) -> bool:
        return self.active and self.window.contains(day)


@dataclass(frozen=True)
class ResolvedRate:
    """Outcome of override-then-base resolution for one rate on one date."""

    rate_id: UUID
    rate_name: str
    value: Decimal
    source: RateSource
    on_date: date
    unit_type: UnitType
    charged_to: ChargedTo
    billing_cadence: BillingCadence
    override_id: UUID | None = None
    priority: int = 0


@dataclass(frozen=True)
class ChargeBreakdown:
    """
    Lease charge split into its base and per-unit components.

    ``base`` and ``per_unit`` are kept at full precision; only ``total`` is
    rounded to 2 places.
    """

    base_rate: ResolvedRate
    per_unit_rate: ResolvedRate
    units: Decimal
    base: Decimal
    per_unit: Decimal
    total: Decimal


# =============================================================================
# Targets
# =============================================================================


@dataclass(frozen=True, order=True)
class PersonTarget:
    person_id: str
    person_type: PersonType

    @property
    def kind(self) -> str:
        return "person"

    @property
    def target_id(self) -> str:
        return self.person_id


@dataclass(frozen=True, order=True)
class ShiftTarget:
    shift_id: str
    cab_id: str
    shift_type: ShiftType

    @property
    def kind(self) -> str:
        return "shift"

    @property
    def target_id(self) -> str:
        return self.shift_id


TargetEntity = PersonTarget | ShiftTarget


def target_sort_key(target: TargetEntity) -> tuple[str, str]:
    return (target.kind, target.target_id)


# =============================================================================
# Expenses and revenue
# =============================================================================


@dataclass(frozen=True)
class ExpenseCharge:
    """
    Recurring or one-time expense applied through an application rule.

    Contract:
        Recurring charges set ``effective_from`` (optionally ``effective_to``)
        and a ``billing_cadence``.  One-time charges set ``occurred_on`` only.
        Targets are resolved when a statement is built, never stored.
    """

    charge_id: UUID
    category_id: str
    rule: ApplicationRule
    amount: Decimal
    billing_cadence: BillingCadence | None = None
    description: str = ""
    effective_from: date | None = None
    effective_to: date | None = None
    occurred_on: date | None = None
    active: bool = True

    def __post_init__(self) -> None:
        validate_rule(self.rule)
        amount = to_decimal(self.amount)
        if amount < ZERO:
            raise InvalidAmountError("expense amount", amount, "must not be negative")
        object.__setattr__(self, "amount", amount)

        label = f"expense {self.charge_id}"
        if self.occurred_on is not None:
            if self.effective_from is not None or self.effective_to is not None:
                raise InvalidRateWindowError(
                    label, self.effective_from, self.effective_to,
                    reason="one-time charges take occurred_on, not an effective window",
                )
            if self.billing_cadence is not None:
                raise InvalidRateWindowError(
                    label, self.occurred_on, None,
                    reason="one-time charges have no billing cadence",
                )
            return

        if self.effective_from is None:
            raise InvalidRateWindowError(
                label, None, self.effective_to,
                reason="recurring charges require effective_from",
            )
        if self.billing_cadence is None:
            raise InvalidRateWindowError(
                label, self.effective_from, self.effective_to,
                reason="recurring charges require a billing cadence",
            )
        if self.effective_to is not None and self.effective_to < self.effective_from:
            raise InvalidRateWindowError(label, self.effective_from, self.effective_to)

    @property
    def is_one_time(self) -> bool:
        return self.occurred_on is not None

    @property
    def window(self) -> DateWindow:
        if self.occurred_on is not None:
            return DateWindow(self.occurred_on, self.occurred_on)
        return DateWindow(self.effective_from, self.effective_to)


@dataclass(frozen=True)
class RevenueRecord:
    revenue_id: UUID
    person_id: str
    revenue_date: date
    amount: Decimal
    description: str = ""
    category: str = "other"

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", to_decimal(self.amount))


# =============================================================================
# Statements
# =============================================================================


@dataclass(frozen=True)
class LineItem:
    """
    One billed line of a statement.

    ``line_no`` is assigned by the statement builder after deterministic
    ordering; engines emit line items with ``line_no=0``.
    """

    side: LineSide
    source: LineSource
    description: str
    amount: Decimal
    occurred_on: date
    target_kind: str | None = None
    target_id: str | None = None
    reference_id: str | None = None
    units: Decimal | None = None
    unit_rate: Decimal | None = None
    line_no: int = 0

    def __post_init__(self) -> None:
        object.__setattr__(self, "amount", quantize_amount(self.amount))

    def sort_key(self) -> tuple:
        return (
            self.occurred_on,
            self.side.value,
            self.source.value,
            self.description,
            self.target_id or "",
            self.reference_id or "",
            self.amount,
        )


@dataclass(frozen=True)
class StatementDraft:
    """Pure output of the statement builder; nothing persisted yet."""

    person_id: str
    person_type: PersonType
    period_from: date
    period_to: date
    previous_balance: Decimal
    line_items: tuple[LineItem, ...]
    total_expense: Decimal
    total_revenue: Decimal
    total_owed: Decimal
    net_due: Decimal


@dataclass(frozen=True)
class StatementInfo:
    """Read-only view of a persisted statement."""

    statement_id: UUID
    person_id: str
    person_type: PersonType
    period_from: date
    period_to: date
    version: int
    status: StatementStatus
    previous_balance: Decimal
    total_expense: Decimal
    total_revenue: Decimal
    paid_amount: Decimal
    total_owed: Decimal
    net_due: Decimal
    line_items: tuple[LineItem, ...] = ()
    parent_statement_id: UUID | None = None
    posted_at: datetime | None = None
    posted_by: UUID | None = None
    locked_at: datetime | None = None
    locked_by: UUID | None = None
    archived_reason: str | None = None


@dataclass(frozen=True)
class PaymentInfo:
    payment_id: UUID
    statement_id: UUID
    payment_number: str
    amount: Decimal
    payment_date: date
    method: str
    status: PaymentStatus
    reference: str | None = None
    reversal_reason: str | None = None


@dataclass(frozen=True)
class AuditLogEntryInfo:
    entry_id: UUID
    statement_id: UUID
    seq: int
    change_type: AuditChangeType
    previous_status: StatementStatus | None
    new_status: StatementStatus
    changed_by: UUID
    changed_at: datetime
    reason: str | None
    payload: dict[str, Any] = field(default_factory=dict)
    prev_hash: str | None = None
    hash: str = ""
