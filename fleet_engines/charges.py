"""
ChargeCalculator -- turns resolved rates, targets and usage into line items.

Pure functions with deterministic behavior. No I/O beyond the injected,
read-only master data port.

Numeric semantics:
    Rates keep 4 fractional digits and are never rounded mid-calculation.
    Only the final amount of a line (or the lease total) is rounded to 2
    places, half-up.

Cadence expansion of a recurring expense against a statement period:

    MONTHLY   one occurrence dated max(period start, effective_from) when the
              charge window overlaps the period; full amount, no proration
    DAILY     one occurrence per calendar day of the overlap
    PER_UNIT  one occurrence per usage record in the overlap; amount x miles;
              no usage means no occurrence

Targets are resolved on each occurrence date, so a shift that gains an
attribute mid-period is billed only from the day it qualifies.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from fleet_kernel.domain.application_rule import describe_rule
from fleet_kernel.domain.dtos import (
    BillingCadence,
    ChargeBreakdown,
    ChargedTo,
    DayOfWeek,
    ExpenseCharge,
    LineItem,
    LineSide,
    LineSource,
    PersonTarget,
    ShiftTarget,
    ShiftType,
    TargetEntity,
    UnitType,
    target_sort_key,
)
from fleet_kernel.domain.master_data import UsageRecord
from fleet_kernel.domain.values import ZERO, DateWindow, quantize_amount
from fleet_kernel.exceptions import OrphanedTargetError, ShiftOwnerMissingError
from fleet_kernel.logging_config import get_logger
from fleet_engines.rate_book import RateBook
from fleet_engines.target_resolver import ApplicationTargetResolver, is_shift_active, shift_owner
from fleet_engines.tracer import traced_engine

logger = get_logger("engines.charges")

LEASE_BASE_RATE = "LEASE_BASE"
LEASE_MILEAGE_RATE = "LEASE_MILEAGE"

_USAGE_UNITS = (UnitType.PER_MILE, UnitType.PER_TRIP)


@dataclass(frozen=True)
class PartyLine:
    """A line item together with the person it is billed to."""

    person_id: str
    line: LineItem


def _units(record: UsageRecord, unit_type: UnitType) -> Decimal:
    if unit_type == UnitType.PER_TRIP:
        return Decimal(record.trips)
    return record.miles


class ChargeCalculator:
    """
    Computes lease charges, expense occurrences, per-unit rate charges and
    attribute surcharges.

    Contract:
        Every method is a pure function of its arguments, the rate book
        snapshot and the master data port.
    """

    def __init__(
        self,
        rate_book: RateBook,
        target_resolver: ApplicationTargetResolver,
        lease_base_rate: str = LEASE_BASE_RATE,
        lease_mileage_rate: str = LEASE_MILEAGE_RATE,
    ):
        self._book = rate_book
        self._targets = target_resolver
        self._lease_base_rate = lease_base_rate
        self._lease_mileage_rate = lease_mileage_rate

    @property
    def rate_book(self) -> RateBook:
        return self._book

    @property
    def target_resolver(self) -> ApplicationTargetResolver:
        return self._targets

    def owner_of(self, shift_id: str, on_date: date) -> str:
        """
        Raises:
            OrphanedTargetError: the shift no longer exists.
            ShiftOwnerMissingError: the shift exists but nobody owns it that day.
        """
        master = self._targets.master_data
        owner = shift_owner(master, shift_id, on_date)
        if owner is not None:
            return owner
        if master.get_shift(shift_id) is None:
            raise OrphanedTargetError("shift", shift_id, f"usage on {on_date}")
        logger.error(
            "shift_owner_missing",
            extra={"target_id": shift_id, "on_date": on_date},
        )
        raise ShiftOwnerMissingError(shift_id, on_date)

    # ------------------------------------------------------------------
    # Lease
    # ------------------------------------------------------------------

    @traced_engine(
        "charge_calculator.lease", "1.0",
        fingerprint_fields=("owner_id", "cab_id", "shift_type", "day_of_week", "on_date", "units_driven"),
    )
    def compute_lease_charge(
        self,
        owner_id: str,
        cab_id: str | None,
        shift_type: ShiftType | None,
        day_of_week: DayOfWeek | None,
        on_date: date,
        units_driven: Decimal,
    ) -> ChargeBreakdown:
        """
        Base lease plus per-unit lease for one shift-day.

        Both rates are resolved independently through the override resolver,
        so an owner may override one and not the other.

        Raises:
            RateNotFoundError: either lease rate has no version on the date.
        """
        if units_driven < ZERO:
            raise ValueError(f"units_driven must be non-negative, got {units_driven}")
        resolver = self._book.resolver
        base_rate = resolver.resolve_named(
            self._lease_base_rate, owner_id, on_date, cab_id, shift_type, day_of_week,
        )
        per_unit_rate = resolver.resolve_named(
            self._lease_mileage_rate, owner_id, on_date, cab_id, shift_type, day_of_week,
        )
        base = base_rate.value
        per_unit = per_unit_rate.value * units_driven
        return ChargeBreakdown(
            base_rate=base_rate,
            per_unit_rate=per_unit_rate,
            units=units_driven,
            base=base,
            per_unit=per_unit,
            total=quantize_amount(base + per_unit),
        )

    def compute_lease_lines(self, usage: Iterable[UsageRecord]) -> tuple[PartyLine, ...]:
        """
        Lease charge to the driver and matching lease income to the owner
        for each usage record.  A shift driven by its owner is not leased.
        """
        out: list[PartyLine] = []
        master = self._targets.master_data
        for record in usage:
            owner_id = self.owner_of(record.shift_id, record.usage_date)
            if owner_id == record.driver_id:
                continue
            shift = master.get_shift(record.shift_id)
            if shift is None:
                raise OrphanedTargetError("shift", record.shift_id, "usage")
            breakdown = self.compute_lease_charge(
                owner_id=owner_id,
                cab_id=shift.cab_id,
                shift_type=shift.shift_type,
                day_of_week=DayOfWeek.of(record.usage_date),
                on_date=record.usage_date,
                units_driven=record.miles,
            )
            common = dict(
                amount=breakdown.total,
                occurred_on=record.usage_date,
                target_kind="shift",
                target_id=record.shift_id,
                reference_id=str(breakdown.per_unit_rate.rate_id),
                units=record.miles,
                unit_rate=breakdown.per_unit_rate.value,
            )
            out.append(PartyLine(record.driver_id, LineItem(
                side=LineSide.EXPENSE,
                source=LineSource.LEASE_CHARGE,
                description=f"Lease {record.shift_id} (owner {owner_id})",
                **common,
            )))
            out.append(PartyLine(owner_id, LineItem(
                side=LineSide.REVENUE,
                source=LineSource.LEASE_INCOME,
                description=f"Lease {record.shift_id} (driver {record.driver_id})",
                **common,
            )))
        return tuple(out)

    # ------------------------------------------------------------------
    # Expense charges
    # ------------------------------------------------------------------

    @traced_engine(
        "charge_calculator.expense", "1.0", fingerprint_fields=("charge", "period", "person_id"),
    )
    def compute_expense_occurrences(
        self,
        charge: ExpenseCharge,
        period: DateWindow,
        usage: Sequence[UsageRecord] = (),
        person_id: str | None = None,
    ) -> tuple[LineItem, ...]:
        """
        Line items produced by ``charge`` in ``period``: one per
        (occurrence date, target) pair.

        With ``person_id`` only the targets billed to that person are
        expanded (see ``ApplicationTargetResolver.resolve_targets_for``).

        Raises:
            TargetNotFoundError / OrphanedTargetError from target resolution.
        """
        if period.end is None:
            raise ValueError("Statement period must be closed")
        if not charge.active:
            return ()

        if charge.is_one_time:
            if not period.contains(charge.occurred_on):
                return ()
            return self._occurrence_lines(
                charge, charge.occurred_on, LineSource.ONE_TIME_EXPENSE, person_id,
            )

        overlap = charge.window.intersection(period)
        if overlap is None:
            return ()

        if charge.billing_cadence == BillingCadence.MONTHLY:
            return self._occurrence_lines(
                charge, overlap.start, LineSource.RECURRING_EXPENSE, person_id,
            )

        if charge.billing_cadence == BillingCadence.DAILY:
            lines: list[LineItem] = []
            for day in overlap.days():
                lines.extend(self._occurrence_lines(
                    charge, day, LineSource.RECURRING_EXPENSE, person_id,
                ))
            return tuple(lines)

        return self._per_unit_occurrences(charge, overlap, usage, person_id)

    def _targets_on(
        self, charge: ExpenseCharge, day: date, person_id: str | None,
    ) -> frozenset[TargetEntity]:
        if person_id is None:
            return self._targets.resolve_targets(charge.rule, day)
        return self._targets.resolve_targets_for(charge.rule, day, person_id)

    def _occurrence_lines(
        self, charge: ExpenseCharge, day: date, source: LineSource, person_id: str | None,
    ) -> tuple[LineItem, ...]:
        targets = sorted(self._targets_on(charge, day, person_id), key=target_sort_key)
        return tuple(
            self._expense_line(charge, day, source, target, charge.amount)
            for target in targets
        )

    def _per_unit_occurrences(
        self,
        charge: ExpenseCharge,
        overlap: DateWindow,
        usage: Sequence[UsageRecord],
        person_id: str | None,
    ) -> tuple[LineItem, ...]:
        lines: list[LineItem] = []
        resolved: dict[date, frozenset[TargetEntity]] = {}
        for record in usage:
            if not overlap.contains(record.usage_date) or record.miles <= ZERO:
                continue
            if record.usage_date not in resolved:
                resolved[record.usage_date] = self._targets_on(
                    charge, record.usage_date, person_id,
                )
            targets = resolved[record.usage_date]
            target = self._usage_target(record, targets)
            if target is None:
                continue
            lines.append(self._expense_line(
                charge, record.usage_date, LineSource.RECURRING_EXPENSE, target,
                charge.amount * record.miles, units=record.miles,
            ))
        return tuple(lines)

    @staticmethod
    def _usage_target(record: UsageRecord, targets: frozenset[TargetEntity]) -> TargetEntity | None:
        for target in sorted(targets, key=target_sort_key):
            if isinstance(target, ShiftTarget) and target.shift_id == record.shift_id:
                return target
        for target in sorted(targets, key=target_sort_key):
            if isinstance(target, PersonTarget) and target.person_id == record.driver_id:
                return target
        return None

    @staticmethod
    def _expense_line(
        charge: ExpenseCharge,
        day: date,
        source: LineSource,
        target: TargetEntity,
        amount: Decimal,
        units: Decimal | None = None,
    ) -> LineItem:
        label = charge.description or describe_rule(charge.rule)
        return LineItem(
            side=LineSide.EXPENSE,
            source=source,
            description=f"{charge.category_id}: {label}",
            amount=amount,
            occurred_on=day,
            target_kind=target.kind,
            target_id=target.target_id,
            reference_id=str(charge.charge_id),
            units=units,
            unit_rate=charge.amount if units is not None else None,
        )

    # ------------------------------------------------------------------
    # Per-unit rates (airport trips, mileage surcharges, ...)
    # ------------------------------------------------------------------

    @traced_engine("charge_calculator.per_unit", "1.0", fingerprint_fields=("usage", "period"))
    def compute_per_unit_charges(
        self,
        usage: Sequence[UsageRecord],
        period: DateWindow,
    ) -> tuple[PartyLine, ...]:
        """
        Every PER_MILE/PER_TRIP rate with PER_UNIT cadence, other than the
        lease rates, billed per usage record to the driver or the shift
        owner according to the rate's ``charged_to``.
        """
        catalog = self._book.catalog
        names = [
            name for name in catalog.names()
            if name not in (self._lease_base_rate, self._lease_mileage_rate)
        ]
        master = self._targets.master_data
        out: list[PartyLine] = []
        for record in usage:
            if not period.contains(record.usage_date):
                continue
            for name in names:
                rate = catalog.find_rate(name, record.usage_date)
                if (
                    rate is None
                    or rate.unit_type not in _USAGE_UNITS
                    or rate.billing_cadence != BillingCadence.PER_UNIT
                ):
                    continue
                units = _units(record, rate.unit_type)
                if units <= ZERO:
                    continue
                owner_id = self.owner_of(record.shift_id, record.usage_date)
                shift = master.get_shift(record.shift_id)
                resolved = self._book.resolver.resolve(
                    rate_id=rate.rate_id,
                    owner_id=owner_id,
                    on_date=record.usage_date,
                    cab_id=shift.cab_id if shift else None,
                    shift_type=shift.shift_type if shift else None,
                )
                payer = record.driver_id if rate.charged_to == ChargedTo.DRIVER else owner_id
                out.append(PartyLine(payer, LineItem(
                    side=LineSide.EXPENSE,
                    source=LineSource.PER_UNIT_CHARGE,
                    description=f"{rate.name} {record.shift_id}",
                    amount=resolved.value * units,
                    occurred_on=record.usage_date,
                    target_kind="shift",
                    target_id=record.shift_id,
                    reference_id=str(rate.rate_id),
                    units=units,
                    unit_rate=resolved.value,
                )))
        return tuple(out)

    # ------------------------------------------------------------------
    # Attribute surcharges
    # ------------------------------------------------------------------

    @traced_engine("charge_calculator.attribute", "1.0", fingerprint_fields=("shift_ids", "period"))
    def compute_attribute_surcharges(
        self,
        shift_ids: Iterable[str],
        period: DateWindow,
    ) -> tuple[PartyLine, ...]:
        """
        ATTRIBUTE_SURCHARGE rates billed to the owner of each active shift
        whose cab holds the rate's attribute.  DAILY bills every qualifying
        day; MONTHLY bills once, on the first qualifying day.
        """
        if period.end is None:
            raise ValueError("Statement period must be closed")
        catalog = self._book.catalog
        master = self._targets.master_data
        surcharge_names = sorted({
            r.name for r in catalog.rates if r.unit_type == UnitType.ATTRIBUTE_SURCHARGE
        })
        out: list[PartyLine] = []
        for shift_id in sorted(set(shift_ids)):
            shift = master.get_shift(shift_id)
            if shift is None:
                raise OrphanedTargetError("shift", shift_id, "attribute surcharge")
            for name in surcharge_names:
                billed_once = False
                for day in period.days():
                    rate = catalog.find_rate(name, day)
                    if rate is None or rate.attribute_type_id is None:
                        continue
                    if not self._cab_has_attribute(shift.cab_id, rate.attribute_type_id, day):
                        continue
                    if not is_shift_active(master, shift_id, day):
                        continue
                    owner_id = shift_owner(master, shift_id, day)
                    if owner_id is None:
                        continue
                    if rate.billing_cadence == BillingCadence.MONTHLY and billed_once:
                        continue
                    resolved = self._book.resolver.resolve(
                        rate_id=rate.rate_id,
                        owner_id=owner_id,
                        on_date=day,
                        cab_id=shift.cab_id,
                        shift_type=shift.shift_type,
                    )
                    out.append(PartyLine(owner_id, LineItem(
                        side=LineSide.EXPENSE,
                        source=LineSource.ATTRIBUTE_SURCHARGE,
                        description=f"{rate.name} {shift_id} ({rate.attribute_type_id})",
                        amount=resolved.value,
                        occurred_on=day,
                        target_kind="shift",
                        target_id=shift_id,
                        reference_id=str(rate.rate_id),
                    )))
                    billed_once = True
        return tuple(out)

    def _cab_has_attribute(self, cab_id: str, attribute_type_id: str, day: date) -> bool:
        return any(
            v.cab_id == cab_id and v.is_active_on(day)
            for v in self._targets.master_data.attribute_values(attribute_type_id)
        )
