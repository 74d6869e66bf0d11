"""
Master data and usage ports.

Responsibility:
    Declares the narrow, read-only interfaces through which the billing
    engine sees persons, shifts, shift ownership, shift status history,
    profile assignments, cab attribute values and usage (miles, trips).
    Also ships in-memory implementations used by hosts that pre-fetch
    master data and by the test suite.

Architecture position:
    Kernel > Domain.  Engines depend only on the Protocols below, never on
    a storage technology.

Invariants enforced:
    - Every temporal record answers ``is_active_on(day)`` with the same
      inclusive window semantics as rate overrides (``DateWindow``).
    - Missing usage for a day means zero usage, never an error.
    - Query results from the in-memory implementation are sorted, so
      repeated calls over unchanged data return identical sequences.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Protocol

from fleet_kernel.domain.dtos import PersonType, ShiftType
from fleet_kernel.domain.values import DateWindow, to_decimal


@dataclass(frozen=True)
class Person:
    person_id: str
    name: str
    person_type: PersonType
    active_window: DateWindow

    def is_active_on(self, day: date) -> bool:
        return self.active_window.contains(day)


@dataclass(frozen=True)
class Shift:
    shift_id: str
    cab_id: str
    shift_type: ShiftType


@dataclass(frozen=True)
class ShiftOwnership:
    shift_id: str
    owner_id: str
    window: DateWindow

    def is_active_on(self, day: date) -> bool:
        return self.window.contains(day)


@dataclass(frozen=True)
class ShiftStatusRecord:
    """One interval of a shift's status history."""

    shift_id: str
    active: bool
    window: DateWindow

    def is_active_on(self, day: date) -> bool:
        return self.active and self.window.contains(day)


@dataclass(frozen=True)
class ProfileAssignment:
    shift_id: str
    profile_id: str
    window: DateWindow

    def is_active_on(self, day: date) -> bool:
        return self.window.contains(day)


@dataclass(frozen=True)
class AttributeValue:
    """A cab attribute (e.g. wheelchair access, hybrid) valid over a window."""

    cab_id: str
    attribute_type_id: str
    window: DateWindow
    value: str | None = None

    def is_active_on(self, day: date) -> bool:
        return self.window.contains(day)


@dataclass(frozen=True)
class UsageRecord:
    """Miles and trips driven by one driver on one shift on one day."""

    shift_id: str
    driver_id: str
    usage_date: date
    miles: Decimal = Decimal("0")
    trips: int = 0

    def __post_init__(self) -> None:
        miles = to_decimal(self.miles)
        if miles < 0 or self.trips < 0:
            raise ValueError(
                f"Usage for shift {self.shift_id} on {self.usage_date} is negative"
            )
        object.__setattr__(self, "miles", miles)


class MasterDataPort(Protocol):
    """Read-only view of fleet master data."""

    def get_person(self, person_id: str) -> Person | None: ...

    def list_persons(self) -> Sequence[Person]: ...

    def get_shift(self, shift_id: str) -> Shift | None: ...

    def list_shifts(self) -> Sequence[Shift]: ...

    def shift_status_history(self, shift_id: str) -> Sequence[ShiftStatusRecord]: ...

    def shift_ownerships(self, shift_id: str) -> Sequence[ShiftOwnership]: ...

    def ownerships_of(self, owner_id: str) -> Sequence[ShiftOwnership]: ...

    def profile_assignments(self, profile_id: str) -> Sequence[ProfileAssignment]: ...

    def attribute_values(self, attribute_type_id: str) -> Sequence[AttributeValue]: ...


class UsageSourcePort(Protocol):
    """Per-shift mileage and trip counts."""

    def usage_between(self, date_from: date, date_to: date) -> Sequence[UsageRecord]: ...


class InMemoryMasterData:
    """
    Immutable in-memory master data snapshot implementing MasterDataPort.

    Contract:
        Built once from plain record lists; safe to share across threads
        because nothing mutates it after construction.
    """

    def __init__(
        self,
        persons: Iterable[Person] = (),
        shifts: Iterable[Shift] = (),
        ownerships: Iterable[ShiftOwnership] = (),
        status_history: Iterable[ShiftStatusRecord] = (),
        profile_assignments: Iterable[ProfileAssignment] = (),
        attribute_values: Iterable[AttributeValue] = (),
    ):
        self._persons = {p.person_id: p for p in persons}
        self._shifts = {s.shift_id: s for s in shifts}
        self._ownerships = tuple(
            sorted(ownerships, key=lambda o: (o.shift_id, o.window.start))
        )
        self._status = tuple(
            sorted(status_history, key=lambda r: (r.shift_id, r.window.start))
        )
        self._profiles = tuple(
            sorted(profile_assignments, key=lambda a: (a.profile_id, a.shift_id, a.window.start))
        )
        self._attributes = tuple(
            sorted(attribute_values, key=lambda v: (v.attribute_type_id, v.cab_id, v.window.start))
        )

    def get_person(self, person_id: str) -> Person | None:
        return self._persons.get(person_id)

    def list_persons(self) -> Sequence[Person]:
        return tuple(self._persons[k] for k in sorted(self._persons))

    def get_shift(self, shift_id: str) -> Shift | None:
        return self._shifts.get(shift_id)

    def list_shifts(self) -> Sequence[Shift]:
        return tuple(self._shifts[k] for k in sorted(self._shifts))

    def shift_status_history(self, shift_id: str) -> Sequence[ShiftStatusRecord]:
        return tuple(r for r in self._status if r.shift_id == shift_id)

    def shift_ownerships(self, shift_id: str) -> Sequence[ShiftOwnership]:
        return tuple(o for o in self._ownerships if o.shift_id == shift_id)

    def ownerships_of(self, owner_id: str) -> Sequence[ShiftOwnership]:
        return tuple(o for o in self._ownerships if o.owner_id == owner_id)

    def profile_assignments(self, profile_id: str) -> Sequence[ProfileAssignment]:
        return tuple(a for a in self._profiles if a.profile_id == profile_id)

    def attribute_values(self, attribute_type_id: str) -> Sequence[AttributeValue]:
        return tuple(v for v in self._attributes if v.attribute_type_id == attribute_type_id)


class InMemoryUsageSource:
    """UsageSourcePort over a fixed list of usage records."""

    def __init__(self, records: Iterable[UsageRecord] = ()):
        self._records = tuple(
            sorted(records, key=lambda r: (r.usage_date, r.shift_id, r.driver_id))
        )

    def usage_between(self, date_from: date, date_to: date) -> Sequence[UsageRecord]:
        return tuple(r for r in self._records if date_from <= r.usage_date <= date_to)
