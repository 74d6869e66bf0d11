"""
ApplicationTargetResolver -- expands an application rule into targets.

Pure functions with deterministic behavior. No I/O beyond the injected,
read-only MasterDataPort.

Each rule variant has its own strategy:

    ShiftProfileRule        shifts assigned the profile on the date
    SpecificShiftRule       that shift; missing/inactive -> TargetNotFoundError
    SpecificPersonRule      that person; missing/inactive -> TargetNotFoundError
    AllOwnersRule           owners whose active window contains the date
    AllDriversRule          drivers whose active window contains the date
    AllActiveShiftsRule     shifts whose status history is active on the date
    ShiftsWithAttributeRule shifts whose cab holds the attribute on the date

Targets are always resolved "as of" a date, at statement generation time,
never when the expense is created.  Results are frozensets so two calls
over unchanged master data compare equal.

``resolve_targets_for`` narrows a rule to one person before expanding it,
so a statement only ever looks at the entities billed to its own person.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from functools import singledispatchmethod

from fleet_kernel.domain.application_rule import (
    AllActiveShiftsRule,
    AllDriversRule,
    AllOwnersRule,
    ApplicationRule,
    ShiftProfileRule,
    ShiftsWithAttributeRule,
    SpecificPersonRule,
    SpecificShiftRule,
    describe_rule,
    validate_rule,
)
from fleet_kernel.domain.dtos import (
    PersonTarget,
    PersonType,
    ShiftTarget,
    TargetEntity,
    target_sort_key,
)
from fleet_kernel.domain.master_data import MasterDataPort, Shift
from fleet_kernel.exceptions import OrphanedTargetError, TargetNotFoundError
from fleet_kernel.logging_config import get_logger
from fleet_engines.tracer import traced_engine

logger = get_logger("engines.target_resolver")

DEFAULT_PREVIEW_SIZE = 10


@dataclass(frozen=True)
class TargetPreview:
    """Bounded dry-run view of a rule's targets."""

    sample: tuple[TargetEntity, ...]
    total_count: int

    @property
    def truncated(self) -> bool:
        return self.total_count > len(self.sample)


def shift_owner(master_data: MasterDataPort, shift_id: str, on_date: date) -> str | None:
    """Owner of the shift on the date, or None when no ownership covers it."""
    for ownership in master_data.shift_ownerships(shift_id):
        if ownership.is_active_on(on_date):
            return ownership.owner_id
    return None


def is_shift_active(master_data: MasterDataPort, shift_id: str, on_date: date) -> bool:
    return any(r.is_active_on(on_date) for r in master_data.shift_status_history(shift_id))


def _shift_target(shift: Shift) -> ShiftTarget:
    return ShiftTarget(shift_id=shift.shift_id, cab_id=shift.cab_id, shift_type=shift.shift_type)


class ApplicationTargetResolver:
    """Resolves application rules against a master data port."""

    def __init__(self, master_data: MasterDataPort, preview_size: int = DEFAULT_PREVIEW_SIZE):
        self._master = master_data
        self._preview_size = preview_size

    @property
    def master_data(self) -> MasterDataPort:
        return self._master

    @traced_engine("target_resolver", "1.0", fingerprint_fields=("rule", "as_of"))
    def resolve_targets(self, rule: ApplicationRule, as_of: date) -> frozenset[TargetEntity]:
        """
        Concrete targets of ``rule`` on ``as_of``.

        Raises:
            InvalidApplicationRuleError: ``rule`` is not a known variant.
            TargetNotFoundError: a specific shift/person is missing or inactive.
            OrphanedTargetError: master data references a shift that is gone.
        """
        validate_rule(rule)
        return frozenset(self._resolve(rule, as_of))

    @traced_engine(
        "target_resolver.person", "1.0", fingerprint_fields=("rule", "as_of", "person_id"),
    )
    def resolve_targets_for(
        self, rule: ApplicationRule, as_of: date, person_id: str,
    ) -> frozenset[TargetEntity]:
        """
        Targets of ``rule`` on ``as_of`` that are billed to ``person_id``:
        the person itself, or shifts the person owns on that date.

        Equals the subset of ``resolve_targets`` billed to the person when
        master data is consistent.  Missing or orphaned entities raise only
        when they would be billed to ``person_id``; entities billed to
        somebody else are never looked at.
        """
        validate_rule(rule)
        return frozenset(self._resolve_for(rule, as_of, person_id))

    def preview_targets(
        self,
        rule: ApplicationRule,
        as_of: date,
        limit: int | None = None,
    ) -> TargetPreview:
        """First ``limit`` targets in sort order, plus the total count."""
        size = self._preview_size if limit is None else limit
        if size < 0:
            raise ValueError(f"Preview limit must be non-negative, got {size}")
        targets = sorted(self.resolve_targets(rule=rule, as_of=as_of), key=target_sort_key)
        preview = TargetPreview(sample=tuple(targets[:size]), total_count=len(targets))
        logger.info(
            "targets_previewed",
            extra={
                "rule": describe_rule(rule),
                "as_of": as_of,
                "total_count": preview.total_count,
                "sample_size": len(preview.sample),
            },
        )
        return preview

    # ------------------------------------------------------------------
    # Strategies
    # ------------------------------------------------------------------

    @singledispatchmethod
    def _resolve(self, rule, as_of: date):
        raise TypeError(f"No target strategy for {type(rule).__name__}")

    @_resolve.register
    def _(self, rule: ShiftProfileRule, as_of: date):
        for assignment in self._master.profile_assignments(rule.profile_id):
            if assignment.is_active_on(as_of):
                yield self._existing_shift(assignment.shift_id, f"profile {rule.profile_id}")

    @_resolve.register
    def _(self, rule: SpecificShiftRule, as_of: date):
        shift = self._master.get_shift(rule.shift_id)
        if shift is None or not is_shift_active(self._master, rule.shift_id, as_of):
            raise TargetNotFoundError("shift", rule.shift_id, as_of)
        yield _shift_target(shift)

    @_resolve.register
    def _(self, rule: SpecificPersonRule, as_of: date):
        person = self._master.get_person(rule.person_id)
        if person is None or not person.is_active_on(as_of):
            raise TargetNotFoundError("person", rule.person_id, as_of)
        yield PersonTarget(person.person_id, person.person_type)

    @_resolve.register
    def _(self, rule: AllOwnersRule, as_of: date):
        yield from self._roster(PersonType.OWNER, as_of)

    @_resolve.register
    def _(self, rule: AllDriversRule, as_of: date):
        yield from self._roster(PersonType.DRIVER, as_of)

    @_resolve.register
    def _(self, rule: AllActiveShiftsRule, as_of: date):
        for shift in self._master.list_shifts():
            if is_shift_active(self._master, shift.shift_id, as_of):
                yield _shift_target(shift)

    @_resolve.register
    def _(self, rule: ShiftsWithAttributeRule, as_of: date):
        cabs = {
            v.cab_id
            for v in self._master.attribute_values(rule.attribute_type_id)
            if v.is_active_on(as_of)
        }
        if not cabs:
            return
        for shift in self._master.list_shifts():
            if shift.cab_id in cabs:
                yield _shift_target(shift)

    # ------------------------------------------------------------------
    # Person-scoped strategies
    # ------------------------------------------------------------------

    @singledispatchmethod
    def _resolve_for(self, rule, as_of: date, person_id: str):
        raise TypeError(f"No target strategy for {type(rule).__name__}")

    @_resolve_for.register
    def _(self, rule: ShiftProfileRule, as_of: date, person_id: str):
        for assignment in self._master.profile_assignments(rule.profile_id):
            if not assignment.is_active_on(as_of):
                continue
            if shift_owner(self._master, assignment.shift_id, as_of) == person_id:
                yield self._existing_shift(assignment.shift_id, f"profile {rule.profile_id}")

    @_resolve_for.register
    def _(self, rule: SpecificShiftRule, as_of: date, person_id: str):
        if shift_owner(self._master, rule.shift_id, as_of) != person_id:
            return
        yield from self._resolve(rule, as_of)

    @_resolve_for.register
    def _(self, rule: SpecificPersonRule, as_of: date, person_id: str):
        if rule.person_id != person_id:
            return
        yield from self._resolve(rule, as_of)

    @_resolve_for.register
    def _(self, rule: AllOwnersRule, as_of: date, person_id: str):
        yield from self._with_role(person_id, PersonType.OWNER, as_of)

    @_resolve_for.register
    def _(self, rule: AllDriversRule, as_of: date, person_id: str):
        yield from self._with_role(person_id, PersonType.DRIVER, as_of)

    @_resolve_for.register
    def _(self, rule: AllActiveShiftsRule, as_of: date, person_id: str):
        for shift_id in self._owned_shift_ids(person_id, as_of):
            target = self._existing_shift(shift_id, f"ownership by {person_id}")
            if is_shift_active(self._master, shift_id, as_of):
                yield target

    @_resolve_for.register
    def _(self, rule: ShiftsWithAttributeRule, as_of: date, person_id: str):
        cabs = {
            v.cab_id
            for v in self._master.attribute_values(rule.attribute_type_id)
            if v.is_active_on(as_of)
        }
        if not cabs:
            return
        for shift_id in self._owned_shift_ids(person_id, as_of):
            target = self._existing_shift(shift_id, f"ownership by {person_id}")
            if target.cab_id in cabs:
                yield target

    # ------------------------------------------------------------------

    def _with_role(self, person_id: str, person_type: PersonType, as_of: date):
        person = self._master.get_person(person_id)
        if person is not None and person.person_type == person_type and person.is_active_on(as_of):
            yield PersonTarget(person.person_id, person.person_type)

    def _owned_shift_ids(self, person_id: str, as_of: date) -> list[str]:
        return sorted({
            o.shift_id for o in self._master.ownerships_of(person_id) if o.is_active_on(as_of)
        })

    def _roster(self, person_type: PersonType, as_of: date):
        for person in self._master.list_persons():
            if person.person_type == person_type and person.is_active_on(as_of):
                yield PersonTarget(person.person_id, person.person_type)

    def _existing_shift(self, shift_id: str, source: str) -> ShiftTarget:
        shift = self._master.get_shift(shift_id)
        if shift is None:
            logger.error(
                "orphaned_target",
                extra={"target_kind": "shift", "target_id": shift_id, "source": source},
            )
            raise OrphanedTargetError("shift", shift_id, source)
        return _shift_target(shift)
