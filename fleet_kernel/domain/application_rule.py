"""
Application rules -- which entities an expense category applies to.

Responsibility:
    A closed set of rule variants, each a frozen dataclass that requires
    exactly its own fields.  Replaces a single record with many nullable
    foreign keys plus after-the-fact validation.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  Resolution to concrete targets lives
    in ``fleet_engines.target_resolver``.

Invariants enforced:
    - Each variant validates its mandatory identifier at construction.
    - The serialized form (``rule_to_dict``) carries a ``kind`` tag and
      exactly the variant's fields; ``rule_from_dict`` rejects anything else.

Failure modes:
    - InvalidApplicationRuleError for blank identifiers, unknown kinds, or
      missing/unexpected fields in a serialized rule.
"""

from __future__ import annotations

from dataclasses import dataclass, fields
from typing import Any, ClassVar

from fleet_kernel.exceptions import InvalidApplicationRuleError


def _require_id(kind: str, name: str, value: Any) -> None:
    if not isinstance(value, str) or not value.strip():
        raise InvalidApplicationRuleError(kind, f"{name} is required")


@dataclass(frozen=True)
class ShiftProfileRule:
    """All shifts assigned the profile on the resolution date."""

    kind: ClassVar[str] = "shift_profile"

    profile_id: str

    def __post_init__(self) -> None:
        _require_id(self.kind, "profile_id", self.profile_id)


@dataclass(frozen=True)
class SpecificShiftRule:
    """Exactly one shift; it must exist and be active on the resolution date."""

    kind: ClassVar[str] = "specific_shift"

    shift_id: str

    def __post_init__(self) -> None:
        _require_id(self.kind, "shift_id", self.shift_id)


@dataclass(frozen=True)
class SpecificPersonRule:
    """Exactly one person; they must exist and be active on the resolution date."""

    kind: ClassVar[str] = "specific_person"

    person_id: str

    def __post_init__(self) -> None:
        _require_id(self.kind, "person_id", self.person_id)


@dataclass(frozen=True)
class AllOwnersRule:
    kind: ClassVar[str] = "all_owners"


@dataclass(frozen=True)
class AllDriversRule:
    kind: ClassVar[str] = "all_drivers"


@dataclass(frozen=True)
class AllActiveShiftsRule:
    kind: ClassVar[str] = "all_active_shifts"


@dataclass(frozen=True)
class ShiftsWithAttributeRule:
    """Shifts whose cab holds a current value record for the attribute type."""

    kind: ClassVar[str] = "shifts_with_attribute"

    attribute_type_id: str

    def __post_init__(self) -> None:
        _require_id(self.kind, "attribute_type_id", self.attribute_type_id)


ApplicationRule = (
    ShiftProfileRule
    | SpecificShiftRule
    | SpecificPersonRule
    | AllOwnersRule
    | AllDriversRule
    | AllActiveShiftsRule
    | ShiftsWithAttributeRule
)

RULE_TYPES: dict[str, type] = {
    cls.kind: cls
    for cls in (
        ShiftProfileRule,
        SpecificShiftRule,
        SpecificPersonRule,
        AllOwnersRule,
        AllDriversRule,
        AllActiveShiftsRule,
        ShiftsWithAttributeRule,
    )
}


def validate_rule(rule: Any) -> None:
    """Raise unless ``rule`` is one of the application rule variants."""
    if type(rule) not in RULE_TYPES.values():
        raise InvalidApplicationRuleError(
            type(rule).__name__, "not an application rule variant"
        )


def rule_to_dict(rule: ApplicationRule) -> dict[str, str]:
    validate_rule(rule)
    data = {"kind": rule.kind}
    for f in fields(rule):
        data[f.name] = getattr(rule, f.name)
    return data


def rule_from_dict(data: dict[str, Any]) -> ApplicationRule:
    """Rebuild a rule from its tagged form.  Rejects unknown or extra keys."""
    kind = data.get("kind")
    cls = RULE_TYPES.get(kind)
    if cls is None:
        raise InvalidApplicationRuleError(str(kind), "unknown rule kind")
    expected = {f.name for f in fields(cls)}
    given = set(data) - {"kind"}
    if given != expected:
        missing = sorted(expected - given)
        extra = sorted(given - expected)
        raise InvalidApplicationRuleError(
            kind, f"fields mismatch (missing={missing}, unexpected={extra})"
        )
    return cls(**{name: data[name] for name in expected})


def describe_rule(rule: ApplicationRule) -> str:
    """Human label for line item descriptions and logs."""
    values = [getattr(rule, f.name) for f in fields(rule)]
    if values:
        return f"{rule.kind}({', '.join(values)})"
    return rule.kind
