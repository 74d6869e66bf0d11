"""
Pure domain layer.

Value objects, DTOs, application rules and master-data ports with NO
dependencies on the ORM, the database, wall-clock time or other I/O.
"""

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
    rule_from_dict,
    rule_to_dict,
)
from fleet_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from fleet_kernel.domain.dtos import (
    AuditChangeType,
    AuditLogEntryInfo,
    BillingCadence,
    ChargeBreakdown,
    ChargedTo,
    DayOfWeek,
    ExpenseCharge,
    LineItem,
    LineSide,
    LineSource,
    OverrideScope,
    PaymentInfo,
    PaymentStatus,
    PersonTarget,
    PersonType,
    RateDefinition,
    RateOverride,
    RateSource,
    ResolvedRate,
    RevenueRecord,
    ShiftTarget,
    ShiftType,
    StatementDraft,
    StatementInfo,
    StatementStatus,
    TargetEntity,
    UnitType,
    compute_priority,
)
from fleet_kernel.domain.master_data import (
    AttributeValue,
    InMemoryMasterData,
    InMemoryUsageSource,
    MasterDataPort,
    Person,
    ProfileAssignment,
    Shift,
    ShiftOwnership,
    ShiftStatusRecord,
    UsageRecord,
    UsageSourcePort,
)
from fleet_kernel.domain.values import DateWindow, quantize_amount, quantize_rate, to_decimal

__all__ = [
    "AllActiveShiftsRule",
    "AllDriversRule",
    "AllOwnersRule",
    "ApplicationRule",
    "AttributeValue",
    "AuditChangeType",
    "AuditLogEntryInfo",
    "BillingCadence",
    "ChargeBreakdown",
    "ChargedTo",
    "Clock",
    "DateWindow",
    "DayOfWeek",
    "DeterministicClock",
    "ExpenseCharge",
    "InMemoryMasterData",
    "InMemoryUsageSource",
    "LineItem",
    "LineSide",
    "LineSource",
    "MasterDataPort",
    "OverrideScope",
    "PaymentInfo",
    "PaymentStatus",
    "Person",
    "PersonTarget",
    "PersonType",
    "ProfileAssignment",
    "RateDefinition",
    "RateOverride",
    "RateSource",
    "ResolvedRate",
    "RevenueRecord",
    "Shift",
    "ShiftOwnership",
    "ShiftProfileRule",
    "ShiftStatusRecord",
    "ShiftTarget",
    "ShiftType",
    "ShiftsWithAttributeRule",
    "SpecificPersonRule",
    "SpecificShiftRule",
    "StatementDraft",
    "StatementInfo",
    "StatementStatus",
    "SystemClock",
    "TargetEntity",
    "UnitType",
    "UsageRecord",
    "UsageSourcePort",
    "compute_priority",
    "describe_rule",
    "quantize_amount",
    "quantize_rate",
    "rule_from_dict",
    "rule_to_dict",
    "to_decimal",
]
