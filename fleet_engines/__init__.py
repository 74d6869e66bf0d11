"""
Module: fleet_engines
Responsibility:
    Package entrypoint re-exporting the pure billing engines: rate catalog,
    override resolution, target resolution, charge calculation, statement
    building and the settlement state machine.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May import fleet_kernel (domain, exceptions, logging) only.
    MUST NOT import fleet_services or fleet_batch.

Invariants enforced:
    - Purity: engines never call ``datetime.now()`` or ``date.today()``;
      dates are explicit parameters.
    - Decimal-only arithmetic; floats are rejected at the DTO boundary.
    - Determinism: identical inputs always produce identical outputs, which
      is what makes statement regeneration and audit replay safe.

Audit relevance:
    Engine entry points are wrapped by ``@traced_engine`` and emit
    FLEET_ENGINE_TRACE records with an input fingerprint.
"""

from fleet_engines.charges import (
    LEASE_BASE_RATE,
    LEASE_MILEAGE_RATE,
    ChargeCalculator,
    PartyLine,
)
from fleet_engines.override_resolver import OverrideResolver
from fleet_engines.rate_book import DEFAULT_TENANT, RateBook, RateBookCache
from fleet_engines.rate_catalog import RateCatalog
from fleet_engines.settlement import (
    SETTLEMENT_TRANSITIONS,
    TERMINAL_STATUSES,
    SettlementEvent,
    SettlementStateMachine,
    Transition,
    allowed_events,
)
from fleet_engines.statement_builder import (
    StatementBuilder,
    StatementInputs,
    compute_net_due,
    order_line_items,
)
from fleet_engines.target_resolver import (
    ApplicationTargetResolver,
    TargetPreview,
    is_shift_active,
    shift_owner,
)
from fleet_engines.tracer import traced_engine

__all__ = [
    "DEFAULT_TENANT",
    "LEASE_BASE_RATE",
    "LEASE_MILEAGE_RATE",
    "SETTLEMENT_TRANSITIONS",
    "TERMINAL_STATUSES",
    "ApplicationTargetResolver",
    "ChargeCalculator",
    "OverrideResolver",
    "PartyLine",
    "RateBook",
    "RateBookCache",
    "RateCatalog",
    "SettlementEvent",
    "SettlementStateMachine",
    "StatementBuilder",
    "StatementInputs",
    "TargetPreview",
    "Transition",
    "allowed_events",
    "compute_net_due",
    "is_shift_active",
    "order_line_items",
    "shift_owner",
    "traced_engine",
]
