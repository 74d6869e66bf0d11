"""
fleet_services -- Package init and public API.

Responsibility:
    Stateful orchestration services that compose the pure billing engines
    (fleet_engines/) with database sessions, the master-data port, the
    active configuration and the clock.  Rate administration, statement
    building and settlement live here.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

    Dependency direction:
        fleet_services/ -> fleet_engines/  (allowed)
        fleet_services/ -> fleet_kernel/   (allowed)
        fleet_engines/  -> fleet_services/ (FORBIDDEN)
        fleet_kernel/   -> fleet_services/ (FORBIDDEN)

Invariants enforced:
    - Services flush, never commit.  The caller owns the transaction
      (fleet_kernel.db.engine.session_scope).

Audit relevance:
    - This package is the canonical import surface for hosts.  Changes to
      __all__ must be reviewed for backwards-compatibility.
"""

from fleet_kernel.logging_config import get_logger

logger = get_logger("services")

from fleet_services.bootstrap import start
from fleet_services.rate_service import (
    OverrideService,
    RateCatalogService,
    cached_rate_book,
    load_rate_book,
)
from fleet_services.settlement_service import SettlementService
from fleet_services.statement_service import REVISION_REASON, BuildPlan, StatementService

__all__ = [
    "BuildPlan",
    "OverrideService",
    "REVISION_REASON",
    "RateCatalogService",
    "SettlementService",
    "StatementService",
    "cached_rate_book",
    "load_rate_book",
    "start",
]
