"""
fleet_batch -- Batch statement generation.

Builds one period's statements for many persons, with gather/build/persist
phases, a thread pool for the pure build phase and per-person SAVEPOINT
isolation for persistence.

Architecture:
    fleet_batch/ is a top-level package.  Nothing in kernel/, engines/
    or services/ imports from fleet_batch.
"""

from fleet_batch.domain.types import (
    UNHANDLED_EXCEPTION,
    BatchItemError,
    BatchRunResult,
)
from fleet_batch.services.statement_batch import BatchStatementRunner

__all__ = [
    "UNHANDLED_EXCEPTION",
    "BatchItemError",
    "BatchRunResult",
    "BatchStatementRunner",
]
