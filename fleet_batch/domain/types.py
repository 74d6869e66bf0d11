"""
fleet_batch.domain.types -- Pure frozen dataclasses for batch statement runs.

ZERO I/O.  Frozen dataclasses and tuples for immutable collections, the
same shape as the kernel DTOs.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from uuid import UUID

UNHANDLED_EXCEPTION = "UNHANDLED_EXCEPTION"


@dataclass(frozen=True)
class BatchItemError:
    """Why one person's statement was not produced."""

    person_id: str
    error_code: str
    message: str
    phase: str = "build"


@dataclass(frozen=True)
class BatchRunResult:
    """Outcome of one batch statement run.

    ``success_count + failure_count`` equals the number of distinct persons
    submitted.  ``statement_ids`` is in submission order.
    """

    batch_id: UUID
    period_from: date
    period_to: date
    success_count: int
    failure_count: int
    statement_ids: tuple[UUID, ...] = ()
    errors: tuple[BatchItemError, ...] = ()
    started_at: datetime | None = None
    completed_at: datetime | None = None
    duration_ms: int = 0

    @property
    def total(self) -> int:
        return self.success_count + self.failure_count

    @property
    def failed_person_ids(self) -> tuple[str, ...]:
        return tuple(e.person_id for e in self.errors)
