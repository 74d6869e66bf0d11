"""
BatchStatementRunner -- statement generation for many persons, one period.

Contract:
    ``run()`` produces one DRAFT statement per person and reports per-person
    failures instead of raising them.  It never commits; the caller owns
    the transaction.

Architecture: fleet_batch/services.  Drives fleet_services.StatementService;
    nothing in kernel/, engines/ or services/ imports from fleet_batch.

Phases:
    1. Gather (serial, session reads): plan each person's build.
    2. Build (parallel, pure): run the StatementBuilder for every planned
       person on a thread pool.  The engines share no mutable state, and
       the session is not touched in this phase.
    3. Persist (serial): store each draft inside its own SAVEPOINT, so one
       failed insert rolls back only that person's statement.

Invariants enforced:
    - A failure in any phase for one person is recorded as a BatchItemError
      and never aborts the others.
    - Nothing is persisted for a person whose build failed.
    - Each person is processed once even if submitted twice.
"""

from __future__ import annotations

import contextvars
import time
from collections.abc import Iterable
from concurrent.futures import ThreadPoolExecutor, as_completed
from datetime import date
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from fleet_config.schema import BillingConfig
from fleet_kernel.domain.clock import Clock, SystemClock
from fleet_kernel.domain.dtos import StatementDraft
from fleet_kernel.domain.master_data import MasterDataPort, UsageSourcePort
from fleet_kernel.exceptions import FleetBillingError
from fleet_kernel.logging_config import LogContext, get_logger
from fleet_engines.rate_book import RateBookCache
from fleet_engines.statement_builder import StatementBuilder, StatementInputs
from fleet_services.statement_service import BuildPlan, StatementService

from fleet_batch.domain.types import (
    UNHANDLED_EXCEPTION,
    BatchItemError,
    BatchRunResult,
)

logger = get_logger("batch.statements")


def _build_one(builder: StatementBuilder, inputs: StatementInputs) -> StatementDraft:
    with LogContext.bind(person_id=inputs.person_id):
        return builder.build(inputs=inputs)


class BatchStatementRunner:
    """Per-person failure isolation over StatementService.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT post statements; drafts are reviewed before posting.
    """

    def __init__(
        self,
        session: Session,
        master_data: MasterDataPort,
        usage_source: UsageSourcePort,
        config: BillingConfig,
        clock: Clock | None = None,
        rate_book_cache: RateBookCache | None = None,
        max_workers: int | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._service = StatementService(
            session, master_data, usage_source, config, self._clock, rate_book_cache,
        )
        self._max_workers = max_workers or config.batch.max_workers

    @staticmethod
    def _item_error(person_id: str, exc: Exception, phase: str) -> BatchItemError:
        if isinstance(exc, FleetBillingError):
            logger.warning(
                "batch_item_failed",
                extra={
                    "person_id": person_id,
                    "phase": phase,
                    "error_code": exc.code,
                    "error": str(exc),
                },
            )
            return BatchItemError(person_id, exc.code, str(exc), phase)

        logger.exception(
            "batch_item_unhandled_exception",
            extra={"person_id": person_id, "phase": phase},
        )
        return BatchItemError(
            person_id, UNHANDLED_EXCEPTION, f"{type(exc).__name__}: {exc}", phase,
        )

    # -------------------------------------------------------------------------
    # Phases
    # -------------------------------------------------------------------------

    def _gather(
        self,
        person_ids: list[str],
        period_from: date,
        period_to: date,
        require_continuity: bool | None,
        errors: dict[str, BatchItemError],
    ) -> dict[str, BuildPlan]:
        plans: dict[str, BuildPlan] = {}
        for person_id in person_ids:
            try:
                plans[person_id] = self._service.plan_build(
                    person_id, period_from, period_to, require_continuity,
                )
            except Exception as exc:
                errors[person_id] = self._item_error(person_id, exc, "gather")
        return plans

    def _build(
        self,
        plans: dict[str, BuildPlan],
        errors: dict[str, BatchItemError],
    ) -> dict[str, StatementDraft]:
        drafts: dict[str, StatementDraft] = {}
        if not plans:
            return drafts

        builder = self._service.builder()
        workers = max(1, min(self._max_workers, len(plans)))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="fleet-batch") as pool:
            # Each task runs in its own copy of the caller's context so the
            # batch_id/actor_id log fields follow it onto the worker thread.
            futures = {
                pool.submit(
                    contextvars.copy_context().run, _build_one, builder, plan.inputs,
                ): person_id
                for person_id, plan in plans.items()
            }
            for future in as_completed(futures):
                person_id = futures[future]
                try:
                    drafts[person_id] = future.result()
                except Exception as exc:
                    errors[person_id] = self._item_error(person_id, exc, "build")
        return drafts

    def _persist(
        self,
        person_ids: list[str],
        plans: dict[str, BuildPlan],
        drafts: dict[str, StatementDraft],
        actor_id: UUID,
        errors: dict[str, BatchItemError],
    ) -> list[UUID]:
        statement_ids: list[UUID] = []
        for person_id in person_ids:
            if person_id not in drafts:
                continue
            savepoint = self._session.begin_nested()
            try:
                with LogContext.bind(person_id=person_id):
                    info = self._service.store(plans[person_id], drafts[person_id], actor_id)
                savepoint.commit()
            except Exception as exc:
                savepoint.rollback()
                errors[person_id] = self._item_error(person_id, exc, "persist")
                continue
            statement_ids.append(info.statement_id)
        return statement_ids

    # -------------------------------------------------------------------------
    # Run
    # -------------------------------------------------------------------------

    def run(
        self,
        person_ids: Iterable[str],
        period_from: date,
        period_to: date,
        actor_id: UUID,
        require_continuity: bool | None = None,
    ) -> BatchRunResult:
        """Build DRAFT statements for ``person_ids`` over one period.

        Returns:
            BatchRunResult with one BatchItemError per failed person.
        """
        batch_id = uuid4()
        ordered = list(dict.fromkeys(person_ids))
        start_time = time.monotonic()
        started_at = self._clock.now()

        with LogContext.bind(batch_id=batch_id, actor_id=actor_id):
            logger.info(
                "batch_statement_run_started",
                extra={
                    "person_count": len(ordered),
                    "period_from": period_from,
                    "period_to": period_to,
                    "max_workers": self._max_workers,
                },
            )

            errors: dict[str, BatchItemError] = {}
            plans = self._gather(ordered, period_from, period_to, require_continuity, errors)
            drafts = self._build(plans, errors)
            statement_ids = self._persist(ordered, plans, drafts, actor_id, errors)

            duration_ms = int((time.monotonic() - start_time) * 1000)
            result = BatchRunResult(
                batch_id=batch_id,
                period_from=period_from,
                period_to=period_to,
                success_count=len(statement_ids),
                failure_count=len(errors),
                statement_ids=tuple(statement_ids),
                errors=tuple(errors[p] for p in ordered if p in errors),
                started_at=started_at,
                completed_at=self._clock.now(),
                duration_ms=duration_ms,
            )

            logger.info(
                "batch_statement_run_completed",
                extra={
                    "success_count": result.success_count,
                    "failure_count": result.failure_count,
                    "duration_ms": duration_ms,
                },
            )
            return result
