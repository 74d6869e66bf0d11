"""
fleet_services.statement_service -- builds and persists period statements.

Responsibility:
    Gathers everything one statement needs (person, expense charges, usage,
    revenue, previous balance, rate book), runs the pure StatementBuilder,
    and persists the draft with its line items and a CREATED/REBUILT audit
    entry.  Also owns the correction path (revisions) and draft deletion.

Architecture position:
    Services -- stateful orchestration over engines + kernel.
    I/O happens only in ``gather_inputs`` and ``persist_draft``; the build
    step in between is pure, which is what lets fleet_batch run it on a
    thread pool.

Invariants enforced:
    - One live statement per (person, period, version): the unique
      constraint turns a concurrent duplicate into ConcurrentBuildError.
    - Only DRAFT statements are rebuilt; POSTED/LOCKED/PAID raise
      StatementLockedError and must be revised instead.
    - Any failure while building aborts the whole statement; nothing is
      persisted for it.

Failure modes:
    - PriorStatementMissingError when continuity is required and the prior
      period was never posted.
    - TargetNotFoundError for a person missing from master data.
    - RateNotFoundError / OrphanedTargetError from the engines.
    - RevisionNotAllowedError from ``create_revision``.

Audit relevance:
    Each persisted draft gets a CREATED (or REBUILT) entry carrying its
    totals and line count; a revision archives its parent with reason
    "superseded by revision".
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fleet_config.schema import BillingConfig
from fleet_kernel.domain.application_rule import ApplicationRule
from fleet_kernel.domain.clock import Clock, SystemClock
from fleet_kernel.domain.dtos import (
    AuditChangeType,
    PaymentStatus,
    StatementDraft,
    StatementInfo,
    StatementStatus,
)
from fleet_kernel.domain.master_data import MasterDataPort, UsageSourcePort
from fleet_kernel.domain.values import ZERO
from fleet_kernel.exceptions import (
    ConcurrentBuildError,
    PriorStatementMissingError,
    RevisionNotAllowedError,
    StatementLockedError,
    StatementNotFoundError,
    TargetNotFoundError,
)
from fleet_kernel.logging_config import LogContext, get_logger
from fleet_kernel.models.statement import StatementLineItemModel, StatementModel
from fleet_kernel.selectors.expense_selector import ExpenseSelector
from fleet_kernel.selectors.statement_selector import StatementSelector, statement_to_dto
from fleet_kernel.services.statement_auditor import StatementAuditor
from fleet_engines.charges import ChargeCalculator
from fleet_engines.rate_book import RateBookCache
from fleet_engines.statement_builder import StatementBuilder, StatementInputs
from fleet_engines.target_resolver import ApplicationTargetResolver, TargetPreview
from fleet_services.rate_service import cached_rate_book
from fleet_services.settlement_service import SettlementService

logger = get_logger("services.statement")

REVISION_REASON = "superseded by revision"


def _draft_payload(draft: StatementDraft) -> dict:
    return {
        "line_count": len(draft.line_items),
        "previous_balance": draft.previous_balance,
        "total_expense": draft.total_expense,
        "total_revenue": draft.total_revenue,
        "net_due": draft.net_due,
    }


@dataclass(frozen=True)
class BuildPlan:
    """
    Everything decided before the pure build step for one (person, period).

    ``statement_id`` is set when an existing DRAFT is to be rebuilt in
    place; otherwise the draft is inserted as ``version`` (linked to
    ``parent_statement_id`` when it follows an archived version).
    """

    inputs: StatementInputs
    statement_id: UUID | None = None
    version: int = 1
    parent_statement_id: UUID | None = None


class StatementService:
    """
    Build, rebuild, revise and delete statements.

    Contract:
        Flushes, never commits.  The caller's transaction makes a draft,
        its line items and its audit entry durable together.
    """

    def __init__(
        self,
        session: Session,
        master_data: MasterDataPort,
        usage_source: UsageSourcePort,
        config: BillingConfig,
        clock: Clock | None = None,
        rate_book_cache: RateBookCache | None = None,
    ):
        self._session = session
        self._master = master_data
        self._usage = usage_source
        self._config = config
        self._clock = clock or SystemClock()
        self._cache = rate_book_cache
        self._statements = StatementSelector(session)
        self._auditor = StatementAuditor(session, self._clock)

    # ------------------------------------------------------------------
    # Engine wiring
    # ------------------------------------------------------------------

    def target_resolver(self) -> ApplicationTargetResolver:
        return ApplicationTargetResolver(
            self._master, preview_size=self._config.preview.sample_size,
        )

    def builder(self) -> StatementBuilder:
        """StatementBuilder over the current (cached) rate book."""
        book = cached_rate_book(self._session, self._cache, self._config.tenant_id)
        calculator = ChargeCalculator(
            book,
            self.target_resolver(),
            lease_base_rate=self._config.lease.base_rate_name,
            lease_mileage_rate=self._config.lease.mileage_rate_name,
        )
        return StatementBuilder(calculator)

    def preview_targets(
        self, rule: ApplicationRule, as_of: date, limit: int | None = None,
    ) -> TargetPreview:
        """Dry-run a rule before attaching it to an expense."""
        return self.target_resolver().preview_targets(rule, as_of, limit)

    # ------------------------------------------------------------------
    # Gather (I/O)
    # ------------------------------------------------------------------

    def previous_balance(
        self, person_id: str, period_from: date, require_continuity: bool,
    ):
        """
        ``net_due`` of the latest live prior statement.

        Raises:
            PriorStatementMissingError: continuity is required and there is
                no prior statement, or it was never posted.
        """
        if not require_continuity:
            return ZERO
        prior = self._statements.latest_before(person_id, period_from)
        if prior is None:
            raise PriorStatementMissingError(person_id, period_from)
        if not prior.status.is_posted:
            raise PriorStatementMissingError(person_id, period_from, str(prior.statement_id))
        return prior.net_due

    def gather_inputs(
        self,
        person_id: str,
        period_from: date,
        period_to: date,
        require_continuity: bool | None = None,
    ) -> StatementInputs:
        if require_continuity is None:
            require_continuity = self._config.statements.require_continuity
        person = self._master.get_person(person_id)
        if person is None:
            raise TargetNotFoundError("person", person_id, period_from)

        span = (period_to - period_from).days + 1
        if span > self._config.statements.max_period_days:
            raise ValueError(
                f"Statement period of {span} days exceeds the "
                f"{self._config.statements.max_period_days}-day limit"
            )

        expenses = ExpenseSelector(self._session)
        return StatementInputs(
            person_id=person_id,
            person_type=person.person_type,
            period_from=period_from,
            period_to=period_to,
            previous_balance=self.previous_balance(person_id, period_from, require_continuity),
            charges=expenses.charges_for_period(period_from, period_to),
            usage=tuple(self._usage.usage_between(period_from, period_to)),
            revenues=expenses.revenue_for(person_id, period_from, period_to),
        )

    # ------------------------------------------------------------------
    # Build / rebuild
    # ------------------------------------------------------------------

    def _rebuild_inputs(
        self, row: StatementModel, require_continuity: bool | None,
    ) -> StatementInputs:
        if row.parent_statement_id is not None:
            # A revision keeps its parent's opening balance
            inputs = self.gather_inputs(row.person_id, row.period_from, row.period_to, False)
            return replace(inputs, previous_balance=row.previous_balance)
        return self.gather_inputs(
            row.person_id, row.period_from, row.period_to, require_continuity,
        )

    def plan_build(
        self,
        person_id: str,
        period_from: date,
        period_to: date,
        require_continuity: bool | None = None,
    ) -> BuildPlan:
        """
        Decide how (person, period) is built and gather its inputs.

        An existing DRAFT is rebuilt in place.  A posted one raises
        StatementLockedError.  When the latest version was archived or
        cancelled, a new version is planned.
        """
        existing = self._statements.find_for_period(person_id, period_from, period_to)
        if existing is not None and existing.status == StatementStatus.DRAFT:
            row = self._get_row(existing.statement_id)
            return BuildPlan(
                inputs=self._rebuild_inputs(row, require_continuity),
                statement_id=row.id,
                version=row.version,
                parent_statement_id=row.parent_statement_id,
            )
        if existing is not None and existing.status.is_posted:
            raise StatementLockedError(
                str(existing.statement_id), existing.status.value, "rebuild",
            )

        inputs = self.gather_inputs(person_id, period_from, period_to, require_continuity)
        if existing is None:
            return BuildPlan(inputs=inputs)
        return BuildPlan(
            inputs=inputs,
            version=existing.version + 1,
            parent_statement_id=existing.statement_id,
        )

    def store(self, plan: BuildPlan, draft: StatementDraft, actor_id: UUID) -> StatementInfo:
        """Persist a draft built from ``plan``."""
        if plan.statement_id is not None:
            return self.replace_draft(plan.statement_id, draft, actor_id)
        return self.persist_draft(
            draft, actor_id,
            version=plan.version,
            parent_statement_id=plan.parent_statement_id,
        )

    def build(
        self,
        person_id: str,
        period_from: date,
        period_to: date,
        actor_id: UUID,
        require_continuity: bool | None = None,
    ) -> StatementInfo:
        """Build (or rebuild) the DRAFT statement for (person, period)."""
        with LogContext.bind(person_id=person_id, actor_id=actor_id):
            plan = self.plan_build(person_id, period_from, period_to, require_continuity)
            draft = self.builder().build(inputs=plan.inputs)
            return self.store(plan, draft, actor_id)

    def persist_draft(
        self,
        draft: StatementDraft,
        actor_id: UUID,
        version: int = 1,
        parent_statement_id: UUID | None = None,
    ) -> StatementInfo:
        """
        Insert a DRAFT statement with its line items inside a SAVEPOINT.

        Raises:
            ConcurrentBuildError: the (person, period, version) key exists.
        """
        savepoint = self._session.begin_nested()
        try:
            row = StatementModel(
                person_id=draft.person_id,
                person_type=draft.person_type.value,
                period_from=draft.period_from,
                period_to=draft.period_to,
                version=version,
                parent_statement_id=parent_statement_id,
                status=StatementStatus.DRAFT.value,
                previous_balance=draft.previous_balance,
                total_expense=draft.total_expense,
                total_revenue=draft.total_revenue,
                paid_amount=ZERO,
                total_owed=draft.total_owed,
                net_due=draft.net_due,
                created_by_id=actor_id,
            )
            row.line_items = [self._line_row(li) for li in draft.line_items]
            self._session.add(row)
            self._session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.warning(
                "statement_build_conflict",
                extra={
                    "person_id": draft.person_id,
                    "period_from": draft.period_from,
                    "period_to": draft.period_to,
                    "version": version,
                },
            )
            raise ConcurrentBuildError(draft.person_id, draft.period_from, draft.period_to)

        payload = _draft_payload(draft)
        if parent_statement_id is not None:
            payload["parent_statement_id"] = parent_statement_id
        self._auditor.record(
            statement_id=row.id,
            change_type=AuditChangeType.CREATED,
            previous_status=None,
            new_status=StatementStatus.DRAFT,
            actor_id=actor_id,
            payload=payload,
        )
        logger.info(
            "statement_built",
            extra={
                "statement_id": str(row.id),
                "person_id": draft.person_id,
                "version": version,
                "line_count": len(draft.line_items),
                "net_due": draft.net_due,
            },
        )
        return statement_to_dto(row)

    @staticmethod
    def _line_row(line) -> StatementLineItemModel:
        return StatementLineItemModel(
            line_no=line.line_no,
            side=line.side.value,
            source=line.source.value,
            description=line.description[:255],
            amount=line.amount,
            occurred_on=line.occurred_on,
            target_kind=line.target_kind,
            target_id=line.target_id,
            reference_id=line.reference_id,
            units=line.units,
            unit_rate=line.unit_rate,
        )

    def _get_row(self, statement_id: UUID) -> StatementModel:
        row = self._session.get(StatementModel, statement_id)
        if row is None:
            raise StatementNotFoundError(str(statement_id))
        return row

    def rebuild(
        self,
        statement_id: UUID,
        actor_id: UUID,
        require_continuity: bool | None = None,
    ) -> StatementInfo:
        """
        Discard and recompute every line of a DRAFT statement.

        Rebuilding from unchanged source data yields identical lines and
        totals.
        """
        row = self._get_row(statement_id)
        if row.status != StatementStatus.DRAFT.value:
            raise StatementLockedError(str(statement_id), row.status, "rebuild")
        draft = self.builder().build(inputs=self._rebuild_inputs(row, require_continuity))
        return self.replace_draft(statement_id, draft, actor_id)

    def replace_draft(
        self, statement_id: UUID, draft: StatementDraft, actor_id: UUID,
    ) -> StatementInfo:
        """Swap the lines and totals of a DRAFT for those of ``draft``."""
        row = self._get_row(statement_id)
        if row.status != StatementStatus.DRAFT.value:
            raise StatementLockedError(str(statement_id), row.status, "rebuild")

        # Old lines go first: the (statement, line_no) key is reused
        row.line_items.clear()
        self._session.flush()
        row.line_items.extend(self._line_row(li) for li in draft.line_items)
        row.previous_balance = draft.previous_balance
        row.total_expense = draft.total_expense
        row.total_revenue = draft.total_revenue
        row.total_owed = draft.total_owed
        row.net_due = draft.net_due
        row.updated_by_id = actor_id
        self._session.flush()

        self._auditor.record(
            statement_id=row.id,
            change_type=AuditChangeType.REBUILT,
            previous_status=StatementStatus.DRAFT,
            new_status=StatementStatus.DRAFT,
            actor_id=actor_id,
            payload=_draft_payload(draft),
        )
        logger.info(
            "statement_rebuilt",
            extra={
                "statement_id": str(row.id),
                "line_count": len(draft.line_items),
                "net_due": draft.net_due,
            },
        )
        return statement_to_dto(row)

    # ------------------------------------------------------------------
    # Corrections
    # ------------------------------------------------------------------

    def create_revision(
        self,
        statement_id: UUID,
        actor_id: UUID,
        settlement: SettlementService | None = None,
    ) -> StatementInfo:
        """
        Archive a POSTED/LOCKED statement and build its next version.

        The revision keeps the parent's previous balance and links back
        through ``parent_statement_id``.

        Raises:
            RevisionNotAllowedError: wrong status, or completed payments exist.
        """
        row = self._get_row(statement_id)
        if row.status not in (StatementStatus.POSTED.value, StatementStatus.LOCKED.value):
            raise RevisionNotAllowedError(
                str(statement_id), f"status is {row.status}, expected posted or locked",
            )
        completed = [p for p in row.payments if p.status == PaymentStatus.COMPLETED.value]
        if completed:
            raise RevisionNotAllowedError(
                str(statement_id), f"{len(completed)} completed payment(s) applied",
            )

        inputs = self.gather_inputs(row.person_id, row.period_from, row.period_to, False)
        inputs = replace(inputs, previous_balance=row.previous_balance)
        draft = self.builder().build(inputs=inputs)

        settlement = settlement or SettlementService(self._session, self._clock)
        settlement.archive(statement_id, REVISION_REASON, actor_id)

        latest = self._session.execute(
            select(StatementModel.version)
            .where(StatementModel.person_id == row.person_id)
            .where(StatementModel.period_from == row.period_from)
            .where(StatementModel.period_to == row.period_to)
            .order_by(StatementModel.version.desc())
            .limit(1)
        ).scalar_one()
        revision = self.persist_draft(
            draft, actor_id, version=latest + 1, parent_statement_id=row.id,
        )
        logger.info(
            "statement_revised",
            extra={
                "statement_id": str(revision.statement_id),
                "parent_statement_id": str(statement_id),
                "version": revision.version,
            },
        )
        return revision

    def delete_draft(self, statement_id: UUID, actor_id: UUID) -> None:
        """
        Delete a DRAFT statement and, by cascade, its line items.

        The audit trail outlives the statement: a DELETED entry carrying
        the draft's identity and totals is appended first.
        """
        row = self._get_row(statement_id)
        if row.status != StatementStatus.DRAFT.value:
            raise StatementLockedError(str(statement_id), row.status, "delete")
        payload = {
            "person_id": row.person_id,
            "period_from": row.period_from,
            "period_to": row.period_to,
            "version": row.version,
            "line_count": len(row.line_items),
            "net_due": row.net_due,
        }
        self._auditor.record(
            statement_id=row.id,
            change_type=AuditChangeType.DELETED,
            previous_status=StatementStatus.DRAFT,
            new_status=StatementStatus.DRAFT,
            actor_id=actor_id,
            payload=payload,
        )
        self._session.delete(row)
        self._session.flush()
        logger.info(
            "statement_draft_deleted",
            extra={
                "statement_id": str(statement_id),
                "actor_id": str(actor_id),
                "net_due": payload["net_due"],
            },
        )
