"""
Tests for BatchStatementRunner.

Covers:
- Partial failure: one bad person never aborts the others
- Errors reported in submission order with their phase and code
- Duplicate submissions processed once
- Re-running a batch rebuilds drafts in place
- A shared build failure leaves nothing persisted
- Batch drafts match statements built one at a time
"""

from datetime import date
from decimal import Decimal

import pytest

from fleet_batch import UNHANDLED_EXCEPTION, BatchStatementRunner
from fleet_kernel.domain.application_rule import SpecificShiftRule
from fleet_kernel.domain.dtos import BillingCadence
from fleet_kernel.domain.master_data import InMemoryUsageSource, ShiftStatusRecord, UsageRecord
from fleet_kernel.domain.values import DateWindow
from fleet_kernel.selectors.statement_selector import StatementSelector

JUNE = (date(2024, 6, 1), date(2024, 6, 30))


@pytest.fixture
def runner(session, master_data, usage_source, billing_config, clock, rate_book_cache,
           stored_lease_rates):
    return BatchStatementRunner(
        session, master_data, usage_source, billing_config,
        clock=clock, rate_book_cache=rate_book_cache,
    )


def _person_ids(session, statement_ids):
    selector = StatementSelector(session)
    return [selector.get(sid).person_id for sid in statement_ids]


class TestBatchRun:

    def test_all_persons_succeed(self, session, runner, actor_id):
        result = runner.run(["drv-1", "drv-2", "own-1", "own-2"], *JUNE, actor_id)

        assert result.success_count == 4
        assert result.failure_count == 0
        assert result.errors == ()
        assert _person_ids(session, result.statement_ids) == ["drv-1", "drv-2", "own-1", "own-2"]
        assert result.period_from == JUNE[0]
        assert result.duration_ms >= 0

    def test_unknown_person_isolated(self, session, runner, actor_id):
        result = runner.run(["drv-1", "ghost", "own-1"], *JUNE, actor_id)

        assert result.success_count == 2
        assert result.failure_count == 1
        assert result.total == 3
        [error] = result.errors
        assert error.person_id == "ghost"
        assert error.error_code == "TARGET_NOT_FOUND"
        assert error.phase == "gather"
        assert _person_ids(session, result.statement_ids) == ["drv-1", "own-1"]

    def test_errors_in_submission_order(self, runner, statement_service, settlement_service,
                                        actor_id):
        posted = statement_service.build("drv-2", *JUNE, actor_id)
        settlement_service.post(posted.statement_id, actor_id)

        result = runner.run(["nobody", "drv-1", "drv-2", "ghost"], *JUNE, actor_id)

        assert result.failed_person_ids == ("nobody", "drv-2", "ghost")
        assert [e.error_code for e in result.errors] == [
            "TARGET_NOT_FOUND", "STATEMENT_LOCKED", "TARGET_NOT_FOUND",
        ]
        assert result.success_count == 1

    def test_duplicates_processed_once(self, runner, actor_id):
        result = runner.run(["drv-1", "drv-1", "drv-1"], *JUNE, actor_id)

        assert result.total == 1
        assert len(result.statement_ids) == 1

    def test_rerun_rebuilds_drafts_in_place(self, runner, actor_id):
        first = runner.run(["drv-1", "own-1"], *JUNE, actor_id)
        second = runner.run(["drv-1", "own-1"], *JUNE, actor_id)

        assert second.statement_ids == first.statement_ids
        assert second.batch_id != first.batch_id

    def test_empty_batch(self, runner, actor_id):
        result = runner.run([], *JUNE, actor_id)

        assert result.total == 0
        assert result.statement_ids == ()

    def test_single_worker(self, session, master_data, usage_source, billing_config, clock,
                           stored_lease_rates, actor_id):
        runner = BatchStatementRunner(
            session, master_data, usage_source, billing_config, clock=clock, max_workers=1,
        )
        result = runner.run(["drv-1", "drv-2"], *JUNE, actor_id)
        assert result.success_count == 2


class TestBuildFailure:

    def test_orphaned_usage_fails_only_its_driver(
        self, session, master_data, june_usage, billing_config, clock, stored_lease_rates,
        actor_id,
    ):
        usage = InMemoryUsageSource(
            june_usage + [UsageRecord("sh-9", "drv-2", date(2024, 6, 7), Decimal("12"), 1)],
        )
        runner = BatchStatementRunner(session, master_data, usage, billing_config, clock=clock)

        result = runner.run(["drv-1", "drv-2", "own-2"], *JUNE, actor_id)

        [error] = result.errors
        assert (error.person_id, error.error_code, error.phase) == (
            "drv-2", "ORPHANED_TARGET", "build",
        )
        assert _person_ids(session, result.statement_ids) == ["drv-1", "own-2"]
        assert StatementSelector(session).find_for_period("drv-2", *JUNE) is None

    def test_inactive_specific_shift_fails_only_its_owner(
        self, session, master_data_factory, usage_source, billing_config, clock,
        stored_lease_rates, expense_service, actor_id,
    ):
        active = DateWindow(date(2023, 1, 1))
        master = master_data_factory(status_history=[
            ShiftStatusRecord("sh-1", True, active),
            ShiftStatusRecord("sh-2", True, active),
            ShiftStatusRecord("sh-3", True, DateWindow(date(2023, 1, 1), date(2024, 6, 9))),
            ShiftStatusRecord("sh-3", False, DateWindow(date(2024, 6, 10))),
        ])
        expense_service.create_recurring(
            category_id="radio", rule=SpecificShiftRule("sh-3"), amount=Decimal("2.00"),
            billing_cadence=BillingCadence.DAILY, effective_from=date(2024, 1, 1),
            actor_id=actor_id,
        )
        runner = BatchStatementRunner(session, master, usage_source, billing_config, clock=clock)

        result = runner.run(["drv-1", "drv-2", "own-1", "own-2"], *JUNE, actor_id)

        [error] = result.errors
        assert (error.person_id, error.error_code, error.phase) == (
            "own-2", "TARGET_NOT_FOUND", "build",
        )
        assert _person_ids(session, result.statement_ids) == ["drv-1", "drv-2", "own-1"]


class TestSharedFailure:

    def test_missing_lease_rates_fail_every_build(
        self, session, master_data, usage_source, billing_config, clock, actor_id,
    ):
        runner = BatchStatementRunner(session, master_data, usage_source, billing_config, clock=clock)

        result = runner.run(["drv-1", "own-2"], *JUNE, actor_id)

        assert result.success_count == 0
        assert {e.error_code for e in result.errors} == {"RATE_NOT_FOUND"}
        assert {e.phase for e in result.errors} == {"build"}
        assert StatementSelector(session).find_for_period("drv-1", *JUNE) is None

    def test_unhandled_exception_recorded(self, runner, actor_id, monkeypatch):
        def explode(*args, **kwargs):
            raise RuntimeError("disk on fire")

        monkeypatch.setattr(runner._service, "plan_build", explode)

        result = runner.run(["drv-1"], *JUNE, actor_id)

        [error] = result.errors
        assert error.error_code == UNHANDLED_EXCEPTION
        assert error.message == "RuntimeError: disk on fire"


class TestBatchMatchesSequential:

    def test_same_totals_as_single_builds(
        self, session, runner, statement_service, actor_id,
    ):
        result = runner.run(["drv-1", "drv-2", "own-1", "own-2"], *JUNE, actor_id)
        selector = StatementSelector(session)
        batch = {selector.get(sid).person_id: selector.get(sid) for sid in result.statement_ids}

        for person_id, info in batch.items():
            rebuilt = statement_service.build(person_id, *JUNE, actor_id)
            assert rebuilt.statement_id == info.statement_id
            assert rebuilt.line_items == info.line_items
            assert rebuilt.net_due == info.net_due


class TestBatchLogging:

    def test_run_logged_with_batch_id(self, runner, actor_id, captured_logs):
        result = runner.run(["drv-1", "ghost"], *JUNE, actor_id)

        logs = captured_logs()
        [completed] = [r for r in logs if r["message"] == "batch_statement_run_completed"]
        assert completed["batch_id"] == str(result.batch_id)
        assert completed["success_count"] == 1
        assert completed["failure_count"] == 1

        [failed] = [r for r in logs if r["message"] == "batch_item_failed"]
        assert failed["person_id"] == "ghost"
        assert failed["phase"] == "gather"
        assert failed["level"] == "WARNING"

    def test_worker_traces_carry_batch_id(self, runner, actor_id, captured_logs):
        result = runner.run(["drv-1"], *JUNE, actor_id)

        traces = [
            r for r in captured_logs()
            if r.get("trace_type") == "FLEET_ENGINE_TRACE" and r["engine_name"] == "statement_builder"
        ]
        assert traces
        assert all(t["batch_id"] == str(result.batch_id) for t in traces)
        assert all(t["person_id"] == "drv-1" for t in traces)
