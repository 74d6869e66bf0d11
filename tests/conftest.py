"""
Pytest fixtures for the fleet billing test suite.

Provides:
- An in-memory SQLite database (one engine and schema per test session)
- Per-test sessions that roll back everything at teardown
- A small fleet in master data: two owners, two drivers, three shifts,
  and a factory for variants of it
- Rate book, calculator and builder fixtures for engine tests
- Structured-log capture

SQLite is used so the suite runs without a database server; the engine
module turns off pysqlite's own transaction handling so SAVEPOINTs behave
as they do on PostgreSQL.
"""

import json
import logging
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from typing import Generator
from uuid import uuid4

import pytest
from sqlalchemy.orm import Session

from fleet_config.schema import BatchSettings, BillingConfig, StatementSettings
from fleet_kernel.db.engine import create_tables, init_engine_from_url, reset_engine
from fleet_kernel.db.immutability import (
    register_immutability_listeners,
    unregister_immutability_listeners,
)
from fleet_kernel.domain.clock import DeterministicClock
from fleet_kernel.domain.dtos import (
    BillingCadence,
    ChargedTo,
    PersonType,
    RateDefinition,
    ShiftType,
    UnitType,
)
from fleet_kernel.domain.master_data import (
    AttributeValue,
    InMemoryMasterData,
    InMemoryUsageSource,
    Person,
    ProfileAssignment,
    Shift,
    ShiftOwnership,
    ShiftStatusRecord,
    UsageRecord,
)
from fleet_kernel.domain.values import DateWindow
from fleet_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from fleet_engines.charges import ChargeCalculator
from fleet_engines.rate_book import RateBook, RateBookCache
from fleet_engines.statement_builder import StatementBuilder
from fleet_engines.target_resolver import ApplicationTargetResolver
from fleet_kernel.services.expense_service import ExpenseService
from fleet_kernel.services.revenue_service import RevenueService
from fleet_services.rate_service import OverrideService, RateCatalogService
from fleet_services.settlement_service import SettlementService
from fleet_services.statement_service import StatementService

# Test actor ID for all test operations
TEST_ACTOR_ID = uuid4()

FLEET_START = date(2023, 1, 1)
JUNE_FROM = date(2024, 6, 1)
JUNE_TO = date(2024, 6, 30)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture fleet_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs):
            ...
            logs = captured_logs()
            assert any(r["message"] == "statement_posted" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("fleet_kernel")
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)


# =============================================================================
# Database
# =============================================================================


@pytest.fixture(scope="session")
def db_engine():
    """Single in-memory SQLite engine for the whole test session."""
    eng = init_engine_from_url("sqlite+pysqlite:///:memory:")
    create_tables()
    register_immutability_listeners()
    yield eng
    unregister_immutability_listeners()
    reset_engine()


@pytest.fixture
def session(db_engine) -> Generator[Session, None, None]:
    """Database session whose work is rolled back at teardown.

    The session joins an outer transaction on a dedicated connection; any
    ``session.commit()`` inside a test only releases a savepoint.
    """
    conn = db_engine.connect()
    trans = conn.begin()
    sess = Session(bind=conn, join_transaction_mode="create_savepoint", expire_on_commit=False)
    yield sess
    try:
        sess.close()
    finally:
        try:
            trans.rollback()
        finally:
            conn.close()


@pytest.fixture
def clock() -> DeterministicClock:
    return DeterministicClock(datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def actor_id():
    return TEST_ACTOR_ID


# =============================================================================
# Fleet master data
# =============================================================================
#
#   own-1 owns sh-1 (cab-1 day) and sh-2 (cab-1 night)
#   own-2 owns sh-3 (cab-2 day); cab-2 is wheelchair accessible
#   profile prof-a = {sh-1, sh-3}
#   drv-1 and drv-2 lease shifts from the owners


@pytest.fixture
def persons() -> list[Person]:
    active = DateWindow(FLEET_START)
    return [
        Person("own-1", "Olive Owner", PersonType.OWNER, active),
        Person("own-2", "Oscar Owner", PersonType.OWNER, active),
        Person("drv-1", "Dana Driver", PersonType.DRIVER, active),
        Person("drv-2", "Dev Driver", PersonType.DRIVER, active),
    ]


@pytest.fixture
def shifts() -> list[Shift]:
    return [
        Shift("sh-1", "cab-1", ShiftType.DAY),
        Shift("sh-2", "cab-1", ShiftType.NIGHT),
        Shift("sh-3", "cab-2", ShiftType.DAY),
    ]


@pytest.fixture
def master_data_factory(persons, shifts):
    """
    Build the fleet's master data with some record lists replaced.

    Usage::

        def test_something(master_data_factory):
            md = master_data_factory(status_history=[...])
    """
    active = DateWindow(FLEET_START)

    def _build(**overrides) -> InMemoryMasterData:
        records = dict(
            persons=persons,
            shifts=shifts,
            ownerships=[
                ShiftOwnership("sh-1", "own-1", active),
                ShiftOwnership("sh-2", "own-1", active),
                ShiftOwnership("sh-3", "own-2", active),
            ],
            status_history=[ShiftStatusRecord(s.shift_id, True, active) for s in shifts],
            profile_assignments=[
                ProfileAssignment("sh-1", "prof-a", active),
                ProfileAssignment("sh-3", "prof-a", active),
            ],
            attribute_values=[AttributeValue("cab-2", "wheelchair", active, "yes")],
        )
        records.update(overrides)
        return InMemoryMasterData(**records)

    return _build


@pytest.fixture
def master_data(master_data_factory) -> InMemoryMasterData:
    return master_data_factory()


@pytest.fixture
def june_usage() -> list[UsageRecord]:
    """drv-1 drives sh-1 on Monday 3 June; drv-2 drives sh-3 on Wednesday 5 June."""
    return [
        UsageRecord("sh-1", "drv-1", date(2024, 6, 3), Decimal("100"), 4),
        UsageRecord("sh-3", "drv-2", date(2024, 6, 5), Decimal("50"), 2),
    ]


@pytest.fixture
def usage_source(june_usage) -> InMemoryUsageSource:
    return InMemoryUsageSource(june_usage)


# =============================================================================
# Rates and engines
# =============================================================================


def make_rate(
    name: str,
    value: str,
    effective_from: date = date(2024, 1, 1),
    effective_to: date | None = None,
    unit_type: UnitType = UnitType.FLAT_PERIODIC,
    charged_to: ChargedTo = ChargedTo.DRIVER,
    billing_cadence: BillingCadence = BillingCadence.DAILY,
    seq: int = 1,
    **kwargs,
) -> RateDefinition:
    return RateDefinition(
        rate_id=uuid4(),
        name=name,
        unit_type=unit_type,
        value=Decimal(value),
        charged_to=charged_to,
        billing_cadence=billing_cadence,
        effective_from=effective_from,
        effective_to=effective_to,
        seq=seq,
        **kwargs,
    )


@pytest.fixture
def rate_factory():
    return make_rate


@pytest.fixture
def lease_rates() -> list[RateDefinition]:
    """40.00 per shift-day plus 0.25 per mile, both paid by the driver."""
    return [
        make_rate("LEASE_BASE", "40.00", seq=1),
        make_rate(
            "LEASE_MILEAGE", "0.25", seq=2,
            unit_type=UnitType.PER_MILE, billing_cadence=BillingCadence.PER_UNIT,
        ),
    ]


@pytest.fixture
def rate_book(lease_rates) -> RateBook:
    return RateBook.from_records(lease_rates)


@pytest.fixture
def target_resolver(master_data) -> ApplicationTargetResolver:
    return ApplicationTargetResolver(master_data)


@pytest.fixture
def calculator(rate_book, target_resolver) -> ChargeCalculator:
    return ChargeCalculator(rate_book, target_resolver)


@pytest.fixture
def builder(calculator) -> StatementBuilder:
    return StatementBuilder(calculator)


# =============================================================================
# Configuration and services
# =============================================================================


@pytest.fixture
def billing_config() -> BillingConfig:
    """Continuity off so a first statement needs no predecessor."""
    return BillingConfig(
        config_id="fleet-billing-test",
        version=1,
        statements=StatementSettings(require_continuity=False, max_period_days=62),
        batch=BatchSettings(max_workers=2),
    )


@pytest.fixture
def rate_book_cache() -> RateBookCache:
    return RateBookCache()


# =============================================================================
# Persisted rates and services
# =============================================================================


@pytest.fixture
def rate_service(session, rate_book_cache, clock):
    return RateCatalogService(session, cache=rate_book_cache, clock=clock)


@pytest.fixture
def override_service(session, rate_book_cache, clock):
    return OverrideService(session, cache=rate_book_cache, clock=clock)


@pytest.fixture
def stored_lease_rates(rate_service, actor_id) -> list[RateDefinition]:
    """The lease rates of ``lease_rates``, persisted."""
    return [
        rate_service.create_rate(
            name="LEASE_BASE",
            unit_type=UnitType.FLAT_PERIODIC,
            value=Decimal("40.00"),
            charged_to=ChargedTo.DRIVER,
            billing_cadence=BillingCadence.DAILY,
            effective_from=date(2024, 1, 1),
            actor_id=actor_id,
        ),
        rate_service.create_rate(
            name="LEASE_MILEAGE",
            unit_type=UnitType.PER_MILE,
            value=Decimal("0.25"),
            charged_to=ChargedTo.DRIVER,
            billing_cadence=BillingCadence.PER_UNIT,
            effective_from=date(2024, 1, 1),
            actor_id=actor_id,
        ),
    ]


@pytest.fixture
def expense_service(session):
    return ExpenseService(session)


@pytest.fixture
def revenue_service(session):
    return RevenueService(session)


@pytest.fixture
def statement_service(
    session, master_data, usage_source, billing_config, clock, rate_book_cache, stored_lease_rates,
):
    return StatementService(
        session, master_data, usage_source, billing_config,
        clock=clock, rate_book_cache=rate_book_cache,
    )


@pytest.fixture
def settlement_service(session, clock):
    return SettlementService(session, clock=clock)
