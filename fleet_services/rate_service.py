"""
fleet_services.rate_service -- rate catalog and override administration.

Responsibility:
    Persists rate versions and overrides after validating every change
    with the pure RateCatalog / OverrideResolver against the versions
    currently stored, and invalidates the tenant's RateBook afterwards.

Architecture position:
    Services -- stateful orchestration over engines + kernel.

Invariants enforced:
    - Validation runs against a fresh snapshot read inside the caller's
      transaction, never against a cached book.
    - ``seq`` is allocated BEFORE the snapshot is read.  Allocation locks
      the sequence counter row, so concurrent writers of the same table
      serialize and the second one sees the first one's version.
    - Every successful write invalidates the tenant's cached RateBook at once
      and again when the session's transaction ends, committed or rolled
      back.  Until then that session bypasses the cache, so a book holding
      uncommitted rates is never shared and a stale book refilled by a
      concurrent reader is dropped.

Failure modes:
    - OverlapError, InvalidRateWindowError, RateAlreadyClosedError,
      RateDefinitionNotFoundError from the catalog.
    - OverrideNotFoundError, OverrideAlreadyEndedError from the resolver.
    - RateDeletionNotAllowedError when deleting a rate that has started.

Audit relevance:
    Rate versions are never edited or deleted once effective, so every
    historical statement can be recomputed from stored rates.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import event
from sqlalchemy.orm import Session, SessionTransaction

from fleet_kernel.domain.clock import Clock, SystemClock
from fleet_kernel.domain.dtos import (
    BillingCadence,
    ChargedTo,
    DayOfWeek,
    OverrideScope,
    RateDefinition,
    RateOverride,
    ShiftType,
    UnitType,
)
from fleet_kernel.exceptions import (
    OverrideNotFoundError,
    RateDefinitionNotFoundError,
    RateDeletionNotAllowedError,
)
from fleet_kernel.logging_config import get_logger
from fleet_kernel.models.rate import RateDefinitionModel, RateOverrideModel
from fleet_kernel.selectors.rate_selector import RateSelector, override_to_dto, rate_to_dto
from fleet_kernel.services.sequence_service import SequenceService
from fleet_engines.override_resolver import OverrideResolver
from fleet_engines.rate_book import DEFAULT_TENANT, RateBook, RateBookCache
from fleet_engines.rate_catalog import RateCatalog

logger = get_logger("services.rate")


def load_rate_book(session: Session) -> RateBook:
    """Snapshot every stored rate version and override."""
    selector = RateSelector(session)
    return RateBook.from_records(selector.all_rates(), selector.all_overrides())


# session.info key: {(id(cache), tenant_id): cache} written but not yet ended
_PENDING_RATE_WRITES = "fleet_pending_rate_writes"


def has_pending_rate_writes(
    session: Session, cache: RateBookCache, tenant_id: str = DEFAULT_TENANT,
) -> bool:
    return (id(cache), tenant_id) in session.info.get(_PENDING_RATE_WRITES, {})


def cached_rate_book(
    session: Session,
    cache: RateBookCache | None,
    tenant_id: str = DEFAULT_TENANT,
) -> RateBook:
    """
    The tenant's cached book, or a fresh snapshot when ``session`` has rate
    writes that are not committed yet.  Such a snapshot is never cached.
    """
    if cache is None:
        return load_rate_book(session)
    if has_pending_rate_writes(session, cache, tenant_id):
        logger.debug("rate_book_cache_bypassed", extra={"tenant_id": tenant_id})
        return load_rate_book(session)
    return cache.get(tenant_id, lambda: load_rate_book(session))


def _mark_rate_write(session: Session, cache: RateBookCache, tenant_id: str) -> None:
    cache.invalidate(tenant_id)
    session.info.setdefault(_PENDING_RATE_WRITES, {})[(id(cache), tenant_id)] = cache


@event.listens_for(Session, "after_transaction_end")
def _release_rate_writes(session: Session, transaction: SessionTransaction) -> None:
    """Invalidate again once the outermost transaction commits or rolls back."""
    if transaction.parent is not None:
        return
    pending = session.info.pop(_PENDING_RATE_WRITES, None)
    if not pending:
        return
    for (_, tenant_id), cache in pending.items():
        cache.invalidate(tenant_id)


class _RateAdminBase:
    def __init__(
        self,
        session: Session,
        cache: RateBookCache | None = None,
        clock: Clock | None = None,
        tenant_id: str = DEFAULT_TENANT,
    ):
        self._session = session
        self._cache = cache
        self._clock = clock or SystemClock()
        self._tenant_id = tenant_id
        self._sequence = SequenceService(session)

    def _invalidate(self) -> None:
        if self._cache is not None:
            _mark_rate_write(self._session, self._cache, self._tenant_id)


class RateCatalogService(_RateAdminBase):
    """
    Write side of the versioned rate catalog.

    Guarantees:
        - A rate is "edited" only through ``close_rate`` / ``supersede_rate``.
        - Flushes, never commits.
    """

    def _catalog(self) -> RateCatalog:
        return RateCatalog(RateSelector(self._session).all_rates())

    def _row(self, rate_id: UUID) -> RateDefinitionModel:
        row = self._session.get(RateDefinitionModel, rate_id)
        if row is None:
            raise RateDefinitionNotFoundError(str(rate_id))
        return row

    def create_rate(
        self,
        name: str,
        unit_type: UnitType,
        value: Decimal,
        charged_to: ChargedTo,
        billing_cadence: BillingCadence,
        effective_from: date,
        actor_id: UUID,
        effective_to: date | None = None,
        attribute_type_id: str | None = None,
        notes: str | None = None,
    ) -> RateDefinition:
        seq = self._sequence.next_value(SequenceService.RATE_DEFINITION)
        definition = RateDefinition(
            rate_id=uuid4(),
            name=name,
            unit_type=unit_type,
            value=value,
            charged_to=charged_to,
            billing_cadence=billing_cadence,
            effective_from=effective_from,
            effective_to=effective_to,
            seq=seq,
            attribute_type_id=attribute_type_id,
            notes=notes,
        )
        self._catalog().create_rate(definition)
        self._insert(definition, actor_id)
        self._invalidate()

        logger.info(
            "rate_created",
            extra={
                "rate_id": str(definition.rate_id),
                "rate_name": name,
                "value": definition.value,
                "effective_from": effective_from,
                "effective_to": effective_to,
                "seq": seq,
            },
        )
        return definition

    def _insert(self, definition: RateDefinition, actor_id: UUID) -> RateDefinitionModel:
        row = RateDefinitionModel(
            id=definition.rate_id,
            name=definition.name,
            unit_type=definition.unit_type.value,
            value=definition.value,
            charged_to=definition.charged_to.value,
            billing_cadence=definition.billing_cadence.value,
            effective_from=definition.effective_from,
            effective_to=definition.effective_to,
            is_active=definition.active,
            seq=definition.seq,
            attribute_type_id=definition.attribute_type_id,
            notes=definition.notes,
            created_by_id=actor_id,
        )
        self._session.add(row)
        self._session.flush()
        return row

    def close_rate(self, rate_id: UUID, end_date: date, actor_id: UUID) -> RateDefinition:
        closed = self._catalog().close_rate(rate_id, end_date).get_by_id(rate_id)
        row = self._row(rate_id)
        row.effective_to = closed.effective_to
        row.updated_by_id = actor_id
        self._session.flush()
        self._invalidate()
        logger.info(
            "rate_closed",
            extra={"rate_id": str(rate_id), "rate_name": row.name, "effective_to": end_date},
        )
        return rate_to_dto(row)

    def supersede_rate(
        self,
        rate_id: UUID,
        new_value: Decimal,
        from_date: date,
        actor_id: UUID,
        notes: str | None = None,
    ) -> RateDefinition:
        """Close ``rate_id`` the day before ``from_date`` and insert the successor."""
        seq = self._sequence.next_value(SequenceService.RATE_DEFINITION)
        new_rate_id = uuid4()
        updated = self._catalog().supersede_rate(
            rate_id, new_value, from_date, new_rate_id=new_rate_id, seq=seq, notes=notes,
        )
        closed = updated.get_by_id(rate_id)
        successor = updated.get_by_id(new_rate_id)

        row = self._row(rate_id)
        row.effective_to = closed.effective_to
        row.updated_by_id = actor_id
        self._session.flush()
        self._insert(successor, actor_id)
        self._invalidate()

        logger.info(
            "rate_superseded",
            extra={
                "rate_id": str(rate_id),
                "successor_rate_id": str(new_rate_id),
                "rate_name": successor.name,
                "old_value": closed.value,
                "new_value": successor.value,
                "from_date": from_date,
            },
        )
        return successor

    def deactivate_rate(self, rate_id: UUID, actor_id: UUID) -> RateDefinition:
        row = self._row(rate_id)
        row.is_active = False
        row.updated_by_id = actor_id
        self._session.flush()
        self._invalidate()
        logger.info("rate_deactivated", extra={"rate_id": str(rate_id), "rate_name": row.name})
        return rate_to_dto(row)

    def delete_rate(self, rate_id: UUID, actor_id: UUID) -> None:
        """
        Hard-delete a version that has not started yet, with its overrides.

        Raises:
            RateDeletionNotAllowedError: ``effective_from`` is today or earlier.
        """
        row = self._row(rate_id)
        if row.effective_from <= self._clock.today():
            raise RateDeletionNotAllowedError(str(rate_id), row.effective_from)
        for override in list(row.overrides):
            self._session.delete(override)
        self._session.delete(row)
        self._session.flush()
        self._invalidate()
        logger.info(
            "rate_deleted",
            extra={"rate_id": str(rate_id), "rate_name": row.name, "actor_id": str(actor_id)},
        )


class OverrideService(_RateAdminBase):
    """Write side of owner-scoped overrides."""

    def _resolver(self) -> OverrideResolver:
        selector = RateSelector(self._session)
        return OverrideResolver(RateCatalog(selector.all_rates()), selector.all_overrides())

    def _row(self, override_id: UUID) -> RateOverrideModel:
        row = self._session.get(RateOverrideModel, override_id)
        if row is None:
            raise OverrideNotFoundError(str(override_id))
        return row

    def create_override(
        self,
        rate_id: UUID,
        owner_id: str,
        override_value: Decimal,
        start_date: date,
        actor_id: UUID,
        cab_id: str | None = None,
        shift_type: ShiftType | None = None,
        day_of_week: DayOfWeek | None = None,
        end_date: date | None = None,
        notes: str | None = None,
    ) -> RateOverride:
        """
        Priority is derived from the scope; it cannot be supplied.

        Raises:
            RateDefinitionNotFoundError: unknown rate version.
            InvalidRateWindowError / InvalidAmountError: bad window or value.
        """
        seq = self._sequence.next_value(SequenceService.RATE_OVERRIDE)
        override = RateOverride(
            override_id=uuid4(),
            rate_id=rate_id,
            scope=OverrideScope(
                owner_id=owner_id,
                cab_id=cab_id,
                shift_type=shift_type,
                day_of_week=day_of_week,
            ),
            override_value=override_value,
            start_date=start_date,
            end_date=end_date,
            seq=seq,
            notes=notes,
        )
        self._resolver().add_override(override)

        row = RateOverrideModel(
            id=override.override_id,
            rate_id=rate_id,
            owner_id=owner_id,
            cab_id=cab_id,
            shift_type=shift_type.value if shift_type else None,
            day_of_week=day_of_week.value if day_of_week else None,
            override_value=override.override_value,
            priority=override.priority,
            start_date=start_date,
            end_date=end_date,
            is_active=True,
            seq=seq,
            notes=notes,
            created_by_id=actor_id,
        )
        self._session.add(row)
        self._session.flush()
        self._invalidate()

        logger.info(
            "override_created",
            extra={
                "override_id": str(override.override_id),
                "rate_id": str(rate_id),
                "owner_id": owner_id,
                "priority": override.priority,
                "value": override.override_value,
                "seq": seq,
            },
        )
        return override

    def end_override(self, override_id: UUID, end_date: date, actor_id: UUID) -> RateOverride:
        self._resolver().end_override(override_id, end_date)
        row = self._row(override_id)
        row.end_date = end_date
        row.updated_by_id = actor_id
        self._session.flush()
        self._invalidate()
        logger.info(
            "override_ended",
            extra={"override_id": str(override_id), "end_date": end_date},
        )
        return override_to_dto(row)

    def deactivate_override(self, override_id: UUID, actor_id: UUID) -> RateOverride:
        row = self._row(override_id)
        row.is_active = False
        row.updated_by_id = actor_id
        self._session.flush()
        self._invalidate()
        logger.info("override_deactivated", extra={"override_id": str(override_id)})
        return override_to_dto(row)
