"""
RateCatalog -- versioned, append-only base rates.

Pure functions with deterministic behavior. No I/O.

A rate is identified by its business ``name``.  Each name has one or more
versions (RateDefinition) whose effective windows never overlap.  A version
is never edited: ``close_rate`` sets its end date once, and
``supersede_rate`` closes it and appends a successor with the new value.

The catalog itself is immutable.  Every mutating operation validates the
change against the current versions and returns a NEW catalog, so one
snapshot can be shared between threads and replayed for audit.

Usage:
    catalog = RateCatalog((mileage_v1,))
    catalog = catalog.create_rate(mileage_v2)       # OverlapError if it overlaps
    rate = catalog.get_rate("LEASE_MILEAGE", date(2024, 3, 1))
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from fleet_kernel.domain.dtos import RateDefinition
from fleet_kernel.exceptions import (
    InvalidRateWindowError,
    OverlapError,
    RateAlreadyClosedError,
    RateDefinitionNotFoundError,
    RateNotFoundError,
)
from fleet_kernel.logging_config import get_logger
from fleet_engines.tracer import traced_engine

logger = get_logger("engines.rate_catalog")


class RateCatalog:
    """
    Immutable set of rate versions.

    Contract:
        ``get_rate`` never returns a default: an uncovered date raises
        RateNotFoundError so configuration gaps surface to the caller.

    Guarantees:
        - Versions are kept in ``seq`` order.
        - For a given name, no two active windows intersect when every
          version was added through ``create_rate``.
    """

    __slots__ = ("_rates", "_by_id")

    def __init__(self, rates: Iterable[RateDefinition] = ()):
        self._rates: tuple[RateDefinition, ...] = tuple(sorted(rates, key=lambda r: r.seq))
        self._by_id = {r.rate_id: r for r in self._rates}

    def __len__(self) -> int:
        return len(self._rates)

    @property
    def rates(self) -> tuple[RateDefinition, ...]:
        return self._rates

    def names(self) -> tuple[str, ...]:
        return tuple(sorted({r.name for r in self._rates}))

    def versions(self, name: str) -> tuple[RateDefinition, ...]:
        return tuple(
            sorted(
                (r for r in self._rates if r.name == name),
                key=lambda r: (r.effective_from, r.seq),
            )
        )

    def get_by_id(self, rate_id: UUID) -> RateDefinition:
        rate = self._by_id.get(rate_id)
        if rate is None:
            raise RateDefinitionNotFoundError(str(rate_id))
        return rate

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    @traced_engine("rate_catalog", "1.0", fingerprint_fields=("name", "on_date"))
    def get_rate(self, name: str, on_date: date) -> RateDefinition:
        """
        Version of ``name`` in force on ``on_date``.

        Raises:
            RateNotFoundError: no active version covers the date.
        """
        matches = [r for r in self._rates if r.name == name and r.is_active_on(on_date)]
        if not matches:
            raise RateNotFoundError(name, on_date)
        # Only reachable with data written outside the catalog
        return max(matches, key=lambda r: r.seq)

    def find_rate(self, name: str, on_date: date) -> RateDefinition | None:
        """Like ``get_rate`` but returns None for an uncovered date."""
        try:
            return self.get_rate(name, on_date)
        except RateNotFoundError:
            return None

    # ------------------------------------------------------------------
    # Changes (each returns a new catalog)
    # ------------------------------------------------------------------

    def create_rate(self, definition: RateDefinition) -> RateCatalog:
        """
        Append a new version.

        Raises:
            OverlapError: the window intersects an active window of the
                same name.  Adjacent windows are accepted.
        """
        if definition.active:
            for existing in self._rates:
                if existing.name != definition.name or not existing.active:
                    continue
                overlap = existing.window.intersection(definition.window)
                if overlap is not None:
                    logger.warning(
                        "rate_overlap_rejected",
                        extra={
                            "rate_name": definition.name,
                            "existing_rate_id": str(existing.rate_id),
                            "overlap_start": overlap.start,
                            "overlap_end": overlap.end,
                        },
                    )
                    raise OverlapError(
                        definition.name, str(existing.rate_id), overlap.start, overlap.end,
                    )
        return RateCatalog(self._rates + (definition,))

    def close_rate(self, rate_id: UUID, end_date: date) -> RateCatalog:
        """
        Set the end of a version's window.

        Raises:
            RateDefinitionNotFoundError: unknown id.
            RateAlreadyClosedError: the window was already closed.
            InvalidRateWindowError: ``end_date`` precedes ``effective_from``.
        """
        rate = self.get_by_id(rate_id)
        if rate.is_closed:
            raise RateAlreadyClosedError(str(rate_id), rate.effective_to)
        if end_date < rate.effective_from:
            raise InvalidRateWindowError(
                rate.name, rate.effective_from, end_date,
                reason="end date precedes effective_from",
            )
        return self._replace(replace(rate, effective_to=end_date))

    def supersede_rate(
        self,
        rate_id: UUID,
        new_value: Decimal,
        from_date: date,
        *,
        new_rate_id: UUID,
        seq: int,
        notes: str | None = None,
    ) -> RateCatalog:
        """
        Close ``rate_id`` on ``from_date - 1`` and append a successor
        starting ``from_date`` with the same name, unit, party and cadence.
        """
        rate = self.get_by_id(rate_id)
        if rate.is_closed:
            raise RateAlreadyClosedError(str(rate_id), rate.effective_to)
        if from_date <= rate.effective_from:
            raise InvalidRateWindowError(
                rate.name, rate.effective_from, from_date,
                reason="successor must start after the superseded version",
            )
        successor = RateDefinition(
            rate_id=new_rate_id,
            name=rate.name,
            unit_type=rate.unit_type,
            value=new_value,
            charged_to=rate.charged_to,
            billing_cadence=rate.billing_cadence,
            effective_from=from_date,
            seq=seq,
            attribute_type_id=rate.attribute_type_id,
            notes=notes,
        )
        return self.close_rate(rate_id, from_date - timedelta(days=1)).create_rate(successor)

    def deactivate_rate(self, rate_id: UUID) -> RateCatalog:
        rate = self.get_by_id(rate_id)
        return self._replace(replace(rate, active=False))

    def remove_rate(self, rate_id: UUID) -> RateCatalog:
        self.get_by_id(rate_id)
        return RateCatalog(r for r in self._rates if r.rate_id != rate_id)

    def _replace(self, updated: RateDefinition) -> RateCatalog:
        return RateCatalog(
            updated if r.rate_id == updated.rate_id else r for r in self._rates
        )
