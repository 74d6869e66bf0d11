"""
OverrideResolver -- owner-scoped rate overrides with specificity priority.

Pure functions with deterministic behavior. No I/O.

Resolution for (rate_id, owner, cab?, shift_type?, day_of_week?, date):

    1. Candidates: active overrides of that rate version for that owner
       whose [start_date, end_date] window contains the date.
    2. Keep candidates whose non-null scope fields equal the query; a null
       scope field matches anything.
    3. Winner: highest priority, then highest seq (most recently created).
       Priority = 50 [cab] + 30 [shift type] + 20 [day of week], so a more
       specific scope always outranks a less specific one.
    4. No winner: the base rate in force on the date, looked up by name
       through RateCatalog.get_rate.

The equal-priority tie-break by creation order reproduces existing billing
behaviour and should be confirmed with product before it is relied upon.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import replace
from datetime import date
from uuid import UUID

from fleet_kernel.domain.dtos import (
    DayOfWeek,
    RateOverride,
    RateSource,
    ResolvedRate,
    ShiftType,
)
from fleet_kernel.exceptions import (
    InvalidRateWindowError,
    OverrideAlreadyEndedError,
    OverrideNotFoundError,
)
from fleet_kernel.logging_config import get_logger
from fleet_engines.rate_catalog import RateCatalog
from fleet_engines.tracer import traced_engine

logger = get_logger("engines.override_resolver")


class OverrideResolver:
    """
    Two-tier (override, then base) rate resolution over an immutable snapshot.

    Guarantees:
        - ``resolve`` is pure: identical arguments over the same snapshot
          return equal ResolvedRate values.
        - Changes (``add_override``, ``end_override``, ``deactivate_override``)
          return a new resolver and leave this one untouched.
    """

    __slots__ = ("_catalog", "_overrides", "_by_key", "_by_id")

    def __init__(self, catalog: RateCatalog, overrides: Iterable[RateOverride] = ()):
        self._catalog = catalog
        self._overrides: tuple[RateOverride, ...] = tuple(sorted(overrides, key=lambda o: o.seq))
        self._by_id = {o.override_id: o for o in self._overrides}
        by_key: dict[tuple[UUID, str], list[RateOverride]] = {}
        for o in self._overrides:
            by_key.setdefault((o.rate_id, o.scope.owner_id), []).append(o)
        self._by_key = {k: tuple(v) for k, v in by_key.items()}

    @property
    def catalog(self) -> RateCatalog:
        return self._catalog

    @property
    def overrides(self) -> tuple[RateOverride, ...]:
        return self._overrides

    def get_override(self, override_id: UUID) -> RateOverride:
        override = self._by_id.get(override_id)
        if override is None:
            raise OverrideNotFoundError(str(override_id))
        return override

    def candidates(
        self,
        rate_id: UUID,
        owner_id: str,
        on_date: date,
        cab_id: str | None = None,
        shift_type: ShiftType | None = None,
        day_of_week: DayOfWeek | None = None,
    ) -> tuple[RateOverride, ...]:
        """Matching overrides, best first."""
        if day_of_week is None:
            day_of_week = DayOfWeek.of(on_date)
        matches = [
            o for o in self._by_key.get((rate_id, owner_id), ())
            if o.is_active_on(on_date)
            and o.scope.matches(owner_id, cab_id, shift_type, day_of_week)
        ]
        return tuple(sorted(matches, key=lambda o: (o.priority, o.seq), reverse=True))

    @traced_engine(
        "override_resolver", "1.0",
        fingerprint_fields=("rate_id", "owner_id", "on_date", "cab_id", "shift_type", "day_of_week"),
    )
    def resolve(
        self,
        rate_id: UUID,
        owner_id: str,
        on_date: date,
        cab_id: str | None = None,
        shift_type: ShiftType | None = None,
        day_of_week: DayOfWeek | None = None,
    ) -> ResolvedRate:
        """
        Winning value for one rate in one context.

        ``day_of_week`` defaults to the weekday of ``on_date``.

        Raises:
            RateDefinitionNotFoundError: ``rate_id`` is not in the catalog.
            RateNotFoundError: no override matched and no base version of the
                rate's name covers ``on_date``.
        """
        rate = self._catalog.get_by_id(rate_id)
        matches = self.candidates(rate_id, owner_id, on_date, cab_id, shift_type, day_of_week)
        if matches:
            winner = matches[0]
            return ResolvedRate(
                rate_id=rate.rate_id,
                rate_name=rate.name,
                value=winner.override_value,
                source=RateSource.OVERRIDE,
                on_date=on_date,
                unit_type=rate.unit_type,
                charged_to=rate.charged_to,
                billing_cadence=rate.billing_cadence,
                override_id=winner.override_id,
                priority=winner.priority,
            )

        base = self._catalog.get_rate(rate.name, on_date)
        return ResolvedRate(
            rate_id=base.rate_id,
            rate_name=base.name,
            value=base.value,
            source=RateSource.BASE,
            on_date=on_date,
            unit_type=base.unit_type,
            charged_to=base.charged_to,
            billing_cadence=base.billing_cadence,
        )

    def resolve_named(
        self,
        rate_name: str,
        owner_id: str,
        on_date: date,
        cab_id: str | None = None,
        shift_type: ShiftType | None = None,
        day_of_week: DayOfWeek | None = None,
    ) -> ResolvedRate:
        """Resolve the version of ``rate_name`` in force on ``on_date``."""
        rate = self._catalog.get_rate(rate_name, on_date)
        return self.resolve(
            rate_id=rate.rate_id,
            owner_id=owner_id,
            on_date=on_date,
            cab_id=cab_id,
            shift_type=shift_type,
            day_of_week=day_of_week,
        )

    # ------------------------------------------------------------------
    # Changes (each returns a new resolver)
    # ------------------------------------------------------------------

    def add_override(self, override: RateOverride) -> OverrideResolver:
        """Raises RateDefinitionNotFoundError when the rate version is unknown."""
        self._catalog.get_by_id(override.rate_id)
        return OverrideResolver(self._catalog, self._overrides + (override,))

    def end_override(self, override_id: UUID, end_date: date) -> OverrideResolver:
        override = self.get_override(override_id)
        if override.end_date is not None:
            raise OverrideAlreadyEndedError(str(override_id), override.end_date)
        if end_date < override.start_date:
            raise InvalidRateWindowError(
                f"override {override_id}", override.start_date, end_date,
            )
        return self._replace(replace(override, end_date=end_date))

    def deactivate_override(self, override_id: UUID) -> OverrideResolver:
        override = self.get_override(override_id)
        return self._replace(replace(override, active=False))

    def with_catalog(self, catalog: RateCatalog) -> OverrideResolver:
        return OverrideResolver(catalog, self._overrides)

    def _replace(self, updated: RateOverride) -> OverrideResolver:
        return OverrideResolver(
            self._catalog,
            (updated if o.override_id == updated.override_id else o for o in self._overrides),
        )
