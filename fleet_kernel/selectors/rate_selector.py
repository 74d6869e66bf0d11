"""
RateSelector -- read-only access to rate definitions and overrides.

Converts ORM rows into the RateDefinition / RateOverride DTOs consumed by
the pure rate engines.  Results are ordered by ``seq`` so that a snapshot
built from them is identical across calls over unchanged data.
"""

from uuid import UUID

from sqlalchemy import select

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
from fleet_kernel.models.rate import RateDefinitionModel, RateOverrideModel
from fleet_kernel.selectors.base import BaseSelector


def rate_to_dto(row: RateDefinitionModel) -> RateDefinition:
    return RateDefinition(
        rate_id=row.id,
        name=row.name,
        unit_type=UnitType(row.unit_type),
        value=row.value,
        charged_to=ChargedTo(row.charged_to),
        billing_cadence=BillingCadence(row.billing_cadence),
        effective_from=row.effective_from,
        effective_to=row.effective_to,
        active=row.is_active,
        seq=row.seq,
        attribute_type_id=row.attribute_type_id,
        notes=row.notes,
    )


def override_to_dto(row: RateOverrideModel) -> RateOverride:
    return RateOverride(
        override_id=row.id,
        rate_id=row.rate_id,
        scope=OverrideScope(
            owner_id=row.owner_id,
            cab_id=row.cab_id,
            shift_type=ShiftType(row.shift_type) if row.shift_type else None,
            day_of_week=DayOfWeek(row.day_of_week) if row.day_of_week else None,
        ),
        override_value=row.override_value,
        start_date=row.start_date,
        end_date=row.end_date,
        active=row.is_active,
        seq=row.seq,
        notes=row.notes,
    )


class RateSelector(BaseSelector[RateDefinitionModel]):
    """Read-only queries over the rate catalog tables."""

    def all_rates(self) -> tuple[RateDefinition, ...]:
        rows = self.session.execute(
            select(RateDefinitionModel).order_by(RateDefinitionModel.seq)
        ).scalars().all()
        return tuple(rate_to_dto(r) for r in rows)

    def all_overrides(self) -> tuple[RateOverride, ...]:
        rows = self.session.execute(
            select(RateOverrideModel).order_by(RateOverrideModel.seq)
        ).scalars().all()
        return tuple(override_to_dto(r) for r in rows)

    def rates_named(self, name: str) -> tuple[RateDefinition, ...]:
        rows = self.session.execute(
            select(RateDefinitionModel)
            .where(RateDefinitionModel.name == name)
            .order_by(RateDefinitionModel.effective_from, RateDefinitionModel.seq)
        ).scalars().all()
        return tuple(rate_to_dto(r) for r in rows)

    def get_rate(self, rate_id: UUID) -> RateDefinition | None:
        row = self.session.get(RateDefinitionModel, rate_id)
        return rate_to_dto(row) if row else None

    def get_override(self, override_id: UUID) -> RateOverride | None:
        row = self.session.get(RateOverrideModel, override_id)
        return override_to_dto(row) if row else None

    def overrides_for_owner(self, owner_id: str) -> tuple[RateOverride, ...]:
        rows = self.session.execute(
            select(RateOverrideModel)
            .where(RateOverrideModel.owner_id == owner_id)
            .order_by(RateOverrideModel.priority.desc(), RateOverrideModel.seq.desc())
        ).scalars().all()
        return tuple(override_to_dto(r) for r in rows)
