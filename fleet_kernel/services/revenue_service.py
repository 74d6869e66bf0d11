"""RevenueService -- records revenue credited to a person."""

from datetime import date
from decimal import Decimal
from uuid import UUID

from fleet_kernel.domain.dtos import RevenueRecord
from fleet_kernel.domain.values import ZERO, quantize_amount
from fleet_kernel.exceptions import InvalidAmountError
from fleet_kernel.logging_config import get_logger
from fleet_kernel.models.expense import RevenueRecordModel
from fleet_kernel.selectors.expense_selector import revenue_to_dto
from fleet_kernel.services.base import BaseService

logger = get_logger("services.revenue")


class RevenueService(BaseService[RevenueRecordModel]):
    def record_revenue(
        self,
        person_id: str,
        revenue_date: date,
        amount: Decimal,
        actor_id: UUID,
        description: str = "",
        category: str = "other",
    ) -> RevenueRecord:
        value = quantize_amount(amount)
        if value <= ZERO:
            raise InvalidAmountError("revenue amount", value, "must be positive")

        row = RevenueRecordModel(
            person_id=person_id,
            revenue_date=revenue_date,
            amount=value,
            description=description,
            category=category,
            created_by_id=actor_id,
        )
        self.session.add(row)
        self.session.flush()
        logger.info(
            "revenue_recorded",
            extra={
                "revenue_id": str(row.id),
                "person_id": person_id,
                "revenue_date": revenue_date.isoformat(),
                "amount": str(value),
            },
        )
        return revenue_to_dto(row)
