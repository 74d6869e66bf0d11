"""ORM models for the fleet billing engine."""

from fleet_kernel.models.audit_log import StatementAuditLogModel
from fleet_kernel.models.expense import ExpenseChargeModel, RevenueRecordModel
from fleet_kernel.models.rate import RateDefinitionModel, RateOverrideModel
from fleet_kernel.models.sequence import SequenceCounter
from fleet_kernel.models.statement import (
    StatementLineItemModel,
    StatementModel,
    StatementPaymentModel,
)

__all__ = [
    "ExpenseChargeModel",
    "RateDefinitionModel",
    "RateOverrideModel",
    "RevenueRecordModel",
    "SequenceCounter",
    "StatementAuditLogModel",
    "StatementLineItemModel",
    "StatementModel",
    "StatementPaymentModel",
]
