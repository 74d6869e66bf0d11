"""Write-side kernel services.  All of them flush and never commit."""

from fleet_kernel.services.base import BaseService
from fleet_kernel.services.expense_service import ExpenseService
from fleet_kernel.services.revenue_service import RevenueService
from fleet_kernel.services.sequence_service import SequenceService
from fleet_kernel.services.statement_auditor import StatementAuditor

__all__ = [
    "BaseService",
    "ExpenseService",
    "RevenueService",
    "SequenceService",
    "StatementAuditor",
]
