"""Read-only query objects returning domain DTOs."""

from fleet_kernel.selectors.base import BaseSelector
from fleet_kernel.selectors.expense_selector import (
    ExpenseSelector,
    expense_to_dto,
    revenue_to_dto,
)
from fleet_kernel.selectors.rate_selector import (
    RateSelector,
    override_to_dto,
    rate_to_dto,
)
from fleet_kernel.selectors.statement_selector import (
    StatementSelector,
    line_item_to_dto,
    payment_to_dto,
    statement_to_dto,
)

__all__ = [
    "BaseSelector",
    "ExpenseSelector",
    "RateSelector",
    "StatementSelector",
    "expense_to_dto",
    "line_item_to_dto",
    "override_to_dto",
    "payment_to_dto",
    "rate_to_dto",
    "revenue_to_dto",
    "statement_to_dto",
]
