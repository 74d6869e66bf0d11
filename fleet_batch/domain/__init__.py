"""fleet_batch.domain -- pure batch result types."""

from fleet_batch.domain.types import (
    UNHANDLED_EXCEPTION,
    BatchItemError,
    BatchRunResult,
)

__all__ = [
    "UNHANDLED_EXCEPTION",
    "BatchItemError",
    "BatchRunResult",
]
