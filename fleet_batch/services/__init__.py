"""fleet_batch.services -- batch runners."""

from fleet_batch.services.statement_batch import BatchStatementRunner

__all__ = ["BatchStatementRunner"]
