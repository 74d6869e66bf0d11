"""
BaseSelector -- abstract base for read-only query objects.

Selectors accept a Session from the caller, run read-only queries and return
DTOs.  They never add, flush, delete or commit.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from fleet_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """Abstract base class for all selectors."""

    def __init__(self, session: Session):
        self.session = session
