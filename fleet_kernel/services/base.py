"""
BaseService -- abstract base for all write-side services.

Responsibility:
    Common constructor and session-handling contract.  Services receive a
    SQLAlchemy ``Session`` and use ``session.flush()`` -- never
    ``session.commit()``.  The caller (``session_scope()``, the batch runner,
    or a test) owns commit and rollback, which is what makes a payment, its
    statement update and its audit entry succeed or fail together.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from fleet_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for write-side services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.

    Non-goals:
        - Read-only queries belong in ``fleet_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        self.session = session
