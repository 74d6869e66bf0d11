"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Allocates strictly increasing numbers for rate definitions and overrides
    (their creation order is the documented override tie-break) and for
    payment numbers.  Uses a counter table with ``SELECT ... FOR UPDATE``
    rather than ``max() + 1``.

Architecture position:
    Kernel > Services.

Failure modes:
    - IntegrityError on a concurrent first use of a sequence; handled with a
      SAVEPOINT rollback and retry.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from fleet_kernel.logging_config import get_logger
from fleet_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """
    Transactional sequence numbers.

    Contract:
        ``next_value(name)`` returns a value strictly greater than any value
        previously returned for ``name`` in committed transactions.  The
        increment becomes visible only when the caller commits.

    Non-goals:
        - Does NOT call ``session.commit()``.
    """

    RATE_DEFINITION = "rate_definition"
    RATE_OVERRIDE = "rate_override"
    PAYMENT = "statement_payment"

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """Lock (or create) the counter row, increment it and return the new value."""
        counter = self._locked_counter(sequence_name)

        if counter is None:
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value without incrementing, or None if never used."""
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None
