"""
Typed Exception Hierarchy for the Fleet Billing Engine.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

A billing error that is silently defaulted (a missing rate treated as zero,
a missing prior statement treated as a zero balance) corrupts billed amounts.
Every failure the engine can produce is therefore a typed exception that:

  1. Can be caught by type, not by parsing its message
  2. Carries a machine-readable ``code`` class attribute
  3. Stores its diagnostic context (rate name, date, scope, statuses) as
     attributes so that batch reports and logs keep the structure

Example:
    try:
        resolver.resolve(rate_id, owner_id, on_date=day)
    except RateNotFoundError as e:
        report.append({"code": e.code, "rate": e.rate_name, "date": e.on_date})

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    FleetBillingError (base)
    |
    +-- NotFoundError
    |   +-- RateNotFoundError
    |   +-- RateDefinitionNotFoundError
    |   +-- OverrideNotFoundError
    |   +-- ExpenseChargeNotFoundError
    |   +-- TargetNotFoundError
    |   +-- PriorStatementMissingError
    |   +-- StatementNotFoundError
    |   +-- PaymentNotFoundError
    |
    +-- InvariantViolationError
    |   +-- OverlapError
    |   +-- InvalidRateWindowError
    |   +-- RateAlreadyClosedError
    |   +-- RateDeletionNotAllowedError
    |   +-- OverrideAlreadyEndedError
    |   +-- InvalidApplicationRuleError
    |   +-- InvalidAmountError
    |   +-- ImmutabilityViolationError
    |
    +-- StateError
    |   +-- StatementLockedError
    |   +-- InvalidTransitionError
    |   +-- EmptyStatementError
    |   +-- PendingPaymentsError
    |   +-- PaymentNotReversibleError
    |   +-- ReasonRequiredError
    |   +-- RevisionNotAllowedError
    |
    +-- DataInconsistencyError
    |   +-- OrphanedTargetError
    |   +-- ShiftOwnerMissingError
    |
    +-- AuditError
    |   +-- AuditChainBrokenError
    |
    +-- ConcurrencyError
        +-- OptimisticLockError
        +-- ConcurrentBuildError

===============================================================================
HANDLING PATTERNS
===============================================================================

Batch runs catch ``FleetBillingError`` per person and record ``e.code`` in
the run report; they never abort the other persons.  ``ConcurrencyError``
subclasses are safe to retry.  ``AuditChainBrokenError`` means the trail was
tampered with and must be investigated, never retried.
"""


class FleetBillingError(Exception):
    """
    Base exception for all fleet billing errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "FLEET_BILLING_ERROR"


# =============================================================================
# NotFound
# =============================================================================


class NotFoundError(FleetBillingError):
    """Base exception for lookups that found nothing."""

    code: str = "NOT_FOUND"


class RateNotFoundError(NotFoundError):
    """No active rate definition covers the requested date."""

    code: str = "RATE_NOT_FOUND"

    def __init__(self, rate_name: str, on_date):
        self.rate_name = rate_name
        self.on_date = str(on_date)
        super().__init__(f"No active rate '{rate_name}' effective on {on_date}")


class RateDefinitionNotFoundError(NotFoundError):
    """Rate definition with the given id does not exist."""

    code: str = "RATE_DEFINITION_NOT_FOUND"

    def __init__(self, rate_id: str):
        self.rate_id = rate_id
        super().__init__(f"Rate definition not found: {rate_id}")


class OverrideNotFoundError(NotFoundError):
    """Rate override with the given id does not exist."""

    code: str = "OVERRIDE_NOT_FOUND"

    def __init__(self, override_id: str):
        self.override_id = override_id
        super().__init__(f"Rate override not found: {override_id}")


class ExpenseChargeNotFoundError(NotFoundError):
    """Expense charge with the given id does not exist."""

    code: str = "EXPENSE_CHARGE_NOT_FOUND"

    def __init__(self, charge_id: str):
        self.charge_id = charge_id
        super().__init__(f"Expense charge not found: {charge_id}")


class TargetNotFoundError(NotFoundError):
    """An application rule names an entity that is missing or inactive."""

    code: str = "TARGET_NOT_FOUND"

    def __init__(self, target_kind: str, target_id: str, on_date):
        self.target_kind = target_kind
        self.target_id = target_id
        self.on_date = str(on_date)
        super().__init__(
            f"{target_kind} {target_id} does not exist or is inactive on {on_date}"
        )


class PriorStatementMissingError(NotFoundError):
    """
    Continuity was requested but the prior period has no posted statement.

    ``prior_statement_id`` is set when a prior statement exists but was never
    posted (it is still a DRAFT).
    """

    code: str = "PRIOR_STATEMENT_MISSING"

    def __init__(
        self,
        person_id: str,
        period_from,
        prior_statement_id: str | None = None,
    ):
        self.person_id = person_id
        self.period_from = str(period_from)
        self.prior_statement_id = prior_statement_id
        if prior_statement_id:
            detail = f"prior statement {prior_statement_id} was never posted"
        else:
            detail = "no prior statement exists"
        super().__init__(
            f"Cannot carry balance for person {person_id} into period "
            f"starting {period_from}: {detail}"
        )


class StatementNotFoundError(NotFoundError):
    """Statement with the given id does not exist."""

    code: str = "STATEMENT_NOT_FOUND"

    def __init__(self, statement_id: str):
        self.statement_id = statement_id
        super().__init__(f"Statement not found: {statement_id}")


class PaymentNotFoundError(NotFoundError):
    """Payment with the given id does not exist on the statement."""

    code: str = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: str, statement_id: str | None = None):
        self.payment_id = payment_id
        self.statement_id = statement_id
        super().__init__(f"Payment not found: {payment_id}")


# =============================================================================
# InvariantViolation
# =============================================================================


class InvariantViolationError(FleetBillingError):
    """Base exception for data rejected at construction or creation time."""

    code: str = "INVARIANT_VIOLATION"


class OverlapError(InvariantViolationError):
    """A new rate window intersects an existing active window for the same name."""

    code: str = "RATE_WINDOW_OVERLAP"

    def __init__(
        self,
        rate_name: str,
        existing_rate_id: str,
        overlap_start,
        overlap_end,
    ):
        self.rate_name = rate_name
        self.existing_rate_id = existing_rate_id
        self.overlap_start = str(overlap_start)
        self.overlap_end = str(overlap_end) if overlap_end is not None else None
        end_label = overlap_end if overlap_end is not None else "open-ended"
        super().__init__(
            f"Rate '{rate_name}' overlaps existing rate {existing_rate_id} "
            f"from {overlap_start} to {end_label}"
        )


class InvalidRateWindowError(InvariantViolationError):
    """An effective window is reversed or missing a required bound."""

    code: str = "INVALID_RATE_WINDOW"

    def __init__(self, rate_name: str, start, end, reason: str | None = None):
        self.rate_name = rate_name
        self.start = str(start) if start is not None else None
        self.end = str(end) if end is not None else None
        self.reason = reason or f"end {end} is before start {start}"
        super().__init__(f"Invalid window for '{rate_name}': {self.reason}")


class RateAlreadyClosedError(InvariantViolationError):
    """The rate's effective_to has already been set."""

    code: str = "RATE_ALREADY_CLOSED"

    def __init__(self, rate_id: str, effective_to):
        self.rate_id = rate_id
        self.effective_to = str(effective_to)
        super().__init__(f"Rate {rate_id} is already closed on {effective_to}")


class RateDeletionNotAllowedError(InvariantViolationError):
    """Rates that have ever been effective must be kept for audit."""

    code: str = "RATE_DELETION_NOT_ALLOWED"

    def __init__(self, rate_id: str, effective_from):
        self.rate_id = rate_id
        self.effective_from = str(effective_from)
        super().__init__(
            f"Rate {rate_id} became effective on {effective_from} and cannot be deleted"
        )


class OverrideAlreadyEndedError(InvariantViolationError):
    """The override's end_date has already been set."""

    code: str = "OVERRIDE_ALREADY_ENDED"

    def __init__(self, override_id: str, end_date):
        self.override_id = override_id
        self.end_date = str(end_date)
        super().__init__(f"Override {override_id} already ends on {end_date}")


class InvalidApplicationRuleError(InvariantViolationError):
    """An application rule variant is missing or carries the wrong fields."""

    code: str = "INVALID_APPLICATION_RULE"

    def __init__(self, rule_kind: str, reason: str):
        self.rule_kind = rule_kind
        self.reason = reason
        super().__init__(f"Invalid application rule {rule_kind}: {reason}")


class InvalidAmountError(InvariantViolationError):
    """A monetary amount or rate value is outside its allowed range."""

    code: str = "INVALID_AMOUNT"

    def __init__(self, field: str, value, reason: str):
        self.field = field
        self.value = str(value)
        self.reason = reason
        super().__init__(f"Invalid {field} {value}: {reason}")


class ImmutabilityViolationError(InvariantViolationError):
    """Attempt to modify or delete a record that is append-only."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Cannot modify immutable {entity_type} {entity_id}: {reason}"
        )


# =============================================================================
# StateError
# =============================================================================


class StateError(FleetBillingError):
    """Base exception for operations rejected by the settlement lifecycle."""

    code: str = "STATE_ERROR"


class StatementLockedError(StateError):
    """The statement has left DRAFT; its line items are frozen."""

    code: str = "STATEMENT_LOCKED"

    def __init__(self, statement_id: str, status: str, operation: str):
        self.statement_id = statement_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} statement {statement_id} in status {status}"
        )


class InvalidTransitionError(StateError):
    """No transition exists for the event from the current status."""

    code: str = "INVALID_STATEMENT_TRANSITION"

    def __init__(self, statement_id: str, current_status: str, event: str):
        self.statement_id = statement_id
        self.current_status = current_status
        self.event = event
        super().__init__(
            f"Statement {statement_id}: '{event}' is not allowed from {current_status}"
        )


class EmptyStatementError(StateError):
    """A statement without line items cannot be posted."""

    code: str = "EMPTY_STATEMENT"

    def __init__(self, statement_id: str):
        self.statement_id = statement_id
        super().__init__(f"Statement {statement_id} has no line items")


class PendingPaymentsError(StateError):
    """A statement with pending payments cannot be locked."""

    code: str = "PENDING_PAYMENTS"

    def __init__(self, statement_id: str, pending_count: int):
        self.statement_id = statement_id
        self.pending_count = pending_count
        super().__init__(
            f"Statement {statement_id} has {pending_count} pending payment(s)"
        )


class PaymentNotReversibleError(StateError):
    """Only COMPLETED payments can be reversed."""

    code: str = "PAYMENT_NOT_REVERSIBLE"

    def __init__(self, payment_id: str, status: str):
        self.payment_id = payment_id
        self.status = status
        super().__init__(f"Payment {payment_id} is {status}, not COMPLETED")


class ReasonRequiredError(StateError):
    """The lifecycle event must be given a non-blank reason."""

    code: str = "REASON_REQUIRED"

    def __init__(self, statement_id: str, event: str):
        self.statement_id = statement_id
        self.event = event
        super().__init__(f"Statement {statement_id}: '{event}' requires a reason")


class RevisionNotAllowedError(StateError):
    """A revision cannot be created for this statement."""

    code: str = "REVISION_NOT_ALLOWED"

    def __init__(self, statement_id: str, reason: str):
        self.statement_id = statement_id
        self.reason = reason
        super().__init__(f"Cannot revise statement {statement_id}: {reason}")


# =============================================================================
# DataInconsistency
# =============================================================================


class DataInconsistencyError(FleetBillingError):
    """Base exception for references that no longer agree with master data."""

    code: str = "DATA_INCONSISTENCY"


class OrphanedTargetError(DataInconsistencyError):
    """A resolved target no longer exists in master data."""

    code: str = "ORPHANED_TARGET"

    def __init__(self, target_kind: str, target_id: str, source: str):
        self.target_kind = target_kind
        self.target_id = target_id
        self.source = source
        super().__init__(
            f"{target_kind} {target_id} referenced by {source} no longer exists"
        )


class ShiftOwnerMissingError(DataInconsistencyError):
    """A shift that exists is billed on a date no ownership record covers."""

    code: str = "SHIFT_OWNER_MISSING"

    def __init__(self, shift_id: str, on_date):
        self.shift_id = shift_id
        self.on_date = str(on_date)
        super().__init__(f"shift {shift_id} has no owner on {on_date}")


# =============================================================================
# Audit
# =============================================================================


class AuditError(FleetBillingError):
    """Base exception for audit trail errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """Statement audit hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, statement_id: str, seq: int, expected_hash: str, actual_hash: str):
        self.statement_id = statement_id
        self.seq = seq
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken for statement {statement_id} at entry {seq}: "
            f"expected {expected_hash}, found {actual_hash}"
        )


# =============================================================================
# Concurrency
# =============================================================================


class ConcurrencyError(FleetBillingError):
    """Base exception for concurrent modification conflicts."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """The statement row changed since it was read."""

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, statement_id: str, expected_version: int | None = None):
        self.statement_id = statement_id
        self.expected_version = expected_version
        super().__init__(
            f"Statement {statement_id} was modified concurrently "
            f"(expected version {expected_version})"
        )


class ConcurrentBuildError(ConcurrencyError):
    """Another build already inserted a statement for the same person and period."""

    code: str = "CONCURRENT_BUILD"

    def __init__(self, person_id: str, period_from, period_to):
        self.person_id = person_id
        self.period_from = str(period_from)
        self.period_to = str(period_to)
        super().__init__(
            f"Statement for person {person_id} {period_from}..{period_to} "
            f"is being built concurrently"
        )
