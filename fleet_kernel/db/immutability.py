"""
ORM-Level Immutability Enforcement.

===============================================================================
WHY THIS EXISTS
===============================================================================

Billing history must be reproducible.  A statement that was posted, a rate
that was in force, or an audit entry that was written must not silently
change, otherwise an old statement can no longer be explained from the data
that produced it.

SQLAlchemy fires mapper events before INSERT/UPDATE/DELETE statements reach
the database.  The listeners below inspect attribute history and raise before
any SQL is sent:

    session.flush()
         |
         v
    [before_update / before_delete / before_insert] --> _check_*()
         |                                                  |
         v                                                  v
    SQL sent to database                      ImmutabilityViolationError /
                                              StatementLockedError

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity                 | Rule
-----------------------|-------------------------------------------------------
StatementAuditLog      | Never updated, never deleted
StatementLineItem      | Insert/update/delete only while the statement is DRAFT
Statement              | Financial fields frozen after DRAFT; delete only in DRAFT
RateDefinition         | Only effective_to (once, from NULL) and is_active change
RateOverride           | Only end_date (once, from NULL) and is_active change
ExpenseCharge          | application_rule, amount and cadence never change

updated_at / updated_by_id are audit metadata and may always change.

===============================================================================
USAGE
===============================================================================

    from fleet_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

Tests that must bypass the rules call ``unregister_immutability_listeners()``.
"""

from sqlalchemy import event, inspect, select
from sqlalchemy.orm.attributes import get_history

from fleet_kernel.db.base import AUDIT_METADATA_FIELDS
from fleet_kernel.exceptions import ImmutabilityViolationError, StatementLockedError
from fleet_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_DRAFT = "draft"

# Statement columns that may still change after the statement leaves DRAFT
STATEMENT_SETTLEMENT_FIELDS = frozenset({
    "status",
    "paid_amount",
    "net_due",
    "posted_at",
    "posted_by_id",
    "locked_at",
    "locked_by_id",
    "archived_reason",
    "row_version",
    "line_items",
    "payments",
})


def _value(v):
    return getattr(v, "value", v)


def _block(entity_type: str, entity_id, operation: str, reason: str, field: str | None = None):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "field": field,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _changed_fields(target) -> list[str]:
    return [
        attr.key
        for attr in inspect(target).attrs
        if attr.key not in AUDIT_METADATA_FIELDS and attr.history.has_changes()
    ]


def _previous_value(target, key: str):
    """Value the attribute had when loaded (before this flush)."""
    hist = get_history(target, key)
    if hist.deleted:
        return hist.deleted[0]
    if hist.unchanged:
        return hist.unchanged[0]
    return getattr(target, key)


# =============================================================================
# Audit log
# =============================================================================


def _check_audit_log_update(mapper, connection, target):
    _block(
        "StatementAuditLog", target.id, "UPDATE",
        "Statement audit entries are immutable",
    )


def _check_audit_log_delete(mapper, connection, target):
    _block(
        "StatementAuditLog", target.id, "DELETE",
        "Statement audit entries cannot be deleted",
    )


# =============================================================================
# Statements and line items
# =============================================================================


def _check_statement_update(mapper, connection, target):
    """Freeze everything but settlement fields once the statement left DRAFT."""
    if _value(_previous_value(target, "status")) == _DRAFT:
        return
    for key in _changed_fields(target):
        if key not in STATEMENT_SETTLEMENT_FIELDS:
            _block(
                "Statement", target.id, "UPDATE",
                f"Cannot modify field '{key}' on a statement that left draft",
                field=key,
            )


def _check_statement_delete(mapper, connection, target):
    if _value(_previous_value(target, "status")) != _DRAFT:
        _block(
            "Statement", target.id, "DELETE",
            f"Only draft statements can be deleted (status {_value(target.status)})",
        )


def _persisted_statement_status(connection, statement_id):
    from fleet_kernel.models.statement import StatementModel

    if statement_id is None:
        return None
    return connection.execute(
        select(StatementModel.status).where(StatementModel.id == statement_id)
    ).scalar_one_or_none()


def _check_line_item_change(operation: str):
    def _check(mapper, connection, target):
        statement = target.statement
        if statement is not None:
            status = _value(_previous_value(statement, "status"))
            statement_id = statement.id
        else:
            # Orphaned by a collection change; ask the database
            statement_id = target.statement_id
            status = _persisted_statement_status(connection, statement_id)
            if status is None:
                return
        if status != _DRAFT:
            logger.error(
                "immutability_violation_blocked",
                extra={
                    "entity_type": "StatementLineItem",
                    "entity_id": str(target.id),
                    "statement_id": str(statement_id),
                    "operation": operation,
                },
            )
            raise StatementLockedError(
                statement_id=str(statement_id),
                status=status,
                operation=f"{operation.lower()} line items of",
            )

    _check.__name__ = f"_check_line_item_{operation.lower()}"
    return _check


_check_line_item_insert = _check_line_item_change("INSERT")
_check_line_item_update = _check_line_item_change("UPDATE")
_check_line_item_delete = _check_line_item_change("DELETE")


# =============================================================================
# Rates and overrides
# =============================================================================


def _check_close_once(entity_type: str, close_field: str, mutable: frozenset[str]):
    def _check(mapper, connection, target):
        for key in _changed_fields(target):
            if key not in mutable:
                _block(
                    entity_type, target.id, "UPDATE",
                    f"Field '{key}' is immutable; create a successor instead",
                    field=key,
                )
        hist = get_history(target, close_field)
        if hist.added and hist.deleted and hist.deleted[0] is not None:
            _block(
                entity_type, target.id, "UPDATE",
                f"'{close_field}' was already set to {hist.deleted[0]}",
                field=close_field,
            )

    _check.__name__ = f"_check_{entity_type.lower()}_update"
    return _check


_check_rate_definition_update = _check_close_once(
    "RateDefinition", "effective_to", frozenset({"effective_to", "is_active", "overrides"}),
)
_check_rate_override_update = _check_close_once(
    "RateOverride", "end_date", frozenset({"end_date", "is_active"}),
)

EXPENSE_FROZEN_FIELDS = frozenset({
    "application_rule",
    "amount",
    "billing_cadence",
    "category_id",
    "occurred_on",
    "effective_from",
})


def _check_expense_charge_update(mapper, connection, target):
    for key in _changed_fields(target):
        if key in EXPENSE_FROZEN_FIELDS:
            _block(
                "ExpenseCharge", target.id, "UPDATE",
                f"Field '{key}' cannot change once the charge exists",
                field=key,
            )


# =============================================================================
# Registration
# =============================================================================


def _listeners():
    from fleet_kernel.models.audit_log import StatementAuditLogModel
    from fleet_kernel.models.expense import ExpenseChargeModel
    from fleet_kernel.models.rate import RateDefinitionModel, RateOverrideModel
    from fleet_kernel.models.statement import StatementLineItemModel, StatementModel

    return (
        (StatementAuditLogModel, "before_update", _check_audit_log_update),
        (StatementAuditLogModel, "before_delete", _check_audit_log_delete),
        (StatementModel, "before_update", _check_statement_update),
        (StatementModel, "before_delete", _check_statement_delete),
        (StatementLineItemModel, "before_insert", _check_line_item_insert),
        (StatementLineItemModel, "before_update", _check_line_item_update),
        (StatementLineItemModel, "before_delete", _check_line_item_delete),
        (RateDefinitionModel, "before_update", _check_rate_definition_update),
        (RateOverrideModel, "before_update", _check_rate_override_update),
        (ExpenseChargeModel, "before_update", _check_expense_charge_update),
    )


def register_immutability_listeners() -> None:
    """Register all immutability listeners (idempotent)."""
    for target, event_name, fn in _listeners():
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if it was never registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability listeners.

    WARNING: Only use this in tests that intentionally violate the rules.
    """
    for target, event_name, fn in _listeners():
        _safe_remove_listener(target, event_name, fn)
