"""
ORM-level immutability enforcement.

SQLAlchemy fires events before UPDATE/DELETE operations reach the database.
The listeners registered here intercept them and refuse changes to records
that are append-only or finalized:

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |                                                        ^
         v                                                        |
    [before_delete event] --> _check_*_delete() -----------------+
         |
         v
    SQL sent to database (only if checks pass)

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity              | When Immutable                    | Notes
--------------------|-----------------------------------|--------------------------
StockMovement       | ALWAYS (from creation)            | The ledger is append-only
AuditEvent          | ALWAYS (from creation)            | Hash chain
StocktakingSession  | After status leaves IN_PROGRESS   | Terminal states are final
StocktakingLine     | When its session is terminal;     |
                    | expected_quantity always          | Snapshot taken at start

Usage:

    from stock_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

To temporarily disable (tests only):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_TERMINAL_STATUSES = frozenset({"completed", "cancelled"})


def _status_value(status) -> str:
    return status.value if hasattr(status, "value") else status


def _block(entity_type: str, entity_id, operation: str, reason: str, **fields):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            **fields,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_stock_movement_immutability(mapper, connection, target):
    """Stock movements are never modified once written."""
    _block(
        "StockMovement", target.id, "UPDATE",
        "Stock movements are immutable; record a compensating movement instead",
    )


def _check_stock_movement_delete(mapper, connection, target):
    _block("StockMovement", target.id, "DELETE", "Stock movements cannot be deleted")


def _check_audit_event_immutability(mapper, connection, target):
    _block(
        "AuditEvent", target.id, "UPDATE",
        "Audit events are immutable and cannot be modified",
    )


def _check_audit_event_delete(mapper, connection, target):
    _block("AuditEvent", target.id, "DELETE", "Audit events cannot be deleted")


def _check_stocktaking_session_immutability(mapper, connection, target):
    """
    Prevent modification of a completed or cancelled session.

    The transition out of IN_PROGRESS itself is allowed; that flush carries
    the status change together with completed_* or cancelled_* stamps.
    """
    status_history = get_history(target, "status")

    was_terminal_before = False
    if status_history.deleted:
        was_terminal_before = _status_value(status_history.deleted[0]) in _TERMINAL_STATUSES
    elif not status_history.added:
        was_terminal_before = _status_value(target.status) in _TERMINAL_STATUSES

    if not was_terminal_before:
        return

    insp = inspect(target)
    for attr in insp.attrs:
        if attr.key == "lines":
            continue
        if attr.history.has_changes():
            _block(
                "StocktakingSession", target.id, "UPDATE",
                f"Cannot modify field '{attr.key}' on a finalized stocktaking",
                field=attr.key,
            )


def _check_stocktaking_line_immutability(mapper, connection, target):
    """expected_quantity is frozen; nothing changes once the session is final."""
    if get_history(target, "expected_quantity").deleted:
        _block(
            "StocktakingLine", target.id, "UPDATE",
            "Expected quantity is a snapshot and cannot be modified",
            field="expected_quantity",
        )

    session = target.session
    if session is not None and _status_value(session.status) in _TERMINAL_STATUSES:
        # A session flipping to terminal in the same flush still has the old
        # status in its history.
        status_history = get_history(session, "status")
        if status_history.deleted and _status_value(status_history.deleted[0]) not in _TERMINAL_STATUSES:
            return
        _block(
            "StocktakingLine", target.id, "UPDATE",
            "Lines of a finalized stocktaking cannot be modified",
        )


def _check_stocktaking_session_delete(mapper, connection, target):
    if _status_value(target.status) in _TERMINAL_STATUSES:
        _block(
            "StocktakingSession", target.id, "DELETE",
            "Finalized stocktakings cannot be deleted",
        )


def _listeners():
    from stock_kernel.models.audit_event import AuditEvent
    from stock_kernel.models.stock import StockMovement
    from stock_kernel.models.stocktaking import StocktakingLine, StocktakingSession

    return [
        (StockMovement, "before_update", _check_stock_movement_immutability),
        (StockMovement, "before_delete", _check_stock_movement_delete),
        (AuditEvent, "before_update", _check_audit_event_immutability),
        (AuditEvent, "before_delete", _check_audit_event_delete),
        (StocktakingSession, "before_update", _check_stocktaking_session_immutability),
        (StocktakingSession, "before_delete", _check_stocktaking_session_delete),
        (StocktakingLine, "before_update", _check_stocktaking_line_immutability),
    ]


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call this after all models are imported but before any database
    operations begin.  Registering twice is harmless.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)
