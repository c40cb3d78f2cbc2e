"""
ORM-level immutability enforcement.

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity      | When immutable                  | Operation blocked
------------|---------------------------------|------------------------------
AuditEntry  | ALWAYS (from creation)          | UPDATE, DELETE
Loan        | ALWAYS                          | DELETE
Loan        | After is_returned became True   | UPDATE of any column

===============================================================================
HOW IT WORKS
===============================================================================

SQLAlchemy fires mapper events before UPDATE/DELETE statements are sent:

    session.flush()
         |
         v
    [before_update] --> _check_*_immutability() --> ImmutabilityViolationError
    [before_delete] --> _check_*_delete()       --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only if checks pass)

The flush is aborted and the caller must roll back.

The ACTIVE -> RETURNED transition itself is allowed: the return workflow
sets is_returned, return_date, is_late and late_fee in one flush.  What is
blocked is any change after that flush.

Bulk ``session.execute(update(...))`` statements bypass mapper events; the
kernel never issues them against these tables.
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from library_kernel.exceptions import ImmutabilityViolationError
from library_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _blocked(entity_type: str, entity_id, operation: str, reason: str, **fields):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "invariant": "immutability",
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


def _check_audit_entry_immutability(mapper, connection, target):
    """Audit entries can never be modified."""
    _blocked(
        "AuditEntry", target.id, "UPDATE",
        "Audit entries are immutable and cannot be modified",
    )


def _check_audit_entry_delete(mapper, connection, target):
    """Audit entries can never be deleted."""
    _blocked("AuditEntry", target.id, "DELETE", "Audit entries cannot be deleted")


def _check_loan_immutability(mapper, connection, target):
    """
    Block changes to a loan that was already returned before this flush.

        1. is_returned changing FROM True: block (un-returning a loan)
        2. is_returned unchanged AND True: block (editing a returned loan)
        3. is_returned changing False -> True: allow (this IS the return)
    """
    returned_history = get_history(target, "is_returned")

    if returned_history.deleted:
        was_returned = bool(returned_history.deleted[0])
    elif not returned_history.added:
        was_returned = bool(target.is_returned)
    else:
        was_returned = False

    if not was_returned:
        return

    for attr in inspect(target).attrs:
        if attr.history.has_changes():
            _blocked(
                "Loan", target.id, "UPDATE",
                f"Cannot modify field '{attr.key}' on returned loan",
                field=attr.key,
            )


def _check_loan_delete(mapper, connection, target):
    """Loans are history; they are never deleted."""
    _blocked("Loan", target.id, "DELETE", "Loans cannot be deleted")


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Call once at startup, after models are importable and before any
    session is used.  Idempotent.
    """
    from library_kernel.models.audit_entry import AuditEntry
    from library_kernel.models.loan import Loan

    for target, event_name, listener_fn in _listeners(AuditEntry, Loan):
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def _listeners(audit_entry_cls, loan_cls):
    return (
        (audit_entry_cls, "before_update", _check_audit_entry_immutability),
        (audit_entry_cls, "before_delete", _check_audit_entry_delete),
        (loan_cls, "before_update", _check_loan_immutability),
        (loan_cls, "before_delete", _check_loan_delete),
    )


def _safe_remove_listener(target, event_name, listener_fn):
    """
    Safely remove an event listener, ignoring if not registered.
    """
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that need to write a forbidden change
    to verify it is caught elsewhere.
    """
    from library_kernel.models.audit_entry import AuditEntry
    from library_kernel.models.loan import Loan

    for target, event_name, listener_fn in _listeners(AuditEntry, Loan):
        _safe_remove_listener(target, event_name, listener_fn)
