"""
ORM-Level Immutability Enforcement for the audit log.

===============================================================================
WHY THIS EXISTS
===============================================================================

Audit log entries are written once and never touched again.  The AuditTrail
service exposes no update or delete API; this module closes the remaining
path, which is application code mutating or deleting a loaded AuditLogModel
(or issuing a bulk UPDATE/DELETE against the audit table) through a Session.

    session.flush()
         |
         v
    [before_update event] --> _check_audit_log_update() --> ImmutabilityViolationError
         |
    [before_delete event] --> _check_audit_log_delete() --> ImmutabilityViolationError
         |
    session.execute(update(AuditLogModel) / delete(AuditLogModel))
         |
         v
    [do_orm_execute event] --> _check_audit_log_bulk_statement() --> ImmutabilityViolationError

If a check fails the flush or statement is aborted and the database is never
modified.

===============================================================================
USAGE
===============================================================================

    from payroll_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # idempotent

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()

===============================================================================
"""

from sqlalchemy import event
from sqlalchemy.orm import Session

from payroll_kernel.exceptions import ImmutabilityViolationError
from payroll_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _blocked(entity_id: str, operation: str, reason: str) -> ImmutabilityViolationError:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": "AuditLogEntry",
            "entity_id": entity_id,
            "operation": operation,
        },
    )
    return ImmutabilityViolationError(
        entity_type="AuditLogEntry",
        entity_id=entity_id,
        reason=reason,
    )


def _check_audit_log_update(mapper, connection, target):
    """Prevent any updates to audit log rows."""
    raise _blocked(
        str(target.id), "UPDATE", "Audit log entries are immutable and cannot be modified"
    )


def _check_audit_log_delete(mapper, connection, target):
    """Prevent deletion of audit log rows."""
    raise _blocked(str(target.id), "DELETE", "Audit log entries cannot be deleted")


def _check_audit_log_bulk_statement(orm_execute_state):
    """Prevent ORM-enabled bulk UPDATE/DELETE against the audit table."""
    if not (orm_execute_state.is_update or orm_execute_state.is_delete):
        return

    from payroll_kernel.models.audit_log import AuditLogModel

    mapper = orm_execute_state.bind_mapper
    if mapper is None or mapper.class_ is not AuditLogModel:
        return

    operation = "UPDATE" if orm_execute_state.is_update else "DELETE"
    raise _blocked("*", operation, "Bulk statements against the audit log are forbidden")


def register_immutability_listeners() -> None:
    """
    Register the audit log immutability listeners.

    Safe to call more than once; already-registered listeners are skipped.
    """
    from payroll_kernel.models.audit_log import AuditLogModel

    for target, name, fn in (
        (AuditLogModel, "before_update", _check_audit_log_update),
        (AuditLogModel, "before_delete", _check_audit_log_delete),
        (Session, "do_orm_execute", _check_audit_log_bulk_statement),
    ):
        if not event.contains(target, name, fn):
            event.listen(target, name, fn)


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if it was never registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove the audit log immutability listeners.

    WARNING: Only use this in tests that need to violate immutability on
    purpose.
    """
    from payroll_kernel.models.audit_log import AuditLogModel

    _safe_remove_listener(AuditLogModel, "before_update", _check_audit_log_update)
    _safe_remove_listener(AuditLogModel, "before_delete", _check_audit_log_delete)
    _safe_remove_listener(Session, "do_orm_execute", _check_audit_log_bulk_statement)
