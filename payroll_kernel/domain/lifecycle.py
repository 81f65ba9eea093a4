"""
Configuration lifecycle state machine (``payroll_kernel.domain.lifecycle``).

Responsibility
--------------
Pure definition of the DRAFT -> APPROVED / REJECTED lifecycle shared by
every configuration kind: the statuses, the lifecycle operations, and the
set of statuses each operation may start from.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* ``ALLOWED_FROM`` is the only source of truth for which status an
  operation may act on.  The repository turns it into the ``status IN``
  guard of its conditional UPDATE, so a concurrent transition cannot
  slip between read and write.
* ``approve`` is accepted from REJECTED as well as DRAFT; ``reject`` is
  accepted from APPROVED as well as DRAFT.  Neither is idempotent.
* Payload edits are accepted only in DRAFT.  Deletion is accepted in
  DRAFT and REJECTED, and in APPROVED only with a privileged actor.
"""

from __future__ import annotations

from enum import Enum

from payroll_kernel.exceptions import (
    AlreadyApprovedError,
    AlreadyRejectedError,
    StateConflictError,
)


class ConfigStatus(str, Enum):
    """Configuration record lifecycle states."""

    DRAFT = "DRAFT"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class LifecycleOperation(str, Enum):
    """Operations the lifecycle manager performs on a record."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"


ALLOWED_FROM: dict[LifecycleOperation, frozenset[ConfigStatus]] = {
    LifecycleOperation.UPDATE: frozenset({ConfigStatus.DRAFT}),
    LifecycleOperation.SUBMIT: frozenset({ConfigStatus.DRAFT}),
    LifecycleOperation.DELETE: frozenset({ConfigStatus.DRAFT, ConfigStatus.REJECTED}),
    LifecycleOperation.APPROVE: frozenset({ConfigStatus.DRAFT, ConfigStatus.REJECTED}),
    LifecycleOperation.REJECT: frozenset({ConfigStatus.DRAFT, ConfigStatus.APPROVED}),
}

# Deletion of an APPROVED record is the one privileged path.
PRIVILEGED_DELETE_FROM: frozenset[ConfigStatus] = frozenset({ConfigStatus.APPROVED})

TARGET_STATUS: dict[LifecycleOperation, ConfigStatus] = {
    LifecycleOperation.APPROVE: ConfigStatus.APPROVED,
    LifecycleOperation.REJECT: ConfigStatus.REJECTED,
}


def is_allowed(operation: LifecycleOperation, status: ConfigStatus) -> bool:
    """True if ``operation`` may act on a record in ``status``."""
    return status in ALLOWED_FROM.get(operation, frozenset())


def state_conflict(
    operation: LifecycleOperation,
    status: ConfigStatus,
    entity_type: str,
    entity_id: str,
) -> StateConflictError:
    """Build the conflict error for ``operation`` attempted in ``status``."""
    if operation is LifecycleOperation.APPROVE and status is ConfigStatus.APPROVED:
        return AlreadyApprovedError(entity_type, entity_id)
    if operation is LifecycleOperation.REJECT and status is ConfigStatus.REJECTED:
        return AlreadyRejectedError(entity_type, entity_id)
    return StateConflictError(entity_type, entity_id, status.value, operation.value)


def ensure_allowed(
    operation: LifecycleOperation,
    status: ConfigStatus,
    entity_type: str,
    entity_id: str,
) -> None:
    """Raise the matching StateConflictError if the transition is not allowed."""
    if not is_allowed(operation, status):
        raise state_conflict(operation, status, entity_type, entity_id)
