"""
Typed Exception Hierarchy for the Payroll Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (a REST layer, the onboarding process, payroll execution) must react
to failures by category, not by parsing message strings:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (entity, field, rule, status)
  4. Every category carries the HTTP status a transport layer should map it to

Example - RIGHT way:
    try:
        engine.pay_grades.approve(record_id, approver)
    except AlreadyApprovedError as e:
        api_response(status=e.http_status, body=e.to_dict())

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    PayrollKernelError (base)
    |
    +-- ValidationError                       400, never retried
    |   +-- ConfigValidationError             field / cross-record rule failed
    |   +-- PrivilegeRequiredError            APPROVED delete without token
    |
    +-- ConflictError                         409, caller must resolve
    |   +-- DuplicateKeyError                 unique key already taken
    |   +-- StateConflictError                operation not allowed in status
    |   |   +-- AlreadyApprovedError
    |   |   +-- AlreadyRejectedError
    |   +-- ConcurrentModificationError       version moved under the caller
    |
    +-- NotFoundError                         404
    |   +-- RecordNotFoundError
    |   +-- ActorNotFoundError
    |   +-- UnknownEntityKindError
    |
    +-- StorageIOError                        503, retryable with backoff
    |   +-- RepositoryIOError
    |   +-- AuditWriteError
    |
    +-- ImmutabilityViolationError            audit rows are append-only
    |
    +-- AuditChainBrokenError                 audit hash chain mismatch

===============================================================================
DESIGN DECISIONS
===============================================================================

1. WHY INHERIT FROM Exception (not ValueError, etc.)?
   Domain exceptions should be catchable as a group. Inheriting from
   built-in types mixes domain errors with programming errors.

2. WHY code AND http_status AS CLASS ATTRIBUTES?
   Both are static per exception type, so middleware can map a whole
   category without instantiating anything.

3. WHY to_dict()?
   Every error must carry enough structure for a UI to render a specific
   message. to_dict() exposes the structured attributes without the caller
   knowing which subclass it holds.

===============================================================================
"""

from __future__ import annotations

from typing import Any


class PayrollKernelError(Exception):
    """
    Base exception for all payroll kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "PAYROLL_KERNEL_ERROR"
    http_status: int = 500
    retryable: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Render the error as a JSON-safe dict for transport layers."""
        body: dict[str, Any] = {"code": self.code, "message": str(self)}
        for key, value in vars(self).items():
            if key.startswith("_"):
                continue
            if key == "violations":
                body[key] = [v.to_dict() for v in value]
            elif value is None or isinstance(value, (str, int, float, bool)):
                body[key] = value
            else:
                body[key] = str(value)
        return body


# Validation exceptions


class ValidationError(PayrollKernelError):
    """Base exception for business-rule validation failures."""

    code: str = "VALIDATION_ERROR"
    http_status: int = 400


class ConfigValidationError(ValidationError):
    """One or more field-level or cross-record rules failed."""

    code: str = "CONFIG_VALIDATION_FAILED"

    def __init__(self, entity_type: str, violations: tuple):
        self.entity_type = entity_type
        self.violations = tuple(violations)
        summary = "; ".join(v.message for v in self.violations)
        super().__init__(f"Invalid {entity_type}: {summary}")

    @property
    def fields(self) -> tuple[str, ...]:
        return tuple(v.field for v in self.violations)

    @property
    def rules(self) -> tuple[str, ...]:
        return tuple(v.rule for v in self.violations)


class PrivilegeRequiredError(ValidationError):
    """Deleting an APPROVED record requires a privileged actor token."""

    code: str = "PRIVILEGE_REQUIRED"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Deleting APPROVED {entity_type} {entity_id} requires a "
            "privileged actor"
        )


# Conflict exceptions


class ConflictError(PayrollKernelError):
    """Base exception for conflicts the caller must resolve."""

    code: str = "CONFLICT"
    http_status: int = 409


class DuplicateKeyError(ConflictError):
    """A record with the same unique key already exists."""

    code: str = "DUPLICATE_KEY"

    def __init__(self, entity_type: str, field: str, value: Any):
        self.entity_type = entity_type
        self.field = field
        self.value = value
        super().__init__(
            f"{entity_type} with {field}={value!r} already exists"
        )


class StateConflictError(ConflictError):
    """Operation is not allowed while the record is in its current status."""

    code: str = "STATE_CONFLICT"

    def __init__(
        self,
        entity_type: str,
        entity_id: str,
        current_status: str,
        operation: str,
    ):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.current_status = current_status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} {entity_type} {entity_id}: "
            f"status is {current_status}"
        )


class AlreadyApprovedError(StateConflictError):
    """Record is already APPROVED."""

    code: str = "ALREADY_APPROVED"

    def __init__(self, entity_type: str, entity_id: str):
        super().__init__(entity_type, entity_id, "APPROVED", "approve")


class AlreadyRejectedError(StateConflictError):
    """Record is already REJECTED."""

    code: str = "ALREADY_REJECTED"

    def __init__(self, entity_type: str, entity_id: str):
        super().__init__(entity_type, entity_id, "REJECTED", "reject")


class ConcurrentModificationError(ConflictError):
    """Optimistic locking conflict: the record changed since it was read."""

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, entity_type: str, entity_id: str, expected_version: int):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        super().__init__(
            f"{entity_type} {entity_id} was modified by another transaction "
            f"(expected version {expected_version})"
        )


# Not-found exceptions


class NotFoundError(PayrollKernelError):
    """Base exception for unresolvable references."""

    code: str = "NOT_FOUND"
    http_status: int = 404


class RecordNotFoundError(NotFoundError):
    """Id does not resolve to a record of the expected kind."""

    code: str = "RECORD_NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(f"{entity_type} not found: {entity_id}")


class ActorNotFoundError(NotFoundError):
    """Actor reference is unknown to the identity directory."""

    code: str = "ACTOR_NOT_FOUND"

    def __init__(self, actor_id: str):
        self.actor_id = actor_id
        super().__init__(f"Actor not found: {actor_id}")


class UnknownEntityKindError(NotFoundError):
    """No configuration kind is registered under the given tag."""

    code: str = "UNKNOWN_ENTITY_KIND"

    def __init__(self, entity_type: str):
        self.entity_type = entity_type
        super().__init__(f"Unknown configuration kind: {entity_type}")


# Storage I/O exceptions


class StorageIOError(PayrollKernelError):
    """Base exception for repository or audit transport failures."""

    code: str = "STORAGE_IO_ERROR"
    http_status: int = 503
    retryable: bool = True


class RepositoryIOError(StorageIOError):
    """Repository read or write failed at the storage layer."""

    code: str = "REPOSITORY_IO_ERROR"

    def __init__(self, operation: str, entity_type: str, detail: str):
        self.operation = operation
        self.entity_type = entity_type
        self.detail = detail
        super().__init__(
            f"Storage failure during {operation} on {entity_type}: {detail}"
        )


class AuditWriteError(StorageIOError):
    """Audit log entry could not be written."""

    code: str = "AUDIT_WRITE_FAILED"

    def __init__(self, entity_type: str, entity_id: str, action: str, detail: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.action = action
        self.detail = detail
        super().__init__(
            f"Audit write failed for {action} on {entity_type} {entity_id}: "
            f"{detail}"
        )


# Immutability exceptions


class ImmutabilityViolationError(PayrollKernelError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


class AuditChainBrokenError(PayrollKernelError):
    """Audit log hash chain validation failed."""

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(self, entry_id: str, expected_hash: str, actual_hash: str):
        self.entry_id = entry_id
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken at entry {entry_id}: "
            f"expected {expected_hash}, got {actual_hash}"
        )
