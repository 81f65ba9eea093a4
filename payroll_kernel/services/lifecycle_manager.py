"""
payroll_kernel.services.lifecycle_manager -- Configuration lifecycle.

Responsibility:
    Runs create / update / delete / submit / approve / reject for one
    configuration kind against its repository and validator, enforces the
    DRAFT -> APPROVED / REJECTED state machine, and writes one audit entry
    per successful mutation.

Architecture position:
    Kernel > Services.  Generic over an EntityKindDescriptor; the nine
    kinds share this one implementation.  Owns the transaction boundary:
    commits the state change, then appends and commits the audit entry.

Invariants enforced:
    - Payload edits only in DRAFT; delete in DRAFT/REJECTED, and in
      APPROVED only with a PrivilegedActor.
    - approve from DRAFT or REJECTED; reject from DRAFT or APPROVED;
      neither repeats (AlreadyApprovedError / AlreadyRejectedError).
    - Every write is conditional on the version this call read, so two
      concurrent mutations of one record cannot both succeed.
    - Kinds whose rules span rows (insurance bracket ranges per name)
      take their write-group lock before the validator reads, so racing
      writers validate one after the other.
    - A failed audit append never rolls back the committed state change;
      it is reported as a degraded LifecycleResult.

Failure modes:
    - ConfigValidationError / PrivilegeRequiredError (ValidationError).
    - DuplicateKeyError / StateConflictError / ConcurrentModificationError
      (ConflictError).
    - RecordNotFoundError (NotFoundError).
    - RepositoryIOError (StorageIOError) when the state write itself fails.
    Validation, conflict and not-found errors propagate unchanged after the
    transaction is rolled back.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Any, Callable, Mapping, TypeVar
from uuid import UUID

from sqlalchemy.exc import DBAPIError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from payroll_kernel.domain.audit import AuditAction, AuditLogEntry, ConfigurationSnapshot
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.entities import ConfigurationPayload, ConfigurationRecord
from payroll_kernel.domain.identity import ActorRef, PrivilegedActor
from payroll_kernel.domain.lifecycle import (
    ALLOWED_FROM,
    PRIVILEGED_DELETE_FROM,
    ConfigStatus,
    LifecycleOperation,
    ensure_allowed,
)
from payroll_kernel.exceptions import (
    AuditWriteError,
    PrivilegeRequiredError,
    RepositoryIOError,
)
from payroll_kernel.logging_config import LogContext, get_logger
from payroll_kernel.repositories.base import RecordFilter
from payroll_kernel.repositories.sql import SqlConfigurationRepository
from payroll_kernel.services.audit_trail import AuditTrail
from payroll_kernel.services.kinds import EntityKindDescriptor
from payroll_kernel.services.sequence_service import SequenceService

logger = get_logger("services.lifecycle")

T = TypeVar("T")


class LifecycleStatus(str, Enum):
    """Outcome of a mutating lifecycle operation."""

    COMPLETED = "completed"
    AUDIT_DEGRADED = "audit_degraded"


@dataclass(frozen=True)
class LifecycleResult:
    """
    Result of a mutating lifecycle operation.

    ``record`` is the post-operation state (the removed record for delete).
    When ``status`` is AUDIT_DEGRADED the state change is committed but no
    audit entry exists; ``audit_error`` says why.
    """

    operation: LifecycleOperation
    status: LifecycleStatus
    record: ConfigurationRecord
    audit_entry: AuditLogEntry | None = None
    audit_error: AuditWriteError | None = None

    @property
    def is_success(self) -> bool:
        return self.status is LifecycleStatus.COMPLETED

    @property
    def is_degraded(self) -> bool:
        return self.status is LifecycleStatus.AUDIT_DEGRADED


def _actor_id(actor: ActorRef | PrivilegedActor | None) -> UUID | None:
    if actor is None:
        return None
    return actor.actor_id


class LifecycleManager:
    """
    Lifecycle operations for one configuration kind.

    Contract:
        Each mutating method runs to completion in two commits: the state
        change, then the audit entry.  Read methods never commit.
    """

    def __init__(
        self,
        descriptor: EntityKindDescriptor,
        session: Session,
        audit_trail: AuditTrail,
        clock: Clock | None = None,
    ):
        self.descriptor = descriptor
        self._session = session
        self._audit_trail = audit_trail
        self._clock = clock or SystemClock()
        self._repository = SqlConfigurationRepository(session, descriptor.model)
        self._sequences = SequenceService(session)

    @property
    def kind(self):
        return self.descriptor.kind

    @property
    def repository(self) -> SqlConfigurationRepository:
        return self._repository

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, record_id: UUID) -> ConfigurationRecord:
        return self._repository.get(record_id)

    def list(
        self,
        status: ConfigStatus | None = None,
        created_by: UUID | None = None,
        *,
        search: str | None = None,
        min_amount: Decimal | str | int | None = None,
        max_amount: Decimal | str | int | None = None,
        **equals: Any,
    ) -> list[ConfigurationRecord]:
        """
        Records newest first, optionally filtered.

        ``search`` is a case-insensitive substring of the kind's name;
        ``min_amount``/``max_amount`` bound its amount, salary or rate
        inclusively; keyword ``equals`` match enumerated columns
        (``policy_type``, ``applicability``, ``currency``).  ValueError if a
        filter does not apply to this kind.
        """
        return self._repository.find_all(
            RecordFilter(
                status=status,
                created_by=created_by,
                search=search,
                min_amount=None if min_amount is None else Decimal(str(min_amount)),
                max_amount=None if max_amount is None else Decimal(str(max_amount)),
                equals=equals,
            )
        )

    def list_approved(self, **equals: Any) -> list[ConfigurationRecord]:
        return self.list(ConfigStatus.APPROVED, **equals)

    def count(self, status: ConfigStatus | None = None) -> int:
        return self._repository.count(status)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def create(
        self,
        payload: ConfigurationPayload | Mapping[str, Any],
        actor: ActorRef | None = None,
    ) -> LifecycleResult:
        """Validate and insert a new DRAFT record; audit CREATE."""
        candidate = self._coerce_payload(payload)
        actor_id = _actor_id(actor)

        def write() -> ConfigurationRecord:
            self._lock_write_groups(candidate)
            self.descriptor.validator.validate(
                candidate,
                self._repository.find_all(),
                today=self._clock.today(),
            ).raise_for_violations()
            return self._repository.add(
                candidate, created_by=actor_id, now=self._clock.now()
            )

        with LogContext.bind(entity_type=self.kind.value, actor_id=actor_id):
            record = self._commit_state(LifecycleOperation.CREATE, write)
            logger.info(
                "configuration_created",
                extra={"entity_id": str(record.id), "unique_key": candidate.unique_key()},
            )
            return self._audit(
                LifecycleOperation.CREATE,
                AuditAction.CREATE,
                record,
                actor_id=actor_id,
                after=ConfigurationSnapshot.of(record),
            )

    def update(
        self,
        record_id: UUID,
        changes: Mapping[str, Any],
        actor: ActorRef | None = None,
    ) -> LifecycleResult:
        """Merge ``changes`` into a DRAFT record's payload; audit UPDATE."""
        actor_id = _actor_id(actor)

        def write() -> tuple[ConfigurationRecord, ConfigurationRecord]:
            current = self._repository.get(record_id)
            ensure_allowed(
                LifecycleOperation.UPDATE, current.status, self.kind.value, str(record_id)
            )
            merged = current.payload.merged(changes)
            changed = current.payload.changed_fields(merged)
            self._lock_write_groups(current.payload, merged)
            self.descriptor.validator.validate(
                merged,
                self._repository.find_all(),
                changed_fields=changed,
                exclude_id=record_id,
                today=self._clock.today(),
            ).raise_for_violations()
            updated = self._repository.update_payload(
                record_id,
                merged,
                expected_version=current.version,
                allowed_from=ALLOWED_FROM[LifecycleOperation.UPDATE],
                now=self._clock.now(),
            )
            return current, updated

        with LogContext.bind(
            entity_type=self.kind.value, entity_id=record_id, actor_id=actor_id
        ):
            before, after = self._commit_state(LifecycleOperation.UPDATE, write)
            logger.info(
                "configuration_updated",
                extra={
                    "changed_fields": sorted(before.payload.changed_fields(after.payload)),
                    "version": after.version,
                },
            )
            return self._audit(
                LifecycleOperation.UPDATE,
                AuditAction.UPDATE,
                after,
                actor_id=actor_id,
                before=ConfigurationSnapshot.of(before),
                after=ConfigurationSnapshot.of(after),
            )

    def delete(
        self,
        record_id: UUID,
        actor: ActorRef | None = None,
        privileged: PrivilegedActor | None = None,
        reason: str | None = None,
    ) -> LifecycleResult:
        """
        Delete a record; audit DELETE.

        DRAFT and REJECTED records delete freely.  APPROVED records need
        ``privileged``; without it PrivilegeRequiredError is raised.
        """
        actor_id = _actor_id(actor) or _actor_id(privileged)

        def write() -> ConfigurationRecord:
            current = self._repository.get(record_id)
            allowed = ALLOWED_FROM[LifecycleOperation.DELETE]
            if current.status in PRIVILEGED_DELETE_FROM:
                if privileged is None:
                    raise PrivilegeRequiredError(self.kind.value, str(record_id))
                allowed = allowed | PRIVILEGED_DELETE_FROM
            else:
                ensure_allowed(
                    LifecycleOperation.DELETE, current.status, self.kind.value, str(record_id)
                )
            self._repository.delete(
                record_id, expected_version=current.version, allowed_from=allowed
            )
            return current

        with LogContext.bind(
            entity_type=self.kind.value, entity_id=record_id, actor_id=actor_id
        ):
            removed = self._commit_state(LifecycleOperation.DELETE, write)
            logger.info(
                "configuration_deleted",
                extra={
                    "previous_status": removed.status.value,
                    "privileged": privileged is not None,
                },
            )
            return self._audit(
                LifecycleOperation.DELETE,
                AuditAction.DELETE,
                removed,
                actor_id=actor_id,
                before=ConfigurationSnapshot.of(removed),
                reason=reason,
            )

    def submit(self, record_id: UUID) -> ConfigurationRecord:
        """
        Validation gate before approval.

        Re-runs the full rule set against the stored DRAFT.  Status is
        unchanged and nothing is audited.
        """
        current = self._repository.get(record_id)
        ensure_allowed(
            LifecycleOperation.SUBMIT, current.status, self.kind.value, str(record_id)
        )
        self.descriptor.validator.validate(
            current.payload,
            self._repository.find_all(),
            exclude_id=record_id,
            today=self._clock.today(),
        ).raise_for_violations()
        logger.info(
            "configuration_submitted",
            extra={"entity_type": self.kind.value, "entity_id": str(record_id)},
        )
        return current

    def approve(
        self,
        record_id: UUID,
        approver: ActorRef,
        comment: str | None = None,
    ) -> LifecycleResult:
        """DRAFT/REJECTED -> APPROVED; audit APPROVE with ``comment`` as reason."""
        return self._transition(
            LifecycleOperation.APPROVE,
            ConfigStatus.APPROVED,
            AuditAction.APPROVE,
            record_id,
            actor_id=approver.actor_id,
            approved_by=approver.actor_id,
            reason=comment,
        )

    def reject(
        self,
        record_id: UUID,
        reason: str | None = None,
        actor: ActorRef | None = None,
    ) -> LifecycleResult:
        """DRAFT/APPROVED -> REJECTED; audit REJECT."""
        return self._transition(
            LifecycleOperation.REJECT,
            ConfigStatus.REJECTED,
            AuditAction.REJECT,
            record_id,
            actor_id=_actor_id(actor),
            rejection_reason=reason,
            reason=reason,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _transition(
        self,
        operation: LifecycleOperation,
        to_status: ConfigStatus,
        action: AuditAction,
        record_id: UUID,
        *,
        actor_id: UUID | None,
        reason: str | None,
        approved_by: UUID | None = None,
        rejection_reason: str | None = None,
    ) -> LifecycleResult:
        def write() -> tuple[ConfigurationRecord, ConfigurationRecord]:
            current = self._repository.get(record_id)
            ensure_allowed(operation, current.status, self.kind.value, str(record_id))
            updated = self._repository.transition(
                record_id,
                operation,
                to_status,
                expected_version=current.version,
                allowed_from=ALLOWED_FROM[operation],
                now=self._clock.now(),
                approved_by=approved_by,
                rejection_reason=rejection_reason,
            )
            return current, updated

        with LogContext.bind(
            entity_type=self.kind.value, entity_id=record_id, actor_id=actor_id
        ):
            before, after = self._commit_state(operation, write)
            logger.info(
                f"configuration_{to_status.value.lower()}",
                extra={
                    "previous_status": before.status.value,
                    "version": after.version,
                },
            )
            return self._audit(
                operation,
                action,
                after,
                actor_id=actor_id,
                before=ConfigurationSnapshot.of(before),
                after=ConfigurationSnapshot.of(after),
                reason=reason,
            )

    def _lock_write_groups(self, *payloads: ConfigurationPayload) -> None:
        groups = {self.descriptor.model.write_group(p) for p in payloads} - {None}
        # Sorted so two writers never take the same groups in opposite order.
        for group in sorted(groups):
            self._sequences.lock_group(group)

    def _coerce_payload(
        self, payload: ConfigurationPayload | Mapping[str, Any]
    ) -> ConfigurationPayload:
        payload_type = self.descriptor.payload_type
        if isinstance(payload, payload_type):
            return payload.normalized()
        if isinstance(payload, ConfigurationPayload):
            raise TypeError(
                f"{type(payload).__name__} is not a {payload_type.__name__} payload"
            )
        return payload_type.from_dict(payload)

    def _commit_state(self, operation: LifecycleOperation, write: Callable[[], T]) -> T:
        """Run ``write`` and commit; roll back and re-raise on any failure."""
        try:
            result = write()
            self._session.commit()
        except (DBAPIError, PoolTimeoutError) as exc:
            self._session.rollback()
            detail = str(getattr(exc, "orig", None) or exc)
            raise RepositoryIOError(operation.value, self.kind.value, detail) from exc
        except Exception:
            self._session.rollback()
            logger.info(
                "configuration_operation_rejected",
                extra={"operation": operation.value},
                exc_info=True,
            )
            raise
        return result

    def _audit(
        self,
        operation: LifecycleOperation,
        action: AuditAction,
        record: ConfigurationRecord,
        *,
        actor_id: UUID | None,
        before: ConfigurationSnapshot | None = None,
        after: ConfigurationSnapshot | None = None,
        reason: str | None = None,
    ) -> LifecycleResult:
        """
        Append and commit the audit entry for an already-committed change.

        An audit storage failure is rolled back and reported on the result;
        the state change stands.
        """
        try:
            entry = self._audit_trail.record(
                self.kind,
                record.id,
                action,
                actor_id=actor_id,
                before=before,
                after=after,
                reason=reason,
            )
            self._session.commit()
        except AuditWriteError as exc:
            self._session.rollback()
            return self._degraded(operation, record, exc)
        except (DBAPIError, PoolTimeoutError) as exc:
            self._session.rollback()
            error = AuditWriteError(
                self.kind.value,
                str(record.id),
                action.value,
                str(getattr(exc, "orig", None) or exc),
            )
            return self._degraded(operation, record, error)

        return LifecycleResult(
            operation=operation,
            status=LifecycleStatus.COMPLETED,
            record=record,
            audit_entry=entry,
        )

    def _degraded(
        self,
        operation: LifecycleOperation,
        record: ConfigurationRecord,
        error: AuditWriteError,
    ) -> LifecycleResult:
        logger.error(
            "audit_write_failed",
            extra={
                "operation": operation.value,
                "record_status": record.status.value,
            },
            exc_info=error,
        )
        return LifecycleResult(
            operation=operation,
            status=LifecycleStatus.AUDIT_DEGRADED,
            record=record,
            audit_error=error,
        )
