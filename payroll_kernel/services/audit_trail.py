"""
AuditTrail -- append-only, hash-chained log of configuration mutations.

Responsibility:
    Records one immutable entry per successful create, update, delete,
    approve and reject, with typed before/after snapshots.  Provides
    filtered queries, the per-record history, and hash chain validation.

Architecture position:
    Kernel > Services -- imperative shell, called by LifecycleManager.
    Independent of configuration kind: entries are keyed by EntityKind tag.

Invariants enforced:
    - Append-only: this class exposes no update or delete; the ORM model is
      guarded by db/immutability.py listeners.
    - seq comes from SequenceService's locked counter row.
    - hash = H(entity_type | entity_id | action | payload_hash | prev_hash).
    - An actor filter must resolve against the identity directory; an
      unknown actor is ActorNotFoundError, never an empty result.

Failure modes:
    - AuditWriteError: storage failure while appending (retryable).
    - ActorNotFoundError: query filtered by an unknown actor.
    - AuditChainBrokenError: validate_chain() found a hash mismatch.

Audit relevance:
    This IS the audit trail.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import DBAPIError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from payroll_kernel.domain.audit import (
    AuditAction,
    AuditFilter,
    AuditLogEntry,
    ConfigurationSnapshot,
)
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.entities import EntityKind
from payroll_kernel.domain.identity import IdentityDirectory
from payroll_kernel.exceptions import AuditChainBrokenError, AuditWriteError
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.audit_log import AuditLogModel
from payroll_kernel.services.sequence_service import SequenceService
from payroll_kernel.utils.hashing import hash_audit_entry, hash_audit_payload

logger = get_logger("services.audit_trail")


class AuditTrail:
    """
    Append-only audit log service.

    Contract:
        ``record`` flushes one row within the caller's transaction and
        returns its DTO.  The caller commits.

    Non-goals:
        - Does NOT call ``session.commit()``.
        - Does NOT audit reads.
    """

    def __init__(
        self,
        session: Session,
        identity_directory: IdentityDirectory,
        clock: Clock | None = None,
    ):
        self._session = session
        self._identity = identity_directory
        self._clock = clock or SystemClock()
        self._sequence_service = SequenceService(session)

    def _get_last_hash(self) -> str | None:
        last = self._session.execute(
            select(AuditLogModel).order_by(AuditLogModel.seq.desc()).limit(1)
        ).scalar_one_or_none()
        return last.hash if last else None

    # ------------------------------------------------------------------
    # Append
    # ------------------------------------------------------------------

    def record(
        self,
        entity_type: EntityKind,
        entity_id: UUID,
        action: AuditAction,
        *,
        actor_id: UUID | None = None,
        before: ConfigurationSnapshot | None = None,
        after: ConfigurationSnapshot | None = None,
        reason: str | None = None,
    ) -> AuditLogEntry:
        """
        Append one audit entry.

        Postconditions:
            - A new AuditLogModel row is flushed with the next seq and a
              hash chained to the previous row.

        Raises:
            AuditWriteError: storage failure; nothing was appended.
        """
        before_data = before.to_dict() if before is not None else None
        after_data = after.to_dict() if after is not None else None

        try:
            seq = self._sequence_service.next_value(SequenceService.AUDIT_LOG)
            prev_hash = self._get_last_hash()

            payload_hash = hash_audit_payload(before_data, after_data, actor_id, reason)
            entry_hash = hash_audit_entry(
                entity_type=entity_type.value,
                entity_id=str(entity_id),
                action=action.value,
                payload_hash=payload_hash,
                prev_hash=prev_hash,
            )

            row = AuditLogModel(
                seq=seq,
                entity_type=entity_type.value,
                entity_id=entity_id,
                action=action.value,
                actor_id=actor_id,
                occurred_at=self._clock.now(),
                before=before_data,
                after=after_data,
                reason=reason,
                payload_hash=payload_hash,
                prev_hash=prev_hash,
                hash=entry_hash,
            )
            self._session.add(row)
            self._session.flush()
        except (DBAPIError, PoolTimeoutError) as exc:
            detail = str(getattr(exc, "orig", None) or exc)
            raise AuditWriteError(
                entity_type.value, str(entity_id), action.value, detail
            ) from exc

        logger.info(
            "audit_entry_recorded",
            extra={
                "entity_type": entity_type.value,
                "entity_id": str(entity_id),
                "action": action.value,
                "seq": seq,
            },
        )
        return row.to_dto()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def query(self, audit_filter: AuditFilter) -> list[AuditLogEntry]:
        """
        Entries matching every set field of ``audit_filter``, newest first.

        Raises:
            ActorNotFoundError: ``actor_id`` is not a known actor.
        """
        if audit_filter.actor_id is not None:
            self._identity.resolve(audit_filter.actor_id)

        stmt = select(AuditLogModel)
        if audit_filter.entity_type is not None:
            stmt = stmt.where(AuditLogModel.entity_type == audit_filter.entity_type.value)
        if audit_filter.entity_id is not None:
            stmt = stmt.where(AuditLogModel.entity_id == audit_filter.entity_id)
        if audit_filter.action is not None:
            stmt = stmt.where(AuditLogModel.action == audit_filter.action.value)
        if audit_filter.actor_id is not None:
            stmt = stmt.where(AuditLogModel.actor_id == audit_filter.actor_id)
        if audit_filter.start is not None:
            stmt = stmt.where(AuditLogModel.occurred_at >= audit_filter.start)
        if audit_filter.end is not None:
            stmt = stmt.where(AuditLogModel.occurred_at <= audit_filter.end)

        stmt = stmt.order_by(AuditLogModel.occurred_at.desc(), AuditLogModel.seq.desc())
        if audit_filter.limit is not None:
            stmt = stmt.limit(audit_filter.limit)

        rows = self._session.execute(stmt).scalars().all()
        return [row.to_dto() for row in rows]

    def query_by_entity(self, entity_type: EntityKind, entity_id: UUID) -> list[AuditLogEntry]:
        """Full history of one record, newest first."""
        return self.query(AuditFilter(entity_type=entity_type, entity_id=entity_id))

    def get_recent_entries(self, limit: int = 100) -> list[AuditLogEntry]:
        return self.query(AuditFilter(limit=limit))

    # ------------------------------------------------------------------
    # Chain validation
    # ------------------------------------------------------------------

    def validate_chain(self) -> bool:
        """
        Validate the entire audit chain.

        Raises:
            AuditChainBrokenError: If a stored hash or prev_hash link does
                not match its recomputed value.
        """
        rows = self._session.execute(
            select(AuditLogModel).order_by(AuditLogModel.seq)
        ).scalars().all()

        expected_prev: str | None = None
        for row in rows:
            if row.prev_hash != expected_prev:
                logger.critical(
                    "audit_chain_broken",
                    extra={"entry_id": str(row.id), "seq": row.seq, "check": "prev_hash"},
                )
                raise AuditChainBrokenError(
                    str(row.id), expected_prev or "None", row.prev_hash or "None"
                )

            recomputed_payload = hash_audit_payload(
                row.before, row.after, row.actor_id, row.reason
            )
            expected_hash = hash_audit_entry(
                entity_type=row.entity_type,
                entity_id=str(row.entity_id),
                action=row.action,
                payload_hash=recomputed_payload,
                prev_hash=row.prev_hash,
            )
            if row.hash != expected_hash:
                logger.critical(
                    "audit_chain_broken",
                    extra={"entry_id": str(row.id), "seq": row.seq, "check": "hash"},
                )
                raise AuditChainBrokenError(str(row.id), expected_hash, row.hash)
            expected_prev = row.hash

        logger.info("audit_chain_valid", extra={"entry_count": len(rows)})
        return True
