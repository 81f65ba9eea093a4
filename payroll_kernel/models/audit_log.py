"""
Module: payroll_kernel.models.audit_log
Responsibility: ORM persistence for the configuration audit log.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ (for DTO conversion) only.

Invariants enforced:
    - Append-only: no UPDATE or DELETE (db/immutability.py listeners).
    - seq is unique and monotonically increasing, allocated by
      SequenceService from a locked counter row.
    - hash = H(entity_type | entity_id | action | payload_hash | prev_hash),
      chaining every entry to its predecessor.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.
    - AuditChainBrokenError when AuditTrail.validate_chain() detects a
      hash mismatch.

Audit relevance:
    AuditLogModel IS the audit trail.  Every successful create, update,
    delete, approve and reject produces exactly one row.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, BigInteger, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import Base, UTCDateTime, UUIDString
from payroll_kernel.domain.audit import AuditAction, AuditLogEntry, ConfigurationSnapshot
from payroll_kernel.domain.entities import EntityKind


class AuditLogModel(Base):
    """
    Audit log row with hash chain for tamper evidence.

    Guarantees:
        - before is NULL for CREATE; after is NULL for DELETE.
        - prev_hash is NULL only for the first row.
    """

    __tablename__ = "audit_log"

    __table_args__ = (
        Index("idx_audit_log_entity", "entity_type", "entity_id"),
        Index("idx_audit_log_action", "action"),
        Index("idx_audit_log_actor", "actor_id"),
        Index("idx_audit_log_occurred", "occurred_at"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    # EntityKind tag, e.g. "PayGrade"
    entity_type: Mapped[str] = mapped_column(String(50), nullable=False)

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    action: Mapped[str] = mapped_column(String(16), nullable=False)

    actor_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    before: Mapped[dict | None] = mapped_column(JSON, nullable=True)
    after: Mapped[dict | None] = mapped_column(JSON, nullable=True)

    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditLogModel #{self.seq} {self.action} on {self.entity_type}:{self.entity_id}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None

    def to_dto(self) -> AuditLogEntry:
        return AuditLogEntry(
            entry_id=self.id,
            seq=self.seq,
            entity_type=EntityKind.parse(self.entity_type),
            entity_id=self.entity_id,
            action=AuditAction(self.action),
            timestamp=self.occurred_at,
            actor_id=self.actor_id,
            before=ConfigurationSnapshot.from_dict(self.before) if self.before else None,
            after=ConfigurationSnapshot.from_dict(self.after) if self.after else None,
            reason=self.reason,
            hash=self.hash,
        )
