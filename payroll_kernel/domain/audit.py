"""
Audit value objects (``payroll_kernel.domain.audit``).

Responsibility
--------------
Typed, immutable views of audit log entries.  Before/after snapshots are a
tagged union keyed by ``EntityKind``: each snapshot carries the kind's
concrete payload dataclass, so readers get typed fields rather than an
untyped dict.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Any, Mapping
from uuid import UUID

from payroll_kernel.domain.entities import (
    ConfigurationPayload,
    ConfigurationRecord,
    EntityKind,
    payload_type_for,
)
from payroll_kernel.domain.lifecycle import ConfigStatus


class AuditAction(str, Enum):
    """Mutations recorded in the audit log."""

    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    APPROVE = "APPROVE"
    REJECT = "REJECT"


@dataclass(frozen=True)
class ConfigurationSnapshot:
    """
    A record's state at one point in time.

    ``entity_type`` is the union tag; ``payload`` is always an instance of
    ``payload_type_for(entity_type)``.
    """

    entity_type: EntityKind
    entity_id: UUID
    status: ConfigStatus
    version: int
    payload: ConfigurationPayload
    created_by: UUID | None = None
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    rejection_reason: str | None = None

    @classmethod
    def of(cls, record: ConfigurationRecord) -> ConfigurationSnapshot:
        return cls(
            entity_type=record.kind,
            entity_id=record.id,
            status=record.status,
            version=record.version,
            payload=record.payload,
            created_by=record.created_by,
            approved_by=record.approved_by,
            approved_at=record.approved_at,
            rejection_reason=record.rejection_reason,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "entity_type": self.entity_type.value,
            "entity_id": str(self.entity_id),
            "status": self.status.value,
            "version": self.version,
            "payload": self.payload.to_dict(),
            "created_by": str(self.created_by) if self.created_by else None,
            "approved_by": str(self.approved_by) if self.approved_by else None,
            "approved_at": self.approved_at.isoformat() if self.approved_at else None,
            "rejection_reason": self.rejection_reason,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ConfigurationSnapshot:
        kind = EntityKind.parse(data["entity_type"])
        return cls(
            entity_type=kind,
            entity_id=UUID(data["entity_id"]),
            status=ConfigStatus(data["status"]),
            version=int(data["version"]),
            payload=payload_type_for(kind).from_dict(data["payload"]),
            created_by=UUID(data["created_by"]) if data.get("created_by") else None,
            approved_by=UUID(data["approved_by"]) if data.get("approved_by") else None,
            approved_at=(
                datetime.fromisoformat(data["approved_at"])
                if data.get("approved_at") else None
            ),
            rejection_reason=data.get("rejection_reason"),
        )


@dataclass(frozen=True)
class AuditLogEntry:
    """One immutable audit log row."""

    entry_id: UUID
    seq: int
    entity_type: EntityKind
    entity_id: UUID
    action: AuditAction
    timestamp: datetime
    actor_id: UUID | None = None
    before: ConfigurationSnapshot | None = None
    after: ConfigurationSnapshot | None = None
    reason: str | None = None
    hash: str | None = None


@dataclass(frozen=True)
class AuditFilter:
    """
    Query filter for ``AuditTrail.query``.

    Timestamp bounds are inclusive.  ``actor_id`` is resolved against the
    identity directory before the query runs.
    """

    entity_type: EntityKind | None = None
    entity_id: UUID | None = None
    action: AuditAction | None = None
    actor_id: UUID | None = None
    start: datetime | None = None
    end: datetime | None = None
    limit: int | None = None
