"""
Module: payroll_kernel.repositories.base
Responsibility: The logical contract every configuration store satisfies,
    independent of the storage engine behind it.
Architecture position: Kernel > Repositories.  May import from domain/ and
    exceptions only.

Invariants enforced:
    - Conditional writes: every state-changing method takes the version the
      caller read and the set of statuses it may act from, and fails rather
      than overwrite when either has moved.
    - Unique keys are enforced atomically by the store, not only by the
      validator's read-then-check.

Failure modes:
    - RecordNotFoundError: id does not resolve.
    - StateConflictError / AlreadyApprovedError / AlreadyRejectedError: the
      record's status is not in ``allowed_from``.
    - ConcurrentModificationError: version moved since the caller read it.
    - DuplicateKeyError: unique key already present.
    - RepositoryIOError: transport or timeout failure (retryable).
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any, Iterable, Mapping
from uuid import UUID

from payroll_kernel.domain.entities import (
    ConfigurationPayload,
    ConfigurationRecord,
    EntityKind,
)
from payroll_kernel.domain.lifecycle import ConfigStatus, LifecycleOperation
from payroll_kernel.exceptions import RecordNotFoundError


@dataclass(frozen=True)
class RecordFilter:
    """
    Optional list criteria; unset fields do not filter.

    ``search`` is a case-insensitive substring of the kind's name field
    (grade, name, policy_name, position_name or type).  ``min_amount`` and
    ``max_amount`` are inclusive bounds on its amount, salary or rate.
    ``equals`` matches enumerated columns such as a policy's
    ``policy_type`` or a company setting's ``currency``.
    """

    status: ConfigStatus | None = None
    created_by: UUID | None = None
    search: str | None = None
    min_amount: Decimal | None = None
    max_amount: Decimal | None = None
    equals: Mapping[str, Any] = field(default_factory=dict)


class ConfigurationRepository(ABC):
    """Uniform CRUD + conditional-transition interface for one kind."""

    kind: EntityKind

    @abstractmethod
    def add(
        self,
        payload: ConfigurationPayload,
        *,
        created_by: UUID | None,
        now: datetime,
    ) -> ConfigurationRecord:
        """Insert a DRAFT record at version 1."""

    @abstractmethod
    def find(self, record_id: UUID) -> ConfigurationRecord | None:
        """Record by id, or None."""

    def get(self, record_id: UUID) -> ConfigurationRecord:
        """Record by id; RecordNotFoundError if absent."""
        record = self.find(record_id)
        if record is None:
            raise RecordNotFoundError(self.kind.value, str(record_id))
        return record

    @abstractmethod
    def find_all(self, criteria: RecordFilter | None = None) -> list[ConfigurationRecord]:
        """
        Records matching ``criteria``, newest first.

        ValueError if a criterion does not apply to this kind.
        """

    @abstractmethod
    def count(self, status: ConfigStatus | None = None) -> int:
        """Number of records, optionally by status."""

    @abstractmethod
    def update_payload(
        self,
        record_id: UUID,
        payload: ConfigurationPayload,
        *,
        expected_version: int,
        allowed_from: Iterable[ConfigStatus],
        now: datetime,
    ) -> ConfigurationRecord:
        """Replace the payload if status and version still match."""

    @abstractmethod
    def transition(
        self,
        record_id: UUID,
        operation: LifecycleOperation,
        to_status: ConfigStatus,
        *,
        expected_version: int,
        allowed_from: Iterable[ConfigStatus],
        now: datetime,
        approved_by: UUID | None = None,
        rejection_reason: str | None = None,
    ) -> ConfigurationRecord:
        """Move the record to ``to_status`` if status and version still match."""

    @abstractmethod
    def delete(
        self,
        record_id: UUID,
        *,
        expected_version: int,
        allowed_from: Iterable[ConfigStatus],
    ) -> None:
        """Remove the record if status and version still match."""
