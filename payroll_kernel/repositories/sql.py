"""
Module: payroll_kernel.repositories.sql
Responsibility: SQLAlchemy implementation of ConfigurationRepository, one
    instance per configuration kind.
Architecture position: Kernel > Repositories.  May import from db/, models/,
    domain/ and exceptions.  Flushes within the caller's transaction; NEVER
    commits or rolls back the outer transaction.

Invariants enforced:
    - Every UPDATE/DELETE is conditional:
      ``WHERE id = :id AND version = :expected AND status IN (:allowed)``.
      A zero rowcount is diagnosed by re-reading the row, so a lost update
      or double approval is rejected, never silently applied.
    - Writes run inside a SAVEPOINT so a failed statement leaves the outer
      transaction usable.
    - Storage-level UNIQUE violations become DuplicateKeyError; any other
      DBAPI failure or pool timeout becomes RepositoryIOError.

Failure modes:
    See repositories/base.py.
"""

from __future__ import annotations

from contextlib import contextmanager
from datetime import datetime
from typing import Iterable, Iterator
from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import DBAPIError, IntegrityError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session

from payroll_kernel.domain.entities import ConfigurationPayload, ConfigurationRecord
from payroll_kernel.domain.lifecycle import ConfigStatus, LifecycleOperation, state_conflict
from payroll_kernel.exceptions import (
    ConcurrentModificationError,
    DuplicateKeyError,
    RecordNotFoundError,
    RepositoryIOError,
)
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.configuration import ConfigurationModel
from payroll_kernel.repositories.base import ConfigurationRepository, RecordFilter

logger = get_logger("repositories.sql")


class SqlConfigurationRepository(ConfigurationRepository):
    """
    Configuration store for one kind, backed by its ORM model.

    Contract:
        Accepts a Session from the caller.  Returns ConfigurationRecord
        DTOs, never ORM instances.
    """

    def __init__(self, session: Session, model: type[ConfigurationModel]):
        self.session = session
        self.model = model
        self.kind = model.KIND

    # ------------------------------------------------------------------
    # Error mapping
    # ------------------------------------------------------------------

    @contextmanager
    def _storage(
        self,
        operation: str,
        payload: ConfigurationPayload | None = None,
        savepoint: bool = False,
    ) -> Iterator[None]:
        try:
            if savepoint:
                with self.session.begin_nested():
                    yield
            else:
                yield
        except IntegrityError as exc:
            raise self._duplicate(payload) from exc
        except (DBAPIError, PoolTimeoutError) as exc:
            detail = str(getattr(exc, "orig", None) or exc)
            logger.error(
                "repository_io_failed",
                extra={
                    "entity_type": self.kind.value,
                    "operation": operation,
                    "detail": detail,
                },
            )
            raise RepositoryIOError(operation, self.kind.value, detail) from exc

    def _duplicate(self, payload: ConfigurationPayload | None) -> DuplicateKeyError:
        field = self.model.PAYLOAD_TYPE.UNIQUE_FIELD or "id"
        value = getattr(payload, field, None) if payload is not None else None
        if payload is not None and not self.model.HAS_UNIQUE_KEY and field == "name":
            value = f"{payload.name} [{payload.min_salary}, {payload.max_salary}]"
        logger.warning(
            "duplicate_key_rejected",
            extra={"entity_type": self.kind.value, "field": field, "value": value},
        )
        return DuplicateKeyError(self.kind.value, field, value)

    def _raise_write_conflict(
        self,
        record_id: UUID,
        operation: LifecycleOperation,
        allowed_from: frozenset[ConfigStatus],
        expected_version: int,
    ) -> None:
        current = self.find(record_id)
        if current is None:
            raise RecordNotFoundError(self.kind.value, str(record_id))
        if current.status not in allowed_from:
            raise state_conflict(operation, current.status, self.kind.value, str(record_id))
        logger.warning(
            "concurrent_modification_detected",
            extra={
                "entity_type": self.kind.value,
                "entity_id": str(record_id),
                "expected_version": expected_version,
                "current_version": current.version,
            },
        )
        raise ConcurrentModificationError(self.kind.value, str(record_id), expected_version)

    def _guard(self, record_id: UUID, expected_version: int, allowed_from: frozenset[ConfigStatus]):
        return (
            (self.model.id == record_id)
            & (self.model.version == expected_version)
            & (self.model.status.in_([s.value for s in allowed_from]))
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def find(self, record_id: UUID) -> ConfigurationRecord | None:
        with self._storage("find"):
            row = self.session.get(self.model, record_id, populate_existing=True)
            return row.to_dto() if row is not None else None

    def find_all(self, criteria: RecordFilter | None = None) -> list[ConfigurationRecord]:
        stmt = self._filtered(select(self.model), criteria or RecordFilter())
        stmt = stmt.order_by(self.model.created_at.desc(), self.model.id.desc())
        with self._storage("find_all"):
            rows = self.session.execute(
                stmt.execution_options(populate_existing=True)
            ).scalars().all()
            return [row.to_dto() for row in rows]

    def _filtered(self, stmt, criteria: RecordFilter):
        model = self.model
        if criteria.status is not None:
            stmt = stmt.where(model.status == criteria.status.value)
        if criteria.created_by is not None:
            stmt = stmt.where(model.created_by == criteria.created_by)
        if criteria.search is not None:
            column = getattr(model, self._filter_field("SEARCH_FIELD", "search"))
            stmt = stmt.where(
                func.lower(column).contains(criteria.search.strip().lower(), autoescape=True)
            )
        if criteria.min_amount is not None:
            column = getattr(model, self._filter_field("MIN_AMOUNT_FIELD", "min_amount"))
            stmt = stmt.where(column >= criteria.min_amount)
        if criteria.max_amount is not None:
            column = getattr(model, self._filter_field("MAX_AMOUNT_FIELD", "max_amount"))
            stmt = stmt.where(column <= criteria.max_amount)
        for name, value in criteria.equals.items():
            if name not in model.EXACT_FIELDS:
                raise ValueError(f"{self.kind.value} records cannot be filtered by {name!r}")
            stmt = stmt.where(getattr(model, name) == getattr(value, "value", value))
        return stmt

    def _filter_field(self, attribute: str, criterion: str) -> str:
        name = getattr(self.model, attribute)
        if name is None:
            raise ValueError(f"{self.kind.value} records have no {criterion} filter")
        return name

    def count(self, status: ConfigStatus | None = None) -> int:
        stmt = select(func.count()).select_from(self.model)
        if status is not None:
            stmt = stmt.where(self.model.status == status.value)
        with self._storage("count"):
            return int(self.session.execute(stmt).scalar_one())

    def latest_approved(self) -> ConfigurationRecord | None:
        """The APPROVED record with the most recent approved_at, or None."""
        stmt = (
            select(self.model)
            .where(self.model.status == ConfigStatus.APPROVED.value)
            .order_by(self.model.approved_at.desc(), self.model.version.desc())
            .limit(1)
            .execution_options(populate_existing=True)
        )
        with self._storage("latest_approved"):
            row = self.session.execute(stmt).scalars().first()
            return row.to_dto() if row is not None else None

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def add(
        self,
        payload: ConfigurationPayload,
        *,
        created_by: UUID | None,
        now: datetime,
    ) -> ConfigurationRecord:
        row = self.model(
            status=ConfigStatus.DRAFT.value,
            version=1,
            created_by=created_by,
            created_at=now,
            updated_at=now,
            **self.model.payload_values(payload),
        )
        with self._storage("add", payload, savepoint=True):
            self.session.add(row)
            self.session.flush()
        logger.debug(
            "configuration_row_inserted",
            extra={"entity_type": self.kind.value, "entity_id": str(row.id)},
        )
        return row.to_dto()

    def update_payload(
        self,
        record_id: UUID,
        payload: ConfigurationPayload,
        *,
        expected_version: int,
        allowed_from: Iterable[ConfigStatus],
        now: datetime,
    ) -> ConfigurationRecord:
        allowed = frozenset(allowed_from)
        stmt = (
            update(self.model)
            .where(self._guard(record_id, expected_version, allowed))
            .values(
                version=self.model.version + 1,
                updated_at=now,
                **self.model.payload_values(payload),
            )
            .execution_options(synchronize_session=False)
        )
        with self._storage("update_payload", payload, savepoint=True):
            result = self.session.execute(stmt)
        if result.rowcount != 1:
            self._raise_write_conflict(
                record_id, LifecycleOperation.UPDATE, allowed, expected_version
            )
        return self.get(record_id)

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
        allowed = frozenset(allowed_from)
        values: dict = {
            "status": to_status.value,
            "version": self.model.version + 1,
            "updated_at": now,
        }
        if to_status is ConfigStatus.APPROVED:
            values.update(approved_by=approved_by, approved_at=now, rejection_reason=None)
        elif to_status is ConfigStatus.REJECTED:
            values.update(
                approved_by=None, approved_at=None, rejection_reason=rejection_reason
            )

        stmt = (
            update(self.model)
            .where(self._guard(record_id, expected_version, allowed))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        with self._storage(operation.value, savepoint=True):
            result = self.session.execute(stmt)
        if result.rowcount != 1:
            self._raise_write_conflict(record_id, operation, allowed, expected_version)
        return self.get(record_id)

    def delete(
        self,
        record_id: UUID,
        *,
        expected_version: int,
        allowed_from: Iterable[ConfigStatus],
    ) -> None:
        allowed = frozenset(allowed_from)
        stmt = (
            delete(self.model)
            .where(self._guard(record_id, expected_version, allowed))
            .execution_options(synchronize_session=False)
        )
        with self._storage("delete", savepoint=True):
            result = self.session.execute(stmt)
        if result.rowcount != 1:
            self._raise_write_conflict(
                record_id, LifecycleOperation.DELETE, allowed, expected_version
            )
