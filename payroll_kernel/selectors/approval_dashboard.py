"""
Module: payroll_kernel.selectors.approval_dashboard
Responsibility: Cross-kind views of configuration awaiting approval and of
    the approved set that payroll execution reads.
Architecture position: Kernel > Selectors.  Reads through one
    SqlConfigurationRepository per kind.

Invariants enforced:
    - Every summary covers all nine kinds (or the requested subset), zero
      counts included.
    - total_pending == sum of the per-kind counts in the same summary.
    - Fan-out is bounded by ``max_workers``; each worker opens its own
      session from the factory, so no Session is shared across threads.

Failure modes:
    - RepositoryIOError from any worker propagates to the caller; a partial
      summary is never returned.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Iterable
from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from payroll_kernel.domain.entities import ConfigurationRecord, EntityKind
from payroll_kernel.domain.lifecycle import ConfigStatus
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.configuration import CONFIGURATION_MODELS
from payroll_kernel.repositories.base import RecordFilter
from payroll_kernel.repositories.sql import SqlConfigurationRepository

if TYPE_CHECKING:
    from payroll_settings.schema import EngineSettings

logger = get_logger("selectors.approval_dashboard")

DEFAULT_MAX_WORKERS = 4


@dataclass(frozen=True)
class KindSummary:
    count: int
    items: tuple[ConfigurationRecord, ...] = ()


@dataclass(frozen=True)
class PendingApprovalsSummary:
    """DRAFT records grouped by kind."""

    by_kind: dict[EntityKind, KindSummary] = field(default_factory=dict)

    @property
    def total_pending(self) -> int:
        return sum(summary.count for summary in self.by_kind.values())

    def count_for(self, kind: EntityKind) -> int:
        summary = self.by_kind.get(kind)
        return summary.count if summary else 0


@dataclass(frozen=True)
class ApprovedConfigurationSet:
    """APPROVED records grouped by kind; the payroll execution read model."""

    by_kind: dict[EntityKind, tuple[ConfigurationRecord, ...]] = field(default_factory=dict)

    @property
    def total(self) -> int:
        return sum(len(records) for records in self.by_kind.values())

    def for_kind(self, kind: EntityKind) -> tuple[ConfigurationRecord, ...]:
        return self.by_kind.get(kind, ())


class ApprovalDashboard:
    """
    Read-only dashboard over all configuration kinds.

    Takes a session factory rather than a session: the per-kind queries run
    concurrently and each needs its own connection.
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        max_workers: int = DEFAULT_MAX_WORKERS,
    ):
        if max_workers < 1:
            raise ValueError(f"max_workers must be >= 1, got {max_workers}")
        self._session_factory = session_factory
        self._max_workers = max_workers

    @classmethod
    def from_settings(
        cls, session_factory: sessionmaker[Session], settings: EngineSettings
    ) -> ApprovalDashboard:
        return cls(session_factory, max_workers=settings.dashboard_max_workers)

    def _load(
        self,
        kind: EntityKind,
        status: ConfigStatus,
        created_by: UUID | None,
    ) -> list[ConfigurationRecord]:
        with self._session_factory() as session:
            repository = SqlConfigurationRepository(session, CONFIGURATION_MODELS[kind])
            return repository.find_all(RecordFilter(status=status, created_by=created_by))

    def _fan_out(
        self,
        status: ConfigStatus,
        kinds: Iterable[EntityKind] | None,
        created_by: UUID | None = None,
    ) -> dict[EntityKind, list[ConfigurationRecord]]:
        selected = [EntityKind.parse(k) for k in kinds] if kinds is not None else list(EntityKind)
        workers = min(self._max_workers, len(selected)) or 1
        with ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                kind: executor.submit(self._load, kind, status, created_by)
                for kind in selected
            }
            return {kind: future.result() for kind, future in futures.items()}

    def get_pending(
        self,
        kinds: Iterable[EntityKind] | None = None,
        created_by: UUID | None = None,
    ) -> PendingApprovalsSummary:
        """DRAFT records per kind, optionally limited to one creator."""
        loaded = self._fan_out(ConfigStatus.DRAFT, kinds, created_by)
        summary = PendingApprovalsSummary(
            by_kind={
                kind: KindSummary(count=len(records), items=tuple(records))
                for kind, records in loaded.items()
            }
        )
        logger.info(
            "pending_approvals_summarized",
            extra={
                "total_pending": summary.total_pending,
                "kinds": len(summary.by_kind),
            },
        )
        return summary

    def get_all_approved(
        self, kinds: Iterable[EntityKind] | None = None
    ) -> ApprovedConfigurationSet:
        loaded = self._fan_out(ConfigStatus.APPROVED, kinds)
        approved = ApprovedConfigurationSet(
            by_kind={kind: tuple(records) for kind, records in loaded.items()}
        )
        logger.info("approved_configuration_loaded", extra={"total": approved.total})
        return approved

    def get_active_company_settings(self) -> ConfigurationRecord | None:
        """The APPROVED company settings with the latest approved_at, or None."""
        with self._session_factory() as session:
            repository = SqlConfigurationRepository(
                session, CONFIGURATION_MODELS[EntityKind.COMPANY_SETTINGS]
            )
            return repository.latest_approved()
