"""
Module: payroll_kernel.selectors.signing_bonus_bridge
Responsibility: Answers whether a newly onboarded employee qualifies for a
    signing bonus, from APPROVED signing-bonus configuration only.
Architecture position: Kernel > Selectors.  Called by the onboarding flow.

Invariants enforced:
    - Only FULL_TIME work qualifies.
    - Only an APPROVED bonus counts; DRAFT and REJECTED records are ignored.
    - Position match is whole-string and case-insensitive after trimming,
      the same normalisation that backs the signing-bonus unique key.

Failure modes:
    - handle_employee_onboarded never raises; any error is logged and
      reported as "no bonus".
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import select

from payroll_kernel.domain.entities import ConfigurationRecord
from payroll_kernel.domain.lifecycle import ConfigStatus
from payroll_kernel.domain.predicates import is_blank, normalize_key
from payroll_kernel.logging_config import get_logger
from payroll_kernel.models.configuration import SigningBonusModel
from payroll_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.signing_bonus_bridge")


class WorkType(str, Enum):
    FULL_TIME = "FULL_TIME"
    PART_TIME = "PART_TIME"
    CONTRACT = "CONTRACT"
    INTERN = "INTERN"

    @classmethod
    def parse(cls, value: WorkType | str | None) -> WorkType | None:
        """Tolerates case, dashes and spaces ("full-time", "Full Time")."""
        if isinstance(value, WorkType):
            return value
        if value is None:
            return None
        token = "_".join(value.strip().replace("-", " ").split()).upper()
        try:
            return cls(token)
        except ValueError:
            return None


@dataclass(frozen=True)
class EmployeeOnboardedEvent:
    employee_id: UUID
    position_name: str
    work_type: str
    occurred_at: datetime | None = None


class SigningBonusEligibilityBridge(BaseSelector):
    """Signing-bonus lookups for onboarding."""

    def find_approved_bonus(self, position_name: str) -> ConfigurationRecord | None:
        if position_name is None or is_blank(position_name):
            return None
        stmt = (
            select(SigningBonusModel)
            .where(SigningBonusModel.unique_key == normalize_key(position_name))
            .where(SigningBonusModel.status == ConfigStatus.APPROVED.value)
            .execution_options(populate_existing=True)
        )
        row = self.session.execute(stmt).scalars().first()
        return row.to_dto() if row is not None else None

    def is_eligible(self, position_name: str, work_type: WorkType | str) -> bool:
        if WorkType.parse(work_type) is not WorkType.FULL_TIME:
            return False
        return self.find_approved_bonus(position_name) is not None

    def handle_employee_onboarded(
        self, event: EmployeeOnboardedEvent
    ) -> ConfigurationRecord | None:
        """
        Onboarding hook: the approved bonus the employee qualifies for, or None.

        Never raises.
        """
        try:
            if not self.is_eligible(event.position_name, event.work_type):
                logger.info(
                    "signing_bonus_not_eligible",
                    extra={
                        "employee_id": str(event.employee_id),
                        "position_name": event.position_name,
                        "work_type": event.work_type,
                    },
                )
                return None
            bonus = self.find_approved_bonus(event.position_name)
        except Exception:
            logger.exception(
                "signing_bonus_lookup_failed",
                extra={
                    "employee_id": str(event.employee_id),
                    "position_name": event.position_name,
                },
            )
            return None

        if bonus is not None:
            logger.info(
                "signing_bonus_eligible",
                extra={
                    "employee_id": str(event.employee_id),
                    "bonus_id": str(bonus.id),
                    "amount": str(bonus.payload.amount),
                },
            )
        return bonus
