"""
ConfigurationEngine -- one entry point over the nine configuration kinds.

Builds a LifecycleManager per kind over a shared session, AuditTrail,
identity directory and clock.  The session is owned by the caller; each
manager commits its own operations.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session

from payroll_kernel.db.immutability import register_immutability_listeners
from payroll_kernel.domain.clock import Clock, SystemClock
from payroll_kernel.domain.entities import (
    EntityKind,
    PolicyApplicability,
    PolicyType,
)
from payroll_kernel.domain.identity import IdentityDirectory
from payroll_kernel.logging_config import get_logger
from payroll_kernel.services.audit_trail import AuditTrail
from payroll_kernel.services.kinds import CONFIGURATION_KINDS, descriptor_for
from payroll_kernel.services.lifecycle_manager import LifecycleManager

logger = get_logger("services.engine")


class ConfigurationEngine:
    """
    Facade over all configuration lifecycles.

    Usage:
        engine = ConfigurationEngine(session, directory, clock)
        result = engine.pay_grades.create({...}, actor=hr)
        engine.pay_grades.approve(result.record.id, approver=manager)
    """

    def __init__(
        self,
        session: Session,
        identity_directory: IdentityDirectory,
        clock: Clock | None = None,
    ):
        register_immutability_listeners()
        self.session = session
        self.identity_directory = identity_directory
        self.clock = clock or SystemClock()
        self.audit_trail = AuditTrail(session, identity_directory, self.clock)
        self._managers: dict[EntityKind, LifecycleManager] = {
            kind: LifecycleManager(descriptor, session, self.audit_trail, self.clock)
            for kind, descriptor in CONFIGURATION_KINDS.items()
        }
        logger.debug("configuration_engine_ready", extra={"kinds": len(self._managers)})

    def manager(self, kind: EntityKind | str) -> LifecycleManager:
        """Lifecycle manager for ``kind``; UnknownEntityKindError if unknown."""
        return self._managers[descriptor_for(kind).kind]

    def history(self, kind: EntityKind | str, entity_id: UUID):
        """Audit entries for one record, newest first."""
        return self.audit_trail.query_by_entity(EntityKind.parse(kind), entity_id)

    def policies_by_type(self, policy_type: PolicyType | str):
        """APPROVED payroll policies of one type, newest first."""
        return self.payroll_policies.list_approved(
            policy_type=_parse_member(PolicyType, policy_type)
        )

    def policies_by_applicability(self, applicability: PolicyApplicability | str):
        """APPROVED payroll policies with one applicability, newest first."""
        return self.payroll_policies.list_approved(
            applicability=_parse_member(PolicyApplicability, applicability)
        )

    @property
    def pay_grades(self) -> LifecycleManager:
        return self._managers[EntityKind.PAY_GRADE]

    @property
    def allowances(self) -> LifecycleManager:
        return self._managers[EntityKind.ALLOWANCE]

    @property
    def tax_rules(self) -> LifecycleManager:
        return self._managers[EntityKind.TAX_RULE]

    @property
    def insurance_brackets(self) -> LifecycleManager:
        return self._managers[EntityKind.INSURANCE_BRACKET]

    @property
    def payroll_policies(self) -> LifecycleManager:
        return self._managers[EntityKind.PAYROLL_POLICY]

    @property
    def signing_bonuses(self) -> LifecycleManager:
        return self._managers[EntityKind.SIGNING_BONUS]

    @property
    def pay_types(self) -> LifecycleManager:
        return self._managers[EntityKind.PAY_TYPE]

    @property
    def termination_benefits(self) -> LifecycleManager:
        return self._managers[EntityKind.TERMINATION_BENEFIT]

    @property
    def company_settings(self) -> LifecycleManager:
        return self._managers[EntityKind.COMPANY_SETTINGS]


def _parse_member(enum_type, value):
    if isinstance(value, enum_type):
        return value
    try:
        return enum_type(str(value).strip().upper())
    except ValueError:
        allowed = ", ".join(m.value for m in enum_type)
        raise ValueError(f"{value!r} is not one of: {allowed}") from None
