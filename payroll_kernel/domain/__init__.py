"""
Pure domain layer.

Value objects, the lifecycle state machine, validation predicates and the
per-kind validators.  Nothing here touches the ORM, the database or the
system clock.
"""

from payroll_kernel.domain.audit import (
    AuditAction,
    AuditFilter,
    AuditLogEntry,
    ConfigurationSnapshot,
)
from payroll_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from payroll_kernel.domain.entities import (
    PAYLOAD_TYPES,
    Allowance,
    CompanySettings,
    ConfigurationPayload,
    ConfigurationRecord,
    EntityKind,
    InsuranceBracket,
    PayGrade,
    PayrollPolicy,
    PayType,
    PolicyApplicability,
    PolicyType,
    RuleDefinition,
    RuleViolation,
    SigningBonus,
    TaxRule,
    TerminationBenefit,
)
from payroll_kernel.domain.identity import (
    ActorRef,
    IdentityDirectory,
    InMemoryIdentityDirectory,
    PrivilegedActor,
)
from payroll_kernel.domain.lifecycle import ConfigStatus, LifecycleOperation
from payroll_kernel.domain.validators import (
    VALIDATORS,
    EntityValidator,
    ValidationResult,
    validator_for,
)

__all__ = [
    "ActorRef",
    "Allowance",
    "AuditAction",
    "AuditFilter",
    "AuditLogEntry",
    "Clock",
    "CompanySettings",
    "ConfigStatus",
    "ConfigurationPayload",
    "ConfigurationRecord",
    "ConfigurationSnapshot",
    "DeterministicClock",
    "EntityKind",
    "EntityValidator",
    "IdentityDirectory",
    "InMemoryIdentityDirectory",
    "InsuranceBracket",
    "LifecycleOperation",
    "PAYLOAD_TYPES",
    "PayGrade",
    "PayType",
    "PayrollPolicy",
    "PolicyApplicability",
    "PolicyType",
    "PrivilegedActor",
    "RuleDefinition",
    "RuleViolation",
    "SigningBonus",
    "SystemClock",
    "TaxRule",
    "TerminationBenefit",
    "VALIDATORS",
    "ValidationResult",
    "validator_for",
]
