"""Services for the payroll kernel (write side)."""

from payroll_kernel.services.audit_trail import AuditTrail
from payroll_kernel.services.engine import ConfigurationEngine
from payroll_kernel.services.kinds import (
    CONFIGURATION_KINDS,
    EntityKindDescriptor,
    descriptor_for,
)
from payroll_kernel.services.lifecycle_manager import (
    LifecycleManager,
    LifecycleResult,
    LifecycleStatus,
)
from payroll_kernel.services.sequence_service import SequenceService

__all__ = [
    "AuditTrail",
    "CONFIGURATION_KINDS",
    "ConfigurationEngine",
    "EntityKindDescriptor",
    "LifecycleManager",
    "LifecycleResult",
    "LifecycleStatus",
    "SequenceService",
    "descriptor_for",
]
