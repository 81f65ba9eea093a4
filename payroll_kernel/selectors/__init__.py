"""Selectors for the payroll kernel (read side)."""

from payroll_kernel.selectors.approval_dashboard import (
    ApprovalDashboard,
    ApprovedConfigurationSet,
    KindSummary,
    PendingApprovalsSummary,
)
from payroll_kernel.selectors.signing_bonus_bridge import (
    EmployeeOnboardedEvent,
    SigningBonusEligibilityBridge,
    WorkType,
)

__all__ = [
    "ApprovalDashboard",
    "ApprovedConfigurationSet",
    "EmployeeOnboardedEvent",
    "KindSummary",
    "PendingApprovalsSummary",
    "SigningBonusEligibilityBridge",
    "WorkType",
]
