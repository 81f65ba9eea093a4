"""
Payroll Kernel - configuration approval and audit engine

A single approval lifecycle shared by every payroll configuration kind:
- DRAFT -> APPROVED / REJECTED state machine
- Per-kind business-rule validation
- Append-only audit trail of every mutation
- Cross-kind pending-approvals dashboard
- Signing-bonus eligibility for onboarding
"""

__version__ = "0.1.0"
