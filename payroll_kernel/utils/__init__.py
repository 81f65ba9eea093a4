"""Utility functions for the payroll kernel."""

from payroll_kernel.utils.hashing import (
    canonical_json,
    hash_audit_entry,
    hash_audit_payload,
)

__all__ = ["canonical_json", "hash_audit_entry", "hash_audit_payload"]
