"""Tests for the configuration lifecycle state machine (pure)."""

import pytest

from payroll_kernel.domain.lifecycle import (
    ALLOWED_FROM,
    ConfigStatus,
    LifecycleOperation,
    ensure_allowed,
    is_allowed,
    state_conflict,
)
from payroll_kernel.exceptions import (
    AlreadyApprovedError,
    AlreadyRejectedError,
    ConflictError,
    StateConflictError,
)

D, A, R = ConfigStatus.DRAFT, ConfigStatus.APPROVED, ConfigStatus.REJECTED
Op = LifecycleOperation


@pytest.mark.parametrize(
    "operation, status, allowed",
    [
        (Op.UPDATE, D, True), (Op.UPDATE, A, False), (Op.UPDATE, R, False),
        (Op.SUBMIT, D, True), (Op.SUBMIT, A, False), (Op.SUBMIT, R, False),
        (Op.DELETE, D, True), (Op.DELETE, A, False), (Op.DELETE, R, True),
        (Op.APPROVE, D, True), (Op.APPROVE, A, False), (Op.APPROVE, R, True),
        (Op.REJECT, D, True), (Op.REJECT, A, True), (Op.REJECT, R, False),
    ],
)
def test_transition_table(operation, status, allowed):
    assert is_allowed(operation, status) is allowed


def test_create_has_no_source_status():
    assert Op.CREATE not in ALLOWED_FROM
    assert not is_allowed(Op.CREATE, D)


def test_approve_twice_is_already_approved():
    error = state_conflict(Op.APPROVE, A, "PayGrade", "1")
    assert isinstance(error, AlreadyApprovedError)
    assert isinstance(error, ConflictError)
    assert error.http_status == 409


def test_reject_twice_is_already_rejected():
    assert isinstance(state_conflict(Op.REJECT, R, "PayGrade", "1"), AlreadyRejectedError)


def test_update_on_approved_names_current_status():
    with pytest.raises(StateConflictError) as exc_info:
        ensure_allowed(Op.UPDATE, A, "Allowance", "abc")
    assert exc_info.value.current_status == "APPROVED"
    assert exc_info.value.operation == "update"
    assert type(exc_info.value) is StateConflictError


def test_ensure_allowed_passes_silently():
    ensure_allowed(Op.APPROVE, R, "Allowance", "abc")
