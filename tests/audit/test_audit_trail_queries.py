"""
Tests for AuditTrail append and query.

Every successful mutation appends exactly one entry; queries filter on any
combination of fields and return newest first.
"""

from datetime import timedelta
from uuid import uuid4

import pytest

from payroll_kernel.domain.audit import AuditAction, AuditFilter
from payroll_kernel.domain.entities import EntityKind
from payroll_kernel.domain.lifecycle import ConfigStatus
from payroll_kernel.exceptions import ActorNotFoundError, ConfigValidationError


@pytest.fixture
def populated(engine, hr_user, approver, make_payload, clock):
    """Three records across two kinds, with one approval and one rejection."""
    grade = engine.pay_grades.create(make_payload(EntityKind.PAY_GRADE), actor=hr_user).record
    clock.tick()
    allowance = engine.allowances.create(make_payload(EntityKind.ALLOWANCE), actor=hr_user).record
    clock.tick()
    engine.pay_grades.approve(grade.id, approver=approver)
    clock.tick()
    tax = engine.tax_rules.create(make_payload(EntityKind.TAX_RULE)).record
    clock.tick()
    engine.tax_rules.reject(tax.id, reason="rate under review", actor=approver)
    return {"grade": grade, "allowance": allowance, "tax": tax}


class TestRecording:

    def test_one_entry_per_mutation(self, engine, populated):
        assert len(engine.audit_trail.get_recent_entries()) == 5

    def test_create_entry_has_after_only(self, engine, hr_user, populated):
        [entry] = engine.audit_trail.query(
            AuditFilter(entity_id=populated["allowance"].id)
        )
        assert entry.action is AuditAction.CREATE
        assert entry.actor_id == hr_user.actor_id
        assert entry.before is None
        assert entry.after.status is ConfigStatus.DRAFT
        assert entry.after.payload.name == "Housing"

    def test_approve_entry_has_before_and_after(self, engine, approver, populated):
        entry = engine.history(EntityKind.PAY_GRADE, populated["grade"].id)[0]
        assert entry.action is AuditAction.APPROVE
        assert entry.actor_id == approver.actor_id
        assert entry.before.status is ConfigStatus.DRAFT
        assert entry.after.status is ConfigStatus.APPROVED
        assert entry.after.approved_by == approver.actor_id

    def test_reject_entry_carries_reason(self, engine, populated):
        entry = engine.history(EntityKind.TAX_RULE, populated["tax"].id)[0]
        assert entry.action is AuditAction.REJECT
        assert entry.reason == "rate under review"
        assert entry.after.rejection_reason == "rate under review"

    def test_sequence_is_monotonic(self, engine, populated):
        seqs = [e.seq for e in reversed(engine.audit_trail.get_recent_entries())]
        assert seqs == sorted(seqs)
        assert len(set(seqs)) == len(seqs)

    def test_failed_operation_is_not_audited(self, engine, make_payload, populated):
        with pytest.raises(ConfigValidationError):
            engine.pay_grades.create(make_payload(EntityKind.PAY_GRADE, base_salary="10"))
        assert len(engine.audit_trail.get_recent_entries()) == 5


class TestQueries:

    def test_newest_first(self, engine, populated):
        entries = engine.audit_trail.get_recent_entries()
        timestamps = [e.timestamp for e in entries]
        assert timestamps == sorted(timestamps, reverse=True)
        assert entries[0].action is AuditAction.REJECT

    def test_filter_by_entity_type(self, engine, populated):
        entries = engine.audit_trail.query(AuditFilter(entity_type=EntityKind.PAY_GRADE))
        assert [e.action for e in entries] == [AuditAction.APPROVE, AuditAction.CREATE]

    def test_filter_by_action(self, engine, populated):
        entries = engine.audit_trail.query(AuditFilter(action=AuditAction.CREATE))
        assert len(entries) == 3

    def test_filter_by_actor(self, engine, hr_user, approver, populated):
        assert len(engine.audit_trail.query(AuditFilter(actor_id=hr_user.actor_id))) == 2
        assert len(engine.audit_trail.query(AuditFilter(actor_id=approver.actor_id))) == 2

    def test_unknown_actor_is_not_found(self, engine, populated):
        with pytest.raises(ActorNotFoundError):
            engine.audit_trail.query(AuditFilter(actor_id=uuid4()))

    def test_time_bounds_are_inclusive(self, engine, populated):
        t0 = populated["grade"].created_at
        entries = engine.audit_trail.query(
            AuditFilter(
                start=t0 + timedelta(seconds=1),
                end=t0 + timedelta(seconds=3),
            )
        )
        assert [e.action for e in entries] == [
            AuditAction.CREATE,
            AuditAction.APPROVE,
            AuditAction.CREATE,
        ]
        assert {e.entity_type for e in entries} == {
            EntityKind.ALLOWANCE,
            EntityKind.PAY_GRADE,
            EntityKind.TAX_RULE,
        }

    def test_combined_filters(self, engine, hr_user, populated):
        entries = engine.audit_trail.query(
            AuditFilter(
                entity_type=EntityKind.PAY_GRADE,
                action=AuditAction.CREATE,
                actor_id=hr_user.actor_id,
            )
        )
        assert [e.entity_id for e in entries] == [populated["grade"].id]

    def test_limit(self, engine, populated):
        assert len(engine.audit_trail.query(AuditFilter(limit=2))) == 2

    def test_no_match_is_empty(self, engine, populated):
        assert engine.audit_trail.query_by_entity(EntityKind.PAY_TYPE, uuid4()) == []
