"""
Tests for LifecycleManager -- configuration lifecycle over a real database.

Covers:
- create(): DRAFT status, CREATE audit with after snapshot, duplicates
- update(): DRAFT only, partial merge, UPDATE audit before/after, version bump
- delete(): DRAFT/REJECTED freely, APPROVED only with a privilege token
- submit(): validation gate, no status change, no audit
- approve()/reject(): transitions, double approve/reject, REJECTED -> APPROVED
- get()/list()/list_approved(), newest first, with search and amount filters
- the uniqueness and DRAFT-only properties, for every kind
"""

from datetime import datetime, timezone
from decimal import Decimal
from uuid import uuid4

import pytest

from payroll_kernel.domain.audit import AuditAction
from payroll_kernel.domain.entities import EntityKind, PayGrade, payload_type_for
from payroll_kernel.domain.lifecycle import ConfigStatus, LifecycleOperation
from payroll_kernel.exceptions import (
    AlreadyApprovedError,
    AlreadyRejectedError,
    ConfigValidationError,
    ConflictError,
    DuplicateKeyError,
    PrivilegeRequiredError,
    RecordNotFoundError,
    StateConflictError,
    ValidationError,
)
from payroll_kernel.services.lifecycle_manager import LifecycleStatus


class TestCreate:

    def test_create_returns_draft_with_audit(self, engine, hr_user, make_payload):
        result = engine.pay_grades.create(make_payload(EntityKind.PAY_GRADE), actor=hr_user)

        assert result.is_success
        assert not result.is_degraded
        assert result.status is LifecycleStatus.COMPLETED
        assert result.operation is LifecycleOperation.CREATE
        record = result.record
        assert record.status is ConfigStatus.DRAFT
        assert record.version == 1
        assert record.created_by == hr_user.actor_id
        assert record.payload == PayGrade("Senior", Decimal("7000"), Decimal("8000"))

        entry = result.audit_entry
        assert entry.action is AuditAction.CREATE
        assert entry.entity_type is EntityKind.PAY_GRADE
        assert entry.entity_id == record.id
        assert entry.actor_id == hr_user.actor_id
        assert entry.before is None
        assert entry.after.payload == record.payload
        assert entry.after.status is ConfigStatus.DRAFT

    def test_create_accepts_payload_instance(self, engine):
        payload = PayGrade("Junior", Decimal("6500"), Decimal("7000"))
        assert engine.pay_grades.create(payload).record.payload == payload

    def test_create_rejects_payload_of_other_kind(self, engine):
        with pytest.raises(TypeError):
            engine.allowances.create(PayGrade("Junior", Decimal("6500"), Decimal("7000")))

    def test_create_invalid_persists_nothing(self, engine, make_payload):
        with pytest.raises(ConfigValidationError):
            engine.pay_grades.create(make_payload(EntityKind.PAY_GRADE, base_salary="5000"))
        assert engine.pay_grades.count() == 0
        assert engine.audit_trail.get_recent_entries() == []

    def test_duplicate_key_is_conflict(self, engine, make_payload):
        engine.allowances.create(make_payload(EntityKind.ALLOWANCE))
        with pytest.raises(DuplicateKeyError) as exc_info:
            engine.allowances.create(make_payload(EntityKind.ALLOWANCE, amount="99"))

        assert isinstance(exc_info.value, ConflictError)
        assert exc_info.value.field == "name"
        assert engine.allowances.count() == 1
        assert len(engine.audit_trail.get_recent_entries()) == 1

    def test_duplicate_of_approved_record_is_conflict(self, engine, create_approved, make_payload):
        create_approved(EntityKind.TAX_RULE)
        with pytest.raises(DuplicateKeyError):
            engine.tax_rules.create(make_payload(EntityKind.TAX_RULE))

    def test_signing_bonus_duplicate_ignores_case(self, engine, make_payload):
        engine.signing_bonuses.create(make_payload(EntityKind.SIGNING_BONUS))
        with pytest.raises(DuplicateKeyError):
            engine.signing_bonuses.create(
                make_payload(EntityKind.SIGNING_BONUS, position_name="SENIOR developer")
            )

    def test_pay_type_stored_lowercase(self, engine, make_payload):
        record = engine.pay_types.create(make_payload(EntityKind.PAY_TYPE, type="Contract-Based")).record
        assert record.payload.type == "contract-based"
        assert engine.pay_types.get(record.id).payload.type == "contract-based"

    def test_policy_effective_date_must_be_future(self, engine, make_payload):
        with pytest.raises(ConfigValidationError) as exc_info:
            engine.payroll_policies.create(
                make_payload(EntityKind.PAYROLL_POLICY, effective_date="2024-12-31")
            )
        assert exc_info.value.rules == ("future_effective_date",)

    def test_name_longer_than_column_is_validation_error(self, engine, make_payload):
        with pytest.raises(ConfigValidationError) as exc_info:
            engine.pay_grades.create(make_payload(EntityKind.PAY_GRADE, grade="G" * 101))
        assert exc_info.value.rules == ("grade_max_length",)
        assert engine.pay_grades.count() == 0

    def test_create_logs_event(self, engine, make_payload, captured_logs):
        engine.allowances.create(make_payload(EntityKind.ALLOWANCE))
        created = [r for r in captured_logs() if r["message"] == "configuration_created"]
        assert len(created) == 1
        assert created[0]["entity_type"] == "Allowance"


class TestUpdate:

    def test_update_draft_merges_and_audits(self, engine, hr_user, make_payload, clock):
        created = engine.pay_grades.create(make_payload(EntityKind.PAY_GRADE), actor=hr_user).record
        clock.tick()

        result = engine.pay_grades.update(created.id, {"grossSalary": "9000"}, actor=hr_user)

        assert result.record.version == 2
        assert result.record.payload.gross_salary == Decimal("9000")
        assert result.record.payload.base_salary == Decimal("7000")
        assert result.record.updated_at > created.updated_at

        entry = result.audit_entry
        assert entry.action is AuditAction.UPDATE
        assert entry.before.payload.gross_salary == Decimal("8000")
        assert entry.after.payload.gross_salary == Decimal("9000")
        assert entry.before.version == 1
        assert entry.after.version == 2

        history = engine.history(EntityKind.PAY_GRADE, created.id)
        assert [e.action for e in history] == [AuditAction.UPDATE, AuditAction.CREATE]

    def test_update_invalid_value_leaves_record_unchanged(self, engine, make_payload):
        created = engine.pay_grades.create(make_payload(EntityKind.PAY_GRADE)).record
        with pytest.raises(ConfigValidationError) as exc_info:
            engine.pay_grades.update(created.id, {"gross_salary": "6500"})
        assert exc_info.value.rules == ("gross_not_below_base",)
        assert engine.pay_grades.get(created.id).version == 1

    def test_update_to_duplicate_key_conflicts(self, engine, make_payload):
        engine.allowances.create(make_payload(EntityKind.ALLOWANCE, name="Housing"))
        other = engine.allowances.create(make_payload(EntityKind.ALLOWANCE, name="Transport")).record
        with pytest.raises(DuplicateKeyError):
            engine.allowances.update(other.id, {"name": "Housing"})

    def test_update_keeping_own_key_is_allowed(self, engine, make_payload):
        created = engine.allowances.create(make_payload(EntityKind.ALLOWANCE)).record
        result = engine.allowances.update(created.id, {"name": "Housing", "amount": "1600"})
        assert result.record.payload.amount == Decimal("1600")

    def test_update_approved_is_state_conflict(self, engine, create_approved):
        approved = create_approved(EntityKind.PAY_GRADE)
        with pytest.raises(StateConflictError) as exc_info:
            engine.pay_grades.update(approved.id, {"gross_salary": "9000"})
        assert exc_info.value.current_status == "APPROVED"
        assert len(engine.history(EntityKind.PAY_GRADE, approved.id)) == 2

    def test_update_rejected_is_state_conflict(self, engine, make_payload):
        created = engine.allowances.create(make_payload(EntityKind.ALLOWANCE)).record
        engine.allowances.reject(created.id, reason="wrong amount")
        with pytest.raises(ConflictError):
            engine.allowances.update(created.id, {"amount": "1"})

    def test_policy_date_rule_only_when_date_changes(self, engine, make_payload, clock):
        created = engine.payroll_policies.create(make_payload(EntityKind.PAYROLL_POLICY)).record
        # Time passes beyond the effective date while the policy is still a draft.
        clock.set_time(datetime(2025, 4, 1, tzinfo=timezone.utc))

        result = engine.payroll_policies.update(created.id, {"description": "Reworded"})
        assert result.record.payload.description == "Reworded"

        with pytest.raises(ConfigValidationError):
            engine.payroll_policies.update(created.id, {"effective_date": "2025-03-15"})

    def test_update_unknown_id(self, engine):
        with pytest.raises(RecordNotFoundError):
            engine.pay_grades.update(uuid4(), {"grade": "X"})


class TestDelete:

    def test_delete_draft(self, engine, hr_user, make_payload):
        created = engine.tax_rules.create(make_payload(EntityKind.TAX_RULE), actor=hr_user).record
        result = engine.tax_rules.delete(created.id, actor=hr_user)

        assert result.record.id == created.id
        assert result.audit_entry.action is AuditAction.DELETE
        assert result.audit_entry.before.payload == created.payload
        assert result.audit_entry.after is None
        with pytest.raises(RecordNotFoundError):
            engine.tax_rules.get(created.id)
        # History survives the record.
        assert len(engine.history(EntityKind.TAX_RULE, created.id)) == 2

    def test_delete_rejected(self, engine, make_payload):
        created = engine.tax_rules.create(make_payload(EntityKind.TAX_RULE)).record
        engine.tax_rules.reject(created.id)
        assert engine.tax_rules.delete(created.id).is_success
        assert engine.tax_rules.count() == 0

    def test_delete_approved_without_privilege_fails(self, engine, create_approved):
        approved = create_approved(EntityKind.TAX_RULE)
        with pytest.raises(PrivilegeRequiredError) as exc_info:
            engine.tax_rules.delete(approved.id)
        assert isinstance(exc_info.value, ValidationError)
        assert engine.tax_rules.get(approved.id).status is ConfigStatus.APPROVED

    def test_delete_approved_with_privilege(self, engine, identity_directory, create_approved):
        approved = create_approved(EntityKind.TAX_RULE)
        admin = identity_directory.register(uuid4(), "Admin")
        token = identity_directory.grant_privilege(admin, "config:delete-approved")

        result = engine.tax_rules.delete(approved.id, privileged=token, reason="superseded")

        assert result.audit_entry.actor_id == admin.actor_id
        assert result.audit_entry.reason == "superseded"
        assert result.audit_entry.before.status is ConfigStatus.APPROVED
        assert engine.tax_rules.count() == 0

    def test_delete_frees_unique_key(self, engine, make_payload):
        created = engine.allowances.create(make_payload(EntityKind.ALLOWANCE)).record
        engine.allowances.delete(created.id)
        assert engine.allowances.create(make_payload(EntityKind.ALLOWANCE)).is_success

    def test_delete_unknown_id(self, engine):
        with pytest.raises(RecordNotFoundError):
            engine.allowances.delete(uuid4())


class TestSubmit:

    def test_submit_valid_draft(self, engine, make_payload):
        created = engine.termination_benefits.create(
            make_payload(EntityKind.TERMINATION_BENEFIT)
        ).record
        submitted = engine.termination_benefits.submit(created.id)
        assert submitted.status is ConfigStatus.DRAFT
        assert len(engine.history(EntityKind.TERMINATION_BENEFIT, created.id)) == 1

    def test_submit_stale_policy_fails(self, engine, make_payload, clock):
        created = engine.payroll_policies.create(make_payload(EntityKind.PAYROLL_POLICY)).record
        clock.set_time(datetime(2025, 3, 1, 9, tzinfo=timezone.utc))
        with pytest.raises(ConfigValidationError):
            engine.payroll_policies.submit(created.id)

    def test_submit_approved_is_conflict(self, engine, create_approved):
        approved = create_approved(EntityKind.ALLOWANCE)
        with pytest.raises(StateConflictError):
            engine.allowances.submit(approved.id)


class TestApproveReject:

    def test_approve_sets_approver(self, engine, approver, make_payload, clock):
        created = engine.insurance_brackets.create(make_payload(EntityKind.INSURANCE_BRACKET)).record
        approved_at = clock.tick()

        result = engine.insurance_brackets.approve(created.id, approver=approver, comment="ok")

        record = result.record
        assert record.status is ConfigStatus.APPROVED
        assert record.approved_by == approver.actor_id
        assert record.approved_at == approved_at
        assert record.version == 2
        assert result.audit_entry.action is AuditAction.APPROVE
        assert result.audit_entry.reason == "ok"
        assert result.audit_entry.before.status is ConfigStatus.DRAFT
        assert result.audit_entry.after.status is ConfigStatus.APPROVED

    def test_approve_twice_fails(self, engine, approver, create_approved):
        approved = create_approved(EntityKind.PAY_GRADE)
        with pytest.raises(AlreadyApprovedError) as exc_info:
            engine.pay_grades.approve(approved.id, approver=approver)
        assert isinstance(exc_info.value, ConflictError)
        assert len(engine.history(EntityKind.PAY_GRADE, approved.id)) == 2

    def test_reject_stores_reason(self, engine, approver, make_payload):
        created = engine.allowances.create(make_payload(EntityKind.ALLOWANCE)).record
        result = engine.allowances.reject(created.id, reason="amount too high", actor=approver)
        assert result.record.status is ConfigStatus.REJECTED
        assert result.record.rejection_reason == "amount too high"
        assert result.audit_entry.action is AuditAction.REJECT
        assert result.audit_entry.reason == "amount too high"

    def test_reject_twice_fails(self, engine, make_payload):
        created = engine.allowances.create(make_payload(EntityKind.ALLOWANCE)).record
        engine.allowances.reject(created.id)
        with pytest.raises(AlreadyRejectedError):
            engine.allowances.reject(created.id)

    def test_reject_approved(self, engine, create_approved):
        approved = create_approved(EntityKind.PAY_TYPE)
        result = engine.pay_types.reject(approved.id, reason="withdrawn")
        assert result.record.status is ConfigStatus.REJECTED
        assert result.record.approved_by is None
        assert result.record.approved_at is None
        assert result.audit_entry.before.approved_by is not None

    def test_rejected_can_be_approved(self, engine, approver, make_payload):
        created = engine.allowances.create(make_payload(EntityKind.ALLOWANCE)).record
        engine.allowances.reject(created.id, reason="check figures")
        result = engine.allowances.approve(created.id, approver=approver)
        assert result.record.status is ConfigStatus.APPROVED
        assert result.record.rejection_reason is None

    def test_approve_unknown_id(self, engine, approver):
        with pytest.raises(RecordNotFoundError):
            engine.allowances.approve(uuid4(), approver=approver)


class TestReads:

    def test_list_filters_by_status(self, engine, make_payload, create_approved, clock):
        create_approved(EntityKind.ALLOWANCE, name="Housing")
        clock.tick()
        engine.allowances.create(make_payload(EntityKind.ALLOWANCE, name="Transport"))

        assert [r.payload.name for r in engine.allowances.list()] == ["Transport", "Housing"]
        assert [r.payload.name for r in engine.allowances.list(ConfigStatus.DRAFT)] == ["Transport"]
        assert [r.payload.name for r in engine.allowances.list_approved()] == ["Housing"]

    def test_list_by_creator(self, engine, hr_user, make_payload):
        engine.allowances.create(make_payload(EntityKind.ALLOWANCE, name="A"), actor=hr_user)
        engine.allowances.create(make_payload(EntityKind.ALLOWANCE, name="B"))
        assert len(engine.allowances.list(created_by=hr_user.actor_id)) == 1

    def test_get_unknown(self, engine):
        with pytest.raises(RecordNotFoundError):
            engine.company_settings.get(uuid4())

    def test_list_search_and_amount_bounds(self, engine, make_payload, clock):
        for grade, base in [("Senior", "7000"), ("Junior", "6500"), ("Senior Lead", "9000")]:
            engine.pay_grades.create(
                make_payload(EntityKind.PAY_GRADE, grade=grade, base_salary=base, gross_salary=base)
            )
            clock.tick()

        assert [r.payload.grade for r in engine.pay_grades.list(search="senior")] == [
            "Senior Lead",
            "Senior",
        ]
        in_band = engine.pay_grades.list(min_amount="6500", max_amount=7000)
        assert [r.payload.grade for r in in_band] == ["Junior", "Senior"]
        assert engine.pay_grades.list(ConfigStatus.APPROVED, search="senior") == []

    def test_list_filter_unknown_to_kind(self, engine):
        with pytest.raises(ValueError):
            engine.company_settings.list(search="Cairo")


# Valid single-field edits, one per kind.
EDITS = {
    EntityKind.PAY_GRADE: {"gross_salary": "9000"},
    EntityKind.ALLOWANCE: {"amount": "1600"},
    EntityKind.TAX_RULE: {"rate": "20"},
    EntityKind.INSURANCE_BRACKET: {"employee_rate": "10"},
    EntityKind.PAYROLL_POLICY: {"description": "Reworded"},
    EntityKind.SIGNING_BONUS: {"amount": "12000"},
    EntityKind.PAY_TYPE: {"amount": "6500"},
    EntityKind.TERMINATION_BENEFIT: {"amount": "25000"},
    EntityKind.COMPANY_SETTINGS: {"time_zone": "Europe/London"},
}

# Company settings have no unique key; any number may exist.
KEYED_KINDS = [kind for kind in EntityKind if kind is not EntityKind.COMPANY_SETTINGS]


def kind_id(kind):
    return kind.value


class TestEveryKind:

    @pytest.mark.parametrize("kind", list(EntityKind), ids=kind_id)
    def test_create_stores_draft(self, engine, make_payload, kind):
        manager = engine.manager(kind)
        result = manager.create(make_payload(kind))

        assert result.is_success
        assert result.record.status is ConfigStatus.DRAFT
        assert result.record.payload == payload_type_for(kind).from_dict(make_payload(kind))
        assert manager.get(result.record.id) == result.record

    @pytest.mark.parametrize("kind", KEYED_KINDS, ids=kind_id)
    def test_duplicate_key_is_conflict(self, engine, make_payload, kind):
        manager = engine.manager(kind)
        manager.create(make_payload(kind))

        with pytest.raises(ConflictError):
            manager.create(make_payload(kind))

        assert manager.count() == 1
        assert len(engine.audit_trail.get_recent_entries()) == 1

    @pytest.mark.parametrize("kind", list(EntityKind), ids=kind_id)
    @pytest.mark.parametrize("terminal", [ConfigStatus.APPROVED, ConfigStatus.REJECTED])
    def test_update_outside_draft_is_conflict(self, engine, approver, make_payload, kind, terminal):
        manager = engine.manager(kind)
        created = manager.create(make_payload(kind)).record
        if terminal is ConfigStatus.APPROVED:
            manager.approve(created.id, approver=approver)
        else:
            manager.reject(created.id, reason="incomplete")

        with pytest.raises(ConflictError) as exc_info:
            manager.update(created.id, EDITS[kind])

        assert exc_info.value.current_status == terminal.value
        assert manager.get(created.id).payload == created.payload
        assert len(engine.history(kind, created.id)) == 2

    @pytest.mark.parametrize("kind", list(EntityKind), ids=kind_id)
    def test_delete_approved_needs_privilege(self, engine, create_approved, kind):
        approved = create_approved(kind)
        with pytest.raises(PrivilegeRequiredError):
            engine.manager(kind).delete(approved.id)
        assert engine.manager(kind).get(approved.id).status is ConfigStatus.APPROVED

    @pytest.mark.parametrize("kind", list(EntityKind), ids=kind_id)
    def test_draft_update_and_delete_audit_once_each(self, engine, make_payload, clock, kind):
        manager = engine.manager(kind)
        created = manager.create(make_payload(kind)).record
        clock.tick()

        updated = manager.update(created.id, EDITS[kind])
        assert updated.record.payload != created.payload
        assert updated.audit_entry.before.payload == created.payload
        assert updated.audit_entry.after.payload == updated.record.payload

        deleted = manager.delete(created.id)
        assert deleted.audit_entry.before.payload == updated.record.payload
        assert deleted.audit_entry.after is None

        actions = [e.action for e in engine.history(kind, created.id)]
        assert actions == [AuditAction.DELETE, AuditAction.UPDATE, AuditAction.CREATE]
