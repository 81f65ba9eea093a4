"""Tests for SigningBonusEligibilityBridge."""

from uuid import uuid4

import pytest

from payroll_kernel.domain.entities import EntityKind
from payroll_kernel.selectors.signing_bonus_bridge import (
    EmployeeOnboardedEvent,
    SigningBonusEligibilityBridge,
    WorkType,
)


@pytest.fixture
def bridge(session):
    return SigningBonusEligibilityBridge(session)


@pytest.fixture
def approved_bonus(create_approved):
    return create_approved(EntityKind.SIGNING_BONUS)


def onboarded(position="Senior Developer", work_type="FULL_TIME"):
    return EmployeeOnboardedEvent(
        employee_id=uuid4(), position_name=position, work_type=work_type
    )


class TestWorkType:

    @pytest.mark.parametrize(
        "raw", ["FULL_TIME", "full-time", "Full Time", "  full_time ", WorkType.FULL_TIME]
    )
    def test_full_time_spellings(self, raw):
        assert WorkType.parse(raw) is WorkType.FULL_TIME

    @pytest.mark.parametrize("raw", [None, "", "seasonal", "fulltime"])
    def test_unknown(self, raw):
        assert WorkType.parse(raw) is None


class TestEligibility:

    def test_full_time_with_approved_bonus(self, bridge, approved_bonus):
        assert bridge.is_eligible("Senior Developer", WorkType.FULL_TIME)

    def test_position_match_ignores_case_and_spacing(self, bridge, approved_bonus):
        assert bridge.is_eligible("senior   developer", "full-time")
        assert bridge.find_approved_bonus("SENIOR DEVELOPER").id == approved_bonus.id

    @pytest.mark.parametrize("work_type", ["PART_TIME", "CONTRACT", "INTERN", "unknown"])
    def test_other_work_types_not_eligible(self, bridge, approved_bonus, work_type):
        assert not bridge.is_eligible("Senior Developer", work_type)

    def test_draft_bonus_not_eligible(self, bridge, engine, make_payload):
        engine.signing_bonuses.create(make_payload(EntityKind.SIGNING_BONUS))
        assert not bridge.is_eligible("Senior Developer", WorkType.FULL_TIME)

    def test_rejected_bonus_not_eligible(self, bridge, engine, approved_bonus):
        engine.signing_bonuses.reject(approved_bonus.id, reason="budget freeze")
        assert not bridge.is_eligible("Senior Developer", WorkType.FULL_TIME)

    def test_unknown_or_blank_position(self, bridge, approved_bonus):
        assert not bridge.is_eligible("Designer", WorkType.FULL_TIME)
        assert bridge.find_approved_bonus("   ") is None


class TestOnboardingHook:

    def test_returns_bonus(self, bridge, approved_bonus, captured_logs):
        bonus = bridge.handle_employee_onboarded(onboarded())
        assert bonus.id == approved_bonus.id
        [record] = [r for r in captured_logs() if r["message"] == "signing_bonus_eligible"]
        assert record["amount"] == str(bonus.payload.amount)

    def test_part_time_gets_nothing(self, bridge, approved_bonus, captured_logs):
        assert bridge.handle_employee_onboarded(onboarded(work_type="part-time")) is None
        assert any(r["message"] == "signing_bonus_not_eligible" for r in captured_logs())

    def test_lookup_failure_never_raises(self, bridge, monkeypatch, captured_logs):
        def _boom(self, position_name):
            raise RuntimeError("connection reset")

        monkeypatch.setattr(SigningBonusEligibilityBridge, "find_approved_bonus", _boom)

        assert bridge.handle_employee_onboarded(onboarded()) is None
        [record] = [r for r in captured_logs() if r["message"] == "signing_bonus_lookup_failed"]
        assert record["level"] == "ERROR"
        assert record["exc_type"] == "RuntimeError"
