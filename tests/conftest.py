"""
Pytest fixtures for the payroll kernel test suite.

Provides:
- A fresh SQLite database file per test (under tmp_path)
- Session / session factory, deterministic clock, identity directory
- The ConfigurationEngine facade and the approval dashboard
- Valid payload builders for every configuration kind
- JSON log capture

Environment Variables:
- PAYROLL_TEST_DATABASE_URL: run against another database (e.g. PostgreSQL)
  instead of the per-test SQLite file.  Tables are dropped after each test.
"""

import json
import logging
import os
from datetime import datetime, timezone
from io import StringIO
from uuid import uuid4

import pytest

from payroll_kernel.db.engine import (
    create_tables,
    drop_tables,
    get_session_factory,
    init_engine_from_url,
    reset_engine,
)
from payroll_kernel.db.immutability import register_immutability_listeners
from payroll_kernel.domain.clock import DeterministicClock
from payroll_kernel.domain.entities import EntityKind
from payroll_kernel.domain.identity import InMemoryIdentityDirectory
from payroll_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)
from payroll_kernel.selectors.approval_dashboard import ApprovalDashboard
from payroll_kernel.services.engine import ConfigurationEngine

# Payroll-policy effective dates in the fixtures lie after this date.
TEST_NOW = datetime(2025, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


VALID_PAYLOADS = {
    EntityKind.PAY_GRADE: {
        "grade": "Senior",
        "base_salary": "7000",
        "gross_salary": "8000",
    },
    EntityKind.ALLOWANCE: {
        "name": "Housing",
        "amount": "1500",
    },
    EntityKind.TAX_RULE: {
        "name": "Income Tax",
        "rate": "22.5",
        "description": "Progressive income tax",
    },
    EntityKind.INSURANCE_BRACKET: {
        "name": "Social Insurance",
        "min_salary": "6000",
        "max_salary": "15000",
        "employee_rate": "11",
        "employer_rate": "18.75",
    },
    EntityKind.PAYROLL_POLICY: {
        "policy_name": "Overtime",
        "policy_type": "ALLOWANCE",
        "description": "Overtime paid at a fixed uplift",
        "effective_date": "2025-03-01",
        "rule_definition": {
            "percentage": "25",
            "fixed_amount": "0",
            "threshold_amount": "1",
        },
        "applicability": "ALL",
    },
    EntityKind.SIGNING_BONUS: {
        "position_name": "Senior Developer",
        "amount": "10000",
    },
    EntityKind.PAY_TYPE: {
        "type": "monthly",
        "amount": "6000",
    },
    EntityKind.TERMINATION_BENEFIT: {
        "name": "End of Service",
        "amount": "20000",
        "terms": "One month per year of service",
    },
    EntityKind.COMPANY_SETTINGS: {
        "pay_date": "2025-01-28",
        "time_zone": "Africa/Cairo",
        "currency": "EGP",
    },
}


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture payroll_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, engine):
            engine.allowances.create({...})
            assert any(r["message"] == "configuration_created" for r in captured_logs())
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("payroll_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def database_url(tmp_path):
    return os.environ.get(
        "PAYROLL_TEST_DATABASE_URL", f"sqlite:///{tmp_path / 'payroll.db'}"
    )


@pytest.fixture
def db_engine(database_url):
    engine = init_engine_from_url(database_url, statement_timeout_seconds=10)
    create_tables()
    register_immutability_listeners()
    yield engine
    if "PAYROLL_TEST_DATABASE_URL" in os.environ:
        drop_tables()
    reset_engine()


@pytest.fixture
def session_factory(db_engine):
    return get_session_factory()


@pytest.fixture
def session(session_factory):
    s = session_factory()
    yield s
    s.rollback()
    s.close()


@pytest.fixture
def other_session(session_factory):
    """A second, independent session for race and staleness tests."""
    s = session_factory()
    yield s
    s.rollback()
    s.close()


# =============================================================================
# Domain fixtures
# =============================================================================


@pytest.fixture
def clock():
    return DeterministicClock(TEST_NOW)


@pytest.fixture
def identity_directory():
    return InMemoryIdentityDirectory()


@pytest.fixture
def hr_user(identity_directory):
    return identity_directory.register(uuid4(), "HR Specialist")


@pytest.fixture
def approver(identity_directory):
    return identity_directory.register(uuid4(), "Payroll Manager")


@pytest.fixture
def engine(session, identity_directory, clock):
    return ConfigurationEngine(session, identity_directory, clock)


@pytest.fixture
def other_engine(other_session, identity_directory, clock):
    return ConfigurationEngine(other_session, identity_directory, clock)


@pytest.fixture
def dashboard(session_factory):
    return ApprovalDashboard(session_factory, max_workers=4)


@pytest.fixture
def make_payload():
    """
    Build a valid payload dict for a kind, with overrides.

    Usage::

        make_payload(EntityKind.PAY_GRADE, grade="Junior")
    """

    def _make(kind: EntityKind, **overrides) -> dict:
        data = json.loads(json.dumps(VALID_PAYLOADS[kind]))
        data.update(overrides)
        return data

    return _make


@pytest.fixture
def create_approved(engine, hr_user, approver, make_payload, clock):
    """Create a record of ``kind`` and approve it; returns the approved record."""

    def _create(kind: EntityKind, **overrides):
        manager = engine.manager(kind)
        created = manager.create(make_payload(kind, **overrides), actor=hr_user)
        clock.tick()
        return manager.approve(created.record.id, approver=approver).record

    return _create
