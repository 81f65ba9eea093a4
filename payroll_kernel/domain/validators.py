"""
Per-kind business-rule validators (``payroll_kernel.domain.validators``).

Responsibility
--------------
One validator per configuration kind behind a single interface::

    validate(payload, existing_records, *, changed_fields=None,
             exclude_id=None, today=None) -> ValidationResult

Each validator is a tuple of declarative ``Rule`` objects composed from
``domain.predicates``.  A rule names the payload fields it reads; on update
only the rules reading a changed field are evaluated.

Architecture position
---------------------
**Kernel domain layer** -- pure.  ``existing_records`` is handed in by the
caller; validators never touch storage.

Invariants enforced
-------------------
* Every failure is a ``RuleViolation`` naming rule, field and offending
  value; there is no bare boolean result.
* Uniqueness is checked across ALL statuses (a DRAFT may not duplicate an
  APPROVED key) and excludes the record being updated.
* Insurance brackets sharing a name may not have intersecting salary
  ranges; the boundaries are inclusive, so [0, 6000] and [6000, 15000]
  overlap.  An identical (name, min, max) bracket is a duplicate key
  instead.
* The payroll-policy effective date must lie strictly after ``today``.

Failure modes
-------------
``ValidationResult.raise_for_violations`` raises ``ConfigValidationError``
for field and cross-record rules and ``DuplicateKeyError`` when the only
failures are duplicate keys.
"""

from __future__ import annotations

from abc import ABC
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Callable, ClassVar, Iterable, Sequence
from uuid import UUID

from payroll_kernel.domain.entities import (
    PAY_TYPE_VALUES,
    ConfigurationPayload,
    ConfigurationRecord,
    EntityKind,
    RuleViolation,
)
from payroll_kernel.domain.predicates import (
    at_least,
    is_blank,
    is_percentage,
    matches_timezone,
    ranges_overlap,
    within_length,
)
from payroll_kernel.exceptions import ConfigValidationError, DuplicateKeyError

SALARY_FLOOR = Decimal("6000")
REQUIRED_CURRENCY = "EGP"

# Column widths of the stored text fields.
NAME_MAX_LENGTH = 200
GRADE_MAX_LENGTH = 100
TIME_ZONE_MAX_LENGTH = 64

FIELD = "field"
CROSS_RECORD = "cross_record"
UNIQUENESS = "uniqueness"


@dataclass(frozen=True)
class ValidationContext:
    """Inputs a rule may consult besides the payload."""

    existing: tuple[ConfigurationRecord, ...]
    today: date


@dataclass(frozen=True)
class ValidationResult:
    kind: EntityKind
    violations: tuple[RuleViolation, ...] = ()

    @property
    def is_valid(self) -> bool:
        return not self.violations

    @property
    def duplicate_violations(self) -> tuple[RuleViolation, ...]:
        return tuple(v for v in self.violations if v.kind == UNIQUENESS)

    def raise_for_violations(self) -> None:
        """Raise the typed error for this result; no-op when valid."""
        if self.is_valid:
            return
        rule_violations = tuple(v for v in self.violations if v.kind != UNIQUENESS)
        if rule_violations:
            raise ConfigValidationError(self.kind.value, rule_violations)
        first = self.duplicate_violations[0]
        raise DuplicateKeyError(self.kind.value, first.field, first.value)


@dataclass(frozen=True)
class Rule:
    """
    A named check over one payload.

    ``check`` returns the offending value wrapped in a violation, or None.
    """

    name: str
    field: str
    reads: frozenset[str]
    check: Callable[[ConfigurationPayload, ValidationContext], RuleViolation | None]
    scope: str = FIELD


def field_rule(
    name: str,
    field_name: str,
    predicate: Callable[[object], bool],
    message: str,
) -> Rule:
    """Rule over a single field: violation when ``predicate(value)`` is false."""

    def check(payload, ctx):
        value = _get(payload, field_name)
        if predicate(value):
            return None
        return RuleViolation(name, field_name, value, message, FIELD)

    return Rule(name, field_name, frozenset({field_name.split(".")[0]}), check)


def unique_rule(field_name: str, label: str) -> Rule:
    """Payload's ``unique_key()`` must not match any other record's."""

    def check(payload, ctx):
        key = payload.unique_key()
        if key is None:
            return None
        for record in ctx.existing:
            if record.payload.unique_key() == key:
                value = _get(payload, field_name)
                return RuleViolation(
                    f"unique_{field_name}",
                    field_name,
                    value,
                    f"{label} {value!r} already exists",
                    UNIQUENESS,
                )
        return None

    return Rule(f"unique_{field_name}", field_name, frozenset({field_name}), check, UNIQUENESS)


def _get(payload: ConfigurationPayload, dotted: str):
    value = payload
    for part in dotted.split("."):
        value = getattr(value, part)
    return value


# =========================================================================
# Validators
# =========================================================================


class EntityValidator(ABC):
    """Evaluates a kind's rule set against a payload."""

    kind: ClassVar[EntityKind]
    rules: ClassVar[tuple[Rule, ...]] = ()

    def validate(
        self,
        payload: ConfigurationPayload,
        existing_records: Iterable[ConfigurationRecord],
        *,
        changed_fields: Iterable[str] | None = None,
        exclude_id: UUID | None = None,
        today: date | None = None,
    ) -> ValidationResult:
        """
        Run the rule set.

        Args:
            payload: Candidate payload (already normalised).
            existing_records: Records of the same kind, any status.
            changed_fields: On update, the payload fields that changed; only
                rules reading one of them run.  None runs every rule.
            exclude_id: Record under update, left out of cross-record rules.
            today: Reference date for date rules; defaults to date.today().
        """
        ctx = ValidationContext(
            existing=tuple(r for r in existing_records if r.id != exclude_id),
            today=today or date.today(),
        )
        changed = None if changed_fields is None else frozenset(changed_fields)

        violations = []
        for rule in self.selected_rules(changed):
            violation = rule.check(payload, ctx)
            if violation is not None:
                violations.append(violation)
        return ValidationResult(self.kind, tuple(violations))

    def selected_rules(self, changed: frozenset[str] | None) -> Sequence[Rule]:
        if changed is None:
            return self.rules
        return tuple(rule for rule in self.rules if rule.reads & changed)


def _not_blank(value) -> bool:
    return not is_blank(value)


def _max_length(field_name: str, limit: int) -> Rule:
    return field_rule(
        f"{field_name}_max_length",
        field_name,
        lambda value: within_length(value, limit),
        f"{field_name} must be at most {limit} characters",
    )


def _at_least(floor) -> Callable[[object], bool]:
    return lambda value: at_least(value, floor)


def _gross_not_below_base(payload, ctx):
    if payload.gross_salary >= payload.base_salary:
        return None
    return RuleViolation(
        "gross_not_below_base",
        "gross_salary",
        payload.gross_salary,
        f"gross_salary {payload.gross_salary} is below base_salary {payload.base_salary}",
        CROSS_RECORD,
    )


class PayGradeValidator(EntityValidator):
    kind = EntityKind.PAY_GRADE
    rules = (
        field_rule("grade_required", "grade", _not_blank, "grade must not be blank"),
        _max_length("grade", GRADE_MAX_LENGTH),
        field_rule("min_base_salary", "base_salary", _at_least(SALARY_FLOOR),
                   f"base_salary must be at least {SALARY_FLOOR}"),
        field_rule("min_gross_salary", "gross_salary", _at_least(SALARY_FLOOR),
                   f"gross_salary must be at least {SALARY_FLOOR}"),
        Rule("gross_not_below_base", "gross_salary",
             frozenset({"base_salary", "gross_salary"}), _gross_not_below_base,
             CROSS_RECORD),
        unique_rule("grade", "Pay grade"),
    )


class AllowanceValidator(EntityValidator):
    kind = EntityKind.ALLOWANCE
    rules = (
        field_rule("name_required", "name", _not_blank, "name must not be blank"),
        _max_length("name", NAME_MAX_LENGTH),
        field_rule("non_negative_amount", "amount", _at_least(0), "amount must be at least 0"),
        unique_rule("name", "Allowance"),
    )


class TaxRuleValidator(EntityValidator):
    kind = EntityKind.TAX_RULE
    rules = (
        field_rule("name_required", "name", _not_blank, "name must not be blank"),
        _max_length("name", NAME_MAX_LENGTH),
        field_rule("rate_percentage", "rate", is_percentage, "rate must be between 0 and 100"),
        unique_rule("name", "Tax rule"),
    )


def _rate_sum(payload, ctx):
    total = payload.employee_rate + payload.employer_rate
    if total <= 100:
        return None
    return RuleViolation(
        "rate_sum",
        "employer_rate",
        total,
        f"employee_rate + employer_rate = {total} exceeds 100",
        CROSS_RECORD,
    )


def _min_not_above_max(payload, ctx):
    if payload.min_salary <= payload.max_salary:
        return None
    return RuleViolation(
        "min_not_above_max",
        "min_salary",
        payload.min_salary,
        f"min_salary {payload.min_salary} exceeds max_salary {payload.max_salary}",
    )


def _bracket_label(payload) -> str:
    return f"{payload.name} [{payload.min_salary}, {payload.max_salary}]"


def _same_bracket(a, b) -> bool:
    return (a.name, a.min_salary, a.max_salary) == (b.name, b.min_salary, b.max_salary)


def _unique_bracket(payload, ctx):
    for record in ctx.existing:
        if _same_bracket(payload, record.payload):
            label = _bracket_label(payload)
            return RuleViolation(
                "unique_bracket", "name", label,
                f"Insurance bracket {label!r} already exists", UNIQUENESS,
            )
    return None


def _no_overlapping_range(payload, ctx):
    for record in ctx.existing:
        other = record.payload
        # An identical bracket is a duplicate key, reported by _unique_bracket.
        if other.name != payload.name or _same_bracket(payload, other):
            continue
        if ranges_overlap(payload.min_salary, payload.max_salary,
                          other.min_salary, other.max_salary):
            return RuleViolation(
                "no_overlapping_range",
                "min_salary",
                f"[{payload.min_salary}, {payload.max_salary}]",
                f"salary range [{payload.min_salary}, {payload.max_salary}] overlaps "
                f"existing {payload.name!r} range [{other.min_salary}, {other.max_salary}]",
                CROSS_RECORD,
            )
    return None


class InsuranceBracketValidator(EntityValidator):
    kind = EntityKind.INSURANCE_BRACKET
    rules = (
        field_rule("name_required", "name", _not_blank, "name must not be blank"),
        _max_length("name", NAME_MAX_LENGTH),
        field_rule("non_negative_min_salary", "min_salary", _at_least(0),
                   "min_salary must be at least 0"),
        field_rule("non_negative_max_salary", "max_salary", _at_least(0),
                   "max_salary must be at least 0"),
        Rule("min_not_above_max", "min_salary",
             frozenset({"min_salary", "max_salary"}), _min_not_above_max),
        field_rule("employee_rate_percentage", "employee_rate", is_percentage,
                   "employee_rate must be between 0 and 100"),
        field_rule("employer_rate_percentage", "employer_rate", is_percentage,
                   "employer_rate must be between 0 and 100"),
        Rule("rate_sum", "employer_rate",
             frozenset({"employee_rate", "employer_rate"}), _rate_sum, CROSS_RECORD),
        Rule("no_overlapping_range", "min_salary",
             frozenset({"name", "min_salary", "max_salary"}), _no_overlapping_range,
             CROSS_RECORD),
        Rule("unique_bracket", "name",
             frozenset({"name", "min_salary", "max_salary"}), _unique_bracket, UNIQUENESS),
    )


def _effective_date_in_future(payload, ctx):
    if payload.effective_date > ctx.today:
        return None
    return RuleViolation(
        "future_effective_date",
        "effective_date",
        payload.effective_date,
        f"effective_date must be after {ctx.today.isoformat()}",
    )


class PayrollPolicyValidator(EntityValidator):
    kind = EntityKind.PAYROLL_POLICY
    rules = (
        field_rule("policy_name_required", "policy_name", _not_blank,
                   "policy_name must not be blank"),
        _max_length("policy_name", NAME_MAX_LENGTH),
        Rule("future_effective_date", "effective_date",
             frozenset({"effective_date"}), _effective_date_in_future),
        field_rule("percentage_range", "rule_definition.percentage", is_percentage,
                   "rule_definition.percentage must be between 0 and 100"),
        field_rule("non_negative_fixed_amount", "rule_definition.fixed_amount",
                   _at_least(0), "rule_definition.fixed_amount must be at least 0"),
        field_rule("min_threshold_amount", "rule_definition.threshold_amount",
                   _at_least(1), "rule_definition.threshold_amount must be at least 1"),
        unique_rule("policy_name", "Payroll policy"),
    )


class SigningBonusValidator(EntityValidator):
    kind = EntityKind.SIGNING_BONUS
    rules = (
        field_rule("position_name_required", "position_name", _not_blank,
                   "position_name must not be blank"),
        _max_length("position_name", NAME_MAX_LENGTH),
        field_rule("non_negative_amount", "amount", _at_least(0), "amount must be at least 0"),
        unique_rule("position_name", "Signing bonus for position"),
    )


class PayTypeValidator(EntityValidator):
    kind = EntityKind.PAY_TYPE
    rules = (
        field_rule("allowed_type", "type", lambda v: v in PAY_TYPE_VALUES,
                   f"type must be one of: {', '.join(PAY_TYPE_VALUES)}"),
        field_rule("min_amount", "amount", _at_least(SALARY_FLOOR),
                   f"amount must be at least {SALARY_FLOOR}"),
        unique_rule("type", "Pay type"),
    )


class TerminationBenefitValidator(EntityValidator):
    kind = EntityKind.TERMINATION_BENEFIT
    rules = (
        field_rule("name_required", "name", _not_blank, "name must not be blank"),
        _max_length("name", NAME_MAX_LENGTH),
        field_rule("non_negative_amount", "amount", _at_least(0), "amount must be at least 0"),
        unique_rule("name", "Termination benefit"),
    )


class CompanySettingsValidator(EntityValidator):
    kind = EntityKind.COMPANY_SETTINGS
    rules = (
        field_rule("required_currency", "currency", lambda v: v == REQUIRED_CURRENCY,
                   f"currency must be {REQUIRED_CURRENCY}"),
        field_rule("timezone_format", "time_zone", matches_timezone,
                   "time_zone must match Area/Location"),
        _max_length("time_zone", TIME_ZONE_MAX_LENGTH),
        field_rule("valid_pay_date", "pay_date", lambda v: isinstance(v, date),
                   "pay_date must be a valid date"),
    )


VALIDATORS: dict[EntityKind, EntityValidator] = {
    v.kind: v
    for v in (
        PayGradeValidator(),
        AllowanceValidator(),
        TaxRuleValidator(),
        InsuranceBracketValidator(),
        PayrollPolicyValidator(),
        SigningBonusValidator(),
        PayTypeValidator(),
        TerminationBenefitValidator(),
        CompanySettingsValidator(),
    )
}


def validator_for(kind: EntityKind | str) -> EntityValidator:
    return VALIDATORS[EntityKind.parse(kind)]
