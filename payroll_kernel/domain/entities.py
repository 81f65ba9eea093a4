"""
Configuration entity types (``payroll_kernel.domain.entities``).

Responsibility
--------------
Pure value objects for the nine payroll configuration kinds: one frozen
payload dataclass per kind, the shared ``ConfigurationRecord`` envelope,
and the ``EntityKind`` tag that keys every registry in the kernel.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  May import
only from ``domain/`` and ``exceptions``.

Invariants enforced
-------------------
* Money and rates are ``Decimal``; ``float`` input is converted through
  ``str`` so 0.1 stays 0.1.
* ``from_dict`` never raises ``ValueError``/``TypeError``; malformed input
  is reported as a ``ConfigValidationError`` naming every bad field.
* ``normalized()`` applies write-time normalisation (pay type lower-cased,
  termination benefit name trimmed) before validation and storage.
* ``unique_key()`` is the value the storage layer's UNIQUE constraint is
  built on, so validator and database agree on case sensitivity.
"""

from __future__ import annotations

from dataclasses import MISSING, dataclass, fields, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, ClassVar, Mapping, get_args, get_type_hints
from uuid import UUID

from payroll_kernel.domain.lifecycle import ConfigStatus
from payroll_kernel.domain.predicates import normalize_key, parse_date_value, to_decimal
from payroll_kernel.exceptions import ConfigValidationError, UnknownEntityKindError


class EntityKind(str, Enum):
    """Configuration kinds. The value is the audit ``entity_type`` tag."""

    PAY_GRADE = "PayGrade"
    ALLOWANCE = "Allowance"
    TAX_RULE = "TaxRule"
    INSURANCE_BRACKET = "InsuranceBracket"
    PAYROLL_POLICY = "PayrollPolicy"
    SIGNING_BONUS = "SigningBonus"
    PAY_TYPE = "PayType"
    TERMINATION_BENEFIT = "TerminationBenefit"
    COMPANY_SETTINGS = "CompanySettings"

    @classmethod
    def parse(cls, value: EntityKind | str) -> EntityKind:
        """Resolve an enum member from its tag or member name."""
        if isinstance(value, EntityKind):
            return value
        for kind in cls:
            if value in (kind.value, kind.name):
                return kind
        raise UnknownEntityKindError(str(value))


class PolicyType(str, Enum):
    DEDUCTION = "DEDUCTION"
    ALLOWANCE = "ALLOWANCE"
    BONUS = "BONUS"
    PENALTY = "PENALTY"
    LEAVE = "LEAVE"


class PolicyApplicability(str, Enum):
    ALL = "ALL"
    DEPARTMENT = "DEPARTMENT"
    POSITION = "POSITION"
    INDIVIDUAL = "INDIVIDUAL"


PAY_TYPE_VALUES: tuple[str, ...] = (
    "hourly",
    "daily",
    "weekly",
    "monthly",
    "contract-based",
)


# =========================================================================
# Payload coercion
# =========================================================================


def _camel(name: str) -> str:
    head, *rest = name.split("_")
    return head + "".join(part.title() for part in rest)


def _snake(name: str) -> str:
    return "".join(f"_{c.lower()}" if c.isupper() else c for c in name)


@dataclass(frozen=True)
class RuleViolation:
    """
    One failed rule.

    ``kind`` is ``"field"`` for single-field rules, ``"cross_record"`` for
    rules that read other records, and ``"uniqueness"`` for duplicate keys.
    """

    rule: str
    field: str
    value: Any
    message: str
    kind: str = "field"

    def to_dict(self) -> dict[str, Any]:
        return {
            "rule": self.rule,
            "field": self.field,
            "value": _json_value(self.value),
            "message": self.message,
            "kind": self.kind,
        }


def _json_value(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, NestedPayload):
        return value.to_dict()
    return value


class NestedPayload:
    """Mixin for payload-shaped values: dict coercion driven by type hints."""

    @classmethod
    def _coerce_fields(
        cls,
        data: Mapping[str, Any],
        prefix: str = "",
    ) -> tuple[dict[str, Any], list[RuleViolation]]:
        hints = get_type_hints(cls)
        names = {f.name for f in fields(cls)}
        aliases = {_camel(n): n for n in names}
        values: dict[str, Any] = {}
        violations: list[RuleViolation] = []

        for key in data:
            if key not in names and key not in aliases:
                violations.append(RuleViolation(
                    "unknown_field", f"{prefix}{key}", data[key],
                    f"{prefix}{key} is not a field of {cls.__name__}",
                ))

        for f in fields(cls):
            path = f"{prefix}{f.name}"
            if f.name in data:
                raw = data[f.name]
            elif _camel(f.name) in data:
                raw = data[_camel(f.name)]
            else:
                if f.default is not MISSING or f.default_factory is not MISSING:
                    continue
                violations.append(RuleViolation(
                    "required", path, None, f"{path} is required",
                ))
                continue

            coerced, problems = _coerce(hints[f.name], raw, path)
            violations.extend(problems)
            if not problems:
                values[f.name] = coerced

        return values, violations

    def to_dict(self) -> dict[str, Any]:
        return {f.name: _json_value(getattr(self, f.name)) for f in fields(self)}


def _coerce(hint: Any, raw: Any, path: str) -> tuple[Any, list[RuleViolation]]:
    args = get_args(hint)
    optional = type(None) in args
    if optional:
        if raw is None:
            return None, []
        hint = next(a for a in args if a is not type(None))

    if raw is None:
        return None, [RuleViolation("required", path, None, f"{path} is required")]

    if hint is Decimal:
        value = to_decimal(raw)
        if value is None:
            return None, [RuleViolation("numeric", path, raw, f"{path} must be a number")]
        return value, []

    if hint is date:
        value = parse_date_value(raw)
        if value is None:
            return None, [RuleViolation("valid_date", path, raw, f"{path} must be a valid date")]
        return value, []

    if isinstance(hint, type) and issubclass(hint, Enum):
        if isinstance(raw, hint):
            return raw, []
        if isinstance(raw, str):
            for member in hint:
                if raw.strip().upper() == member.value.upper():
                    return member, []
        allowed = ", ".join(m.value for m in hint)
        return None, [RuleViolation(
            "allowed_value", path, raw, f"{path} must be one of: {allowed}",
        )]

    if isinstance(hint, type) and issubclass(hint, NestedPayload):
        if isinstance(raw, hint):
            return raw, []
        if not isinstance(raw, Mapping):
            return None, [RuleViolation("object", path, raw, f"{path} must be an object")]
        values, problems = hint._coerce_fields(raw, prefix=f"{path}.")
        if problems:
            return None, problems
        return hint(**values), []

    if hint is str:
        if not isinstance(raw, str):
            return None, [RuleViolation("string", path, raw, f"{path} must be a string")]
        return raw, []

    return raw, []


# =========================================================================
# Payloads
# =========================================================================


class ConfigurationPayload(NestedPayload):
    """
    Base for the nine payload dataclasses.

    Subclasses set ``KIND`` and ``UNIQUE_FIELD`` (the field named in
    duplicate-key errors, or None when the kind has no unique key).
    """

    KIND: ClassVar[EntityKind]
    UNIQUE_FIELD: ClassVar[str | None] = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]):
        """Build a payload from a plain mapping (snake_case or camelCase keys)."""
        values, violations = cls._coerce_fields(data)
        if violations:
            raise ConfigValidationError(cls.KIND.value, tuple(violations))
        return cls(**values).normalized()

    def merged(self, partial: Mapping[str, Any]):
        """Return a new payload with ``partial`` applied on top of this one."""
        base = self.to_dict()
        aliases = {_camel(f.name): f.name for f in fields(self)}
        for key, value in partial.items():
            name = aliases.get(key, key)
            if isinstance(base.get(name), dict) and isinstance(value, Mapping):
                base[name] = {**base[name], **{_snake(k): v for k, v in value.items()}}
            else:
                base[name] = value
        return type(self).from_dict(base)

    def changed_fields(self, other: ConfigurationPayload) -> frozenset[str]:
        return frozenset(
            f.name for f in fields(self)
            if getattr(self, f.name) != getattr(other, f.name)
        )

    def normalized(self):
        return self

    def unique_key(self) -> str | None:
        """Value stored in the kind's UNIQUE key column."""
        if self.UNIQUE_FIELD is None:
            return None
        return getattr(self, self.UNIQUE_FIELD)


@dataclass(frozen=True)
class PayGrade(ConfigurationPayload):
    KIND: ClassVar[EntityKind] = EntityKind.PAY_GRADE
    UNIQUE_FIELD: ClassVar[str | None] = "grade"

    grade: str
    base_salary: Decimal
    gross_salary: Decimal


@dataclass(frozen=True)
class Allowance(ConfigurationPayload):
    KIND: ClassVar[EntityKind] = EntityKind.ALLOWANCE
    UNIQUE_FIELD: ClassVar[str | None] = "name"

    name: str
    amount: Decimal


@dataclass(frozen=True)
class TaxRule(ConfigurationPayload):
    KIND: ClassVar[EntityKind] = EntityKind.TAX_RULE
    UNIQUE_FIELD: ClassVar[str | None] = "name"

    name: str
    rate: Decimal
    description: str | None = None


@dataclass(frozen=True)
class InsuranceBracket(ConfigurationPayload):
    """Brackets sharing a name are told apart by their salary range."""

    KIND: ClassVar[EntityKind] = EntityKind.INSURANCE_BRACKET
    UNIQUE_FIELD: ClassVar[str | None] = "name"

    name: str
    min_salary: Decimal
    max_salary: Decimal
    employee_rate: Decimal
    employer_rate: Decimal

    def unique_key(self) -> str | None:
        return None


@dataclass(frozen=True)
class RuleDefinition(NestedPayload):
    percentage: Decimal
    fixed_amount: Decimal
    threshold_amount: Decimal


@dataclass(frozen=True)
class PayrollPolicy(ConfigurationPayload):
    KIND: ClassVar[EntityKind] = EntityKind.PAYROLL_POLICY
    UNIQUE_FIELD: ClassVar[str | None] = "policy_name"

    policy_name: str
    policy_type: PolicyType
    description: str
    effective_date: date
    rule_definition: RuleDefinition
    applicability: PolicyApplicability


@dataclass(frozen=True)
class SigningBonus(ConfigurationPayload):
    KIND: ClassVar[EntityKind] = EntityKind.SIGNING_BONUS
    UNIQUE_FIELD: ClassVar[str | None] = "position_name"

    position_name: str
    amount: Decimal

    def unique_key(self) -> str | None:
        return normalize_key(self.position_name)


@dataclass(frozen=True)
class PayType(ConfigurationPayload):
    KIND: ClassVar[EntityKind] = EntityKind.PAY_TYPE
    UNIQUE_FIELD: ClassVar[str | None] = "type"

    type: str
    amount: Decimal

    def normalized(self):
        return replace(self, type=self.type.strip().lower())


@dataclass(frozen=True)
class TerminationBenefit(ConfigurationPayload):
    KIND: ClassVar[EntityKind] = EntityKind.TERMINATION_BENEFIT
    UNIQUE_FIELD: ClassVar[str | None] = "name"

    name: str
    amount: Decimal
    terms: str | None = None

    def normalized(self):
        return replace(self, name=self.name.strip())

    def unique_key(self) -> str | None:
        return normalize_key(self.name)


@dataclass(frozen=True)
class CompanySettings(ConfigurationPayload):
    KIND: ClassVar[EntityKind] = EntityKind.COMPANY_SETTINGS

    pay_date: date
    time_zone: str
    currency: str


PAYLOAD_TYPES: dict[EntityKind, type[ConfigurationPayload]] = {
    cls.KIND: cls
    for cls in (
        PayGrade,
        Allowance,
        TaxRule,
        InsuranceBracket,
        PayrollPolicy,
        SigningBonus,
        PayType,
        TerminationBenefit,
        CompanySettings,
    )
}


def payload_type_for(kind: EntityKind | str) -> type[ConfigurationPayload]:
    return PAYLOAD_TYPES[EntityKind.parse(kind)]


# =========================================================================
# Record envelope
# =========================================================================


@dataclass(frozen=True)
class ConfigurationRecord:
    """
    A configuration row as seen by services and callers.

    ``version`` starts at 1 and is incremented by every write; it is the
    optimistic-lock token passed back to the repository.
    """

    id: UUID
    kind: EntityKind
    status: ConfigStatus
    payload: ConfigurationPayload
    version: int
    created_at: datetime
    updated_at: datetime
    created_by: UUID | None = None
    approved_by: UUID | None = None
    approved_at: datetime | None = None
    rejection_reason: str | None = None

    @property
    def is_draft(self) -> bool:
        return self.status is ConfigStatus.DRAFT

    @property
    def is_approved(self) -> bool:
        return self.status is ConfigStatus.APPROVED
