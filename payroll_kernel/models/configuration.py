"""
Module: payroll_kernel.models.configuration
Responsibility: ORM persistence for the nine payroll configuration kinds.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ (for DTO conversion) only.

Invariants enforced:
    - Status is constrained to DRAFT / APPROVED / REJECTED on every table.
    - Unique keys are UNIQUE constraints on a normalised ``unique_key``
      column, so two racing creates cannot both commit.  The column holds
      ``ConfigurationPayload.unique_key()``: exact text for pay grades,
      allowances, tax rules and payroll policies; case-folded text for
      signing-bonus positions and termination-benefit names; the
      lower-cased type for pay types.
    - Insurance brackets have UNIQUE(name, min_salary, max_salary).  Range
      overlap between brackets of one name is checked by the validator
      while the writer holds the name's ``write_group`` lock.

Failure modes:
    - IntegrityError on a duplicate unique key (mapped to DuplicateKeyError
      by the repository).

Audit relevance:
    Every row carries created_by / approved_by / approved_at; the audit log
    holds the full before/after history.
"""

from __future__ import annotations

from dataclasses import fields
from datetime import date
from decimal import Decimal
from typing import Any, ClassVar

from sqlalchemy import CheckConstraint, Date, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from payroll_kernel.db.base import ConfigurationBase
from payroll_kernel.domain.entities import (
    Allowance,
    CompanySettings,
    ConfigurationPayload,
    ConfigurationRecord,
    EntityKind,
    InsuranceBracket,
    PayGrade,
    PayrollPolicy,
    PayType,
    SigningBonus,
    TaxRule,
    TerminationBenefit,
)
from payroll_kernel.domain.lifecycle import ConfigStatus
from payroll_kernel.domain.validators import (
    GRADE_MAX_LENGTH,
    NAME_MAX_LENGTH,
    TIME_ZONE_MAX_LENGTH,
)

_STATUS_CHECK = "status IN ('DRAFT', 'APPROVED', 'REJECTED')"


def _envelope_args(table: str, unique_key: bool = True) -> tuple:
    args: list[Any] = [
        CheckConstraint(_STATUS_CHECK, name=f"ck_{table}_status"),
        CheckConstraint("version >= 1", name=f"ck_{table}_version"),
        Index(f"idx_{table}_status", "status"),
        Index(f"idx_{table}_created_by", "created_by"),
    ]
    if unique_key:
        args.append(UniqueConstraint("unique_key", name=f"uq_{table}_key"))
    return tuple(args)


class ConfigurationModel(ConfigurationBase):
    """
    Abstract ORM model for one configuration kind.

    Contract:
        Subclasses set KIND and PAYLOAD_TYPE.  By default each payload
        field maps to a column of the same name; kinds with nested or
        enum fields override ``payload_values`` / ``payload_data``.
    """

    __abstract__ = True

    KIND: ClassVar[EntityKind]
    PAYLOAD_TYPE: ClassVar[type[ConfigurationPayload]]
    HAS_UNIQUE_KEY: ClassVar[bool] = True
    # List filters: SEARCH_FIELD takes a case-insensitive substring,
    # MIN_AMOUNT_FIELD / MAX_AMOUNT_FIELD take inclusive lower / upper
    # bounds, EXACT_FIELDS take equality matches.
    SEARCH_FIELD: ClassVar[str | None] = None
    MIN_AMOUNT_FIELD: ClassVar[str | None] = None
    MAX_AMOUNT_FIELD: ClassVar[str | None] = None
    EXACT_FIELDS: ClassVar[tuple[str, ...]] = ()

    @classmethod
    def payload_values(cls, payload: ConfigurationPayload) -> dict[str, Any]:
        """Column values for ``payload``, including ``unique_key``."""
        values = {
            f.name: getattr(payload, f.name)
            for f in fields(cls.PAYLOAD_TYPE)
        }
        if cls.HAS_UNIQUE_KEY:
            values["unique_key"] = payload.unique_key()
        return values

    @classmethod
    def write_group(cls, payload: ConfigurationPayload) -> str | None:
        """
        Name of the lock that serialises writes whose validity depends on
        other rows beyond the unique key, or None when the UNIQUE
        constraint is enough.
        """
        return None

    def payload_data(self) -> dict[str, Any]:
        return {
            f.name: getattr(self, f.name)
            for f in fields(self.PAYLOAD_TYPE)
        }

    def to_payload(self) -> ConfigurationPayload:
        return self.PAYLOAD_TYPE.from_dict(self.payload_data())

    def to_dto(self) -> ConfigurationRecord:
        return ConfigurationRecord(
            id=self.id,
            kind=self.KIND,
            status=ConfigStatus(self.status),
            payload=self.to_payload(),
            version=self.version,
            created_at=self.created_at,
            updated_at=self.updated_at,
            created_by=self.created_by,
            approved_by=self.approved_by,
            approved_at=self.approved_at,
            rejection_reason=self.rejection_reason,
        )

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.id} {self.status} v{self.version}>"


class PayGradeModel(ConfigurationModel):
    __tablename__ = "pay_grades"
    __table_args__ = _envelope_args("pay_grades")

    KIND = EntityKind.PAY_GRADE
    PAYLOAD_TYPE = PayGrade
    SEARCH_FIELD = "grade"
    MIN_AMOUNT_FIELD = MAX_AMOUNT_FIELD = "base_salary"

    grade: Mapped[str] = mapped_column(String(GRADE_MAX_LENGTH), nullable=False)
    base_salary: Mapped[Decimal] = mapped_column(nullable=False)
    gross_salary: Mapped[Decimal] = mapped_column(nullable=False)
    unique_key: Mapped[str] = mapped_column(String(255), nullable=False)


class AllowanceModel(ConfigurationModel):
    __tablename__ = "allowances"
    __table_args__ = _envelope_args("allowances")

    KIND = EntityKind.ALLOWANCE
    PAYLOAD_TYPE = Allowance
    SEARCH_FIELD = "name"
    MIN_AMOUNT_FIELD = MAX_AMOUNT_FIELD = "amount"

    name: Mapped[str] = mapped_column(String(NAME_MAX_LENGTH), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    unique_key: Mapped[str] = mapped_column(String(255), nullable=False)


class TaxRuleModel(ConfigurationModel):
    __tablename__ = "tax_rules"
    __table_args__ = _envelope_args("tax_rules")

    KIND = EntityKind.TAX_RULE
    PAYLOAD_TYPE = TaxRule
    SEARCH_FIELD = "name"
    MIN_AMOUNT_FIELD = MAX_AMOUNT_FIELD = "rate"

    name: Mapped[str] = mapped_column(String(NAME_MAX_LENGTH), nullable=False)
    rate: Mapped[Decimal] = mapped_column(nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    unique_key: Mapped[str] = mapped_column(String(255), nullable=False)


class InsuranceBracketModel(ConfigurationModel):
    __tablename__ = "insurance_brackets"
    __table_args__ = _envelope_args("insurance_brackets", unique_key=False) + (
        UniqueConstraint(
            "name", "min_salary", "max_salary", name="uq_insurance_brackets_range"
        ),
        Index("idx_insurance_brackets_name", "name"),
    )

    KIND = EntityKind.INSURANCE_BRACKET
    PAYLOAD_TYPE = InsuranceBracket
    HAS_UNIQUE_KEY = False
    SEARCH_FIELD = "name"
    MIN_AMOUNT_FIELD = "min_salary"
    MAX_AMOUNT_FIELD = "max_salary"

    name: Mapped[str] = mapped_column(String(NAME_MAX_LENGTH), nullable=False)
    min_salary: Mapped[Decimal] = mapped_column(nullable=False)
    max_salary: Mapped[Decimal] = mapped_column(nullable=False)
    employee_rate: Mapped[Decimal] = mapped_column(nullable=False)
    employer_rate: Mapped[Decimal] = mapped_column(nullable=False)

    @classmethod
    def write_group(cls, payload: InsuranceBracket) -> str:
        # Range overlap is checked per name, so same-name writers queue here.
        return f"insurance_bracket:{payload.name}"


class PayrollPolicyModel(ConfigurationModel):
    __tablename__ = "payroll_policies"
    __table_args__ = _envelope_args("payroll_policies") + (
        Index("idx_payroll_policies_type", "policy_type"),
        Index("idx_payroll_policies_applicability", "applicability"),
    )

    KIND = EntityKind.PAYROLL_POLICY
    PAYLOAD_TYPE = PayrollPolicy
    SEARCH_FIELD = "policy_name"
    EXACT_FIELDS = ("policy_type", "applicability")

    policy_name: Mapped[str] = mapped_column(String(NAME_MAX_LENGTH), nullable=False)
    policy_type: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    effective_date: Mapped[date] = mapped_column(Date, nullable=False)
    rule_percentage: Mapped[Decimal] = mapped_column(nullable=False)
    rule_fixed_amount: Mapped[Decimal] = mapped_column(nullable=False)
    rule_threshold_amount: Mapped[Decimal] = mapped_column(nullable=False)
    applicability: Mapped[str] = mapped_column(String(20), nullable=False)
    unique_key: Mapped[str] = mapped_column(String(255), nullable=False)

    @classmethod
    def payload_values(cls, payload: PayrollPolicy) -> dict[str, Any]:
        rule = payload.rule_definition
        return {
            "policy_name": payload.policy_name,
            "policy_type": payload.policy_type.value,
            "description": payload.description,
            "effective_date": payload.effective_date,
            "rule_percentage": rule.percentage,
            "rule_fixed_amount": rule.fixed_amount,
            "rule_threshold_amount": rule.threshold_amount,
            "applicability": payload.applicability.value,
            "unique_key": payload.unique_key(),
        }

    def payload_data(self) -> dict[str, Any]:
        return {
            "policy_name": self.policy_name,
            "policy_type": self.policy_type,
            "description": self.description,
            "effective_date": self.effective_date,
            "rule_definition": {
                "percentage": self.rule_percentage,
                "fixed_amount": self.rule_fixed_amount,
                "threshold_amount": self.rule_threshold_amount,
            },
            "applicability": self.applicability,
        }


class SigningBonusModel(ConfigurationModel):
    __tablename__ = "signing_bonuses"
    __table_args__ = _envelope_args("signing_bonuses")

    KIND = EntityKind.SIGNING_BONUS
    PAYLOAD_TYPE = SigningBonus
    SEARCH_FIELD = "position_name"
    MIN_AMOUNT_FIELD = MAX_AMOUNT_FIELD = "amount"

    position_name: Mapped[str] = mapped_column(String(NAME_MAX_LENGTH), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    unique_key: Mapped[str] = mapped_column(String(255), nullable=False)


class PayTypeModel(ConfigurationModel):
    __tablename__ = "pay_types"
    __table_args__ = _envelope_args("pay_types")

    KIND = EntityKind.PAY_TYPE
    PAYLOAD_TYPE = PayType
    SEARCH_FIELD = "type"
    MIN_AMOUNT_FIELD = MAX_AMOUNT_FIELD = "amount"

    type: Mapped[str] = mapped_column(String(50), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    unique_key: Mapped[str] = mapped_column(String(255), nullable=False)


class TerminationBenefitModel(ConfigurationModel):
    __tablename__ = "termination_benefits"
    __table_args__ = _envelope_args("termination_benefits")

    KIND = EntityKind.TERMINATION_BENEFIT
    PAYLOAD_TYPE = TerminationBenefit
    SEARCH_FIELD = "name"
    MIN_AMOUNT_FIELD = MAX_AMOUNT_FIELD = "amount"

    name: Mapped[str] = mapped_column(String(NAME_MAX_LENGTH), nullable=False)
    amount: Mapped[Decimal] = mapped_column(nullable=False)
    terms: Mapped[str | None] = mapped_column(Text, nullable=True)
    unique_key: Mapped[str] = mapped_column(String(255), nullable=False)


class CompanySettingsModel(ConfigurationModel):
    __tablename__ = "company_settings"
    __table_args__ = _envelope_args("company_settings", unique_key=False) + (
        Index("idx_company_settings_approved_at", "approved_at"),
    )

    KIND = EntityKind.COMPANY_SETTINGS
    PAYLOAD_TYPE = CompanySettings
    HAS_UNIQUE_KEY = False
    EXACT_FIELDS = ("currency",)

    pay_date: Mapped[date] = mapped_column(Date, nullable=False)
    time_zone: Mapped[str] = mapped_column(String(TIME_ZONE_MAX_LENGTH), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)


CONFIGURATION_MODELS: dict[EntityKind, type[ConfigurationModel]] = {
    model.KIND: model
    for model in (
        PayGradeModel,
        AllowanceModel,
        TaxRuleModel,
        InsuranceBracketModel,
        PayrollPolicyModel,
        SigningBonusModel,
        PayTypeModel,
        TerminationBenefitModel,
        CompanySettingsModel,
    )
}
