"""ORM models for the payroll kernel."""

from payroll_kernel.models.audit_log import AuditLogModel
from payroll_kernel.models.configuration import (
    CONFIGURATION_MODELS,
    AllowanceModel,
    CompanySettingsModel,
    ConfigurationModel,
    InsuranceBracketModel,
    PayGradeModel,
    PayrollPolicyModel,
    PayTypeModel,
    SigningBonusModel,
    TaxRuleModel,
    TerminationBenefitModel,
)
from payroll_kernel.models.sequence_counter import SequenceCounter

__all__ = [
    "AllowanceModel",
    "AuditLogModel",
    "CONFIGURATION_MODELS",
    "CompanySettingsModel",
    "ConfigurationModel",
    "InsuranceBracketModel",
    "PayGradeModel",
    "PayTypeModel",
    "PayrollPolicyModel",
    "SequenceCounter",
    "SigningBonusModel",
    "TaxRuleModel",
    "TerminationBenefitModel",
]
