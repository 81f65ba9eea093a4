"""Configuration repositories: the abstract contract and its SQL implementation."""

from payroll_kernel.repositories.base import ConfigurationRepository, RecordFilter
from payroll_kernel.repositories.sql import SqlConfigurationRepository

__all__ = ["ConfigurationRepository", "RecordFilter", "SqlConfigurationRepository"]
