"""
Engine settings schema (``payroll_settings.schema``).

Frozen dataclass describing how the engine connects to its database and
sizes its pools.  Values are validated by ``payroll_settings.loader``.
"""

from __future__ import annotations

from dataclasses import dataclass

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class EngineSettings:
    database_url: str = "sqlite:///payroll_config.db"
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 5
    pool_timeout: int = 30
    statement_timeout_seconds: int | None = 30
    dashboard_max_workers: int = 4
    log_level: str = "INFO"
