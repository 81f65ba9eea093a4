"""
payroll_settings -- runtime settings for the payroll configuration engine.

Responsibility:
    ``get_active_settings()`` is the single way to obtain EngineSettings at
    runtime.  Settings come from an explicit path, the file named by the
    ``PAYROLL_SETTINGS_FILE`` environment variable, or built-in defaults,
    in that order.

Audit relevance:
    Every call emits a ``payroll_settings_loaded`` log line carrying the
    source and the settings checksum (the database URL is never logged).
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from payroll_settings.loader import compute_checksum, load_settings, parse_settings
from payroll_settings.schema import EngineSettings

_logger = logging.getLogger("payroll_kernel.settings")

SETTINGS_ENV_VAR = "PAYROLL_SETTINGS_FILE"


def get_active_settings(path: Path | str | None = None) -> EngineSettings:
    """Load settings from ``path``, $PAYROLL_SETTINGS_FILE, or defaults."""
    source = path or os.environ.get(SETTINGS_ENV_VAR)
    if source:
        settings = load_settings(source)
        source_name = str(source)
    else:
        settings = EngineSettings()
        source_name = "defaults"

    _logger.info(
        "payroll_settings_loaded",
        extra={
            "source": source_name,
            "checksum": compute_checksum(settings),
            "pool_size": settings.pool_size,
            "dashboard_max_workers": settings.dashboard_max_workers,
            "log_level": settings.log_level,
        },
    )
    return settings


__all__ = [
    "EngineSettings",
    "SETTINGS_ENV_VAR",
    "compute_checksum",
    "get_active_settings",
    "load_settings",
    "parse_settings",
]
