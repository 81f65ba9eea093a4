"""
Settings loader (``payroll_settings.loader``).

Responsibility
--------------
Parses a YAML settings file into an ``EngineSettings`` instance.

Invariants enforced
-------------------
* Unknown keys are rejected; a typo never silently falls back to a default.
* Every value is type- and range-checked; failures raise ``ValueError``
  naming the offending key.
* ``compute_checksum`` is deterministic for identical effective settings.

Failure modes
-------------
* Missing file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Bad value or unknown key  -> ``ValueError``.
"""

from __future__ import annotations

import hashlib
import json
from dataclasses import asdict, fields
from pathlib import Path
from typing import Any

import yaml

from payroll_settings.schema import LOG_LEVELS, EngineSettings


def load_yaml_file(path: Path) -> dict[str, Any]:
    with open(path) as f:
        data = yaml.safe_load(f)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: expected a mapping at top level, got {type(data).__name__}")
    return data


def _positive_int(key: str, value: Any, minimum: int = 1) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{key} must be an integer, got {value!r}")
    if value < minimum:
        raise ValueError(f"{key} must be >= {minimum}, got {value}")
    return value


def parse_settings(data: dict[str, Any]) -> EngineSettings:
    """Validate a raw mapping and build EngineSettings."""
    # Accept an optional top-level "engine:" section.
    if set(data) == {"engine"} and isinstance(data["engine"], dict):
        data = data["engine"]

    known = {f.name for f in fields(EngineSettings)}
    unknown = sorted(set(data) - known)
    if unknown:
        raise ValueError(f"Unknown settings keys: {', '.join(unknown)}")

    values: dict[str, Any] = {}
    if "database_url" in data:
        url = data["database_url"]
        if not isinstance(url, str) or not url.strip():
            raise ValueError("database_url must be a non-empty string")
        values["database_url"] = url.strip()
    if "echo" in data:
        if not isinstance(data["echo"], bool):
            raise ValueError(f"echo must be a boolean, got {data['echo']!r}")
        values["echo"] = data["echo"]
    if "pool_size" in data:
        values["pool_size"] = _positive_int("pool_size", data["pool_size"])
    if "max_overflow" in data:
        values["max_overflow"] = _positive_int("max_overflow", data["max_overflow"], minimum=0)
    if "pool_timeout" in data:
        values["pool_timeout"] = _positive_int("pool_timeout", data["pool_timeout"])
    if "statement_timeout_seconds" in data:
        timeout = data["statement_timeout_seconds"]
        values["statement_timeout_seconds"] = (
            None if timeout is None else _positive_int("statement_timeout_seconds", timeout)
        )
    if "dashboard_max_workers" in data:
        values["dashboard_max_workers"] = _positive_int(
            "dashboard_max_workers", data["dashboard_max_workers"]
        )
    if "log_level" in data:
        level = str(data["log_level"]).upper()
        if level not in LOG_LEVELS:
            raise ValueError(f"log_level must be one of {', '.join(LOG_LEVELS)}, got {data['log_level']!r}")
        values["log_level"] = level

    return EngineSettings(**values)


def load_settings(path: Path | str) -> EngineSettings:
    return parse_settings(load_yaml_file(Path(path)))


def compute_checksum(settings: EngineSettings) -> str:
    """SHA-256 of the canonical JSON form of ``settings``."""
    canonical = json.dumps(asdict(settings), sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
