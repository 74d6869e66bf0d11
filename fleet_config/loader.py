"""
Configuration Loader (``fleet_config.loader``).

Responsibility
--------------
Reads the billing YAML document and parses it into the frozen dataclasses
of ``fleet_config.schema``.  The runtime entry point is
``fleet_config.get_active_config()``; this module is the parsing layer
under it.

Invariants enforced
-------------------
* Required keys (``config_id``, ``version``) raise ``KeyError`` when absent;
  there are no silent defaults for them.
* Malformed values (non-positive sizes, unknown log levels, wrong types)
  raise ``ValueError``.
* ``compute_checksum`` is a deterministic SHA-256 over the canonical JSON
  form of the parsed document, used for change detection and the
  FLEET_CONFIG_TRACE record.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from fleet_config.schema import (
    BatchSettings,
    BillingConfig,
    DatabaseSettings,
    LeaseSettings,
    LoggingSettings,
    PreviewSettings,
    StatementSettings,
)

_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})


def load_yaml_file(path: Path) -> dict[str, Any]:
    """Load one YAML file; an empty file yields an empty dict."""
    with open(path) as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"Configuration root in {path} must be a mapping")
    return data


def compute_checksum(data: dict[str, Any]) -> str:
    canonical = json.dumps(data, sort_keys=True, separators=(",", ":"), default=str)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()


def _section(data: dict[str, Any], name: str) -> dict[str, Any]:
    section = data.get(name) or {}
    if not isinstance(section, dict):
        raise ValueError(f"Section '{name}' must be a mapping, got {type(section).__name__}")
    return section


def _positive_int(section: dict[str, Any], key: str, default: int) -> int:
    value = section.get(key, default)
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"'{key}' must be a positive integer, got {value!r}")
    return value


def _bool(section: dict[str, Any], key: str, default: bool) -> bool:
    value = section.get(key, default)
    if not isinstance(value, bool):
        raise ValueError(f"'{key}' must be true or false, got {value!r}")
    return value


def _name(section: dict[str, Any], key: str, default: str) -> str:
    value = section.get(key, default)
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"'{key}' must be a non-empty string, got {value!r}")
    return value


def parse_lease(data: dict[str, Any]) -> LeaseSettings:
    return LeaseSettings(
        base_rate_name=_name(data, "base_rate_name", "LEASE_BASE"),
        mileage_rate_name=_name(data, "mileage_rate_name", "LEASE_MILEAGE"),
    )


def parse_statements(data: dict[str, Any]) -> StatementSettings:
    return StatementSettings(
        require_continuity=_bool(data, "require_continuity", True),
        max_period_days=_positive_int(data, "max_period_days", 62),
    )


def parse_database(data: dict[str, Any]) -> DatabaseSettings:
    return DatabaseSettings(
        url=_name(data, "url", DatabaseSettings.url),
        echo=_bool(data, "echo", False),
        pool_size=_positive_int(data, "pool_size", 5),
        max_overflow=_positive_int(data, "max_overflow", 10),
    )


def parse_logging(data: dict[str, Any]) -> LoggingSettings:
    level = str(data.get("level", "INFO")).upper()
    if level not in _LOG_LEVELS:
        raise ValueError(f"Unknown log level {level!r}")
    return LoggingSettings(level=level)


def parse_config(data: dict[str, Any]) -> BillingConfig:
    """
    Parse a whole billing document.

    Raises:
        KeyError: ``config_id`` or ``version`` missing.
        ValueError: a value has the wrong type or range.
    """
    version = data["version"]
    if isinstance(version, bool) or not isinstance(version, int):
        raise ValueError(f"'version' must be an integer, got {version!r}")
    return BillingConfig(
        config_id=str(data["config_id"]),
        version=version,
        tenant_id=_name(data, "tenant_id", "default"),
        lease=parse_lease(_section(data, "lease")),
        statements=parse_statements(_section(data, "statements")),
        preview=PreviewSettings(
            sample_size=_positive_int(_section(data, "preview"), "sample_size", 10),
        ),
        batch=BatchSettings(
            max_workers=_positive_int(_section(data, "batch"), "max_workers", 4),
        ),
        database=parse_database(_section(data, "database")),
        logging=parse_logging(_section(data, "logging")),
        checksum=compute_checksum(data),
    )


def load_config(path: Path) -> BillingConfig:
    return parse_config(load_yaml_file(path))
