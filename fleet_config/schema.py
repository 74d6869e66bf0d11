"""
Configuration schema (``fleet_config.schema``).

Frozen dataclasses for the billing engine settings.  Parsed from YAML by
``fleet_config.loader``; no runtime code constructs them from raw dicts.
"""

from __future__ import annotations

from dataclasses import dataclass, field


@dataclass(frozen=True)
class LeaseSettings:
    """Names of the catalog rates that make up a lease charge."""

    base_rate_name: str = "LEASE_BASE"
    mileage_rate_name: str = "LEASE_MILEAGE"


@dataclass(frozen=True)
class StatementSettings:
    # Carry the prior statement's net_due into previous_balance
    require_continuity: bool = True
    # Number of days the period may span
    max_period_days: int = 62


@dataclass(frozen=True)
class PreviewSettings:
    sample_size: int = 10


@dataclass(frozen=True)
class BatchSettings:
    max_workers: int = 4


@dataclass(frozen=True)
class DatabaseSettings:
    url: str = "sqlite+pysqlite:///:memory:"
    echo: bool = False
    pool_size: int = 5
    max_overflow: int = 10


@dataclass(frozen=True)
class LoggingSettings:
    level: str = "INFO"


@dataclass(frozen=True)
class BillingConfig:
    """Root of the billing configuration."""

    config_id: str
    version: int
    tenant_id: str = "default"
    lease: LeaseSettings = field(default_factory=LeaseSettings)
    statements: StatementSettings = field(default_factory=StatementSettings)
    preview: PreviewSettings = field(default_factory=PreviewSettings)
    batch: BatchSettings = field(default_factory=BatchSettings)
    database: DatabaseSettings = field(default_factory=DatabaseSettings)
    logging: LoggingSettings = field(default_factory=LoggingSettings)
    checksum: str = ""
