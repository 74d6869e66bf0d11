"""
fleet_services.bootstrap -- process start-up from the active configuration.

Hosts call ``start()`` once before opening sessions.  It applies the
``logging`` and ``database`` sections of the billing configuration to the
kernel: log level, engine URL and pool sizes.  The kernel never reads
``fleet_config`` itself, so this is where the two meet.
"""

from __future__ import annotations

from pathlib import Path

from fleet_config import get_active_config
from fleet_config.schema import BillingConfig
from fleet_kernel.db.engine import create_tables, init_engine_from_url
from fleet_kernel.db.immutability import register_immutability_listeners
from fleet_kernel.logging_config import configure_logging, get_logger

logger = get_logger("services.bootstrap")


def start(
    config: BillingConfig | None = None,
    config_path: Path | str | None = None,
    create_schema: bool = False,
) -> BillingConfig:
    """
    Configure logging, open the engine and register the immutability
    listeners.  Returns the configuration that was applied.

    ``create_schema`` creates missing tables; meant for SQLite and local
    development databases.
    """
    if config is None:
        config = get_active_config(config_path)

    configure_logging(level=config.logging.level)

    db = config.database
    init_engine_from_url(
        db.url,
        echo=db.echo,
        pool_size=db.pool_size,
        max_overflow=db.max_overflow,
    )
    register_immutability_listeners()
    if create_schema:
        create_tables()

    logger.info(
        "fleet_billing_started",
        extra={
            "config_id": config.config_id,
            "config_version": config.version,
            "tenant_id": config.tenant_id,
            "create_schema": create_schema,
        },
    )
    return config
