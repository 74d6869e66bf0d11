"""
fleet_config -- single public entrypoint for billing configuration.

Responsibility:
    ``get_active_config()`` is the only way runtime code obtains settings.
    The parsed config is cached; ``reload_config()`` and
    ``clear_config_cache()`` are the explicit invalidation triggers, called
    when the configuration file is rewritten.

Architecture position:
    Configuration -- sits beside ``fleet_kernel``.  The kernel and the
    engines never import ``fleet_config``; services and the batch runner
    read settings and pass plain values down.

Audit relevance:
    Every load emits a ``FLEET_CONFIG_TRACE`` record with the config id,
    version and checksum, tying each statement run to the settings that
    governed it.
"""

from __future__ import annotations

import logging
import os
import threading
from pathlib import Path

from fleet_config.loader import compute_checksum, load_config, parse_config
from fleet_config.schema import (
    BatchSettings,
    BillingConfig,
    DatabaseSettings,
    LeaseSettings,
    LoggingSettings,
    PreviewSettings,
    StatementSettings,
)

_logger = logging.getLogger("fleet_kernel.config")

CONFIG_ENV_VAR = "FLEET_BILLING_CONFIG"

_DEFAULT_CONFIG_PATH = Path(__file__).parent / "defaults" / "billing.yaml"

_lock = threading.Lock()
_cache: dict[Path, BillingConfig] = {}


def _resolve_path(path: Path | str | None) -> Path:
    if path is not None:
        return Path(path)
    env_path = os.environ.get(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return _DEFAULT_CONFIG_PATH


def _load(path: Path) -> BillingConfig:
    config = load_config(path)
    _logger.info(
        "FLEET_CONFIG_TRACE",
        extra={
            "trace_type": "FLEET_CONFIG_TRACE",
            "config_id": config.config_id,
            "config_version": config.version,
            "checksum": config.checksum,
            "tenant_id": config.tenant_id,
            "path": str(path),
        },
    )
    return config


def get_active_config(path: Path | str | None = None) -> BillingConfig:
    """
    The billing configuration in force.

    Resolution order: explicit ``path``, then ``$FLEET_BILLING_CONFIG``, then
    the packaged defaults.  Results are cached per path.

    Raises:
        FileNotFoundError / yaml.YAMLError / KeyError / ValueError
    """
    resolved = _resolve_path(path)
    with _lock:
        config = _cache.get(resolved)
        if config is None:
            config = _load(resolved)
            _cache[resolved] = config
    return config


def reload_config(path: Path | str | None = None) -> BillingConfig:
    """Drop the cached entry for ``path`` and load it again."""
    resolved = _resolve_path(path)
    with _lock:
        _cache.pop(resolved, None)
    return get_active_config(resolved)


def clear_config_cache() -> None:
    with _lock:
        _cache.clear()


__all__ = [
    "CONFIG_ENV_VAR",
    "BatchSettings",
    "BillingConfig",
    "DatabaseSettings",
    "LeaseSettings",
    "LoggingSettings",
    "PreviewSettings",
    "StatementSettings",
    "clear_config_cache",
    "compute_checksum",
    "get_active_config",
    "parse_config",
    "reload_config",
]
