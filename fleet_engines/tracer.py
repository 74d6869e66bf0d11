"""
fleet_engines.tracer -- Engine invocation tracer emitting FLEET_ENGINE_TRACE.

Responsibility:
    ``@traced_engine`` wraps a pure engine entry point and emits one
    structured trace record per call: engine name, engine version, a
    deterministic fingerprint of selected keyword arguments, and the
    duration in milliseconds.

Architecture position:
    Engines -- infrastructure support for the pure calculation layer.
    Emits a log record only; it never mutates inputs.

Invariants enforced:
    - Replay safety: ``_canonicalize`` gives stable text for Decimals, dates,
      UUIDs, enums, dataclasses and containers (dict keys sorted, sets
      sorted), so identical inputs always produce the same fingerprint.
    - The fingerprint is SHA-256 truncated to 16 hex characters.

Failure modes:
    - Keyword arguments named in ``fingerprint_fields`` but not passed are
      recorded as "null".  Positional arguments are not fingerprinted.

Usage:
    from fleet_engines.tracer import traced_engine

    @traced_engine("override_resolver", "1.0", fingerprint_fields=("rate_id", "on_date"))
    def resolve(...):
        ...
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import logging
import time
from collections.abc import Callable
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

# Own namespace under the kernel root so engines never configure logging.
_logger = logging.getLogger("fleet_kernel.engines.tracer")


def _canonicalize(value: Any) -> str:
    """Stable string form of ``value`` for fingerprinting."""
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, Decimal):
        return format(value.normalize(), "f")
    if isinstance(value, (int, str)):
        return str(value)
    if isinstance(value, (date, UUID)):
        return str(value)
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        return "{" + ",".join(f"{k}:{_canonicalize(v)}" for k, v in items) + "}"
    if isinstance(value, (set, frozenset)):
        return "{" + ",".join(sorted(_canonicalize(v) for v in value)) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        fields = {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
        return type(value).__name__ + _canonicalize(fields)
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    kwargs: dict[str, Any],
) -> str:
    """16-hex-char SHA-256 prefix over the named keyword arguments."""
    canonical = "|".join(
        f"{name}={_canonicalize(kwargs.get(name))}" for name in fingerprint_fields
    )
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Decorator that emits FLEET_ENGINE_TRACE for pure engine invocations."""

    def decorator(func: Callable) -> Callable:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fp = compute_input_fingerprint(fingerprint_fields, kwargs) if fingerprint_fields else ""

            t0 = time.monotonic()
            result = func(*args, **kwargs)
            duration_ms = round((time.monotonic() - t0) * 1000, 2)

            _logger.debug(
                "FLEET_ENGINE_TRACE",
                extra={
                    "trace_type": "FLEET_ENGINE_TRACE",
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fp,
                    "duration_ms": duration_ms,
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
