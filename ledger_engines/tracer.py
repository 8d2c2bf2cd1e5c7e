"""
ledger_engines.tracer -- LEDGER_ENGINE_TRACE records for pure engine calls.

Responsibility:
    ``@traced_engine`` wraps a pure engine method and logs one
    LEDGER_ENGINE_TRACE record per call: engine name and version, a
    fingerprint of the inputs named by the decorator, and the duration.
    Two calls with the same fingerprint and version must produce the same
    result, which is what makes a logged calculation replayable.

Architecture position:
    Engines.  The log record is the only side effect.

Invariants enforced:
    - Fingerprints are stable: mapping keys are sorted, dataclasses are
      expanded field by field, Decimals are normalized so 10 and 10.00
      hash alike.  SHA-256, first 16 hex characters.
    - Inputs and results pass through untouched.

Usage:
    @traced_engine("costing", "1.0", fingerprint_fields=("prior_qty",))
    def recompute(self, prior_qty, ...):
        ...
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import inspect
import logging
import time
from collections.abc import Callable, Mapping
from decimal import Decimal
from enum import Enum
from typing import Any

# Child of the kernel namespace so configure_logging() covers it
_logger = logging.getLogger("ledger_kernel.engines.tracer")

TRACE_EVENT = "LEDGER_ENGINE_TRACE"


def _canonicalize(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, Decimal):
        return format(value.normalize(), "f") if value.is_finite() else str(value)
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return _canonicalize(
            {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
        )
    if isinstance(value, Mapping):
        items = sorted((str(k), _canonicalize(v)) for k, v in value.items())
        return "{" + ",".join(f"{k}:{v}" for k, v in items) + "}"
    if isinstance(value, (list, tuple)):
        return "[" + ",".join(_canonicalize(v) for v in value) + "]"
    return str(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: Mapping[str, Any],
) -> str:
    """Fingerprint of the named arguments; absent names count as null."""
    canonical = "|".join(f"{name}={_canonicalize(arguments.get(name))}" for name in fingerprint_fields)
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """Decorate a pure engine call so it emits LEDGER_ENGINE_TRACE."""

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fingerprint = ""
            if fingerprint_fields:
                # Positional and keyword spellings of a call hash alike
                bound = signature.bind_partial(*args, **kwargs)
                fingerprint = compute_input_fingerprint(fingerprint_fields, bound.arguments)

            started = time.perf_counter()
            result = func(*args, **kwargs)
            elapsed_ms = round((time.perf_counter() - started) * 1000, 3)

            _logger.info(
                TRACE_EVENT,
                extra={
                    "trace_type": TRACE_EVENT,
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fingerprint,
                    "duration_ms": elapsed_ms,
                    "function": func.__qualname__,
                },
            )
            return result

        return wrapper

    return decorator
