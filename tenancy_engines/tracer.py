"""
tenancy_engines.tracer -- TENANCY_ENGINE_TRACE records for pure engine calls.

Responsibility:
    ``@traced_engine`` logs one record per engine call naming the engine,
    its version, a fingerprint of the inputs that decide the result, how
    long the call took and whether it returned or raised.  Two calls with
    the same fingerprint on the same engine version must produce the same
    answer, which is what makes a logged verdict reproducible.

Architecture position:
    Engines -- support for the pure evaluation layer.  Emits a log record
    and nothing else.

Usage:
    @traced_engine("qualification", "1.0", fingerprint_fields=("facts", "candidate_monthly_rent"))
    def evaluate(facts, candidate_monthly_rent, policy=DEFAULT_POLICY):
        ...
"""

from __future__ import annotations

import dataclasses
import functools
import hashlib
import inspect
import json
import time
from collections.abc import Callable, Mapping
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from tenancy_kernel.logging_config import get_logger

_logger = get_logger("engines.tracer")

TRACE_MESSAGE = "TENANCY_ENGINE_TRACE"


def _plain(value: Any) -> Any:
    """Reduce a value to JSON-native types with a stable textual form."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (Decimal, UUID)):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: _plain(getattr(value, f.name)) for f in dataclasses.fields(value)}
    if isinstance(value, Mapping):
        return {str(k): _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, frozenset, set)):
        items = [_plain(v) for v in value]
        if isinstance(value, (set, frozenset)):
            items.sort(key=repr)
        return items
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return repr(value)


def compute_input_fingerprint(
    fingerprint_fields: tuple[str, ...],
    arguments: Mapping[str, Any],
) -> str:
    """16 hex chars of SHA-256 over the named arguments; absent ones hash as null."""
    selected = {name: _plain(arguments.get(name)) for name in fingerprint_fields}
    canonical = json.dumps(selected, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(canonical.encode("utf-8")).hexdigest()[:16]


def traced_engine(
    engine_name: str,
    engine_version: str,
    fingerprint_fields: tuple[str, ...] = (),
) -> Callable:
    """
    Wrap a pure engine function with trace logging.

    Positional and keyword arguments are matched to ``fingerprint_fields``
    by parameter name, so ``f(x)`` and ``f(x=x)`` fingerprint identically.
    Exceptions propagate unchanged after an ``outcome="error"`` trace.
    """

    def decorator(func: Callable) -> Callable:
        signature = inspect.signature(func)

        def _fingerprint(args: tuple, kwargs: dict) -> str:
            if not fingerprint_fields:
                return ""
            bound = signature.bind_partial(*args, **kwargs)
            return compute_input_fingerprint(fingerprint_fields, bound.arguments)

        def _emit(fingerprint: str, started: float, outcome: str, **fields: Any) -> None:
            _logger.info(
                TRACE_MESSAGE,
                extra={
                    "trace_type": TRACE_MESSAGE,
                    "engine_name": engine_name,
                    "engine_version": engine_version,
                    "input_fingerprint": fingerprint,
                    "duration_ms": round((time.perf_counter() - started) * 1000, 3),
                    "outcome": outcome,
                    "function": func.__qualname__,
                    **fields,
                },
            )

        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> Any:
            fingerprint = _fingerprint(args, kwargs)
            started = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as exc:
                _emit(fingerprint, started, "error", error_type=type(exc).__name__)
                raise
            _emit(fingerprint, started, "ok")
            return result

        return wrapper

    return decorator
