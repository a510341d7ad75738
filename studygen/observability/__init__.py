"""Logging, metrics and tracing for studygen.

Instrumented components:
    - FastAPI requests and Redis job-store calls (auto-instrumentation)
    - Cache hits by tier and misses
    - Generation attempts and job outcomes
    - Circuit breaker transitions
"""

from studygen.observability.logging import (
    LogEvents,
    bind_context,
    clear_context,
    configure_logging,
    get_logger,
)
from studygen.observability.metrics import (
    get_meter,
    record_breaker_transition,
    record_cache_hit,
    record_cache_miss,
    record_generation_attempt,
    record_job_outcome,
)
from studygen.observability.setup import setup_telemetry, shutdown_telemetry
from studygen.observability.tracing import get_tracer, trace_operation

__all__ = [
    "LogEvents",
    "bind_context",
    "clear_context",
    "configure_logging",
    "get_logger",
    "get_meter",
    "get_tracer",
    "record_breaker_transition",
    "record_cache_hit",
    "record_cache_miss",
    "record_generation_attempt",
    "record_job_outcome",
    "setup_telemetry",
    "shutdown_telemetry",
    "trace_operation",
]
