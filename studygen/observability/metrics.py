"""OpenTelemetry metrics for the study-set pipeline.

Metrics:
    - studygen.cache.hits: Counter of cache hits by tier (exact, semantic)
    - studygen.cache.misses: Counter of requests that reached the queue
    - studygen.jobs.outcomes: Counter of job outcomes (completed, retried, failed)
    - studygen.generation.attempts: Counter of model calls by result
    - studygen.breaker.transitions: Counter of circuit breaker state changes
    - studygen.generation.latency: Histogram of end-to-end generation latency
"""

import logging

from opentelemetry import metrics

from studygen.core.config import settings

logger = logging.getLogger(__name__)

_meter: metrics.Meter | None = None

_cache_hits_counter: metrics.Counter | None = None
_cache_misses_counter: metrics.Counter | None = None
_job_outcomes_counter: metrics.Counter | None = None
_generation_attempts_counter: metrics.Counter | None = None
_breaker_transitions_counter: metrics.Counter | None = None
_generation_latency_histogram: metrics.Histogram | None = None


def _enabled() -> bool:
    return settings.otel_enabled and settings.otel_metrics_enabled


def get_meter(name: str = "studygen") -> metrics.Meter:
    """Get OpenTelemetry meter instance (no-op if telemetry disabled)."""
    global _meter
    if _meter is None:
        _meter = metrics.get_meter(name)
    return _meter


def _ensure_instruments() -> None:
    """Lazy initialization of metric instruments."""
    global _cache_hits_counter
    global _cache_misses_counter
    global _job_outcomes_counter
    global _generation_attempts_counter
    global _breaker_transitions_counter
    global _generation_latency_histogram

    meter = get_meter()

    if _cache_hits_counter is None:
        _cache_hits_counter = meter.create_counter(
            name="studygen.cache.hits",
            description="Requests answered from a cache tier",
            unit="1",
        )
    if _cache_misses_counter is None:
        _cache_misses_counter = meter.create_counter(
            name="studygen.cache.misses",
            description="Requests that missed every cache tier",
            unit="1",
        )
    if _job_outcomes_counter is None:
        _job_outcomes_counter = meter.create_counter(
            name="studygen.jobs.outcomes",
            description="Generation job attempt outcomes",
            unit="1",
        )
    if _generation_attempts_counter is None:
        _generation_attempts_counter = meter.create_counter(
            name="studygen.generation.attempts",
            description="Generative model calls by result",
            unit="1",
        )
    if _breaker_transitions_counter is None:
        _breaker_transitions_counter = meter.create_counter(
            name="studygen.breaker.transitions",
            description="Circuit breaker state transitions",
            unit="1",
        )
    if _generation_latency_histogram is None:
        _generation_latency_histogram = meter.create_histogram(
            name="studygen.generation.latency",
            description="Study set generation latency including retries",
            unit="ms",
        )


def record_cache_hit(tier: str) -> None:
    if not _enabled():
        return
    _ensure_instruments()
    if _cache_hits_counter:
        _cache_hits_counter.add(1, {"tier": tier})


def record_cache_miss() -> None:
    if not _enabled():
        return
    _ensure_instruments()
    if _cache_misses_counter:
        _cache_misses_counter.add(1)


def record_job_outcome(outcome: str) -> None:
    """Record a job attempt outcome.

    Args:
        outcome: One of completed, retried, failed
    """
    if not _enabled():
        return
    _ensure_instruments()
    if _job_outcomes_counter:
        _job_outcomes_counter.add(1, {"outcome": outcome})


def record_generation_attempt(result: str, latency_ms: float | None = None) -> None:
    """Record one model call.

    Args:
        result: ok, invalid_json, invalid_schema or error
        latency_ms: Call latency, recorded only for successful calls
    """
    if not _enabled():
        return
    _ensure_instruments()
    if _generation_attempts_counter:
        _generation_attempts_counter.add(1, {"result": result})
    if latency_ms is not None and _generation_latency_histogram:
        _generation_latency_histogram.record(latency_ms)


def record_breaker_transition(name: str, to_state: str) -> None:
    if not _enabled():
        return
    _ensure_instruments()
    if _breaker_transitions_counter:
        _breaker_transitions_counter.add(1, {"breaker": name, "to": to_state})
