"""Structured logging configuration for studygen.

Every log line, ours or a library's (uvicorn, httpx, asyncpg), goes through
one structlog ``ProcessorFormatter``: JSON in production, colored console
lines in development. The API middleware binds a correlation id per request
and the queue worker binds one per job, so all lines of one generation share
a ``correlation_id``.

Configuration (environment or ``.env``):
    - LOG_LEVEL: DEBUG, INFO, WARNING, ERROR (default: INFO)
    - LOG_FORMAT: json, console (default: json in production, console in dev)
    - ENVIRONMENT: development, production

Usage:
    >>> from studygen.observability.logging import get_logger
    >>> logger = get_logger(__name__)
    >>> logger.info(LogEvents.CACHE_HIT, tier="exact", study_set_id=12)
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import Processor

from studygen.core.config import settings

# Client libraries that log every request at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "google_genai")

_configured = False


def _pre_chain() -> list[Processor]:
    return [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.ExtraAdder(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]


def _renderer(log_format: str) -> Processor:
    if log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def configure_logging(
    level: str | None = None,
    log_format: str | None = None,
    is_production: bool | None = None,
) -> None:
    """Configure structured logging for the process.

    Only the first call has an effect.

    Args:
        level: Log level. Defaults to ``settings.log_level``.
        log_format: json or console. Defaults by environment.
        is_production: Override production detection.
    """
    global _configured
    if _configured:
        return

    level = (level or settings.log_level).upper()
    if is_production is None:
        is_production = settings.is_production
    if log_format is None:
        log_format = settings.log_format or ("json" if is_production else "console")

    final_steps: list[Processor] = [
        structlog.stdlib.ProcessorFormatter.remove_processors_meta,
    ]
    if log_format == "json":
        final_steps.append(structlog.processors.format_exc_info)
    final_steps.append(_renderer(log_format))

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=_pre_chain(),
            processors=final_steps,
        )
    )
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(getattr(logging, level, logging.INFO))
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            *_pre_chain(),
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _configured = True


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, configuring logging on first use."""
    if not _configured:
        configure_logging()

    logger: structlog.stdlib.BoundLogger = structlog.get_logger(name)
    return logger


def bind_context(**kwargs: Any) -> None:
    """Attach correlation_id, job_id or user_id to later log calls in this task."""
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()


class LogEvents:
    """Event names shared by the API, the orchestrator and the workers."""

    CACHE_HIT = "cache_hit"
    CACHE_MISS = "cache_miss"
    CACHE_ERROR = "cache_error"
    EMBEDDING_FAILED = "embedding_failed"

    GENERATION_ATTEMPT = "generation_attempt"
    GENERATION_ATTEMPT_FAILED = "generation_attempt_failed"
    GENERATION_SUCCEEDED = "generation_succeeded"
    GENERATION_EXHAUSTED = "generation_exhausted"

    CIRCUIT_BREAKER_OPENED = "circuit_breaker_opened"
    CIRCUIT_BREAKER_HALF_OPEN = "circuit_breaker_half_open"
    CIRCUIT_BREAKER_CLOSED = "circuit_breaker_closed"
    CIRCUIT_BREAKER_REJECTED = "circuit_breaker_rejected"

    JOB_ENQUEUED = "job_enqueued"
    JOB_STARTED = "job_started"
    JOB_COMPLETED = "job_completed"
    JOB_RETRY_SCHEDULED = "job_retry_scheduled"
    JOB_FAILED = "job_failed"
    JOB_STALLED = "job_stalled"

    STUDY_SET_PERSISTED = "study_set_persisted"
    ACTIVITY_RECORD_FAILED = "activity_record_failed"
    DATABASE_CONNECTED = "database_connected"

    REQUEST_RECEIVED = "request_received"
    REQUEST_COMPLETED = "request_completed"

    SERVER_STARTED = "server_started"
    SERVER_SHUTDOWN = "server_shutdown"
    WORKERS_STARTED = "workers_started"
    WORKERS_STOPPED = "workers_stopped"
