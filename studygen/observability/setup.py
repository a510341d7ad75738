"""OpenTelemetry setup and teardown.

Configures OTLP exporters for traces and metrics and auto-instruments
FastAPI and the Redis client used by the job store.
"""

import logging
from typing import Any

from opentelemetry import metrics, trace
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
from opentelemetry.instrumentation.redis import RedisInstrumentor
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor

from studygen import __version__
from studygen.core.config import settings

logger = logging.getLogger(__name__)

_instrumented = False


def _otlp_headers() -> dict[str, str] | None:
    if not settings.otel_exporter_otlp_headers:
        return None
    return dict(
        item.split("=", 1)
        for item in settings.otel_exporter_otlp_headers.split(",")
        if "=" in item
    )


def setup_telemetry(app: Any | None = None) -> None:
    """Initialize OpenTelemetry instrumentation.

    No-op unless ``OTEL_ENABLED=true``. Idempotent.

    Args:
        app: FastAPI application to instrument (the worker process passes None)
    """
    global _instrumented

    if not settings.otel_enabled:
        logger.debug("OpenTelemetry disabled by configuration")
        return
    if _instrumented:
        return

    resource = Resource.create(
        {
            "service.name": settings.otel_service_name,
            "service.version": __version__,
            "deployment.environment": settings.environment,
        }
    )
    headers = _otlp_headers()

    if settings.otel_traces_enabled:
        trace_provider = TracerProvider(resource=resource)
        trace_provider.add_span_processor(
            BatchSpanProcessor(
                OTLPSpanExporter(
                    endpoint=settings.otel_exporter_otlp_endpoint, headers=headers
                )
            )
        )
        trace.set_tracer_provider(trace_provider)
        logger.info(f"Tracing exporting to {settings.otel_exporter_otlp_endpoint}")

    if settings.otel_metrics_enabled:
        reader = PeriodicExportingMetricReader(
            OTLPMetricExporter(
                endpoint=settings.otel_exporter_otlp_endpoint, headers=headers
            ),
            export_interval_millis=60000,
        )
        metrics.set_meter_provider(
            MeterProvider(resource=resource, metric_readers=[reader])
        )
        logger.info(f"Metrics exporting to {settings.otel_exporter_otlp_endpoint}")

    if app is not None:
        FastAPIInstrumentor.instrument_app(app)

    if settings.queue_backend == "redis":
        RedisInstrumentor().instrument()

    _instrumented = True


def shutdown_telemetry() -> None:
    """Flush pending spans and metrics."""
    if not settings.otel_enabled:
        return

    for provider in (trace.get_tracer_provider(), metrics.get_meter_provider()):
        shutdown = getattr(provider, "shutdown", None)
        if shutdown is not None:
            shutdown()
    logger.info("OpenTelemetry shutdown complete")
