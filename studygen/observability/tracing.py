"""OpenTelemetry tracing helpers."""

import functools
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from opentelemetry import trace

from studygen.core.config import settings

F = TypeVar("F", bound=Callable[..., Awaitable[Any]])


def get_tracer(name: str = "studygen") -> trace.Tracer:
    """Get tracer instance (no-op if telemetry disabled)."""
    return trace.get_tracer(name)


def trace_operation(
    operation_name: str | None = None,
    attributes: dict[str, Any] | None = None,
) -> Callable[[F], F]:
    """Wrap an async pipeline operation in a span.

    Example:
        >>> @trace_operation("cache.semantic_lookup")
        ... async def find_by_semantic(self, embedding, threshold): ...
    """

    def decorator(func: F) -> F:
        if not settings.otel_enabled or not settings.otel_traces_enabled:
            return func

        @functools.wraps(func)
        async def wrapper(*args: Any, **kwargs: Any) -> Any:
            tracer = get_tracer(func.__module__)
            with tracer.start_as_current_span(operation_name or func.__name__) as span:
                for key, value in (attributes or {}).items():
                    span.set_attribute(key, value)
                span.set_attribute("function.name", func.__qualname__)

                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    span.set_status(
                        trace.Status(trace.StatusCode.ERROR, description=str(e))
                    )
                    span.record_exception(e)
                    raise
                span.set_status(trace.Status(trace.StatusCode.OK))
                return result

        return wrapper  # type: ignore[return-value]

    return decorator
