"""Middleware for the FastAPI application."""

import time
from collections.abc import Awaitable, Callable
from uuid import uuid4

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from studygen.api.auth import IdentityMiddleware
from studygen.core.config import settings
from studygen.observability.logging import (
    LogEvents,
    bind_context,
    clear_context,
    get_logger,
)

logger = get_logger(__name__)

CORRELATION_HEADER = "X-Correlation-ID"


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Assign a correlation id and log each request with its latency.

    The id comes from the ``X-Correlation-ID`` request header when present,
    is bound to the structlog context for the request, travels with any job
    the request enqueues and is echoed in the response header.
    """

    async def dispatch(
        self, request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        correlation_id = request.headers.get(CORRELATION_HEADER) or str(uuid4())
        request.state.correlation_id = correlation_id
        bind_context(correlation_id=correlation_id)

        start = time.perf_counter()
        logger.info(
            LogEvents.REQUEST_RECEIVED,
            method=request.method,
            path=request.url.path,
            client=request.client.host if request.client else "unknown",
        )
        try:
            response = await call_next(request)
            logger.info(
                LogEvents.REQUEST_COMPLETED,
                method=request.method,
                path=request.url.path,
                status=response.status_code,
                latency_ms=round((time.perf_counter() - start) * 1000, 1),
            )
            response.headers[CORRELATION_HEADER] = correlation_id
            return response
        finally:
            clear_context()


def setup_cors(app: FastAPI) -> None:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"] if not settings.is_production else [],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[CORRELATION_HEADER],
    )


def setup_middleware(app: FastAPI) -> None:
    """Configure middleware.

    Order (outermost first): CORS, request logging, identity.
    """
    app.add_middleware(IdentityMiddleware)
    app.add_middleware(RequestLoggingMiddleware)
    setup_cors(app)
