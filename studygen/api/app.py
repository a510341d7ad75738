"""FastAPI application factory with graceful shutdown support."""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from studygen import __version__
from studygen.api.middleware import setup_middleware
from studygen.api.routes import create_routes
from studygen.core.config import settings
from studygen.core.exceptions import (
    DatabaseError,
    EmbeddingError,
    GenerationError,
    InputValidationError,
    QueueError,
    ServiceUnavailableError,
    StudyGenError,
)
from studygen.core.lifecycle import LifecycleManager
from studygen.observability import (
    LogEvents,
    configure_logging,
    get_logger,
    setup_telemetry,
    shutdown_telemetry,
)
from studygen.utils.service_factory import Services, create_services

logger = get_logger(__name__)

# Most specific first; the first isinstance match wins
ERROR_STATUS: list[tuple[type[StudyGenError], int]] = [
    (InputValidationError, status.HTTP_400_BAD_REQUEST),
    (ServiceUnavailableError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (GenerationError, status.HTTP_502_BAD_GATEWAY),
    (EmbeddingError, status.HTTP_502_BAD_GATEWAY),
    (DatabaseError, status.HTTP_500_INTERNAL_SERVER_ERROR),
    (QueueError, status.HTTP_500_INTERNAL_SERVER_ERROR),
]


def status_for(exc: StudyGenError) -> int:
    for error_type, code in ERROR_STATUS:
        if isinstance(exc, error_type):
            return code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


def _build_lifespan(services: Services | None, start_workers: bool):
    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Manage application lifespan.

        Startup sequence:
            1. Configure logging
            2. Build services (credentials check, database connect with
               retries, breaker, Gemini client, job store, queue)
            3. Start the in-process worker pool unless disabled
            4. Register API routes

        Shutdown sequence (via LifecycleManager):
            1. Stop workers and drain running jobs
            2. Close the job store
            3. Close the database pool
            4. Shutdown telemetry
        """
        configure_logging()
        logger.info(LogEvents.SERVER_STARTED, version=__version__)

        injected = services is not None
        active = services if injected else await create_services()
        app.state.services = active

        if start_workers:
            await active.queue.start()

        lifecycle = LifecycleManager(
            queue=active.queue,
            job_store=None if injected else active.job_store,
            database=None if injected else active.database,
        )
        app.state.lifecycle_manager = lifecycle

        if not injected:
            app.include_router(create_routes(active))

        yield

        logger.info(LogEvents.SERVER_SHUTDOWN)
        await lifecycle.shutdown()
        shutdown_telemetry()

    return lifespan


def register_exception_handlers(app: FastAPI) -> None:
    """Render every error as ``{error, detail, code}``."""

    @app.exception_handler(StudyGenError)
    async def studygen_error_handler(
        request: Request, exc: StudyGenError
    ) -> JSONResponse:
        code = status_for(exc)
        if code >= 500:
            logger.error("request_failed", error=exc.message, code=exc.code)
        return JSONResponse(
            status_code=code,
            content={
                "error": exc.message,
                "detail": str(exc.details) if exc.details else None,
                "code": exc.code,
            },
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": str(exc.detail), "detail": None, "code": None},
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        """Handle unhandled exceptions."""
        logger.exception("unhandled_exception", error=str(exc))
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": "Internal server error", "detail": str(exc)},
        )


def create_app(
    services: Services | None = None, start_workers: bool | None = None
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        services: Prebuilt services. Routes are registered immediately and
            the lifespan does not close the injected job store.
        start_workers: Run the worker pool in this process. Defaults to
            ``settings.run_workers_in_api`` when services are built here and
            to False when they are injected.

    Returns:
        Configured FastAPI app
    """
    if start_workers is None:
        start_workers = settings.run_workers_in_api and services is None

    app = FastAPI(
        title="studygen",
        description="Flashcard and quiz generation with a two-tier cache",
        version=__version__,
        lifespan=_build_lifespan(services, start_workers),
    )

    setup_telemetry(app)
    setup_middleware(app)
    register_exception_handlers(app)

    if services is not None:
        app.include_router(create_routes(services))

    return app
