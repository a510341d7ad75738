"""FastAPI route handlers for the studygen API."""

import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING

from fastapi import (
    APIRouter,
    Depends,
    File,
    Form,
    HTTPException,
    Request,
    Response,
    UploadFile,
    status,
)

from studygen.api.auth import optional_user, required_user
from studygen.api.uploads import extract_upload
from studygen.api.validation import ErrorResponse, GenerateRequest, HealthResponse
from studygen.core.config import settings
from studygen.core.models import (
    HistoryEntry,
    JobStatus,
    QueueCounts,
    StudySet,
    SubmissionResult,
)

if TYPE_CHECKING:
    from studygen.utils.service_factory import Services

logger = logging.getLogger(__name__)

SUBMISSION_RESPONSES = {
    400: {"model": ErrorResponse},
    500: {"model": ErrorResponse},
    503: {"model": ErrorResponse},
}


def _correlation_id(request: Request) -> str | None:
    return getattr(request.state, "correlation_id", None)


def _submission_response(result: SubmissionResult, response: Response) -> None:
    response.status_code = (
        status.HTTP_200_OK if result.is_cache_hit else status.HTTP_202_ACCEPTED
    )


def create_routes(services: "Services") -> APIRouter:
    """Create and configure API routes.

    Args:
        services: Wired pipeline components

    Returns:
        Configured APIRouter
    """
    api_router = APIRouter()
    orchestrator = services.orchestrator

    # POST /generate - Cache lookup, else enqueue
    @api_router.post(
        "/generate",
        response_model=SubmissionResult,
        response_model_exclude_none=True,
        status_code=status.HTTP_202_ACCEPTED,
        responses={200: {"model": SubmissionResult}, **SUBMISSION_RESPONSES},
    )
    async def generate(
        body: GenerateRequest,
        request: Request,
        response: Response,
        user_id: str | None = Depends(optional_user),
    ) -> SubmissionResult:
        """Return a cached study set (200) or a job id to poll (202)."""
        result = await orchestrator.submit_topic(
            body.topic, user_id=user_id, correlation_id=_correlation_id(request)
        )
        _submission_response(result, response)
        return result

    # POST /generate/file - Document or image upload
    @api_router.post(
        "/generate/file",
        response_model=SubmissionResult,
        response_model_exclude_none=True,
        status_code=status.HTTP_202_ACCEPTED,
        responses=SUBMISSION_RESPONSES,
    )
    async def generate_from_file(
        request: Request,
        response: Response,
        file: UploadFile | None = File(None),
        instructions: str | None = Form(None),
        user_id: str | None = Depends(optional_user),
    ) -> SubmissionResult:
        """Queue generation from a PDF, TXT, PNG or JPEG upload."""
        data = await file.read() if file is not None else b""
        upload = extract_upload(
            file.filename if file is not None else None,
            data,
            content_type=file.content_type if file is not None else None,
            max_bytes=settings.max_upload_bytes,
        )
        instructions = (instructions or "").strip() or None
        if upload.is_image:
            result = await orchestrator.submit_image(
                upload.image,
                upload.mime_type,
                upload.title,
                instructions=instructions,
                user_id=user_id,
                correlation_id=_correlation_id(request),
            )
        else:
            result = await orchestrator.submit_document(
                upload.text,
                upload.title,
                instructions=instructions,
                user_id=user_id,
                correlation_id=_correlation_id(request),
            )
        _submission_response(result, response)
        return result

    # GET /jobs/{job_id} - Poll job status
    @api_router.get(
        "/jobs/{job_id}",
        response_model=JobStatus,
        response_model_exclude_none=True,
        responses={404: {"model": ErrorResponse}},
    )
    async def get_job(job_id: str) -> JobStatus:
        job = await orchestrator.get_job(job_id)
        if job is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="Job not found"
            )
        return job

    # GET /queue-status - Queue depth by state
    @api_router.get("/queue-status", response_model=QueueCounts)
    async def queue_status() -> QueueCounts:
        return await orchestrator.get_queue_counts()

    # GET /history - Caller's recently accessed sets
    @api_router.get(
        "/history",
        response_model=list[HistoryEntry],
        responses={401: {"model": ErrorResponse}},
    )
    async def history(user_id: str = Depends(required_user)) -> list[HistoryEntry]:
        return await orchestrator.get_history(user_id)

    # GET /sets/{study_set_id} - Full study set
    @api_router.get(
        "/sets/{study_set_id}",
        response_model=StudySet,
        responses={404: {"model": ErrorResponse}},
    )
    async def get_study_set(
        study_set_id: int, user_id: str | None = Depends(optional_user)
    ) -> StudySet:
        study_set = await orchestrator.get_study_set(study_set_id, user_id=user_id)
        if study_set is None:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND, detail="Study set not found"
            )
        return study_set

    # GET /health/live - Liveness probe
    @api_router.get(
        "/health/live",
        response_model=HealthResponse,
        response_model_exclude_none=True,
    )
    async def health_live() -> HealthResponse:
        """Liveness probe for Kubernetes."""
        return HealthResponse(
            status="healthy",
            timestamp=datetime.now(timezone.utc).isoformat(),
        )

    # GET /health/ready - Readiness probe
    @api_router.get(
        "/health/ready",
        response_model=HealthResponse,
        responses={503: {"model": ErrorResponse}},
    )
    async def health_ready() -> HealthResponse:
        """Readiness probe for Kubernetes.

        Ready when the repository answers. The breaker state is reported
        but an open breaker does not fail readiness: cache hits are still
        served while the model is unavailable.
        """
        try:
            database_ok = await services.repository.ping()
        except Exception as e:
            logger.error(f"Repository health check failed: {e}")
            database_ok = False

        if not database_ok:
            raise HTTPException(
                status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
                detail="Database unhealthy",
            )

        return HealthResponse(
            status="healthy",
            timestamp=datetime.now(timezone.utc).isoformat(),
            checks={
                "database": "ok",
                "circuit_breaker": services.breaker.snapshot(),
                "workers": services.queue.running,
            },
        )

    return api_router
