"""Request orchestration: cache tiers in front of the generation queue.

Topic submission order:
    1. exact-topic cache
    2. embedding of the raw topic (failure: enqueue without one)
    3. semantic cache with that embedding
    4. enqueue, carrying the embedding for the worker to reuse

Uploaded documents and images skip both cache tiers and go straight to the
queue. The worker embeds the generated topic, so later topic requests can
still hit those artifacts.
"""

import base64
from uuid import uuid4

from studygen.cache.repository import StudySetRepository
from studygen.core.defaults import HISTORY_LIMIT, SEMANTIC_DISTANCE_THRESHOLD
from studygen.core.exceptions import InputValidationError, StudyGenError
from studygen.core.models import (
    HistoryEntry,
    ImagePayload,
    JobPayload,
    JobStatus,
    QueueCounts,
    StudySet,
    SubmissionResult,
)
from studygen.generation.client import GenerationClient
from studygen.observability.logging import LogEvents, get_logger
from studygen.observability.metrics import record_cache_hit, record_cache_miss
from studygen.queue.queue import JobQueue

logger = get_logger(__name__)


class RequestOrchestrator:
    """Entry point for every client request."""

    def __init__(
        self,
        repository: StudySetRepository,
        generation_client: GenerationClient,
        queue: JobQueue,
        semantic_threshold: float = SEMANTIC_DISTANCE_THRESHOLD,
        history_limit: int = HISTORY_LIMIT,
    ):
        self.repository = repository
        self.generation_client = generation_client
        self.queue = queue
        self.semantic_threshold = semantic_threshold
        self.history_limit = history_limit

    async def submit_topic(
        self,
        topic: str,
        user_id: str | None = None,
        correlation_id: str | None = None,
    ) -> SubmissionResult:
        """Answer from cache or enqueue a generation job.

        Raises:
            InputValidationError: Topic missing, not a string, or blank
            QueueError: Job could not be enqueued
        """
        if not isinstance(topic, str) or not topic.strip():
            raise InputValidationError("Topic is required and must be a string")
        correlation_id = correlation_id or str(uuid4())

        exact = await self._lookup_exact(topic)
        if exact is not None:
            return await self._cache_hit(exact, "exact_cache", user_id)

        try:
            embedding: list[float] | None = (
                await self.generation_client.generate_embedding(topic)
            )
        except Exception as e:
            # Covers breaker-open rejections as well as upstream failures
            logger.warning(
                LogEvents.EMBEDDING_FAILED,
                topic=topic,
                error=str(e),
                correlation_id=correlation_id,
            )
            embedding = None

        if embedding is not None:
            similar = await self._lookup_semantic(embedding)
            if similar is not None:
                return await self._cache_hit(similar, "semantic_cache", user_id)

        record_cache_miss()
        job_id = await self.queue.enqueue(
            JobPayload(
                topic=topic,
                user_id=user_id,
                embedding=embedding,
                correlation_id=correlation_id,
            )
        )
        logger.info(LogEvents.CACHE_MISS, topic=topic, job_id=job_id)
        return SubmissionResult(
            status="pending",
            job_id=job_id,
            source="queued",
            message=f"Request accepted. Poll /jobs/{job_id} for results.",
        )

    async def submit_document(
        self,
        text: str,
        title: str,
        instructions: str | None = None,
        user_id: str | None = None,
        correlation_id: str | None = None,
    ) -> SubmissionResult:
        """Queue generation from extracted document text."""
        if not text.strip():
            raise InputValidationError("Document contains no extractable text")
        return await self._enqueue_upload(
            JobPayload(
                topic=title,
                user_id=user_id,
                raw_content=text,
                instructions=instructions,
                correlation_id=correlation_id or str(uuid4()),
            )
        )

    async def submit_image(
        self,
        data: bytes,
        mime_type: str,
        title: str,
        instructions: str | None = None,
        user_id: str | None = None,
        correlation_id: str | None = None,
    ) -> SubmissionResult:
        """Queue generation from an image."""
        if not data:
            raise InputValidationError("Image is empty")
        return await self._enqueue_upload(
            JobPayload(
                topic=title,
                user_id=user_id,
                instructions=instructions,
                image=ImagePayload(
                    data=base64.b64encode(data).decode("ascii"), mime_type=mime_type
                ),
                correlation_id=correlation_id or str(uuid4()),
            )
        )

    async def get_job(self, job_id: str) -> JobStatus | None:
        return await self.queue.get_status(job_id)

    async def get_queue_counts(self) -> QueueCounts:
        return await self.queue.get_counts()

    async def get_history(self, user_id: str) -> list[HistoryEntry]:
        return await self.repository.get_user_history(user_id, self.history_limit)

    async def get_study_set(
        self, study_set_id: int, user_id: str | None = None
    ) -> StudySet | None:
        study_set = await self.repository.get_by_id(study_set_id)
        if study_set is not None and user_id:
            await self._record_activity(user_id, study_set_id)
        return study_set

    # --- internals ---

    async def _enqueue_upload(self, payload: JobPayload) -> SubmissionResult:
        job_id = await self.queue.enqueue(payload)
        return SubmissionResult(
            status="pending",
            job_id=job_id,
            source="queued",
            message=f"Request accepted. Poll /jobs/{job_id} for results.",
        )

    async def _lookup_exact(self, topic: str) -> StudySet | None:
        try:
            return await self.repository.find_by_exact_topic(topic)
        except StudyGenError as e:
            logger.error(LogEvents.CACHE_ERROR, tier="exact", error=e.message)
            return None

    async def _lookup_semantic(self, embedding: list[float]) -> StudySet | None:
        try:
            return await self.repository.find_by_semantic(
                embedding, self.semantic_threshold
            )
        except StudyGenError as e:
            logger.error(LogEvents.CACHE_ERROR, tier="semantic", error=e.message)
            return None

    async def _cache_hit(
        self, study_set: StudySet, source: str, user_id: str | None
    ) -> SubmissionResult:
        tier = source.removesuffix("_cache")
        record_cache_hit(tier)
        logger.info(
            LogEvents.CACHE_HIT,
            tier=tier,
            study_set_id=study_set.id,
            topic=study_set.topic,
        )
        if user_id and study_set.id is not None:
            await self._record_activity(user_id, study_set.id)

        return SubmissionResult(
            status="completed",
            result=study_set,
            source=source,  # type: ignore[arg-type]
            message=f"Retrieved from {tier} cache",
        )

    async def _record_activity(self, user_id: str, study_set_id: int) -> None:
        try:
            await self.repository.record_activity(user_id, study_set_id)
        except StudyGenError as e:
            logger.warning(
                LogEvents.ACTIVITY_RECORD_FAILED,
                user_id=user_id,
                study_set_id=study_set_id,
                error=e.message,
            )
