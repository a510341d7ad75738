"""Job processor: turns a queued payload into a persisted study set."""

from studygen.cache.repository import StudySetRepository
from studygen.core.exceptions import StudyGenError
from studygen.core.models import Job, StudySet
from studygen.generation.client import GenerationClient
from studygen.observability.logging import LogEvents, get_logger

logger = get_logger(__name__)


class StudySetJobProcessor:
    """Worker body run once per job attempt.

    Steps run strictly in order: generate, embed the result topic if the job
    carried no embedding, persist, record activity. Embedding and activity
    failures are logged and skipped; generation and persistence failures fail
    the attempt.
    """

    def __init__(
        self, generation_client: GenerationClient, repository: StudySetRepository
    ):
        self.generation_client = generation_client
        self.repository = repository

    async def __call__(self, job: Job) -> StudySet:
        payload = job.payload
        study_set = await self.generation_client.generate_study_set(
            payload.source(), correlation_id=payload.correlation_id
        )

        embedding = payload.embedding
        if embedding is None:
            embedding = await self._embed_result_topic(study_set.topic)

        set_id = await self.repository.create_study_set(study_set, embedding)
        logger.info(
            LogEvents.STUDY_SET_PERSISTED,
            study_set_id=set_id,
            topic=study_set.topic,
            has_embedding=embedding is not None,
        )

        if payload.user_id:
            try:
                await self.repository.record_activity(payload.user_id, set_id)
            except StudyGenError as e:
                logger.warning(
                    LogEvents.ACTIVITY_RECORD_FAILED,
                    user_id=payload.user_id,
                    study_set_id=set_id,
                    error=e.message,
                )

        return study_set.model_copy(update={"id": set_id})

    async def _embed_result_topic(self, topic: str) -> list[float] | None:
        # The model's topic can differ from the raw input
        try:
            return await self.generation_client.generate_embedding(topic)
        except Exception as e:
            logger.warning(LogEvents.EMBEDDING_FAILED, topic=topic, error=str(e))
            return None
