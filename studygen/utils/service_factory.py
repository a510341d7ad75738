"""Factory wiring the pipeline components from settings.

Shared by the API lifespan and the standalone worker command so both
processes build the same breaker, client, repository and queue.
"""

import logging
from dataclasses import dataclass

from studygen.cache.memory import InMemoryStudySetRepository
from studygen.cache.repository import PostgresStudySetRepository, StudySetRepository
from studygen.core.circuit_breaker import CircuitBreaker
from studygen.core.config import Settings, load_generation_config, settings
from studygen.core.database import Database
from studygen.generation.client import GenerationClient
from studygen.generation.providers.gemini import GeminiEmbeddingProvider, GeminiModel
from studygen.orchestrator import RequestOrchestrator
from studygen.queue.queue import JobQueue
from studygen.queue.store import InMemoryJobStore, JobStore, RedisJobStore
from studygen.queue.worker import StudySetJobProcessor

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Everything a process needs, plus handles for shutdown."""

    repository: StudySetRepository
    breaker: CircuitBreaker
    generation_client: GenerationClient
    job_store: JobStore
    queue: JobQueue
    orchestrator: RequestOrchestrator
    database: Database | None = None


def create_job_store(config: Settings) -> JobStore:
    retention = {
        "lock_seconds": config.job_lock_seconds,
        "completed_retention_seconds": config.completed_retention_seconds,
        "completed_retention_count": config.completed_retention_count,
        "failed_retention_seconds": config.failed_retention_seconds,
    }
    if config.queue_backend == "memory":
        logger.warning("Using in-memory job store; jobs are lost on restart")
        return InMemoryJobStore(**retention)
    return RedisJobStore.from_url(config.redis_url, config.queue_name, **retention)


async def create_services(
    config: Settings | None = None,
    generation_client: GenerationClient | None = None,
    repository: StudySetRepository | None = None,
    job_store: JobStore | None = None,
) -> Services:
    """Build and connect all pipeline components.

    Args:
        config: Settings (defaults to module settings)
        generation_client: Prebuilt client (skips Gemini setup and the
            credentials check)
        repository: Prebuilt repository (skips database connection)
        job_store: Prebuilt job store

    Raises:
        ConfigurationError: No model API key and no client supplied
        DatabaseError: Database unreachable after retries
    """
    config = config or settings

    database: Database | None = None
    if repository is None:
        if config.database_url:
            database = Database(
                config.database_url,
                min_size=config.database_pool_min,
                max_size=config.database_pool_max,
            )
            await database.connect()
            repository = PostgresStudySetRepository(database.require_pool())
        else:
            logger.warning("DATABASE_URL not set, using in-memory repository")
            repository = InMemoryStudySetRepository()

    if generation_client is None:
        config.require_credentials()
        generation = load_generation_config()
        breaker = CircuitBreaker(name="gemini")
        generation_client = GenerationClient(
            model=GeminiModel(config.gemini_api_key, name=config.generation_model),
            embedder=GeminiEmbeddingProvider(
                config.gemini_api_key,
                model=config.embedding_model,
                dimensions=config.embedding_dimensions,
            ),
            breaker=breaker,
            max_retries=generation["max_retries"],
            base_temperature=generation["base_temperature"],
            temperature_step=generation["temperature_step"],
        )

    job_store = job_store or create_job_store(config)
    queue = JobQueue(
        job_store,
        processor=StudySetJobProcessor(generation_client, repository),
        concurrency=config.queue_concurrency,
        attempts=config.job_attempts,
        backoff=config.job_backoff_seconds,
        poll_interval=config.queue_poll_interval,
    )
    orchestrator = RequestOrchestrator(
        repository,
        generation_client,
        queue,
        semantic_threshold=config.semantic_threshold,
        history_limit=config.history_limit,
    )

    return Services(
        repository=repository,
        breaker=generation_client.breaker,
        generation_client=generation_client,
        job_store=job_store,
        queue=queue,
        orchestrator=orchestrator,
        database=database,
    )
