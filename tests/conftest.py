"""Pytest configuration and fixtures for studygen tests."""

import json
from typing import Any

import pytest

from studygen.cache.memory import InMemoryStudySetRepository
from studygen.core.circuit_breaker import CircuitBreaker
from studygen.generation.client import GenerationClient
from studygen.generation.providers.base import (
    EmbeddingProvider,
    GenerativeModel,
    PromptContents,
)
from studygen.orchestrator import RequestOrchestrator
from studygen.queue.queue import JobQueue
from studygen.queue.store import InMemoryJobStore
from studygen.queue.worker import StudySetJobProcessor
from studygen.utils.service_factory import Services

EMBEDDING_DIM = 6


def study_set_dict(
    topic: str = "Photosynthesis", cards: int = 5, questions: int = 2
) -> dict[str, Any]:
    """Well-formed model output for a study set."""
    return {
        "topic": topic,
        "summary": f"{topic} in a few sentences. It matters for exams.",
        "estimated_study_time_minutes": 20,
        "flashcards": [
            {
                "id": f"card-{i}",
                "front": f"Question {i} about {topic}?",
                "back": f"Answer {i}.",
                "difficulty": "easy" if i % 2 else "medium",
                "tags": [topic.lower()],
            }
            for i in range(cards)
        ],
        "example_quiz_questions": [
            {
                "question": f"Quiz {i} on {topic}?",
                "choices": ["A", "B", "C", "D"],
                "answer_index": i % 4,
            }
            for i in range(questions)
        ],
    }


def study_set_json(topic: str = "Photosynthesis", **kwargs: Any) -> str:
    return json.dumps(study_set_dict(topic, **kwargs))


class FakeClock:
    """Manually advanced clock for breaker and store tests."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class ScriptedModel(GenerativeModel):
    """Generative model that replays scripted responses.

    Each entry is returned in order; an Exception entry is raised instead.
    Once the script runs out the last entry repeats.
    """

    name = "scripted"

    def __init__(self, responses: list[str | Exception] | None = None):
        self.responses = list(responses or [study_set_json()])
        self.calls: list[dict[str, Any]] = []

    async def generate(
        self,
        contents: PromptContents,
        schema: dict[str, Any],
        temperature: float,
    ) -> str:
        self.calls.append({"contents": contents, "temperature": temperature})
        index = min(len(self.calls) - 1, len(self.responses) - 1)
        response = self.responses[index]
        if isinstance(response, Exception):
            raise response
        return response


class TableEmbedder(EmbeddingProvider):
    """Embeds known texts from a table, everything else as a zero vector.

    Zero vectors are at distance 1.0 from everything, so unknown texts
    never produce a semantic hit.
    """

    def __init__(
        self,
        table: dict[str, list[float]] | None = None,
        error: Exception | None = None,
    ):
        self.table = dict(table or {})
        self.error = error
        self.calls: list[str] = []

    async def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.error is not None:
            raise self.error
        return list(self.table.get(text, [0.0] * EMBEDDING_DIM))

    @property
    def dimension(self) -> int:
        return EMBEDDING_DIM

    @property
    def provider_name(self) -> str:
        return "table"


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def breaker(clock: FakeClock) -> CircuitBreaker:
    return CircuitBreaker(name="test", failure_threshold=5, cooldown=30.0, clock=clock)


@pytest.fixture
def model() -> ScriptedModel:
    return ScriptedModel()


@pytest.fixture
def embedder() -> TableEmbedder:
    return TableEmbedder()


@pytest.fixture
def generation_client(
    model: ScriptedModel, embedder: TableEmbedder, breaker: CircuitBreaker
) -> GenerationClient:
    return GenerationClient(model=model, embedder=embedder, breaker=breaker)


@pytest.fixture
def repository() -> InMemoryStudySetRepository:
    return InMemoryStudySetRepository()


@pytest.fixture
def job_store() -> InMemoryJobStore:
    return InMemoryJobStore()


@pytest.fixture
def queue(
    job_store: InMemoryJobStore,
    generation_client: GenerationClient,
    repository: InMemoryStudySetRepository,
) -> JobQueue:
    """Queue with zero backoff so retries are immediately claimable."""
    return JobQueue(
        job_store,
        processor=StudySetJobProcessor(generation_client, repository),
        concurrency=1,
        attempts=3,
        backoff=0.0,
        poll_interval=0.01,
        maintenance_interval=0.01,
    )


@pytest.fixture
def orchestrator(
    repository: InMemoryStudySetRepository,
    generation_client: GenerationClient,
    queue: JobQueue,
) -> RequestOrchestrator:
    return RequestOrchestrator(repository, generation_client, queue)


@pytest.fixture
def make_study_set_json():
    """Factory for well-formed model output: ``make_study_set_json(topic)``."""
    return study_set_json


@pytest.fixture
def make_study_set_dict():
    return study_set_dict


@pytest.fixture
def services(
    repository: InMemoryStudySetRepository,
    breaker: CircuitBreaker,
    generation_client: GenerationClient,
    job_store: InMemoryJobStore,
    queue: JobQueue,
    orchestrator: RequestOrchestrator,
) -> Services:
    """Fully in-memory service graph for app-level tests."""
    return Services(
        repository=repository,
        breaker=breaker,
        generation_client=generation_client,
        job_store=job_store,
        queue=queue,
        orchestrator=orchestrator,
    )
