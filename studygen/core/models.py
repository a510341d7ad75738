"""Core data models for studygen.

This module defines Pydantic models for study artifacts, generation inputs,
queue jobs and the API-facing status/submission shapes.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Literal
from uuid import uuid4

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


def _card_id() -> str:
    return uuid4().hex[:9]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Flashcard(BaseModel):
    """Single question/answer card."""

    id: str = Field(default_factory=_card_id, description="Card identifier")
    front: str = Field(..., description="Question (one sentence)")
    back: str = Field(..., description="Answer (at most 60 words)")
    difficulty: Literal["easy", "medium", "hard"] = Field(default="medium")
    tags: list[str] = Field(default_factory=list)


class QuizQuestion(BaseModel):
    """Multiple-choice question with the index of the correct choice."""

    question: str
    choices: list[str]
    answer_index: int = Field(..., ge=0)


class StudySet(BaseModel):
    """Generated study artifact.

    ``id`` is None until the artifact has been persisted. The embedding is
    owned by the repository and never travels with the artifact.
    """

    model_config = ConfigDict(populate_by_name=True)

    id: int | None = Field(default=None, description="Persisted identifier")
    topic: str
    summary: str
    estimated_study_time_minutes: int = Field(..., ge=0)
    flashcards: list[Flashcard]
    example_quiz_questions: list[QuizQuestion] = Field(
        default_factory=list,
        validation_alias=AliasChoices("example_quiz_questions", "quizQuestions"),
    )


# --- Generation inputs ---------------------------------------------------


class TopicSource(BaseModel):
    kind: Literal["topic"] = "topic"
    topic: str


class DocumentSource(BaseModel):
    kind: Literal["document"] = "document"
    text: str
    instructions: str | None = None


class ImageSource(BaseModel):
    kind: Literal["image"] = "image"
    data: str = Field(..., description="Base64-encoded image bytes")
    mime_type: str
    instructions: str | None = None


SourceInput = Annotated[
    TopicSource | DocumentSource | ImageSource, Field(discriminator="kind")
]


class ImagePayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    data: str
    mime_type: str = Field(..., validation_alias=AliasChoices("mime_type", "mimeType"))


class JobPayload(BaseModel):
    """Data carried by a generation job from enqueue to worker."""

    topic: str
    user_id: str | None = None
    embedding: list[float] | None = None
    correlation_id: str = Field(default_factory=lambda: str(uuid4()))
    raw_content: str | None = None
    instructions: str | None = None
    image: ImagePayload | None = None

    def source(self) -> TopicSource | DocumentSource | ImageSource:
        """Derive the generation input variant from the payload shape."""
        if self.image is not None:
            return ImageSource(
                data=self.image.data,
                mime_type=self.image.mime_type,
                instructions=self.instructions,
            )
        if self.raw_content is not None:
            return DocumentSource(text=self.raw_content, instructions=self.instructions)
        return TopicSource(topic=self.topic)


# --- Queue -----------------------------------------------------------------


class JobState(str, Enum):
    """Internal job lifecycle. Retries move a job back to WAITING."""

    WAITING = "waiting"
    ACTIVE = "active"
    COMPLETED = "completed"
    FAILED = "failed"


class PublicJobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @classmethod
    def from_state(cls, state: JobState) -> "PublicJobStatus":
        if state is JobState.ACTIVE:
            return cls.PROCESSING
        if state is JobState.COMPLETED:
            return cls.COMPLETED
        if state is JobState.FAILED:
            return cls.FAILED
        return cls.PENDING


class Job(BaseModel):
    """Queue record of one generation job."""

    id: str
    payload: JobPayload
    state: JobState = JobState.WAITING
    attempts_made: int = 0
    result: StudySet | None = None
    failure_reason: str | None = None
    created_at: datetime = Field(default_factory=_utcnow)
    processed_at: datetime | None = None
    finished_at: datetime | None = None


class JobStatus(BaseModel):
    """Client-facing view of a job."""

    model_config = ConfigDict(populate_by_name=True)

    id: str
    topic: str
    status: PublicJobStatus
    result: StudySet | None = None
    error: str | None = None
    created_at: datetime = Field(..., alias="createdAt")
    finished_at: datetime | None = Field(default=None, alias="finishedAt")

    @classmethod
    def from_job(cls, job: Job) -> "JobStatus":
        return cls(
            id=job.id,
            topic=job.payload.topic,
            status=PublicJobStatus.from_state(job.state),
            result=job.result,
            error=job.failure_reason,
            created_at=job.created_at,
            finished_at=job.finished_at,
        )


class QueueCounts(BaseModel):
    active: int = 0
    waiting: int = 0
    completed: int = 0
    failed: int = 0


# --- API shapes ------------------------------------------------------------


class SubmissionResult(BaseModel):
    """Outcome of a submit call: a synchronous cache hit or a queued job."""

    model_config = ConfigDict(populate_by_name=True)

    status: Literal["completed", "pending"]
    job_id: str | None = Field(default=None, alias="jobId")
    result: StudySet | None = None
    source: Literal["exact_cache", "semantic_cache", "queued"]
    message: str

    @property
    def is_cache_hit(self) -> bool:
        return self.status == "completed"


class HistoryEntry(BaseModel):
    id: int
    topic: str
    summary: str
    estimated_study_time_minutes: int
    accessed_at: datetime

