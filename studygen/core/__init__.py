"""Core infrastructure for the studygen pipeline."""

from studygen.core.circuit_breaker import CircuitBreaker, CircuitState
from studygen.core.config import Settings, load_generation_config, settings
from studygen.core.database import Database
from studygen.core.exceptions import (
    ConfigurationError,
    DatabaseError,
    EmbeddingError,
    GenerationError,
    InputValidationError,
    InvalidJSONError,
    InvalidOutputError,
    PollingTimeoutError,
    QueueError,
    SchemaValidationError,
    ServiceUnavailableError,
    StudyGenError,
)
from studygen.core.models import (
    DocumentSource,
    Flashcard,
    HistoryEntry,
    ImageSource,
    Job,
    JobPayload,
    JobState,
    JobStatus,
    PublicJobStatus,
    QueueCounts,
    QuizQuestion,
    StudySet,
    SubmissionResult,
    TopicSource,
)

__all__ = [
    # Configuration
    "Settings",
    "settings",
    "load_generation_config",
    # Infrastructure
    "CircuitBreaker",
    "CircuitState",
    "Database",
    # Exceptions
    "StudyGenError",
    "ConfigurationError",
    "DatabaseError",
    "EmbeddingError",
    "GenerationError",
    "InputValidationError",
    "InvalidJSONError",
    "InvalidOutputError",
    "PollingTimeoutError",
    "QueueError",
    "SchemaValidationError",
    "ServiceUnavailableError",
    # Models
    "DocumentSource",
    "Flashcard",
    "HistoryEntry",
    "ImageSource",
    "Job",
    "JobPayload",
    "JobState",
    "JobStatus",
    "PublicJobStatus",
    "QueueCounts",
    "QuizQuestion",
    "StudySet",
    "SubmissionResult",
    "TopicSource",
]
