"""Exception hierarchy for the study-set generation pipeline.

Every failure mode in the pipeline maps to one of these classes so that
the HTTP layer and the job queue can translate them without inspecting
message text.
"""

from typing import Any


class StudyGenError(Exception):
    """Base exception for all studygen errors."""

    code: str = "STUDYGEN_ERROR"

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class ServiceUnavailableError(StudyGenError):
    """Circuit breaker is open, the guarded dependency was not called."""

    code: str = "SERVICE_UNAVAILABLE"


class GenerationError(StudyGenError):
    """Generative model call failed (API error, exhausted retries)."""

    code: str = "GENERATION_FAILED"


class InvalidOutputError(GenerationError):
    """Model returned output that cannot become a study set.

    Retryable inside the generation loop.
    """

    code: str = "INVALID_MODEL_OUTPUT"


class InvalidJSONError(InvalidOutputError):
    """Model output is not parseable JSON."""

    def __init__(
        self,
        message: str = "Invalid JSON syntax received from model",
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details)


class SchemaValidationError(InvalidOutputError):
    """Model output is JSON but does not match the study-set schema."""

    def __init__(self, issues: list[str], details: dict[str, Any] | None = None):
        self.issues = list(issues)
        super().__init__(
            f"Schema Validation Failed: {', '.join(self.issues)}",
            {**(details or {}), "issues": self.issues},
        )


class EmbeddingError(StudyGenError):
    """Embedding generation failed or returned no vector."""

    code: str = "EMBEDDING_FAILED"


class DatabaseError(StudyGenError):
    """Database operation failed (connection, query, transaction)."""

    code: str = "DATABASE_ERROR"


class QueueError(StudyGenError):
    """Job queue backing store operation failed."""

    code: str = "QUEUE_ERROR"


class ConfigurationError(StudyGenError):
    """Configuration error (missing credentials, invalid settings)."""

    code: str = "CONFIGURATION_ERROR"


class InputValidationError(StudyGenError):
    """Client input rejected before any work was done."""

    code: str = "VALIDATION_ERROR"


class PollingTimeoutError(StudyGenError):
    """Client gave up waiting for a job to reach a terminal state."""

    code: str = "POLLING_TIMEOUT"
