"""studygen - flashcard and quiz generation behind a two-tier cache.

A topic request is answered from the exact-topic cache, then the semantic
cache (embedding cosine distance), and only then queued for generation by
a generative model guarded by a circuit breaker.

Basic usage:
    >>> from studygen import StudyGenClient
    >>> async with StudyGenClient("http://localhost:3000") as client:
    ...     study_set = await client.generate("Photosynthesis")
    >>> study_set.flashcards[0].front
"""

from dotenv import load_dotenv

load_dotenv()

__version__ = "0.1.0"

from studygen.client import StudyGenClient  # noqa: E402
from studygen.core import (  # noqa: E402
    ConfigurationError,
    DatabaseError,
    EmbeddingError,
    GenerationError,
    InputValidationError,
    PollingTimeoutError,
    QueueError,
    ServiceUnavailableError,
    StudyGenError,
    StudySet,
    settings,
)
from studygen.orchestrator import RequestOrchestrator  # noqa: E402

__all__ = [
    # Main interface
    "RequestOrchestrator",
    "StudyGenClient",
    # Models
    "StudySet",
    # Configuration
    "settings",
    # Exceptions
    "StudyGenError",
    "ConfigurationError",
    "DatabaseError",
    "EmbeddingError",
    "GenerationError",
    "InputValidationError",
    "PollingTimeoutError",
    "QueueError",
    "ServiceUnavailableError",
    "__version__",
]
