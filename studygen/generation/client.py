"""Breaker-guarded generation client with a self-correcting retry loop.

Every failed model call is retried inside the loop, up to three calls with
rising temperature. Malformed output (bad JSON, schema violations, empty
responses) is re-prompted with a corrective suffix; transport and service
errors resend the same prompt. When the loop runs out, the last error reaches
the circuit breaker as one failure.
"""

import time
from uuid import uuid4

from studygen.core.circuit_breaker import CircuitBreaker
from studygen.core.defaults import (
    BASE_TEMPERATURE,
    GENERATION_MAX_RETRIES,
    TEMPERATURE_STEP,
)
from studygen.core.exceptions import (
    EmbeddingError,
    InvalidJSONError,
    InvalidOutputError,
    SchemaValidationError,
)
from studygen.core.models import DocumentSource, ImageSource, StudySet, TopicSource
from studygen.generation.parsing import STUDY_SET_RESPONSE_SCHEMA, parse_study_set
from studygen.generation.prompts import build_corrective_prompt, build_prompt
from studygen.generation.providers.base import EmbeddingProvider, GenerativeModel
from studygen.observability.logging import LogEvents, get_logger
from studygen.observability.metrics import record_generation_attempt
from studygen.observability.tracing import trace_operation

logger = get_logger(__name__)


def _attempt_result(error: Exception) -> str:
    if isinstance(error, InvalidJSONError):
        return "invalid_json"
    if isinstance(error, SchemaValidationError):
        return "invalid_schema"
    return "error"


class GenerationClient:
    """Embedding and study-set generation behind one circuit breaker."""

    def __init__(
        self,
        model: GenerativeModel,
        embedder: EmbeddingProvider,
        breaker: CircuitBreaker,
        max_retries: int = GENERATION_MAX_RETRIES,
        base_temperature: float = BASE_TEMPERATURE,
        temperature_step: float = TEMPERATURE_STEP,
    ):
        self.model = model
        self.embedder = embedder
        self.breaker = breaker
        self.max_retries = max_retries
        self.base_temperature = base_temperature
        self.temperature_step = temperature_step

    @trace_operation("generation.embedding")
    async def generate_embedding(self, text: str) -> list[float]:
        """Embed ``text`` with a single breaker-guarded call (no retry).

        Raises:
            EmbeddingError: The service returned no vector
            ServiceUnavailableError: Breaker open
        """

        async def _embed() -> list[float]:
            vector = await self.embedder.embed(text)
            if not vector:
                raise EmbeddingError("Failed to generate embedding")
            return vector

        return await self.breaker.execute(_embed)

    @trace_operation("generation.study_set")
    async def generate_study_set(
        self,
        source: TopicSource | DocumentSource | ImageSource,
        correlation_id: str | None = None,
    ) -> StudySet:
        """Generate a validated study set.

        Args:
            source: Topic, extracted document text, or image input
            correlation_id: Id threaded through logs for this request

        Returns:
            Validated StudySet (not yet persisted, ``id`` is None)

        Raises:
            InvalidOutputError: Every attempt failed, the last with bad output
            Exception: Every attempt failed, the last with this upstream error
            ServiceUnavailableError: Breaker open
        """
        correlation_id = correlation_id or str(uuid4())
        return await self.breaker.execute(
            lambda: self._generate_with_retries(source, correlation_id)
        )

    async def _generate_with_retries(
        self,
        source: TopicSource | DocumentSource | ImageSource,
        correlation_id: str,
    ) -> StudySet:
        original = build_prompt(source)
        contents = original
        total_attempts = self.max_retries + 1
        last_error: Exception | None = None

        for attempt in range(total_attempts):
            temperature = round(
                self.base_temperature + attempt * self.temperature_step, 2
            )
            logger.info(
                LogEvents.GENERATION_ATTEMPT,
                attempt=attempt + 1,
                total_attempts=total_attempts,
                temperature=temperature,
                source=source.kind,
                correlation_id=correlation_id,
            )
            started = time.perf_counter()

            try:
                text = await self.model.generate(
                    contents, STUDY_SET_RESPONSE_SCHEMA, temperature
                )
                if not text or not text.strip():
                    raise InvalidOutputError("Empty response from model")
                study_set = parse_study_set(text)
            except InvalidOutputError as e:
                last_error = e
                record_generation_attempt(_attempt_result(e))
                logger.warning(
                    LogEvents.GENERATION_ATTEMPT_FAILED,
                    attempt=attempt + 1,
                    error=e.message,
                    correlation_id=correlation_id,
                )
                # Image parts cannot carry a corrective suffix; only temperature changes
                if isinstance(original, str):
                    contents = build_corrective_prompt(original, e.message)
                continue
            except Exception as e:
                # Upstream failure: same prompt again, nothing to correct
                last_error = e
                record_generation_attempt("error")
                logger.warning(
                    LogEvents.GENERATION_ATTEMPT_FAILED,
                    attempt=attempt + 1,
                    error=str(e) or type(e).__name__,
                    upstream=True,
                    correlation_id=correlation_id,
                )
                continue

            record_generation_attempt(
                "ok", latency_ms=(time.perf_counter() - started) * 1000
            )
            logger.info(
                LogEvents.GENERATION_SUCCEEDED,
                attempt=attempt + 1,
                topic=study_set.topic,
                flashcards=len(study_set.flashcards),
                correlation_id=correlation_id,
            )
            return study_set

        assert last_error is not None
        logger.error(
            LogEvents.GENERATION_EXHAUSTED,
            attempts=total_attempts,
            error=str(last_error) or type(last_error).__name__,
            correlation_id=correlation_id,
        )
        raise last_error
