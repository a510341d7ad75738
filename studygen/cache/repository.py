"""Study-set repository: artifact persistence and the two cache tiers.

Storage Options:
- PostgresStudySetRepository: asyncpg + pgvector, production backend
- InMemoryStudySetRepository (studygen.cache.memory): tests and local runs

Cache tiers:
- find_by_exact_topic: literal string equality, most recent artifact wins
- find_by_semantic: nearest neighbour by cosine distance, returned only when
  the distance is strictly below the threshold

Table Schema (see migrations/versions/):
    study_sets(id, topic, summary, estimated_study_time_minutes,
               embedding vector(768) NULL, created_at)
    flashcards(id, set_id -> study_sets ON DELETE CASCADE, card_key,
               front, back, difficulty, tags text[])
    quiz_questions(id, set_id -> study_sets ON DELETE CASCADE, question,
                   choices text[], answer_index)
    user_activity(user_id, study_set_id, accessed_at,
                  UNIQUE (user_id, study_set_id))
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any

import asyncpg

from studygen.cache.similarity import to_pgvector
from studygen.core.defaults import HISTORY_LIMIT, SEMANTIC_DISTANCE_THRESHOLD
from studygen.core.exceptions import DatabaseError
from studygen.core.models import Flashcard, HistoryEntry, QuizQuestion, StudySet
from studygen.observability.tracing import trace_operation

logger = logging.getLogger(__name__)

# Server-side SQL errors plus an unreachable or broken pool
DATABASE_ERRORS = (
    asyncpg.PostgresError,
    asyncpg.InterfaceError,
    OSError,
    asyncio.TimeoutError,
)


class StudySetRepository(ABC):
    """Abstract base class for study-set storage and cache lookups."""

    @abstractmethod
    async def find_by_exact_topic(self, topic: str) -> StudySet | None:
        """Return the most recent artifact whose topic equals ``topic`` exactly
        (case and whitespace sensitive), or None."""
        pass

    @abstractmethod
    async def find_by_semantic(
        self,
        embedding: list[float],
        threshold: float = SEMANTIC_DISTANCE_THRESHOLD,
    ) -> StudySet | None:
        """Return the closest artifact if its cosine distance < threshold.

        Artifacts stored without an embedding are never candidates. There is
        no "closest anyway" fallback.
        """
        pass

    @abstractmethod
    async def record_activity(self, user_id: str, study_set_id: int) -> None:
        """Upsert the (user, set) access timestamp. Idempotent."""
        pass

    @abstractmethod
    async def create_study_set(
        self, data: StudySet, embedding: list[float] | None = None
    ) -> int:
        """Persist artifact, flashcards and quiz questions atomically.

        Returns:
            Persisted study set id

        Raises:
            DatabaseError: Nothing was written
        """
        pass

    @abstractmethod
    async def get_by_id(self, study_set_id: int) -> StudySet | None:
        pass

    @abstractmethod
    async def get_user_history(
        self, user_id: str, limit: int = HISTORY_LIMIT
    ) -> list[HistoryEntry]:
        """Artifacts the user accessed, most recently accessed first."""
        pass

    @abstractmethod
    async def ping(self) -> bool:
        """Readiness probe."""
        pass


class PostgresStudySetRepository(StudySetRepository):
    """PostgreSQL + pgvector repository.

    Semantic lookup uses the ``<=>`` cosine distance operator, served by an
    HNSW index (vector_cosine_ops) on study_sets.embedding.
    """

    def __init__(self, pool: Any):
        """Initialize repository.

        Args:
            pool: asyncpg connection pool
        """
        self.pool = pool

    @trace_operation("cache.exact_lookup")
    async def find_by_exact_topic(self, topic: str) -> StudySet | None:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    SELECT id FROM study_sets
                    WHERE topic = $1
                    ORDER BY created_at DESC, id DESC
                    LIMIT 1
                    """,
                    topic,
                )
                if row is None:
                    return None
                return await self._load(conn, row["id"])
        except DATABASE_ERRORS as e:
            raise DatabaseError(f"Exact topic lookup failed: {e}") from e

    @trace_operation("cache.semantic_lookup")
    async def find_by_semantic(
        self,
        embedding: list[float],
        threshold: float = SEMANTIC_DISTANCE_THRESHOLD,
    ) -> StudySet | None:
        try:
            async with self.pool.acquire() as conn:
                row = await conn.fetchrow(
                    """
                    SELECT id, topic, (embedding <=> $1::text::vector) AS distance
                    FROM study_sets
                    WHERE embedding IS NOT NULL
                    ORDER BY distance ASC
                    LIMIT 1
                    """,
                    to_pgvector(embedding),
                )
                if row is None or row["distance"] >= threshold:
                    return None

                logger.info(
                    f"Semantic match: '{row['topic']}' (distance {row['distance']:.4f})"
                )
                return await self._load(conn, row["id"])
        except DATABASE_ERRORS as e:
            raise DatabaseError(f"Semantic lookup failed: {e}") from e

    async def record_activity(self, user_id: str, study_set_id: int) -> None:
        try:
            async with self.pool.acquire() as conn:
                await conn.execute(
                    """
                    INSERT INTO user_activity (user_id, study_set_id, accessed_at)
                    VALUES ($1, $2, NOW())
                    ON CONFLICT (user_id, study_set_id)
                    DO UPDATE SET accessed_at = NOW()
                    """,
                    user_id,
                    study_set_id,
                )
        except DATABASE_ERRORS as e:
            raise DatabaseError(
                f"Failed to record activity: {e}",
                details={"user_id": user_id, "study_set_id": study_set_id},
            ) from e

    async def create_study_set(
        self, data: StudySet, embedding: list[float] | None = None
    ) -> int:
        vector = to_pgvector(embedding) if embedding else None
        try:
            async with self.pool.acquire() as conn, conn.transaction():
                set_id: int = await conn.fetchval(
                    """
                    INSERT INTO study_sets
                        (topic, summary, estimated_study_time_minutes, embedding)
                    VALUES ($1, $2, $3, $4::text::vector)
                    RETURNING id
                    """,
                    data.topic,
                    data.summary,
                    data.estimated_study_time_minutes,
                    vector,
                )
                for card in data.flashcards:
                    await conn.execute(
                        """
                        INSERT INTO flashcards
                            (set_id, card_key, front, back, difficulty, tags)
                        VALUES ($1, $2, $3, $4, $5, $6)
                        """,
                        set_id,
                        card.id,
                        card.front,
                        card.back,
                        card.difficulty,
                        card.tags,
                    )
                for question in data.example_quiz_questions:
                    await conn.execute(
                        """
                        INSERT INTO quiz_questions
                            (set_id, question, choices, answer_index)
                        VALUES ($1, $2, $3, $4)
                        """,
                        set_id,
                        question.question,
                        question.choices,
                        question.answer_index,
                    )
        except DATABASE_ERRORS as e:
            logger.error(f"Study set transaction rolled back: {e}")
            raise DatabaseError(
                f"Failed to save study set: {e}", details={"topic": data.topic}
            ) from e

        logger.debug(f"Saved study set {set_id}: {data.topic}")
        return set_id

    async def get_by_id(self, study_set_id: int) -> StudySet | None:
        try:
            async with self.pool.acquire() as conn:
                return await self._load(conn, study_set_id)
        except DATABASE_ERRORS as e:
            raise DatabaseError(f"Failed to load study set: {e}") from e

    async def get_user_history(
        self, user_id: str, limit: int = HISTORY_LIMIT
    ) -> list[HistoryEntry]:
        try:
            async with self.pool.acquire() as conn:
                rows = await conn.fetch(
                    """
                    SELECT s.id, s.topic, s.summary, s.estimated_study_time_minutes,
                           ua.accessed_at
                    FROM user_activity ua
                    JOIN study_sets s ON ua.study_set_id = s.id
                    WHERE ua.user_id = $1
                    ORDER BY ua.accessed_at DESC
                    LIMIT $2
                    """,
                    user_id,
                    limit,
                )
        except DATABASE_ERRORS as e:
            raise DatabaseError(f"Failed to fetch history: {e}") from e

        return [HistoryEntry(**dict(row)) for row in rows]

    async def ping(self) -> bool:
        try:
            async with self.pool.acquire() as conn:
                await conn.fetchval("SELECT 1")
            return True
        except DATABASE_ERRORS as e:
            logger.warning(f"Database ping failed: {e}")
            return False

    async def _load(self, conn: Any, study_set_id: int) -> StudySet | None:
        row = await conn.fetchrow(
            """
            SELECT id, topic, summary, estimated_study_time_minutes
            FROM study_sets WHERE id = $1
            """,
            study_set_id,
        )
        if row is None:
            return None

        card_rows = await conn.fetch(
            """
            SELECT id, card_key, front, back, difficulty, tags
            FROM flashcards WHERE set_id = $1 ORDER BY id
            """,
            study_set_id,
        )
        quiz_rows = await conn.fetch(
            """
            SELECT question, choices, answer_index
            FROM quiz_questions WHERE set_id = $1 ORDER BY id
            """,
            study_set_id,
        )

        return StudySet(
            id=row["id"],
            topic=row["topic"],
            summary=row["summary"],
            estimated_study_time_minutes=row["estimated_study_time_minutes"],
            flashcards=[
                Flashcard(
                    id=r["card_key"] or str(r["id"]),
                    front=r["front"],
                    back=r["back"],
                    difficulty=r["difficulty"],
                    tags=list(r["tags"] or []),
                )
                for r in card_rows
            ],
            example_quiz_questions=[
                QuizQuestion(
                    question=r["question"],
                    choices=list(r["choices"] or []),
                    answer_index=r["answer_index"],
                )
                for r in quiz_rows
            ],
        )
