"""In-memory study-set repository.

Behaves like the PostgreSQL repository (same ordering, threshold and
atomicity rules) without a database. Used by the test suite and for local
runs with ``DATABASE_URL`` unset.
"""

import asyncio
import itertools
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from studygen.cache.repository import StudySetRepository
from studygen.cache.similarity import cosine_distance
from studygen.core.defaults import HISTORY_LIMIT, SEMANTIC_DISTANCE_THRESHOLD
from studygen.core.exceptions import DatabaseError
from studygen.core.models import Flashcard, HistoryEntry, QuizQuestion, StudySet

logger = logging.getLogger(__name__)


@dataclass
class _Row:
    id: int
    topic: str
    summary: str
    estimated_study_time_minutes: int
    embedding: list[float] | None
    created_at: datetime
    flashcards: list[Flashcard] = field(default_factory=list)
    quiz_questions: list[QuizQuestion] = field(default_factory=list)


class InMemoryStudySetRepository(StudySetRepository):
    """Dict-backed repository guarded by an asyncio.Lock.

    Inserts are staged and only become visible once every child row has been
    staged, mirroring a committed transaction.
    """

    def __init__(self) -> None:
        self._sets: dict[int, _Row] = {}
        self._activity: dict[tuple[str, int], tuple[int, datetime]] = {}
        self._ids = itertools.count(1)
        self._touches = itertools.count()
        self._lock = asyncio.Lock()

    async def find_by_exact_topic(self, topic: str) -> StudySet | None:
        async with self._lock:
            matches = [row for row in self._sets.values() if row.topic == topic]
            if not matches:
                return None
            latest = max(matches, key=lambda row: (row.created_at, row.id))
            return self._to_model(latest)

    async def find_by_semantic(
        self,
        embedding: list[float],
        threshold: float = SEMANTIC_DISTANCE_THRESHOLD,
    ) -> StudySet | None:
        async with self._lock:
            best: tuple[float, _Row] | None = None
            for row in self._sets.values():
                if row.embedding is None:
                    continue
                try:
                    distance = cosine_distance(embedding, row.embedding)
                except ValueError as e:
                    raise DatabaseError(
                        f"Semantic lookup failed: {e}",
                        details={"study_set_id": row.id},
                    ) from e
                if best is None or distance < best[0]:
                    best = (distance, row)

            if best is None or best[0] >= threshold:
                return None
            logger.info(f"Semantic match: '{best[1].topic}' (distance {best[0]:.4f})")
            return self._to_model(best[1])

    async def record_activity(self, user_id: str, study_set_id: int) -> None:
        async with self._lock:
            if study_set_id not in self._sets:
                raise DatabaseError(
                    "Study set does not exist",
                    details={"study_set_id": study_set_id},
                )
            self._activity[(user_id, study_set_id)] = (
                next(self._touches),
                datetime.now(timezone.utc),
            )

    async def create_study_set(
        self, data: StudySet, embedding: list[float] | None = None
    ) -> int:
        async with self._lock:
            staged = _Row(
                id=next(self._ids),
                topic=data.topic,
                summary=data.summary,
                estimated_study_time_minutes=data.estimated_study_time_minutes,
                embedding=list(embedding) if embedding else None,
                created_at=datetime.now(timezone.utc),
            )
            try:
                for card in data.flashcards:
                    staged.flashcards.append(self._insert_flashcard(card))
                for question in data.example_quiz_questions:
                    staged.quiz_questions.append(question.model_copy(deep=True))
            except Exception as e:
                logger.error(f"Study set insert rolled back: {e}")
                raise DatabaseError(
                    f"Failed to save study set: {e}", details={"topic": data.topic}
                ) from e

            self._sets[staged.id] = staged
            return staged.id

    def _insert_flashcard(self, card: Flashcard) -> Flashcard:
        """Per-row insert step, the counterpart of one INSERT INTO flashcards.

        Any exception raised here discards the whole staged set.
        """
        return card.model_copy(deep=True)

    async def get_by_id(self, study_set_id: int) -> StudySet | None:
        async with self._lock:
            row = self._sets.get(study_set_id)
            return self._to_model(row) if row else None

    async def get_user_history(
        self, user_id: str, limit: int = HISTORY_LIMIT
    ) -> list[HistoryEntry]:
        async with self._lock:
            accessed = sorted(
                (
                    (touch, accessed_at, set_id)
                    for (uid, set_id), (touch, accessed_at) in self._activity.items()
                    if uid == user_id
                ),
                reverse=True,
            )[:limit]
            return [
                HistoryEntry(
                    id=set_id,
                    topic=self._sets[set_id].topic,
                    summary=self._sets[set_id].summary,
                    estimated_study_time_minutes=self._sets[
                        set_id
                    ].estimated_study_time_minutes,
                    accessed_at=accessed_at,
                )
                for _, accessed_at, set_id in accessed
                if set_id in self._sets
            ]

    async def ping(self) -> bool:
        return True

    async def count(self) -> int:
        async with self._lock:
            return len(self._sets)

    @staticmethod
    def _to_model(row: _Row) -> StudySet:
        return StudySet(
            id=row.id,
            topic=row.topic,
            summary=row.summary,
            estimated_study_time_minutes=row.estimated_study_time_minutes,
            flashcards=[card.model_copy(deep=True) for card in row.flashcards],
            example_quiz_questions=[
                q.model_copy(deep=True) for q in row.quiz_questions
            ],
        )
