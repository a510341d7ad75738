"""Study-set persistence and the exact/semantic cache tiers."""

from studygen.cache.memory import InMemoryStudySetRepository
from studygen.cache.repository import PostgresStudySetRepository, StudySetRepository
from studygen.cache.similarity import cosine_distance

__all__ = [
    "InMemoryStudySetRepository",
    "PostgresStudySetRepository",
    "StudySetRepository",
    "cosine_distance",
]
