"""Unit tests for studygen.cache.memory."""

import pytest

from studygen.cache.memory import InMemoryStudySetRepository
from studygen.core.exceptions import DatabaseError
from studygen.core.models import Flashcard, StudySet

# Query vector and stored vectors at chosen cosine distances from it.
# Integer components keep the norms exact.
QUERY = [1.0, 0.0, 0.0, 0.0, 0.0, 0.0]
AT_0_24 = [19.0, 16.0, 2.0, 2.0, 0.0, 0.0]  # |v| = 25, cos = 0.76
AT_0_25 = [3.0, 2.0, 1.0, 1.0, 1.0, 0.0]  # |v| = 4, cos = 0.75
AT_0_26 = [37.0, 33.0, 6.0, 2.0, 1.0, 1.0]  # |v| = 50, cos = 0.74


@pytest.fixture
def study_set(make_study_set_dict):
    return StudySet.model_validate(make_study_set_dict("Photosynthesis"))


class TestExactLookup:
    async def test_miss_on_empty(self, repository):
        assert await repository.find_by_exact_topic("Photosynthesis") is None

    async def test_case_sensitive(self, repository, study_set):
        await repository.create_study_set(study_set)
        assert await repository.find_by_exact_topic("photosynthesis") is None

    async def test_returns_most_recent(self, repository, make_study_set_dict):
        older = StudySet.model_validate(make_study_set_dict("Cells", cards=4))
        newer = StudySet.model_validate(make_study_set_dict("Cells", cards=6))
        await repository.create_study_set(older)
        newer_id = await repository.create_study_set(newer)

        found = await repository.find_by_exact_topic("Cells")

        assert found.id == newer_id
        assert len(found.flashcards) == 6


class TestSemanticThreshold:
    """Distance must be strictly below the threshold."""

    @pytest.mark.parametrize(
        "stored, expect_hit",
        [(AT_0_24, True), (AT_0_25, False), (AT_0_26, False)],
        ids=["0.24-hit", "0.25-miss", "0.26-miss"],
    )
    async def test_boundary(self, repository, study_set, stored, expect_hit):
        await repository.create_study_set(study_set, stored)

        found = await repository.find_by_semantic(QUERY, threshold=0.25)

        assert (found is not None) is expect_hit

    async def test_ignores_sets_without_embedding(self, repository, study_set):
        await repository.create_study_set(study_set, None)
        assert await repository.find_by_semantic(QUERY) is None

    async def test_picks_nearest(self, repository, make_study_set_dict):
        far = StudySet.model_validate(make_study_set_dict("Far"))
        near = StudySet.model_validate(make_study_set_dict("Near"))
        await repository.create_study_set(far, AT_0_24)
        await repository.create_study_set(near, QUERY)

        found = await repository.find_by_semantic(QUERY)
        assert found.topic == "Near"

    async def test_dimension_mismatch_is_database_error(self, repository, study_set):
        await repository.create_study_set(study_set, QUERY)

        with pytest.raises(DatabaseError, match="Semantic lookup failed"):
            await repository.find_by_semantic([1.0, 0.0, 0.0])


class TestCreateStudySet:
    async def test_round_trips_children(self, repository, study_set):
        set_id = await repository.create_study_set(study_set)
        loaded = await repository.get_by_id(set_id)

        assert loaded.id == set_id
        assert [c.id for c in loaded.flashcards] == [
            c.id for c in study_set.flashcards
        ]
        assert loaded.example_quiz_questions == study_set.example_quiz_questions

    async def test_rollback_on_third_of_five_flashcards(self, make_study_set_dict):
        """Test a failure mid-insert leaves no set and no partial children."""

        class FailingRepository(InMemoryStudySetRepository):
            inserted = 0

            def _insert_flashcard(self, card: Flashcard) -> Flashcard:
                self.inserted += 1
                if self.inserted == 3:
                    raise RuntimeError("constraint violated")
                return super()._insert_flashcard(card)

        repository = FailingRepository()
        study_set = StudySet.model_validate(make_study_set_dict("Cells", cards=5))

        with pytest.raises(DatabaseError, match="Failed to save study set"):
            await repository.create_study_set(study_set, QUERY)

        assert await repository.count() == 0
        assert await repository.find_by_exact_topic("Cells") is None
        assert await repository.find_by_semantic(QUERY) is None

    async def test_get_missing(self, repository):
        assert await repository.get_by_id(404) is None


class TestActivity:
    async def test_history_newest_first_and_deduplicated(
        self, repository, make_study_set_dict
    ):
        first = await repository.create_study_set(
            StudySet.model_validate(make_study_set_dict("First"))
        )
        second = await repository.create_study_set(
            StudySet.model_validate(make_study_set_dict("Second"))
        )

        await repository.record_activity("u1", first)
        await repository.record_activity("u1", second)
        await repository.record_activity("u1", first)
        await repository.record_activity("u2", second)

        history = await repository.get_user_history("u1")

        assert [entry.topic for entry in history] == ["First", "Second"]

    async def test_history_limit(self, repository, make_study_set_dict):
        for i in range(4):
            set_id = await repository.create_study_set(
                StudySet.model_validate(make_study_set_dict(f"T{i}"))
            )
            await repository.record_activity("u1", set_id)

        assert len(await repository.get_user_history("u1", limit=2)) == 2

    async def test_unknown_set_rejected(self, repository):
        with pytest.raises(DatabaseError):
            await repository.record_activity("u1", 12345)
