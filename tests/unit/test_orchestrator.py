"""Unit tests for studygen.orchestrator."""

from unittest.mock import AsyncMock

import pytest

from studygen.core.circuit_breaker import CircuitState
from studygen.core.exceptions import DatabaseError, InputValidationError
from studygen.core.models import JobState, StudySet

PHOTO_VEC = [1.0, 0.0, 0.0, 0.0, 0.0, 0.0]
NEAR_PHOTO_VEC = [19.0, 16.0, 2.0, 2.0, 0.0, 0.0]  # distance 0.24


@pytest.fixture
async def stored_set(repository, make_study_set_dict):
    study_set = StudySet.model_validate(make_study_set_dict("Photosynthesis"))
    set_id = await repository.create_study_set(study_set, PHOTO_VEC)
    return await repository.get_by_id(set_id)


class TestValidation:
    @pytest.mark.parametrize("topic", [None, "", "   ", 42, ["Photosynthesis"]])
    async def test_rejects_bad_topic(self, orchestrator, job_store, topic):
        with pytest.raises(
            InputValidationError, match="Topic is required and must be a string"
        ):
            await orchestrator.submit_topic(topic)
        assert (await job_store.counts()).waiting == 0


class TestCacheTiers:
    async def test_exact_hit_skips_embedding(self, orchestrator, embedder, stored_set):
        """Test the exact tier answers before any embedding call."""
        result = await orchestrator.submit_topic("Photosynthesis")

        assert result.status == "completed"
        assert result.source == "exact_cache"
        assert result.result.id == stored_set.id
        assert result.message == "Retrieved from exact cache"
        assert embedder.calls == []

    async def test_exact_precedes_semantic(
        self, orchestrator, repository, embedder, stored_set, make_study_set_dict
    ):
        """Test an exact match wins even when another set is semantically closer."""
        closer = StudySet.model_validate(make_study_set_dict("Light reactions"))
        embedder.table["Photosynthesis"] = NEAR_PHOTO_VEC
        await repository.create_study_set(closer, NEAR_PHOTO_VEC)

        result = await orchestrator.submit_topic("Photosynthesis")

        assert result.source == "exact_cache"
        assert result.result.id == stored_set.id

    async def test_semantic_hit(self, orchestrator, embedder, job_store, stored_set):
        embedder.table["How do plants make food"] = NEAR_PHOTO_VEC

        result = await orchestrator.submit_topic("How do plants make food")

        assert result.status == "completed"
        assert result.source == "semantic_cache"
        assert result.result.topic == "Photosynthesis"
        assert (await job_store.counts()).waiting == 0

    async def test_miss_enqueues_with_embedding(
        self, orchestrator, embedder, job_store
    ):
        embedder.table["Mitochondria"] = PHOTO_VEC

        result = await orchestrator.submit_topic(
            "Mitochondria", user_id="u1", correlation_id="corr-1"
        )

        assert result.status == "pending"
        assert result.source == "queued"
        assert result.message == (
            f"Request accepted. Poll /jobs/{result.job_id} for results."
        )
        job = await job_store.get(result.job_id)
        assert job.state == JobState.WAITING
        assert job.payload.topic == "Mitochondria"
        assert job.payload.embedding == PHOTO_VEC
        assert job.payload.user_id == "u1"
        assert job.payload.correlation_id == "corr-1"

    async def test_embedding_failure_enqueues_without_embedding(
        self, orchestrator, embedder, job_store
    ):
        embedder.error = RuntimeError("embedding service down")

        result = await orchestrator.submit_topic("Mitochondria")

        assert result.status == "pending"
        job = await job_store.get(result.job_id)
        assert job.payload.embedding is None

    async def test_open_breaker_still_serves_exact_hits(
        self, orchestrator, breaker, stored_set
    ):
        breaker.state = CircuitState.OPEN
        breaker.last_failure_time = breaker._clock()

        result = await orchestrator.submit_topic("Photosynthesis")

        assert result.source == "exact_cache"

    async def test_lookup_error_degrades_to_miss(self, orchestrator, repository):
        repository.find_by_exact_topic = AsyncMock(
            side_effect=DatabaseError("db down")
        )
        repository.find_by_semantic = AsyncMock(side_effect=DatabaseError("db down"))

        result = await orchestrator.submit_topic("Photosynthesis")

        assert result.status == "pending"

    async def test_dimension_mismatch_degrades_to_miss(
        self, orchestrator, embedder, job_store, stored_set
    ):
        embedder.table["Chloroplasts"] = [1.0, 0.0, 0.0]

        result = await orchestrator.submit_topic("Chloroplasts")

        assert result.status == "pending"
        assert (await job_store.counts()).waiting == 1

    async def test_hit_records_activity_for_user(
        self, orchestrator, repository, stored_set
    ):
        await orchestrator.submit_topic("Photosynthesis", user_id="u1")

        history = await orchestrator.get_history("u1")
        assert [entry.id for entry in history] == [stored_set.id]

    async def test_anonymous_hit_records_nothing(
        self, orchestrator, repository, stored_set
    ):
        repository.record_activity = AsyncMock()
        await orchestrator.submit_topic("Photosynthesis")
        repository.record_activity.assert_not_called()


class TestIdempotentCaching:
    async def test_second_request_served_from_cache(
        self, orchestrator, queue, job_store, repository
    ):
        """Test a completed job makes the same topic a synchronous hit."""
        first = await orchestrator.submit_topic("Photosynthesis")
        assert first.status == "pending"
        assert await queue.process_next() is True

        second = await orchestrator.submit_topic("Photosynthesis")

        assert second.status == "completed"
        assert second.job_id is None
        assert await repository.count() == 1
        counts = await job_store.counts()
        assert counts.waiting == 0
        assert counts.completed == 1


class TestUploads:
    async def test_document_bypasses_cache(
        self, orchestrator, repository, job_store, embedder, stored_set
    ):
        result = await orchestrator.submit_document(
            "Chlorophyll absorbs light.", "Photosynthesis", instructions="Short"
        )

        assert result.status == "pending"
        assert embedder.calls == []
        job = await job_store.get(result.job_id)
        assert job.payload.raw_content == "Chlorophyll absorbs light."
        assert job.payload.instructions == "Short"
        assert job.payload.source().kind == "document"

    async def test_blank_document_rejected(self, orchestrator):
        with pytest.raises(InputValidationError):
            await orchestrator.submit_document("  \n ", "notes")

    async def test_image_payload_base64(self, orchestrator, job_store):
        result = await orchestrator.submit_image(b"\x89PNG", "image/png", "diagram")

        job = await job_store.get(result.job_id)
        assert job.payload.image.data == "iVBORw=="
        assert job.payload.source().kind == "image"

    async def test_empty_image_rejected(self, orchestrator):
        with pytest.raises(InputValidationError):
            await orchestrator.submit_image(b"", "image/png", "diagram")


class TestReads:
    async def test_get_study_set_records_activity(self, orchestrator, stored_set):
        found = await orchestrator.get_study_set(stored_set.id, user_id="u9")

        assert found.topic == "Photosynthesis"
        assert len(await orchestrator.get_history("u9")) == 1

    async def test_get_missing_set(self, orchestrator):
        assert await orchestrator.get_study_set(999, user_id="u9") is None

    async def test_get_unknown_job(self, orchestrator):
        assert await orchestrator.get_job("nope") is None
