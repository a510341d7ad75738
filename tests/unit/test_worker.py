"""Unit tests for studygen.queue.worker."""

from unittest.mock import AsyncMock

import pytest

from studygen.core.exceptions import DatabaseError
from studygen.core.models import Job, JobPayload
from studygen.queue.worker import StudySetJobProcessor


@pytest.fixture
def processor(generation_client, repository):
    return StudySetJobProcessor(generation_client, repository)


async def test_persists_with_carried_embedding(processor, embedder, repository):
    job = Job(id="1", payload=JobPayload(topic="Photosynthesis", embedding=[1.0] * 6))

    result = await processor(job)

    assert result.id is not None
    assert embedder.calls == []
    found = await repository.find_by_semantic([1.0] * 6)
    assert found.id == result.id


async def test_embeds_generated_topic_when_missing(
    processor, model, embedder, make_study_set_json
):
    """Test the model's topic, not the raw request, is embedded."""
    model.responses = [make_study_set_json("Light-dependent reactions")]
    job = Job(id="1", payload=JobPayload(topic="how plants use light"))

    await processor(job)

    assert embedder.calls == ["Light-dependent reactions"]


async def test_embedding_failure_still_persists(processor, embedder, repository):
    embedder.error = RuntimeError("embedding outage")
    job = Job(id="1", payload=JobPayload(topic="Photosynthesis"))

    result = await processor(job)

    assert await repository.get_by_id(result.id) is not None
    assert await repository.find_by_semantic([1.0] * 6) is None


async def test_records_activity_for_user(processor, repository):
    job = Job(id="1", payload=JobPayload(topic="Photosynthesis", user_id="u1"))

    result = await processor(job)

    history = await repository.get_user_history("u1")
    assert [entry.id for entry in history] == [result.id]


async def test_activity_failure_is_tolerated(processor, repository):
    repository.record_activity = AsyncMock(side_effect=DatabaseError("locked"))
    job = Job(id="1", payload=JobPayload(topic="Photosynthesis", user_id="u1"))

    result = await processor(job)

    assert result.id is not None
    repository.record_activity.assert_awaited_once_with("u1", result.id)


async def test_persistence_failure_fails_attempt(processor, repository):
    repository.create_study_set = AsyncMock(side_effect=DatabaseError("disk full"))
    job = Job(id="1", payload=JobPayload(topic="Photosynthesis"))

    with pytest.raises(DatabaseError):
        await processor(job)


async def test_document_payload_uses_document_prompt(processor, model):
    job = Job(
        id="1",
        payload=JobPayload(topic="notes", raw_content="Chloroplasts hold chlorophyll."),
    )

    await processor(job)

    assert "Chloroplasts hold chlorophyll." in model.calls[0]["contents"]
