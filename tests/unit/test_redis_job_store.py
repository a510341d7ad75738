"""Unit tests for RedisJobStore against a mocked redis.asyncio client."""

from unittest.mock import AsyncMock, MagicMock

import msgpack
import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from studygen.core.exceptions import QueueError
from studygen.core.models import Job, JobPayload, JobState, StudySet
from studygen.queue.store import CLAIM_SCRIPT, RedisJobStore


class _Pipeline:
    """Stands in for a redis pipeline used as an async context manager."""

    def __init__(self, results=None):
        self.commands: list[tuple] = []
        self.execute = AsyncMock(return_value=results or [])

    def __getattr__(self, name):
        def _queue(*args, **kwargs):
            self.commands.append((name, args, kwargs))
            return self

        return _queue

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        return False


@pytest.fixture
def pipeline():
    return _Pipeline()


@pytest.fixture
def claim_script():
    return AsyncMock()


@pytest.fixture
def redis(pipeline, claim_script):
    client = MagicMock()
    client.register_script = MagicMock(return_value=claim_script)
    for method in (
        "incr",
        "get",
        "set",
        "lmove",
        "lrem",
        "delete",
        "pexpire",
        "zrangebyscore",
        "zrange",
        "zrem",
        "lpush",
        "rpush",
        "lrange",
        "exists",
        "aclose",
    ):
        setattr(client, method, AsyncMock())
    client.pipeline = MagicMock(return_value=pipeline)
    return client


@pytest.fixture
def store(redis, clock):
    return RedisJobStore(redis, "study-sets", lock_seconds=30, clock=clock)


def _record(job_id="7", topic="Photosynthesis") -> bytes:
    job = Job(id=job_id, payload=JobPayload(topic=topic))
    return msgpack.packb(job.model_dump(mode="json"), use_bin_type=True)


async def test_next_id(store, redis):
    redis.incr.return_value = 12
    assert await store.next_id() == "12"
    redis.incr.assert_awaited_once_with("studygen:study-sets:id")


async def test_add_writes_record_and_waiting(store, pipeline):
    await store.add(Job(id="3", payload=JobPayload(topic="Cells")))

    names = [name for name, _, _ in pipeline.commands]
    assert names == ["set", "lpush"]
    assert pipeline.commands[1][1] == ("studygen:study-sets:waiting", "3")
    pipeline.execute.assert_awaited_once()


async def test_claim_empty(store, claim_script, redis):
    claim_script.return_value = None
    assert await store.claim("w0") is None
    redis.set.assert_not_called()


async def test_claim_decodes_and_counts_attempt(store, claim_script, redis):
    claim_script.return_value = [b"7", _record("7")]

    job = await store.claim("w0")

    assert job.id == "7"
    assert job.state == JobState.ACTIVE
    assert job.attempts_made == 1
    assert job.processed_at is not None
    saved = msgpack.unpackb(redis.set.call_args.args[1], raw=False)
    assert redis.set.call_args.args[0] == "studygen:study-sets:job:7"
    assert (saved["state"], saved["attempts_made"]) == ("active", 1)


async def test_claim_moves_and_locks_in_one_script_call(store, claim_script, redis):
    claim_script.return_value = [b"7", _record("7")]

    await store.claim("w0")

    claim_script.assert_awaited_once_with(
        keys=["studygen:study-sets:waiting", "studygen:study-sets:active"],
        args=["studygen:study-sets:", "w0", 30000],
    )
    redis.lmove.assert_not_called()
    assert [call.args[0] for call in redis.set.call_args_list] == [
        "studygen:study-sets:job:7"
    ]
    assert CLAIM_SCRIPT.index("LMOVE") < CLAIM_SCRIPT.index('"lock:"')


async def test_claim_drops_missing_record(store, claim_script, redis):
    claim_script.return_value = [b"9", None]

    assert await store.claim("w0") is None
    redis.set.assert_not_called()


async def test_redis_errors_become_queue_errors(store, claim_script):
    claim_script.side_effect = RedisConnectionError("refused")
    with pytest.raises(QueueError, match="Failed to claim job"):
        await store.claim("w0")


async def test_get_round_trips_record(store, redis):
    redis.get.return_value = _record("5", "Mitosis")

    job = await store.get("5")

    assert (job.id, job.payload.topic) == ("5", "Mitosis")


async def test_extend_lock_checks_owner(store, redis):
    redis.get.return_value = b"someone-else"
    assert await store.extend_lock("7", "w0") is False
    redis.pexpire.assert_not_called()

    redis.get.return_value = b"w0"
    redis.pexpire.return_value = True
    assert await store.extend_lock("7", "w0") is True


async def test_promote_delayed_arbitrates_with_zrem(store, redis, clock):
    redis.zrangebyscore.return_value = [b"1", b"2"]
    redis.zrem.side_effect = [1, 0]

    assert await store.promote_delayed() == 1
    redis.zrangebyscore.assert_awaited_once_with(
        "studygen:study-sets:delayed", "-inf", clock.now
    )
    redis.lpush.assert_awaited_once_with("studygen:study-sets:waiting", "1")


async def test_schedule_retry_uses_delayed_zset(store, pipeline, clock):
    job = Job(id="4", payload=JobPayload(topic="x"), state=JobState.ACTIVE)

    await store.schedule_retry(job, "boom", delay=10.0)

    zadd = next(args for name, args, _ in pipeline.commands if name == "zadd")
    assert zadd == ("studygen:study-sets:delayed", {"4": clock.now + 10.0})
    assert job.failure_reason == "boom"


async def test_complete_sets_retention_ttl(store, pipeline, make_study_set_dict):
    job = Job(id="4", payload=JobPayload(topic="x"), state=JobState.ACTIVE)
    result = StudySet.model_validate(make_study_set_dict())

    await store.complete(job, result)

    name, args, kwargs = pipeline.commands[0]
    assert name == "set"
    assert kwargs == {"ex": store.completed_retention_seconds}
    assert msgpack.unpackb(args[1], raw=False)["state"] == "completed"


async def test_counts_include_delayed_as_waiting(store, pipeline):
    pipeline.execute.return_value = [1, 2, 3, 4, 5]

    counts = await store.counts()

    assert (counts.active, counts.waiting, counts.completed, counts.failed) == (
        1,
        5,
        4,
        5,
    )


async def test_recover_stalled_skips_locked(store, redis):
    redis.lrange.return_value = [b"1", b"2"]
    redis.exists.side_effect = [1, 0]
    redis.get.return_value = None
    redis.lrem.return_value = 1

    assert await store.recover_stalled() == ["2"]
    redis.rpush.assert_awaited_once_with("studygen:study-sets:waiting", "2")


async def test_prune_nothing_to_do(store, redis, pipeline):
    redis.zrangebyscore.return_value = []
    redis.zrange.return_value = []

    assert await store.prune() == 0
    pipeline.execute.assert_not_called()


async def test_close(store, redis):
    await store.close()
    redis.aclose.assert_awaited_once()
