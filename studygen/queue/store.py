"""Backing stores for the generation job queue.

Storage Options:
- RedisJobStore: durable, shared by API and worker processes (production)
- InMemoryJobStore: single-process store for tests and local runs

Both stores give the same guarantees:
- claim() hands a waiting job to at most one worker and counts the attempt
- a claimed job holds a lock with a TTL; the worker renews it while running
  and jobs whose lock lapsed are returned to waiting by recover_stalled()
- terminal jobs stay readable until pruned by retention
  (completed: max age and max count, failed: max age)

Redis layout (prefix ``studygen:<queue name>``):
    <p>:id               INCR counter for job ids
    <p>:job:<id>         msgpack-encoded job record
    <p>:waiting          list, LPUSH on enqueue, claimed from the right
    <p>:active           list of claimed job ids
    <p>:delayed          zset of retry-scheduled ids scored by ready time
    <p>:completed        zset of ids scored by finish time
    <p>:failed           zset of ids scored by finish time
    <p>:lock:<id>        worker token with PX expiry
"""

import asyncio
import logging
import time
from abc import ABC, abstractmethod
from collections import deque
from collections.abc import Callable
from datetime import datetime, timezone
from typing import Any

import msgpack
from redis.asyncio import Redis
from redis.exceptions import RedisError

from studygen.core.defaults import (
    COMPLETED_RETENTION_COUNT,
    COMPLETED_RETENTION_SECONDS,
    FAILED_RETENTION_SECONDS,
    JOB_LOCK_SECONDS,
)
from studygen.core.exceptions import QueueError
from studygen.core.models import Job, JobState, QueueCounts, StudySet

logger = logging.getLogger(__name__)

# KEYS: waiting, active. ARGV: key prefix, worker token, lock ttl in ms.
# Move, record check and lock happen in one step so recovery never sees an
# active job without its lock.
CLAIM_SCRIPT = """
local job_id = redis.call("LMOVE", KEYS[1], KEYS[2], "RIGHT", "LEFT")
if not job_id then
  return nil
end
local record = redis.call("GET", ARGV[1] .. "job:" .. job_id)
if not record then
  redis.call("LREM", KEYS[2], 0, job_id)
  return {job_id, false}
end
redis.call("SET", ARGV[1] .. "lock:" .. job_id, ARGV[2], "PX", ARGV[3])
return {job_id, record}
"""


def _now() -> datetime:
    return datetime.now(timezone.utc)


class JobStore(ABC):
    """Abstract base class for job queue storage."""

    def __init__(
        self,
        lock_seconds: int = JOB_LOCK_SECONDS,
        completed_retention_seconds: int = COMPLETED_RETENTION_SECONDS,
        completed_retention_count: int = COMPLETED_RETENTION_COUNT,
        failed_retention_seconds: int = FAILED_RETENTION_SECONDS,
        clock: Callable[[], float] = time.time,
    ):
        self.lock_seconds = lock_seconds
        self.completed_retention_seconds = completed_retention_seconds
        self.completed_retention_count = completed_retention_count
        self.failed_retention_seconds = failed_retention_seconds
        self._clock = clock

    @abstractmethod
    async def next_id(self) -> str:
        pass

    @abstractmethod
    async def add(self, job: Job) -> None:
        """Store a new job in the waiting state."""
        pass

    @abstractmethod
    async def get(self, job_id: str) -> Job | None:
        pass

    @abstractmethod
    async def claim(self, token: str) -> Job | None:
        """Atomically move the oldest waiting job to active for ``token``.

        Returns:
            The claimed job (state ACTIVE), or None if nothing is waiting
        """
        pass

    @abstractmethod
    async def extend_lock(self, job_id: str, token: str) -> bool:
        """Renew the worker lock. False if the lock is no longer ours."""
        pass

    @abstractmethod
    async def complete(self, job: Job, result: StudySet) -> None:
        pass

    @abstractmethod
    async def schedule_retry(self, job: Job, error: str, delay: float) -> None:
        """Return an active job to waiting after ``delay`` seconds."""
        pass

    @abstractmethod
    async def fail(self, job: Job, error: str) -> None:
        pass

    @abstractmethod
    async def promote_delayed(self) -> int:
        """Move retry-scheduled jobs whose delay elapsed back to waiting."""
        pass

    @abstractmethod
    async def recover_stalled(self) -> list[str]:
        """Return active jobs whose lock expired to waiting."""
        pass

    @abstractmethod
    async def counts(self) -> QueueCounts:
        """Per-state counts. Retry-scheduled jobs count as waiting."""
        pass

    @abstractmethod
    async def prune(self) -> int:
        """Drop terminal jobs past retention. Returns number removed."""
        pass

    async def close(self) -> None:
        return None

    # --- shared record transitions ---

    def _mark_active(self, job: Job) -> Job:
        # attempts_made counts claims, including ones whose worker died
        job.state = JobState.ACTIVE
        job.attempts_made += 1
        job.processed_at = _now()
        return job

    def _mark_completed(self, job: Job, result: StudySet) -> Job:
        job.state = JobState.COMPLETED
        job.result = result
        job.failure_reason = None
        job.finished_at = _now()
        return job

    def _mark_waiting(self, job: Job, error: str) -> Job:
        job.state = JobState.WAITING
        job.failure_reason = error
        return job

    def _mark_failed(self, job: Job, error: str) -> Job:
        job.state = JobState.FAILED
        job.failure_reason = error
        job.finished_at = _now()
        return job


class InMemoryJobStore(JobStore):
    """Dict and deque based store guarded by an asyncio.Lock."""

    def __init__(self, **kwargs: Any):
        super().__init__(**kwargs)
        self._jobs: dict[str, Job] = {}
        self._waiting: deque[str] = deque()
        self._active: list[str] = []
        self._delayed: dict[str, float] = {}
        self._completed: dict[str, float] = {}
        self._failed: dict[str, float] = {}
        self._locks: dict[str, tuple[str, float]] = {}
        self._counter = 0
        self._lock = asyncio.Lock()

    async def next_id(self) -> str:
        async with self._lock:
            self._counter += 1
            return str(self._counter)

    async def add(self, job: Job) -> None:
        async with self._lock:
            self._jobs[job.id] = job.model_copy(deep=True)
            self._waiting.append(job.id)

    async def get(self, job_id: str) -> Job | None:
        async with self._lock:
            job = self._jobs.get(job_id)
            return job.model_copy(deep=True) if job else None

    async def claim(self, token: str) -> Job | None:
        async with self._lock:
            if not self._waiting:
                return None
            job_id = self._waiting.popleft()
            self._active.append(job_id)
            self._locks[job_id] = (token, self._clock() + self.lock_seconds)
            job = self._mark_active(self._jobs[job_id])
            return job.model_copy(deep=True)

    async def extend_lock(self, job_id: str, token: str) -> bool:
        async with self._lock:
            held = self._locks.get(job_id)
            if held is None or held[0] != token:
                return False
            self._locks[job_id] = (token, self._clock() + self.lock_seconds)
            return True

    def _release(self, job_id: str) -> None:
        if job_id in self._active:
            self._active.remove(job_id)
        self._locks.pop(job_id, None)

    async def complete(self, job: Job, result: StudySet) -> None:
        async with self._lock:
            self._release(job.id)
            self._jobs[job.id] = self._mark_completed(job.model_copy(deep=True), result)
            self._completed[job.id] = self._clock()

    async def schedule_retry(self, job: Job, error: str, delay: float) -> None:
        async with self._lock:
            self._release(job.id)
            self._jobs[job.id] = self._mark_waiting(job.model_copy(deep=True), error)
            self._delayed[job.id] = self._clock() + delay

    async def fail(self, job: Job, error: str) -> None:
        async with self._lock:
            self._release(job.id)
            self._jobs[job.id] = self._mark_failed(job.model_copy(deep=True), error)
            self._failed[job.id] = self._clock()

    async def promote_delayed(self) -> int:
        async with self._lock:
            now = self._clock()
            ready = sorted(
                (ready_at, job_id)
                for job_id, ready_at in self._delayed.items()
                if ready_at <= now
            )
            for _, job_id in ready:
                del self._delayed[job_id]
                self._waiting.append(job_id)
            return len(ready)

    async def recover_stalled(self) -> list[str]:
        async with self._lock:
            now = self._clock()
            stalled = [
                job_id
                for job_id in self._active
                if job_id not in self._locks or self._locks[job_id][1] <= now
            ]
            for job_id in stalled:
                self._release(job_id)
                self._jobs[job_id].state = JobState.WAITING
                self._waiting.appendleft(job_id)
            return stalled

    async def counts(self) -> QueueCounts:
        async with self._lock:
            return QueueCounts(
                active=len(self._active),
                waiting=len(self._waiting) + len(self._delayed),
                completed=len(self._completed),
                failed=len(self._failed),
            )

    async def prune(self) -> int:
        async with self._lock:
            now = self._clock()
            expired = [
                job_id
                for job_id, finished in self._completed.items()
                if now - finished > self.completed_retention_seconds
            ]
            newest_first = sorted(
                self._completed, key=self._completed.__getitem__, reverse=True
            )
            expired.extend(
                job_id
                for job_id in newest_first[self.completed_retention_count :]
                if job_id not in expired
            )
            for job_id in expired:
                del self._completed[job_id]
                self._jobs.pop(job_id, None)

            failed_expired = [
                job_id
                for job_id, finished in self._failed.items()
                if now - finished > self.failed_retention_seconds
            ]
            for job_id in failed_expired:
                del self._failed[job_id]
                self._jobs.pop(job_id, None)

            return len(expired) + len(failed_expired)


class RedisJobStore(JobStore):
    """Redis-backed store shared by every API and worker process."""

    def __init__(
        self,
        redis: "Redis[bytes]",
        queue_name: str,
        **kwargs: Any,
    ):
        """Initialize Redis job store.

        Args:
            redis: Redis client created with decode_responses=False
            queue_name: Queue name, used in the key prefix
            **kwargs: Lock and retention settings (see JobStore)
        """
        super().__init__(**kwargs)
        self.redis = redis
        self.prefix = f"studygen:{queue_name}"
        self._claim_script = redis.register_script(CLAIM_SCRIPT)

    @classmethod
    def from_url(
        cls, redis_url: str, queue_name: str, **kwargs: Any
    ) -> "RedisJobStore":
        redis = Redis.from_url(
            redis_url,
            socket_timeout=5,
            socket_connect_timeout=5,
            retry_on_timeout=True,
            decode_responses=False,
        )
        logger.info(f"Job store using Redis at {redis_url}")
        return cls(redis, queue_name, **kwargs)

    def _key(self, *parts: str) -> str:
        return ":".join((self.prefix, *parts))

    @staticmethod
    def _encode(job: Job) -> bytes:
        return msgpack.packb(job.model_dump(mode="json"), use_bin_type=True)

    @staticmethod
    def _decode(data: bytes) -> Job:
        return Job.model_validate(msgpack.unpackb(data, raw=False))

    @staticmethod
    def _id(raw: bytes | str) -> str:
        return raw.decode() if isinstance(raw, bytes) else raw

    async def next_id(self) -> str:
        try:
            return str(await self.redis.incr(self._key("id")))
        except RedisError as e:
            raise QueueError(f"Failed to allocate job id: {e}") from e

    async def add(self, job: Job) -> None:
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.set(self._key("job", job.id), self._encode(job))
                pipe.lpush(self._key("waiting"), job.id)
                await pipe.execute()
        except RedisError as e:
            raise QueueError(
                f"Failed to enqueue job: {e}", details={"job_id": job.id}
            ) from e

    async def get(self, job_id: str) -> Job | None:
        try:
            data = await self.redis.get(self._key("job", job_id))
        except RedisError as e:
            raise QueueError(
                f"Failed to read job: {e}", details={"job_id": job_id}
            ) from e
        return self._decode(data) if data is not None else None

    async def _save(self, job: Job, ttl: int | None = None) -> None:
        await self.redis.set(self._key("job", job.id), self._encode(job), ex=ttl)

    async def claim(self, token: str) -> Job | None:
        try:
            reply = await self._claim_script(
                keys=[self._key("waiting"), self._key("active")],
                args=[f"{self.prefix}:", token, self.lock_seconds * 1000],
            )
            if reply is None:
                return None
            raw_id, data = reply
            job_id = self._id(raw_id)
            if data is None:
                logger.warning(f"Dropped job {job_id}: record missing")
                return None

            job = self._mark_active(self._decode(data))
            await self._save(job)
            return job
        except RedisError as e:
            raise QueueError(f"Failed to claim job: {e}") from e

    async def extend_lock(self, job_id: str, token: str) -> bool:
        lock_key = self._key("lock", job_id)
        try:
            held = await self.redis.get(lock_key)
            if held is None or self._id(held) != token:
                return False
            return bool(await self.redis.pexpire(lock_key, self.lock_seconds * 1000))
        except RedisError as e:
            logger.warning(f"Lock renewal failed for job {job_id}: {e}")
            return False

    async def _finish(self, job: Job, zset: str, ttl: int) -> None:
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.set(self._key("job", job.id), self._encode(job), ex=ttl)
                pipe.lrem(self._key("active"), 0, job.id)
                pipe.zadd(self._key(zset), {job.id: self._clock()})
                pipe.delete(self._key("lock", job.id))
                await pipe.execute()
        except RedisError as e:
            raise QueueError(
                f"Failed to finish job: {e}", details={"job_id": job.id}
            ) from e

    async def complete(self, job: Job, result: StudySet) -> None:
        await self._finish(
            self._mark_completed(job, result),
            "completed",
            self.completed_retention_seconds,
        )

    async def fail(self, job: Job, error: str) -> None:
        await self._finish(
            self._mark_failed(job, error), "failed", self.failed_retention_seconds
        )

    async def schedule_retry(self, job: Job, error: str, delay: float) -> None:
        job = self._mark_waiting(job, error)
        try:
            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.set(self._key("job", job.id), self._encode(job))
                pipe.lrem(self._key("active"), 0, job.id)
                pipe.zadd(self._key("delayed"), {job.id: self._clock() + delay})
                pipe.delete(self._key("lock", job.id))
                await pipe.execute()
        except RedisError as e:
            raise QueueError(
                f"Failed to schedule retry: {e}", details={"job_id": job.id}
            ) from e

    async def promote_delayed(self) -> int:
        try:
            ready = await self.redis.zrangebyscore(
                self._key("delayed"), "-inf", self._clock()
            )
            promoted = 0
            for raw in ready:
                job_id = self._id(raw)
                # ZREM decides which process promotes the job
                if await self.redis.zrem(self._key("delayed"), job_id):
                    await self.redis.lpush(self._key("waiting"), job_id)
                    promoted += 1
            return promoted
        except RedisError as e:
            raise QueueError(f"Failed to promote delayed jobs: {e}") from e

    async def recover_stalled(self) -> list[str]:
        recovered: list[str] = []
        try:
            active = await self.redis.lrange(self._key("active"), 0, -1)
            for raw in active:
                job_id = self._id(raw)
                if await self.redis.exists(self._key("lock", job_id)):
                    continue
                job = await self.get(job_id)
                if await self.redis.lrem(self._key("active"), 1, job_id):
                    if job is not None:
                        job.state = JobState.WAITING
                        await self._save(job)
                    await self.redis.rpush(self._key("waiting"), job_id)
                    recovered.append(job_id)
        except RedisError as e:
            raise QueueError(f"Failed to recover stalled jobs: {e}") from e
        return recovered

    async def counts(self) -> QueueCounts:
        try:
            async with self.redis.pipeline(transaction=False) as pipe:
                pipe.llen(self._key("active"))
                pipe.llen(self._key("waiting"))
                pipe.zcard(self._key("delayed"))
                pipe.zcard(self._key("completed"))
                pipe.zcard(self._key("failed"))
                active, waiting, delayed, completed, failed = await pipe.execute()
        except RedisError as e:
            raise QueueError(f"Failed to read queue counts: {e}") from e
        return QueueCounts(
            active=active,
            waiting=waiting + delayed,
            completed=completed,
            failed=failed,
        )

    async def prune(self) -> int:
        now = self._clock()
        completed_key = self._key("completed")
        failed_key = self._key("failed")
        try:
            stale = await self.redis.zrangebyscore(
                completed_key, "-inf", now - self.completed_retention_seconds
            )
            stale += await self.redis.zrangebyscore(
                failed_key, "-inf", now - self.failed_retention_seconds
            )
            overflow = await self.redis.zrange(
                completed_key, 0, -(self.completed_retention_count + 1)
            )
            ids = {self._id(raw) for raw in [*stale, *overflow]}
            if not ids:
                return 0

            async with self.redis.pipeline(transaction=True) as pipe:
                pipe.zrem(completed_key, *ids)
                pipe.zrem(failed_key, *ids)
                pipe.delete(*(self._key("job", job_id) for job_id in ids))
                await pipe.execute()
            return len(ids)
        except RedisError as e:
            raise QueueError(f"Failed to prune jobs: {e}") from e

    async def close(self) -> None:
        await self.redis.aclose()
        logger.info("Job store connection closed")
