"""Bounded-concurrency job queue with retry and exponential backoff.

State machine per job:
    waiting -> active -> completed
                      -> waiting (retry after backoff, attempts remaining)
                      -> failed (attempts exhausted, last error kept verbatim)

An attempt is counted when the job is claimed, so a job whose worker keeps
dying is failed once its claims run out.
"""

import asyncio
import contextlib
from collections.abc import Awaitable, Callable
from uuid import uuid4

from studygen.core.defaults import (
    JOB_ATTEMPTS,
    JOB_BACKOFF_SECONDS,
    QUEUE_CONCURRENCY,
)
from studygen.core.exceptions import QueueError
from studygen.core.models import Job, JobPayload, JobStatus, QueueCounts, StudySet
from studygen.observability.logging import (
    LogEvents,
    bind_context,
    clear_context,
    get_logger,
)
from studygen.observability.metrics import record_job_outcome
from studygen.queue.store import JobStore

logger = get_logger(__name__)

JobProcessor = Callable[[Job], Awaitable[StudySet]]

STALLED_ERROR = "Job stalled more than the allowed number of attempts"


class JobQueue:
    """Durable generation queue plus the in-process worker pool that drains it.

    The API process only needs ``enqueue``/``get_status``/``get_counts``;
    ``start`` launches ``concurrency`` worker tasks and one maintenance task
    (delayed-retry promotion, stalled-job recovery, retention pruning).
    """

    def __init__(
        self,
        store: JobStore,
        processor: JobProcessor | None = None,
        concurrency: int = QUEUE_CONCURRENCY,
        attempts: int = JOB_ATTEMPTS,
        backoff: float = JOB_BACKOFF_SECONDS,
        poll_interval: float = 0.5,
        maintenance_interval: float = 1.0,
    ):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        if attempts < 1:
            raise ValueError("attempts must be at least 1")

        self.store = store
        self.processor = processor
        self.concurrency = concurrency
        self.attempts = attempts
        self.backoff = backoff
        self.poll_interval = poll_interval
        self.maintenance_interval = maintenance_interval

        self._tasks: list[asyncio.Task[None]] = []
        self._stopping = asyncio.Event()
        self._token_prefix = uuid4().hex[:8]

    # --- producer side ---

    async def enqueue(self, payload: JobPayload) -> str:
        """Add a generation job. Returns its id."""
        job_id = await self.store.next_id()
        await self.store.add(Job(id=job_id, payload=payload))
        logger.info(
            LogEvents.JOB_ENQUEUED,
            job_id=job_id,
            topic=payload.topic,
            has_embedding=payload.embedding is not None,
            correlation_id=payload.correlation_id,
        )
        return job_id

    async def get_status(self, job_id: str) -> JobStatus | None:
        """Public status of a job, or None if unknown or pruned."""
        job = await self.store.get(job_id)
        return JobStatus.from_job(job) if job else None

    async def get_counts(self) -> QueueCounts:
        return await self.store.counts()

    def backoff_delay(self, attempts_made: int) -> float:
        """Delay before the next attempt: backoff * 2^(attempts_made - 1)."""
        return self.backoff * (2 ** max(attempts_made - 1, 0))

    # --- worker side ---

    @property
    def running(self) -> bool:
        return bool(self._tasks)

    async def start(self) -> None:
        if self.processor is None:
            raise QueueError("Cannot start workers without a job processor")
        if self._tasks:
            return

        self._stopping.clear()
        self._tasks = [
            asyncio.create_task(self._worker_loop(i), name=f"studygen-worker-{i}")
            for i in range(self.concurrency)
        ]
        self._tasks.append(
            asyncio.create_task(self._maintenance_loop(), name="studygen-maintenance")
        )
        logger.info(LogEvents.WORKERS_STARTED, concurrency=self.concurrency)

    async def stop(self, timeout: float = 30.0) -> None:
        """Stop claiming new jobs and wait for running ones to finish.

        Jobs still running after ``timeout`` are cancelled; their locks lapse
        and another worker picks them up through stalled-job recovery.
        """
        if not self._tasks:
            return

        self._stopping.set()
        done, pending = await asyncio.wait(self._tasks, timeout=timeout)
        for task in pending:
            task.cancel()
        for task in pending:
            with contextlib.suppress(asyncio.CancelledError):
                await task

        self._tasks = []
        logger.info(
            LogEvents.WORKERS_STOPPED, drained=len(done), cancelled=len(pending)
        )

    async def process_next(self, worker_name: str = "inline") -> bool:
        """Claim and process one job if any is ready.

        Returns:
            True if a job was processed
        """
        await self.store.promote_delayed()
        token = f"{self._token_prefix}:{worker_name}"
        job = await self.store.claim(token)
        if job is None:
            return False
        await self._process(job, token)
        return True

    async def run_maintenance(self) -> None:
        await self.store.promote_delayed()
        for job_id in await self.store.recover_stalled():
            logger.warning(LogEvents.JOB_STALLED, job_id=job_id)
        await self.store.prune()

    async def _worker_loop(self, index: int) -> None:
        name = f"w{index}"
        while not self._stopping.is_set():
            try:
                token = f"{self._token_prefix}:{name}"
                job = await self.store.claim(token)
            except QueueError as e:
                logger.error("job_claim_failed", worker=name, error=str(e))
                job = None

            if job is None:
                with contextlib.suppress(asyncio.TimeoutError):
                    await asyncio.wait_for(
                        self._stopping.wait(), timeout=self.poll_interval
                    )
                continue

            try:
                await self._process(job, token)
            except QueueError as e:
                # Lock lapses and stalled-job recovery re-queues the job
                logger.error("job_state_write_failed", job_id=job.id, error=str(e))

    async def _maintenance_loop(self) -> None:
        while not self._stopping.is_set():
            try:
                await self.run_maintenance()
            except QueueError as e:
                logger.error("queue_maintenance_failed", error=str(e))
            with contextlib.suppress(asyncio.TimeoutError):
                await asyncio.wait_for(
                    self._stopping.wait(), timeout=self.maintenance_interval
                )

    async def _heartbeat(self, job_id: str, token: str) -> None:
        interval = max(self.store.lock_seconds / 2, 0.1)
        while True:
            await asyncio.sleep(interval)
            if not await self.store.extend_lock(job_id, token):
                logger.warning("job_lock_lost", job_id=job_id)
                return

    async def _process(self, job: Job, token: str) -> None:
        assert self.processor is not None
        bind_context(job_id=job.id, correlation_id=job.payload.correlation_id)
        if job.attempts_made > self.attempts:
            # The last allowed claim ended without a result, e.g. the worker died
            await self.store.fail(job, STALLED_ERROR)
            record_job_outcome("failed")
            logger.error(
                LogEvents.JOB_FAILED, attempts=self.attempts, error=STALLED_ERROR
            )
            clear_context()
            return

        logger.info(
            LogEvents.JOB_STARTED,
            attempt=job.attempts_made,
            max_attempts=self.attempts,
            topic=job.payload.topic,
            user_id=job.payload.user_id,
        )

        heartbeat = asyncio.create_task(self._heartbeat(job.id, token))
        try:
            result = await self.processor(job)
        except Exception as e:
            error = str(e) or type(e).__name__
            if job.attempts_made < self.attempts:
                delay = self.backoff_delay(job.attempts_made)
                await self.store.schedule_retry(job, error, delay)
                record_job_outcome("retried")
                logger.warning(
                    LogEvents.JOB_RETRY_SCHEDULED,
                    attempt=job.attempts_made,
                    delay_seconds=delay,
                    error=error,
                )
            else:
                await self.store.fail(job, error)
                record_job_outcome("failed")
                logger.error(
                    LogEvents.JOB_FAILED, attempts=job.attempts_made, error=error
                )
        else:
            await self.store.complete(job, result)
            record_job_outcome("completed")
            logger.info(LogEvents.JOB_COMPLETED, study_set_id=result.id)
        finally:
            heartbeat.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await heartbeat
            clear_context()
