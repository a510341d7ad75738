"""Async HTTP client for the studygen API.

Submits a topic, then polls the job until it completes, fails, or the
polling ceiling is reached.

Example:
    >>> async with StudyGenClient("http://localhost:3000", user_id="u1") as c:
    ...     result = await c.submit_topic("Photosynthesis")
    ...     if not result.is_cache_hit:
    ...         job = await c.wait_for_job(result.job_id)
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

import httpx

from studygen.core.defaults import POLL_INTERVAL_SECONDS, POLL_MAX_ATTEMPTS
from studygen.core.exceptions import (
    GenerationError,
    InputValidationError,
    PollingTimeoutError,
    ServiceUnavailableError,
    StudyGenError,
)
from studygen.core.models import (
    JobStatus,
    PublicJobStatus,
    QueueCounts,
    StudySet,
    SubmissionResult,
)

logger = logging.getLogger(__name__)


class StudyGenClient:
    """Thin async wrapper over the HTTP surface."""

    def __init__(
        self,
        base_url: str,
        user_id: str | None = None,
        identity_header: str = "X-User-Id",
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        headers = {identity_header: user_id} if user_id else {}
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=timeout,
            transport=transport,
        )
        self._sleep = sleep

    async def __aenter__(self) -> "StudyGenClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        try:
            response = await self._client.request(method, path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise self._error_from_response(e.response) from e
        except httpx.RequestError as e:
            logger.error(f"studygen API request error: {e}")
            raise StudyGenError(f"Request to {path} failed: {e}") from e
        return response.json()

    @staticmethod
    def _error_from_response(response: httpx.Response) -> StudyGenError:
        try:
            body = response.json()
        except ValueError:
            body = {}
        message = body.get("error") or response.text or response.reason_phrase
        details = {"status": response.status_code, "code": body.get("code")}
        if response.status_code == 400:
            return InputValidationError(message, details)
        if response.status_code == 503:
            return ServiceUnavailableError(message, details)
        return StudyGenError(message, details)

    async def submit_topic(self, topic: str) -> SubmissionResult:
        data = await self._request("POST", "/generate", json={"topic": topic})
        return SubmissionResult.model_validate(data)

    async def get_job(self, job_id: str) -> JobStatus:
        data = await self._request("GET", f"/jobs/{job_id}")
        return JobStatus.model_validate(data)

    async def get_queue_status(self) -> QueueCounts:
        return QueueCounts.model_validate(
            await self._request("GET", "/queue-status")
        )

    async def wait_for_job(
        self,
        job_id: str,
        max_attempts: int = POLL_MAX_ATTEMPTS,
        interval: float = POLL_INTERVAL_SECONDS,
    ) -> JobStatus:
        """Poll until the job completes.

        Raises:
            GenerationError: Job reported ``failed``
            PollingTimeoutError: Still pending after ``max_attempts`` polls
        """
        for attempt in range(1, max_attempts + 1):
            job = await self.get_job(job_id)
            if job.status is PublicJobStatus.COMPLETED:
                return job
            if job.status is PublicJobStatus.FAILED:
                raise GenerationError(
                    job.error or "Generation failed", details={"job_id": job_id}
                )
            if attempt < max_attempts:
                await self._sleep(interval)

        raise PollingTimeoutError(
            f"Job {job_id} did not finish after {max_attempts} polls",
            details={"job_id": job_id},
        )

    async def generate(
        self,
        topic: str,
        max_attempts: int = POLL_MAX_ATTEMPTS,
        interval: float = POLL_INTERVAL_SECONDS,
    ) -> StudySet:
        """Submit a topic and return the finished study set."""
        submission = await self.submit_topic(topic)
        if submission.is_cache_hit and submission.result is not None:
            return submission.result
        if submission.job_id is None:
            raise StudyGenError("Server returned neither a result nor a job id")

        job = await self.wait_for_job(
            submission.job_id, max_attempts=max_attempts, interval=interval
        )
        if job.result is None:
            raise GenerationError("Job completed without a result")
        return job.result
