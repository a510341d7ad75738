"""Durable generation job queue and its worker."""

from studygen.queue.queue import JobProcessor, JobQueue
from studygen.queue.store import InMemoryJobStore, JobStore, RedisJobStore
from studygen.queue.worker import StudySetJobProcessor

__all__ = [
    "InMemoryJobStore",
    "JobProcessor",
    "JobQueue",
    "JobStore",
    "RedisJobStore",
    "StudySetJobProcessor",
]
