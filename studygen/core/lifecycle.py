"""Graceful shutdown for API and worker processes.

Workers are drained before the connections they depend on are closed:
the pool stops claiming, running jobs get ``drain_timeout`` seconds, then
the job store and the database pool are closed in that order. A job cut
off by the drain window keeps its lock only until the TTL lapses, after
which stalled-job recovery hands it to another worker.

Standalone worker usage:
    >>> manager = LifecycleManager(queue=queue, job_store=store, database=db)
    >>> manager.install_signal_handlers()
    >>> await manager.wait_for_shutdown_signal()
    >>> await manager.shutdown()
"""

import asyncio
import contextlib
import functools
import logging
import signal
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from studygen.core.database import Database
    from studygen.queue.queue import JobQueue
    from studygen.queue.store import JobStore

logger = logging.getLogger(__name__)

HANDLED_SIGNALS = (signal.SIGTERM, signal.SIGINT)


class ShutdownPhase(Enum):
    NOT_STARTED = "not_started"
    DRAINING_WORKERS = "draining_workers"
    CLOSING_STORES = "closing_stores"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass
class ShutdownState:
    """Where shutdown is, when it started, and what went wrong on the way."""

    phase: ShutdownPhase = ShutdownPhase.NOT_STARTED
    started_at: datetime | None = None
    completed_at: datetime | None = None
    signal_received: str | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def duration_seconds(self) -> float | None:
        if self.started_at is None:
            return None
        finished = self.completed_at or datetime.now(timezone.utc)
        return (finished - self.started_at).total_seconds()


ShutdownStep = tuple[ShutdownPhase, str, Callable[[], Awaitable[object]]]


class LifecycleManager:
    """Drains the worker pool and closes the job store and database pool.

    A failing step is logged and recorded in ``state.errors``; the later
    steps still run and the final phase becomes FAILED.
    """

    def __init__(
        self,
        queue: "JobQueue | None" = None,
        job_store: "JobStore | None" = None,
        database: "Database | None" = None,
        drain_timeout: float = 30.0,
    ) -> None:
        self.queue = queue
        self.job_store = job_store
        self.database = database
        self.drain_timeout = drain_timeout

        self.state = ShutdownState()
        self._stop_requested = asyncio.Event()
        self._lock = asyncio.Lock()
        self._signal_handlers_installed = False

    @property
    def shutdown_requested(self) -> bool:
        return self._stop_requested.is_set()

    def request_shutdown(self) -> None:
        self._stop_requested.set()

    async def wait_for_shutdown_signal(self) -> None:
        await self._stop_requested.wait()

    def _on_signal(self, sig: signal.Signals) -> None:
        logger.info(f"{sig.name} received, draining workers")
        self.state.signal_received = sig.name
        self.request_shutdown()

    def install_signal_handlers(self) -> None:
        """Route SIGTERM and SIGINT to ``request_shutdown``.

        Call from the thread that runs the event loop.
        """
        if self._signal_handlers_installed:
            return
        loop = asyncio.get_running_loop()
        for sig in HANDLED_SIGNALS:
            loop.add_signal_handler(sig, functools.partial(self._on_signal, sig))
        self._signal_handlers_installed = True

    def remove_signal_handlers(self) -> None:
        if not self._signal_handlers_installed:
            return
        loop = asyncio.get_running_loop()
        for sig in HANDLED_SIGNALS:
            with contextlib.suppress(ValueError, RuntimeError):
                loop.remove_signal_handler(sig)
        self._signal_handlers_installed = False

    def _plan(self) -> list[ShutdownStep]:
        steps: list[ShutdownStep] = []
        if self.queue is not None and self.queue.running:
            queue = self.queue
            steps.append(
                (
                    ShutdownPhase.DRAINING_WORKERS,
                    "Stopping workers",
                    lambda: queue.stop(self.drain_timeout),
                )
            )
        if self.job_store is not None:
            steps.append(
                (
                    ShutdownPhase.CLOSING_STORES,
                    "Closing job store",
                    self.job_store.close,
                )
            )
        if self.database is not None:
            steps.append(
                (
                    ShutdownPhase.CLOSING_STORES,
                    "Closing database",
                    self.database.disconnect,
                )
            )
        return steps

    async def shutdown(self) -> ShutdownState:
        """Run the shutdown steps. Later calls return the first call's state."""
        async with self._lock:
            if self.state.phase is not ShutdownPhase.NOT_STARTED:
                return self.state

            self.state.started_at = datetime.now(timezone.utc)
            self.request_shutdown()
            self.remove_signal_handlers()

            for phase, description, action in self._plan():
                self.state.phase = phase
                logger.info(description)
                try:
                    await action()
                except Exception as e:
                    self.state.errors.append(f"{description} failed: {e}")
                    logger.error(self.state.errors[-1])

            self.state.completed_at = datetime.now(timezone.utc)
            elapsed = self.state.duration_seconds
            if self.state.errors:
                self.state.phase = ShutdownPhase.FAILED
                logger.warning(
                    f"Shutdown finished with {len(self.state.errors)} errors "
                    f"after {elapsed:.1f}s"
                )
            else:
                self.state.phase = ShutdownPhase.COMPLETE
                logger.info(f"Shutdown finished after {elapsed:.1f}s")
            return self.state
