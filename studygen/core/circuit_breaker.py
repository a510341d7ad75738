"""Circuit breaker guarding calls to unreliable external services.

States:
    closed: Normal operation, calls pass through
    open: Circuit tripped, calls rejected without reaching the service
    half_open: Cooldown elapsed, calls admitted as recovery probes

Pattern:
    closed -> (failures >= threshold) -> open
    open -> (cooldown expired) -> half_open
    half_open -> (success) -> closed
    half_open -> (failure) -> open

Successes while closed do not reset the failure count; only a successful
half-open probe does. Several calls arriving together after the cooldown can
all be admitted as probes since no lock serializes the transition.
"""

import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import Any, TypeVar

from studygen.core.defaults import BREAKER_COOLDOWN_SECONDS, BREAKER_FAILURE_THRESHOLD
from studygen.core.exceptions import ServiceUnavailableError
from studygen.observability.logging import LogEvents, get_logger
from studygen.observability.metrics import record_breaker_transition

logger = get_logger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreaker:
    """Failure-counting breaker with time-based recovery.

    One instance per guarded dependency. The generation client shares a
    single instance between embedding and generation calls.
    """

    def __init__(
        self,
        name: str = "generative-model",
        failure_threshold: int = BREAKER_FAILURE_THRESHOLD,
        cooldown: float = BREAKER_COOLDOWN_SECONDS,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize circuit breaker.

        Args:
            name: Dependency name used in logs and metrics
            failure_threshold: Failures before opening the circuit
            cooldown: Seconds after the last failure before a probe is admitted
            clock: Monotonic time source (injectable for tests)
        """
        self.name = name
        self.failure_threshold = failure_threshold
        self.cooldown = cooldown
        self._clock = clock
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.last_failure_time: float | None = None

    async def execute(self, operation: Callable[[], Awaitable[T]]) -> T:
        """Run ``operation`` through the breaker.

        Args:
            operation: Zero-argument coroutine factory

        Returns:
            Whatever the operation returns

        Raises:
            ServiceUnavailableError: Circuit open, operation not invoked
            Exception: Any exception from the operation, unchanged
        """
        if not self._can_attempt():
            logger.warning(
                LogEvents.CIRCUIT_BREAKER_REJECTED,
                breaker=self.name,
                failures=self.failure_count,
            )
            raise ServiceUnavailableError(
                "Service unavailable (Open state)",
                details={"breaker": self.name, "failures": self.failure_count},
            )

        try:
            result = await operation()
        except Exception:
            self._on_failure()
            raise

        self._on_success()
        return result

    def _can_attempt(self) -> bool:
        if self.state is not CircuitState.OPEN:
            return True

        if (
            self.last_failure_time is not None
            and self._clock() - self.last_failure_time > self.cooldown
        ):
            self._transition(CircuitState.HALF_OPEN)
            return True
        return False

    def _on_success(self) -> None:
        if self.state is CircuitState.HALF_OPEN:
            self.failure_count = 0
            self._transition(CircuitState.CLOSED)

    def _on_failure(self) -> None:
        self.failure_count += 1
        self.last_failure_time = self._clock()

        if self.failure_count >= self.failure_threshold and (
            self.state is not CircuitState.OPEN
        ):
            self._transition(CircuitState.OPEN)

    def _transition(self, new_state: CircuitState) -> None:
        event = {
            CircuitState.OPEN: LogEvents.CIRCUIT_BREAKER_OPENED,
            CircuitState.HALF_OPEN: LogEvents.CIRCUIT_BREAKER_HALF_OPEN,
            CircuitState.CLOSED: LogEvents.CIRCUIT_BREAKER_CLOSED,
        }[new_state]
        log = logger.warning if new_state is CircuitState.OPEN else logger.info
        log(
            event,
            breaker=self.name,
            from_state=self.state.value,
            failures=self.failure_count,
        )
        self.state = new_state
        record_breaker_transition(self.name, new_state.value)

    def reset(self) -> None:
        """Manually reset circuit breaker to closed state."""
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.last_failure_time = None

    def snapshot(self) -> dict[str, Any]:
        """State summary for health endpoints."""
        return {
            "name": self.name,
            "state": self.state.value,
            "failures": self.failure_count,
        }
