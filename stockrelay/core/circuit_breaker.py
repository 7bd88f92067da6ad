"""Generic circuit breaker.

The breaker wraps any zero-argument fallible call (sync or async) and
knows nothing about what that call does.

    CLOSED    --failure_threshold failures-->          OPEN
    OPEN      --recovery_timeout elapsed, next call--> HALF_OPEN
    HALF_OPEN --success_threshold successes-->         CLOSED
    HALF_OPEN --any failure-->                         OPEN
"""

import inspect
import time
from collections.abc import Awaitable, Callable
from enum import Enum
from typing import TypeVar

from stockrelay.core.errors import CircuitOpenError
from stockrelay.core.logging import get_logger

T = TypeVar("T")

# Defaults
DEFAULT_FAILURE_THRESHOLD = 5
DEFAULT_RECOVERY_TIMEOUT = 60.0
DEFAULT_SUCCESS_THRESHOLD = 3


class CircuitState(Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


class CircuitBreaker:
    """Failure-isolating state machine around a fallible operation.

    Args:
        failure_threshold: Consecutive failures that open the circuit.
        recovery_timeout: Seconds to stay OPEN before letting a probe through.
        success_threshold: Consecutive HALF_OPEN successes that close it again.
        clock: Monotonic time source in seconds, injectable for tests.
        name: Label used in log records.
    """

    def __init__(
        self,
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        recovery_timeout: float = DEFAULT_RECOVERY_TIMEOUT,
        success_threshold: int = DEFAULT_SUCCESS_THRESHOLD,
        clock: Callable[[], float] = time.monotonic,
        name: str = "breaker",
    ) -> None:
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be >= 1")
        if success_threshold < 1:
            raise ValueError("success_threshold must be >= 1")
        if recovery_timeout < 0:
            raise ValueError("recovery_timeout must be >= 0")

        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.success_threshold = success_threshold
        self.name = name
        self._clock = clock
        self._log = get_logger("stockrelay.breaker")

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_at: float | None = None

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    @property
    def success_count(self) -> int:
        return self._success_count

    @property
    def last_failure_at(self) -> float | None:
        return self._last_failure_at

    async def call(self, operation: Callable[[], T | Awaitable[T]]) -> T:
        """Run the operation through the breaker.

        Returns the operation's result or re-raises its exception.

        Raises:
            CircuitOpenError: While OPEN and the recovery timeout has not
                elapsed. The operation is not invoked.
        """
        self._before_call()
        try:
            result = operation()
            if inspect.isawaitable(result):
                result = await result
        except Exception:
            self._on_failure()
            raise
        self._on_success()
        return result

    def reset(self) -> None:
        self._transition(CircuitState.CLOSED)
        self._failure_count = 0
        self._success_count = 0
        self._last_failure_at = None

    def _before_call(self) -> None:
        if self._state is not CircuitState.OPEN:
            return
        elapsed = self._clock() - (self._last_failure_at or 0.0)
        if elapsed >= self.recovery_timeout:
            self._transition(CircuitState.HALF_OPEN)
            self._success_count = 0
            return
        raise CircuitOpenError(retry_after=self.recovery_timeout - elapsed)

    def _on_success(self) -> None:
        self._failure_count = 0
        if self._state is CircuitState.HALF_OPEN:
            self._success_count += 1
            if self._success_count >= self.success_threshold:
                self._transition(CircuitState.CLOSED)
                self._success_count = 0

    def _on_failure(self) -> None:
        if self._state is CircuitState.HALF_OPEN:
            self._success_count = 0
            self._last_failure_at = self._clock()
            self._transition(CircuitState.OPEN)
            return

        self._failure_count += 1
        if self._failure_count >= self.failure_threshold:
            self._last_failure_at = self._clock()
            self._transition(CircuitState.OPEN)

    def _transition(self, new_state: CircuitState) -> None:
        if new_state is self._state:
            return
        old_state = self._state
        self._state = new_state
        self._log.warning(
            f"Circuit {self.name} {old_state.value} -> {new_state.value}",
            extra={
                "breaker": self.name,
                "from_state": old_state.value,
                "to_state": new_state.value,
                "failure_count": self._failure_count,
            },
        )
