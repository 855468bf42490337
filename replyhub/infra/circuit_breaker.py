"""Circuit breaker for model endpoint calls."""

import logging
import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional, Tuple, Type

from replyhub.infra.config import config
from replyhub.infra.error_handler import CircuitOpenError, EndpointError
from replyhub.infra.metrics import circuit_breaker_state, circuit_breaker_transitions_total

logger = logging.getLogger(__name__)


class CircuitState(str, Enum):
    """Circuit breaker states."""
    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject requests
    HALF_OPEN = "half_open"  # One trial call allowed through


class CircuitEvent(str, Enum):
    """Inputs to the circuit transition function."""
    ADMIT = "admit"
    SUCCESS = "success"
    FAILURE = "failure"
    RELEASE = "release"  # Call ended without an outcome (e.g. cancelled)


# Hint returned to callers rejected while the half-open trial is in flight
TRIAL_RETRY_AFTER = 1.0

_GAUGE_VALUES = {
    CircuitState.CLOSED: 0,
    CircuitState.HALF_OPEN: 1,
    CircuitState.OPEN: 2,
}


@dataclass(frozen=True)
class CircuitSnapshot:
    """Consistent point-in-time view of the circuit."""
    state: CircuitState
    failure_count: int
    last_transition_at: float
    generation: int


class CircuitBreaker:
    """
    Circuit breaker shared by every caller of one model endpoint.

    All state lives in a single cell mutated only by ``_transition`` under a
    lock. Each admitted call receives a ticket (the circuit generation at
    admission); its outcome is applied only if the generation is unchanged,
    so late results from calls admitted before a transition are discarded
    instead of being double-counted.
    """

    def __init__(
        self,
        name: str = "model_endpoint",
        failure_threshold: int = 5,
        recovery_timeout: float = 60,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize circuit breaker.

        Args:
            name: Service label used in logs and metrics
            failure_threshold: Consecutive failures in closed state before opening
            recovery_timeout: Seconds to stay open before allowing a trial call
            clock: Monotonic time source, injectable for tests
        """
        if failure_threshold < 1:
            raise ValueError("failure_threshold must be at least 1")
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self._clock = clock

        self._lock = threading.Lock()
        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_transition_at = clock()
        self._generation = 0
        self._trial_in_flight = False

        circuit_breaker_state.labels(service=name).set(_GAUGE_VALUES[CircuitState.CLOSED])

    def snapshot(self) -> CircuitSnapshot:
        with self._lock:
            return self._snapshot()

    @property
    def state(self) -> CircuitState:
        return self.snapshot().state

    @property
    def failure_count(self) -> int:
        return self.snapshot().failure_count

    def admit(self) -> int:
        """
        Ask permission to call the endpoint.

        Returns:
            Ticket to pass to ``record_success``/``record_failure``/``release``

        Raises:
            CircuitOpenError: If the circuit is open or a half-open trial is in flight
        """
        admitted, snapshot, retry_after = self._transition(CircuitEvent.ADMIT)
        if not admitted:
            raise CircuitOpenError(
                f"Circuit breaker '{self.name}' is {snapshot.state.value}. "
                f"Retry after {int(retry_after)} seconds.",
                retry_after=retry_after,
            )
        return snapshot.generation

    def record_success(self, ticket: int) -> None:
        self._transition(CircuitEvent.SUCCESS, ticket)

    def record_failure(self, ticket: int) -> None:
        self._transition(CircuitEvent.FAILURE, ticket)

    def release(self, ticket: int) -> None:
        self._transition(CircuitEvent.RELEASE, ticket)

    async def call_async(
        self,
        func: Callable,
        *args,
        counted_exceptions: Tuple[Type[BaseException], ...] = (EndpointError,),
        **kwargs,
    ) -> Any:
        """
        Execute async function with circuit breaker protection.

        Only ``counted_exceptions`` count as endpoint failures. Any other
        exception (including cancellation) releases the admission without
        changing the failure count.

        Raises:
            CircuitOpenError: If the call is rejected without being attempted
        """
        ticket = self.admit()
        try:
            result = await func(*args, **kwargs)
        except counted_exceptions:
            self.record_failure(ticket)
            raise
        except BaseException:
            self.release(ticket)
            raise
        self.record_success(ticket)
        return result

    def _snapshot(self) -> CircuitSnapshot:
        return CircuitSnapshot(
            state=self._state,
            failure_count=self._failure_count,
            last_transition_at=self._last_transition_at,
            generation=self._generation,
        )

    def _move_to(self, new_state: CircuitState, now: float) -> None:
        # Caller holds the lock
        old_state = self._state
        self._state = new_state
        self._last_transition_at = now
        self._generation += 1
        circuit_breaker_state.labels(service=self.name).set(_GAUGE_VALUES[new_state])
        circuit_breaker_transitions_total.labels(service=self.name, to_state=new_state.value).inc()
        logger.warning(
            f"Circuit breaker '{self.name}' {old_state.value} -> {new_state.value}",
            extra={"circuit": self.name, "failure_count": self._failure_count},
        )

    def _transition(
        self, event: CircuitEvent, ticket: Optional[int] = None
    ) -> Tuple[bool, CircuitSnapshot, float]:
        """
        Apply one event to the circuit atomically.

        Returns:
            Tuple of (admitted, snapshot after the event, retry_after seconds)
        """
        with self._lock:
            now = self._clock()

            if event == CircuitEvent.ADMIT:
                if self._state == CircuitState.CLOSED:
                    return True, self._snapshot(), 0.0

                if self._state == CircuitState.OPEN:
                    elapsed = now - self._last_transition_at
                    if elapsed < self.recovery_timeout:
                        return False, self._snapshot(), self.recovery_timeout - elapsed
                    self._move_to(CircuitState.HALF_OPEN, now)
                    self._trial_in_flight = True
                    return True, self._snapshot(), 0.0

                # Half-open: exactly one trial at a time
                if self._trial_in_flight:
                    return False, self._snapshot(), TRIAL_RETRY_AFTER
                self._trial_in_flight = True
                return True, self._snapshot(), 0.0

            if ticket != self._generation:
                # Outcome of a call admitted before the last transition
                return False, self._snapshot(), 0.0

            if event == CircuitEvent.SUCCESS:
                if self._state == CircuitState.HALF_OPEN:
                    self._trial_in_flight = False
                    self._failure_count = 0
                    self._move_to(CircuitState.CLOSED, now)
                else:
                    self._failure_count = 0

            elif event == CircuitEvent.FAILURE:
                if self._state == CircuitState.HALF_OPEN:
                    self._trial_in_flight = False
                    self._move_to(CircuitState.OPEN, now)
                else:
                    self._failure_count += 1
                    if self._failure_count >= self.failure_threshold:
                        self._move_to(CircuitState.OPEN, now)

            elif event == CircuitEvent.RELEASE:
                if self._state == CircuitState.HALF_OPEN:
                    self._trial_in_flight = False

            return False, self._snapshot(), 0.0


# Global circuit breaker for the configured OpenAI-compatible endpoint,
# shared by every tenant
openai_circuit_breaker = CircuitBreaker(
    name="openai",
    failure_threshold=config.CIRCUIT_FAILURE_THRESHOLD,
    recovery_timeout=config.CIRCUIT_RECOVERY_TIMEOUT,
)
