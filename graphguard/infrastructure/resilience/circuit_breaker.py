"""Circuit breaker guarding outbound Graph calls.

Closed -> (failure_threshold consecutive failures) -> Open
Open -> (recovery_timeout elapsed) -> Half-Open
Half-Open -> (trial succeeds) -> Closed | (trial fails) -> Open

While Half-Open exactly one trial call is admitted; other callers are
rejected until that trial finishes.
"""

import asyncio
import logging
import time
from typing import Any, Callable, Coroutine, Dict, Optional, Tuple, Type

from graphguard.domain.exceptions import CircuitOpenError, RETRYABLE_EXCEPTIONS
from graphguard.domain.events.api_events import CircuitStateChanged, CallRejected
from graphguard.domain.models.common import BreakerPolicy, CircuitState
from graphguard.infrastructure.monitoring.event_dispatcher import EventDispatcher

logger = logging.getLogger(__name__)

DEFAULT_FAILURE_THRESHOLD = 5
DEFAULT_RECOVERY_TIMEOUT_S = 30.0


class CircuitBreaker:
    """Stops calling a failing dependency until a cool-down has elapsed."""

    def __init__(
        self,
        name: str = "graph",
        failure_threshold: int = DEFAULT_FAILURE_THRESHOLD,
        recovery_timeout: float = DEFAULT_RECOVERY_TIMEOUT_S,
        failure_exceptions: Tuple[Type[BaseException], ...] = RETRYABLE_EXCEPTIONS,
        dispatcher: Optional[EventDispatcher] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initializes the breaker.

        Args:
            name: Label used in logs, events and CircuitOpenError.
            failure_threshold: Consecutive failures that open the circuit.
            recovery_timeout: Seconds to stay open before admitting a trial call.
            failure_exceptions: Exception types that count as failures. Anything
                else means the dependency answered and counts as a success.
            dispatcher: Optional event dispatcher for state change events.
            clock: Monotonic time source (injectable for tests).
        """
        if failure_threshold < 1:
            raise ValueError(f"failure_threshold must be >= 1, got {failure_threshold}")
        if recovery_timeout < 0:
            raise ValueError(f"recovery_timeout must be >= 0, got {recovery_timeout}")
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_exceptions = failure_exceptions
        self.dispatcher = dispatcher
        self._clock = clock
        self._lock = asyncio.Lock()

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._opened_at: Optional[float] = None
        self._trial_in_flight = False
        self.total_successes = 0
        self.total_failures = 0
        self.rejected_calls = 0
        logger.info(
            f"CircuitBreaker '{name}' initialized: threshold={failure_threshold}, "
            f"recovery_timeout={recovery_timeout}s"
        )

    @classmethod
    def from_policy(cls, policy: BreakerPolicy, **kwargs: Any) -> "CircuitBreaker":
        return cls(
            failure_threshold=policy['failure_threshold'],
            recovery_timeout=policy['recovery_timeout'],
            **kwargs,
        )

    # --- State ---

    @property
    def state(self) -> CircuitState:
        """Current state; an expired Open circuit reports (and becomes) Half-Open."""
        if self._state is CircuitState.OPEN and self._remaining_cooldown() <= 0:
            self._transition(CircuitState.HALF_OPEN)
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failure_count

    def _remaining_cooldown(self) -> float:
        if self._opened_at is None:
            return 0.0
        return max(0.0, self._opened_at + self.recovery_timeout - self._clock())

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self._state
        if old_state is new_state:
            return
        self._state = new_state
        if new_state is CircuitState.OPEN:
            self._opened_at = self._clock()
            logger.warning(
                f"Circuit '{self.name}' OPEN after {self._failure_count} consecutive failures; "
                f"cooling down for {self.recovery_timeout}s"
            )
        elif new_state is CircuitState.HALF_OPEN:
            logger.info(f"Circuit '{self.name}' HALF-OPEN; admitting one trial call")
        else:
            self._opened_at = None
            self._failure_count = 0
            logger.info(f"Circuit '{self.name}' CLOSED")
        if self.dispatcher:
            self.dispatcher.dispatch(CircuitStateChanged(
                name=self.name, old_state=old_state, new_state=new_state,
                failure_count=self._failure_count,
            ))

    # --- Admission and outcome recording ---

    async def _admit(self, endpoint: str) -> bool:
        """Raises CircuitOpenError if the call may not proceed.

        Returns:
            True when the admitted call is the Half-Open trial.
        """
        async with self._lock:
            state = self.state
            if state is CircuitState.CLOSED:
                return False
            if state is CircuitState.HALF_OPEN and not self._trial_in_flight:
                self._trial_in_flight = True
                return True
            retry_after = self._remaining_cooldown()
            self.rejected_calls += 1
        logger.debug(f"Circuit '{self.name}' rejected call to {endpoint} ({state.value})")
        if self.dispatcher:
            self.dispatcher.dispatch(CallRejected(name=self.name, endpoint=endpoint, retry_after=retry_after))
        raise CircuitOpenError(self.name, retry_after)

    async def record_success(self, is_trial: bool = False) -> None:
        """Records a call that reached the dependency.

        Only the Half-Open trial may close the circuit; calls admitted
        earlier that finish while Open or Half-Open just update counters.
        """
        async with self._lock:
            self.total_successes += 1
            if is_trial:
                self._trial_in_flight = False
                if self._state is CircuitState.HALF_OPEN:
                    self._transition(CircuitState.CLOSED)
            elif self._state is CircuitState.CLOSED:
                self._failure_count = 0

    async def record_failure(self, is_trial: bool = False) -> None:
        """Records a failed call; only the trial may reopen a Half-Open circuit."""
        async with self._lock:
            self.total_failures += 1
            if is_trial:
                self._trial_in_flight = False
                if self._state is CircuitState.HALF_OPEN:
                    self._failure_count += 1
                    self._transition(CircuitState.OPEN)
            elif self._state is CircuitState.CLOSED:
                self._failure_count += 1
                if self._failure_count >= self.failure_threshold:
                    self._transition(CircuitState.OPEN)

    def is_failure(self, error: BaseException) -> bool:
        return isinstance(error, self.failure_exceptions)

    async def call(
        self,
        func: Callable[..., Coroutine[Any, Any, Any]],
        *args: Any,
        endpoint_name: Optional[str] = None,
        **kwargs: Any
    ) -> Any:
        """Runs ``func`` if the circuit admits it and records the outcome.

        Raises:
            CircuitOpenError: The circuit is open, or Half-Open with a trial in flight.
            Exception: Whatever ``func`` raised.
        """
        endpoint = endpoint_name or getattr(func, '__name__', 'call')
        is_trial = await self._admit(endpoint)
        try:
            result = await func(*args, **kwargs)
        except asyncio.CancelledError:
            # Cancellation says nothing about the dependency; free the trial slot
            if is_trial:
                async with self._lock:
                    self._trial_in_flight = False
            raise
        except Exception as e:
            if self.is_failure(e):
                await self.record_failure(is_trial)
            else:
                await self.record_success(is_trial)
            raise
        await self.record_success(is_trial)
        return result

    def reset(self) -> None:
        """Forces the circuit closed and clears counters."""
        self._transition(CircuitState.CLOSED)
        self._failure_count = 0
        self._trial_in_flight = False

    def snapshot(self) -> Dict[str, Any]:
        state = self.state
        return {
            'name': self.name,
            'state': state.value,
            'failure_count': self._failure_count,
            'failure_threshold': self.failure_threshold,
            'recovery_timeout': self.recovery_timeout,
            'retry_after': self._remaining_cooldown() if state is CircuitState.OPEN else 0.0,
            'total_successes': self.total_successes,
            'total_failures': self.total_failures,
            'rejected_calls': self.rejected_calls,
        }
