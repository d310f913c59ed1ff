"""Service for executing Graph calls with automatic retries.

Implements exponential backoff for transient failures such as throttling
(429), temporary server issues (5xx) and transport errors. Whether a
failure is retryable is decided by its exception type.
"""

import logging
import asyncio
from typing import Any, Awaitable, Callable, Coroutine, Optional, Tuple, Type

from graphguard.domain.exceptions import RETRYABLE_EXCEPTIONS, NON_RETRYABLE_EXCEPTIONS
from graphguard.domain.events.api_events import RetryScheduled
from graphguard.domain.models.common import RetryPolicy
from graphguard.infrastructure.monitoring.event_dispatcher import EventDispatcher

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_INITIAL_DELAY_S = 1.0
DEFAULT_BACKOFF_FACTOR = 2.0
DEFAULT_MAX_DELAY_S = 30.0


class RetryHandler:
    """Re-invokes a failing coroutine with exponentially increasing delay."""

    def __init__(
        self,
        max_retries: int = DEFAULT_MAX_RETRIES,
        initial_delay: float = DEFAULT_INITIAL_DELAY_S,
        factor: float = DEFAULT_BACKOFF_FACTOR,
        max_delay: float = DEFAULT_MAX_DELAY_S,
        retryable_exceptions: Tuple[Type[BaseException], ...] = RETRYABLE_EXCEPTIONS,
        non_retryable_exceptions: Tuple[Type[BaseException], ...] = NON_RETRYABLE_EXCEPTIONS,
        dispatcher: Optional[EventDispatcher] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initializes the RetryHandler.

        Args:
            max_retries: Retries after the first attempt (total attempts = max_retries + 1).
            initial_delay: Delay in seconds before the first retry.
            factor: Multiplier applied per attempt (2 gives exponential backoff).
            max_delay: Upper bound for any single delay.
            retryable_exceptions: Exception types worth another attempt.
            non_retryable_exceptions: Exception types that propagate at once, even
                if they subclass a retryable type.
            dispatcher: Optional event dispatcher for RetryScheduled events.
            sleep: Coroutine used to wait (injectable for tests).
        """
        if max_retries < 0:
            raise ValueError(f"max_retries must be >= 0, got {max_retries}")
        if initial_delay < 0 or max_delay < 0:
            raise ValueError("delays must be non-negative")
        if factor < 1:
            raise ValueError(f"factor must be >= 1, got {factor}")
        self.max_retries = max_retries
        self.initial_delay = initial_delay
        self.factor = factor
        self.max_delay = max_delay
        self.retryable_exceptions = retryable_exceptions
        self.non_retryable_exceptions = non_retryable_exceptions
        self.dispatcher = dispatcher
        self._sleep = sleep
        logger.info(
            f"RetryHandler initialized: max_retries={max_retries}, "
            f"initial_delay={initial_delay}s, factor={factor}, max_delay={max_delay}s"
        )

    @classmethod
    def from_policy(cls, policy: RetryPolicy, **kwargs: Any) -> "RetryHandler":
        return cls(
            max_retries=policy['max_retries'],
            initial_delay=policy['initial_delay'],
            factor=policy['factor'],
            max_delay=policy['max_delay'],
            **kwargs,
        )

    def is_retryable(self, error: BaseException) -> bool:
        if isinstance(error, self.non_retryable_exceptions):
            return False
        return isinstance(error, self.retryable_exceptions)

    def compute_delay(self, attempt: int, error: Optional[BaseException] = None) -> float:
        """Delay before retry number ``attempt + 1`` (attempt is zero based).

        A server supplied Retry-After wins over the computed backoff; both are
        capped at max_delay.
        """
        retry_after = getattr(error, 'retry_after', None)
        if retry_after is not None and retry_after >= 0:
            return min(float(retry_after), self.max_delay)
        return min(self.initial_delay * (self.factor ** attempt), self.max_delay)

    async def execute(
        self,
        func: Callable[..., Coroutine[Any, Any, Any]],
        *args: Any,
        endpoint_name: Optional[str] = None,
        **kwargs: Any
    ) -> Any:
        """Executes an async function, retrying retryable failures.

        Args:
            func: The async function to execute.
            *args: Positional arguments for the function.
            endpoint_name: Name used in logs/events (defaults to func.__name__).
            **kwargs: Keyword arguments for the function.

        Returns:
            The result of the first successful attempt.

        Raises:
            Exception: The last exception once retries are exhausted, or the
                first non-retryable exception.
        """
        endpoint = endpoint_name or getattr(func, '__name__', 'call')
        attempt = 0
        while True:
            try:
                return await func(*args, **kwargs)
            except Exception as e:
                if not self.is_retryable(e):
                    logger.debug(f"Non-retryable {type(e).__name__} from {endpoint} on attempt {attempt + 1}; propagating.")
                    raise
                if attempt >= self.max_retries:
                    logger.error(f"Max retries ({self.max_retries}) reached for {endpoint}. Last error: {e}")
                    raise
                delay = self.compute_delay(attempt, e)
                logger.warning(
                    f"Retryable error calling {endpoint} on attempt {attempt + 1}/{self.max_retries + 1}: "
                    f"{type(e).__name__}. Waiting {delay:.2f}s..."
                )
                if self.dispatcher:
                    self.dispatcher.dispatch(RetryScheduled(
                        endpoint=endpoint, attempt_number=attempt + 1,
                        delay_seconds=delay, error_type=type(e).__name__,
                    ))
                await self._sleep(delay)
                attempt += 1
