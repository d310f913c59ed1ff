"""Resilience pipeline composing breaker, limiter and retry around one call.

Order per attempt: circuit breaker admission, then rate limiter, then the
call itself. The retry handler wraps the whole attempt. An open circuit is
never retried. When every attempt fails the pipeline can fall back to the
last cached result for the same key.
"""

import logging
import time
from typing import Any, Callable, Coroutine, Dict, Optional

from graphguard.domain.exceptions import CircuitOpenError, GraphApiError
from graphguard.domain.events.api_events import (
    ApiCallInitiated, ApiCallSucceeded, ApiCallFailed, ApiCallDeferred, CacheFallbackUsed
)
from graphguard.domain.interfaces.cache import CacheService
from graphguard.domain.models.common import CacheKey
from graphguard.infrastructure.monitoring.event_dispatcher import EventDispatcher
from graphguard.infrastructure.resilience.circuit_breaker import CircuitBreaker
from graphguard.infrastructure.resilience.rate_limiter import RateLimiter
from graphguard.infrastructure.resilience.retry_handler import RetryHandler

logger = logging.getLogger(__name__)


class ResiliencePipeline:
    """Handles Graph call execution with rate limiting, circuit breaking, retries and cache fallback."""

    def __init__(
        self,
        rate_limiter: RateLimiter,
        retry_handler: RetryHandler,
        circuit_breaker: CircuitBreaker,
        cache_service: Optional[CacheService] = None,
        dispatcher: Optional[EventDispatcher] = None,
    ):
        """Initializes the pipeline.

        Args:
            rate_limiter: Limiter applied to every attempt.
            retry_handler: Retry policy wrapped around every attempt.
            circuit_breaker: Breaker consulted before every attempt.
            cache_service: Optional cache for result storage and fallback.
            dispatcher: Event dispatcher shared with the components.
        """
        self.rate_limiter = rate_limiter
        self.retry_handler = retry_handler
        self.circuit_breaker = circuit_breaker
        self.cache_service = cache_service
        self.dispatcher = dispatcher or EventDispatcher()
        logger.info(
            f"ResiliencePipeline initialized: breaker='{circuit_breaker.name}', "
            f"cache={'on' if cache_service else 'off'}"
        )

    async def _attempt(
        self,
        func: Callable[..., Coroutine[Any, Any, Any]],
        endpoint: str,
        counter: Dict[str, int],
        args: tuple,
        kwargs: Dict[str, Any],
    ) -> Any:
        """One attempt: breaker admission -> limiter -> call."""
        async def limited_call() -> Any:
            wait_duration = await self.rate_limiter.get_wait_time()
            if wait_duration > 0:
                self.dispatcher.dispatch(ApiCallDeferred(endpoint=endpoint, wait_time_seconds=wait_duration))
            await self.rate_limiter.acquire()
            counter['attempt'] += 1
            self.dispatcher.dispatch(ApiCallInitiated(endpoint=endpoint, attempt_number=counter['attempt']))
            start_time = time.perf_counter()
            result = await func(*args, **kwargs)
            latency_ms = (time.perf_counter() - start_time) * 1000
            self.dispatcher.dispatch(ApiCallSucceeded(endpoint=endpoint, latency_ms=latency_ms))
            return result

        return await self.circuit_breaker.call(limited_call, endpoint_name=endpoint)

    async def execute(
        self,
        func: Callable[..., Coroutine[Any, Any, Any]],
        *args: Any,
        endpoint_name: Optional[str] = None,
        cache_key: Optional[CacheKey] = None,
        use_cache_fallback: bool = True,
        **kwargs: Any
    ) -> Any:
        """Executes an async function through the full pipeline.

        Args:
            func: The async function (Graph call) to execute.
            *args: Positional arguments for the function.
            endpoint_name: Name of the logical endpoint, e.g. 'list_users'.
            cache_key: Optional key under which the result is cached and looked
                up again as a fallback.
            use_cache_fallback: Whether to attempt fallback to cache.
            **kwargs: Keyword arguments for the function.

        Returns:
            The result of the function call or a cached fallback result.

        Raises:
            CircuitOpenError: If the circuit is open and no fallback exists.
            Exception: The last error once retries (and fallback) are exhausted.
        """
        endpoint = endpoint_name or getattr(func, '__name__', 'call')
        counter = {'attempt': 0}
        try:
            result = await self.retry_handler.execute(
                self._attempt, func, endpoint, counter, args, kwargs, endpoint_name=endpoint
            )
        except Exception as e:
            self.dispatcher.dispatch(ApiCallFailed(
                endpoint=endpoint, error_type=type(e).__name__, error_message=str(e),
                status_code=getattr(e, 'status_code', None),
            ))
            if use_cache_fallback and self._fallback_allowed(e):
                cached_value = await self._cache_fallback(endpoint, cache_key, e)
                if cached_value is not None:
                    return cached_value
            logger.error(f"Graph call {endpoint} failed definitively: {type(e).__name__}: {e}")
            raise

        if cache_key and self.cache_service:
            # each cache level applies its own TTL (short in memory, long on disk)
            await self.cache_service.set(cache_key, result)
        return result

    @staticmethod
    def _fallback_allowed(error: Exception) -> bool:
        # A stale answer is fine when Graph is unreachable, not when it said "no"
        if isinstance(error, CircuitOpenError):
            return True
        if isinstance(error, GraphApiError):
            return error.status_code is None or error.status_code == 429 or error.status_code >= 500
        return False

    async def _cache_fallback(self, endpoint: str, cache_key: Optional[CacheKey], error: Exception) -> Optional[Any]:
        if not (self.cache_service and cache_key):
            return None
        logger.info(f"Attempting fallback from cache for key: {cache_key}")
        cached_value = await self.cache_service.get(cache_key)
        if cached_value is None:
            logger.info(f"Cache fallback failed for key: {cache_key} (not found or expired)")
            return None
        logger.warning(f"Serving cached result for {endpoint} after {type(error).__name__}")
        self.dispatcher.dispatch(CacheFallbackUsed(
            endpoint=endpoint, cache_key=cache_key, reason=type(error).__name__,
        ))
        return cached_value

    def status(self) -> Dict[str, Any]:
        """Combined snapshot of limiter and breaker."""
        return {
            'rate_limiter': self.rate_limiter.snapshot(),
            'circuit_breaker': self.circuit_breaker.snapshot(),
            'retry': {
                'max_retries': self.retry_handler.max_retries,
                'initial_delay': self.retry_handler.initial_delay,
                'factor': self.retry_handler.factor,
                'max_delay': self.retry_handler.max_delay,
            },
        }
