"""Implementation of a rate limiter.

Controls the frequency of outgoing Graph requests to stay below the
tenant's throttling limits. Uses a sliding window of call timestamps.
"""

import time
import asyncio
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict

logger = logging.getLogger(__name__)

DEFAULT_MAX_REQUESTS = 10  # Max 10 requests...
DEFAULT_TIME_WINDOW_SECONDS = 1.0  # ...per second


class RateLimiter:
    """Simple sliding window rate limiter.

    At most ``max_requests`` acquisitions are granted within any trailing
    ``time_window`` seconds. State lives in memory only.
    """

    def __init__(
        self,
        max_requests: int = DEFAULT_MAX_REQUESTS,
        time_window: float = DEFAULT_TIME_WINDOW_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initializes the rate limiter.

        Args:
            max_requests: Maximum number of requests allowed in the time window.
            time_window: The time window in seconds.
            clock: Monotonic time source (injectable for tests).
            sleep: Coroutine used to wait (injectable for tests).
        """
        if max_requests < 1:
            raise ValueError(f"max_requests must be >= 1, got {max_requests}")
        if time_window <= 0:
            raise ValueError(f"time_window must be > 0, got {time_window}")
        self.max_requests = max_requests
        self.time_window = time_window
        self._clock = clock
        self._sleep = sleep
        self.timestamps: Deque[float] = deque()
        self._lock = asyncio.Lock()
        self.total_granted = 0
        self.total_deferred = 0
        logger.info(f"RateLimiter initialized: {max_requests} requests / {time_window} seconds")

    def _cleanup_timestamps(self, now: float) -> None:
        """Removes timestamps that fell out of the window."""
        while self.timestamps and now - self.timestamps[0] >= self.time_window:
            self.timestamps.popleft()

    def _wait_time(self, now: float) -> float:
        if len(self.timestamps) < self.max_requests:
            return 0.0
        return max(0.0, self.timestamps[0] + self.time_window - now)

    async def acquire(self) -> float:
        """Waits until a request is permitted, then records it.

        Returns:
            Total seconds spent waiting (0.0 when granted immediately).
        """
        waited = 0.0
        deferred = False
        while True:
            async with self._lock:
                now = self._clock()
                self._cleanup_timestamps(now)
                if len(self.timestamps) < self.max_requests:
                    self.timestamps.append(now)
                    self.total_granted += 1
                    logger.debug("Rate limit permission granted.")
                    return waited
                wait_time = self._wait_time(now)

            if not deferred:
                self.total_deferred += 1
                deferred = True
            # Sleep outside the lock so other callers can prune/inspect meanwhile
            logger.debug(f"Rate limit reached. Waiting for {wait_time:.2f} seconds.")
            await self._sleep(wait_time)
            waited += wait_time

    async def try_acquire(self) -> bool:
        """Records a request only if it is permitted right now; never waits."""
        async with self._lock:
            now = self._clock()
            self._cleanup_timestamps(now)
            if len(self.timestamps) < self.max_requests:
                self.timestamps.append(now)
                self.total_granted += 1
                return True
            return False

    async def get_wait_time(self) -> float:
        """Estimates the time needed before the next request can be made."""
        async with self._lock:
            now = self._clock()
            self._cleanup_timestamps(now)
            return self._wait_time(now)

    def reset(self) -> None:
        self.timestamps.clear()
        self.total_granted = 0
        self.total_deferred = 0

    def snapshot(self) -> Dict[str, Any]:
        now = self._clock()
        in_window = sum(1 for ts in self.timestamps if now - ts < self.time_window)
        return {
            'max_requests': self.max_requests,
            'time_window': self.time_window,
            'in_window': in_window,
            'total_granted': self.total_granted,
            'total_deferred': self.total_deferred,
        }
