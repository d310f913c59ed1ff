"""Defines common Value Objects used across different domain contexts.

These objects represent simple values or concepts like resource paths,
cache keys and resilience policies, ensuring consistency and type safety.
"""

from enum import Enum
from typing import NewType, TypedDict, Dict, Any

# === Core Value Objects ===

ResourcePath = NewType("ResourcePath", str)    # Graph path relative to the API root, e.g. '/users'
AccessToken = NewType("AccessToken", str)      # Bearer token for Graph calls
EndpointName = NewType("EndpointName", str)    # Logical name of a call, used in logs/events

# === Caching Context ===
CacheKey = NewType("CacheKey", str)            # Unique key for a cache entry
CachePrefix = NewType("CachePrefix", str)      # Prefix for categorizing cache keys (e.g., 'users')

# === Graph payloads ===
GraphPayload = NewType("GraphPayload", Dict[str, Any])  # Raw JSON object returned by Graph

CACHE_LEVELS = ('l1', 'l2', 'all')


class CircuitState(str, Enum):
    """Operational state of a circuit breaker."""
    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


# --- Policies ---

class RetryPolicy(TypedDict):
    """Value Object representing retry backoff configuration."""
    max_retries: int
    initial_delay: float
    factor: float
    max_delay: float


class RateLimitPolicy(TypedDict):
    """At most max_requests calls within any trailing time_window seconds."""
    max_requests: int
    time_window: float


class BreakerPolicy(TypedDict):
    failure_threshold: int
    recovery_timeout: float


def make_cache_key(prefix: str, *parts: Any) -> CacheKey:
    """Builds a readable cache key such as 'users|top=10|filter=None'."""
    return CacheKey("|".join([prefix, *(str(p) for p in parts)]))
