"""Domain Events related to Graph API calls and resilience.

Examples include events for when calls are deferred, retried, rejected by
an open circuit, fail, or succeed.
"""

from dataclasses import dataclass, field
import time
from typing import Optional

from graphguard.domain.models.common import CircuitState


@dataclass
class DomainEvent:
    """Base class for domain events."""
    pass


# --- Call lifecycle ---

@dataclass
class ApiCallInitiated(DomainEvent):
    """Event triggered when a Graph call is about to be made."""
    endpoint: str
    attempt_number: int = 1
    timestamp: float = field(default_factory=time.time)


@dataclass
class ApiCallSucceeded(DomainEvent):
    endpoint: str
    latency_ms: float
    timestamp: float = field(default_factory=time.time)


@dataclass
class ApiCallFailed(DomainEvent):
    """Event triggered when a Graph call fails definitively (after retries)."""
    endpoint: str
    error_type: str
    error_message: str
    status_code: Optional[int] = None
    timestamp: float = field(default_factory=time.time)


@dataclass
class ApiCallDeferred(DomainEvent):
    """Event triggered when a call is deferred due to rate limiting."""
    endpoint: str
    wait_time_seconds: float
    timestamp: float = field(default_factory=time.time)


@dataclass
class RetryScheduled(DomainEvent):
    endpoint: str
    attempt_number: int
    delay_seconds: float
    error_type: str
    timestamp: float = field(default_factory=time.time)


# --- Circuit breaker ---

@dataclass
class CircuitStateChanged(DomainEvent):
    """Event triggered on every breaker transition (e.g. closed -> open)."""
    name: str
    old_state: CircuitState
    new_state: CircuitState
    failure_count: int
    timestamp: float = field(default_factory=time.time)


@dataclass
class CallRejected(DomainEvent):
    """A call was refused without reaching Graph because the circuit is open."""
    name: str
    endpoint: str
    retry_after: float
    timestamp: float = field(default_factory=time.time)


# --- Fallbacks ---

@dataclass
class CacheFallbackUsed(DomainEvent):
    endpoint: str
    cache_key: str
    reason: str
    timestamp: float = field(default_factory=time.time)
