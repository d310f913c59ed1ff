"""
Microsoft Graph API and resilience exceptions.

Graph failures follow a small hierarchy rooted at GraphApiError so callers
can handle them granularly. The resilience layer classifies retryable and
breaker-relevant failures by exception type, never by message text.
"""

from typing import Any, Dict, Optional


class GraphApiError(Exception):
    """
    Base exception for all Microsoft Graph API related errors.

    Attributes:
        message (str): Human-readable error message
        status_code (Optional[int]): HTTP status code if applicable
        error_code (Optional[str]): Graph error code, e.g. 'Request_ResourceNotFound'
        details (Dict[str, Any]): Additional error details
    """

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None
    ) -> None:
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert exception to dictionary for serialization.

        Returns:
            Dictionary representation of the exception
        """
        return {
            'message': self.message,
            'status_code': self.status_code,
            'error_code': self.error_code,
            'details': self.details,
            'exception_type': self.__class__.__name__
        }


class GraphAuthError(GraphApiError):
    """Token acquisition failed or Graph answered 401/403."""


class GraphBadRequestError(GraphApiError):
    """Graph rejected the request as malformed (400)."""


class GraphNotFoundError(GraphApiError):
    """The requested resource does not exist (404)."""


class RetryableGraphError(GraphApiError):
    """
    Base for failures that may succeed when attempted again.

    Attributes:
        retry_after (Optional[float]): Seconds the server asked us to wait
    """

    def __init__(self, message: str, retry_after: Optional[float] = None, **kwargs: Any) -> None:
        self.retry_after = retry_after
        super().__init__(message, **kwargs)

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data['retry_after'] = self.retry_after
        return data


class ThrottledError(RetryableGraphError):
    """Graph throttled the request (429)."""


class ServiceUnavailableError(RetryableGraphError):
    """Graph returned a 5xx response."""


class GraphTransportError(RetryableGraphError):
    """The request never got an HTTP answer (connect error, timeout)."""


class CircuitOpenError(Exception):
    """Raised when a call is rejected because the circuit breaker is open."""

    def __init__(self, name: str, retry_after: float = 0.0):
        self.name = name
        self.retry_after = retry_after
        super().__init__(f"Circuit '{name}' is open; retry in {retry_after:.1f}s")


RETRYABLE_EXCEPTIONS = (RetryableGraphError,)
NON_RETRYABLE_EXCEPTIONS = (
    GraphAuthError, GraphBadRequestError, GraphNotFoundError, CircuitOpenError, ValueError, TypeError
)
