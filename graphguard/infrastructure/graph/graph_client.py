"""Async Microsoft Graph REST client.

Performs single request attempts and maps HTTP failures onto the
GraphApiError hierarchy. Retries, rate limiting and circuit breaking are
handled by the caller (ResiliencePipeline).
"""

import logging
from email.utils import parsedate_to_datetime
from datetime import datetime, timezone
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

import httpx

from graphguard.domain.exceptions import (
    GraphApiError, GraphAuthError, GraphBadRequestError, GraphNotFoundError,
    ThrottledError, ServiceUnavailableError, GraphTransportError,
)
from graphguard.domain.models.common import GraphPayload, ResourcePath
from graphguard.domain.models.graph import GraphPage
from graphguard.infrastructure.graph.token_provider import TokenProvider

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://graph.microsoft.com/v1.0"
DEFAULT_TIMEOUT_S = 30.0


def parse_retry_after(value: Optional[str]) -> Optional[float]:
    """Parses a Retry-After header given as delta-seconds or an HTTP date."""
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        when = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    if when.tzinfo is None:
        when = when.replace(tzinfo=timezone.utc)
    return max(0.0, (when - datetime.now(timezone.utc)).total_seconds())


def error_from_response(response: httpx.Response) -> GraphApiError:
    """Builds the matching GraphApiError for a non-2xx Graph response."""
    status = response.status_code
    try:
        body = response.json()
    except ValueError:
        body = {}
    error_block = body.get('error', {}) if isinstance(body, dict) else {}
    if not isinstance(error_block, dict):
        error_block = {}
    error_code = error_block.get('code')
    message = error_block.get('message') or response.reason_phrase or f"HTTP {status}"
    details = {'request_id': response.headers.get('request-id')} if response.headers.get('request-id') else {}
    retry_after = parse_retry_after(response.headers.get('Retry-After'))

    if status == 429:
        return ThrottledError(message, retry_after=retry_after, status_code=status, error_code=error_code, details=details)
    if status >= 500:
        return ServiceUnavailableError(message, retry_after=retry_after, status_code=status, error_code=error_code, details=details)
    if status in (401, 403):
        return GraphAuthError(message, status_code=status, error_code=error_code, details=details)
    if status == 404:
        return GraphNotFoundError(message, status_code=status, error_code=error_code, details=details)
    if status == 400:
        return GraphBadRequestError(message, status_code=status, error_code=error_code, details=details)
    return GraphApiError(message, status_code=status, error_code=error_code, details=details)


PageFetcher = Callable[[str, Optional[Dict[str, Any]]], Awaitable[GraphPage]]


async def iterate_pages(
    fetch_page: PageFetcher,
    path: str,
    params: Optional[Dict[str, Any]] = None,
    max_items: Optional[int] = None,
) -> AsyncIterator[Dict[str, Any]]:
    """Yields collection items across pages by following @odata.nextLink.

    ``fetch_page(path, params)`` performs one page request; services pass a
    fetcher that runs through the ResiliencePipeline. No further page is
    requested once max_items items have been yielded.
    """
    yielded = 0
    page = await fetch_page(path, params)
    while True:
        for item in page.items:
            if max_items is not None and yielded >= max_items:
                return
            yield item
            yielded += 1
        if not page.has_more or (max_items is not None and yielded >= max_items):
            return
        # nextLink already carries the query string
        page = await fetch_page(page.next_link, None)


class GraphClient:
    """Thin async wrapper over the Graph v1.0 REST endpoint."""

    def __init__(
        self,
        token_provider: TokenProvider,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = DEFAULT_TIMEOUT_S,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.token_provider = token_provider
        self.base_url = base_url.rstrip('/')
        self._owns_client = http_client is None
        self._http = http_client or httpx.AsyncClient(timeout=timeout)
        logger.info(f"GraphClient initialized for {self.base_url}")

    def _url(self, path: str) -> str:
        # nextLink values are already absolute
        if path.startswith("http://") or path.startswith("https://"):
            return path
        return f"{self.base_url}/{path.lstrip('/')}"

    async def request(
        self,
        method: str,
        path: ResourcePath,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
    ) -> GraphPayload:
        """Performs one Graph request attempt.

        Returns:
            The decoded JSON body ({} for 204 No Content).

        Raises:
            GraphApiError: A subclass matching the HTTP status.
            GraphTransportError: If no HTTP response was received.
        """
        token = await self.token_provider.get_token()
        headers = {'Authorization': f'Bearer {token}', 'Accept': 'application/json'}
        url = self._url(path)
        logger.debug(f"Graph {method} {url} params={params}")
        try:
            response = await self._http.request(method, url, params=params, json=json, headers=headers)
        except httpx.TimeoutException as e:
            raise GraphTransportError(f"Timeout calling Graph {method} {path}: {e}") from e
        except httpx.HTTPError as e:
            raise GraphTransportError(f"Transport error calling Graph {method} {path}: {e}") from e

        if response.is_success:
            if response.status_code == 204 or not response.content:
                return GraphPayload({})
            return GraphPayload(response.json())

        error = error_from_response(response)
        if response.status_code == 401:
            self.token_provider.invalidate()
        logger.debug(f"Graph {method} {path} -> {response.status_code} {error.error_code}")
        raise error

    async def get(self, path: ResourcePath, params: Optional[Dict[str, Any]] = None) -> GraphPayload:
        return await self.request("GET", path, params=params)

    async def get_page(self, path: ResourcePath, params: Optional[Dict[str, Any]] = None) -> GraphPage:
        """Fetches one page of a collection."""
        return GraphPage.from_payload(await self.get(path, params=params))

    async def close(self) -> None:
        if self._owns_client:
            await self._http.aclose()
        await self.token_provider.close()

    async def __aenter__(self) -> "GraphClient":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
