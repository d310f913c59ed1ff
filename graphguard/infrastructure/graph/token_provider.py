"""Azure AD token acquisition for Microsoft Graph.

Uses the OAuth2 client credentials flow and caches the access token in
memory until shortly before it expires.
"""

import asyncio
import logging
import time
from typing import Callable, Optional

import httpx

from graphguard.domain.exceptions import (
    GraphAuthError, GraphTransportError, ServiceUnavailableError, ThrottledError,
)
from graphguard.domain.models.common import AccessToken

logger = logging.getLogger(__name__)

GRAPH_SCOPE = "https://graph.microsoft.com/.default"
DEFAULT_AUTHORITY = "https://login.microsoftonline.com"
# Refresh this many seconds before the token actually expires
TOKEN_EXPIRY_MARGIN_S = 300


class TokenProvider:
    """Holds Azure app credentials and hands out (cached) Graph access tokens."""

    def __init__(
        self,
        tenant_id: Optional[str],
        client_id: Optional[str],
        client_secret: Optional[str],
        authority: str = DEFAULT_AUTHORITY,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.authority = authority.rstrip('/')
        self._http_client = http_client
        self._owns_client = http_client is None
        self._clock = clock
        self._token: Optional[AccessToken] = None
        self._expires_at = 0.0
        self._lock = asyncio.Lock()
        self._validate_credentials()

    def _validate_credentials(self) -> None:
        """Ensures tenant id, client id and secret are all set."""
        missing = []
        if not self.tenant_id:
            missing.append('AZURE_TENANT_ID')
        if not self.client_id:
            missing.append('AZURE_CLIENT_ID')
        if not self.client_secret:
            missing.append('AZURE_CLIENT_SECRET')
        if missing:
            raise GraphAuthError(f"Missing Azure credentials: {', '.join(missing)}")

    @property
    def token_url(self) -> str:
        return f"{self.authority}/{self.tenant_id}/oauth2/v2.0/token"

    def _client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=30.0)
        return self._http_client

    async def get_token(self) -> AccessToken:
        """
        Returns a valid access token, requesting a new one when needed.

        Raises:
            GraphAuthError: When Azure rejects the credentials or answers without a token.
            RetryableGraphError: When the token endpoint is unreachable, throttling or failing (5xx).
        """
        async with self._lock:
            if self._token and self._clock() < self._expires_at:
                logger.debug("Using cached Azure access token")
                return self._token
            logger.info("Requesting new Azure access token")
            self._token, lifetime = await self._request_token()
            self._expires_at = self._clock() + max(0, lifetime - TOKEN_EXPIRY_MARGIN_S)
            return self._token

    def invalidate(self) -> None:
        """Drops the cached token so the next call fetches a fresh one."""
        self._token = None
        self._expires_at = 0.0

    async def _request_token(self):
        data = {
            'grant_type': 'client_credentials',
            'client_id': self.client_id,
            'client_secret': self.client_secret,
            'scope': GRAPH_SCOPE,
        }
        try:
            response = await self._client().post(self.token_url, data=data)
        except httpx.HTTPError as e:
            logger.error(f"Azure token request failed: {e}")
            raise GraphTransportError(f"Failed to obtain Azure token: {e}") from e

        if response.status_code != 200:
            body = _safe_json(response)
            error_code = body.get('error')
            description = body.get('error_description') or response.text[:200]
            logger.error(f"Azure token endpoint returned {response.status_code}: {error_code}")
            # Azure AD outages and throttling are transient; bad credentials are not
            if response.status_code == 429 or response.status_code >= 500:
                error_class = ThrottledError if response.status_code == 429 else ServiceUnavailableError
                raise error_class(
                    f"Token endpoint unavailable: {description}",
                    retry_after=_retry_after_seconds(response),
                    status_code=response.status_code, error_code=error_code,
                )
            raise GraphAuthError(
                f"Token request rejected: {description}",
                status_code=response.status_code, error_code=error_code,
            )

        token_data = _safe_json(response)
        access_token = token_data.get('access_token')
        if not access_token:
            raise GraphAuthError("No access_token in Azure response")
        lifetime = int(token_data.get('expires_in', 3600))
        logger.info("Successfully obtained Azure access token")
        return AccessToken(access_token), lifetime

    async def close(self) -> None:
        if self._owns_client and self._http_client is not None:
            await self._http_client.aclose()
            self._http_client = None


def _safe_json(response: httpx.Response) -> dict:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _retry_after_seconds(response: httpx.Response) -> Optional[float]:
    try:
        return max(0.0, float(response.headers.get('Retry-After', '')))
    except ValueError:
        return None
