import asyncio

import httpx
import pytest

from graphguard.domain.exceptions import GraphAuthError, GraphTransportError, ServiceUnavailableError, ThrottledError
from graphguard.infrastructure.graph.token_provider import GRAPH_SCOPE, TokenProvider


def provider_with(handler, clock=None):
    http = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    kwargs = {'clock': clock} if clock else {}
    return TokenProvider("tenant-1", "client-1", "secret-1", http_client=http, **kwargs)


def test_missing_credentials_are_listed():
    with pytest.raises(GraphAuthError, match="AZURE_TENANT_ID, AZURE_CLIENT_SECRET"):
        TokenProvider(None, "client-1", "")


def test_requests_client_credentials_token():
    seen = []

    def handler(request):
        seen.append(request)
        return httpx.Response(200, json={"access_token": "abc", "expires_in": 3599})

    token = asyncio.run(provider_with(handler).get_token())
    assert token == "abc"
    body = seen[0].content.decode()
    assert "grant_type=client_credentials" in body
    assert "client_id=client-1" in body
    assert httpx.QueryParams(body)["scope"] == GRAPH_SCOPE
    assert seen[0].url.path == "/tenant-1/oauth2/v2.0/token"


def test_refreshes_token_shortly_before_expiry(clock):
    issued = iter(["first", "second"])

    def handler(request):
        return httpx.Response(200, json={"access_token": next(issued), "expires_in": 3600})

    provider = provider_with(handler, clock=clock)
    assert asyncio.run(provider.get_token()) == "first"
    clock.advance(3000)
    assert asyncio.run(provider.get_token()) == "first"
    clock.advance(301)
    assert asyncio.run(provider.get_token()) == "second"


def test_rejected_request_raises_auth_error():
    def handler(request):
        return httpx.Response(401, json={"error": "invalid_client", "error_description": "AADSTS7000215: Invalid client secret"})

    with pytest.raises(GraphAuthError, match="Invalid client secret") as exc_info:
        asyncio.run(provider_with(handler).get_token())
    assert exc_info.value.error_code == "invalid_client"
    assert exc_info.value.status_code == 401


def test_response_without_token_raises():
    with pytest.raises(GraphAuthError, match="No access_token"):
        asyncio.run(provider_with(lambda request: httpx.Response(200, json={})).get_token())


def test_network_failure_is_retryable_transport_error():
    def handler(request):
        raise httpx.ConnectTimeout("timed out", request=request)

    with pytest.raises(GraphTransportError, match="Failed to obtain Azure token"):
        asyncio.run(provider_with(handler).get_token())


@pytest.mark.parametrize("status, expected", [(503, ServiceUnavailableError), (500, ServiceUnavailableError), (429, ThrottledError)])
def test_token_endpoint_outage_is_retryable(status, expected):
    def handler(request):
        return httpx.Response(status, json={"error": "temporarily_unavailable"}, headers={"Retry-After": "7"})

    with pytest.raises(expected) as exc_info:
        asyncio.run(provider_with(handler).get_token())
    assert exc_info.value.status_code == status
    assert exc_info.value.retry_after == 7.0
    assert not isinstance(exc_info.value, GraphAuthError)
