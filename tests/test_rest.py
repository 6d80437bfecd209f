"""Tests for the REST channel API."""

import json

import httpx
import pytest

from previewflow.exceptions import AuthenticationError, DeploymentError
from previewflow.hosting.rest import HostingRestChannelApi


def _api(handler) -> HostingRestChannelApi:
    return HostingRestChannelApi(
        "token-123",
        {"admin": "admin-site"},
        base_url="https://hosting.test/v1beta1",
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.asyncio
async def test_list_channels_follows_pages():
    """list_channels walks nextPageToken and drops the live channel."""
    requests = []

    def handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        assert request.headers["Authorization"] == "Bearer token-123"
        if "pageToken" not in request.url.params:
            return httpx.Response(
                200,
                json={
                    "channels": [
                        {"name": "sites/admin-site/channels/live", "url": "https://admin.web.app"},
                        {
                            "name": "sites/admin-site/channels/pr-1",
                            "createTime": "2024-05-01T00:00:00Z",
                        },
                    ],
                    "nextPageToken": "p2",
                },
            )
        return httpx.Response(
            200, json={"channels": [{"name": "sites/admin-site/channels/pr-2"}]}
        )

    channels = await _api(handler).list_channels("admin")

    assert [c.id for c in channels] == ["pr-1", "pr-2"]
    assert requests[0].url.path == "/v1beta1/sites/admin-site/channels"
    assert requests[1].url.params["pageToken"] == "p2"


@pytest.mark.asyncio
async def test_create_channel():
    """create_channel POSTs with channelId."""

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.method == "POST"
        assert request.url.params["channelId"] == "pr-3"
        return httpx.Response(
            200,
            json={
                "name": "sites/admin-site/channels/pr-3",
                "url": "https://admin-site--pr-3-abcd1234.web.app",
                "createTime": "2024-05-01T00:00:00Z",
            },
        )

    channel = await _api(handler).create_channel("admin", "pr-3")

    assert channel.id == "pr-3"
    assert channel.urls == {"admin": "https://admin-site--pr-3-abcd1234.web.app"}


@pytest.mark.asyncio
async def test_delete_channel():
    """delete_channel sends DELETE to the channel resource."""
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append((request.method, request.url.path))
        return httpx.Response(200, content=json.dumps({}).encode())

    await _api(handler).delete_channel("admin", "pr-3")

    assert seen == [("DELETE", "/v1beta1/sites/admin-site/channels/pr-3")]


@pytest.mark.asyncio
async def test_forbidden_is_authentication_error():
    """401/403 responses are authentication errors."""
    api = _api(lambda request: httpx.Response(403, json={"error": "denied"}))
    with pytest.raises(AuthenticationError):
        await api.list_channels("admin")


@pytest.mark.asyncio
async def test_server_error_is_deployment_error():
    """Other HTTP errors are deployment errors."""
    api = _api(lambda request: httpx.Response(500))
    with pytest.raises(DeploymentError, match="HTTP 500"):
        await api.delete_channel("admin", "pr-3")


@pytest.mark.asyncio
async def test_network_error_is_deployment_error():
    """Transport failures are deployment errors."""

    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("no route", request=request)

    with pytest.raises(DeploymentError, match="no route"):
        await _api(handler).list_channels("admin")
