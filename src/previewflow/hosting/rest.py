"""Channel API backed by the Firebase Hosting REST API."""

import logging
from datetime import UTC, datetime

import httpx

from previewflow.exceptions import AuthenticationError, DeploymentError
from previewflow.hosting.channels import LIVE_CHANNEL, PreviewChannel, channel_from_payload

logger = logging.getLogger(__name__)

HOSTING_API_URL = "https://firebasehosting.googleapis.com/v1beta1"


class HostingRestChannelApi:
    """Lists, creates and deletes channels over HTTPS.

    Pass ``transport`` to route requests somewhere other than the network
    (tests use httpx.MockTransport).
    """

    def __init__(
        self,
        access_token: str,
        sites: dict[str, str],
        *,
        base_url: str = HOSTING_API_URL,
        timeout: float = 30.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.access_token = access_token
        self.sites = sites
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.transport = transport

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Authorization": f"Bearer {self.access_token}"},
            timeout=self.timeout,
            transport=self.transport,
        )

    def _channels_path(self, site: str) -> str:
        return f"/sites/{self.sites.get(site, site)}/channels"

    @staticmethod
    def _raise_for_status(response: httpx.Response, action: str) -> None:
        try:
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            if response.status_code in (401, 403):
                raise AuthenticationError(f"{action}: access denied", cause=e) from e
            raise DeploymentError(f"{action}: HTTP {response.status_code}", cause=e) from e

    async def list_channels(self, site: str) -> list[PreviewChannel]:
        channels: list[PreviewChannel] = []
        params: dict[str, str] = {}
        try:
            async with self._client() as client:
                while True:
                    response = await client.get(self._channels_path(site), params=params)
                    self._raise_for_status(response, f"Failed to list channels for {site}")
                    data = response.json()
                    for payload in data.get("channels", []):
                        if isinstance(payload, dict):
                            channels.append(channel_from_payload(site, payload))
                    token = data.get("nextPageToken")
                    if not token:
                        break
                    params = {"pageToken": token}
        except httpx.RequestError as e:
            raise DeploymentError(f"Failed to list channels for {site}: {e}", cause=e) from e

        return [c for c in channels if c.id and c.id != LIVE_CHANNEL]

    async def create_channel(self, site: str, channel_id: str) -> PreviewChannel:
        try:
            async with self._client() as client:
                response = await client.post(
                    self._channels_path(site),
                    params={"channelId": channel_id},
                    json={},
                )
                self._raise_for_status(response, f"Failed to create channel {channel_id}")
                payload = response.json()
        except httpx.RequestError as e:
            raise DeploymentError(f"Failed to create channel {channel_id}: {e}", cause=e) from e

        channel = channel_from_payload(site, payload if isinstance(payload, dict) else {})
        if not channel.id:
            channel = PreviewChannel(id=channel_id, site=site, created_at=datetime.now(UTC))
        return channel

    async def delete_channel(self, site: str, channel_id: str) -> None:
        try:
            async with self._client() as client:
                response = await client.delete(f"{self._channels_path(site)}/{channel_id}")
                self._raise_for_status(response, f"Failed to delete channel {channel_id}")
        except httpx.RequestError as e:
            raise DeploymentError(f"Failed to delete channel {channel_id}: {e}", cause=e) from e
        logger.debug("Deleted channel %s from %s", channel_id, site)
