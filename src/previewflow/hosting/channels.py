"""Preview channel model and the firebase CLI backed channel API."""

import json
import logging
import re
from datetime import UTC, datetime
from typing import Any, Protocol

from pydantic import BaseModel, Field

from previewflow.activities.commands import run_command
from previewflow.exceptions import DeploymentError

logger = logging.getLogger(__name__)

LIVE_CHANNEL = "live"
MAX_CHANNEL_ID_LENGTH = 63
_EPOCH = datetime(1970, 1, 1, tzinfo=UTC)


class PreviewChannel(BaseModel):
    """A remote preview channel as last listed from the hosting API."""

    id: str = Field(description="Opaque channel id, unique per site")
    site: str = Field(description="Site label: admin, hours")
    created_at: datetime = Field(default=_EPOCH)
    urls: dict[str, str] = Field(default_factory=dict, description="Site label -> URL")
    expires_at: datetime | None = None

    def age_days(self, now: datetime | None = None) -> int:
        now = now or datetime.now(UTC)
        return max((now - self.created_at).days, 0)


class ChannelApi(Protocol):
    """Remote source of truth for channel existence."""

    async def list_channels(self, site: str) -> list[PreviewChannel]: ...

    async def create_channel(self, site: str, channel_id: str) -> PreviewChannel: ...

    async def delete_channel(self, site: str, channel_id: str) -> None: ...


def sanitize_token(value: str) -> str:
    """Lowercase and reduce a string to a hosting subdomain token."""
    token = re.sub(r"[^a-z0-9-]", "-", value.lower())
    token = re.sub(r"-+", "-", token)
    return token.strip("-")


def generate_channel_id(
    branch: str,
    *,
    prefix: str = "preview",
    pr_number: int | None = None,
    now: datetime | None = None,
) -> str:
    """Build a channel id from the branch (or PR number) and a timestamp.

    The result is a valid subdomain token of at most 63 characters.
    """
    now = now or datetime.now(UTC)
    stamp = now.strftime("%Y%m%d%H%M%S")
    subject = f"pr-{pr_number}" if pr_number is not None else sanitize_token(branch) or "branch"
    head = sanitize_token(prefix)
    room = MAX_CHANNEL_ID_LENGTH - len(stamp) - len(head) - 2
    subject = subject[:room].strip("-")
    return "-".join(part for part in (head, subject, stamp) if part)


def _parse_timestamp(value: Any) -> datetime | None:
    if not isinstance(value, str) or not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def channel_from_payload(site: str, payload: dict[str, Any]) -> PreviewChannel:
    """Build a PreviewChannel from a hosting API channel resource."""
    name = str(payload.get("name", ""))
    channel_id = name.rsplit("/channels/", 1)[-1] if "/channels/" in name else name
    url = payload.get("url")
    return PreviewChannel(
        id=channel_id,
        site=site,
        created_at=_parse_timestamp(payload.get("createTime")) or _EPOCH,
        expires_at=_parse_timestamp(payload.get("expireTime")),
        urls={site: url} if isinstance(url, str) and url else {},
    )


def parse_channel_list(site: str, output: str) -> list[PreviewChannel]:
    """Parse `hosting:channel:list --json` output, skipping the live channel.

    Both the list shape (``result.channels``) and the older mapping shape
    (``result`` keyed by channel id) are accepted.
    """
    data = json.loads(output or "{}")
    result = data.get("result") if isinstance(data, dict) else None

    if isinstance(result, dict) and isinstance(result.get("channels"), list):
        payloads = [p for p in result["channels"] if isinstance(p, dict)]
    elif isinstance(result, dict):
        payloads = [
            {"name": channel_id, **info}
            for channel_id, info in result.items()
            if isinstance(info, dict)
        ]
    else:
        payloads = []

    channels = [channel_from_payload(site, payload) for payload in payloads]
    return [c for c in channels if c.id and c.id != LIVE_CHANNEL]


class FirebaseCliChannelApi:
    """Channel API backed by the firebase CLI."""

    def __init__(self, project_id: str, sites: dict[str, str], firebase_bin: str = "firebase"):
        self.project_id = project_id
        self.sites = sites
        self.firebase_bin = firebase_bin

    def _site_id(self, site: str) -> str:
        return self.sites.get(site, site)

    def _base_args(self, site: str) -> list[str]:
        return ["--site", self._site_id(site), "--project", self.project_id]

    async def list_channels(self, site: str) -> list[PreviewChannel]:
        result = await run_command(
            [self.firebase_bin, "hosting:channel:list", *self._base_args(site), "--json"]
        )
        if not result.success:
            raise DeploymentError(f"Failed to list channels for {site}: {result.error_text()}")
        try:
            return parse_channel_list(site, result.stdout)
        except json.JSONDecodeError as e:
            raise DeploymentError(f"Unparsable channel list for {site}", cause=e) from e

    async def create_channel(self, site: str, channel_id: str) -> PreviewChannel:
        result = await run_command(
            [
                self.firebase_bin,
                "hosting:channel:create",
                channel_id,
                *self._base_args(site),
                "--json",
            ]
        )
        if not result.success:
            raise DeploymentError(
                f"Failed to create channel {channel_id} for {site}: {result.error_text()}"
            )
        try:
            data = json.loads(result.stdout or "{}")
        except json.JSONDecodeError:
            data = {}
        payload = data.get("result") if isinstance(data, dict) else None
        if isinstance(payload, dict):
            channel = channel_from_payload(site, payload)
            if channel.id:
                return channel
        return PreviewChannel(id=channel_id, site=site, created_at=datetime.now(UTC))

    async def delete_channel(self, site: str, channel_id: str) -> None:
        result = await run_command(
            [
                self.firebase_bin,
                "hosting:channel:delete",
                channel_id,
                *self._base_args(site),
                "--force",
            ]
        )
        if not result.success:
            raise DeploymentError(
                f"Failed to delete channel {channel_id} from {site}: {result.error_text()}"
            )
        logger.debug("Deleted channel %s from %s", channel_id, site)
