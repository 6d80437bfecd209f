"""Tests for the channel model and the firebase CLI channel API."""

import json
import re
from datetime import UTC, datetime
from unittest.mock import AsyncMock, patch

import pytest

from previewflow.activities.commands import CommandResult
from previewflow.exceptions import DeploymentError
from previewflow.hosting.channels import (
    FirebaseCliChannelApi,
    PreviewChannel,
    channel_from_payload,
    generate_channel_id,
    parse_channel_list,
    sanitize_token,
)

NOW = datetime(2024, 5, 1, 12, 30, 45, tzinfo=UTC)
SUBDOMAIN = re.compile(r"^[a-z0-9]([a-z0-9-]*[a-z0-9])?$")

LIST_OUTPUT = json.dumps(
    {
        "status": "success",
        "result": {
            "channels": [
                {
                    "name": "projects/demo/sites/admin/channels/live",
                    "url": "https://admin.web.app",
                    "createTime": "2023-01-01T00:00:00Z",
                },
                {
                    "name": "projects/demo/sites/admin/channels/preview-feat-1",
                    "url": "https://admin--preview-feat-1-abcd1234.web.app",
                    "createTime": "2024-04-30T10:00:00.123Z",
                    "expireTime": "2024-05-07T10:00:00Z",
                },
                {"name": "projects/demo/sites/admin/channels/no-time"},
            ]
        },
    }
)


class TestGenerateChannelId:
    """Test channel id generation."""

    def test_branch_and_timestamp(self):
        """Branch is sanitized and suffixed with the timestamp."""
        channel_id = generate_channel_id("feature/Login_Page", now=NOW)
        assert channel_id == "preview-feature-login-page-20240501123045"

    def test_pr_number(self):
        """A PR number replaces the branch."""
        assert generate_channel_id("whatever", pr_number=42, now=NOW) == (
            "preview-pr-42-20240501123045"
        )

    def test_valid_subdomain_token(self):
        """Long or odd branch names still give a valid token of at most 63 chars."""
        channel_id = generate_channel_id("--" + "x" * 100 + "/!!", prefix="Pre_View", now=NOW)
        assert len(channel_id) <= 63
        assert SUBDOMAIN.match(channel_id)

    def test_empty_branch(self):
        """An unusable branch name falls back to a placeholder."""
        assert generate_channel_id("///", now=NOW) == "preview-branch-20240501123045"


def test_sanitize_token():
    """sanitize_token lowercases and collapses separators."""
    assert sanitize_token("Feat//ABC__x-") == "feat-abc-x"


class TestParseChannelList:
    """Test parsing of hosting:channel:list --json output."""

    def test_list_shape_skips_live(self):
        """Channels are parsed and the live channel is dropped."""
        channels = parse_channel_list("admin", LIST_OUTPUT)
        assert [c.id for c in channels] == ["preview-feat-1", "no-time"]
        first = channels[0]
        assert first.site == "admin"
        assert first.created_at == datetime(2024, 4, 30, 10, 0, 0, 123000, tzinfo=UTC)
        assert first.expires_at == datetime(2024, 5, 7, 10, tzinfo=UTC)
        assert first.urls == {"admin": "https://admin--preview-feat-1-abcd1234.web.app"}

    def test_missing_create_time_is_epoch(self):
        """A channel without createTime sorts as the oldest."""
        channels = parse_channel_list("admin", LIST_OUTPUT)
        assert channels[1].created_at == datetime(1970, 1, 1, tzinfo=UTC)

    def test_mapping_shape(self):
        """The older result-keyed-by-id shape is accepted."""
        output = json.dumps(
            {"result": {"pr-1": {"url": "https://x.web.app", "createTime": "2024-01-01T00:00:00Z"}}}
        )
        channels = parse_channel_list("hours", output)
        assert [c.id for c in channels] == ["pr-1"]

    def test_empty_output(self):
        """No output means no channels."""
        assert parse_channel_list("admin", "") == []

    def test_invalid_json_raises(self):
        """Garbage is a decode error for the caller to handle."""
        with pytest.raises(json.JSONDecodeError):
            parse_channel_list("admin", "not json")


def test_channel_from_payload_without_prefix():
    """A bare name is used as the id."""
    channel = channel_from_payload("admin", {"name": "abc"})
    assert channel.id == "abc"
    assert channel.urls == {}


def test_age_days():
    """age_days counts whole days and never goes negative."""
    channel = PreviewChannel(id="a", site="admin", created_at=datetime(2024, 4, 28, tzinfo=UTC))
    assert channel.age_days(NOW) == 3
    assert channel.age_days(datetime(2024, 1, 1, tzinfo=UTC)) == 0


class TestFirebaseCliChannelApi:
    """Test the CLI-backed API."""

    @pytest.fixture
    def api(self):
        return FirebaseCliChannelApi("demo", {"admin": "admin-site", "hours": "hours-site"})

    @pytest.mark.asyncio
    async def test_list_channels(self, api):
        """list_channels runs the CLI with site and project."""
        mock = AsyncMock(return_value=CommandResult("firebase", 0, LIST_OUTPUT, ""))
        with patch("previewflow.hosting.channels.run_command", mock):
            channels = await api.list_channels("admin")

        assert len(channels) == 2
        args = mock.call_args[0][0]
        assert args[:2] == ["firebase", "hosting:channel:list"]
        assert args[args.index("--site") + 1] == "admin-site"
        assert args[args.index("--project") + 1] == "demo"
        assert "--json" in args

    @pytest.mark.asyncio
    async def test_list_failure_raises_deployment_error(self, api):
        """A failing CLI raises DeploymentError."""
        mock = AsyncMock(return_value=CommandResult("firebase", 1, "", "Error: 403"))
        with patch("previewflow.hosting.channels.run_command", mock):
            with pytest.raises(DeploymentError, match="403"):
                await api.list_channels("admin")

    @pytest.mark.asyncio
    async def test_list_unparsable_raises_deployment_error(self, api):
        """Non-JSON output is a DeploymentError."""
        mock = AsyncMock(return_value=CommandResult("firebase", 0, "<html>", ""))
        with patch("previewflow.hosting.channels.run_command", mock):
            with pytest.raises(DeploymentError, match="Unparsable"):
                await api.list_channels("admin")

    @pytest.mark.asyncio
    async def test_delete_channel(self, api):
        """delete_channel passes --force."""
        mock = AsyncMock(return_value=CommandResult("firebase", 0, "", ""))
        with patch("previewflow.hosting.channels.run_command", mock):
            await api.delete_channel("hours", "preview-1")

        args = mock.call_args[0][0]
        assert args[1:3] == ["hosting:channel:delete", "preview-1"]
        assert "--force" in args
        assert args[args.index("--site") + 1] == "hours-site"

    @pytest.mark.asyncio
    async def test_delete_failure(self, api):
        """A failed delete raises DeploymentError."""
        mock = AsyncMock(return_value=CommandResult("firebase", 1, "", "not found"))
        with patch("previewflow.hosting.channels.run_command", mock):
            with pytest.raises(DeploymentError, match="preview-1"):
                await api.delete_channel("hours", "preview-1")

    @pytest.mark.asyncio
    async def test_create_channel(self, api):
        """create_channel parses the created resource."""
        output = json.dumps(
            {
                "result": {
                    "name": "projects/demo/sites/admin-site/channels/pr-7",
                    "createTime": "2024-05-01T00:00:00Z",
                }
            }
        )
        mock = AsyncMock(return_value=CommandResult("firebase", 0, output, ""))
        with patch("previewflow.hosting.channels.run_command", mock):
            channel = await api.create_channel("admin", "pr-7")

        assert channel.id == "pr-7"
        assert channel.site == "admin"
        assert mock.call_args[0][0][1:3] == ["hosting:channel:create", "pr-7"]
