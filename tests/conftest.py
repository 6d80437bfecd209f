"""Shared test fixtures."""

from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from previewflow.exceptions import DeploymentError
from previewflow.hosting.channels import PreviewChannel
from previewflow.settings import Settings
from previewflow.workflows.state import Severity

BASE_TIME = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)


def make_channel(site: str, channel_id: str, days_ago: int = 0) -> PreviewChannel:
    """Channel created ``days_ago`` days before BASE_TIME."""
    return PreviewChannel(
        id=channel_id,
        site=site,
        created_at=BASE_TIME - timedelta(days=days_ago),
        urls={site: f"https://{site}--{channel_id}-abcd1234.web.app"},
    )


class FakeChannelApi:
    """In-memory channel API."""

    def __init__(self, channels: dict[str, list[PreviewChannel]] | None = None):
        self.channels = {site: list(items) for site, items in (channels or {}).items()}
        self.fail_delete: set[str] = set()
        self.deleted: list[tuple[str, str]] = []
        self.delete_attempts: list[tuple[str, str]] = []

    async def list_channels(self, site: str) -> list[PreviewChannel]:
        return list(self.channels.get(site, []))

    async def create_channel(self, site: str, channel_id: str) -> PreviewChannel:
        channel = PreviewChannel(id=channel_id, site=site, created_at=BASE_TIME)
        self.channels.setdefault(site, []).append(channel)
        return channel

    async def delete_channel(self, site: str, channel_id: str) -> None:
        self.delete_attempts.append((site, channel_id))
        if channel_id in self.fail_delete:
            raise DeploymentError(f"quota exceeded deleting {channel_id}")
        self.channels[site] = [c for c in self.channels.get(site, []) if c.id != channel_id]
        self.deleted.append((site, channel_id))


@pytest.fixture
def fake_api() -> FakeChannelApi:
    """Channel API with five admin channels, one per day."""
    return FakeChannelApi(
        {"admin": [make_channel("admin", f"preview-{i}", days_ago=i) for i in range(5)]}
    )


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at a temporary project."""
    settings = Settings(
        _env_file=None,
        project_id="demo-project",
        keep_channels=2,
        required_tools=["node"],
        quality_commands={"lint": "pnpm run lint"},
        build_command="pnpm run build",
    )
    # CI runners export GITHUB_EVENT_PATH
    return settings.model_copy(update={"github_event_path": None})


@pytest.fixture
def completed_process():
    """Factory for mocked asyncio subprocesses."""

    def _make(returncode: int = 0, stdout: bytes = b"", stderr: bytes = b"") -> MagicMock:
        process = MagicMock()
        process.returncode = returncode
        process.communicate = AsyncMock(return_value=(stdout, stderr))
        return process

    return _make


@pytest.fixture
def progress_messages() -> list[tuple[Severity, str]]:
    """Collector for progress callback messages."""
    return []


@pytest.fixture
def mock_progress(progress_messages):
    """Create a progress callback that collects messages."""
    def _progress(severity: Severity, message: str) -> None:
        progress_messages.append((severity, message))
    return _progress


@pytest.fixture
def channel_factory():
    """Expose make_channel to tests."""
    return make_channel


@pytest.fixture
def api_factory():
    """Build a FakeChannelApi from a site -> channels mapping."""
    return FakeChannelApi
