"""Application settings."""

from functools import lru_cache
from pathlib import Path
from typing import Literal

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from previewflow.exceptions import ConfigurationError


class Settings(BaseSettings):
    """Application settings loaded from PREVIEWFLOW_* environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="PREVIEWFLOW_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    project_id: str | None = None
    # Site label -> hosting site id
    sites: dict[str, str] = Field(default_factory=lambda: {"admin": "admin", "hours": "hours"})

    # Channel retention; no default on purpose, see resolve_keep()
    keep_channels: int | None = Field(default=None, ge=0)
    channel_prefix: str = "preview"
    # Passed to hosting:channel:deploy --expires
    channel_expires: str | None = "7d"

    # Filesystem layout
    temp_dir: str = "temp"
    logs_dir: str = "logs"
    dashboard_path: str = "preview-dashboard.html"
    # Report kind -> artifact path, overriding the temp_dir defaults
    report_paths: dict[str, str] = Field(default_factory=dict)

    # External commands
    firebase_bin: str = "firebase"
    build_command: str = "pnpm run build:all"
    bundle_command: str | None = None
    quality_commands: dict[str, str] = Field(
        default_factory=lambda: {
            "lint": "pnpm run lint",
            "typecheck": "pnpm run typecheck",
            "test": "pnpm run test",
        }
    )
    required_tools: list[str] = Field(default_factory=lambda: ["node", "pnpm", "firebase", "git"])

    # Hosting API access
    hosting_backend: Literal["cli", "rest"] = "cli"
    hosting_access_token: str | None = None
    # CI token for the firebase CLI; the bare FIREBASE_TOKEN variable is honoured too
    firebase_token: str | None = Field(
        default=None,
        validation_alias=AliasChoices("PREVIEWFLOW_FIREBASE_TOKEN", "FIREBASE_TOKEN"),
    )

    # Pull request comment
    gh_bin: str = "gh"
    github_event_path: str | None = Field(
        default=None,
        validation_alias=AliasChoices("PREVIEWFLOW_GITHUB_EVENT_PATH", "GITHUB_EVENT_PATH"),
    )

    # Applied to every phase when set
    phase_timeout: float | None = Field(default=None, gt=0)

    def temp_path(self, root: Path) -> Path:
        return root / self.temp_dir

    def logs_path(self, root: Path) -> Path:
        return root / self.logs_dir

    def resolve_keep(self, override: int | None = None) -> int:
        """Return the channel retention count.

        Raises:
            ConfigurationError: If neither the override nor the setting is set.
        """
        keep = override if override is not None else self.keep_channels
        if keep is None:
            raise ConfigurationError(
                "Channel retention count is not configured. "
                "Pass --keep or set PREVIEWFLOW_KEEP_CHANNELS."
            )
        if keep < 0:
            raise ConfigurationError(f"Channel retention count must be >= 0, got {keep}")
        return keep

    def require_project(self) -> str:
        if not self.project_id:
            raise ConfigurationError(
                "Hosting project is not configured. Set PREVIEWFLOW_PROJECT_ID."
            )
        return self.project_id


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
