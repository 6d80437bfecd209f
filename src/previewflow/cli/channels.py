"""CLI commands for preview channels."""

import asyncio
from datetime import UTC, datetime
from typing import Annotated

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.table import Table

from previewflow.exceptions import ConfigurationError, WorkflowError
from previewflow.hosting.channels import ChannelApi
from previewflow.hosting.registry import ChannelRegistry, EvictionResult
from previewflow.settings import Settings, get_settings
from previewflow.tracker import ErrorTracker
from previewflow.workflows.preview import create_channel_api

channels_app = typer.Typer(name="channels", help="Inspect and clean up preview channels.")
console = Console()


def _settings_and_api() -> tuple[Settings, ChannelApi]:
    try:
        settings = get_settings()
        return settings, create_channel_api(settings)
    except (ConfigurationError, ValidationError) as e:
        raise typer.BadParameter(str(e)) from e


@channels_app.command("list")
def list_channels(
    site: Annotated[str, typer.Argument(help="Site label, e.g. admin or hours.")],
) -> None:
    """List a site's preview channels, newest first."""
    _, api = _settings_and_api()
    try:
        asyncio.run(_list_async(api, site))
    except WorkflowError as e:
        console.print(f"[red]✗[/red] {e.message}")
        raise typer.Exit(1) from e


async def _list_async(api: ChannelApi, site: str) -> None:
    registry = ChannelRegistry(api)
    channels = await registry.refresh(site)
    now = datetime.now(UTC)

    table = Table(title=f"Preview channels for {site}")
    table.add_column("Channel", style="cyan")
    table.add_column("Age (days)", justify="right")
    table.add_column("Created", style="dim")
    table.add_column("URL", style="green")
    for channel in channels:
        table.add_row(
            channel.id,
            str(channel.age_days(now)),
            channel.created_at.strftime("%Y-%m-%d %H:%M"),
            channel.urls.get(site, ""),
        )

    if not channels:
        console.print(f"[dim]No preview channels for {site}[/dim]")
        return
    console.print(table)


@channels_app.command()
def cleanup(
    keep: Annotated[
        int | None,
        typer.Option("--keep", min=0, help="Channels to keep per site (PREVIEWFLOW_KEEP_CHANNELS)."),
    ] = None,
    site: Annotated[
        list[str] | None,
        typer.Option("--site", "-s", help="Only clean this site (repeatable)."),
    ] = None,
    dry_run: Annotated[
        bool, typer.Option("--dry-run", help="Show what would be deleted without deleting.")
    ] = False,
) -> None:
    """Delete the oldest channels beyond the retention count."""
    settings, api = _settings_and_api()
    try:
        retain = settings.resolve_keep(keep)
    except ConfigurationError as e:
        raise typer.BadParameter(str(e)) from e

    sites = site or list(settings.sites)
    tracker = ErrorTracker()
    try:
        results = asyncio.run(_cleanup_async(api, tracker, sites, retain, dry_run))
    except WorkflowError as e:
        console.print(f"[red]✗[/red] {e.message}")
        raise typer.Exit(1) from e

    for result in results:
        _print_eviction(result)

    if tracker.has_errors:
        console.print()
        console.print(tracker.render_summary(), markup=False, highlight=False)
        raise typer.Exit(1)


async def _cleanup_async(
    api: ChannelApi, tracker: ErrorTracker, sites: list[str], keep: int, dry_run: bool
) -> list[EvictionResult]:
    return await ChannelRegistry(api, tracker).cleanup(sites, keep, dry_run=dry_run)


def _print_eviction(result: EvictionResult) -> None:
    if not result.scheduled:
        console.print(f"  [green]✓[/green] {result.site}: nothing to delete ({len(result.kept)} kept)")
        return
    if result.dry_run:
        console.print(f"  [blue]•[/blue] {result.site}: would delete {len(result.scheduled)} channel(s)")
        for channel in result.scheduled:
            console.print(f"    [dim]- {channel.id}[/dim]")
        return

    console.print(
        f"  [green]✓[/green] {result.site}: deleted {result.deleted_count}, "
        f"kept {len(result.kept)}"
    )
    for channel in result.failed_deletions:
        console.print(f"  [red]✗[/red] {result.site}: failed to delete {channel.id}")
