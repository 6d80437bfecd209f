"""Command-line interface for previewflow."""

import asyncio
import logging
import sys
from datetime import UTC, datetime
from pathlib import Path
from typing import Annotated

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler

from previewflow.activities.logs import deploy_log_path
from previewflow.cli.channels import channels_app
from previewflow.exceptions import ConfigurationError
from previewflow.hosting.urls import (
    URLS_FILENAME,
    UrlExtraction,
    UrlExtractor,
    format_pr_comment,
    format_urls,
    load_saved_urls,
)
from previewflow.reports.collector import collect, default_report_paths
from previewflow.reports.consolidator import ConsolidatedDashboard, consolidate, refresh_sections
from previewflow.reports.render import json_path_for, write_dashboard
from previewflow.settings import Settings, get_settings
from previewflow.workflows.preview import PreviewWorkflow, WorkflowOptions
from previewflow.workflows.state import EXIT_CANCELLED, RunStatus, Severity, WorkflowRun


def _setup_logging(verbose: bool = False) -> None:
    """Configure logging with Rich handler."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )
    # Quiet noisy libraries
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("asyncio").setLevel(logging.WARNING)


app = typer.Typer(
    name="previewflow",
    help="Preview deployment workflow for hosting preview channels.",
)
app.add_typer(channels_app)


def _validate_project_path(path: Path) -> Path:
    if not path.exists():
        raise typer.BadParameter(f"Path does not exist: {path}")
    if not path.is_dir():
        raise typer.BadParameter(f"Path is not a directory: {path}")
    return path.resolve()


def _load_settings() -> Settings:
    try:
        return get_settings()
    except ValidationError as e:
        raise typer.BadParameter(f"Invalid configuration: {e}") from e


def _make_progress_callback(console: Console):
    """Create a Rich-based progress callback."""
    severity_styles = {
        Severity.INFO: ("blue", ""),
        Severity.SUCCESS: ("green", "✓"),
        Severity.WARNING: ("yellow", "!"),
        Severity.ERROR: ("red", "✗"),
    }

    def callback(severity: Severity, message: str) -> None:
        color, icon = severity_styles[severity]
        if icon:
            console.print(f"  [{color}]{icon}[/{color}] {message}")
        else:
            console.print(f"  [{color}]•[/{color}] {message}")

    return callback


def _print_run_summary(console: Console, run: WorkflowRun, dashboard_path: Path) -> None:
    for phase in run.phases:
        console.print(f"  [dim]{phase.name:<10}[/dim] {phase.status} ({phase.duration:.1f}s)")

    if run.tracker.has_errors:
        console.print()
        console.print(run.tracker.render_summary(), markup=False, highlight=False)

    console.print(f"\n  [dim]Dashboard: {dashboard_path}[/dim]")
    match run.status:
        case RunStatus.SUCCEEDED:
            console.print("\n[green bold]✓ Preview workflow complete![/green bold]\n")
        case RunStatus.CANCELLED:
            console.print("\n[yellow]Cancelled[/yellow]\n")
        case _:
            console.print("\n[red bold]✗ Preview workflow failed[/red bold]\n")


@app.command()
def run(
    project_path: Annotated[
        Path,
        typer.Argument(help="Project root. Defaults to current directory."),
    ] = Path("."),
    skip_checks: Annotated[
        bool, typer.Option("--skip-checks", help="Skip lint, type and test checks.")
    ] = False,
    skip_auth: Annotated[
        bool, typer.Option("--skip-auth", help="Skip hosting and git authentication checks.")
    ] = False,
    skip_build: Annotated[bool, typer.Option("--skip-build", help="Skip the build.")] = False,
    skip_deploy: Annotated[
        bool, typer.Option("--skip-deploy", help="Skip deploying to a preview channel.")
    ] = False,
    skip_cleanup: Annotated[
        bool, typer.Option("--skip-cleanup", help="Skip evicting old preview channels.")
    ] = False,
    skip_reports: Annotated[
        bool, typer.Option("--skip-reports", help="Skip URL extraction and performance report.")
    ] = False,
    skip_comment: Annotated[
        bool,
        typer.Option("--skip-comment", help="Do not post the preview links to the pull request."),
    ] = False,
    keep: Annotated[
        int | None,
        typer.Option("--keep", min=0, help="Channels to keep per site (PREVIEWFLOW_KEEP_CHANNELS)."),
    ] = None,
    strict: Annotated[
        bool, typer.Option("--strict", help="Treat quality check failures as fatal.")
    ] = False,
    keep_reports: Annotated[
        bool, typer.Option("--keep-reports", help="Keep individual report files.")
    ] = False,
    branch: Annotated[
        str | None, typer.Option("--branch", help="Branch name used for the channel id.")
    ] = None,
    pr: Annotated[
        int | None,
        typer.Option("--pr", help="Pull request number; detected from the branch when omitted."),
    ] = None,
    dry_run: Annotated[
        bool, typer.Option("--dry-run", help="Show which channels would be evicted.")
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose logging."),
    ] = False,
) -> None:
    """Check, build and deploy a preview, then write the dashboard."""
    _setup_logging(verbose)
    project_path = _validate_project_path(project_path)
    settings = _load_settings()
    console = Console()

    options = WorkflowOptions(
        skip_checks=skip_checks,
        skip_auth=skip_auth,
        skip_build=skip_build,
        skip_deploy=skip_deploy,
        skip_cleanup=skip_cleanup,
        skip_reports=skip_reports,
        skip_comment=skip_comment,
        strict=strict,
        keep_reports=keep_reports,
        branch=branch,
        pr_number=pr,
        keep=keep,
        dry_run=dry_run,
    )
    try:
        workflow = PreviewWorkflow(settings, project_path, options)
    except ConfigurationError as e:
        raise typer.BadParameter(str(e)) from e

    console.print(f"\n[bold]previewflow[/bold] - preview deployment for {project_path.name}\n")

    try:
        result = asyncio.run(workflow.run(_make_progress_callback(console)))
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled[/yellow]")
        sys.exit(EXIT_CANCELLED)

    console.print()
    _print_run_summary(console, result, project_path / settings.dashboard_path)
    raise typer.Exit(result.exit_code)


@app.command()
def urls(
    project_path: Annotated[
        Path,
        typer.Argument(help="Project root. Defaults to current directory."),
    ] = Path("."),
    log_file: Annotated[
        list[Path] | None,
        typer.Option("--log-file", "-l", help="Log file to search (repeatable)."),
    ] = None,
    output_format: Annotated[
        str,
        typer.Option("--format", "-f", help="plain, markdown or html."),
    ] = "plain",
    pr_comment: Annotated[
        bool, typer.Option("--pr-comment", help="Print a pull request comment instead.")
    ] = False,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose logging."),
    ] = False,
) -> None:
    """Extract preview URLs from deployment logs."""
    _setup_logging(verbose)
    if output_format not in ("plain", "markdown", "html"):
        raise typer.BadParameter(f"Unknown format: {output_format}")
    project_path = _validate_project_path(project_path)
    settings = _load_settings()

    extraction = asyncio.run(_find_urls(settings, project_path, log_file or []))
    if extraction is None:
        typer.echo("No preview URLs found.", err=True)
        raise typer.Exit(1)

    if pr_comment:
        typer.echo(format_pr_comment(extraction.urls))
    else:
        typer.echo(format_urls(extraction.urls, output_format))  # type: ignore[arg-type]
        for url in extraction.overflow:
            typer.echo(url)


async def _find_urls(
    settings: Settings, project_path: Path, log_files: list[Path]
) -> UrlExtraction | None:
    extractor = UrlExtractor(list(settings.sites))
    if log_files:
        return await extractor.extract_from_files(log_files)

    temp_dir = settings.temp_path(project_path)
    logs_dir = settings.logs_path(project_path)
    extraction = await extractor.extract_from_joined(
        deploy_log_path(temp_dir, site) for site in settings.sites
    )
    if extraction is None and logs_dir.is_dir():
        extraction = await extractor.extract_from_files(logs_dir.glob("preview-*.log"))
    if extraction is None:
        extraction = await load_saved_urls(temp_dir / URLS_FILENAME)
    return extraction


@app.command()
def dashboard(
    project_path: Annotated[
        Path,
        typer.Argument(help="Project root. Defaults to current directory."),
    ] = Path("."),
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable verbose logging."),
    ] = False,
) -> None:
    """Re-render the dashboard from report files left in the temp directory."""
    _setup_logging(verbose)
    project_path = _validate_project_path(project_path)
    settings = _load_settings()

    html_path = asyncio.run(_rebuild_dashboard(settings, project_path))
    typer.echo(f"Dashboard written to {html_path}")


async def _rebuild_dashboard(settings: Settings, project_path: Path) -> Path:
    """Reuse the last run's dashboard JSON when present; report sections are rebuilt."""
    temp_dir = settings.temp_path(project_path)
    html_path = project_path / settings.dashboard_path
    reports = await collect(default_report_paths(temp_dir, settings.report_paths))

    previous = None
    json_path = json_path_for(html_path)
    if json_path.exists():
        try:
            previous = ConsolidatedDashboard.model_validate_json(json_path.read_text())
        except (ValidationError, ValueError) as e:
            logging.getLogger(__name__).warning("Ignoring previous dashboard: %s", e)

    if previous is not None:
        rebuilt = refresh_sections(previous, reports)
    else:
        now = datetime.now(UTC)
        standalone = WorkflowRun(started_at=now, finished_at=now, status=RunStatus.SUCCEEDED)
        urls = await load_saved_urls(temp_dir / URLS_FILENAME)
        rebuilt = consolidate(reports, [], standalone, urls)

    await write_dashboard(rebuilt, html_path)
    return html_path


if __name__ == "__main__":
    app()
