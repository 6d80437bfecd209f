"""Environment setup: required tools, git branch and stale artifacts."""

import asyncio
import logging
from collections.abc import Iterable
from pathlib import Path

from previewflow.activities.commands import CommandResult, run_command
from previewflow.exceptions import DependencyError
from previewflow.reports.collector import remove_reports

logger = logging.getLogger(__name__)


async def verify_tools(tools: Iterable[str], cwd: Path | None = None) -> dict[str, str]:
    """Check that every required CLI runs, concurrently.

    Returns:
        Tool name -> first line of its ``--version`` output.

    Raises:
        DependencyError: Listing every tool that is missing or broken.
    """
    tools = list(tools)
    results: list[CommandResult] = await asyncio.gather(
        *(run_command([tool, "--version"], cwd=cwd) for tool in tools)
    )

    versions: dict[str, str] = {}
    missing: list[str] = []
    for tool, result in zip(tools, results, strict=True):
        if result.success:
            versions[tool] = (result.stdout.strip().splitlines() or [""])[0]
        else:
            missing.append(tool)

    if missing:
        raise DependencyError(f"Required tools not available: {', '.join(missing)}")

    for tool, version in versions.items():
        logger.debug("%s %s", tool, version)
    return versions


async def current_branch(cwd: Path | None = None) -> str | None:
    """Name of the checked-out git branch, or None outside a branch."""
    result = await run_command(["git", "rev-parse", "--abbrev-ref", "HEAD"], cwd=cwd)
    branch = result.stdout.strip()
    if not result.success or not branch or branch == "HEAD":
        return None
    return branch


def clean_stale_artifacts(paths: Iterable[Path]) -> list[Path]:
    """Remove report artifacts left behind by a previous run."""
    removed = remove_reports(paths)
    for path in removed:
        logger.info("Removed stale artifact %s", path.name)
    return removed
