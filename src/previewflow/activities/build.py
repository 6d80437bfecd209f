"""Build the applications and optionally analyze the bundle."""

import logging
from pathlib import Path

from previewflow.activities.commands import CommandResult, run_command
from previewflow.activities.logs import save_command_log
from previewflow.exceptions import BuildError, QualityCheckError

logger = logging.getLogger(__name__)


async def build(command: str, *, cwd: Path | None = None, logs_dir: Path | None = None) -> CommandResult:
    """Run the build command.

    Raises:
        BuildError: If the build exits non-zero.
    """
    result = await run_command(command, cwd=cwd)
    if logs_dir is not None:
        await save_command_log(logs_dir / "build.log", result)
    if not result.success:
        raise BuildError(f"Build failed ({result.command}): {result.error_text()}")
    logger.info("Build completed")
    return result


async def analyze_bundle(
    command: str, *, cwd: Path | None = None, logs_dir: Path | None = None
) -> QualityCheckError | None:
    """Run the bundle analyzer; returns a warning instead of raising on failure."""
    result = await run_command(command, cwd=cwd)
    if logs_dir is not None:
        await save_command_log(logs_dir / "bundle-analysis.log", result)
    if result.success:
        return None
    logger.warning("Bundle analysis failed: %s", result.error_text())
    return QualityCheckError(f"Bundle analysis failed: {result.error_text()}")
