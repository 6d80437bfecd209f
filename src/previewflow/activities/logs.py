"""Persist command output for later inspection and URL extraction."""

from pathlib import Path

import aiofiles

from previewflow.activities.commands import CommandResult


def deploy_log_path(temp_dir: Path, site: str) -> Path:
    """Path of the deploy log for one site."""
    return temp_dir / f"firebase-deploy-{site}.log"


async def save_command_log(log_path: Path, result: CommandResult) -> Path:
    """Save a command's output to a log file.

    Args:
        log_path: Destination file; parent directories are created.
        result: Command result to write.

    Returns:
        Path to created log file.
    """
    log_path.parent.mkdir(parents=True, exist_ok=True)

    content_parts = [f"Command: {result.command}\n", f"Exit code: {result.exit_code}\n"]
    content_parts.append("=" * 50 + "\n\n")

    if result.stdout:
        content_parts.append("=== STDOUT ===\n")
        content_parts.append(result.stdout)
        content_parts.append("\n\n")

    if result.stderr:
        content_parts.append("=== STDERR ===\n")
        content_parts.append(result.stderr)
        content_parts.append("\n")

    async with aiofiles.open(log_path, "w") as f:
        await f.write("".join(content_parts))

    return log_path
