"""Run external commands and capture their results."""

import asyncio
import contextlib
import logging
import shlex
from dataclasses import dataclass
from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CommandResult:
    """Outcome of one external process."""

    command: str
    exit_code: int
    stdout: str
    stderr: str

    @property
    def success(self) -> bool:
        return self.exit_code == 0

    @property
    def output(self) -> str:
        """Combined stdout and stderr, as printed by most CLIs."""
        if self.stdout and self.stderr:
            return f"{self.stdout}\n{self.stderr}"
        return self.stdout or self.stderr

    def error_text(self) -> str:
        """Best available description of a failure."""
        return self.stderr.strip() or self.stdout.strip() or f"exited with code {self.exit_code}"


def split_command(command: str | list[str]) -> list[str]:
    if isinstance(command, str):
        return shlex.split(command)
    return list(command)


async def run_command(
    command: str | list[str],
    cwd: Path | None = None,
    env: dict[str, str] | None = None,
) -> CommandResult:
    """Run a command to completion.

    A missing executable is reported as exit code 127 rather than raised, so
    callers only have to look at the result. If the awaiting task is
    cancelled or times out, the process is killed before the error propagates.

    Args:
        command: Shell-style string or argument list.
        cwd: Working directory.
        env: Full environment for the child process (inherits when None).

    Returns:
        CommandResult with exit code and decoded output.
    """
    args = split_command(command)
    display = shlex.join(args)
    logger.debug("Running command: %s", display)

    try:
        process = await asyncio.create_subprocess_exec(
            *args,
            cwd=str(cwd) if cwd else None,
            env=env,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
    except FileNotFoundError as e:
        return CommandResult(command=display, exit_code=127, stdout="", stderr=str(e))

    try:
        stdout, stderr = await process.communicate()
    except BaseException:
        # Timed out or cancelled: the child must not outlive its phase
        with contextlib.suppress(ProcessLookupError):
            process.kill()
        await process.wait()
        raise

    # returncode is always set after communicate()
    returncode = process.returncode
    assert returncode is not None, "Process must have returncode after communicate()"

    result = CommandResult(
        command=display,
        exit_code=returncode,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )
    if not result.success:
        logger.debug("Command %s exited with %d", display, returncode)
    return result
