"""Run the configured quality checks concurrently."""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from previewflow.activities.commands import CommandResult, run_command
from previewflow.activities.logs import save_command_log
from previewflow.exceptions import QualityCheckError

logger = logging.getLogger(__name__)

MAX_ERROR_LINES = 20


@dataclass
class CheckResult:
    name: str
    result: CommandResult
    log_path: Path | None = None

    @property
    def passed(self) -> bool:
        return self.result.success


def _tail(text: str, lines: int = MAX_ERROR_LINES) -> str:
    return "\n".join(text.strip().splitlines()[-lines:])


async def run_check(name: str, command: str, cwd: Path | None, logs_dir: Path | None) -> CheckResult:
    result = await run_command(command, cwd=cwd)
    log_path = None
    if logs_dir is not None:
        log_path = await save_command_log(logs_dir / f"quality-{name}.log", result)
    logger.debug("Check %s exited with %d", name, result.exit_code)
    return CheckResult(name=name, result=result, log_path=log_path)


async def run_quality_checks(
    commands: dict[str, str],
    *,
    cwd: Path | None = None,
    logs_dir: Path | None = None,
) -> tuple[list[CheckResult], list[QualityCheckError]]:
    """Run every check and join them all before returning.

    Args:
        commands: Check name -> command line.
        cwd: Project directory.
        logs_dir: Where per-check output is saved, if anywhere.

    Returns:
        (results of checks that ran, one error per failed check)
    """
    names = list(commands)
    outcomes = await asyncio.gather(
        *(run_check(name, commands[name], cwd, logs_dir) for name in names),
        return_exceptions=True,
    )

    results: list[CheckResult] = []
    errors: list[QualityCheckError] = []
    for name, outcome in zip(names, outcomes, strict=True):
        if isinstance(outcome, asyncio.CancelledError):
            raise outcome
        if isinstance(outcome, BaseException):
            errors.append(QualityCheckError(f"Check {name} could not run: {outcome}", cause=outcome))
            continue
        results.append(outcome)
        if not outcome.passed:
            detail = _tail(outcome.result.error_text())
            errors.append(QualityCheckError(f"Check {name} failed:\n{detail}"))

    return results, errors
