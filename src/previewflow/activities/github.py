"""Pull request detection and the preview comment."""

import json
import logging
import re
from pathlib import Path

from previewflow.activities.commands import CommandResult, run_command
from previewflow.exceptions import DeploymentError

logger = logging.getLogger(__name__)

PR_BRANCH_PATTERNS = (
    re.compile(r"^pr[/-]?(\d+)$", re.IGNORECASE),
    re.compile(r"^pull/(\d+)(?:/head|/merge)?$"),
    re.compile(r"#(\d+)$"),
)


def extract_pr_number(branch: str | None) -> int | None:
    """PR number encoded in a branch name (``pr-123``, ``pull/123/head``, ``fix-#123``)."""
    if not branch:
        return None
    for pattern in PR_BRANCH_PATTERNS:
        match = pattern.search(branch)
        if match:
            return int(match.group(1))
    return None


def pr_number_from_event(event_path: str | Path | None) -> int | None:
    """PR number from a GitHub Actions event payload, if the run is for a pull request."""
    if not event_path:
        return None
    try:
        data = json.loads(Path(event_path).read_text())
    except (OSError, ValueError) as e:
        logger.debug("Ignoring event payload %s: %s", event_path, e)
        return None
    match data:
        case {"pull_request": {"number": int(number)}} if not isinstance(number, bool):
            return number
        case _:
            return None


def detect_pr_number(branch: str | None, event_path: str | Path | None = None) -> int | None:
    """Branch name first, then the CI event payload."""
    return extract_pr_number(branch) or pr_number_from_event(event_path)


async def post_pr_comment(
    pr_number: int, body: str, *, gh_bin: str = "gh", cwd: Path | None = None
) -> CommandResult:
    """Post ``body`` as a comment on the pull request through the GitHub CLI.

    Raises:
        DeploymentError: If gh is missing or the comment is rejected.
    """
    result = await run_command(
        [gh_bin, "pr", "comment", str(pr_number), "--body", body], cwd=cwd
    )
    if not result.success:
        raise DeploymentError(
            f"Could not comment on pull request #{pr_number}: {result.error_text()}",
            suggestion="Install the GitHub CLI and run gh auth login, or pass --skip-comment.",
        )
    logger.info("Posted preview links to pull request #%d", pr_number)
    return result
