"""Deploy each site to a preview channel, concurrently."""

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path

from previewflow.activities.commands import run_command
from previewflow.activities.logs import deploy_log_path, save_command_log
from previewflow.exceptions import DeploymentError
from previewflow.hosting.urls import extract_urls

logger = logging.getLogger(__name__)


@dataclass
class DeployResult:
    site: str
    channel_id: str
    log_path: Path
    url: str | None = None


def deploy_args(
    firebase_bin: str,
    channel_id: str,
    target: str,
    project_id: str,
    *,
    expires: str | None = None,
    token: str | None = None,
) -> list[str]:
    args = [
        firebase_bin,
        "hosting:channel:deploy",
        channel_id,
        "--only",
        target,
        "--project",
        project_id,
    ]
    if expires:
        args += ["--expires", expires]
    if token:
        args += ["--token", token]
    return args


async def deploy_site(
    site: str,
    target: str,
    channel_id: str,
    *,
    project_id: str,
    temp_dir: Path,
    firebase_bin: str = "firebase",
    expires: str | None = None,
    token: str | None = None,
    cwd: Path | None = None,
) -> DeployResult:
    """Deploy one site and save the CLI output for URL extraction.

    Raises:
        DeploymentError: If the deploy command fails.
    """
    result = await run_command(
        deploy_args(
            firebase_bin, channel_id, target, project_id, expires=expires, token=token
        ),
        cwd=cwd,
    )
    log_path = await save_command_log(deploy_log_path(temp_dir, site), result)
    if not result.success:
        raise DeploymentError(f"Deploy of {site} to {channel_id} failed: {result.error_text()}")

    extraction = extract_urls(result.output, [site])
    url = extraction.urls.get(site) if extraction else None
    logger.info("Deployed %s to channel %s", site, channel_id)
    return DeployResult(site=site, channel_id=channel_id, log_path=log_path, url=url)


async def deploy_sites(
    sites: dict[str, str],
    channel_id: str,
    *,
    project_id: str,
    temp_dir: Path,
    firebase_bin: str = "firebase",
    expires: str | None = None,
    token: str | None = None,
    cwd: Path | None = None,
) -> tuple[list[DeployResult], list[DeploymentError]]:
    """Deploy every site; one failure does not stop the others.

    Args:
        sites: Site label -> hosting target.

    Returns:
        (successful deploys, one error per failed site)
    """
    labels = list(sites)
    outcomes = await asyncio.gather(
        *(
            deploy_site(
                label,
                sites[label],
                channel_id,
                project_id=project_id,
                temp_dir=temp_dir,
                firebase_bin=firebase_bin,
                expires=expires,
                token=token,
                cwd=cwd,
            )
            for label in labels
        ),
        return_exceptions=True,
    )

    results: list[DeployResult] = []
    errors: list[DeploymentError] = []
    for label, outcome in zip(labels, outcomes, strict=True):
        if isinstance(outcome, asyncio.CancelledError):
            raise outcome
        if isinstance(outcome, DeploymentError):
            errors.append(outcome)
        elif isinstance(outcome, BaseException):
            errors.append(DeploymentError(f"Deploy of {label} failed: {outcome}", cause=outcome))
        else:
            results.append(outcome)
    return results, errors
