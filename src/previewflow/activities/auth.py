"""Authentication checks for the hosting CLI and git."""

import json
import logging
from dataclasses import dataclass
from pathlib import Path

from previewflow.activities.commands import run_command
from previewflow.exceptions import AuthenticationError

logger = logging.getLogger(__name__)

CI_ACCOUNT = "CI service account"


@dataclass
class AuthStatus:
    """Who the workflow is acting as."""

    hosting_account: str
    git_name: str
    git_email: str


def _login_email(output: str) -> str | None:
    """Pull the first logged-in account from `login:list --json` output."""
    try:
        data = json.loads(output or "{}")
    except json.JSONDecodeError:
        return None
    accounts = data.get("result") if isinstance(data, dict) else None
    if not isinstance(accounts, list):
        return None
    for account in accounts:
        match account:
            case {"user": {"email": str(email)}} if email:
                return email
    return None


async def check_hosting_auth(
    firebase_bin: str = "firebase",
    *,
    token: str | None = None,
    cwd: Path | None = None,
) -> str:
    """Verify the firebase CLI can act on behalf of someone.

    With a CI token, the token is validated by listing projects; otherwise
    the interactive login is inspected.

    Returns:
        The account email, or CI_ACCOUNT for token logins.

    Raises:
        AuthenticationError: If neither the token nor a login works.
    """
    if token:
        result = await run_command([firebase_bin, "projects:list", "--token", token], cwd=cwd)
        if result.success:
            logger.info("Firebase token authentication successful")
            return CI_ACCOUNT
        logger.warning("Firebase token was rejected, falling back to interactive login")

    result = await run_command([firebase_bin, "login:list", "--json"], cwd=cwd)
    email = _login_email(result.stdout) if result.success else None
    if email is None:
        raise AuthenticationError(
            "Not logged in to the firebase CLI",
            suggestion="Run 'firebase login' (or set FIREBASE_TOKEN from 'firebase login:ci').",
        )
    logger.info("Authenticated with Firebase as %s", email)
    return email


async def check_git_identity(cwd: Path | None = None) -> tuple[str, str]:
    """Return git (user.name, user.email).

    Raises:
        AuthenticationError: If either is unset.
    """
    name = await run_command(["git", "config", "user.name"], cwd=cwd)
    email = await run_command(["git", "config", "user.email"], cwd=cwd)
    missing = [
        key
        for key, result in (("user.name", name), ("user.email", email))
        if not result.success or not result.stdout.strip()
    ]
    if missing:
        raise AuthenticationError(
            f"Git identity is not configured: {', '.join(missing)}",
            suggestion=(
                'Run git config --global user.name "Your Name" and '
                'git config --global user.email "you@example.com".'
            ),
        )
    return name.stdout.strip(), email.stdout.strip()


async def check_auth(
    firebase_bin: str = "firebase",
    *,
    token: str | None = None,
    cwd: Path | None = None,
) -> AuthStatus:
    account = await check_hosting_auth(firebase_bin, token=token, cwd=cwd)
    git_name, git_email = await check_git_identity(cwd)
    return AuthStatus(hosting_account=account, git_name=git_name, git_email=git_email)
