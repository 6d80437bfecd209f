"""Tests for external command execution and log capture."""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from previewflow.activities.commands import CommandResult, run_command, split_command
from previewflow.activities.logs import deploy_log_path, save_command_log


class TestCommandResult:
    """Test CommandResult helpers."""

    def test_success(self):
        """Exit code 0 is success."""
        assert CommandResult("true", 0, "", "").success
        assert not CommandResult("false", 1, "", "").success

    def test_output_combines_streams(self):
        """output joins stdout and stderr."""
        result = CommandResult("x", 0, "out", "err")
        assert result.output == "out\nerr"
        assert CommandResult("x", 0, "", "err").output == "err"

    def test_error_text_prefers_stderr(self):
        """error_text falls back from stderr to stdout to the exit code."""
        assert CommandResult("x", 1, "out", "err\n").error_text() == "err"
        assert CommandResult("x", 1, "out", "").error_text() == "out"
        assert CommandResult("x", 3, "", "").error_text() == "exited with code 3"


def test_split_command():
    """Strings are split shell-style, lists are copied."""
    assert split_command("pnpm run build:all") == ["pnpm", "run", "build:all"]
    args = ["firebase", "--version"]
    assert split_command(args) == args
    assert split_command(args) is not args


@pytest.mark.asyncio
async def test_run_command_success(completed_process):
    """run_command returns decoded output and exit code."""
    process = completed_process(0, b"hello\n", b"")
    with patch("asyncio.create_subprocess_exec", new_callable=AsyncMock) as mock_exec:
        mock_exec.return_value = process
        result = await run_command("echo hello")

    assert result.success
    assert result.stdout == "hello\n"
    assert result.command == "echo hello"
    assert mock_exec.call_args[0] == ("echo", "hello")


@pytest.mark.asyncio
async def test_run_command_failure(completed_process):
    """Non-zero exits are returned, not raised."""
    process = completed_process(2, b"", b"Error: not found")
    with patch("asyncio.create_subprocess_exec", new_callable=AsyncMock) as mock_exec:
        mock_exec.return_value = process
        result = await run_command(["pnpm", "run", "lint"], cwd=Path("/proj"))

    assert result.exit_code == 2
    assert result.stderr == "Error: not found"
    assert mock_exec.call_args.kwargs["cwd"] == "/proj"


@pytest.mark.asyncio
async def test_run_command_missing_executable():
    """A missing executable is exit code 127."""
    with patch(
        "asyncio.create_subprocess_exec",
        new_callable=AsyncMock,
        side_effect=FileNotFoundError("No such file: firebase"),
    ):
        result = await run_command(["firebase", "--version"])

    assert result.exit_code == 127
    assert "firebase" in result.stderr


@pytest.mark.asyncio
async def test_run_command_kills_process_on_timeout():
    """A timed-out command does not keep running in the background."""
    process = MagicMock()
    process.returncode = None

    async def never_finishes():
        await asyncio.sleep(10)

    process.communicate = never_finishes
    process.wait = AsyncMock(return_value=-9)
    with patch("asyncio.create_subprocess_exec", new_callable=AsyncMock) as mock_exec:
        mock_exec.return_value = process
        with pytest.raises(TimeoutError):
            await asyncio.wait_for(run_command("pnpm run build"), timeout=0.05)

    process.kill.assert_called_once()
    process.wait.assert_awaited_once()


@pytest.mark.asyncio
async def test_run_command_tolerates_already_exited_process():
    """Killing a process that already exited is not an error."""
    process = MagicMock()
    process.returncode = None
    process.communicate = AsyncMock(side_effect=asyncio.CancelledError())
    process.kill.side_effect = ProcessLookupError()
    process.wait = AsyncMock(return_value=0)
    with patch("asyncio.create_subprocess_exec", new_callable=AsyncMock) as mock_exec:
        mock_exec.return_value = process
        with pytest.raises(asyncio.CancelledError):
            await run_command("firebase deploy")

    process.wait.assert_awaited_once()


@pytest.mark.asyncio
async def test_save_command_log(tmp_path: Path):
    """save_command_log writes command, exit code and both streams."""
    result = CommandResult("firebase deploy", 1, "Deploying...", "Error: denied")
    path = await save_command_log(tmp_path / "logs" / "deploy.log", result)

    assert path.exists()
    content = path.read_text()
    assert "Command: firebase deploy" in content
    assert "Exit code: 1" in content
    assert "=== STDOUT ===\nDeploying..." in content
    assert "=== STDERR ===\nError: denied" in content


def test_deploy_log_path(tmp_path: Path):
    """Deploy logs are named after the site."""
    assert deploy_log_path(tmp_path, "admin") == tmp_path / "firebase-deploy-admin.log"
