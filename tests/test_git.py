"""Tests for pr_review/git.py."""

import asyncio
import sys
from unittest.mock import AsyncMock

from config.config_loader import GitConfig
from pr_review.git import ExecResult, exec_command, get_head_commit, get_merge_base


# --- get_merge_base ---

async def test_merge_base_from_origin_main(tmp_path):
    run = AsyncMock(return_value=ExecResult(exit_code=0, stdout="abc123def456\n"))

    merge_base = await get_merge_base(run, GitConfig(), tmp_path)

    assert merge_base == "abc123def456"
    run.assert_awaited_once()
    args, kwargs = run.call_args
    assert args == ("git", ["merge-base", "HEAD", "origin/main"])
    assert kwargs["timeout"] == 10.0
    assert kwargs["cwd"] == tmp_path


async def test_merge_base_falls_back_to_main():
    run = AsyncMock(
        side_effect=[
            ExecResult(exit_code=128, stdout="", stderr="fatal: Not a valid object name origin/main"),
            ExecResult(exit_code=0, stdout="fedcba987654\n"),
        ]
    )

    assert await get_merge_base(run, GitConfig()) == "fedcba987654"
    assert run.call_args_list[1].args == ("git", ["merge-base", "HEAD", "main"])


async def test_merge_base_none_when_all_refs_fail():
    run = AsyncMock(return_value=ExecResult(exit_code=1, stdout=""))
    assert await get_merge_base(run, GitConfig()) is None
    assert run.await_count == 2


async def test_merge_base_ignores_empty_output():
    run = AsyncMock(return_value=ExecResult(exit_code=0, stdout="  \n"))
    assert await get_merge_base(run, GitConfig()) is None


async def test_merge_base_uses_configured_refs():
    run = AsyncMock(return_value=ExecResult(exit_code=0, stdout="1234\n"))
    await get_merge_base(run, GitConfig(base_refs=["upstream/develop"]))
    assert run.call_args.args == ("git", ["merge-base", "HEAD", "upstream/develop"])


# --- get_head_commit ---

async def test_head_commit_stripped(git_ok):
    assert await get_head_commit(git_ok, GitConfig()) == "abc1234"
    args, kwargs = git_ok.call_args
    assert args == ("git", ["rev-parse", "--short", "HEAD"])
    assert kwargs["timeout"] == 5.0


async def test_head_commit_none_on_failure():
    run = AsyncMock(return_value=ExecResult(exit_code=128, stdout="", stderr="fatal"))
    assert await get_head_commit(run, GitConfig()) is None


async def test_head_commit_none_on_empty_output():
    run = AsyncMock(return_value=ExecResult(exit_code=0, stdout=""))
    assert await get_head_commit(run, GitConfig()) is None


async def test_head_commit_none_on_exception():
    run = AsyncMock(side_effect=OSError("boom"))
    assert await get_head_commit(run, GitConfig()) is None


# --- exec_command (real subprocesses) ---

async def test_exec_command_captures_output(tmp_path):
    result = await exec_command(
        sys.executable,
        ["-c", "import os, sys; print(os.getcwd()); print('oops', file=sys.stderr)"],
        timeout=30,
        cwd=tmp_path,
    )
    assert result.exit_code == 0
    assert result.stdout.strip() == str(tmp_path.resolve())
    assert result.stderr.strip() == "oops"


async def test_exec_command_nonzero_exit():
    result = await exec_command(sys.executable, ["-c", "raise SystemExit(3)"], timeout=30)
    assert result.exit_code == 3


async def test_exec_command_missing_program():
    result = await exec_command("definitely-not-a-real-program-xyz", ["--version"], timeout=5)
    assert result.exit_code == 127
    assert result.stdout == ""
    assert result.stderr


async def test_exec_command_timeout():
    result = await exec_command(sys.executable, ["-c", "import time; time.sleep(30)"], timeout=0.5)
    assert result.exit_code == -1
    assert "Timed out" in result.stderr


class _ExitedAtDeadlineProcess:
    """Times out, then is already gone when the kill lands."""

    def __init__(self) -> None:
        self.returncode = None
        self.wait = AsyncMock(return_value=0)

    async def communicate(self):
        await asyncio.sleep(30)

    def kill(self):
        raise ProcessLookupError()


async def test_exec_command_timeout_tolerates_exited_process(monkeypatch):
    process = _ExitedAtDeadlineProcess()
    monkeypatch.setattr(asyncio, "create_subprocess_exec", AsyncMock(return_value=process))

    result = await exec_command("git", ["status"], timeout=0.05)

    assert result.exit_code == -1
    assert "Timed out" in result.stderr
    process.wait.assert_awaited_once()
