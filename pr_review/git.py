"""Shell command execution and the two git lookups the review needs."""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from pathlib import Path

from config.config_loader import GitConfig

logger = logging.getLogger(__name__)


@dataclass
class ExecResult:
    exit_code: int
    stdout: str
    stderr: str = ""


ExecCommand = Callable[..., Awaitable[ExecResult]]


async def exec_command(
    program: str,
    args: Sequence[str],
    *,
    timeout: float,
    cwd: Path | None = None,
) -> ExecResult:
    """Run a command to completion. Launch failures and timeouts become non-zero results."""
    try:
        process = await asyncio.create_subprocess_exec(
            program,
            *args,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
            cwd=str(cwd) if cwd else None,
        )
    except OSError as exc:
        return ExecResult(exit_code=127, stdout="", stderr=str(exc))

    try:
        stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=timeout)
    except TimeoutError:
        try:
            process.kill()
        except ProcessLookupError:
            pass
        await process.wait()
        return ExecResult(exit_code=-1, stdout="", stderr=f"Timed out after {timeout}s")

    return ExecResult(
        exit_code=process.returncode if process.returncode is not None else -1,
        stdout=stdout.decode("utf-8", errors="replace"),
        stderr=stderr.decode("utf-8", errors="replace"),
    )


async def get_merge_base(
    run: ExecCommand,
    git: GitConfig,
    cwd: Path | None = None,
) -> str | None:
    """Return the merge base of HEAD against the first base ref that resolves."""
    for ref in git.base_refs:
        result = await run("git", ["merge-base", "HEAD", ref], timeout=git.merge_base_timeout_sec, cwd=cwd)
        merge_base = result.stdout.strip()
        if result.exit_code == 0 and merge_base:
            logger.info("Merge base against %s: %s", ref, merge_base)
            return merge_base
        logger.debug("No merge base against %s: %s", ref, result.stderr.strip())
    return None


async def get_head_commit(
    run: ExecCommand,
    git: GitConfig,
    cwd: Path | None = None,
) -> str | None:
    """Short hash of HEAD, or None if it cannot be read."""
    try:
        result = await run(
            "git", ["rev-parse", "--short", "HEAD"], timeout=git.rev_parse_timeout_sec, cwd=cwd
        )
    except Exception as exc:
        logger.warning("Could not read HEAD commit: %s", exc)
        return None
    if result.exit_code != 0 or not result.stdout.strip():
        logger.warning("git rev-parse failed (exit %d): %s", result.exit_code, result.stderr.strip())
        return None
    return result.stdout.strip()
