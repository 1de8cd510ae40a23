"""Preflight checks: confirm the worker CLI and git run before starting a review."""

import asyncio
import logging

from pr_review.git import ExecCommand, exec_command

logger = logging.getLogger(__name__)

_TIMEOUT_SEC = 15.0


async def _check_one(name: str, program: str, run: ExecCommand) -> tuple[str, bool, str]:
    """Run `<program> --version`. Returns (name, ok, error_message)."""
    try:
        result = await run(program, ["--version"], timeout=_TIMEOUT_SEC)
    except Exception as exc:
        return name, False, str(exc)
    if result.exit_code != 0:
        return name, False, result.stderr.strip() or f"exit code {result.exit_code}"
    logger.debug("%s: %s", name, result.stdout.strip())
    return name, True, ""


async def run_preflight_checks(
    programs: dict[str, str],
    run: ExecCommand = exec_command,
) -> dict[str, tuple[bool, str]]:
    """Check all programs in parallel.

    Returns:
        Dict mapping check name -> (ok, error_message).
        error_message is "" when ok is True.
    """
    results = await asyncio.gather(*(_check_one(n, p, run) for n, p in programs.items()))
    return {name: (ok, err) for name, ok, err in results}
