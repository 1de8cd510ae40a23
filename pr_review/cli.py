"""Click CLI: config loading, preflight, dispatch of a review or review loop, and output."""

import asyncio
import logging
import signal
import sys
import time
from collections.abc import Callable
from pathlib import Path

import click
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn

from config.config_loader import THINKING_LEVELS, AppConfig, load_config
from pr_review.preflight import run_preflight_checks
from pr_review.report import print_report, save_report
from pr_review.session import MergeBaseNotFoundError, ReviewAlreadyRunningError, ReviewSession, RunOverrides
from pr_review.state import RunState
from pr_review.workers.rpc_agent import RpcAgentSpawner

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)

# Worker progress events arrive far faster than the spinner needs redrawing.
_REDRAW_INTERVAL_SEC = 0.25


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(rich_tracebacks=True, show_path=False)],
    )


class _Throttle:
    """Lets a redraw through at most once per interval."""

    def __init__(self, interval: float, clock: Callable[[], float] = time.monotonic) -> None:
        self._interval = interval
        self._clock = clock
        self._last = float("-inf")

    def ready(self) -> bool:
        now = self._clock()
        if now - self._last < self._interval:
            return False
        self._last = now
        return True


def _describe(state: RunState) -> str:
    names = ", ".join(w.name() for w in state.active_workers)
    return f"{state.header} [{names}]" if names else state.header


def _progress_handler(update: Callable[[str], None], throttle: _Throttle) -> Callable[[RunState], None]:
    """Redraw immediately on a phase change, throttled otherwise."""
    last_phase = ""

    def on_progress(state: RunState) -> None:
        nonlocal last_phase
        if not state.phase:
            return
        # Evaluated first so a phase-change redraw also opens a new window.
        ready = throttle.ready()
        if state.phase != last_phase or ready:
            last_phase = state.phase
            update(_describe(state))

    return on_progress


def _build_overrides(
    model_a: str | None,
    model_b: str | None,
    thinking_a: str | None,
    thinking_b: str | None,
    max_rounds: int | None,
    max_cycles: int | None = None,
) -> RunOverrides:
    return RunOverrides(
        model_a=model_a,
        model_b=model_b,
        thinking_a=thinking_a,
        thinking_b=thinking_b,
        max_rounds=max_rounds,
        max_cycles=max_cycles,
    )


def _load_app_config() -> AppConfig:
    try:
        return load_config()
    except FileNotFoundError as exc:
        console.print(f"[bold red]Config error:[/bold red] {exc}")
        sys.exit(1)


def _check_tools(app_config: AppConfig) -> None:
    """Run preflight checks and ask whether to continue on failures. Exits on decline."""
    console.print("\n[bold]Checking tools...[/bold]")
    programs = {"worker": app_config.worker.command[0], "git": "git"}
    results = asyncio.run(run_preflight_checks(programs))

    failed_names: list[str] = []
    for name in sorted(results):
        ok, err = results[name]
        if ok:
            console.print(f"  [green]OK  [/green] {name} ({programs[name]})")
        else:
            short_err = err.splitlines()[0][:120] if err else "unknown error"
            console.print(f"  [red]FAIL[/red] {name} ({programs[name]}): {short_err}")
            failed_names.append(name)

    console.print()
    if failed_names and not click.confirm("Continue anyway?", default=False):
        sys.exit(1)


def _install_signal_handlers(session: ReviewSession) -> None:
    loop = asyncio.get_running_loop()
    pending: set[asyncio.Task[None]] = set()

    def on_signal() -> None:
        console.print("\n[yellow]Shutting down reviewers...[/yellow]")
        task = loop.create_task(session.shutdown())
        pending.add(task)
        task.add_done_callback(pending.discard)

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, on_signal)
        except (NotImplementedError, RuntimeError):
            # Not supported on Windows event loops.
            pass


async def _run(
    mode: str,
    app_config: AppConfig,
    overrides: RunOverrides,
    output_dir: Path,
    save: bool,
) -> int:
    """Dispatch the run, wait for its completion message, and print/save it."""
    messages: list[str] = []

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    ) as progress:
        task_id = progress.add_task("Getting merge base...", total=None)
        on_progress = _progress_handler(
            lambda text: progress.update(task_id, description=text),
            _Throttle(_REDRAW_INTERVAL_SEC),
        )
        session = ReviewSession(
            app_config,
            RpcAgentSpawner(app_config.worker),
            working_dir=Path.cwd(),
            on_message=messages.append,
            on_progress=on_progress,
        )
        _install_signal_handlers(session)

        start = session.start_loop if mode == "loop" else session.start_review
        try:
            run_task = await start(overrides)
        except (MergeBaseNotFoundError, ReviewAlreadyRunningError) as exc:
            console.print(f"[bold red]Error:[/bold red] {exc}")
            return 1

        result = None
        try:
            result = await run_task
        except asyncio.CancelledError:
            console.print("[yellow]Review cancelled.[/yellow]")

    title = "PR Review Loop" if mode == "loop" else "PR Review Consensus"
    for message in messages:
        print_report(message, title=title)

    if result is None:
        # Cancelled runs print their partial report but are not saved.
        return 130

    if save and messages:
        saved_path = save_report(messages[-1], output_dir, mode)
        console.print(f"\n[dim]Saved to: {saved_path}[/dim]")

    return 1 if result.error is not None else 0


def _execute(
    mode: str,
    overrides: RunOverrides,
    output_path: str | None,
    no_save: bool,
    skip_preflight: bool,
) -> None:
    app_config = _load_app_config()
    if not skip_preflight:
        _check_tools(app_config)
    output_dir = Path(output_path) if output_path else app_config.defaults.output_dir
    exit_code = asyncio.run(_run(mode, app_config, overrides, output_dir, save=not no_save))
    if exit_code:
        sys.exit(exit_code)


def _review_options(func: Callable) -> Callable:
    options = [
        click.option("--model-a", default=None, help="Model for reviewer A (env: PR_REVIEW_MODEL_A)"),
        click.option("--model-b", default=None, help="Model for reviewer B (env: PR_REVIEW_MODEL_B)"),
        click.option("--thinking-a", type=click.Choice(THINKING_LEVELS), default=None,
                     help="Thinking level for reviewer A (env: PR_REVIEW_THINKING_A)"),
        click.option("--thinking-b", type=click.Choice(THINKING_LEVELS), default=None,
                     help="Thinking level for reviewer B (env: PR_REVIEW_THINKING_B)"),
        click.option("--max-rounds", type=click.IntRange(min=1), default=None,
                     help="Max debate rounds per cycle (env: PR_REVIEW_MAX_ROUNDS, default 3)"),
        click.option("--output", "output_path", default=None, help="Report directory (default: from config)"),
        click.option("--no-save", is_flag=True, default=False, help="Do not save the report to a file"),
        click.option("--skip-preflight", is_flag=True, default=False,
                     help="Skip the worker/git availability check at startup"),
    ]
    for option in reversed(options):
        func = option(func)
    return func


@click.group()
@click.option("--verbose", is_flag=True, help="Enable DEBUG-level logging")
def main(verbose: bool) -> None:
    """PR Review -- two reviewers debate a branch's diff into one consensus.

    \b
    Examples:
      pr-review review
      pr-review review --max-rounds 1
      pr-review loop --max-cycles 3
      pr-review --verbose loop --model-b openai/gpt-5.3-codex --thinking-b high
    """
    load_dotenv()
    _setup_logging(verbose)


@main.command()
@_review_options
def review(
    model_a: str | None,
    model_b: str | None,
    thinking_a: str | None,
    thinking_b: str | None,
    max_rounds: int | None,
    output_path: str | None,
    no_save: bool,
    skip_preflight: bool,
) -> None:
    """Run a single review + debate cycle and print the consensus."""
    overrides = _build_overrides(model_a, model_b, thinking_a, thinking_b, max_rounds)
    _execute("review", overrides, output_path, no_save, skip_preflight)


@main.command()
@_review_options
@click.option("--max-cycles", type=click.IntRange(min=1), default=None,
              help="Max review/fix cycles (env: PR_REVIEW_MAX_CYCLES, default 5)")
def loop(
    model_a: str | None,
    model_b: str | None,
    thinking_a: str | None,
    thinking_b: str | None,
    max_rounds: int | None,
    output_path: str | None,
    no_save: bool,
    skip_preflight: bool,
    max_cycles: int | None,
) -> None:
    """Review, fix and re-review until the branch is clean or cycles run out."""
    overrides = _build_overrides(model_a, model_b, thinking_a, thinking_b, max_rounds, max_cycles)
    _execute("loop", overrides, output_path, no_save, skip_preflight)


if __name__ == "__main__":
    main()
