"""Command dispatch: one review run at a time, executed as a background task."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path

from config.config_loader import AppConfig
from pr_review.cycle import CycleContext, run_review_cycle
from pr_review.git import ExecCommand, exec_command, get_merge_base
from pr_review.loop import CycleRunner, run_review_loop
from pr_review.models import CycleHistoryEntry, LoopResult, ReviewConfig
from pr_review.report import format_loop_message
from pr_review.state import RunState
from pr_review.workers.base import WorkerSpawner

logger = logging.getLogger(__name__)

MessageSink = Callable[[str], None]


class ReviewAlreadyRunningError(RuntimeError):
    """A review or loop is already running in this session."""


class MergeBaseNotFoundError(RuntimeError):
    """No merge base could be resolved, so there is no diff to review."""


@dataclass
class RunOverrides:
    """Per-invocation values that take precedence over config and environment."""

    model_a: str | None = None
    model_b: str | None = None
    thinking_a: str | None = None
    thinking_b: str | None = None
    max_rounds: int | None = None
    max_cycles: int | None = None


def make_review_config(
    app_config: AppConfig,
    merge_base: str,
    overrides: RunOverrides | None = None,
) -> ReviewConfig:
    o = overrides or RunOverrides()
    return ReviewConfig(
        model_a=o.model_a or app_config.reviewer_a.model,
        model_b=o.model_b or app_config.reviewer_b.model,
        thinking_a=o.thinking_a or app_config.reviewer_a.thinking,
        thinking_b=o.thinking_b or app_config.reviewer_b.thinking,
        max_rounds=o.max_rounds or app_config.defaults.max_rounds,
        max_cycles=o.max_cycles or app_config.defaults.max_cycles,
        merge_base=merge_base,
    )


class ReviewSession:
    """Owns the single-run token, the run state, and the background task.

    start_review / start_loop return as soon as the run is scheduled; the
    outcome is delivered through on_message when the task finishes.
    """

    def __init__(
        self,
        app_config: AppConfig,
        spawner: WorkerSpawner,
        *,
        working_dir: Path,
        on_message: MessageSink,
        on_progress: Callable[[RunState], None] | None = None,
        run: ExecCommand = exec_command,
        run_cycle: CycleRunner = run_review_cycle,
    ) -> None:
        self._app_config = app_config
        self._spawner = spawner
        self._working_dir = working_dir
        self._on_message = on_message
        self._run = run
        self._run_cycle = run_cycle
        self._running = False
        self.state = RunState(on_progress=on_progress)
        self.task: asyncio.Task[LoopResult] | None = None
        self.config: ReviewConfig | None = None

    @property
    def running(self) -> bool:
        return self._running

    def _context(self) -> CycleContext:
        return CycleContext(
            spawner=self._spawner,
            prompts=self._app_config.prompts,
            state=self.state,
            working_dir=self._working_dir,
            scoring=self._app_config.scoring,
            reviewer_names=(self._app_config.reviewer_a.name, self._app_config.reviewer_b.name),
        )

    async def _acquire(self, overrides: RunOverrides | None) -> ReviewConfig:
        """Take the run token and resolve the merge base. Nothing is spawned here."""
        if self._running:
            raise ReviewAlreadyRunningError("A PR review is already running. Wait for it to finish.")
        self._running = True
        try:
            merge_base = await get_merge_base(self._run, self._app_config.git, self._working_dir)
        except BaseException:
            self._running = False
            raise
        if not merge_base:
            self._running = False
            raise MergeBaseNotFoundError(
                "Could not find merge base. Are you on a branch with changes vs main?"
            )
        self.config = make_review_config(self._app_config, merge_base, overrides)
        return self.config

    async def start_review(self, overrides: RunOverrides | None = None) -> "asyncio.Task[LoopResult]":
        """Schedule a single review cycle.

        Raises:
            ReviewAlreadyRunningError: If a run is in progress.
            MergeBaseNotFoundError: If there is nothing to diff against.
        """
        config = await self._acquire(overrides)
        logger.info("Merge base: %s. Starting background review...", config.merge_base[:8])
        self.task = asyncio.create_task(self._run_single(config))
        return self.task

    async def start_loop(self, overrides: RunOverrides | None = None) -> "asyncio.Task[LoopResult]":
        """Schedule a review/fix loop. Raises like start_review."""
        config = await self._acquire(overrides)
        logger.info(
            "Merge base: %s. Starting review loop (max %d cycles)...",
            config.merge_base[:8],
            config.max_cycles,
        )
        self.task = asyncio.create_task(self._run_loop(config))
        return self.task

    async def _run_single(self, config: ReviewConfig) -> LoopResult:
        result = LoopResult()
        try:
            cycle_result = await self._run_cycle(config, (), self._context())
            self.state.set_phase("complete")
            if self.state.holds(cycle_result.winner):
                await self.state.release(cycle_result.winner)
            result.history.append(CycleHistoryEntry(cycle=1, consensus=cycle_result.consensus))
            result.dismissed_items = list(cycle_result.consensus.dismissed_items)
            self._deliver(
                "The background PR review is complete. Here is the consensus report:\n\n"
                + cycle_result.consensus.raw
            )
        except Exception as exc:
            logger.error("PR review failed: %s", exc)
            result.error = exc
            self._deliver(f"PR review failed: {exc}")
        finally:
            await self._finish()
        return result

    async def _run_loop(self, config: ReviewConfig) -> LoopResult:
        result = LoopResult()
        try:
            await run_review_loop(
                config,
                self._context(),
                git=self._app_config.git,
                run=self._run,
                run_cycle=self._run_cycle,
                result=result,
            )
            self._deliver(format_loop_message(result))
        except asyncio.CancelledError as exc:
            result.error = exc
            self._deliver(format_loop_message(result))
            raise
        finally:
            await self._finish()
        return result

    def _deliver(self, message: str) -> None:
        try:
            self._on_message(message)
        except Exception:
            logger.exception("Message sink failed")

    async def _finish(self) -> None:
        await self.state.release_all()
        self.state.reset()
        self._running = False

    async def shutdown(self) -> None:
        """Terminate every held worker and cancel the running task, if any."""
        await self.state.release_all()
        if self.task is not None and not self.task.done():
            self.task.cancel()
