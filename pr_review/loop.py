"""Review/fix loop: repeat review cycles until the PR is clean or cycles run out."""

import logging
from collections.abc import Awaitable, Callable, Sequence

from config.config_loader import GitConfig
from pr_review.cycle import CycleContext, run_review_cycle
from pr_review.git import ExecCommand, exec_command, get_head_commit
from pr_review.models import CycleHistoryEntry, CycleResult, LoopResult, ReviewConfig
from pr_review.prompts import build_fix_prompt

logger = logging.getLogger(__name__)

CycleRunner = Callable[[ReviewConfig, Sequence[str], CycleContext], Awaitable[CycleResult]]


async def _fix_and_commit(
    result: CycleResult,
    ctx: CycleContext,
    run: ExecCommand,
    git: GitConfig,
) -> str | None:
    """Have the winner fix Critical and Warning items, then read the new HEAD."""
    fix_prompt = build_fix_prompt(ctx.prompts, result.consensus)
    await result.winner.send(fix_prompt, lambda _event: ctx.state.notify())
    commit = await get_head_commit(run, git, ctx.working_dir)
    logger.info("%s fix commit: %s", result.winner_name, commit or "unknown")
    return commit


async def run_review_loop(
    config: ReviewConfig,
    ctx: CycleContext,
    *,
    git: GitConfig | None = None,
    run: ExecCommand = exec_command,
    run_cycle: CycleRunner = run_review_cycle,
    result: LoopResult | None = None,
) -> LoopResult:
    """Run up to config.max_cycles review cycles with a fix pass between them.

    Dismissed items from every cycle are appended to the list shown to the
    next cycle's reviewers. Only one cycle's workers are alive at a time.

    Never raises for worker failures: the error is recorded on the returned
    LoopResult together with whatever history was accumulated. Cancellation
    propagates; pass `result` in to keep the history gathered before it.
    """
    git = git or GitConfig()
    state = ctx.state
    result = result if result is not None else LoopResult()

    try:
        for cycle in range(1, config.max_cycles + 1):
            state.cycle_info = f"[cycle {cycle}/{config.max_cycles}]"

            cycle_result = await run_cycle(config, tuple(result.dismissed_items), ctx)
            consensus = cycle_result.consensus
            result.dismissed_items = result.dismissed_items + list(consensus.dismissed_items)

            if consensus.is_clean:
                result.history.append(CycleHistoryEntry(cycle=cycle, consensus=consensus))
                state.set_phase("all clean")
                if state.holds(cycle_result.winner):
                    await state.release(cycle_result.winner)
                return result

            state.set_phase(f"{cycle_result.winner_name} fixing issues")
            fix_commit: str | None = None
            try:
                fix_commit = await _fix_and_commit(cycle_result, ctx, run, git)
            finally:
                result.history.append(
                    CycleHistoryEntry(
                        cycle=cycle,
                        consensus=consensus,
                        fixer_name=cycle_result.winner_name,
                        fix_commit=fix_commit,
                    )
                )
                # Next cycle starts with fresh reviewers. A shutdown may have
                # released the winner already.
                if state.holds(cycle_result.winner):
                    await state.release(cycle_result.winner)

            state.set_phase(f"cycle {cycle} complete, starting next review")

        state.set_phase("max cycles reached")
    except Exception as exc:
        logger.error("Review loop failed after %d cycle(s): %s", len(result.history), exc)
        result.error = exc

    return result
