"""One review cycle: spawn, parallel reviews, debate rounds, winner, consensus."""

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from config.config_loader import PromptsConfig, ScoringConfig
from pr_review.consensus import parse_consensus
from pr_review.models import CycleResult, ReviewConfig
from pr_review.prompts import build_consensus_prompt, build_debate_prompt, build_review_prompt
from pr_review.scoring import count_agreements, count_disagreements, pick_winner
from pr_review.state import RunState
from pr_review.workers.base import WorkerHandle, WorkerSpawner

logger = logging.getLogger(__name__)

REVIEWER_A = "reviewer-a"
REVIEWER_B = "reviewer-b"


@dataclass
class CycleContext:
    """Collaborators shared by every cycle of a run."""

    spawner: WorkerSpawner
    prompts: PromptsConfig
    state: RunState
    working_dir: Path
    scoring: ScoringConfig = field(default_factory=ScoringConfig)
    reviewer_names: tuple[str, str] = (REVIEWER_A, REVIEWER_B)


async def _send_pair(
    first: WorkerHandle,
    first_prompt: str,
    second: WorkerHandle,
    second_prompt: str,
    state: RunState,
) -> tuple[str, str]:
    """Send both prompts concurrently and wait for both answers.

    A failure on one side does not cut the other short; the first error is
    raised once both have finished.
    """

    def on_progress(_event: dict[str, Any]) -> None:
        state.notify()

    results = await asyncio.gather(
        first.send(first_prompt, on_progress),
        second.send(second_prompt, on_progress),
        return_exceptions=True,
    )
    for result in results:
        if isinstance(result, BaseException):
            raise result
    return results[0], results[1]


async def run_review_cycle(
    config: ReviewConfig,
    dismissed_items: Sequence[str],
    ctx: CycleContext,
) -> CycleResult:
    """Run a single review+debate cycle.

    Returns the consensus report and both workers. The winner is kept alive so
    the caller can use it for fixes; the loser is already terminated. If the
    cycle raises, every worker it spawned has been terminated.

    Raises:
        WorkerError: If a worker fails to start or a prompt fails.
    """
    state = ctx.state
    name_a, name_b = ctx.reviewer_names
    spawned: list[WorkerHandle] = []

    try:
        # Fresh reviewers every cycle: no memory of earlier verdicts to anchor on.
        state.set_phase("spawning reviewers")
        for name, model, thinking in (
            (name_a, config.model_a, config.thinking_a),
            (name_b, config.model_b, config.thinking_b),
        ):
            worker = await ctx.spawner.spawn(name, model, thinking, ctx.prompts.system, ctx.working_dir)
            spawned.append(worker)
            state.track(worker)
        worker_a, worker_b = spawned

        state.set_phase("independent reviews (parallel)")
        review_prompt = build_review_prompt(ctx.prompts, config.merge_base, dismissed_items)
        last_a, last_b = await _send_pair(worker_a, review_prompt, worker_b, review_prompt, state)

        # score_a: how many of A's points B accepted; score_b the reverse.
        score_a = 0.0
        score_b = 0.0
        rounds_run = 0
        converged = False
        weights = (ctx.scoring.agreed_weight, ctx.scoring.partial_weight)

        for round_num in range(1, config.max_rounds + 1):
            state.set_phase(f"debate round {round_num}/{config.max_rounds}")
            debate_a, debate_b = await _send_pair(
                worker_a,
                build_debate_prompt(ctx.prompts, name_b, last_b, dismissed_items),
                worker_b,
                build_debate_prompt(ctx.prompts, name_a, last_a, dismissed_items),
                state,
            )
            rounds_run = round_num

            score_b += count_agreements(debate_a, *weights)
            score_a += count_agreements(debate_b, *weights)
            last_a, last_b = debate_a, debate_b

            disagreements = count_disagreements(debate_a) + count_disagreements(debate_b)
            logger.info(
                "Round %d: %s=%.1f %s=%.1f, %d disagreement(s)",
                round_num, name_a, score_a, name_b, score_b, disagreements,
            )
            if disagreements == 0:
                converged = True
                state.set_phase(f"converged after {round_num} round{'s' if round_num > 1 else ''}")
                break

        winner_index = pick_winner(score_a, score_b, ctx.scoring.tie_break)
        winner, loser = (worker_a, worker_b) if winner_index == 0 else (worker_b, worker_a)
        winner_name = winner.name()
        logger.info("Winner: %s (%s=%.1f, %s=%.1f)", winner_name, name_a, score_a, name_b, score_b)

        state.set_phase(f"{winner_name} writing consensus")
        await state.release(loser)

        raw = await winner.send(build_consensus_prompt(ctx.prompts), lambda _event: state.notify())
        consensus = parse_consensus(raw)
        logger.info(
            "Consensus: %s, %d critical, %d warning(s), %d dismissed",
            consensus.verdict.value,
            consensus.critical_count,
            consensus.warning_count,
            len(consensus.dismissed_items),
        )
    except BaseException:
        for worker in spawned:
            if state.holds(worker):
                await state.release(worker)
        raise

    return CycleResult(
        winner=winner,
        loser=loser,
        winner_name=winner_name,
        consensus=consensus,
        debate_rounds=rounds_run,
        converged=converged,
        scores={name_a: score_a, name_b: score_b},
    )
