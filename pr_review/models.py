"""Pure dataclasses for the PR review pipeline. No logic beyond derived flags."""

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from pr_review.workers.base import WorkerHandle


class Verdict(str, Enum):
    APPROVE = "APPROVE"
    CHANGES_REQUIRED = "CHANGES REQUIRED"


@dataclass(frozen=True)
class ReviewConfig:
    model_a: str
    model_b: str
    thinking_a: str
    thinking_b: str
    max_rounds: int
    max_cycles: int
    merge_base: str        # diff base resolved once per invocation


@dataclass(frozen=True)
class ConsensusReport:
    raw: str
    verdict: Verdict = Verdict.CHANGES_REQUIRED
    critical_count: int = 0
    warning_count: int = 0
    dismissed_items: tuple[str, ...] = ()

    @property
    def is_clean(self) -> bool:
        return (
            self.verdict is Verdict.APPROVE
            and self.critical_count == 0
            and self.warning_count == 0
        )


@dataclass
class CycleResult:
    """Outcome of one review cycle. The caller owns both handles on return."""

    winner: "WorkerHandle"
    loser: "WorkerHandle"
    winner_name: str
    consensus: ConsensusReport
    debate_rounds: int = 0
    converged: bool = False
    scores: dict[str, float] = field(default_factory=dict)


@dataclass(frozen=True)
class CycleHistoryEntry:
    cycle: int
    consensus: ConsensusReport
    fixer_name: str | None = None
    fix_commit: str | None = None


@dataclass
class LoopResult:
    history: list[CycleHistoryEntry] = field(default_factory=list)
    dismissed_items: list[str] = field(default_factory=list)
    error: BaseException | None = None

    @property
    def partial(self) -> bool:
        return self.error is not None

    @property
    def approved(self) -> bool:
        return bool(self.history) and self.history[-1].consensus.is_clean
