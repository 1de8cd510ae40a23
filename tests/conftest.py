"""Shared pytest fixtures."""

import asyncio
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from config.config_loader import (
    AppConfig,
    DefaultsConfig,
    GitConfig,
    PromptsConfig,
    ReviewerConfig,
    ScoringConfig,
    WorkerConfig,
)
from pr_review.cycle import CycleContext
from pr_review.git import ExecResult
from pr_review.models import ConsensusReport, ReviewConfig, Verdict
from pr_review.state import RunState
from pr_review.workers.base import WorkerError, WorkerHandle, WorkerSpawner

CLEAN_CONSENSUS = """## PR Review Consensus

### Verdict: APPROVE

### Critical Issues (must fix)
None

### Warnings (should fix)
None

### Suggestions (consider)
1. Consider a shorter helper name

### Dismissed Non-Issues
None

### Summary
Looks good.
"""

DIRTY_CONSENSUS = """## PR Review Consensus

### Verdict: CHANGES REQUIRED

### Critical Issues (must fix)
1. SQL built with string formatting in `db.py:42`

### Warnings (should fix)
1. Missing test for empty input
2. CHANGELOG not updated

### Suggestions (consider)
None

### Dismissed Non-Issues
1. Unused import in `cli.py` is actually used by the entry point

### Summary
One injection risk and two gaps.
"""


class MockWorker(WorkerHandle):
    """Test double worker. Replies from a script, then with a default text."""

    def __init__(
        self,
        worker_name: str = "mock",
        responses: list[str] | None = None,
        default: str = "Mock response",
        gate: asyncio.Event | None = None,
    ) -> None:
        self._name = worker_name
        self._responses = list(responses or [])
        self._default = default
        self._gate = gate
        self.prompts: list[str] = []
        # Shadow the class methods with AsyncMocks at the instance level.
        self.send = AsyncMock(side_effect=self._reply)  # type: ignore[assignment]
        self.terminate = AsyncMock()  # type: ignore[assignment]

    async def _reply(self, prompt: str, on_progress=None) -> str:
        self.prompts.append(prompt)
        if self._gate is not None:
            await self._gate.wait()
        if on_progress:
            on_progress({"type": "message_update"})
        if self._responses:
            return self._responses.pop(0)
        return self._default

    def name(self) -> str:
        return self._name

    def model_string(self) -> str:
        return "mock-model"

    async def send(self, prompt: str, on_progress=None) -> str:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""
        return self._default

    async def terminate(self) -> None:  # type: ignore[override]
        """Default implementation; replaced by AsyncMock in __init__."""


class MockSpawner(WorkerSpawner):
    """Hands out MockWorkers with a fresh copy of each name's script per spawn."""

    def __init__(
        self,
        scripts: dict[str, list[str]] | None = None,
        fail_names: tuple[str, ...] = (),
        gate: asyncio.Event | None = None,
    ) -> None:
        self._scripts = scripts or {}
        self._fail_names = fail_names
        self._gate = gate
        self.spawned: list[MockWorker] = []
        self.spawn_calls: list[dict] = []

    async def spawn(self, name, model, thinking, system_prompt, working_dir) -> MockWorker:
        self.spawn_calls.append(
            {"name": name, "model": model, "thinking": thinking, "system_prompt": system_prompt}
        )
        if name in self._fail_names:
            raise WorkerError(name, "failed to start: exited during grace period")
        worker = MockWorker(name, list(self._scripts.get(name, [])), gate=self._gate)
        self.spawned.append(worker)
        return worker


@pytest.fixture
def sample_prompts_config() -> PromptsConfig:
    return PromptsConfig(
        system="You are a reviewer.",
        review="Run `git diff {merge_base}`. Use **Critical**, **Warning**, **Suggestion**.{dismissed_clause}",
        review_dismissed="Do NOT re-raise:\n{items}",
        debate="Here is {other_name}'s review:\n\n{other_review}\n\nReply point-by-point.{dismissed_clause}",
        debate_dismissed="Previously dismissed:\n{items}",
        consensus="Write the consensus.",
        fix='Fix it. Commit "fix: address review findings (critical: {critical_count}, warnings: {warning_count})"\n\n{consensus}',
    )


@pytest.fixture
def sample_app_config(tmp_path: Path, sample_prompts_config: PromptsConfig) -> AppConfig:
    return AppConfig(
        defaults=DefaultsConfig(max_rounds=3, max_cycles=5, output_dir=tmp_path / "output"),
        reviewer_a=ReviewerConfig(name="reviewer-a", model="model-a", thinking="high"),
        reviewer_b=ReviewerConfig(name="reviewer-b", model="model-b", thinking="xhigh"),
        worker=WorkerConfig(command=["agent", "--model", "{model}"], spawn_grace_sec=0.0),
        git=GitConfig(),
        scoring=ScoringConfig(),
        prompts=sample_prompts_config,
    )


@pytest.fixture
def review_config() -> ReviewConfig:
    return ReviewConfig(
        model_a="model-a",
        model_b="model-b",
        thinking_a="high",
        thinking_b="xhigh",
        max_rounds=3,
        max_cycles=5,
        merge_base="abc123def456",
    )


@pytest.fixture
def run_state() -> RunState:
    return RunState()


@pytest.fixture
def mock_spawner() -> MockSpawner:
    return MockSpawner()


@pytest.fixture
def cycle_context(mock_spawner, sample_prompts_config, run_state, tmp_path) -> CycleContext:
    return CycleContext(
        spawner=mock_spawner,
        prompts=sample_prompts_config,
        state=run_state,
        working_dir=tmp_path,
    )


@pytest.fixture
def clean_report() -> ConsensusReport:
    return ConsensusReport(raw=CLEAN_CONSENSUS, verdict=Verdict.APPROVE)


@pytest.fixture
def dirty_report() -> ConsensusReport:
    return ConsensusReport(
        raw=DIRTY_CONSENSUS,
        verdict=Verdict.CHANGES_REQUIRED,
        critical_count=1,
        warning_count=2,
        dismissed_items=("Unused import in `cli.py` is actually used by the entry point",),
    )


@pytest.fixture
def git_ok() -> AsyncMock:
    """Exec collaborator where every git call succeeds."""
    return AsyncMock(return_value=ExecResult(exit_code=0, stdout="abc1234\n"))
