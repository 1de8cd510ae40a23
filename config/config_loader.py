"""Load settings.yaml into typed dataclasses, then apply PR_REVIEW_* environment overrides."""

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

import yaml

logger = logging.getLogger(__name__)

_SETTINGS_PATH = Path(__file__).parent / "settings.yaml"

THINKING_LEVELS = ("off", "minimal", "low", "medium", "high", "xhigh")
TIE_BREAKS = ("first", "second")

ENV_MODEL_A = "PR_REVIEW_MODEL_A"
ENV_MODEL_B = "PR_REVIEW_MODEL_B"
ENV_THINKING_A = "PR_REVIEW_THINKING_A"
ENV_THINKING_B = "PR_REVIEW_THINKING_B"
ENV_MAX_ROUNDS = "PR_REVIEW_MAX_ROUNDS"
ENV_MAX_CYCLES = "PR_REVIEW_MAX_CYCLES"


@dataclass
class ReviewerConfig:
    name: str
    model: str
    thinking: str


@dataclass
class WorkerConfig:
    command: list[str]
    spawn_grace_sec: float = 2.0
    send_timeout_sec: float | None = None
    terminate_timeout_sec: float = 5.0


@dataclass
class GitConfig:
    base_refs: list[str] = field(default_factory=lambda: ["origin/main", "main"])
    merge_base_timeout_sec: float = 10.0
    rev_parse_timeout_sec: float = 5.0


@dataclass
class ScoringConfig:
    agreed_weight: float = 1.0
    partial_weight: float = 0.5
    tie_break: str = "first"


@dataclass
class PromptsConfig:
    system: str
    review: str
    review_dismissed: str
    debate: str
    debate_dismissed: str
    consensus: str
    fix: str


@dataclass
class DefaultsConfig:
    max_rounds: int
    max_cycles: int
    output_dir: Path


@dataclass
class AppConfig:
    defaults: DefaultsConfig
    reviewer_a: ReviewerConfig
    reviewer_b: ReviewerConfig
    worker: WorkerConfig
    git: GitConfig
    scoring: ScoringConfig
    prompts: PromptsConfig


def _positive_int(raw: str | None, default: int, source: str) -> int:
    """Parse a positive integer, falling back to default on empty or bad input."""
    if raw is None or not str(raw).strip():
        return default
    try:
        value = int(str(raw).strip())
    except ValueError:
        logger.warning("%s=%r is not an integer, using %d", source, raw, default)
        return default
    if value < 1:
        logger.warning("%s=%r must be positive, using %d", source, raw, default)
        return default
    return value


def _thinking_level(raw: str | None, default: str, source: str) -> str:
    if raw is None or not raw.strip():
        return default
    level = raw.strip().lower()
    if level not in THINKING_LEVELS:
        logger.warning(
            "%s=%r is not one of %s, using %s", source, raw, ", ".join(THINKING_LEVELS), default
        )
        return default
    return level


def _apply_env_overrides(config: AppConfig, environ: Mapping[str, str]) -> None:
    """Overlay PR_REVIEW_* variables. Empty values keep the settings.yaml default."""
    model_a = environ.get(ENV_MODEL_A, "").strip()
    if model_a:
        config.reviewer_a.model = model_a
    model_b = environ.get(ENV_MODEL_B, "").strip()
    if model_b:
        config.reviewer_b.model = model_b

    config.reviewer_a.thinking = _thinking_level(
        environ.get(ENV_THINKING_A), config.reviewer_a.thinking, ENV_THINKING_A
    )
    config.reviewer_b.thinking = _thinking_level(
        environ.get(ENV_THINKING_B), config.reviewer_b.thinking, ENV_THINKING_B
    )
    config.defaults.max_rounds = _positive_int(
        environ.get(ENV_MAX_ROUNDS), config.defaults.max_rounds, ENV_MAX_ROUNDS
    )
    config.defaults.max_cycles = _positive_int(
        environ.get(ENV_MAX_CYCLES), config.defaults.max_cycles, ENV_MAX_CYCLES
    )


def _load_reviewer(raw: dict, fallback_name: str) -> ReviewerConfig:
    return ReviewerConfig(
        name=str(raw.get("name", fallback_name)),
        model=str(raw["model"]),
        thinking=_thinking_level(str(raw.get("thinking", "high")), "high", f"{fallback_name}.thinking"),
    )


def load_config(
    settings_path: Path = _SETTINGS_PATH,
    environ: Mapping[str, str] | None = None,
) -> AppConfig:
    """Load and validate configuration from settings.yaml.

    Environment overrides are read from ``environ`` (``os.environ`` when None),
    once per call. Callers load ``.env`` with python-dotenv before calling.

    Raises FileNotFoundError if settings file missing.
    """
    if not settings_path.exists():
        raise FileNotFoundError(f"Settings file not found: {settings_path}")

    with settings_path.open("r", encoding="utf-8") as f:
        raw = yaml.safe_load(f)

    defaults_raw = raw["defaults"]
    defaults = DefaultsConfig(
        max_rounds=_positive_int(defaults_raw.get("max_rounds"), 3, "defaults.max_rounds"),
        max_cycles=_positive_int(defaults_raw.get("max_cycles"), 5, "defaults.max_cycles"),
        output_dir=Path(defaults_raw.get("output_dir", "./output")),
    )

    reviewers_raw = raw["reviewers"]
    reviewer_a = _load_reviewer(reviewers_raw["a"], "reviewer-a")
    reviewer_b = _load_reviewer(reviewers_raw["b"], "reviewer-b")

    worker_raw = raw["worker"]
    send_timeout = worker_raw.get("send_timeout_sec")
    worker = WorkerConfig(
        command=[str(part) for part in worker_raw["command"]],
        spawn_grace_sec=float(worker_raw.get("spawn_grace_sec", 2.0)),
        send_timeout_sec=float(send_timeout) if send_timeout is not None else None,
        terminate_timeout_sec=float(worker_raw.get("terminate_timeout_sec", 5.0)),
    )

    git_raw = raw.get("git", {})
    git = GitConfig(
        base_refs=list(git_raw.get("base_refs", ["origin/main", "main"])),
        merge_base_timeout_sec=float(git_raw.get("merge_base_timeout_sec", 10.0)),
        rev_parse_timeout_sec=float(git_raw.get("rev_parse_timeout_sec", 5.0)),
    )

    scoring_raw = raw.get("scoring", {})
    tie_break = str(scoring_raw.get("tie_break", "first")).lower()
    if tie_break not in TIE_BREAKS:
        logger.warning("scoring.tie_break=%r is not one of %s, using 'first'", tie_break, TIE_BREAKS)
        tie_break = "first"
    scoring = ScoringConfig(
        agreed_weight=float(scoring_raw.get("agreed_weight", 1.0)),
        partial_weight=float(scoring_raw.get("partial_weight", 0.5)),
        tie_break=tie_break,
    )

    prompts_raw = raw["prompts"]
    prompts = PromptsConfig(
        system=prompts_raw["system"],
        review=prompts_raw["review"],
        review_dismissed=prompts_raw["review_dismissed"],
        debate=prompts_raw["debate"],
        debate_dismissed=prompts_raw["debate_dismissed"],
        consensus=prompts_raw["consensus"],
        fix=prompts_raw["fix"],
    )

    config = AppConfig(
        defaults=defaults,
        reviewer_a=reviewer_a,
        reviewer_b=reviewer_b,
        worker=worker,
        git=git,
        scoring=scoring,
        prompts=prompts,
    )
    _apply_env_overrides(config, os.environ if environ is None else environ)

    logger.debug(
        "Reviewers: %s (%s, %s) vs %s (%s, %s); rounds=%d cycles=%d",
        reviewer_a.name, reviewer_a.model, reviewer_a.thinking,
        reviewer_b.name, reviewer_b.model, reviewer_b.thinking,
        defaults.max_rounds, defaults.max_cycles,
    )
    return config
