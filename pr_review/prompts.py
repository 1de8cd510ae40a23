"""Prompt builders on top of the templates in settings.yaml."""

from collections.abc import Sequence

from config.config_loader import PromptsConfig
from pr_review.models import ConsensusReport


def _numbered(items: Sequence[str]) -> str:
    return "\n".join(f"{i}. {item}" for i, item in enumerate(items, start=1))


def _dismissed_clause(template: str, dismissed_items: Sequence[str]) -> str:
    if not dismissed_items:
        return ""
    return "\n\n" + template.format(items=_numbered(dismissed_items)) + "\n"


def build_review_prompt(
    prompts: PromptsConfig, merge_base: str, dismissed_items: Sequence[str] = ()
) -> str:
    return prompts.review.format(
        merge_base=merge_base,
        dismissed_clause=_dismissed_clause(prompts.review_dismissed, dismissed_items),
    )


def build_debate_prompt(
    prompts: PromptsConfig,
    other_name: str,
    other_review: str,
    dismissed_items: Sequence[str] = (),
) -> str:
    return prompts.debate.format(
        other_name=other_name,
        other_review=other_review,
        dismissed_clause=_dismissed_clause(prompts.debate_dismissed, dismissed_items),
    )


def build_consensus_prompt(prompts: PromptsConfig) -> str:
    # The winner already holds the diff and the debate transcript.
    return prompts.consensus


def build_fix_prompt(prompts: PromptsConfig, consensus: ConsensusReport) -> str:
    return prompts.fix.format(
        critical_count=consensus.critical_count,
        warning_count=consensus.warning_count,
        consensus=consensus.raw,
    )
