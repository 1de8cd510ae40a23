"""Debate scoring: agreement markers, disagreement markers, winner selection."""

import re

AGREED_WEIGHT = 1.0
PARTIAL_WEIGHT = 0.5

_AGREED_RE = re.compile(r"\*\*Agreed\*\*", re.IGNORECASE)
_PARTIAL_RE = re.compile(r"\*\*Partially agreed\*\*", re.IGNORECASE)
_DISAGREED_RE = re.compile(r"\*\*Disagreed\*\*", re.IGNORECASE)


def count_agreements(
    response: str,
    agreed_weight: float = AGREED_WEIGHT,
    partial_weight: float = PARTIAL_WEIGHT,
) -> float:
    """Score how many of the opponent's points this debate response accepted.

    A full **Agreed** outweighs a hedged **Partially agreed**.
    """
    agreed = len(_AGREED_RE.findall(response))
    partial = len(_PARTIAL_RE.findall(response))
    return agreed * agreed_weight + partial * partial_weight


def count_disagreements(response: str) -> int:
    return len(_DISAGREED_RE.findall(response))


def pick_winner(first_score: float, second_score: float, tie_break: str = "first") -> int:
    """Return 0 if the first-spawned reviewer wins, 1 otherwise.

    Ties go to the first reviewer unless tie_break is "second".
    """
    if first_score == second_score:
        return 1 if tie_break == "second" else 0
    return 0 if first_score > second_score else 1
