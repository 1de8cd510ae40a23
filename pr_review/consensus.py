"""Parse the winner's consensus report into a ConsensusReport.

The parser is total: malformed or partial text resolves to the safest reading
(changes required, nothing dismissed) instead of raising.
"""

import re

from pr_review.models import ConsensusReport, Verdict

_VERDICT_RE = re.compile(r"###\s*Verdict:\s*(APPROVE|CHANGES REQUIRED)\b", re.IGNORECASE)
_CRITICAL_RE = re.compile(r"###\s*Critical Issues[\s\S]*?(?=###|\Z)", re.IGNORECASE)
_WARNINGS_RE = re.compile(r"###\s*Warnings[\s\S]*?(?=###|\Z)", re.IGNORECASE)
_DISMISSED_RE = re.compile(
    r"###\s*(?:Dismissed Non-Issues|Agreed Non-Issues)[\s\S]*?(?=###|\Z)", re.IGNORECASE
)

_NONE_RE = re.compile(r"none", re.IGNORECASE)
_ANY_NUMBERED_RE = re.compile(r"\d+\.\s")
_NUMBERED_LINE_RE = re.compile(r"^\d+\.\s", re.MULTILINE)
_NUMBERED_ITEM_RE = re.compile(r"^\d+\.\s+(.+)", re.MULTILINE)


def _section(pattern: re.Pattern[str], raw: str) -> str:
    match = pattern.search(raw)
    return match.group(0) if match else ""


def _says_none(section: str) -> bool:
    return bool(_NONE_RE.search(section)) and not _ANY_NUMBERED_RE.search(section)


def count_items(section: str) -> int:
    """Count numbered list lines; a bare "None" section counts as zero."""
    if _says_none(section):
        return 0
    return len(_NUMBERED_LINE_RE.findall(section))


def extract_items(section: str) -> list[str]:
    if _says_none(section):
        return []
    return [m.group(1).strip() for m in _NUMBERED_ITEM_RE.finditer(section) if m.group(1).strip()]


def parse_consensus(raw: str) -> ConsensusReport:
    verdict_match = _VERDICT_RE.search(raw)
    if verdict_match and verdict_match.group(1).upper() == "APPROVE":
        verdict = Verdict.APPROVE
    else:
        verdict = Verdict.CHANGES_REQUIRED

    return ConsensusReport(
        raw=raw,
        verdict=verdict,
        critical_count=count_items(_section(_CRITICAL_RE, raw)),
        warning_count=count_items(_section(_WARNINGS_RE, raw)),
        dismissed_items=tuple(extract_items(_section(_DISMISSED_RE, raw))),
    )
