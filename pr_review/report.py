"""Final loop report formatting, Rich console output, and markdown file save."""

import asyncio
import logging
from collections.abc import Sequence
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.markdown import Markdown
from rich.rule import Rule

from pr_review.models import CycleHistoryEntry, LoopResult

logger = logging.getLogger(__name__)

console = Console(legacy_windows=False)


def _plural(count: int, word: str) -> str:
    return f"{count} {word}{'s' if count != 1 else ''}"


def format_final_report(history: Sequence[CycleHistoryEntry]) -> str:
    """Render the cycle history as markdown. Pure; same input, same text."""
    lines: list[str] = ["# PR Review Loop Report", ""]
    last = history[-1] if history else None

    if last and last.consensus.is_clean:
        lines.append(f"**Result: APPROVED after {_plural(len(history), 'cycle')}**")
    else:
        lines.append(f"**Result: {_plural(len(history), 'cycle')} completed, issues remain**")
    lines.append("")

    for entry in history:
        lines.append(f"## Cycle {entry.cycle}")
        lines.append("")
        lines.append(f"- **Verdict**: {entry.consensus.verdict.value}")
        lines.append(f"- **Critical**: {entry.consensus.critical_count}")
        lines.append(f"- **Warnings**: {entry.consensus.warning_count}")
        if entry.fixer_name:
            lines.append(f"- **Fixed by**: {entry.fixer_name}")
        if entry.fix_commit:
            lines.append(f"- **Fix commit**: {entry.fix_commit}")
        if entry.consensus.dismissed_items:
            lines.append(f"- **Dismissed**: {len(entry.consensus.dismissed_items)} items")
        lines.append("")

    if last:
        lines.append("## Final Consensus")
        lines.append("")
        lines.append(last.consensus.raw)

    return "\n".join(lines)


def format_loop_message(result: LoopResult) -> str:
    """Completion message for a loop run, including a partial report on failure."""
    if result.error is None:
        return format_final_report(result.history)
    if isinstance(result.error, asyncio.CancelledError):
        message = f"PR review loop cancelled after {len(result.history)} cycle(s)."
    else:
        message = f"PR review loop failed after {len(result.history)} cycle(s): {result.error}"
    if result.history:
        message += f"\n\nPartial report:\n\n{format_final_report(result.history)}"
    return message


def print_report(text: str, title: str = "PR Review") -> None:
    console.print(Rule(f"[bold green]{title}[/bold green]"))
    console.print(Markdown(text))


def save_report(text: str, output_dir: Path, mode: str) -> Path:
    """Save a report as <timestamp>_pr-review-<mode>.md under output_dir.

    Returns:
        Path to the saved file.
    """
    output_dir.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    filepath = output_dir / f"{timestamp}_pr-review-{mode}.md"
    filepath.write_text(text, encoding="utf-8")
    logger.info("Report saved to: %s", filepath)
    return filepath
