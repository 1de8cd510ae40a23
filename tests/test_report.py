"""Tests for pr_review/report.py."""

import asyncio
from pathlib import Path

from pr_review.models import CycleHistoryEntry, LoopResult
from pr_review.report import format_final_report, format_loop_message, print_report, save_report
from pr_review.workers.base import WorkerError
from tests.conftest import CLEAN_CONSENSUS, DIRTY_CONSENSUS


def test_approved_after_two_cycles(clean_report, dirty_report):
    history = [
        CycleHistoryEntry(cycle=1, consensus=dirty_report, fixer_name="reviewer-b", fix_commit="abc1234"),
        CycleHistoryEntry(cycle=2, consensus=clean_report),
    ]

    report = format_final_report(history)

    assert report.startswith("# PR Review Loop Report\n\n**Result: APPROVED after 2 cycles**\n")
    assert "## Cycle 1\n\n- **Verdict**: CHANGES REQUIRED\n- **Critical**: 1\n- **Warnings**: 2\n" in report
    assert "- **Fixed by**: reviewer-b\n- **Fix commit**: abc1234\n- **Dismissed**: 1 items\n" in report
    assert "## Cycle 2\n\n- **Verdict**: APPROVE\n- **Critical**: 0\n- **Warnings**: 0\n" in report
    assert report.endswith("## Final Consensus\n\n" + CLEAN_CONSENSUS)


def test_single_cycle_uses_singular(clean_report):
    report = format_final_report([CycleHistoryEntry(cycle=1, consensus=clean_report)])
    assert "**Result: APPROVED after 1 cycle**" in report


def test_issues_remain(dirty_report):
    history = [
        CycleHistoryEntry(cycle=i, consensus=dirty_report, fixer_name="reviewer-a", fix_commit="abc1234")
        for i in range(1, 6)
    ]

    report = format_final_report(history)

    assert "**Result: 5 cycles completed, issues remain**" in report
    assert report.count("- **Fixed by**: reviewer-a") == 5
    assert report.endswith(DIRTY_CONSENSUS)


def test_missing_fix_commit_omits_line(dirty_report):
    report = format_final_report(
        [CycleHistoryEntry(cycle=1, consensus=dirty_report, fixer_name="reviewer-a")]
    )
    assert "- **Fixed by**: reviewer-a" in report
    assert "Fix commit" not in report


def test_clean_cycle_has_no_fix_lines(clean_report):
    report = format_final_report([CycleHistoryEntry(cycle=1, consensus=clean_report)])
    assert "Fixed by" not in report
    assert "Dismissed" not in report.split("## Final Consensus")[0]


def test_report_is_deterministic(clean_report, dirty_report):
    history = [
        CycleHistoryEntry(cycle=1, consensus=dirty_report, fixer_name="reviewer-a"),
        CycleHistoryEntry(cycle=2, consensus=clean_report),
    ]
    assert format_final_report(history) == format_final_report(list(history))


def test_empty_history():
    report = format_final_report([])
    assert "**Result: 0 cycles completed, issues remain**" in report
    assert "## Final Consensus" not in report


# --- format_loop_message ---

def test_loop_message_success_is_report(clean_report):
    result = LoopResult(history=[CycleHistoryEntry(cycle=1, consensus=clean_report)])
    assert format_loop_message(result) == format_final_report(result.history)


def test_loop_message_failure_with_partial(dirty_report):
    result = LoopResult(
        history=[CycleHistoryEntry(cycle=1, consensus=dirty_report, fixer_name="reviewer-a")],
        error=WorkerError("reviewer-a", "Prompt timed out after 3600.0s"),
    )

    message = format_loop_message(result)

    assert message.startswith(
        "PR review loop failed after 1 cycle(s): [reviewer-a] Prompt timed out after 3600.0s"
    )
    assert "\n\nPartial report:\n\n# PR Review Loop Report" in message


def test_loop_message_failure_without_history():
    result = LoopResult(error=WorkerError("reviewer-b", "failed to start: boom"))
    assert format_loop_message(result) == (
        "PR review loop failed after 0 cycle(s): [reviewer-b] failed to start: boom"
    )


# --- save_report / print_report ---

def test_save_report_creates_file(tmp_path: Path):
    saved = save_report("# Report", tmp_path / "nested" / "output", "loop")
    assert saved.exists()
    assert saved.suffix == ".md"
    assert saved.name.endswith("_pr-review-loop.md")
    assert saved.read_text(encoding="utf-8") == "# Report"


def test_save_report_mode_in_name(tmp_path: Path):
    saved = save_report("text", tmp_path, "review")
    assert saved.name.endswith("_pr-review-review.md")


def test_print_report_renders(capsys):
    print_report("## Heading\n\nBody text", title="PR Review Consensus")
    out = capsys.readouterr().out
    assert "PR Review Consensus" in out
    assert "Body text" in out


def test_loop_message_cancelled_keeps_partial(dirty_report):
    result = LoopResult(
        history=[CycleHistoryEntry(cycle=1, consensus=dirty_report, fixer_name="reviewer-a")],
        error=asyncio.CancelledError(),
    )

    message = format_loop_message(result)

    assert message.startswith("PR review loop cancelled after 1 cycle(s).")
    assert "\n\nPartial report:\n\n# PR Review Loop Report" in message
