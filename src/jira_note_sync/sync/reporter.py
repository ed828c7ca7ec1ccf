"""Batch report formatting functions.

- ``format_batch_report`` -- human-readable post-batch summary.
- ``report_to_json`` -- structured dict for ``--json`` CLI output.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import BatchReport

# ------------------------------------------------------------------
# Human-readable report
# ------------------------------------------------------------------


def format_batch_report(report: BatchReport) -> str:
    """Format a batch report as human-readable text.

    Failures are listed once per reason with every issue key that hit it;
    per-item detail (for example a Jira response body) follows.

    Args:
        report: The completed batch report.

    Returns:
        Multi-line formatted string.
    """
    action = report.action.value
    lines: list[str] = [f"Batch {action} report"]
    lines.append(f"Started: {report.started_at}")
    if report.completed_at:
        lines.append(f"Completed: {report.completed_at}")
    lines.append("")

    lines.append(
        f"{len(report.succeeded)}/{report.total} succeeded, "
        f"{len(report.errors)} failed"
    )
    lines.append("")

    if report.succeeded:
        lines.append("Succeeded:")
        for r in report.succeeded:
            lines.append(f"  {r.issue_key or '(no key)'}")
        lines.append("")

    if report.errors:
        lines.append("Failed:")
        for failure in report.failures:
            lines.append(f"  {failure.reason}: {', '.join(failure.issue_keys)}")
        lines.append("")

        details = [r for r in report.errors if r.detail]
        if details:
            lines.append("Details:")
            for r in details:
                lines.append(f"  {r.issue_key or '(no key)'}: {r.detail}")
            lines.append("")

    return "\n".join(lines).rstrip()


# ------------------------------------------------------------------
# JSON output
# ------------------------------------------------------------------


def report_to_json(report: BatchReport) -> dict:
    """Convert a batch report to a structured dict for JSON serialisation.

    Args:
        report: The batch report.

    Returns:
        Dict with counts, grouped failures and per-item results.
    """
    results_list = []
    for r in report.results:
        entry: dict = {
            "issue_key": r.issue_key,
            "action": r.action.value,
            "success": r.success,
        }
        if r.error:
            entry["error"] = r.error
        if r.detail:
            entry["detail"] = r.detail
        results_list.append(entry)

    return {
        "action": report.action.value,
        "started_at": report.started_at,
        "completed_at": report.completed_at,
        "summary": {
            "total": report.total,
            "succeeded": len(report.succeeded),
            "failed": len(report.errors),
        },
        "failures": [
            {"reason": f.reason, "issue_keys": list(f.issue_keys)}
            for f in report.failures
        ],
        "results": results_list,
    }
