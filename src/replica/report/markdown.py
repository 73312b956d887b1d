"""Markdown report for a finished session.

A pure projection of SessionSummary: nothing here reads files or decides
outcomes. The latest critique is rendered as a punch list grouped by
priority so the most urgent fixes come first.
"""

from __future__ import annotations

from replica.models.types import Critique, IterationRecord, Priority, SessionSummary

PRIORITY_ORDER: tuple[Priority, ...] = ("critical", "high", "medium", "low")

_STATUS_LABELS = {
    "success": "✅ SUCCESS",
    "exhausted": "⚠️ EXHAUSTED (thresholds not met)",
    "error": "❌ ERROR",
}


def _fmt_score(score: float | None) -> str:
    return "n/a" if score is None else f"{score:.2f}"


def _iteration_row(record: IterationRecord) -> str:
    judge = _fmt_score(record.judge.score) if record.judge else "n/a"
    critique = "-"
    if record.critique is not None:
        critique = f"{record.critique.total_issues} issues"
    elif record.critique_error:
        critique = "failed"
    verdict = "PASS" if record.passed else "FAIL"
    return (
        f"| {record.iteration} | {record.comparison.score:.2f} "
        f"| {record.comparison.mismatch_percent:.2f} | {judge} | {verdict} | {critique} |"
    )


def render_punch_list(critique: Critique) -> list[str]:
    """Render critique items grouped by priority, preserving order within a group."""
    lines = [f"_{critique.summary}_", ""]
    for priority in PRIORITY_ORDER:
        items = [item for item in critique.items if item.priority == priority]
        if not items:
            continue
        lines.append(f"### {priority.capitalize()} ({len(items)})")
        lines.append("")
        for item in items:
            lines.append(f"- [ ] **{item.element}** ({item.category}): {item.issue}")
            lines.append(f"  - Expected: {item.expected}")
            lines.append(f"  - Actual: {item.actual}")
        lines.append("")
    return lines


def render_session_report(summary: SessionSummary) -> str:
    """Render a session summary as markdown.

    Args:
        summary: Finalized session summary.

    Returns:
        Markdown document text.
    """
    lines = [
        f"# Recreation report: {summary.run_id}",
        "",
        f"- **Target:** {summary.target_url}",
        f"- **Status:** {_STATUS_LABELS[summary.stop_reason]}",
        f"- **Iterations:** {summary.total_iterations}/{summary.config.max_iterations}",
        f"- **Final pixel score:** {_fmt_score(summary.final_scores.pixel)} "
        f"(threshold {summary.config.pixel_threshold:g})",
        f"- **Final judge score:** {_fmt_score(summary.final_scores.judge)} "
        f"(threshold {summary.config.judge_threshold:g})",
        f"- **Elapsed:** {summary.elapsed_ms / 1000:.1f}s",
    ]
    if summary.error_message:
        lines.append(f"- **Error:** `{summary.error_code}` {summary.error_message}")
    lines.append("")

    if summary.iterations:
        lines += [
            "## Iterations",
            "",
            "| # | Pixel score | Mismatch % | Judge score | Result | Critique |",
            "|---|---|---|---|---|---|",
        ]
        lines += [_iteration_row(record) for record in summary.iterations]
        lines.append("")

    critique_errors = [r for r in summary.iterations if r.critique_error]
    if critique_errors:
        lines += ["## Critique errors", ""]
        lines += [f"- Iteration {r.iteration}: {r.critique_error}" for r in critique_errors]
        lines.append("")

    latest = next((r for r in reversed(summary.iterations) if r.critique is not None), None)
    if latest is not None and latest.critique is not None:
        lines += [f"## Punch list (iteration {latest.iteration})", ""]
        lines += render_punch_list(latest.critique)

    return "\n".join(lines).rstrip() + "\n"
