"""Render a critique as plain-text instructions for the generator.

The text is handed verbatim to the generator on the next iteration, so
its layout is stable: an issue count, the summary, then one numbered
entry per critique item in the critique's own order.
"""

from __future__ import annotations

from replica.models.types import Critique

NO_ISSUES_MESSAGE = "Previous iteration had no specific issues identified."


def build_revision_context(critique: Critique | None) -> str:
    """Build the revision context for one critique.

    Args:
        critique: Critique of the previous iteration, or None when none
            was produced.

    Returns:
        Plain-text context; NO_ISSUES_MESSAGE when there is nothing to fix.
    """
    if critique is None or not critique.items:
        return NO_ISSUES_MESSAGE

    context = f"ISSUES TO FIX ({critique.total_issues} total):\n\n"
    context += f"Summary: {critique.summary}\n\n"

    for idx, item in enumerate(critique.items, start=1):
        context += f"{idx}. [{item.priority.upper()}] {item.element}\n"
        context += f"   Category: {item.category}\n"
        context += f"   Issue: {item.issue}\n"
        context += f"   Expected: {item.expected}\n"
        context += f"   Actual: {item.actual}\n\n"

    return context
