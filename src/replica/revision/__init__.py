"""Revision context for the next generation attempt."""

from replica.revision.context import NO_ISSUES_MESSAGE, build_revision_context

__all__ = ["NO_ISSUES_MESSAGE", "build_revision_context"]
