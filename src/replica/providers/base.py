"""Collaborator interfaces consumed by the recreation controller.

Each collaborator is narrow:
- ScreenshotterBase: capture(source, viewport, wait_ms) -> PNG bytes
- GeneratorBase: generate(reference_image, revision_context) -> markup
- JudgeBase: compare(goal, target_image, candidate_image) -> JudgeResult
- CritiquerBase: critique(target_image, candidate_image, context) -> Critique

Collaborators must NOT:
- Write session artifacts or the session index
- Decide pass/fail for the session
- Hold resources across calls
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path

from replica.models.types import Critique, JudgeResult, Viewport


@dataclass(frozen=True)
class CaptureSource:
    """What to capture: a live URL or an in-memory markup document."""

    url: str | None = None
    markup: str | None = None

    def __post_init__(self) -> None:
        if (self.url is None) == (self.markup is None):
            raise ValueError("CaptureSource needs exactly one of url or markup")

    @classmethod
    def from_url(cls, url: str) -> CaptureSource:
        return cls(url=url)

    @classmethod
    def from_markup(cls, markup: str) -> CaptureSource:
        return cls(markup=markup)

    @property
    def is_url(self) -> bool:
        return self.url is not None

    def describe(self) -> str:
        """Short label for logs and error messages."""
        if self.url is not None:
            return self.url
        return f"<markup {len(self.markup or '')} chars>"


class ScreenshotterBase(ABC):
    """Renders a URL or markup to a PNG."""

    @abstractmethod
    def capture(self, source: CaptureSource, viewport: Viewport, wait_ms: int) -> bytes:
        """Capture a viewport-sized screenshot.

        Args:
            source: URL or markup to render.
            viewport: Browser viewport size.
            wait_ms: Settle time after load before the screenshot.

        Returns:
            PNG bytes.

        Raises:
            CaptureFailure: With reason unreachable, timeout,
                element-not-found or browser.
        """
        pass


class GeneratorBase(ABC):
    """Writes markup that recreates a reference screenshot."""

    @abstractmethod
    def generate(self, reference_image: Path, revision_context: str | None = None) -> str:
        """Generate a complete HTML document.

        Args:
            reference_image: Target screenshot.
            revision_context: Issues to fix from the previous attempt, if any.

        Returns:
            Markup text.

        Raises:
            GenerationFailure: If no usable markup was produced.
        """
        pass


class JudgeBase(ABC):
    """Subjective visual-similarity gate."""

    @abstractmethod
    def compare(self, goal: str, target_image: Path, candidate_image: Path) -> JudgeResult:
        """Score the candidate against the target for a stated goal.

        Raises:
            JudgeFailure: If no verdict could be obtained.
        """
        pass


class CritiquerBase(ABC):
    """Produces a prioritized list of visual discrepancies."""

    @abstractmethod
    def critique(self, target_image: Path, candidate_image: Path, context: str) -> Critique:
        """Critique the candidate against the target.

        Raises:
            CritiqueFailure: If no critique could be produced.
        """
        pass
