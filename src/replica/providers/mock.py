"""Deterministic mock collaborators for demos and tests.

No browser and no model calls. The mock generator writes markup that
carries a mismatch marker; the mock screenshotter renders every source as
the same synthetic page and paints the marked share of pixels red, so a
scripted sequence of markups yields an exact sequence of pixel scores.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from pathlib import Path

import numpy as np

from replica.adapter.image import encode_png
from replica.core.errors import GenerationFailure
from replica.models.types import Critique, CritiqueItem, JudgeResult, Viewport
from replica.providers.base import (
    CaptureSource,
    CritiquerBase,
    GeneratorBase,
    JudgeBase,
    ScreenshotterBase,
)

logger = logging.getLogger(__name__)

MISMATCH_MARKER_RE = re.compile(r"<!--\s*mismatch:\s*([0-9]+(?:\.[0-9]+)?)\s*-->")

PAGE_BACKGROUND = (255, 255, 255, 255)
HEADER_COLOR = (24, 32, 64, 255)
MISMATCH_COLOR = (255, 0, 0, 255)

DEFAULT_MISMATCH_SCHEDULE = (40.0, 20.0, 6.0, 0.0)


def render_mock_markup(mismatch_percent: float) -> str:
    """Markup the mock screenshotter renders with the given mismatch."""
    return (
        "<!DOCTYPE html>\n"
        f"<!-- mismatch: {mismatch_percent:g} -->\n"
        "<html><head><title>Mock recreation</title></head>\n"
        "<body><header>Mock</header><main></main></body></html>\n"
    )


class MockScreenshotter(ScreenshotterBase):
    """Renders a fixed synthetic page; markup markers paint mismatches.

    The page is white with a dark header band across the top eighth.
    Markup with a `<!-- mismatch: N -->` marker gets the first N percent of
    pixels (row-major) painted MISMATCH_COLOR.
    """

    def __init__(self) -> None:
        self.captures: list[CaptureSource] = []

    def _base_page(self, viewport: Viewport) -> np.ndarray:
        page = np.empty((viewport.height, viewport.width, 4), dtype=np.uint8)
        page[:] = PAGE_BACKGROUND
        page[: max(1, viewport.height // 8)] = HEADER_COLOR
        return page

    def capture(self, source: CaptureSource, viewport: Viewport, wait_ms: int) -> bytes:
        self.captures.append(source)
        page = self._base_page(viewport)

        if source.markup is not None:
            match = MISMATCH_MARKER_RE.search(source.markup)
            percent = float(match.group(1)) if match else 0.0
            count = int(round(min(percent, 100.0) / 100.0 * page.shape[0] * page.shape[1]))
            flat = page.reshape(-1, 4)
            flat[:count] = MISMATCH_COLOR

        return encode_png(page)


class MockGenerator(GeneratorBase):
    """Emits markup following a fixed mismatch schedule.

    Attempt N uses schedule[N-1]; once the schedule runs out the last
    value repeats. Every call is recorded for inspection.
    """

    def __init__(self, schedule: Sequence[float] = DEFAULT_MISMATCH_SCHEDULE):
        if not schedule:
            raise ValueError("schedule cannot be empty")
        self.schedule = list(schedule)
        self.calls: list[tuple[Path, str | None]] = []

    def generate(self, reference_image: Path, revision_context: str | None = None) -> str:
        if not Path(reference_image).exists():
            raise GenerationFailure(f"Reference image not found: {reference_image}")

        self.calls.append((Path(reference_image), revision_context))
        idx = min(len(self.calls), len(self.schedule)) - 1
        return render_mock_markup(self.schedule[idx])


class MockJudge(JudgeBase):
    """Returns scripted scores; the last score repeats."""

    def __init__(self, scores: Sequence[float] = (90.0,), pass_threshold: float = 85.0):
        if not scores:
            raise ValueError("scores cannot be empty")
        self.scores = list(scores)
        self.pass_threshold = pass_threshold
        self.calls = 0

    def compare(self, goal: str, target_image: Path, candidate_image: Path) -> JudgeResult:
        self.calls += 1
        score = self.scores[min(self.calls, len(self.scores)) - 1]
        return JudgeResult(
            passed=score >= self.pass_threshold,
            score=score,
            notes=f"Mock judge verdict #{self.calls}",
        )


class MockCritiquer(CritiquerBase):
    """Returns one canned critique per call, numbered by call."""

    def __init__(self) -> None:
        self.calls = 0

    def critique(self, target_image: Path, candidate_image: Path, context: str) -> Critique:
        self.calls += 1
        return Critique(
            summary=f"Mock critique #{self.calls} for {context}",
            items=[
                CritiqueItem(
                    priority="high",
                    category="layout",
                    element="main content",
                    issue="Content block is painted over",
                    expected="White page body",
                    actual="Solid red fill",
                ),
                CritiqueItem(
                    priority="low",
                    category="color",
                    element="header",
                    issue="Header shade drifts",
                    expected="#182040",
                    actual="Approximate navy",
                ),
            ],
        )
