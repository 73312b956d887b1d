"""Error taxonomy for recreation sessions.

Fatal (abort the session, stop_reason="error"):
- CaptureFailure: target or candidate screenshot could not be taken
- GenerationFailure: generator returned no usable markup
- DimensionMismatchError: target and candidate rasters differ in size
- JudgeFailure: subjective judge failed during the compare step
- PersistenceFailure: an iteration artifact could not be written

Non-fatal:
- CritiqueFailure: recorded on the iteration, the loop continues
"""

from __future__ import annotations

from typing import Literal

CaptureReason = Literal["unreachable", "timeout", "element-not-found", "browser"]


class RecreationError(Exception):
    """Base class for all recreation errors."""

    category = "recreation"


class CaptureFailure(RecreationError):
    """Screenshot capture failed.

    Attributes:
        reason: Coarse failure reason reported by the screenshotter.
    """

    category = "capture"

    def __init__(self, message: str, reason: CaptureReason = "browser"):
        super().__init__(message)
        self.reason = reason


class GenerationFailure(RecreationError):
    """Markup generation failed."""

    category = "generation"


class DimensionMismatchError(RecreationError):
    """Target and candidate images have different dimensions."""

    category = "comparison"

    def __init__(self, target_size: tuple[int, int], candidate_size: tuple[int, int]):
        self.target_size = target_size
        self.candidate_size = candidate_size
        super().__init__(
            f"Image dimensions do not match: target ({target_size[0]}x{target_size[1]}) "
            f"vs candidate ({candidate_size[0]}x{candidate_size[1]})"
        )


class JudgeFailure(RecreationError):
    """Subjective judge call failed."""

    category = "judge"


class CritiqueFailure(RecreationError):
    """Critique generation failed."""

    category = "critique"


class PersistenceFailure(RecreationError):
    """Writing an artifact to disk failed."""

    category = "persistence"
