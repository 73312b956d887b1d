"""Pydantic models for replica.

Session records (IterationRecord, SessionSummary) are frozen: once an
iteration completes or a session is finalized nothing mutates them.
summary.json is SessionSummary.model_dump_json().
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator

from replica.core.validation import check_viewport, check_wait_ms

DEFAULT_MAX_ITERATIONS = 6
DEFAULT_PIXEL_THRESHOLD = 92.0
DEFAULT_JUDGE_THRESHOLD = 85.0
DEFAULT_WAIT_MS = 1000

DEFAULT_JUDGE_GOAL = (
    "The candidate should be a pixel-perfect recreation of the target webpage, "
    "matching layout, colors, typography, spacing, and overall visual appearance."
)
DEFAULT_CRITIQUE_CONTEXT = "Webpage recreation attempt"

Priority = Literal["critical", "high", "medium", "low"]
StopReason = Literal["success", "exhausted", "error"]
SessionStatus = Literal["queued", "running", "success", "exhausted", "error"]


class Viewport(BaseModel):
    """Browser viewport used for both target and candidate captures."""

    model_config = ConfigDict(frozen=True)

    width: int = 1280
    height: int = 720

    @model_validator(mode="after")
    def _check_bounds(self) -> Viewport:
        check_viewport(self.width, self.height)
        return self


class RecreationConfig(BaseModel):
    """Validated configuration for one recreation session."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    max_iterations: int = Field(DEFAULT_MAX_ITERATIONS, ge=1)
    pixel_threshold: float = Field(DEFAULT_PIXEL_THRESHOLD, ge=0, le=100)
    judge_threshold: float = Field(DEFAULT_JUDGE_THRESHOLD, ge=0, le=100)
    viewport: Viewport = Field(default_factory=Viewport)
    wait_ms: int = DEFAULT_WAIT_MS
    run_id: str | None = None
    judge_goal: str = DEFAULT_JUDGE_GOAL
    critique_context: str = DEFAULT_CRITIQUE_CONTEXT
    disable_animations: bool = True

    @field_validator("wait_ms")
    @classmethod
    def _check_wait(cls, value: int) -> int:
        return check_wait_ms(value)

    @field_validator("run_id")
    @classmethod
    def _check_run_id(cls, value: str | None) -> str | None:
        if value is not None and (not value or "/" in value or "\\" in value or ".." in value):
            raise ValueError(f"run_id must be a single path segment: {value!r}")
        return value


class ComparisonResult(BaseModel):
    """Pixel-diff outcome for one target/candidate pair."""

    model_config = ConfigDict(frozen=True)

    passed: bool
    score: float = Field(ge=0, le=100)
    mismatch_percent: float = Field(ge=0, le=100)
    mismatch_pixels: int = Field(ge=0)
    total_pixels: int = Field(ge=0)
    diff_image_path: str
    notes: str


class JudgeResult(BaseModel):
    """Subjective judge outcome."""

    model_config = ConfigDict(frozen=True)

    passed: bool
    score: float = Field(ge=0, le=100)
    notes: str = ""


class CritiqueItem(BaseModel):
    """One prioritized fix item."""

    model_config = ConfigDict(frozen=True)

    priority: Priority
    category: str
    element: str
    issue: str
    expected: str
    actual: str

    @field_validator("priority", mode="before")
    @classmethod
    def _lower_priority(cls, value: object) -> object:
        return value.strip().lower() if isinstance(value, str) else value


class Critique(BaseModel):
    """Structured, prioritized list of visual discrepancies."""

    model_config = ConfigDict(frozen=True)

    summary: str
    items: list[CritiqueItem] = Field(default_factory=list)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_issues(self) -> int:
        return len(self.items)


class IterationRecord(BaseModel):
    """One completed generate-capture-compare cycle."""

    model_config = ConfigDict(frozen=True)

    iteration: int = Field(ge=1)
    markup: str
    markup_path: str
    screenshot_path: str
    comparison: ComparisonResult
    judge: JudgeResult | None = None
    passed: bool
    revision_context: str | None = None
    critique: Critique | None = None
    critique_error: str | None = None
    completed_at: datetime
    elapsed_ms: int = Field(ge=0)


class FinalScores(BaseModel):
    """Scores of the last completed iteration."""

    model_config = ConfigDict(frozen=True)

    pixel: float | None = None
    judge: float | None = None


class SessionArtifacts(BaseModel):
    """Paths of the session's key artifacts (None when never written)."""

    model_config = ConfigDict(frozen=True)

    run_directory: str
    target_screenshot: str | None = None
    final_screenshot: str | None = None
    final_diff_image: str | None = None
    final_markup: str | None = None
    summary_file: str
    report_file: str


class SessionSummary(BaseModel):
    """Immutable result of a finalized session."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    target_url: str
    config: RecreationConfig
    stop_reason: StopReason
    error_code: str | None = None
    error_message: str | None = None
    iterations: list[IterationRecord]
    final_markup: str = ""
    final_scores: FinalScores
    artifacts: SessionArtifacts
    state_history: list[str]
    started_at: datetime
    finished_at: datetime
    elapsed_ms: int = Field(ge=0)

    @computed_field  # type: ignore[prop-decorator]
    @property
    def success(self) -> bool:
        return self.stop_reason == "success"

    @computed_field  # type: ignore[prop-decorator]
    @property
    def total_iterations(self) -> int:
        return len(self.iterations)


# ============================================================================
# API payloads
# ============================================================================


class SessionCreateRequest(BaseModel):
    """Request body for enqueuing a recreation session."""

    target_url: str
    max_iterations: int = Field(DEFAULT_MAX_ITERATIONS, ge=1)
    pixel_threshold: float = Field(DEFAULT_PIXEL_THRESHOLD, ge=0, le=100)
    judge_threshold: float = Field(DEFAULT_JUDGE_THRESHOLD, ge=0, le=100)
    viewport: Viewport = Field(default_factory=Viewport)
    wait_ms: int = DEFAULT_WAIT_MS

    @field_validator("wait_ms")
    @classmethod
    def _check_wait(cls, value: int) -> int:
        return check_wait_ms(value)

    def to_config(self, run_id: str) -> RecreationConfig:
        """Build the session config for this request."""
        return RecreationConfig(
            max_iterations=self.max_iterations,
            pixel_threshold=self.pixel_threshold,
            judge_threshold=self.judge_threshold,
            viewport=self.viewport,
            wait_ms=self.wait_ms,
            run_id=run_id,
        )


class IterationOverview(BaseModel):
    """Iteration row for API responses."""

    sequence: int
    pixel_score: float
    mismatch_percent: float
    judge_score: float | None
    passed: bool
    has_critique: bool
    critique_error: str | None
    screenshot_uri: str
    diff_image_uri: str
    markup_uri: str


class SessionOverview(BaseModel):
    """Session row for API list responses."""

    run_id: str
    target_url: str
    status: SessionStatus
    total_iterations: int
    final_pixel_score: float | None
    final_judge_score: float | None


class SessionDetail(SessionOverview):
    """Session detail including iterations."""

    config: RecreationConfig
    error_code: str | None
    error_detail: str | None
    final_markup_uri: str | None
    summary_uri: str | None
    started_at: datetime | None
    ended_at: datetime | None
    iterations: list[IterationOverview]
