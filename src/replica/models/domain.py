"""Domain models for the session index.

Pure Python dataclasses representing indexed sessions and iterations.
These models are independent of SQLAlchemy and used throughout
the application for clean separation from the database layer.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from replica.models.types import SessionStatus


# ============================================================================
# Session Domain
# ============================================================================


@dataclass
class SessionEntity:
    """Domain model for an indexed recreation session."""

    run_id: str
    target_url: str
    status: SessionStatus
    config_json: str
    total_iterations: int = 0
    final_pixel_score: float | None = None
    final_judge_score: float | None = None
    final_markup_uri: str | None = None
    summary_uri: str | None = None
    started_at: datetime | None = None
    ended_at: datetime | None = None
    error_code: str | None = None
    error_detail: str | None = None


# ============================================================================
# Iteration Domain
# ============================================================================


@dataclass
class IterationEntity:
    """Domain model for one indexed iteration."""

    iteration_id: str
    run_id: str
    sequence: int
    pixel_score: float
    mismatch_percent: float
    mismatch_pixels: int
    total_pixels: int
    pixel_passed: bool
    passed: bool
    markup_uri: str
    markup_sha256: str
    screenshot_uri: str
    diff_image_uri: str
    screenshot_sha256: str
    diff_sha256: str
    judge_score: float | None = None
    judge_passed: bool | None = None
    judge_notes: str | None = None
    critique_json: str | None = None
    critique_error: str | None = None
