"""Database schema for the replica session index.

The index mirrors what each run directory already holds so sessions can
be listed and inspected without reading files. Unique constraints
enforce the ordering invariants.
"""

from datetime import datetime, timezone

from sqlalchemy import (
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class RecreationSession(Base):
    """One recreation session (queued, running or finished)."""

    __tablename__ = "recreation_sessions"

    run_id: Mapped[str] = mapped_column(String(96), primary_key=True)
    target_url: Mapped[str] = mapped_column(String(2048), nullable=False)
    status: Mapped[str] = mapped_column(String(16), nullable=False, default="queued")
    config_json: Mapped[str] = mapped_column(Text, nullable=False)
    total_iterations: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    final_pixel_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    final_judge_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    final_markup_uri: Mapped[str | None] = mapped_column(String(512), nullable=True)
    summary_uri: Mapped[str | None] = mapped_column(String(512), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=lambda: datetime.now(timezone.utc)
    )
    started_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    ended_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    error_code: Mapped[str | None] = mapped_column(String(64), nullable=True)
    error_detail: Mapped[str | None] = mapped_column(Text, nullable=True)


class RecreationIteration(Base):
    """One completed iteration of a session.

    Invariant: UNIQUE(run_id, sequence)
    An iteration number is recorded at most once per session.
    """

    __tablename__ = "recreation_iterations"

    iteration_id: Mapped[str] = mapped_column(String(64), primary_key=True)
    run_id: Mapped[str] = mapped_column(
        String(96), ForeignKey("recreation_sessions.run_id"), nullable=False
    )
    sequence: Mapped[int] = mapped_column(Integer, nullable=False)
    pixel_score: Mapped[float] = mapped_column(Float, nullable=False)
    mismatch_percent: Mapped[float] = mapped_column(Float, nullable=False)
    mismatch_pixels: Mapped[int] = mapped_column(Integer, nullable=False)
    total_pixels: Mapped[int] = mapped_column(Integer, nullable=False)
    pixel_passed: Mapped[bool] = mapped_column(Boolean, nullable=False)
    passed: Mapped[bool] = mapped_column(Boolean, nullable=False)
    markup_uri: Mapped[str] = mapped_column(String(512), nullable=False)
    markup_sha256: Mapped[str] = mapped_column(String(64), nullable=False)
    screenshot_uri: Mapped[str] = mapped_column(String(512), nullable=False)
    diff_image_uri: Mapped[str] = mapped_column(String(512), nullable=False)
    screenshot_sha256: Mapped[str] = mapped_column(String(64), nullable=False)
    diff_sha256: Mapped[str] = mapped_column(String(64), nullable=False)
    judge_score: Mapped[float | None] = mapped_column(Float, nullable=True)
    judge_passed: Mapped[bool | None] = mapped_column(Boolean, nullable=True)
    judge_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    critique_json: Mapped[str | None] = mapped_column(Text, nullable=True)
    critique_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=lambda: datetime.now(timezone.utc)
    )

    __table_args__ = (UniqueConstraint("run_id", "sequence", name="uq_iteration_sequence"),)
