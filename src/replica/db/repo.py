"""Repository functions for the session index.

Encapsulates all SQLAlchemy queries and returns domain entities (not
SQLAlchemy rows) to callers.
"""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING

from sqlalchemy.orm import Session

from replica.db.schema import RecreationIteration, RecreationSession
from replica.models.domain import IterationEntity, SessionEntity
from replica.models.types import SessionStatus

if TYPE_CHECKING:
    from sqlalchemy.orm import Session as DbSession
else:
    DbSession = Session

# Re-export for external use
__all__ = ["DbSession"]


# ============================================================================
# Converters: SQLAlchemy -> Domain
# ============================================================================


def _session_to_entity(row: RecreationSession) -> SessionEntity:
    """Convert SQLAlchemy RecreationSession to domain entity."""
    return SessionEntity(
        run_id=row.run_id,
        target_url=row.target_url,
        status=row.status,
        config_json=row.config_json,
        total_iterations=row.total_iterations,
        final_pixel_score=row.final_pixel_score,
        final_judge_score=row.final_judge_score,
        final_markup_uri=row.final_markup_uri,
        summary_uri=row.summary_uri,
        started_at=row.started_at,
        ended_at=row.ended_at,
        error_code=row.error_code,
        error_detail=row.error_detail,
    )


def _iteration_to_entity(row: RecreationIteration) -> IterationEntity:
    """Convert SQLAlchemy RecreationIteration to domain entity."""
    return IterationEntity(
        iteration_id=row.iteration_id,
        run_id=row.run_id,
        sequence=row.sequence,
        pixel_score=row.pixel_score,
        mismatch_percent=row.mismatch_percent,
        mismatch_pixels=row.mismatch_pixels,
        total_pixels=row.total_pixels,
        pixel_passed=row.pixel_passed,
        passed=row.passed,
        markup_uri=row.markup_uri,
        markup_sha256=row.markup_sha256,
        screenshot_uri=row.screenshot_uri,
        diff_image_uri=row.diff_image_uri,
        screenshot_sha256=row.screenshot_sha256,
        diff_sha256=row.diff_sha256,
        judge_score=row.judge_score,
        judge_passed=row.judge_passed,
        judge_notes=row.judge_notes,
        critique_json=row.critique_json,
        critique_error=row.critique_error,
    )


# ============================================================================
# Session Repository
# ============================================================================


def create_session(session: DbSession, entity: SessionEntity) -> SessionEntity:
    """Create a new session row."""
    row = RecreationSession(
        run_id=entity.run_id,
        target_url=entity.target_url,
        status=entity.status,
        config_json=entity.config_json,
        total_iterations=entity.total_iterations,
    )
    session.add(row)
    return entity


def get_session_entity(session: DbSession, run_id: str) -> SessionEntity | None:
    """Get session by run ID."""
    row = session.query(RecreationSession).filter(RecreationSession.run_id == run_id).first()
    return _session_to_entity(row) if row else None


def list_sessions(
    session: DbSession, status: SessionStatus | None = None, limit: int = 100
) -> list[SessionEntity]:
    """List sessions, newest first, optionally filtered by status."""
    query = session.query(RecreationSession)
    if status is not None:
        query = query.filter(RecreationSession.status == status)
    rows = (
        query.order_by(RecreationSession.created_at.desc(), RecreationSession.run_id.desc())
        .limit(limit)
        .all()
    )
    return [_session_to_entity(r) for r in rows]


def get_queued_sessions(session: DbSession) -> list[SessionEntity]:
    """Get all sessions with status=queued, oldest first."""
    rows = (
        session.query(RecreationSession)
        .filter(RecreationSession.status == "queued")
        .order_by(RecreationSession.created_at, RecreationSession.run_id)
        .all()
    )
    return [_session_to_entity(r) for r in rows]


def _queued_candidate_ids(session: DbSession, limit: int) -> list[str]:
    """Run ids of up to `limit` queued sessions, oldest first."""
    return [
        run_id
        for (run_id,) in session.query(RecreationSession.run_id)
        .filter(RecreationSession.status == "queued")
        .order_by(RecreationSession.created_at, RecreationSession.run_id)
        .limit(limit)
        .all()
    ]


def claim_queued_sessions(session: DbSession, limit: int = 1) -> list[SessionEntity]:
    """Atomically move up to `limit` queued sessions to running.

    The UPDATE re-checks status='queued', so a session claimed by another
    worker between the SELECT and the UPDATE is skipped. Only the rows
    this call moved to running are returned.
    """
    candidate_ids = _queued_candidate_ids(session, limit)
    if not candidate_ids:
        return []

    claimed_ids = []
    for run_id in candidate_ids:
        updated = (
            session.query(RecreationSession)
            .filter(RecreationSession.run_id == run_id, RecreationSession.status == "queued")
            .update(
                {"status": "running", "started_at": datetime.now(timezone.utc)},
                synchronize_session=False,
            )
        )
        if updated == 1:
            claimed_ids.append(run_id)
    session.commit()

    if not claimed_ids:
        return []

    session.expire_all()
    rows = (
        session.query(RecreationSession)
        .filter(RecreationSession.run_id.in_(claimed_ids))
        .order_by(RecreationSession.created_at, RecreationSession.run_id)
        .all()
    )
    return [_session_to_entity(r) for r in rows]


def update_session_status(
    session: DbSession,
    run_id: str,
    status: SessionStatus,
    *,
    total_iterations: int | None = None,
    final_pixel_score: float | None = None,
    final_judge_score: float | None = None,
    final_markup_uri: str | None = None,
    summary_uri: str | None = None,
    error_code: str | None = None,
    error_detail: str | None = None,
) -> None:
    """Update session status and optional fields."""
    row = session.query(RecreationSession).filter(RecreationSession.run_id == run_id).first()
    if row:
        row.status = status
        if total_iterations is not None:
            row.total_iterations = total_iterations
        if final_pixel_score is not None:
            row.final_pixel_score = final_pixel_score
        if final_judge_score is not None:
            row.final_judge_score = final_judge_score
        if final_markup_uri is not None:
            row.final_markup_uri = final_markup_uri
        if summary_uri is not None:
            row.summary_uri = summary_uri
        if error_code is not None:
            row.error_code = error_code
        if error_detail is not None:
            row.error_detail = error_detail


def set_session_started(session: DbSession, run_id: str) -> None:
    """Mark session running and set started_at (kept if already set)."""
    row = session.query(RecreationSession).filter(RecreationSession.run_id == run_id).first()
    if row:
        row.status = "running"
        if row.started_at is None:
            row.started_at = datetime.now(timezone.utc)


def set_session_ended(session: DbSession, run_id: str) -> None:
    """Set session ended_at timestamp."""
    row = session.query(RecreationSession).filter(RecreationSession.run_id == run_id).first()
    if row:
        row.ended_at = datetime.now(timezone.utc)


# ============================================================================
# Iteration Repository
# ============================================================================


def create_iteration(session: DbSession, entity: IterationEntity) -> IterationEntity:
    """Create a new iteration row."""
    row = RecreationIteration(
        iteration_id=entity.iteration_id,
        run_id=entity.run_id,
        sequence=entity.sequence,
        pixel_score=entity.pixel_score,
        mismatch_percent=entity.mismatch_percent,
        mismatch_pixels=entity.mismatch_pixels,
        total_pixels=entity.total_pixels,
        pixel_passed=entity.pixel_passed,
        passed=entity.passed,
        markup_uri=entity.markup_uri,
        markup_sha256=entity.markup_sha256,
        screenshot_uri=entity.screenshot_uri,
        diff_image_uri=entity.diff_image_uri,
        screenshot_sha256=entity.screenshot_sha256,
        diff_sha256=entity.diff_sha256,
        judge_score=entity.judge_score,
        judge_passed=entity.judge_passed,
        judge_notes=entity.judge_notes,
        critique_json=entity.critique_json,
        critique_error=entity.critique_error,
    )
    session.add(row)
    return entity


def get_iterations(session: DbSession, run_id: str) -> list[IterationEntity]:
    """Get all iterations for a session in sequence order."""
    rows = (
        session.query(RecreationIteration)
        .filter(RecreationIteration.run_id == run_id)
        .order_by(RecreationIteration.sequence)
        .all()
    )
    return [_iteration_to_entity(r) for r in rows]


# ============================================================================
# Batch Operations
# ============================================================================


def commit(session: DbSession) -> None:
    """Commit current transaction."""
    session.commit()
