"""Sessions API endpoints.

POST /api/sessions                  - Enqueue a recreation session
GET  /api/sessions                  - List sessions (newest first)
GET  /api/sessions/{run_id}         - Session detail with iterations
GET  /api/sessions/{run_id}/summary - Finalized summary document
"""

from __future__ import annotations

import logging
from pathlib import Path

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import ValidationError

from replica.api.app import get_db_session
from replica.core.identity import generate_run_id
from replica.core.validation import normalize_url
from replica.db import repo
from replica.db.repo import DbSession
from replica.models.domain import IterationEntity, SessionEntity
from replica.models.types import (
    IterationOverview,
    RecreationConfig,
    SessionCreateRequest,
    SessionDetail,
    SessionOverview,
    SessionStatus,
    SessionSummary,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _build_overview(entity: SessionEntity) -> SessionOverview:
    return SessionOverview(
        run_id=entity.run_id,
        target_url=entity.target_url,
        status=entity.status,
        total_iterations=entity.total_iterations,
        final_pixel_score=entity.final_pixel_score,
        final_judge_score=entity.final_judge_score,
    )


def _build_iteration(entity: IterationEntity) -> IterationOverview:
    return IterationOverview(
        sequence=entity.sequence,
        pixel_score=entity.pixel_score,
        mismatch_percent=entity.mismatch_percent,
        judge_score=entity.judge_score,
        passed=entity.passed,
        has_critique=entity.critique_json is not None,
        critique_error=entity.critique_error,
        screenshot_uri=entity.screenshot_uri,
        diff_image_uri=entity.diff_image_uri,
        markup_uri=entity.markup_uri,
    )


def _build_detail(session: DbSession, entity: SessionEntity) -> SessionDetail:
    """Build SessionDetail from a session row and its iterations."""
    iterations = repo.get_iterations(session, entity.run_id)
    return SessionDetail(
        **_build_overview(entity).model_dump(),
        config=RecreationConfig.model_validate_json(entity.config_json),
        error_code=entity.error_code,
        error_detail=entity.error_detail,
        final_markup_uri=entity.final_markup_uri,
        summary_uri=entity.summary_uri,
        started_at=entity.started_at,
        ended_at=entity.ended_at,
        iterations=[_build_iteration(i) for i in iterations],
    )


@router.post("/sessions", response_model=SessionDetail, status_code=201)
def create_session(
    request: SessionCreateRequest,
    session: DbSession = Depends(get_db_session),
) -> SessionDetail:
    """Enqueue a recreation session for the worker.

    Raises:
        HTTPException: 422 if the target URL is invalid.
    """
    try:
        target_url = normalize_url(request.target_url)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e)) from e

    run_id = generate_run_id()
    entity = SessionEntity(
        run_id=run_id,
        target_url=target_url,
        status="queued",
        config_json=request.to_config(run_id).model_dump_json(),
    )
    repo.create_session(session, entity)
    repo.commit(session)
    logger.info(f"Queued session {run_id} for {target_url}")

    return _build_detail(session, entity)


@router.get("/sessions", response_model=list[SessionOverview])
def list_sessions(
    status: SessionStatus | None = None,
    limit: int = Query(100, ge=1, le=1000),
    session: DbSession = Depends(get_db_session),
) -> list[SessionOverview]:
    """List sessions, newest first."""
    return [_build_overview(e) for e in repo.list_sessions(session, status=status, limit=limit)]


@router.get("/sessions/{run_id}", response_model=SessionDetail)
def get_session_detail(
    run_id: str,
    session: DbSession = Depends(get_db_session),
) -> SessionDetail:
    """Get session detail.

    Raises:
        HTTPException: 404 if the session is unknown.
    """
    entity = repo.get_session_entity(session, run_id)
    if entity is None:
        raise HTTPException(status_code=404, detail="Session not found")
    return _build_detail(session, entity)


@router.get("/sessions/{run_id}/summary", response_model=SessionSummary)
def get_session_summary(
    run_id: str,
    session: DbSession = Depends(get_db_session),
) -> SessionSummary:
    """Get the finalized summary document of a session.

    Raises:
        HTTPException: 404 if the session is unknown or has no summary yet.
    """
    entity = repo.get_session_entity(session, run_id)
    if entity is None:
        raise HTTPException(status_code=404, detail="Session not found")
    if entity.summary_uri is None:
        raise HTTPException(status_code=404, detail="Summary not written yet")

    summary_path = Path(entity.summary_uri)
    if not summary_path.exists():
        raise HTTPException(status_code=404, detail="Summary file missing")

    try:
        return SessionSummary.model_validate_json(summary_path.read_text(encoding="utf-8"))
    except ValidationError as e:
        logger.error(f"Unreadable summary for {run_id}: {e}")
        raise HTTPException(status_code=500, detail="Summary file is unreadable") from e
