"""Session index recorders.

The controller reports three events: session started, iteration
completed (in order) and session finished. DbSessionRecorder mirrors them
into the SQLite index. Index writes are best-effort: a database error is
rolled back and logged, and the session carries on, because the files
under the run directory remain the record of truth.
"""

from __future__ import annotations

import logging
import uuid
from abc import ABC, abstractmethod
from pathlib import Path

from sqlalchemy.exc import SQLAlchemyError

from replica.core.identity import sha256_file, sha256_text
from replica.db import repo
from replica.db.repo import DbSession
from replica.models.domain import IterationEntity, SessionEntity
from replica.models.types import IterationRecord, RecreationConfig, SessionSummary

logger = logging.getLogger(__name__)


class SessionRecorder(ABC):
    """Receives session lifecycle events from the controller."""

    @abstractmethod
    def session_started(self, run_id: str, target_url: str, config: RecreationConfig) -> None:
        pass

    @abstractmethod
    def iteration_completed(self, run_id: str, record: IterationRecord) -> None:
        pass

    @abstractmethod
    def session_finished(self, summary: SessionSummary) -> None:
        pass


def iteration_to_entity(run_id: str, record: IterationRecord) -> IterationEntity:
    """Flatten an iteration record into an index row."""
    return IterationEntity(
        iteration_id=str(uuid.uuid4()),
        run_id=run_id,
        sequence=record.iteration,
        pixel_score=record.comparison.score,
        mismatch_percent=record.comparison.mismatch_percent,
        mismatch_pixels=record.comparison.mismatch_pixels,
        total_pixels=record.comparison.total_pixels,
        pixel_passed=record.comparison.passed,
        passed=record.passed,
        markup_uri=record.markup_path,
        markup_sha256=sha256_text(record.markup),
        screenshot_uri=record.screenshot_path,
        diff_image_uri=record.comparison.diff_image_path,
        screenshot_sha256=sha256_file(Path(record.screenshot_path)),
        diff_sha256=sha256_file(Path(record.comparison.diff_image_path)),
        judge_score=record.judge.score if record.judge else None,
        judge_passed=record.judge.passed if record.judge else None,
        judge_notes=record.judge.notes if record.judge else None,
        critique_json=record.critique.model_dump_json() if record.critique else None,
        critique_error=record.critique_error,
    )


class DbSessionRecorder(SessionRecorder):
    """Writes session progress to the session index."""

    def __init__(self, session: DbSession):
        """Initialize recorder.

        Args:
            session: Database session used for all index writes.
        """
        self.session = session

    def _best_effort(self, action: str, fn, *args, **kwargs) -> None:
        try:
            fn(*args, **kwargs)
            repo.commit(self.session)
        except SQLAlchemyError as e:
            self.session.rollback()
            logger.warning(f"Session index write failed ({action}): {e}")

    def _start(self, run_id: str, target_url: str, config: RecreationConfig) -> None:
        if repo.get_session_entity(self.session, run_id) is None:
            repo.create_session(
                self.session,
                SessionEntity(
                    run_id=run_id,
                    target_url=target_url,
                    status="running",
                    config_json=config.model_dump_json(),
                ),
            )
        repo.set_session_started(self.session, run_id)

    def session_started(self, run_id: str, target_url: str, config: RecreationConfig) -> None:
        self._best_effort("session start", self._start, run_id, target_url, config)

    def iteration_completed(self, run_id: str, record: IterationRecord) -> None:
        self._best_effort(
            f"iteration {record.iteration}",
            repo.create_iteration,
            self.session,
            iteration_to_entity(run_id, record),
        )

    def _finish(self, summary: SessionSummary) -> None:
        repo.update_session_status(
            self.session,
            summary.run_id,
            summary.stop_reason,
            total_iterations=summary.total_iterations,
            final_pixel_score=summary.final_scores.pixel,
            final_judge_score=summary.final_scores.judge,
            final_markup_uri=summary.artifacts.final_markup,
            summary_uri=summary.artifacts.summary_file,
            error_code=summary.error_code,
            error_detail=summary.error_message,
        )
        repo.set_session_ended(self.session, summary.run_id)

    def session_finished(self, summary: SessionSummary) -> None:
        self._best_effort("session finish", self._finish, summary)
