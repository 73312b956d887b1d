"""Worker orchestrator for queued recreation sessions.

Architecture:
- WorkerOrchestrator: claims queued sessions and delegates each to a
  RecreationController
- Collaborators come from an injected factory (see providers.factory)

The controller records iterations and the final outcome through
DbSessionRecorder. The orchestrator only handles failures that happen
before or around the controller (bad stored config, factory errors, a
recorder error escaping run()).
"""

from __future__ import annotations

import logging
from pathlib import Path

from replica.db import repo
from replica.db.repo import DbSession
from replica.models.domain import SessionEntity
from replica.models.types import RecreationConfig, SessionSummary
from replica.providers.factory import CollaboratorFactory
from replica.worker.controller import RecreationController
from replica.worker.recorder import DbSessionRecorder

logger = logging.getLogger(__name__)


class WorkerOrchestrator:
    """Claims queued sessions and runs them to a terminal status."""

    def __init__(
        self,
        session: DbSession,
        output_dir: Path,
        collaborator_factory: CollaboratorFactory,
        worker_id: str = "default",
    ):
        """Initialize orchestrator.

        Args:
            session: Database session for claims and index writes.
            output_dir: Artifact root (sessions write under runs/<run_id>/).
            collaborator_factory: Builds collaborators for a session config.
            worker_id: Identifier for this worker (used in logs).
        """
        self.session = session
        self.output_dir = Path(output_dir)
        self.output_dir.mkdir(parents=True, exist_ok=True)
        self.collaborator_factory = collaborator_factory
        self.worker_id = worker_id

    def get_queued_sessions(self) -> list[SessionEntity]:
        """Get all sessions with status=queued."""
        return repo.get_queued_sessions(self.session)

    def claim_sessions(self, limit: int = 1) -> list[SessionEntity]:
        """Atomically claim queued sessions (now status='running')."""
        return repo.claim_queued_sessions(self.session, limit)

    def process_session(self, entity: SessionEntity) -> SessionSummary | None:
        """Run one session through the controller.

        Args:
            entity: Queued or claimed session.

        Returns:
            The session summary, or None if the session could not start or
            the controller raised.
        """
        logger.info(f"[{self.worker_id}] Processing session {entity.run_id}")
        try:
            config = RecreationConfig.model_validate_json(entity.config_json)
            config = config.model_copy(update={"run_id": entity.run_id})
            collaborators = self.collaborator_factory(config)
        except Exception as e:
            logger.error(f"[{self.worker_id}] Session {entity.run_id} could not start: {e}")
            self._mark_error(entity.run_id, e)
            return None

        controller = RecreationController(
            screenshotter=collaborators.screenshotter,
            generator=collaborators.generator,
            judge=collaborators.judge,
            critiquer=collaborators.critiquer,
            config=config,
            artifacts_dir=self.output_dir,
            recorder=DbSessionRecorder(self.session),
        )
        try:
            return controller.run(entity.target_url)
        except Exception as e:
            logger.exception(f"[{self.worker_id}] Session {entity.run_id} aborted")
            self._mark_error(entity.run_id, e)
            return None

    def _mark_error(self, run_id: str, error: Exception) -> None:
        """Move a session to error, recording the exception type and message."""
        self.session.rollback()
        repo.update_session_status(
            self.session,
            run_id,
            "error",
            error_code=type(error).__name__,
            error_detail=str(error),
        )
        repo.set_session_ended(self.session, run_id)
        repo.commit(self.session)

    def process_queue(self, limit: int | None = None) -> int:
        """Claim and process sessions one at a time until the queue is empty.

        Args:
            limit: Optional maximum number of sessions to process.

        Returns:
            Number of sessions processed.
        """
        processed = 0
        while limit is None or processed < limit:
            claimed = self.claim_sessions(limit=1)
            if not claimed:
                break
            self.process_session(claimed[0])
            processed += 1
        return processed
