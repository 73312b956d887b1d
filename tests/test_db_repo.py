"""Tests for the session index schema and repository functions."""

from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy.exc import IntegrityError

from replica.db import repo
from replica.db.schema import Base, RecreationIteration, RecreationSession
from replica.models.domain import IterationEntity, SessionEntity


def _session_entity(run_id: str, status: str = "queued") -> SessionEntity:
    return SessionEntity(
        run_id=run_id,
        target_url="https://example.com",
        status=status,
        config_json="{}",
    )


def _iteration_entity(run_id: str, sequence: int, iteration_id: str | None = None) -> IterationEntity:
    return IterationEntity(
        iteration_id=iteration_id or f"{run_id}-it-{sequence}",
        run_id=run_id,
        sequence=sequence,
        pixel_score=80.0,
        mismatch_percent=20.0,
        mismatch_pixels=200,
        total_pixels=1000,
        pixel_passed=False,
        passed=False,
        markup_uri=f"markup/iteration_{sequence}.html",
        markup_sha256="0" * 64,
        screenshot_uri=f"screenshots/iteration_{sequence}.png",
        diff_image_uri=f"diffs/x__diff__iteration_{sequence}.png",
        screenshot_sha256="1" * 64,
        diff_sha256="2" * 64,
    )


def _add_with_created_at(session, run_id: str, created_at: datetime, status: str = "queued"):
    session.add(
        RecreationSession(
            run_id=run_id,
            target_url="https://example.com",
            status=status,
            config_json="{}",
            created_at=created_at,
        )
    )


class TestSchemaCreation:
    """Test that schema can be created without errors."""

    def test_all_tables_created(self, engine):
        """Both index tables should exist after creation."""
        assert {"recreation_sessions", "recreation_iterations"}.issubset(
            Base.metadata.tables.keys()
        )


class TestIterationUniqueness:
    """Invariant: an iteration number is recorded once per session."""

    def test_duplicate_sequence_rejected(self, session):
        """A second row with the same (run_id, sequence) should be rejected."""
        repo.create_session(session, _session_entity("run-1"))
        repo.create_iteration(session, _iteration_entity("run-1", 1, "a"))
        session.commit()

        repo.create_iteration(session, _iteration_entity("run-1", 1, "b"))
        with pytest.raises(IntegrityError):
            session.commit()

    def test_same_sequence_different_sessions(self, session):
        """Sequence numbers are scoped per session."""
        repo.create_session(session, _session_entity("run-1"))
        repo.create_session(session, _session_entity("run-2"))
        repo.create_iteration(session, _iteration_entity("run-1", 1))
        repo.create_iteration(session, _iteration_entity("run-2", 1))
        session.commit()

        assert session.query(RecreationIteration).count() == 2


class TestSessionRepository:
    """Session CRUD."""

    def test_create_and_get(self, session):
        """Created sessions round-trip to entities."""
        repo.create_session(session, _session_entity("run-1"))
        repo.commit(session)

        entity = repo.get_session_entity(session, "run-1")
        assert entity is not None
        assert entity.status == "queued"
        assert entity.total_iterations == 0
        assert entity.started_at is None

    def test_get_unknown_returns_none(self, session):
        """Unknown run ids return None."""
        assert repo.get_session_entity(session, "missing") is None

    def test_list_newest_first(self, session):
        """list_sessions orders by creation time, newest first."""
        base = datetime(2026, 1, 1, tzinfo=timezone.utc)
        _add_with_created_at(session, "old", base)
        _add_with_created_at(session, "new", base + timedelta(minutes=5))
        _add_with_created_at(session, "mid", base + timedelta(minutes=1))
        session.commit()

        assert [e.run_id for e in repo.list_sessions(session)] == ["new", "mid", "old"]

    def test_list_filters_and_limits(self, session):
        """Status filter and limit are applied."""
        base = datetime(2026, 1, 1, tzinfo=timezone.utc)
        _add_with_created_at(session, "a", base, status="success")
        _add_with_created_at(session, "b", base + timedelta(seconds=1), status="error")
        _add_with_created_at(session, "c", base + timedelta(seconds=2), status="success")
        session.commit()

        assert [e.run_id for e in repo.list_sessions(session, status="success")] == ["c", "a"]
        assert len(repo.list_sessions(session, limit=1)) == 1

    def test_update_status_keeps_unset_fields(self, session):
        """Only the provided optional fields are changed."""
        repo.create_session(session, _session_entity("run-1"))
        repo.update_session_status(session, "run-1", "running", total_iterations=2)
        repo.update_session_status(session, "run-1", "exhausted", final_pixel_score=88.5)
        session.commit()

        entity = repo.get_session_entity(session, "run-1")
        assert entity.status == "exhausted"
        assert entity.total_iterations == 2
        assert entity.final_pixel_score == 88.5
        assert entity.error_code is None

    def test_started_at_is_kept(self, session):
        """set_session_started does not overwrite an existing start time."""
        repo.create_session(session, _session_entity("run-1"))
        repo.set_session_started(session, "run-1")
        session.commit()
        first = repo.get_session_entity(session, "run-1").started_at

        repo.set_session_started(session, "run-1")
        session.commit()

        entity = repo.get_session_entity(session, "run-1")
        assert entity.status == "running"
        assert entity.started_at == first

    def test_set_ended(self, session):
        """set_session_ended stamps ended_at."""
        repo.create_session(session, _session_entity("run-1"))
        repo.set_session_ended(session, "run-1")
        session.commit()
        assert repo.get_session_entity(session, "run-1").ended_at is not None


class TestQueue:
    """Queued session selection and claiming."""

    def test_queued_oldest_first(self, session):
        """get_queued_sessions ignores other statuses and orders oldest first."""
        base = datetime(2026, 1, 1, tzinfo=timezone.utc)
        _add_with_created_at(session, "second", base + timedelta(seconds=1))
        _add_with_created_at(session, "first", base)
        _add_with_created_at(session, "done", base, status="success")
        session.commit()

        assert [e.run_id for e in repo.get_queued_sessions(session)] == ["first", "second"]

    def test_claim_moves_to_running(self, session):
        """Claimed sessions become running with started_at set."""
        base = datetime(2026, 1, 1, tzinfo=timezone.utc)
        _add_with_created_at(session, "first", base)
        _add_with_created_at(session, "second", base + timedelta(seconds=1))
        session.commit()

        claimed = repo.claim_queued_sessions(session, limit=1)

        assert [e.run_id for e in claimed] == ["first"]
        assert claimed[0].status == "running"
        assert claimed[0].started_at is not None
        assert [e.run_id for e in repo.get_queued_sessions(session)] == ["second"]

    def test_claim_empty_queue(self, session):
        """Nothing queued means nothing claimed."""
        assert repo.claim_queued_sessions(session, limit=5) == []

    def test_claimed_session_not_reclaimed(self, session):
        """A second claim never returns an already running session."""
        repo.create_session(session, _session_entity("run-1"))
        session.commit()

        assert len(repo.claim_queued_sessions(session)) == 1
        assert repo.claim_queued_sessions(session) == []

    def test_lost_race_is_skipped(self, session, monkeypatch):
        """A session another worker claims between SELECT and UPDATE is not returned."""
        base = datetime(2026, 1, 1, tzinfo=timezone.utc)
        _add_with_created_at(session, "r1", base)
        _add_with_created_at(session, "r2", base + timedelta(seconds=1))
        session.commit()

        select_candidates = repo._queued_candidate_ids

        def select_then_lose_r1(db_session, limit):
            candidate_ids = select_candidates(db_session, limit)
            db_session.query(RecreationSession).filter(RecreationSession.run_id == "r1").update(
                {"status": "running"}, synchronize_session=False
            )
            return candidate_ids

        monkeypatch.setattr(repo, "_queued_candidate_ids", select_then_lose_r1)

        claimed = repo.claim_queued_sessions(session, limit=2)

        assert [e.run_id for e in claimed] == ["r2"]


class TestIterationRepository:
    """Iteration rows."""

    def test_iterations_in_sequence_order(self, session):
        """get_iterations returns rows ordered by sequence."""
        repo.create_session(session, _session_entity("run-1"))
        for sequence in (3, 1, 2):
            repo.create_iteration(session, _iteration_entity("run-1", sequence))
        session.commit()

        assert [e.sequence for e in repo.get_iterations(session, "run-1")] == [1, 2, 3]

    def test_iteration_fields_round_trip(self, session):
        """Optional judge and critique fields survive the round trip."""
        repo.create_session(session, _session_entity("run-1"))
        entity = _iteration_entity("run-1", 1)
        entity.judge_score = 91.0
        entity.judge_passed = True
        entity.critique_error = "CritiqueFailure: down"
        repo.create_iteration(session, entity)
        session.commit()

        (loaded,) = repo.get_iterations(session, "run-1")
        assert loaded == entity
