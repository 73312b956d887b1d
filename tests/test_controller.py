"""Tests for the recreation controller.

Uses the real ComparisonEngine with deterministic mock collaborators: the
mock generator emits markup with a mismatch marker and the mock
screenshotter paints exactly that share of pixels, so each iteration's
pixel score is known in advance (score = 100 - scheduled mismatch).
"""

import json
from pathlib import Path

import pytest

from replica.core.errors import CaptureFailure, CritiqueFailure
from replica.models.types import Critique, CritiqueItem, RecreationConfig, Viewport
from replica.providers.base import CritiquerBase, GeneratorBase, ScreenshotterBase
from replica.providers.mock import (
    MockCritiquer,
    MockGenerator,
    MockJudge,
    MockScreenshotter,
)
from replica.revision.context import NO_ISSUES_MESSAGE, build_revision_context
from replica.worker.controller import RecreationController
from replica.worker.recorder import SessionRecorder

SMALL_VIEWPORT = Viewport(width=320, height=240)


def _config(**overrides) -> RecreationConfig:
    values = {"viewport": SMALL_VIEWPORT, "wait_ms": 0, "pixel_threshold": 92}
    values.update(overrides)
    return RecreationConfig(**values)


def _controller(tmp_path: Path, generator: GeneratorBase, **kwargs) -> RecreationController:
    kwargs.setdefault("screenshotter", MockScreenshotter())
    kwargs.setdefault("critiquer", MockCritiquer())
    kwargs.setdefault("config", _config())
    return RecreationController(generator=generator, artifacts_dir=tmp_path, **kwargs)


class FlakyCritiquer(CritiquerBase):
    """Distinct critique per call; fails on the listed call numbers."""

    def __init__(self, fail_on: tuple[int, ...] = ()):
        self.fail_on = fail_on
        self.calls = 0

    def critique(self, target_image, candidate_image, context):
        self.calls += 1
        if self.calls in self.fail_on:
            raise RuntimeError(f"critique service down (call {self.calls})")
        return Critique(
            summary=f"critique-{self.calls}",
            items=[
                CritiqueItem(
                    priority="high",
                    category="layout",
                    element=f"element-{self.calls}",
                    issue="off",
                    expected="on",
                    actual="off",
                )
            ],
        )


class AlwaysFailingCritiquer(CritiquerBase):
    def critique(self, target_image, candidate_image, context):
        raise CritiqueFailure("model unavailable")


class FailingGenerator(GeneratorBase):
    """Succeeds with perfect-miss markup until call `fail_at`."""

    def __init__(self, fail_at: int):
        self.fail_at = fail_at
        self.inner = MockGenerator([50.0])
        self.calls = 0

    def generate(self, reference_image, revision_context=None):
        self.calls += 1
        if self.calls == self.fail_at:
            raise ConnectionError("generator connection reset")
        return self.inner.generate(reference_image, revision_context)


class BrokenTargetScreenshotter(ScreenshotterBase):
    def __init__(self, error: Exception):
        self.error = error

    def capture(self, source, viewport, wait_ms):
        if source.is_url:
            raise self.error
        return MockScreenshotter().capture(source, viewport, wait_ms)


class CorruptScreenshotter(MockScreenshotter):
    """Returns bytes that are not an image for the chosen source kind."""

    def __init__(self, corrupt_url: bool):
        super().__init__()
        self.corrupt_url = corrupt_url

    def capture(self, source, viewport, wait_ms):
        if source.is_url == self.corrupt_url:
            return b"not a png"
        return super().capture(source, viewport, wait_ms)


class ShrinkingScreenshotter(MockScreenshotter):
    """Renders candidates one pixel shorter than the target."""

    def capture(self, source, viewport, wait_ms):
        if source.is_url:
            return super().capture(source, viewport, wait_ms)
        smaller = Viewport(width=viewport.width, height=viewport.height - 1)
        return super().capture(source, smaller, wait_ms)


class ListRecorder(SessionRecorder):
    def __init__(self):
        self.events = []

    def session_started(self, run_id, target_url, config):
        self.events.append(("started", run_id))

    def iteration_completed(self, run_id, record):
        self.events.append(("iteration", record.iteration))

    def session_finished(self, summary):
        self.events.append(("finished", summary.stop_reason))


class TestEndToEnd:
    """Threshold 92, judge disabled, three iterations allowed: 80 then 95."""

    def test_stops_at_iteration_two_with_success(self, tmp_path: Path):
        """Iteration 1 fails, is critiqued, iteration 2 passes, iteration 3 never runs."""
        generator = MockGenerator([20.0, 5.0, 0.0])
        critiquer = MockCritiquer()
        controller = _controller(
            tmp_path, generator, critiquer=critiquer, config=_config(max_iterations=3)
        )

        summary = controller.run("https://example.com")

        assert summary.stop_reason == "success"
        assert summary.success is True
        assert summary.total_iterations == 2
        assert [r.comparison.score for r in summary.iterations] == [80.0, 95.0]
        assert [r.passed for r in summary.iterations] == [False, True]
        assert len(generator.calls) == 2
        assert critiquer.calls == 1

    def test_critique_only_on_failed_iteration(self, tmp_path: Path):
        """The passing iteration gets no critique."""
        controller = _controller(
            tmp_path, MockGenerator([20.0, 5.0]), config=_config(max_iterations=3)
        )
        first, second = controller.run("https://example.com").iterations
        assert first.critique is not None
        assert second.critique is None
        assert second.critique_error is None

    def test_state_history(self, tmp_path: Path):
        """States follow capture -> generate -> ... -> success -> finalize."""
        controller = _controller(
            tmp_path, MockGenerator([20.0, 5.0]), config=_config(max_iterations=3)
        )
        summary = controller.run("https://example.com")

        expected = [
            "init",
            "capture_target",
            "generate",
            "capture_candidate",
            "compare",
            "decide",
            "revise",
            "generate",
            "capture_candidate",
            "compare",
            "decide",
            "success",
            "finalize",
        ]
        assert controller.state_history == expected
        assert summary.state_history == expected
        assert controller.state == "finalize"

    def test_final_scores_and_markup(self, tmp_path: Path):
        """Final scores and markup come from the last iteration."""
        controller = _controller(
            tmp_path, MockGenerator([20.0, 5.0]), config=_config(max_iterations=3)
        )
        summary = controller.run("https://example.com")

        assert summary.final_scores.pixel == 95.0
        assert summary.final_scores.judge is None
        assert summary.final_markup == summary.iterations[-1].markup
        assert Path(summary.artifacts.final_markup).read_text() == summary.final_markup


class TestTermination:
    """Iteration budget."""

    def test_single_iteration_success(self, tmp_path: Path):
        """K=1 with a passing attempt ends in success after one iteration."""
        controller = _controller(tmp_path, MockGenerator([0.0]), config=_config(max_iterations=1))
        summary = controller.run("https://example.com")
        assert summary.stop_reason == "success"
        assert summary.total_iterations == 1

    def test_single_iteration_exhausted(self, tmp_path: Path):
        """K=1 with a failing attempt is exhausted and requests no critique."""
        critiquer = MockCritiquer()
        controller = _controller(
            tmp_path,
            MockGenerator([50.0]),
            critiquer=critiquer,
            config=_config(max_iterations=1),
        )

        summary = controller.run("https://example.com")

        assert summary.stop_reason == "exhausted"
        assert summary.total_iterations == 1
        assert critiquer.calls == 0
        assert summary.iterations[0].critique is None
        assert Path(summary.artifacts.final_markup).exists()

    def test_default_budget_exhausted(self, tmp_path: Path):
        """K=6 never passing yields exactly six sequential iterations."""
        critiquer = MockCritiquer()
        controller = _controller(
            tmp_path, MockGenerator([50.0]), critiquer=critiquer, config=_config()
        )

        summary = controller.run("https://example.com")

        assert summary.config.max_iterations == 6
        assert summary.stop_reason == "exhausted"
        assert [r.iteration for r in summary.iterations] == [1, 2, 3, 4, 5, 6]
        assert critiquer.calls == 5
        assert summary.iterations[-1].critique is None
        assert controller.state_history[-2:] == ["exhausted", "finalize"]

    def test_exhausted_keeps_last_markup_as_final(self, tmp_path: Path):
        """The last attempt is saved as the final, non-passing output."""
        controller = _controller(
            tmp_path, MockGenerator([60.0, 50.0]), config=_config(max_iterations=2)
        )
        summary = controller.run("https://example.com")

        final = Path(summary.artifacts.final_markup).read_text()
        assert final == summary.iterations[1].markup
        assert "mismatch: 50" in final


class TestRevisionChaining:
    """Revision context comes from the previous iteration only."""

    def test_first_iteration_has_no_context(self, tmp_path: Path):
        """Iteration 1 is generated without revision context."""
        generator = MockGenerator([50.0])
        controller = _controller(tmp_path, generator, config=_config(max_iterations=2))
        summary = controller.run("https://example.com")

        assert generator.calls[0][1] is None
        assert summary.iterations[0].revision_context is None

    def test_context_from_previous_critique_only(self, tmp_path: Path):
        """Iteration 3 sees critique 2 and nothing from critique 1."""
        generator = MockGenerator([50.0])
        critiquer = FlakyCritiquer()
        controller = _controller(
            tmp_path, generator, critiquer=critiquer, config=_config(max_iterations=3)
        )

        summary = controller.run("https://example.com")

        third_context = generator.calls[2][1]
        assert third_context == build_revision_context(summary.iterations[1].critique)
        assert "critique-2" in third_context
        assert "critique-1" not in third_context
        assert summary.iterations[2].revision_context == third_context

    def test_failed_critique_gives_no_issues_context(self, tmp_path: Path):
        """If critique 2 fails, iteration 3 gets the fixed sentence, not critique 1."""
        generator = MockGenerator([50.0])
        critiquer = FlakyCritiquer(fail_on=(2,))
        controller = _controller(
            tmp_path, generator, critiquer=critiquer, config=_config(max_iterations=3)
        )

        summary = controller.run("https://example.com")

        assert "critique-1" in generator.calls[1][1]
        assert generator.calls[2][1] == NO_ISSUES_MESSAGE
        assert summary.iterations[1].critique is None
        assert "critique service down" in summary.iterations[1].critique_error

    def test_no_critiquer_gives_no_issues_context(self, tmp_path: Path):
        """Without a critiquer every revision gets the fixed sentence."""
        generator = MockGenerator([50.0])
        controller = _controller(
            tmp_path, generator, critiquer=None, config=_config(max_iterations=3)
        )
        controller.run("https://example.com")

        assert [call[1] for call in generator.calls] == [None, NO_ISSUES_MESSAGE, NO_ISSUES_MESSAGE]


class TestCritiqueFailureIsolation:
    """A critiquer that always fails never aborts the session."""

    def test_exhausts_normally(self, tmp_path: Path):
        """Session is exhausted with critique errors recorded."""
        controller = _controller(
            tmp_path,
            MockGenerator([50.0]),
            critiquer=AlwaysFailingCritiquer(),
            config=_config(max_iterations=3),
        )

        summary = controller.run("https://example.com")

        assert summary.stop_reason == "exhausted"
        assert all(r.critique is None for r in summary.iterations)
        assert [r.critique_error is not None for r in summary.iterations] == [True, True, False]
        assert summary.iterations[0].critique_error == "CritiqueFailure: model unavailable"

    def test_succeeds_normally(self, tmp_path: Path):
        """Session still reaches success after a failed critique."""
        controller = _controller(
            tmp_path,
            MockGenerator([50.0, 0.0]),
            critiquer=AlwaysFailingCritiquer(),
            config=_config(max_iterations=3),
        )

        summary = controller.run("https://example.com")

        assert summary.stop_reason == "success"
        assert summary.iterations[0].critique_error is not None
        assert summary.error_code is None


class TestFatalErrors:
    """Errors that end the session."""

    def test_target_capture_failure(self, tmp_path: Path):
        """A failed target capture ends in error with no iterations."""
        generator = MockGenerator()
        screenshotter = BrokenTargetScreenshotter(
            CaptureFailure("net::ERR_NAME_NOT_RESOLVED", reason="unreachable")
        )
        controller = _controller(tmp_path, generator, screenshotter=screenshotter)

        summary = controller.run("https://does-not-exist.invalid")

        assert summary.stop_reason == "error"
        assert summary.error_code == "CaptureFailure"
        assert "ERR_NAME_NOT_RESOLVED" in summary.error_message
        assert summary.iterations == []
        assert generator.calls == []
        assert controller.state_history == ["init", "capture_target", "error", "finalize"]
        assert Path(summary.artifacts.summary_file).exists()
        assert summary.artifacts.target_screenshot is None

    def test_foreign_capture_error_is_wrapped(self, tmp_path: Path):
        """Non-taxonomy exceptions from the screenshotter become CaptureFailure."""
        controller = _controller(
            tmp_path,
            MockGenerator(),
            screenshotter=BrokenTargetScreenshotter(RuntimeError("browser crashed")),
        )
        summary = controller.run("https://example.com")
        assert summary.error_code == "CaptureFailure"
        assert "browser crashed" in summary.error_message

    def test_generation_failure_mid_run(self, tmp_path: Path):
        """A generator failure on iteration 2 keeps iteration 1 and its artifacts."""
        controller = _controller(tmp_path, FailingGenerator(fail_at=2), config=_config(max_iterations=4))

        summary = controller.run("https://example.com")

        assert summary.stop_reason == "error"
        assert summary.error_code == "GenerationFailure"
        assert "connection reset" in summary.error_message
        assert summary.total_iterations == 1
        assert Path(summary.iterations[0].screenshot_path).exists()
        assert Path(summary.iterations[0].comparison.diff_image_path).exists()
        assert summary.artifacts.final_markup is None
        assert summary.final_scores.pixel == 50.0
        assert controller.state_history[-3:] == ["generate", "error", "finalize"]

    def test_empty_markup_is_generation_failure(self, tmp_path: Path):
        """Whitespace-only markup is rejected."""

        class BlankGenerator(GeneratorBase):
            def generate(self, reference_image, revision_context=None):
                return "   "

        summary = _controller(tmp_path, BlankGenerator()).run("https://example.com")
        assert summary.error_code == "GenerationFailure"

    def test_dimension_mismatch(self, tmp_path: Path):
        """A candidate of a different size ends the session in error."""
        controller = _controller(
            tmp_path, MockGenerator([0.0]), screenshotter=ShrinkingScreenshotter()
        )

        summary = controller.run("https://example.com")

        assert summary.stop_reason == "error"
        assert summary.error_code == "DimensionMismatchError"
        assert summary.iterations == []
        diffs_dir = Path(summary.artifacts.run_directory) / "diffs"
        assert list(diffs_dir.iterdir()) == []

    def test_undecodable_target_is_capture_failure(self, tmp_path: Path):
        """Target bytes that are not an image end the session as a capture failure."""
        generator = MockGenerator()
        controller = _controller(
            tmp_path, generator, screenshotter=CorruptScreenshotter(corrupt_url=True)
        )

        summary = controller.run("https://example.com")

        assert summary.error_code == "CaptureFailure"
        assert "Target decode failed" in summary.error_message
        assert generator.calls == []
        assert controller.state_history == ["init", "capture_target", "error", "finalize"]

    def test_undecodable_candidate_is_capture_failure(self, tmp_path: Path):
        """Candidate bytes that are not an image fail before any comparison."""
        controller = _controller(
            tmp_path, MockGenerator([0.0]), screenshotter=CorruptScreenshotter(corrupt_url=False)
        )

        summary = controller.run("https://example.com")

        assert summary.stop_reason == "error"
        assert summary.error_code == "CaptureFailure"
        assert "Candidate decode failed" in summary.error_message
        assert summary.iterations == []
        assert controller.state_history[-3:] == ["capture_candidate", "error", "finalize"]


class TestJudgeGate:
    """Both gates must pass when a judge is configured."""

    def test_judge_below_threshold_blocks_pass(self, tmp_path: Path):
        """A perfect pixel score with a low judge score is not a pass."""
        judge = MockJudge(scores=[50.0, 90.0])
        controller = _controller(
            tmp_path,
            MockGenerator([0.0]),
            judge=judge,
            config=_config(max_iterations=2, judge_threshold=85),
        )

        summary = controller.run("https://example.com")

        assert summary.stop_reason == "success"
        assert summary.total_iterations == 2
        first, second = summary.iterations
        assert first.comparison.passed is True
        assert first.judge.score == 50.0
        assert first.passed is False
        assert second.passed is True
        assert summary.final_scores.judge == 90.0
        assert judge.calls == 2

    def test_judge_runs_even_when_pixels_fail(self, tmp_path: Path):
        """Judge results are recorded on failing iterations too."""
        judge = MockJudge(scores=[99.0])
        controller = _controller(
            tmp_path, MockGenerator([50.0]), judge=judge, config=_config(max_iterations=1)
        )

        summary = controller.run("https://example.com")

        assert summary.stop_reason == "exhausted"
        assert summary.iterations[0].judge.score == 99.0

    def test_judge_failure_is_fatal(self, tmp_path: Path):
        """An exception from the judge ends the session in error."""

        class BrokenJudge(MockJudge):
            def compare(self, goal, target_image, candidate_image):
                raise TimeoutError("judge timed out")

        summary = _controller(tmp_path, MockGenerator([0.0]), judge=BrokenJudge()).run(
            "https://example.com"
        )

        assert summary.stop_reason == "error"
        assert summary.error_code == "JudgeFailure"
        assert summary.iterations == []


class TestArtifacts:
    """Files written under runs/<run_id>/."""

    def test_layout(self, tmp_path: Path):
        """Target, per-iteration files, final markup, summary and report exist."""
        controller = _controller(
            tmp_path,
            MockGenerator([20.0, 0.0]),
            config=_config(max_iterations=2, run_id="fixed-run"),
        )
        summary = controller.run("https://example.com")

        run_dir = tmp_path / "runs" / "fixed-run"
        assert summary.run_id == "fixed-run"
        assert summary.artifacts.run_directory == str(run_dir)
        assert (run_dir / "target.png").exists()
        for n in (1, 2):
            assert (run_dir / "screenshots" / f"iteration_{n}.png").exists()
            assert (run_dir / "markup" / f"iteration_{n}.html").exists()
            assert len(list((run_dir / "diffs").glob(f"*__diff__iteration_{n}.png"))) == 1
        assert (run_dir / "markup" / "index.html").exists()
        assert (run_dir / "summary.json").exists()
        assert (run_dir / "report.md").exists()

    def test_summary_document(self, tmp_path: Path):
        """summary.json holds the same data as the returned summary."""
        controller = _controller(
            tmp_path, MockGenerator([20.0, 0.0]), config=_config(max_iterations=2)
        )
        summary = controller.run("https://example.com")

        data = json.loads(Path(summary.artifacts.summary_file).read_text())
        assert data["run_id"] == summary.run_id
        assert data["stop_reason"] == "success"
        assert data["success"] is True
        assert data["total_iterations"] == 2
        assert data["iterations"][0]["critique"]["total_issues"] == 2
        assert data["elapsed_ms"] >= 0

    def test_generated_run_ids_are_unique(self, tmp_path: Path):
        """Sessions without a configured run_id get distinct namespaces."""
        first = _controller(tmp_path, MockGenerator([0.0])).run("https://example.com")
        second = _controller(tmp_path, MockGenerator([0.0])).run("https://example.com")
        assert first.run_id != second.run_id
        assert "_recreation_" in first.run_id

    def test_summary_write_failure_keeps_stop_reason(self, tmp_path: Path):
        """An unwritable summary path is logged; the outcome is unchanged."""
        run_dir = tmp_path / "runs" / "blocked"
        (run_dir / "summary.json").mkdir(parents=True)

        controller = _controller(
            tmp_path, MockGenerator([0.0]), config=_config(run_id="blocked")
        )
        summary = controller.run("https://example.com")

        assert summary.stop_reason == "success"
        assert (run_dir / "summary.json").is_dir()

    def test_recorder_sees_events_in_order(self, tmp_path: Path):
        """The recorder gets start, each iteration in order, then finish."""
        recorder = ListRecorder()
        controller = _controller(
            tmp_path,
            MockGenerator([50.0]),
            recorder=recorder,
            config=_config(max_iterations=3, run_id="recorded"),
        )
        controller.run("https://example.com")

        assert recorder.events == [
            ("started", "recorded"),
            ("iteration", 1),
            ("iteration", 2),
            ("iteration", 3),
            ("finished", "exhausted"),
        ]


@pytest.mark.parametrize("max_iterations", [1, 2, 6])
def test_never_exceeds_budget(tmp_path: Path, max_iterations: int):
    """A session never produces more iterations than allowed."""
    controller = _controller(
        tmp_path, MockGenerator([70.0]), config=_config(max_iterations=max_iterations)
    )
    summary = controller.run("https://example.com")
    assert summary.total_iterations == max_iterations
    assert summary.stop_reason == "exhausted"
