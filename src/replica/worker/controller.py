"""Recreation controller: the iterative capture/generate/compare loop.

State machine:
    init -> capture_target -> {generate -> capture_candidate -> compare -> decide}*
         -> finalize

decide branches to success (stop), revise (critique, then loop) or
exhausted (stop, budget spent). Any fatal error moves to error and then
finalize. Finalization always builds the SessionSummary and attempts to
write summary.json and report.md.

The controller owns sequencing and artifact layout only. Screenshots,
markup, verdicts and critiques come from the four injected collaborators;
the pixel score comes from ComparisonEngine.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from datetime import datetime, timezone
from pathlib import Path
from typing import Literal, TypeVar

import numpy as np

from replica.adapter.image import load_rgba
from replica.core.config import DEFAULT_ARTIFACTS_DIR
from replica.core.errors import (
    CaptureFailure,
    GenerationFailure,
    JudgeFailure,
    PersistenceFailure,
    RecreationError,
)
from replica.core.identity import generate_run_id
from replica.metrics.pixel_diff import ComparisonEngine
from replica.models.types import (
    ComparisonResult,
    Critique,
    FinalScores,
    IterationRecord,
    JudgeResult,
    RecreationConfig,
    SessionArtifacts,
    SessionSummary,
    StopReason,
)
from replica.providers.base import (
    CaptureSource,
    CritiquerBase,
    GeneratorBase,
    JudgeBase,
    ScreenshotterBase,
)
from replica.report.markdown import render_session_report
from replica.revision.context import build_revision_context
from replica.storage.artifacts import RunArtifacts, iteration_slug
from replica.worker.recorder import SessionRecorder

logger = logging.getLogger(__name__)

State = Literal[
    "init",
    "capture_target",
    "generate",
    "capture_candidate",
    "compare",
    "decide",
    "revise",
    "success",
    "exhausted",
    "error",
    "finalize",
]

T = TypeVar("T")


def _call_step(error_cls: type[RecreationError], action: str, fn: Callable[..., T], *args) -> T:
    """Call a collaborator, mapping foreign exceptions to the step's error type."""
    try:
        return fn(*args)
    except RecreationError:
        raise
    except Exception as e:
        raise error_cls(f"{action} failed: {e}") from e


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class RecreationController:
    """Drives one recreation session per run() call.

    Usage:
        controller = RecreationController(
            screenshotter=PlaywrightScreenshotter(),
            generator=OpenAIGenerator(),
            judge=OpenAIJudge(),
            critiquer=OpenAICritiquer(),
            config=RecreationConfig(max_iterations=3),
            artifacts_dir=Path("artifacts"),
        )
        summary = controller.run("https://example.com")
    """

    def __init__(
        self,
        screenshotter: ScreenshotterBase,
        generator: GeneratorBase,
        judge: JudgeBase | None = None,
        critiquer: CritiquerBase | None = None,
        config: RecreationConfig | None = None,
        artifacts_dir: Path = DEFAULT_ARTIFACTS_DIR,
        recorder: SessionRecorder | None = None,
    ):
        """Initialize controller.

        Args:
            screenshotter: Captures the target URL and each candidate.
            generator: Writes markup from the target screenshot.
            judge: Optional subjective gate; None disables it.
            critiquer: Optional critique source for revisions; None means
                every revision gets the "no issues" context.
            config: Session configuration (defaults apply when omitted).
            artifacts_dir: Root under which runs/<run_id>/ is written.
            recorder: Optional session index recorder.
        """
        self.screenshotter = screenshotter
        self.generator = generator
        self.judge = judge
        self.critiquer = critiquer
        self.config = config or RecreationConfig()
        self.artifacts_dir = Path(artifacts_dir)
        self.recorder = recorder
        self.state_history: list[State] = []

    @property
    def state(self) -> State | None:
        """Current state, or None before the first run."""
        return self.state_history[-1] if self.state_history else None

    def _enter(self, state: State) -> None:
        self.state_history.append(state)
        logger.debug(f"State -> {state}")

    # ------------------------------------------------------------------
    # Entry point
    # ------------------------------------------------------------------

    def run(self, target_url: str) -> SessionSummary:
        """Run a full session against a target URL.

        Never raises for session-level failures: they end the session with
        stop_reason="error" and are described on the returned summary.

        Args:
            target_url: Page to recreate.

        Returns:
            Finalized SessionSummary.
        """
        started_at = _now()
        start = time.monotonic()
        self.state_history = []

        run_id = self.config.run_id or generate_run_id(started_at)
        artifacts = RunArtifacts(self.artifacts_dir, run_id)
        iterations: list[IterationRecord] = []
        final_markup_written = False
        stop_reason: StopReason = "error"
        error: Exception | None = None

        self._enter("init")
        logger.info(
            f"Session {run_id}: recreating {target_url} "
            f"(max {self.config.max_iterations} iterations, pixel >= "
            f"{self.config.pixel_threshold:g}, judge >= {self.config.judge_threshold:g}"
            f"{'' if self.judge else ' (disabled)'})"
        )
        if self.recorder is not None:
            self.recorder.session_started(run_id, target_url, self.config)

        try:
            artifacts.prepare()

            self._enter("capture_target")
            target_png = _call_step(
                CaptureFailure,
                "Target capture",
                self.screenshotter.capture,
                CaptureSource.from_url(target_url),
                self.config.viewport,
                self.config.wait_ms,
            )
            artifacts.write_bytes(artifacts.target_screenshot, target_png)
            target_rgba = _call_step(CaptureFailure, "Target decode", load_rgba, target_png)

            stop_reason = self._run_iterations(artifacts, iterations, target_rgba)
            final_markup_written = True

        except Exception as e:
            self._enter("error")
            stop_reason = "error"
            error = e
            if isinstance(e, RecreationError):
                logger.error(f"Session {run_id} failed ({e.category}): {e}")
            else:
                logger.exception(f"Session {run_id} failed unexpectedly")

        self._enter("finalize")
        summary = self._build_summary(
            run_id=run_id,
            target_url=target_url,
            artifacts=artifacts,
            iterations=iterations,
            stop_reason=stop_reason,
            error=error,
            final_markup_written=final_markup_written,
            started_at=started_at,
            elapsed_ms=_elapsed_ms(start),
        )
        self._write_session_documents(artifacts, summary)

        if self.recorder is not None:
            self.recorder.session_finished(summary)

        logger.info(
            f"Session {run_id} finished: {stop_reason} after {summary.total_iterations} "
            f"iteration(s), pixel={summary.final_scores.pixel}, judge={summary.final_scores.judge}"
        )
        logger.debug(f"Session {run_id} states: {' -> '.join(self.state_history)}")
        return summary

    # ------------------------------------------------------------------
    # Iteration loop
    # ------------------------------------------------------------------

    def _run_iterations(
        self,
        artifacts: RunArtifacts,
        iterations: list[IterationRecord],
        target_rgba: np.ndarray,
    ) -> StopReason:
        """Loop until success or the iteration budget is spent.

        Completed iterations are appended to `iterations` as they finish so
        they survive a later fatal error. Screenshots that do not decode as
        images are capture failures.
        """
        engine = ComparisonEngine(
            pass_threshold=self.config.pixel_threshold,
            diff_output_dir=artifacts.diffs_dir,
        )
        target_path = artifacts.target_screenshot
        max_iterations = self.config.max_iterations
        revision_context: str | None = None

        for n in range(1, max_iterations + 1):
            iteration_start = time.monotonic()

            self._enter("generate")
            markup = _call_step(
                GenerationFailure,
                "Markup generation",
                self.generator.generate,
                target_path,
                revision_context,
            )
            if not isinstance(markup, str) or not markup.strip():
                raise GenerationFailure(f"Generator returned no markup for iteration {n}")
            markup_path = artifacts.write_text(artifacts.markup_path(n), markup)

            self._enter("capture_candidate")
            candidate_png = _call_step(
                CaptureFailure,
                "Candidate capture",
                self.screenshotter.capture,
                CaptureSource.from_markup(markup),
                self.config.viewport,
                self.config.wait_ms,
            )
            screenshot_path = artifacts.write_bytes(artifacts.screenshot_path(n), candidate_png)
            candidate_rgba = _call_step(CaptureFailure, "Candidate decode", load_rgba, candidate_png)

            self._enter("compare")
            comparison = engine.compare(target_rgba, candidate_rgba, slug=iteration_slug(n))
            judge_result = self._judge(target_path, screenshot_path)

            self._enter("decide")
            passed = self._passes(comparison, judge_result)

            critique: Critique | None = None
            critique_error: str | None = None
            if passed:
                outcome: State = "success"
            elif n < max_iterations:
                outcome = "revise"
                self._enter("revise")
                critique, critique_error = self._critique(target_path, screenshot_path)
            else:
                outcome = "exhausted"

            record = IterationRecord(
                iteration=n,
                markup=markup,
                markup_path=str(markup_path),
                screenshot_path=str(screenshot_path),
                comparison=comparison,
                judge=judge_result,
                passed=passed,
                revision_context=revision_context,
                critique=critique,
                critique_error=critique_error,
                completed_at=_now(),
                elapsed_ms=_elapsed_ms(iteration_start),
            )
            iterations.append(record)
            if self.recorder is not None:
                self.recorder.iteration_completed(artifacts.run_id, record)

            judge_label = f"{judge_result.score:.2f}" if judge_result else "n/a"
            logger.info(
                f"Iteration {n}/{max_iterations}: pixel={comparison.score:.2f} "
                f"judge={judge_label} -> {'PASS' if passed else 'FAIL'}"
            )

            if outcome == "revise":
                revision_context = build_revision_context(critique)
                continue

            artifacts.write_text(artifacts.final_markup, markup)
            self._enter(outcome)
            if outcome == "exhausted":
                logger.warning(
                    f"Reached maximum iterations ({max_iterations}); "
                    "last markup saved without meeting thresholds"
                )
            return outcome

        # Unreachable: the last iteration always returns success or exhausted.
        raise RuntimeError("Iteration loop ended without a decision")

    def _passes(self, comparison: ComparisonResult, judge_result: JudgeResult | None) -> bool:
        """Both gates must pass; a disabled judge counts as passing."""
        if comparison.score < self.config.pixel_threshold:
            return False
        if judge_result is None:
            return True
        return judge_result.score >= self.config.judge_threshold

    def _judge(self, target_path: Path, candidate_path: Path) -> JudgeResult | None:
        if self.judge is None:
            return None
        return _call_step(
            JudgeFailure,
            "Judge",
            self.judge.compare,
            self.config.judge_goal,
            target_path,
            candidate_path,
        )

    def _critique(self, target_path: Path, candidate_path: Path) -> tuple[Critique | None, str | None]:
        """Request a critique; failures are recorded, never raised."""
        if self.critiquer is None:
            return None, None
        try:
            critique = self.critiquer.critique(
                target_path, candidate_path, self.config.critique_context
            )
        except Exception as e:
            note = f"{type(e).__name__}: {e}"
            logger.warning(f"Critique failed, continuing without it: {note}")
            return None, note

        logger.info(f"Critique: {critique.total_issues} issue(s). {critique.summary}")
        return critique, None

    # ------------------------------------------------------------------
    # Finalization
    # ------------------------------------------------------------------

    def _build_summary(
        self,
        *,
        run_id: str,
        target_url: str,
        artifacts: RunArtifacts,
        iterations: list[IterationRecord],
        stop_reason: StopReason,
        error: Exception | None,
        final_markup_written: bool,
        started_at: datetime,
        elapsed_ms: int,
    ) -> SessionSummary:
        last = iterations[-1] if iterations else None

        return SessionSummary(
            run_id=run_id,
            target_url=target_url,
            config=self.config,
            stop_reason=stop_reason,
            error_code=type(error).__name__ if error else None,
            error_message=str(error) if error else None,
            iterations=iterations,
            final_markup=last.markup if last else "",
            final_scores=FinalScores(
                pixel=last.comparison.score if last else None,
                judge=last.judge.score if last and last.judge else None,
            ),
            artifacts=SessionArtifacts(
                run_directory=str(artifacts.run_dir),
                target_screenshot=(
                    str(artifacts.target_screenshot)
                    if artifacts.target_screenshot.exists()
                    else None
                ),
                final_screenshot=last.screenshot_path if last else None,
                final_diff_image=last.comparison.diff_image_path if last else None,
                final_markup=str(artifacts.final_markup) if final_markup_written else None,
                summary_file=str(artifacts.summary_file),
                report_file=str(artifacts.report_file),
            ),
            state_history=list(self.state_history),
            started_at=started_at,
            finished_at=_now(),
            elapsed_ms=elapsed_ms,
        )

    def _write_session_documents(self, artifacts: RunArtifacts, summary: SessionSummary) -> None:
        """Write summary.json and report.md; failures are logged only."""
        try:
            artifacts.write_text(artifacts.summary_file, summary.model_dump_json(indent=2))
        except PersistenceFailure as e:
            logger.error(f"Could not write session summary: {e}")

        try:
            artifacts.write_text(artifacts.report_file, render_session_report(summary))
        except PersistenceFailure as e:
            logger.error(f"Could not write session report: {e}")
