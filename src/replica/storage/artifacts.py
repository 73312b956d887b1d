"""Per-session artifact namespace on disk.

Layout under <root>/runs/<run_id>/:
    target.png
    screenshots/iteration_<n>.png
    diffs/<timestamp>__diff__iteration_<n>.png
    markup/iteration_<n>.html
    markup/index.html          (final markup)
    summary.json
    report.md

Sessions never write outside their own run directory.
"""

from __future__ import annotations

import logging
from pathlib import Path

from replica.core.errors import PersistenceFailure

logger = logging.getLogger(__name__)

FINAL_MARKUP_NAME = "index.html"
SUMMARY_NAME = "summary.json"
REPORT_NAME = "report.md"


def iteration_slug(iteration: int) -> str:
    return f"iteration_{iteration}"


class RunArtifacts:
    """Paths and writers for one session's artifacts."""

    def __init__(self, root: Path, run_id: str):
        self.root = Path(root)
        self.run_id = run_id
        self.run_dir = self.root / "runs" / run_id

    # Paths

    @property
    def target_screenshot(self) -> Path:
        return self.run_dir / "target.png"

    @property
    def screenshots_dir(self) -> Path:
        return self.run_dir / "screenshots"

    @property
    def diffs_dir(self) -> Path:
        return self.run_dir / "diffs"

    @property
    def markup_dir(self) -> Path:
        return self.run_dir / "markup"

    @property
    def final_markup(self) -> Path:
        return self.markup_dir / FINAL_MARKUP_NAME

    @property
    def summary_file(self) -> Path:
        return self.run_dir / SUMMARY_NAME

    @property
    def report_file(self) -> Path:
        return self.run_dir / REPORT_NAME

    def screenshot_path(self, iteration: int) -> Path:
        return self.screenshots_dir / f"{iteration_slug(iteration)}.png"

    def markup_path(self, iteration: int) -> Path:
        return self.markup_dir / f"{iteration_slug(iteration)}.html"

    # Writers

    def prepare(self) -> None:
        """Create the run directory tree.

        Raises:
            PersistenceFailure: If the directories cannot be created.
        """
        try:
            for directory in (self.screenshots_dir, self.diffs_dir, self.markup_dir):
                directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise PersistenceFailure(f"Cannot create run directory {self.run_dir}: {e}") from e

    def write_bytes(self, path: Path, data: bytes) -> Path:
        """Write binary data, creating parents.

        Raises:
            PersistenceFailure: On any I/O error.
        """
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(data)
        except OSError as e:
            raise PersistenceFailure(f"Failed to write {path}: {e}") from e
        return path

    def write_text(self, path: Path, text: str) -> Path:
        """Write UTF-8 text, creating parents.

        Raises:
            PersistenceFailure: On any I/O error.
        """
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
        except OSError as e:
            raise PersistenceFailure(f"Failed to write {path}: {e}") from e
        return path
