#!/usr/bin/env python3
"""Recreate a website from its screenshot.

Captures the target, then loops generate -> capture -> compare until the
pixel score (and judge score, unless disabled) meet their thresholds or
the iteration budget runs out.

Usage:
    python scripts/recreate_site.py https://example.com
    python scripts/recreate_site.py example.com --max-iterations 3 --viewport 1440x900
    python scripts/recreate_site.py example.com --mock          # no browser, no API key

Exit codes:
    0: success
    1: exhausted (thresholds not met)
    2: error
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

# Add src to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from replica.core.config import get_settings  # noqa: E402
from replica.core.logging_config import setup_logging  # noqa: E402
from replica.core.validation import normalize_url, parse_viewport  # noqa: E402
from replica.db.session import get_db_session, init_db  # noqa: E402
from replica.models.types import (  # noqa: E402
    DEFAULT_JUDGE_THRESHOLD,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_PIXEL_THRESHOLD,
    DEFAULT_WAIT_MS,
    RecreationConfig,
    Viewport,
)
from replica.providers.factory import (  # noqa: E402
    build_live_collaborators,
    build_mock_collaborators,
)
from replica.worker.controller import RecreationController  # noqa: E402
from replica.worker.recorder import DbSessionRecorder  # noqa: E402

EXIT_CODES = {"success": 0, "exhausted": 1, "error": 2}


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Iteratively recreate a webpage as HTML.")
    parser.add_argument("url", help="Target URL (https:// is added when missing)")
    parser.add_argument("--max-iterations", type=int, default=DEFAULT_MAX_ITERATIONS)
    parser.add_argument("--pixel-threshold", type=float, default=DEFAULT_PIXEL_THRESHOLD)
    parser.add_argument("--judge-threshold", type=float, default=DEFAULT_JUDGE_THRESHOLD)
    parser.add_argument("--viewport", default="1280x720", help="WIDTHxHEIGHT")
    parser.add_argument("--wait-ms", type=int, default=DEFAULT_WAIT_MS)
    parser.add_argument("--run-id", default=None)
    parser.add_argument("--artifacts-dir", type=Path, default=None)
    parser.add_argument("--no-judge", action="store_true", help="Gate on pixel score only")
    parser.add_argument("--mock", action="store_true", help="Use deterministic mock collaborators")
    parser.add_argument("--record", action="store_true", help="Also write the session index")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    settings = get_settings()

    try:
        url = normalize_url(args.url)
        width, height = parse_viewport(args.viewport)
        config = RecreationConfig(
            max_iterations=args.max_iterations,
            pixel_threshold=args.pixel_threshold,
            judge_threshold=args.judge_threshold,
            viewport=Viewport(width=width, height=height),
            wait_ms=args.wait_ms,
            run_id=args.run_id,
        )
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    if args.mock:
        collaborators = build_mock_collaborators(config, use_judge=not args.no_judge)
    else:
        try:
            collaborators = build_live_collaborators(
                config, use_judge=not args.no_judge, settings=settings
            )
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 2

    artifacts_dir = args.artifacts_dir or settings.artifacts_dir

    def run(recorder=None):
        controller = RecreationController(
            screenshotter=collaborators.screenshotter,
            generator=collaborators.generator,
            judge=collaborators.judge,
            critiquer=collaborators.critiquer,
            config=config,
            artifacts_dir=artifacts_dir,
            recorder=recorder,
        )
        return controller.run(url)

    if args.record:
        init_db(settings.db_path)
        with get_db_session(settings.db_path) as session:
            summary = run(DbSessionRecorder(session))
    else:
        summary = run()

    print()
    print("=" * 60)
    print(f"  Status:      {summary.stop_reason.upper()}")
    print(f"  Iterations:  {summary.total_iterations}/{config.max_iterations}")
    print(f"  Pixel score: {summary.final_scores.pixel}")
    print(f"  Judge score: {summary.final_scores.judge}")
    if summary.error_message:
        print(f"  Error:       {summary.error_code}: {summary.error_message}")
    print(f"  Run dir:     {summary.artifacts.run_directory}")
    print(f"  Summary:     {summary.artifacts.summary_file}")
    print(f"  Report:      {summary.artifacts.report_file}")
    print("=" * 60)

    return EXIT_CODES[summary.stop_reason]


if __name__ == "__main__":
    sys.exit(main())
