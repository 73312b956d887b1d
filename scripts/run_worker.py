#!/usr/bin/env python3
"""Process queued recreation sessions from the session index.

Usage:
    python scripts/run_worker.py                 # drain the queue once
    python scripts/run_worker.py --poll 5        # keep polling every 5s
    python scripts/run_worker.py --mock          # deterministic collaborators
"""

from __future__ import annotations

import argparse
import functools
import logging
import sys
import time
from pathlib import Path

# Add src to path for imports
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from replica.core.config import get_settings  # noqa: E402
from replica.core.logging_config import setup_logging  # noqa: E402
from replica.db.session import get_db_session, init_db  # noqa: E402
from replica.providers.factory import (  # noqa: E402
    build_live_collaborators,
    build_mock_collaborators,
)
from replica.worker.orchestrator import WorkerOrchestrator  # noqa: E402

logger = logging.getLogger("replica.worker")


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Run the replica session worker.")
    parser.add_argument("--poll", type=float, default=None, help="Poll interval in seconds")
    parser.add_argument("--limit", type=int, default=None, help="Stop after N sessions")
    parser.add_argument("--worker-id", default="worker-1")
    parser.add_argument("--no-judge", action="store_true")
    parser.add_argument("--mock", action="store_true")
    parser.add_argument("-v", "--verbose", action="store_true")
    args = parser.parse_args(argv)

    setup_logging(logging.DEBUG if args.verbose else logging.INFO)
    settings = get_settings()
    init_db(settings.db_path)

    if args.mock:
        factory = functools.partial(build_mock_collaborators, use_judge=not args.no_judge)
    else:
        factory = functools.partial(
            build_live_collaborators, use_judge=not args.no_judge, settings=settings
        )

    total = 0
    with get_db_session(settings.db_path) as session:
        orchestrator = WorkerOrchestrator(
            session=session,
            output_dir=settings.artifacts_dir,
            collaborator_factory=factory,
            worker_id=args.worker_id,
        )
        while True:
            remaining = None if args.limit is None else args.limit - total
            total += orchestrator.process_queue(limit=remaining)
            if args.poll is None or (args.limit is not None and total >= args.limit):
                break
            time.sleep(args.poll)

    logger.info(f"Processed {total} session(s)")
    return 0


if __name__ == "__main__":
    sys.exit(main())
