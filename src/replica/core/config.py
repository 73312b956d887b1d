"""Process-level settings read from environment variables.

Environment variables:
    REPLICA_ARTIFACTS_DIR      Root for per-session artifacts (default: artifacts)
    REPLICA_DB_PATH            SQLite session index (default: data/replica.db)
    OPENAI_API_KEY             Key for the OpenAI generator/judge/critiquer
    REPLICA_GENERATOR_MODEL    Model used to write markup (default: gpt-4o)
    REPLICA_JUDGE_MODEL        Model used to judge and critique (default: gpt-4o)
    REPLICA_REQUEST_TIMEOUT_S  Per-request timeout for model calls (default: 120)

Per-session knobs (iterations, thresholds, viewport) live on
RecreationConfig, not here.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_ARTIFACTS_DIR = Path("artifacts")
DEFAULT_DB_PATH = Path("data/replica.db")
DEFAULT_MODEL = "gpt-4o"
DEFAULT_REQUEST_TIMEOUT_S = 120.0


@dataclass(frozen=True)
class Settings:
    """Resolved process settings."""

    artifacts_dir: Path
    db_path: Path
    openai_api_key: str | None
    generator_model: str
    judge_model: str
    request_timeout_s: float

    @classmethod
    def from_env(cls) -> Settings:
        """Build settings from the current environment."""
        return cls(
            artifacts_dir=Path(os.environ.get("REPLICA_ARTIFACTS_DIR", DEFAULT_ARTIFACTS_DIR)),
            db_path=Path(os.environ.get("REPLICA_DB_PATH", DEFAULT_DB_PATH)),
            openai_api_key=os.environ.get("OPENAI_API_KEY") or None,
            generator_model=os.environ.get("REPLICA_GENERATOR_MODEL", DEFAULT_MODEL),
            judge_model=os.environ.get("REPLICA_JUDGE_MODEL", DEFAULT_MODEL),
            request_timeout_s=float(
                os.environ.get("REPLICA_REQUEST_TIMEOUT_S", DEFAULT_REQUEST_TIMEOUT_S)
            ),
        )


def get_settings() -> Settings:
    """Return settings for the current environment."""
    return Settings.from_env()
