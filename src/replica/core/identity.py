"""Identity utilities for run ids and artifact names.

- generate_run_id: unique, time-ordered session identifier
- artifact_timestamp: filesystem-safe UTC timestamp for artifact names
- sha256_text / sha256_file: content hashes recorded in the session index
"""

import hashlib
import uuid
from datetime import datetime, timezone
from pathlib import Path


def artifact_timestamp(now: datetime | None = None) -> str:
    """Return a filesystem-safe UTC timestamp.

    Format: YYYY-MM-DDTHH-MM-SS (colons and dots replaced, no fraction).

    Args:
        now: Optional fixed time (defaults to current UTC time).

    Returns:
        Timestamp string safe for use in filenames.
    """
    if now is None:
        now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H-%M-%S")


def generate_run_id(now: datetime | None = None) -> str:
    """Generate a unique run id for a recreation session.

    run_id = <timestamp>_recreation_<8 hex chars>

    The timestamp keeps ids sortable; the random suffix keeps sessions
    started in the same second apart.

    Args:
        now: Optional fixed time for the timestamp part.

    Returns:
        Run id string.
    """
    return f"{artifact_timestamp(now)}_recreation_{uuid.uuid4().hex[:8]}"


def sha256_text(text: str) -> str:
    """SHA256 of UTF-8 text as 64 hex chars."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()


def sha256_file(path: Path, chunk_size: int = 65536) -> str:
    """Compute SHA256 of file using streaming (memory-efficient).

    Args:
        path: Path to file.
        chunk_size: Bytes to read at a time (default 64KB).

    Returns:
        64-character hex string.

    Raises:
        FileNotFoundError: If file doesn't exist.
    """
    hasher = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            hasher.update(chunk)
    return hasher.hexdigest()
