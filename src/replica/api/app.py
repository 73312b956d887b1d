"""FastAPI application factory.

API layer:
- Enqueues sessions and serves their index rows and summaries
- Serves run artifacts from the artifact root under /artifacts
- Forbidden: browser captures, model calls, pixel comparison (the worker
  does those)
"""

from __future__ import annotations

from pathlib import Path
from typing import Generator

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.staticfiles import StaticFiles

from replica.core.config import get_settings
from replica.db.repo import DbSession
from replica.db.session import get_session


def get_db_session() -> Generator[DbSession, None, None]:
    """Dependency to get database session.

    Yields:
        Database session that is automatically closed after request.
    """
    session = get_session()
    try:
        yield session
    finally:
        session.close()


def create_app(artifacts_dir: Path | None = None) -> FastAPI:
    """Create FastAPI application.

    Args:
        artifacts_dir: Artifact root to serve (default: REPLICA_ARTIFACTS_DIR).

    Returns:
        Configured FastAPI application.
    """
    app = FastAPI(
        title="Replica API",
        description="Iterative screenshot-to-markup recreation sessions",
        version="0.1.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=[
            "http://localhost:3000",
            "http://127.0.0.1:3000",
        ],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    from replica.api.routes import sessions

    app.include_router(sessions.router, prefix="/api")

    artifacts_dir = Path(artifacts_dir) if artifacts_dir else get_settings().artifacts_dir
    if artifacts_dir.exists():
        app.mount("/artifacts", StaticFiles(directory=str(artifacts_dir)), name="artifacts")
    else:

        @app.get("/artifacts/{path:path}")
        def artifacts_not_found(path: str):
            """Return 404 for artifacts when the directory does not exist."""
            raise HTTPException(status_code=404, detail="Artifact not found")

    @app.get("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "ok"}

    return app


# Default app instance
app = create_app()
