"""FastAPI application factory for the read-only query API."""

from __future__ import annotations

import time
from typing import Any

from fastapi import FastAPI

from fundmon.api.routes import funds, system


def create_api_app(lifespan: Any = None) -> FastAPI:
    """Create the API application.

    Route handlers read their collaborators from ``app.state``:
    ``store``, ``pipeline``, ``scheduler``, ``dispatcher``, ``fetcher`` and
    ``settings``. main.py fills these in from the lifespan.

    Args:
        lifespan: Optional async context manager for startup/shutdown.
    """
    app = FastAPI(
        title="Fund Premium Monitor API",
        lifespan=lifespan,
    )
    app.state.started_at = time.time()

    @app.get("/health")
    async def health() -> dict:
        return {"status": "ok"}

    app.include_router(funds.router, prefix="/api/funds")
    app.include_router(system.router, prefix="/api/system")

    return app
