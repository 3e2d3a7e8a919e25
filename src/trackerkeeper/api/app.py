# src/trackerkeeper/api/app.py
"""
FastAPI application wiring.

This file creates the `FastAPI` instance and owns the tracking `Runtime` lifecycle
(built on startup, timers cancelled on shutdown). Business logic lives in
`trackerkeeper.api.routes` and `trackerkeeper.runtime`.

Run with: `uvicorn trackerkeeper.api.app:app`
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable

from fastapi import FastAPI
from starlette.middleware.cors import CORSMiddleware

from trackerkeeper.config.settings import get_settings
from trackerkeeper.core.logging import configure_logging
from trackerkeeper.runtime import Runtime

from .routes import router


def create_app(runtime_factory: Callable[[], Runtime] | None = None) -> FastAPI:
    """Build the API app; tests pass a factory to inject providers, RNG and sleep."""
    factory = runtime_factory or (lambda: Runtime(get_settings()))

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        runtime = factory()
        app.state.runtime = runtime
        try:
            yield
        finally:
            await runtime.shutdown()

    app = FastAPI(title="TrackerKeeper API", version="0.1.0", lifespan=lifespan)

    # CORS (dev-friendly): the map/settings front-end is usually served from another port.
    # Configure via env:
    # - TRACKERKEEPER_CORS_ORIGINS="http://localhost:5173,http://127.0.0.1:5173"
    # - TRACKERKEEPER_CORS_ALLOW_LOCAL=0 to disable the default localhost allowance
    cors_origins = [s.strip() for s in os.getenv("TRACKERKEEPER_CORS_ORIGINS", "").split(",") if s.strip()]
    cors_allow_local = os.getenv("TRACKERKEEPER_CORS_ALLOW_LOCAL", "1").strip().lower() in {"1", "true", "yes", "y"}
    cors_origin_regex = os.getenv("TRACKERKEEPER_CORS_ALLOW_ORIGIN_REGEX", "").strip() or (
        r"^https?://(localhost|127\.0\.0\.1)(:\d+)?$" if cors_allow_local and not cors_origins else ""
    )
    if cors_origins or cors_origin_regex:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=cors_origins,
            allow_origin_regex=cors_origin_regex or None,
            allow_credentials=False,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    app.include_router(router)
    return app


configure_logging()

app = create_app()
