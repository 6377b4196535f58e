"""FastAPI application entrypoint."""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from chainpilot.api.deps import EngineContainer
from chainpilot.api.errors import register_error_handlers
from chainpilot.api.routes import contracts, health, tasks, workflows
from chainpilot.core.config import get_settings
from chainpilot.core.logging import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Startup and shutdown events."""
    settings = get_settings()
    setup_logging(env=settings.app_env, log_level="DEBUG" if settings.debug else settings.log_level)

    owns_container = getattr(app.state, "container", None) is None
    if owns_container:
        app.state.container = EngineContainer.build(settings)

    logger.info("Starting %s in %s mode", settings.app_name, settings.app_env)
    yield
    logger.info("Shutting down ChainPilot engine")
    if owns_container:
        await app.state.container.aclose()


def create_app(container: EngineContainer | None = None) -> FastAPI:
    """Create and configure the FastAPI application.

    ``container`` pre-wires the engine components; otherwise they are
    built from settings at startup.
    """
    settings = get_settings()

    app = FastAPI(
        title="ChainPilot API",
        description="Contract analysis, tool generation, task interpretation and workflow execution.",
        version="0.1.0",
        lifespan=lifespan,
        docs_url=None if settings.app_env == "production" else "/api/docs",
        redoc_url=None if settings.app_env == "production" else "/api/redoc",
        openapi_url=None if settings.app_env == "production" else "/api/openapi.json",
        openapi_tags=[
            {"name": "health", "description": "Liveness probe"},
            {"name": "contracts", "description": "Contract analysis, exploration and tool generation"},
            {"name": "tasks", "description": "Natural-language task interpretation and execution"},
            {"name": "workflows", "description": "Workflow templates and executions"},
        ],
    )
    if container is not None:
        app.state.container = container

    # ── CORS ───────────────────────────────────────────────────────
    allowed_origins = [o.strip() for o in settings.cors_allowed_origins.split(",") if o.strip()]
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["Content-Type", "X-Request-ID", "Accept"],
        expose_headers=["X-Request-ID"],
    )

    # ── Request ID + access logging ──────────────────────────────────
    @app.middleware("http")
    async def access_log(request: Request, call_next):
        request_id = request.headers.get("x-request-id") or str(uuid.uuid4())
        request.state.request_id = request_id

        start = time.perf_counter()
        response = await call_next(request)
        elapsed = (time.perf_counter() - start) * 1000
        response.headers["X-Request-ID"] = request_id
        logger.info(
            "%s %s → %d (%.1fms)",
            request.method,
            request.url.path,
            response.status_code,
            elapsed,
            extra={"method": request.method, "path": request.url.path,
                   "status_code": response.status_code, "duration_ms": round(elapsed, 1)},
        )
        return response

    # ── Routes ───────────────────────────────────────────────────────
    app.include_router(health.router, prefix="/api", tags=["health"])
    app.include_router(contracts.router, prefix="/api/v1/contract", tags=["contracts"])
    app.include_router(tasks.router, prefix="/api/v1/tasks", tags=["tasks"])
    app.include_router(workflows.router, prefix="/api/v1/workflows", tags=["workflows"])

    register_error_handlers(app)

    return app


app = create_app()
