"""FastAPI application factory with role-based route mounting.

Roles:
- public: ingress (/api/event) enqueues jobs; needs a real transport
  (TASKS_BACKEND=http or cloud_tasks)
- worker: consumes jobs (/tasks/events/track); owns the DB pool and the
  geo/Meta HTTP clients, opened at startup and closed at shutdown
- all: both in one process, with the inline tasks backend running jobs
  locally (development)
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Literal

from fastapi import FastAPI, Request, Response
from fastapi.middleware.cors import CORSMiddleware

from tracking.observability.correlation import (
    CORRELATION_ID_HEADER,
    generate_correlation_id,
    reset_correlation_id,
    set_correlation_id,
)
from tracking.observability.logging import get_logger
from tracking.pipeline.track_event import PipelineResources, build_pipeline
from tracking.settings import Settings
from tracking.tasks.client import TasksClient
from tracking.tasks.contracts import JobEnvelope

from .routers import public, worker

AppRole = Literal["public", "worker", "all"]

logger = get_logger(__name__)


def _inline_handler(app: FastAPI):
    def handle(envelope: JobEnvelope) -> None:
        app.state.resources.pipeline.run(envelope.payload)

    return handle


def create_app(
    role: AppRole | None = None,
    *,
    settings: Settings | None = None,
    resources: PipelineResources | None = None,
    tasks_client: TasksClient | None = None,
) -> FastAPI:
    """Create FastAPI app with routes based on APP_ROLE.

    Args:
        role: Explicit role override. If None, reads APP_ROLE (default "public").
        settings: Settings override; defaults to Settings.from_env().
        resources: Pre-built pipeline resources (tests). When omitted, worker
            roles build them from settings at startup.
        tasks_client: Tasks client override for ingress.

    Returns:
        Configured FastAPI application.
    """
    if role is None:
        role = os.environ.get("APP_ROLE", "public")  # type: ignore[assignment]
    if role not in ("public", "worker", "all"):
        raise ValueError(f"Unknown APP_ROLE: {role}")
    settings = settings or Settings.from_env()
    runs_worker = role in ("worker", "all")

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = runs_worker and app.state.resources is None
        if owned:
            app.state.resources = build_pipeline(settings)
        if runs_worker:
            app.state.resources.open()
        logger.info("application started", extra={"extra_fields": {"role": role}})
        try:
            yield
        finally:
            if owned:
                app.state.resources.close()
                app.state.resources = None
            logger.info("application stopped", extra={"extra_fields": {"role": role}})

    app = FastAPI(
        title="Tracking Pipeline",
        docs_url=None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.resources = resources

    if tasks_client is None:
        handler = _inline_handler(app) if role == "all" else None
        tasks_client = TasksClient(handler=handler)
    if role == "public" and not tasks_client.runs_jobs:
        raise ValueError("APP_ROLE=public needs TASKS_BACKEND=http or cloud_tasks")
    app.state.tasks_client = tasks_client

    # Correlation ID middleware
    @app.middleware("http")
    async def correlation_id_middleware(request: Request, call_next) -> Response:
        cid = request.headers.get(CORRELATION_ID_HEADER) or generate_correlation_id()
        token = set_correlation_id(cid)
        try:
            response = await call_next(request)
            response.headers[CORRELATION_ID_HEADER] = cid
            return response
        finally:
            reset_correlation_id(token)

    app.include_router(public.health_router)

    if role in ("public", "all"):
        # Browser pixels and forms post cross-origin with credentials
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.cors_origins,
            allow_credentials=True,
            allow_methods=["GET", "POST", "OPTIONS"],
            allow_headers=["*"],
        )
        app.include_router(public.router)

    if runs_worker:
        app.include_router(worker.router)

    return app
