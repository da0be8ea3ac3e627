"""
FastAPI application for apkforge.

Exposes upload validation, project phases, artifact download and the
per-project log stream under ``/api``.
"""

from __future__ import annotations

import time
import uuid
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .. import __version__
from ..core.config import Config, get_config
from ..core.exceptions import (
    PhaseStateError,
    PhaseStepError,
    ProjectNotFoundError,
    ValidationError,
)
from ..core.logging import bound_context, get_logger, setup_logging
from ..models.common import utcnow
from ..orchestration import PhaseOrchestrator
from .routes import health, projects

logger = get_logger(__name__)


def _register_exception_handlers(app: FastAPI) -> None:
    @app.exception_handler(ProjectNotFoundError)
    async def project_not_found(request: Request, exc: ProjectNotFoundError) -> JSONResponse:
        return JSONResponse(status_code=status.HTTP_404_NOT_FOUND, content={"error": "Project not found"})

    @app.exception_handler(ValidationError)
    async def validation_failed(request: Request, exc: ValidationError) -> JSONResponse:
        logger.info("Upload rejected", errors=exc.errors)
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": exc.message,
                "code": "VALIDATION_FAILED",
                "details": exc.errors,
                "timestamp": utcnow().isoformat(),
            },
        )

    @app.exception_handler(PhaseStateError)
    async def phase_precondition(request: Request, exc: PhaseStateError) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={"error": exc.message, "status": exc.status},
        )

    @app.exception_handler(PhaseStepError)
    async def phase_failed(request: Request, exc: PhaseStepError) -> JSONResponse:
        logger.error("Phase failed", phase=exc.phase, step=exc.step, error=exc.message)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"error": f"{exc.phase.capitalize()} failed", "details": [exc.message]},
        )


def create_app(orchestrator: PhaseOrchestrator | None = None, config: Config | None = None) -> FastAPI:
    """Build the application.

    Args:
        orchestrator: Pre-wired orchestrator, mainly for tests
        config: Configuration; defaults to ``get_config()``
    """
    config = config or get_config()
    orchestrator = orchestrator or PhaseOrchestrator.from_config(config)

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        """Application lifespan handler."""
        setup_logging(config)
        logger.info(
            "apkforge API started",
            uploads=str(config.storage.uploads_path),
            builds=str(config.storage.builds_path),
        )
        yield
        await orchestrator.shutdown()

    app = FastAPI(
        title="apkforge API",
        description="Mobile project archive to APK conversion",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.orchestrator = orchestrator
    app.state.config = config

    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.server.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def request_context(request: Request, call_next):
        request_id = request.headers.get("X-Request-ID", f"req_{uuid.uuid4().hex[:8]}")
        start = time.time()
        with bound_context(request_id=request_id, method=request.method, path=request.url.path):
            response = await call_next(request)
            duration_ms = round((time.time() - start) * 1000, 2)
            if response.status_code >= 500:
                logger.error("http_request_failed", status_code=response.status_code, duration_ms=duration_ms)
            else:
                logger.info("http_request", status_code=response.status_code, duration_ms=duration_ms)
        return response

    _register_exception_handlers(app)
    app.include_router(health.router, prefix="/api")
    app.include_router(projects.router, prefix="/api")
    return app
