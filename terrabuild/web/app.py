"""TerraBuild JSON API."""

from __future__ import annotations

from contextlib import asynccontextmanager
from uuid import uuid4

import structlog
from fastapi import FastAPI, Request
from starlette.middleware.base import BaseHTTPMiddleware

from terrabuild import __version__
from terrabuild.config import get_config
from terrabuild.core.logging import configure_logging
from terrabuild.db.connection import close_db
from terrabuild.web.errors import install_error_handlers
from terrabuild.web.routes import (
    auth,
    calculations,
    comments,
    dashboard,
    health,
    materials,
    matrices,
    projects,
    reference,
    scenarios,
)

logger = structlog.get_logger(__name__)


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        structlog.contextvars.clear_contextvars()

        request_id = request.headers.get("X-Request-ID", str(uuid4()))
        structlog.contextvars.bind_contextvars(request_id=request_id)

        logger.info(
            "request_started",
            method=request.method,
            path=request.url.path,
            client_ip=request.client.host if request.client else None,
        )

        try:
            response = await call_next(request)
        except Exception as exc:
            logger.error("request_failed", error=str(exc))
            raise

        logger.info("request_completed", status_code=response.status_code)
        response.headers["X-Request-ID"] = request_id
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = get_config()
    configure_logging(config.log_level, config.log_format)
    logger.info("app_started", environment=config.environment, version=__version__)
    yield
    await close_db()
    logger.info("app_stopped")


def create_app() -> FastAPI:
    app = FastAPI(
        title="TerraBuild API",
        description="Building cost data for county assessors",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )
    app.add_middleware(RequestLoggingMiddleware)
    install_error_handlers(app)

    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(matrices.router)
    app.include_router(materials.router)
    app.include_router(calculations.router)
    app.include_router(reference.router)
    app.include_router(scenarios.router)
    app.include_router(projects.router)
    app.include_router(comments.router)
    app.include_router(dashboard.router)
    return app


app = create_app()
