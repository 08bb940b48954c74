"""Main FastAPI application for the collaboration service."""

import logging
import sys
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from . import __version__
from .api import comments_router, health_router, sessions_router, users_router
from .api.dependencies import close_services
from .config import settings
from .storage import close_backend, init_backend
from .telemetry import (
    TelemetryEvents,
    TelemetryMiddleware,
    flush_telemetry,
    initialize_telemetry,
    track_event,
)

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper()),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler(sys.stdout)],
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Lifespan context manager for startup and shutdown."""
    logger.info("Starting collaboration service...")
    logger.info(f"Service version: {app.version}")
    logger.info(f"Host: {settings.service_host}:{settings.service_port}")

    initialize_telemetry()
    logger.info("Telemetry initialized")

    await init_backend()
    logger.info(f"Document store ready ({settings.store_backend})")
    if settings.optimistic_concurrency:
        logger.info("Optimistic concurrency enabled for embedded list writes")

    track_event(TelemetryEvents.APP_STARTED, {"store_backend": settings.store_backend})
    logger.info("Collaboration service started successfully")

    yield

    logger.info("Shutting down collaboration service...")
    await close_services()
    track_event(TelemetryEvents.APP_STOPPED)
    flush_telemetry()
    logger.info("Telemetry flushed")

    await close_backend()
    logger.info("Collaboration service stopped")


app = FastAPI(
    title="SCAD Collab API",
    description="""
Collaborative OpenSCAD sessions with AI-assisted code generation.

## Sessions
A session holds the AI conversation, the current OpenSCAD source and the
list of collaborators. Changes are pushed to every subscriber through
`GET /sessions/{id}/events` (Server-Sent Events).

## Generation
`POST /sessions/{id}/generate` turns a prompt, optionally with an image,
into OpenSCAD code. The user and assistant messages appear in the session
stream; pass `wait=true` to block for the outcome.

## Team chat
A separate comment log per session: `POST /sessions/{id}/comments` and
`GET /sessions/{id}/comments/events`.
""",
    version=__version__,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
)

# Telemetry middleware (first, to capture all requests)
app.add_middleware(TelemetryMiddleware)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.get_allowed_origins(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(health_router)
app.include_router(sessions_router)
app.include_router(comments_router)
app.include_router(users_router)


def main() -> None:
    """Main entry point for running the service."""
    import uvicorn

    uvicorn.run(
        "scadcollab_api.main:app",
        host=settings.service_host,
        port=settings.service_port,
        workers=settings.service_workers,
        log_level=settings.log_level,
        reload=False,
    )


if __name__ == "__main__":
    main()
