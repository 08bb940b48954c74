"""Health check and version endpoints."""

import logging
import time
from typing import Any

from fastapi import APIRouter, Depends

from .. import __version__
from ..config import settings
from ..models import HealthResponse, VersionResponse
from ..storage import DocumentBackend, get_backend

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])

# Track service start time
_start_time = time.time()


def _format_uptime(seconds_total: float) -> str:
    days, remainder = divmod(int(seconds_total), 86400)
    hours, remainder = divmod(remainder, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"Days: {days}, Hours: {hours}, Minutes: {minutes}, Seconds: {seconds}"


@router.get("/health", response_model=HealthResponse)
async def health_check(backend: DocumentBackend = Depends(get_backend)) -> HealthResponse:
    """Health check endpoint."""
    store_connected = await backend.ping()
    if not store_connected:
        logger.error("Document store health check failed")

    return HealthResponse(
        status="healthy" if store_connected else "degraded",
        version=__version__,
        uptime=_format_uptime(time.time() - _start_time),
        store_connected=store_connected,
    )


@router.get("/version", response_model=VersionResponse)
async def get_version() -> VersionResponse:
    return VersionResponse(service_version=__version__, store_backend=settings.store_backend)


@router.get("/")
async def root() -> dict[str, Any]:
    """Root endpoint with service information."""
    return {
        "service": "SCAD Collab API",
        "version": __version__,
        "description": "Collaborative OpenSCAD sessions with AI-assisted generation",
        "providers": sorted(settings.get_api_keys()),
        "docs": "/docs",
        "health": "/health",
    }
