"""API endpoints for the collaboration service."""

from .comments import router as comments_router
from .health import router as health_router
from .sessions import router as sessions_router
from .users import router as users_router

__all__ = [
    "sessions_router",
    "comments_router",
    "users_router",
    "health_router",
]
