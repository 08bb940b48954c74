"""Response models for API endpoints."""

from datetime import datetime

from pydantic import BaseModel

from .generation import GenerationState
from .sketch import Sketch


class SessionInfo(BaseModel):
    """Session summary for listings."""

    id: str
    owner_id: str
    title: str
    is_shared: bool
    message_count: int = 0
    created_at: datetime
    updated_at: datetime


class SessionCreatedResponse(BaseModel):
    session_id: str
    message: str | None = None


class SessionListResponse(BaseModel):
    """Response for listing sessions."""

    sessions: list[SessionInfo]
    total: int


class GenerationResponse(BaseModel):
    """Outcome of a generation request."""

    session_id: str
    state: GenerationState
    accepted: bool = True
    code: str | None = None
    error: str | None = None
    render_attempts: int = 0
    rendered: bool = False


class ShareResponse(BaseModel):
    token: str
    share_url: str


class SketchResponse(BaseModel):
    session_id: str
    sketches: list[Sketch]


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    uptime: str
    store_connected: bool


class VersionResponse(BaseModel):
    service_version: str
    store_backend: str
