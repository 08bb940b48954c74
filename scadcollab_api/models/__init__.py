"""Data models for the collaboration service."""

from .comment import CommentPosition, SessionComment
from .generation import (
    CustomizerParameter,
    GenerationResult,
    GenerationState,
    ImagePrompt,
    Prompt,
    TextPrompt,
    make_prompt,
)
from .requests import (
    CollaboratorJoinRequest,
    CommentCreateRequest,
    GenerateRequest,
    SessionCreateRequest,
    SessionUpdateRequest,
    UserProfileRequest,
)
from .responses import (
    GenerationResponse,
    HealthResponse,
    SessionCreatedResponse,
    SessionInfo,
    SessionListResponse,
    ShareResponse,
    SketchResponse,
    VersionResponse,
)
from .session import ChatMessage, CollaboratorInfo, MessageRole, Session, color_for_user
from .sketch import Sketch, SketchDimension
from .user import UserProfile

__all__ = [
    # Session models
    "Session",
    "ChatMessage",
    "MessageRole",
    "CollaboratorInfo",
    "color_for_user",
    # Team chat
    "SessionComment",
    "CommentPosition",
    # Generation
    "GenerationState",
    "GenerationResult",
    "TextPrompt",
    "ImagePrompt",
    "Prompt",
    "make_prompt",
    "CustomizerParameter",
    # Sketches and users
    "Sketch",
    "SketchDimension",
    "UserProfile",
    # Request models
    "SessionCreateRequest",
    "SessionUpdateRequest",
    "GenerateRequest",
    "CollaboratorJoinRequest",
    "CommentCreateRequest",
    "UserProfileRequest",
    # Response models
    "SessionInfo",
    "SessionCreatedResponse",
    "SessionListResponse",
    "GenerationResponse",
    "ShareResponse",
    "SketchResponse",
    "HealthResponse",
    "VersionResponse",
]
