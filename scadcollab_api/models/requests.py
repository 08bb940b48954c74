"""Request models for API endpoints."""

from pydantic import BaseModel, Field, field_validator

from .comment import CommentPosition
from .session import ChatMessage


class SessionCreateRequest(BaseModel):
    """Request to create a new collaborative session."""

    owner_id: str = Field(..., description="User creating the session", min_length=1)
    title: str = Field(default="Untitled", description="Display title")


class SessionUpdateRequest(BaseModel):
    """Partial session update; omitted fields are left untouched."""

    messages: list[ChatMessage] | None = None
    model_code: str | None = None
    title: str | None = None
    thumbnail: str | None = None


class GenerateRequest(BaseModel):
    """Request to generate source from a prompt."""

    prompt: str = Field(..., description="Natural-language request", min_length=1)
    image: str | None = Field(
        default=None,
        description="Optional image as a data URI (routes to the vision provider)",
    )
    skip_user_echo: bool = Field(
        default=False, description="Do not append the prompt as a user message"
    )

    @field_validator("image")
    @classmethod
    def validate_image(cls, v: str | None) -> str | None:
        """Images travel as data URIs."""
        if v is not None and not v.startswith("data:image/"):
            raise ValueError("image must be a data:image/... URI")
        return v


class CollaboratorJoinRequest(BaseModel):
    """Request to attach a user to a session."""

    user_id: str = Field(..., min_length=1)
    display_name: str = Field(..., min_length=1)
    email: str = ""
    color: str | None = Field(default=None, description="Presence color (derived if omitted)")


class CommentCreateRequest(BaseModel):
    """Request to post a team chat message."""

    user_id: str = Field(..., min_length=1)
    user_name: str = Field(default="Anonymous")
    content: str = Field(..., min_length=1)
    position: CommentPosition | None = None

    @field_validator("content")
    @classmethod
    def strip_content(cls, v: str) -> str:
        stripped = v.strip()
        if not stripped:
            raise ValueError("content must not be blank")
        return stripped


class UserProfileRequest(BaseModel):
    """Create or update a user profile."""

    email: str = Field(..., min_length=1)
    display_name: str | None = None
    photo_url: str | None = None
