"""Session data models."""

import hashlib
from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field

# Presence indicator colors, picked deterministically per user
COLLABORATOR_COLORS = [
    "#e6194b",
    "#3cb44b",
    "#ffe119",
    "#4363d8",
    "#f58231",
    "#911eb4",
    "#46f0f0",
    "#f032e6",
    "#bcf60c",
    "#008080",
]


def color_for_user(user_id: str) -> str:
    """Stable presence color for a user id."""
    digest = hashlib.sha1(user_id.encode("utf-8")).digest()
    return COLLABORATOR_COLORS[digest[0] % len(COLLABORATOR_COLORS)]


class MessageRole(str, Enum):
    """Speaker of a chat message."""

    USER = "user"
    ASSISTANT = "assistant"


class ChatMessage(BaseModel):
    """One turn in the AI conversation. Never mutated once created."""

    model_config = ConfigDict(frozen=True, use_enum_values=False)

    role: MessageRole
    content: str
    timestamp: datetime = Field(default_factory=lambda: datetime.now(UTC))
    image: str | None = Field(default=None, description="Image data URI for vision prompts")

    @property
    def is_error(self) -> bool:
        return self.role == MessageRole.ASSISTANT and self.content.startswith("Error:")


class CollaboratorInfo(BaseModel):
    """Presence record of a user attached to a session."""

    user_id: str
    display_name: str
    email: str = ""
    color: str = ""
    joined_at: datetime = Field(default_factory=lambda: datetime.now(UTC))
    last_active: datetime = Field(default_factory=lambda: datetime.now(UTC))


class Session(BaseModel):
    """Unit of collaboration: conversation, generated source and presence."""

    id: str
    owner_id: str
    title: str
    created_at: datetime
    updated_at: datetime
    messages: list[ChatMessage] = Field(default_factory=list)
    model_code: str = ""
    thumbnail: str | None = None
    is_shared: bool = False
    shared_with: list[str] = Field(default_factory=list)
    collaborators: list[CollaboratorInfo] = Field(default_factory=list)
    version: int = 0

    def is_member(self, user_id: str) -> bool:
        return user_id == self.owner_id or user_id in self.shared_with

    def collaborator(self, user_id: str) -> CollaboratorInfo | None:
        return next((c for c in self.collaborators if c.user_id == user_id), None)
