"""Team chat models, decoupled from the AI conversation."""

from datetime import datetime

from pydantic import BaseModel


class CommentPosition(BaseModel):
    """Line/column anchor inside the source."""

    line: int
    column: int


class SessionComment(BaseModel):
    """One message in a session's team chat log."""

    id: str
    session_id: str
    user_id: str
    user_name: str
    content: str
    timestamp: datetime
    position: CommentPosition | None = None
