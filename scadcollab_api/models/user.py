"""User profile models."""

from datetime import datetime

from pydantic import BaseModel


class UserProfile(BaseModel):
    """Profile of a signed-in user."""

    uid: str
    email: str
    display_name: str | None = None
    photo_url: str | None = None
    created_at: datetime
    last_login: datetime
