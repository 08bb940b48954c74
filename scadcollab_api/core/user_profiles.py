"""User profile documents."""

import logging
from typing import Any

from ..models import UserProfile
from ..storage import SERVER_TIMESTAMP, DocumentBackend

logger = logging.getLogger(__name__)

USERS = "users"


class UserProfileStore:
    """Profiles keyed by the user's uid."""

    def __init__(self, backend: DocumentBackend):
        self.backend = backend

    async def create(
        self,
        uid: str,
        email: str,
        display_name: str | None = None,
        photo_url: str | None = None,
    ) -> UserProfile:
        """Create or overwrite the profile for ``uid``."""
        await self.backend.insert(
            USERS,
            {
                "uid": uid,
                "email": email,
                "display_name": display_name,
                "photo_url": photo_url,
                "created_at": SERVER_TIMESTAMP,
                "last_login": SERVER_TIMESTAMP,
            },
            doc_id=uid,
        )
        logger.info(f"Created user profile {uid}")
        return await self.get(uid)

    async def get(self, uid: str) -> UserProfile | None:
        doc = await self.backend.fetch(USERS, uid)
        return UserProfile.model_validate(doc) if doc else None

    async def update(self, uid: str, **fields: Any) -> UserProfile:
        """Merge ``fields`` and refresh last_login.

        Raises:
            NotFound: no profile exists for ``uid``
        """
        updates = {k: v for k, v in fields.items() if k in ("email", "display_name", "photo_url")}
        doc = await self.backend.merge(USERS, uid, {**updates, "last_login": SERVER_TIMESTAMP})
        return UserProfile.model_validate(doc)
