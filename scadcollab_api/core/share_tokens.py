"""Share links for sessions."""

import logging

from ..config import settings
from ..models import Session
from ..telemetry import TelemetryEvents, track_event
from .session_store import SessionStore

logger = logging.getLogger(__name__)


class ShareTokenManager:
    """Turns sessions public and hands out link tokens.

    The token IS the session id. There is no separate secret, so anyone
    holding a link can derive the session id and vice versa. Revoking a link
    therefore means unsharing the session. Deployments that need
    unguessable or revocable links must put a real token table in front of
    this.
    """

    def __init__(self, store: SessionStore, base_url: str | None = None):
        self.store = store
        self.base_url = (base_url or settings.share_base_url).rstrip("/")

    async def enable_sharing(self, session_id: str) -> Session:
        """Mark the session shared and bump updated_at.

        Raises:
            NotFound: the session does not exist
        """
        return await self.store.set_sharing(session_id, True)

    async def mint_share_token(self, session_id: str) -> str:
        """Enable sharing and return the token for the session."""
        await self.enable_sharing(session_id)
        logger.info(f"Share token minted for session {session_id}")
        track_event(TelemetryEvents.SHARE_TOKEN_MINTED, {"session_id": session_id})
        return session_id

    def share_url(self, token: str) -> str:
        return f"{self.base_url}/{token}"
