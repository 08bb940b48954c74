"""Collaborator presence bookkeeping layered on the session store."""

import logging
from datetime import UTC, datetime, timedelta
from typing import Any

from ..config import settings
from ..errors import CollabError, NotFound, SessionNotShared
from ..models import CollaboratorInfo, Session, color_for_user
from ..storage import SERVER_TIMESTAMP
from ..telemetry import TelemetryEvents, track_event
from .session_store import SessionStore

logger = logging.getLogger(__name__)


def _parse_time(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        return datetime.fromisoformat(value)
    return None


class PresenceTracker:
    """Join, heartbeat and leave for the collaborators of a session.

    Entries are unique by user id. Every operation rewrites the whole
    collaborators list through :meth:`SessionStore.mutate`, so concurrent
    joins share the store's lost-update behaviour unless optimistic
    concurrency is switched on.

    Stale entries are only expired when ``stale_after_seconds`` is positive;
    by default a tab that closes without leaving stays listed.
    """

    def __init__(self, store: SessionStore, stale_after_seconds: float | None = None):
        self.store = store
        self.stale_after_seconds = (
            settings.presence_stale_after_seconds
            if stale_after_seconds is None
            else stale_after_seconds
        )

    async def add_collaborator(self, session_id: str, info: CollaboratorInfo) -> Session:
        """Insert or replace the entry for ``info.user_id`` and grant access.

        Raises:
            NotFound: the session does not exist
        """
        entry = info.model_dump(mode="json")
        entry["color"] = info.color or color_for_user(info.user_id)
        entry["joined_at"] = SERVER_TIMESTAMP
        entry["last_active"] = SERVER_TIMESTAMP

        def join(doc: dict[str, Any]) -> dict[str, Any]:
            collaborators = [
                c for c in doc.get("collaborators", []) if c["user_id"] != info.user_id
            ]
            collaborators.append(entry)
            shared_with = list(doc.get("shared_with", []))
            if info.user_id not in shared_with:
                shared_with.append(info.user_id)
            return {
                "collaborators": collaborators,
                "shared_with": shared_with,
                "updated_at": SERVER_TIMESTAMP,
            }

        try:
            session = await self.store.mutate(session_id, join)
        except CollabError as e:
            logger.error(f"Error adding collaborator {info.user_id} to {session_id}: {e}")
            raise

        track_event(
            TelemetryEvents.COLLABORATOR_JOINED, {"session_id": session_id, "user_id": info.user_id}
        )
        return session

    async def attach(self, session_id: str, info: CollaboratorInfo) -> Session:
        """Join flow for a user opening a session link.

        Owners and users already granted access may always attach; anyone
        else only when the session is shared.

        Raises:
            NotFound: the session does not exist
            SessionNotShared: the session is private and the user is not a member
        """
        session = await self.store.get(session_id)
        if session is None:
            raise NotFound("sessions", session_id)
        if not session.is_shared and not session.is_member(info.user_id):
            raise SessionNotShared(f"Session {session_id} is not shared")
        return await self.add_collaborator(session_id, info)

    async def touch(self, session_id: str, user_id: str) -> None:
        """Refresh last_active and the session updated_at for a present user.

        A missing session or user is a no-op, and store errors are logged
        rather than raised.
        """

        def heartbeat(doc: dict[str, Any]) -> dict[str, Any] | None:
            collaborators = doc.get("collaborators", [])
            if not any(c["user_id"] == user_id for c in collaborators):
                return None
            return {
                "collaborators": [
                    {**c, "last_active": SERVER_TIMESTAMP} if c["user_id"] == user_id else c
                    for c in collaborators
                ],
                "updated_at": SERVER_TIMESTAMP,
            }

        try:
            await self.store.mutate(session_id, heartbeat)
        except NotFound:
            return
        except CollabError as e:
            logger.error(f"Error updating activity of {user_id} in {session_id}: {e}")

    async def remove(self, session_id: str, user_id: str) -> None:
        """Drop the entry for ``user_id``. No-op when absent."""

        def leave(doc: dict[str, Any]) -> dict[str, Any] | None:
            collaborators = doc.get("collaborators", [])
            remaining = [c for c in collaborators if c["user_id"] != user_id]
            if len(remaining) == len(collaborators):
                return None
            return {"collaborators": remaining, "updated_at": SERVER_TIMESTAMP}

        try:
            session = await self.store.mutate(session_id, leave)
        except NotFound:
            return
        except CollabError as e:
            logger.error(f"Error removing collaborator {user_id} from {session_id}: {e}")
            raise

        if session is not None:
            track_event(
                TelemetryEvents.COLLABORATOR_LEFT, {"session_id": session_id, "user_id": user_id}
            )

    async def prune_stale(self, session_id: str, now: datetime | None = None) -> list[str]:
        """Expire entries idle for longer than the configured threshold.

        Returns:
            User ids that were removed (always empty when expiry is disabled)
        """
        if not self.stale_after_seconds or self.stale_after_seconds <= 0:
            return []

        cutoff = (now or datetime.now(UTC)) - timedelta(seconds=self.stale_after_seconds)
        pruned: list[str] = []

        def expire(doc: dict[str, Any]) -> dict[str, Any] | None:
            pruned.clear()
            kept = []
            for c in doc.get("collaborators", []):
                last_active = _parse_time(c.get("last_active"))
                if last_active is not None and last_active < cutoff:
                    pruned.append(c["user_id"])
                else:
                    kept.append(c)
            if not pruned:
                return None
            return {"collaborators": kept, "updated_at": SERVER_TIMESTAMP}

        try:
            await self.store.mutate(session_id, expire)
        except NotFound:
            return []
        except CollabError as e:
            logger.error(f"Error pruning stale collaborators of {session_id}: {e}")
            return []

        for user_id in pruned:
            logger.info(f"Pruned stale collaborator {user_id} from {session_id}")
            track_event(
                TelemetryEvents.COLLABORATOR_PRUNED, {"session_id": session_id, "user_id": user_id}
            )
        return list(pruned)
