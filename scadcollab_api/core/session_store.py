"""Session document store with push subscriptions."""

import inspect
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from ..config import settings
from ..errors import NotFound, StoreUnavailable, VersionConflict
from ..models import ChatMessage, MessageRole, Session
from ..pubsub import Publisher, Subscription
from ..storage import SERVER_TIMESTAMP, DocumentBackend, DocumentChange
from ..telemetry import TelemetryEvents, track_event

logger = logging.getLogger(__name__)

SESSIONS = "sessions"
COMMENTS = "comments"

SessionListener = Callable[[Session | None], None] | Callable[[Session | None], Awaitable[None]]
Mutation = Callable[[dict[str, Any]], dict[str, Any] | None]


def message_document(
    role: MessageRole, content: str, image: str | None = None
) -> dict[str, Any]:
    """Stored form of a new chat message; the store assigns the timestamp."""
    doc: dict[str, Any] = {"role": role.value, "content": content, "timestamp": SERVER_TIMESTAMP}
    if image:
        doc["image"] = image
    return doc


class SessionStore:
    """CRUD and change subscriptions over session documents.

    Mutations of embedded lists (messages, collaborators) read the whole
    document, change it in memory and write the whole list back. Two
    overlapping writers can therefore lose one update. With
    ``optimistic_concurrency`` enabled those writes become a versioned
    compare-and-set that retries on conflict instead.
    """

    def __init__(
        self,
        backend: DocumentBackend,
        optimistic_concurrency: bool | None = None,
        max_attempts: int = 5,
    ):
        """Initialize store and start relaying backend change notifications."""
        self.backend = backend
        self.optimistic_concurrency = (
            settings.optimistic_concurrency
            if optimistic_concurrency is None
            else optimistic_concurrency
        )
        self.max_attempts = max_attempts
        self._publisher: Publisher[Session | None] = Publisher("sessions")
        self._relay = backend.changes.subscribe(SESSIONS, self._on_change)

    def close(self) -> None:
        """Stop relaying backend notifications."""
        self._relay.unsubscribe()

    async def _on_change(self, change: DocumentChange) -> None:
        if not self._publisher.has_subscribers(change.doc_id):
            return
        session = Session.model_validate(change.document) if change.document else None
        await self._publisher.publish(change.doc_id, session)

    async def create(self, owner_id: str, title: str) -> str:
        """Create an empty, unshared session.

        Returns:
            The new session id

        Raises:
            StoreUnavailable: the backing store cannot be reached
        """
        try:
            session_id = await self.backend.insert(
                SESSIONS,
                {
                    "owner_id": owner_id,
                    "title": title,
                    "created_at": SERVER_TIMESTAMP,
                    "updated_at": SERVER_TIMESTAMP,
                    "messages": [],
                    "model_code": "",
                    "thumbnail": None,
                    "is_shared": False,
                    "shared_with": [],
                    "collaborators": [],
                },
            )
        except StoreUnavailable as e:
            logger.error(f"Error creating session for {owner_id}: {e}")
            raise

        logger.info(f"Created session {session_id} for {owner_id}")
        track_event(TelemetryEvents.SESSION_CREATED, {"session_id": session_id})
        return session_id

    async def get(self, session_id: str) -> Session | None:
        """Point read. None means the session does not exist."""
        doc = await self.backend.fetch(SESSIONS, session_id)
        return Session.model_validate(doc) if doc else None

    async def update(
        self,
        session_id: str,
        *,
        messages: list[ChatMessage] | None = None,
        model_code: str | None = None,
        title: str | None = None,
        thumbnail: str | None = None,
    ) -> Session:
        """Merge the given fields and refresh updated_at.

        Fields left as None are not touched.

        Raises:
            NotFound: the session does not exist
        """
        fields: dict[str, Any] = {"updated_at": SERVER_TIMESTAMP}
        if messages is not None:
            fields["messages"] = [m.model_dump(mode="json", exclude_none=True) for m in messages]
        if model_code is not None:
            fields["model_code"] = model_code
        if title is not None:
            fields["title"] = title
        if thumbnail is not None:
            fields["thumbnail"] = thumbnail

        doc = await self.backend.merge(SESSIONS, session_id, fields)
        track_event(
            TelemetryEvents.SESSION_UPDATED,
            {"session_id": session_id, "fields": ",".join(sorted(fields))},
        )
        return Session.model_validate(doc)

    async def mutate(self, session_id: str, mutation: Mutation) -> Session | None:
        """Read the document, apply ``mutation`` and write back its result.

        ``mutation`` receives the stored document and returns the top-level
        fields to write, or None to skip the write. Without optimistic
        concurrency the write is unconditional. With it, the write only lands
        if nobody else wrote in between, and the whole cycle is retried.

        Returns:
            The written session, or None when the mutation skipped the write

        Raises:
            NotFound: the session does not exist
            VersionConflict: every attempt lost against a concurrent writer
        """
        attempts = self.max_attempts if self.optimistic_concurrency else 1
        attempt = 0
        while True:
            attempt += 1
            doc = await self.backend.fetch(SESSIONS, session_id)
            if doc is None:
                raise NotFound(SESSIONS, session_id)

            fields = mutation(doc)
            if fields is None:
                return None

            expected = doc["version"] if self.optimistic_concurrency else None
            try:
                written = await self.backend.merge(SESSIONS, session_id, fields, expected)
            except VersionConflict as e:
                if attempt >= attempts:
                    raise
                logger.debug(f"Retrying write to {session_id} after conflict: {e}")
                continue
            return Session.model_validate(written)

    async def append_message(
        self,
        session_id: str,
        role: MessageRole,
        content: str,
        image: str | None = None,
        model_code: str | None = None,
    ) -> Session:
        """Append one chat message to the stored transcript.

        ``model_code`` is written in the same update when given.
        """

        def add(doc: dict[str, Any]) -> dict[str, Any]:
            fields: dict[str, Any] = {
                "messages": [*doc.get("messages", []), message_document(role, content, image)],
                "updated_at": SERVER_TIMESTAMP,
            }
            if model_code is not None:
                fields["model_code"] = model_code
            return fields

        session = await self.mutate(session_id, add)
        track_event(
            TelemetryEvents.SESSION_MESSAGE_APPENDED,
            {"session_id": session_id, "role": role.value},
        )
        return session

    async def set_sharing(self, session_id: str, is_shared: bool) -> Session:
        doc = await self.backend.merge(
            SESSIONS, session_id, {"is_shared": is_shared, "updated_at": SERVER_TIMESTAMP}
        )
        track_event(TelemetryEvents.SESSION_SHARED, {"session_id": session_id, "is_shared": is_shared})
        return Session.model_validate(doc)

    async def list_for_owner(self, owner_id: str, limit: int = 50) -> list[Session]:
        """Sessions created by ``owner_id``, most recently updated first."""
        docs = await self.backend.query(
            SESSIONS,
            where={"owner_id": owner_id},
            order_by="updated_at",
            descending=True,
            limit=limit,
        )
        return [Session.model_validate(doc) for doc in docs]

    async def delete(self, session_id: str) -> bool:
        """Delete a session with its team chat.

        Subscribers receive a final None.
        """
        removed = await self.backend.remove(SESSIONS, session_id)
        comments = await self.backend.remove_where(COMMENTS, {"session_id": session_id})
        if removed:
            logger.info(f"Deleted session {session_id} ({comments} comments)")
            track_event(TelemetryEvents.SESSION_DELETED, {"session_id": session_id})
        return removed

    async def subscribe(self, session_id: str, on_change: SessionListener) -> Subscription:
        """Push the current snapshot now and every later change.

        The listener may be a plain function or a coroutine function. A
        snapshot older than one already delivered is dropped. Nothing is
        delivered after the returned subscription is cancelled.

        Returns:
            Subscription; call it (or ``unsubscribe()``) to stop delivery
        """
        last_version = -1

        async def deliver(session: Session | None) -> None:
            nonlocal last_version
            if session is not None:
                if session.version < last_version:
                    return
                last_version = session.version
            result = on_change(session)
            if inspect.isawaitable(result):
                await result

        subscription = self._publisher.subscribe(session_id, deliver)
        try:
            snapshot = await self.get(session_id)
        except StoreUnavailable:
            subscription.unsubscribe()
            raise
        await self._publisher.deliver(subscription, snapshot)
        return subscription
