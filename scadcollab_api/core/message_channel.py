"""Team chat: an append-only comment log per session, separate from the AI conversation."""

import logging
from collections.abc import Awaitable, Callable, Iterable
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from ..errors import CollabError
from ..models import CommentPosition, SessionComment
from ..pubsub import Publisher, Subscription
from ..storage import SERVER_TIMESTAMP, DocumentBackend, DocumentChange
from ..telemetry import TelemetryEvents, track_event
from .session_store import COMMENTS

if TYPE_CHECKING:
    from .client_cache import ClientSessionCache

logger = logging.getLogger(__name__)

CommentsListener = (
    Callable[[list[SessionComment]], None] | Callable[[list[SessionComment]], Awaitable[None]]
)


def order_comments(comments: Iterable[SessionComment]) -> list[SessionComment]:
    """Ascending by timestamp, ties broken by id so the order is stable."""
    return sorted(comments, key=lambda c: (c.timestamp, c.id))


class MessageChannel:
    """Post, list and subscribe to a session's team chat."""

    def __init__(self, backend: DocumentBackend):
        self.backend = backend
        self._publisher: Publisher[list[SessionComment]] = Publisher("comments")
        self._relay = backend.changes.subscribe(COMMENTS, self._on_change)

    def close(self) -> None:
        self._relay.unsubscribe()

    async def post(
        self,
        session_id: str,
        user_id: str,
        user_name: str,
        content: str,
        position: CommentPosition | None = None,
    ) -> SessionComment:
        """Append a comment; its timestamp is assigned by the store."""
        data: dict[str, Any] = {
            "session_id": session_id,
            "user_id": user_id,
            "user_name": user_name,
            "content": content,
            "timestamp": SERVER_TIMESTAMP,
            "position": position.model_dump() if position else None,
        }
        comment_id = await self.backend.insert(COMMENTS, data)
        stored = await self.backend.fetch(COMMENTS, comment_id)
        track_event(TelemetryEvents.COMMENT_POSTED, {"session_id": session_id, "user_id": user_id})
        return SessionComment.model_validate(stored)

    async def list(self, session_id: str) -> list[SessionComment]:
        docs = await self.backend.query(COMMENTS, where={"session_id": session_id})
        return order_comments(SessionComment.model_validate(doc) for doc in docs)

    async def _on_change(self, change: DocumentChange) -> None:
        # Comments are only ever removed together with their session
        if change.document is None:
            return
        session_id = change.document["session_id"]
        if not self._publisher.has_subscribers(session_id):
            return
        try:
            comments = await self.list(session_id)
        except CollabError as e:
            logger.error(f"Error in comments subscription for {session_id}: {e}")
            return
        await self._publisher.publish(session_id, comments)

    async def subscribe(self, session_id: str, on_change: CommentsListener) -> Subscription:
        """Deliver the full ordered list now and after every new comment.

        A failure to load the list is logged and nothing is delivered.
        """
        subscription = self._publisher.subscribe(session_id, on_change)
        try:
            comments = await self.list(session_id)
        except CollabError as e:
            logger.error(f"Error in comments subscription for {session_id}: {e}")
            return subscription
        await self._publisher.deliver(subscription, comments)
        return subscription


class UnreadCounter:
    """Client-local unread count for one user in one session's team chat.

    The last-read timestamp lives in the client session cache, so it is
    neither shared between devices nor written to the store.
    """

    def __init__(
        self,
        cache: "ClientSessionCache",
        session_id: str,
        user_id: str,
        clock: Callable[[], datetime] | None = None,
    ):
        self.cache = cache
        self.session_id = session_id
        self.user_id = user_id
        self.is_open = False
        self.unread = 0
        self._clock = clock or (lambda: datetime.now(UTC))

    @property
    def last_read(self) -> datetime | None:
        return self.cache.get_last_read(self.session_id, self.user_id)

    def _mark_read(self, comments: Iterable[SessionComment]) -> None:
        newest = max((c.timestamp for c in comments), default=None)
        mark = self._clock()
        if newest is not None and newest > mark:
            mark = newest
        current = self.last_read
        if current is None or mark > current:
            self.cache.set_last_read(self.session_id, self.user_id, mark)

    def count(self, comments: Iterable[SessionComment]) -> int:
        """Comments by other users newer than the last-read mark."""
        last_read = self.last_read
        return sum(
            1
            for c in comments
            if c.user_id != self.user_id and (last_read is None or c.timestamp > last_read)
        )

    def observe(self, comments: list[SessionComment]) -> int:
        """Feed a delivered comment list; returns the new unread count.

        While the chat is open every delivery counts as read.
        """
        if self.is_open:
            self._mark_read(comments)
            self.unread = 0
        else:
            self.unread = self.count(comments)
        return self.unread

    def open(self, comments: Iterable[SessionComment] = ()) -> None:
        """The user opened the chat view: everything so far is read."""
        self.is_open = True
        self._mark_read(list(comments))
        self.unread = 0

    def close(self) -> None:
        self.is_open = False
