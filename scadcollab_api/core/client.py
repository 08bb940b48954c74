"""Per-tab client wiring the session, presence, team chat and generation together."""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from datetime import datetime

from ..errors import CollabError, NotFound, SessionNotShared
from ..models import (
    CollaboratorInfo,
    CommentPosition,
    GenerationResult,
    Session,
    SessionComment,
)
from ..pubsub import Subscription
from .client_cache import ClientSessionCache
from .editor import SourceEditor
from .message_channel import MessageChannel, UnreadCounter
from .orchestrator import GenerationOrchestrator
from .presence import PresenceTracker
from .providers import TextProvider, VisionProvider
from .session_store import SessionStore

logger = logging.getLogger(__name__)


class CollabClient:
    """What one browser tab does for one signed-in user.

    The session id is passed to :meth:`open` and threaded explicitly into
    every component; the client cache only remembers it so that
    :meth:`resume` can reopen the same session after a reload.
    """

    def __init__(
        self,
        user: CollaboratorInfo,
        store: SessionStore,
        presence: PresenceTracker,
        channel: MessageChannel,
        cache: ClientSessionCache,
        editor: SourceEditor,
        text_provider: TextProvider | None = None,
        vision_provider: VisionProvider | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] | None = None,
    ):
        self.user = user
        self.store = store
        self.presence = presence
        self.channel = channel
        self.cache = cache
        self.editor = editor
        self._text_provider = text_provider
        self._vision_provider = vision_provider
        self._sleep = sleep
        self._clock = clock

        self.session_id: str | None = None
        self.session: Session | None = None
        self.comments: list[SessionComment] = []
        self.orchestrator: GenerationOrchestrator | None = None
        self.unread: UnreadCounter | None = None
        self.prefill: str | None = None
        self._attached = False
        self._subscriptions: list[Subscription] = []

    @property
    def unread_count(self) -> int:
        return self.unread.unread if self.unread else 0

    async def open(self, session_id: str) -> Session:
        """Switch this tab to ``session_id``.

        Loads the transcript, subscribes to the session and its team chat,
        and attaches presence when the session is shared.

        Raises:
            NotFound: the session does not exist
            SessionNotShared: the session is private to someone else
        """
        await self.close()

        session = await self.store.get(session_id)
        if session is None:
            raise NotFound("sessions", session_id)
        if not session.is_shared and not session.is_member(self.user.user_id):
            raise SessionNotShared(f"Session {session_id} is not shared")

        self.session_id = session_id
        self.session = session
        self.cache.set_active_session(session_id)

        self.orchestrator = GenerationOrchestrator(
            self.editor,
            store=self.store,
            session_id=session_id,
            text_provider=self._text_provider,
            vision_provider=self._vision_provider,
            sleep=self._sleep,
        )
        self.prefill = await self.orchestrator.bootstrap(session, self.cache.take_pending_prompt())

        if session.is_shared:
            await self.presence.add_collaborator(session_id, self.user)
            self._attached = True
            self.cache.mark_joined(session_id)

        self._subscriptions.append(await self.store.subscribe(session_id, self._on_session))
        self.unread = UnreadCounter(self.cache, session_id, self.user.user_id, clock=self._clock)
        self._subscriptions.append(await self.channel.subscribe(session_id, self._on_comments))
        return session

    async def resume(self) -> Session | None:
        """Reopen the session this tab had active before a reload."""
        session_id = self.cache.active_session_id
        if session_id is None:
            return None
        try:
            return await self.open(session_id)
        except NotFound:
            logger.info(f"Active session {session_id} no longer exists, starting fresh")
            self.cache.set_active_session(None)
            return None

    def _on_session(self, session: Session | None) -> None:
        self.session = session
        if session is None:
            logger.info(f"Session {self.session_id} was deleted")
            return
        # Remote writes win once no local generation is in flight
        if self.orchestrator is not None and not self.orchestrator.loading:
            self.orchestrator.messages = list(session.messages)
            if session.model_code and session.model_code != self.editor.source:
                self.editor.set_source(session.model_code)

    def _on_comments(self, comments: list[SessionComment]) -> None:
        self.comments = comments
        if self.unread is not None:
            self.unread.observe(comments)

    def open_chat(self) -> None:
        if self.unread is not None:
            self.unread.open(self.comments)

    def close_chat(self) -> None:
        if self.unread is not None:
            self.unread.close()

    def _require_open(self) -> str:
        if self.session_id is None:
            raise RuntimeError("No session is open")
        return self.session_id

    async def generate(self, prompt: str, image: str | None = None) -> GenerationResult:
        self._require_open()
        return await self.orchestrator.generate(prompt, image)

    async def post_comment(
        self, content: str, position: CommentPosition | None = None
    ) -> SessionComment:
        session_id = self._require_open()
        return await self.channel.post(
            session_id,
            self.user.user_id,
            self.user.display_name or self.user.email or "Anonymous",
            content,
            position,
        )

    async def heartbeat(self) -> None:
        if self.session_id and self._attached:
            await self.presence.touch(self.session_id, self.user.user_id)

    async def close(self) -> None:
        """Stop all subscriptions and leave presence. Safe to call twice."""
        for subscription in self._subscriptions:
            subscription.unsubscribe()
        self._subscriptions.clear()

        if self._attached and self.session_id:
            try:
                await self.presence.remove(self.session_id, self.user.user_id)
            except CollabError as e:
                logger.error(f"Error leaving session {self.session_id}: {e}")
        self._attached = False
        self.session_id = None
        self.session = None
        self.orchestrator = None
        self.unread = None
        self.comments = []
