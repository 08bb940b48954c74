"""Service wiring shared by the API routers."""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field

from fastapi import Depends

from ..core import (
    GenerationOrchestrator,
    MessageChannel,
    OpenScadWorkspace,
    PresenceTracker,
    SessionStore,
    ShareTokenManager,
    SketchGenerator,
    SourceEditor,
    UserProfileStore,
)
from ..core.providers import TextProvider, VisionProvider
from ..models import Session
from ..storage import DocumentBackend, get_backend

logger = logging.getLogger(__name__)


@dataclass
class Services:
    """Per-process components built on one document backend."""

    backend: DocumentBackend
    store: SessionStore
    presence: PresenceTracker
    channel: MessageChannel
    share_tokens: ShareTokenManager
    users: UserProfileStore
    sketcher: SketchGenerator
    editor_factory: Callable[[], SourceEditor] = OpenScadWorkspace
    text_provider: TextProvider | None = None
    vision_provider: VisionProvider | None = None
    editors: dict[str, SourceEditor] = field(default_factory=dict)
    tasks: set[asyncio.Task] = field(default_factory=set)

    @classmethod
    def build(cls, backend: DocumentBackend, **overrides) -> "Services":
        store = SessionStore(backend)
        return cls(
            backend=backend,
            store=store,
            presence=PresenceTracker(store),
            channel=MessageChannel(backend),
            share_tokens=ShareTokenManager(store),
            users=UserProfileStore(backend),
            sketcher=overrides.pop("sketcher", None) or SketchGenerator.from_settings(),
            **overrides,
        )

    def editor_for(self, session: Session) -> SourceEditor:
        """The server-side editor of a session, seeded with its stored code."""
        editor = self.editors.get(session.id)
        if editor is None:
            editor = self.editor_factory()
            editor.set_source(session.model_code)
            self.editors[session.id] = editor
        return editor

    def orchestrator_for(self, session: Session) -> GenerationOrchestrator:
        return GenerationOrchestrator(
            self.editor_for(session),
            store=self.store,
            session_id=session.id,
            text_provider=self.text_provider,
            vision_provider=self.vision_provider,
            messages=session.messages,
        )

    def spawn(self, coro) -> asyncio.Task:
        """Run a background task, keeping a reference until it finishes."""
        task = asyncio.create_task(coro)
        self.tasks.add(task)
        task.add_done_callback(self.tasks.discard)
        return task

    def forget(self, session_id: str) -> None:
        self.editors.pop(session_id, None)

    async def shutdown(self) -> None:
        for task in list(self.tasks):
            task.cancel()
        await asyncio.gather(*self.tasks, return_exceptions=True)
        self.store.close()
        self.channel.close()


_services: Services | None = None


async def get_services(backend: DocumentBackend = Depends(get_backend)) -> Services:
    """Dependency returning the process-wide services, built on first use."""
    global _services
    if _services is None or _services.backend is not backend:
        _services = Services.build(backend)
        logger.info("Collaboration services initialized")
    return _services


async def close_services() -> None:
    global _services
    if _services is not None:
        await _services.shutdown()
        _services = None
