"""Prompt to code to preview: the generation state machine."""

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable

from ..config import settings
from ..errors import CollabError, SyntaxCheckFailed
from ..models import (
    ChatMessage,
    GenerationResult,
    GenerationState,
    ImagePrompt,
    MessageRole,
    Prompt,
    Session,
    TextPrompt,
    make_prompt,
)
from ..telemetry import TelemetryEvents, bind_context, track_event, track_metric
from .editor import SourceEditor
from .extraction import extract_code
from .prompts import build_instruction
from .providers import (
    ChatCompletionsVisionProvider,
    ChatTurn,
    GeminiTextProvider,
    TextProvider,
    VisionProvider,
)
from .retry import RenderRetryPolicy, run_with_retry
from .session_store import SessionStore

logger = logging.getLogger(__name__)

ERROR_PREFIX = "Error: "


class GenerationOrchestrator:
    """Runs generations for one session and keeps its local transcript.

    ``messages`` is the optimistic transcript shown to the user: messages are
    appended there first and then persisted when a store is attached. A
    failed write is logged and the local transcript keeps the message.

    One generation walks IDLE, AWAITING_PROVIDER, EXTRACTING_CODE,
    VALIDATING, RENDERING and ends in DONE or ERROR. Provider and extraction
    failures end up in the transcript as an assistant message starting with
    ``"Error: "``. Syntax check and render failures are only logged.
    """

    def __init__(
        self,
        editor: SourceEditor,
        store: SessionStore | None = None,
        session_id: str | None = None,
        text_provider: TextProvider | None = None,
        vision_provider: VisionProvider | None = None,
        retry_policy: RenderRetryPolicy | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        messages: list[ChatMessage] | None = None,
    ):
        self.editor = editor
        self.store = store
        self.session_id = session_id
        self.text_provider = text_provider or GeminiTextProvider.from_settings()
        self.vision_provider = vision_provider or ChatCompletionsVisionProvider.from_settings()
        self.retry_policy = retry_policy or RenderRetryPolicy(
            attempts=settings.render_retry_attempts,
            base_delay=settings.render_retry_base_delay,
        )
        self._sleep = sleep
        self.messages: list[ChatMessage] = list(messages or [])
        self.loading = False
        self.state = GenerationState.IDLE
        self.transitions: list[GenerationState] = [GenerationState.IDLE]

    def _transition(self, state: GenerationState) -> None:
        logger.debug(f"Generation {self.state.value} -> {state.value}")
        self.state = state
        self.transitions.append(state)

    async def _add_message(self, message: ChatMessage, model_code: str | None = None) -> None:
        self.messages.append(message)
        if self.store is None or self.session_id is None:
            return
        try:
            await self.store.append_message(
                self.session_id,
                message.role,
                message.content,
                image=message.image,
                model_code=model_code,
            )
        except CollabError as e:
            logger.error(f"Failed to persist {message.role.value} message to {self.session_id}: {e}")
            track_event(TelemetryEvents.STORE_WRITE_FAILED, {"error_type": type(e).__name__})

    async def _call_provider(
        self, request: Prompt, instruction: str, history: list[ChatMessage]
    ) -> str:
        match request:
            case ImagePrompt(text=text, image_data_uri=image_data_uri):
                turns = [ChatTurn(m.role.value, m.content) for m in history]
                return await self.vision_provider.complete(instruction, turns, text, image_data_uri)
            case TextPrompt():
                return await self.text_provider.complete(instruction)
            case _:
                raise TypeError(f"Unsupported prompt: {request!r}")

    async def generate(
        self,
        prompt: str,
        image: str | None = None,
        skip_user_echo: bool = False,
    ) -> GenerationResult:
        """Generate code for ``prompt`` and drive it through validation and preview.

        Args:
            prompt: User request in natural language
            image: Optional image data URI; routes the request to the vision provider
            skip_user_echo: The user message is already in the transcript

        Returns:
            GenerationResult with the final state and recorded transitions
        """
        request = make_prompt(prompt, image)
        result = GenerationResult(state=GenerationState.IDLE)
        self.loading = True
        self.state = GenerationState.IDLE
        self.transitions = [GenerationState.IDLE]
        started = time.perf_counter()
        if self.session_id:
            bind_context(session_id=self.session_id)

        try:
            history = list(self.messages)
            if not skip_user_echo:
                await self._add_message(
                    ChatMessage(role=MessageRole.USER, content=prompt, image=image)
                )

            track_event(
                TelemetryEvents.GENERATION_STARTED,
                {"kind": request.kind, "mode": "edit" if self.editor.source.strip() else "new"},
            )

            try:
                self._transition(GenerationState.AWAITING_PROVIDER)
                instruction = build_instruction(prompt, self.editor.source)
                response = await self._call_provider(request, instruction, history)

                self._transition(GenerationState.EXTRACTING_CODE)
                code = extract_code(response)
                await self._add_message(
                    ChatMessage(role=MessageRole.ASSISTANT, content=code), model_code=code
                )
            except Exception as e:
                logger.error(f"Error generating code: {e}")
                track_event(
                    TelemetryEvents.GENERATION_FAILED,
                    {"kind": request.kind, "error_type": type(e).__name__},
                )
                self._transition(GenerationState.ERROR)
                result.error = str(e)
                await self._add_message(
                    ChatMessage(role=MessageRole.ASSISTANT, content=f"{ERROR_PREFIX}{e}")
                )
                return result

            result.code = code
            try:
                self.editor.set_source(code)
            except Exception as e:
                logger.error(f"Editor rejected generated source: {e}", exc_info=True)
                self._transition(GenerationState.ERROR)
                result.error = str(e)
                return result

            self._transition(GenerationState.VALIDATING)
            try:
                await self.editor.check_syntax()
            except SyntaxCheckFailed as e:
                logger.warning(f"Syntax check failed, customizer parameters unavailable: {e}")
                track_event(TelemetryEvents.SYNTAX_CHECK_FAILED, {"error_message": str(e)})
            except Exception as e:
                logger.error(f"Syntax check crashed: {e}", exc_info=True)
                track_event(TelemetryEvents.SYNTAX_CHECK_FAILED, {"error_message": str(e)})

            self._transition(GenerationState.RENDERING)
            outcome = await run_with_retry(
                lambda: self.editor.render(preview=True, immediate=True),
                self.retry_policy,
                sleep=self._sleep,
                on_failure=self._log_render_failure,
            )
            result.render_attempts = outcome.attempts
            result.rendered = outcome.succeeded

            if outcome.succeeded:
                self._transition(GenerationState.DONE)
                track_event(
                    TelemetryEvents.GENERATION_COMPLETED,
                    {"kind": request.kind, "render_attempts": outcome.attempts},
                )
            else:
                logger.error(
                    f"Render abandoned after {outcome.attempts} attempts: {outcome.last_error}"
                )
                track_event(TelemetryEvents.RENDER_ABANDONED, {"attempts": outcome.attempts})
                self._transition(GenerationState.ERROR)
            return result

        finally:
            self.loading = False
            result.state = self.state
            result.transitions = list(self.transitions)
            track_metric("generation_duration_ms", (time.perf_counter() - started) * 1000)

    def _log_render_failure(self, attempt: int, error: Exception) -> None:
        logger.warning(f"Render attempt {attempt}/{self.retry_policy.attempts} failed: {error}")
        track_event(
            TelemetryEvents.RENDER_ATTEMPT_FAILED,
            {"attempt": attempt, "error_message": str(error)},
        )

    async def bootstrap(self, session: Session | None, pending_prompt: str | None) -> str | None:
        """Load the transcript and source of a freshly opened session.

        A pending initial prompt is never replayed automatically. When the
        stored transcript ends with an unanswered user turn while such a
        prompt is pending, that turn is a stale copy of the prompt: it is
        dropped locally and from the store, so the next real send does not
        duplicate it.

        Returns:
            Text to prefill the prompt input with, if any
        """
        self.messages = list(session.messages) if session else []
        if session is None:
            return pending_prompt

        self.session_id = session.id
        if session.model_code:
            self.editor.set_source(session.model_code)

        if pending_prompt and self.messages and self.messages[-1].role == MessageRole.USER:
            self.messages.pop()
            logger.info(f"Cleared unanswered initial prompt from session {session.id}")
            if self.store is not None:
                try:
                    await self.store.update(session.id, messages=self.messages)
                except CollabError as e:
                    logger.error(f"Failed to clear stale prompt in {session.id}: {e}")

        return pending_prompt
