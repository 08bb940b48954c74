"""Tests for the generation orchestrator."""

from unittest.mock import AsyncMock

import pytest

from conftest import FakeEditor
from scadcollab_api.core import (
    ChatCompletionsVisionProvider,
    ChatTurn,
    GenerationOrchestrator,
    OpenScadWorkspace,
    RenderRetryPolicy,
)
from scadcollab_api.errors import ProviderError
from scadcollab_api.models import ChatMessage, GenerationState, MessageRole

IMAGE = "data:image/png;base64,iVBORw0KGgo="


@pytest.fixture
def orchestrator(editor, text_provider, vision_provider, sleep):
    return GenerationOrchestrator(
        editor,
        text_provider=text_provider,
        vision_provider=vision_provider,
        retry_policy=RenderRetryPolicy(attempts=3, base_delay=1.0),
        sleep=sleep,
    )


@pytest.mark.asyncio
class TestGenerate:
    """Test the prompt to preview flow."""

    async def test_text_prompt_adds_user_and_code_messages(self, orchestrator, editor):
        result = await orchestrator.generate("Create a gear")

        assert [m.role for m in orchestrator.messages] == [
            MessageRole.USER,
            MessageRole.ASSISTANT,
        ]
        assert orchestrator.messages[0].content == "Create a gear"
        assert orchestrator.messages[1].content == "gear(teeth=20);"
        assert "```" not in orchestrator.messages[1].content
        assert editor.source == "gear(teeth=20);"
        assert result.state == GenerationState.DONE
        assert result.code == "gear(teeth=20);"
        assert orchestrator.loading is False

    async def test_transitions_recorded(self, orchestrator):
        result = await orchestrator.generate("Create a gear")

        assert result.transitions == [
            GenerationState.IDLE,
            GenerationState.AWAITING_PROVIDER,
            GenerationState.EXTRACTING_CODE,
            GenerationState.VALIDATING,
            GenerationState.RENDERING,
            GenerationState.DONE,
        ]
        assert orchestrator.state == GenerationState.DONE

    async def test_render_is_immediate_preview(self, orchestrator, editor):
        await orchestrator.generate("Create a gear")

        assert editor.render_calls == [{"preview": True, "immediate": True}]
        assert editor.syntax_checks == 1

    async def test_new_instruction_when_editor_empty(self, orchestrator, text_provider):
        await orchestrator.generate("Create a gear")

        instruction = text_provider.complete.call_args.args[0]
        assert "Create a gear" in instruction
        assert "Current code:" not in instruction

    async def test_edit_instruction_embeds_current_source(self, text_provider, sleep):
        editor = FakeEditor(source="cube(5);")
        orchestrator = GenerationOrchestrator(
            editor, text_provider=text_provider, vision_provider=AsyncMock(), sleep=sleep
        )

        await orchestrator.generate("make it bigger")

        instruction = text_provider.complete.call_args.args[0]
        assert "cube(5);" in instruction
        assert "make it bigger" in instruction

    async def test_skip_user_echo(self, orchestrator):
        await orchestrator.generate("Create a gear", skip_user_echo=True)

        assert [m.role for m in orchestrator.messages] == [MessageRole.ASSISTANT]

    async def test_image_prompt_uses_vision_with_history(
        self, editor, text_provider, vision_provider, sleep
    ):
        history = [
            ChatMessage(role=MessageRole.USER, content="a box"),
            ChatMessage(role=MessageRole.ASSISTANT, content="cube(1);"),
        ]
        orchestrator = GenerationOrchestrator(
            editor,
            text_provider=text_provider,
            vision_provider=vision_provider,
            sleep=sleep,
            messages=history,
        )

        result = await orchestrator.generate("like this photo", image=IMAGE)

        text_provider.complete.assert_not_called()
        instruction, turns, text, image = vision_provider.complete.call_args.args
        assert turns == [ChatTurn("user", "a box"), ChatTurn("assistant", "cube(1);")]
        assert text == "like this photo"
        assert image == IMAGE
        assert orchestrator.messages[2].image == IMAGE
        assert result.code == "cube([10, 20, 5]);"

    async def test_missing_vision_key_becomes_error_message(
        self, editor, text_provider, sleep
    ):
        orchestrator = GenerationOrchestrator(
            editor,
            text_provider=text_provider,
            vision_provider=ChatCompletionsVisionProvider(api_key=None),
            sleep=sleep,
        )

        result = await orchestrator.generate("like this photo", image=IMAGE)

        text_provider.complete.assert_not_called()
        assert result.state == GenerationState.ERROR
        last = orchestrator.messages[-1]
        assert last.role == MessageRole.ASSISTANT
        assert last.content.startswith("Error: ")
        assert "API key is not configured" in last.content
        assert last.is_error
        assert editor.sources == []
        assert orchestrator.loading is False

    async def test_provider_error_stops_before_render(self, orchestrator, text_provider, editor):
        text_provider.complete.side_effect = ProviderError("Gemini", 500, "overloaded")

        result = await orchestrator.generate("Create a gear")

        assert result.transitions[-1] == GenerationState.ERROR
        assert orchestrator.messages[-1].content == "Error: Gemini API error: 500 - overloaded"
        assert editor.render_calls == []

    async def test_render_retried_then_succeeds(self, text_provider, sleep):
        editor = FakeEditor(render_failures=2)
        orchestrator = GenerationOrchestrator(
            editor, text_provider=text_provider, vision_provider=AsyncMock(), sleep=sleep,
            retry_policy=RenderRetryPolicy(attempts=3, base_delay=1.0),
        )

        result = await orchestrator.generate("Create a gear")

        assert result.state == GenerationState.DONE
        assert result.render_attempts == 3
        assert sleep.delays == [1.0, 2.0]

    async def test_render_abandoned_without_chat_message(self, text_provider, sleep):
        editor = FakeEditor(render_failures=5)
        orchestrator = GenerationOrchestrator(
            editor, text_provider=text_provider, vision_provider=AsyncMock(), sleep=sleep,
            retry_policy=RenderRetryPolicy(attempts=3, base_delay=1.0),
        )

        result = await orchestrator.generate("Create a gear")

        assert result.state == GenerationState.ERROR
        assert result.rendered is False
        assert len(editor.render_calls) == 3
        assert [m.role for m in orchestrator.messages] == [
            MessageRole.USER,
            MessageRole.ASSISTANT,
        ]
        assert not orchestrator.messages[-1].is_error

    async def test_syntax_failure_still_renders(self, text_provider, sleep):
        editor = FakeEditor(syntax_error=True)
        orchestrator = GenerationOrchestrator(
            editor, text_provider=text_provider, vision_provider=AsyncMock(), sleep=sleep
        )

        result = await orchestrator.generate("Create a gear")

        assert result.state == GenerationState.DONE
        assert len(editor.render_calls) == 1

    async def test_crashing_syntax_check_still_renders(self, text_provider, sleep):
        class CrashingSyntaxEditor(FakeEditor):
            async def check_syntax(self) -> None:
                raise RuntimeError("editor worker crashed")

        editor = CrashingSyntaxEditor()
        orchestrator = GenerationOrchestrator(
            editor, text_provider=text_provider, vision_provider=AsyncMock(), sleep=sleep
        )

        result = await orchestrator.generate("Create a gear")

        assert result.state == GenerationState.DONE
        assert len(editor.render_calls) == 1
        assert not orchestrator.loading

    async def test_unrunnable_openscad_ends_in_error(self, tmp_path, text_provider, sleep):
        not_executable = tmp_path / "openscad"
        not_executable.write_text("", encoding="utf-8")
        not_executable.chmod(0o644)
        workspace = OpenScadWorkspace(openscad_path=str(not_executable), debounce=0)
        orchestrator = GenerationOrchestrator(
            workspace,
            text_provider=text_provider,
            vision_provider=AsyncMock(),
            retry_policy=RenderRetryPolicy(attempts=2, base_delay=1.0),
            sleep=sleep,
        )

        result = await orchestrator.generate("Create a gear")

        assert result.state == GenerationState.ERROR
        assert result.render_attempts == 2
        assert result.code == "gear(teeth=20);"


@pytest.mark.asyncio
class TestPersistence:
    """Test transcript writes to the session store."""

    async def test_messages_and_code_persisted(
        self, store, editor, text_provider, vision_provider, sleep
    ):
        session_id = await store.create("user-1", "Gear")
        orchestrator = GenerationOrchestrator(
            editor,
            store=store,
            session_id=session_id,
            text_provider=text_provider,
            vision_provider=vision_provider,
            sleep=sleep,
        )

        await orchestrator.generate("Create a gear")
        session = await store.get(session_id)

        assert [m.content for m in session.messages] == ["Create a gear", "gear(teeth=20);"]
        assert session.model_code == "gear(teeth=20);"

    async def test_store_failure_keeps_local_transcript(
        self, store, backend, editor, text_provider, vision_provider, sleep
    ):
        session_id = await store.create("user-1", "Gear")
        orchestrator = GenerationOrchestrator(
            editor,
            store=store,
            session_id=session_id,
            text_provider=text_provider,
            vision_provider=vision_provider,
            sleep=sleep,
        )
        backend.available = False

        result = await orchestrator.generate("Create a gear")

        assert result.state == GenerationState.DONE
        assert len(orchestrator.messages) == 2


@pytest.mark.asyncio
class TestBootstrap:
    """Test loading a session and the pending initial prompt."""

    async def test_loads_messages_and_source(self, store, editor, text_provider):
        session_id = await store.create("user-1", "Gear")
        await store.append_message(
            session_id, MessageRole.ASSISTANT, "cube(2);", model_code="cube(2);"
        )
        orchestrator = GenerationOrchestrator(
            editor, store=store, text_provider=text_provider, vision_provider=AsyncMock()
        )

        prefill = await orchestrator.bootstrap(await store.get(session_id), None)

        assert prefill is None
        assert orchestrator.session_id == session_id
        assert [m.content for m in orchestrator.messages] == ["cube(2);"]
        assert editor.source == "cube(2);"

    async def test_stale_pending_prompt_removed_not_replayed(
        self, store, editor, text_provider
    ):
        session_id = await store.create("user-1", "Gear")
        await store.append_message(session_id, MessageRole.USER, "Create a gear")
        orchestrator = GenerationOrchestrator(
            editor, store=store, text_provider=text_provider, vision_provider=AsyncMock()
        )

        prefill = await orchestrator.bootstrap(await store.get(session_id), "Create a gear")

        assert prefill == "Create a gear"
        assert orchestrator.messages == []
        assert (await store.get(session_id)).messages == []
        text_provider.complete.assert_not_called()

    async def test_missing_session_starts_fresh(self, editor, text_provider):
        orchestrator = GenerationOrchestrator(
            editor, text_provider=text_provider, vision_provider=AsyncMock()
        )

        assert await orchestrator.bootstrap(None, "hello") == "hello"
        assert orchestrator.messages == []
