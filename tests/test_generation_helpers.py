"""Tests for code extraction, prompt building and render retry."""

import pytest

from scadcollab_api.core import RenderRetryPolicy, extract_code, run_with_retry
from scadcollab_api.core.prompts import build_instruction


class TestExtractCode:
    """Test fenced block extraction."""

    def test_fenced_block_with_language(self):
        assert extract_code("```openscad\ncube(10);\n```") == "cube(10);"

    def test_first_block_wins(self):
        text = "Intro\n```scad\nsphere(5);\n```\nand also\n```\ncube(1);\n```"

        assert extract_code(text) == "sphere(5);"

    def test_multiline_body_kept(self):
        text = "```openscad\nmodule a() {\n  cube(1);\n}\na();\n```"

        assert extract_code(text) == "module a() {\n  cube(1);\n}\na();"

    def test_no_fence_returns_text_unchanged(self):
        assert extract_code("cylinder(h=5, r=2);") == "cylinder(h=5, r=2);"


class TestBuildInstruction:
    """Test new vs edit instructions."""

    def test_blank_source_builds_new_code_instruction(self):
        instruction = build_instruction("a gear", "   ")

        assert "a gear" in instruction
        assert "Current code:" not in instruction

    def test_edit_instruction_embeds_current_source(self):
        instruction = build_instruction("make it taller", "cube([1, 1, 1]);")

        assert "make it taller" in instruction
        assert "Current code:\ncube([1, 1, 1]);" in instruction


@pytest.mark.asyncio
class TestRunWithRetry:
    """Test bounded render retries."""

    async def test_succeeds_on_third_attempt(self, sleep):
        calls = []

        async def action():
            calls.append(len(calls) + 1)
            if len(calls) < 3:
                raise RuntimeError("renderer busy")

        outcome = await run_with_retry(action, RenderRetryPolicy(attempts=3), sleep=sleep)

        assert outcome.succeeded
        assert outcome.attempts == 3
        assert calls == [1, 2, 3]
        assert sleep.delays == [1.0, 2.0]

    async def test_gives_up_after_all_attempts(self, sleep):
        calls = []
        failures = []

        async def action():
            calls.append(1)
            raise RuntimeError("renderer broken")

        outcome = await run_with_retry(
            action,
            RenderRetryPolicy(attempts=3, base_delay=0.5),
            sleep=sleep,
            on_failure=lambda attempt, e: failures.append(attempt),
        )

        assert not outcome.succeeded
        assert len(calls) == 3
        assert failures == [1, 2, 3]
        assert sleep.delays == [0.5, 1.0]
        assert str(outcome.last_error) == "renderer broken"

    async def test_unlisted_errors_propagate(self, sleep):
        async def action():
            raise KeyError("x")

        with pytest.raises(KeyError):
            await run_with_retry(
                action, RenderRetryPolicy(), sleep=sleep, retry_on=(RuntimeError,)
            )
