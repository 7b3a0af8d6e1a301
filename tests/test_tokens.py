"""Tests for token accounting."""

import pytest

from lmbridge.core.tokens import estimate_tokens, fragment_text, render_message
from lmbridge.types.canonical import (
    CanonicalMessage,
    Role,
    TextFragment,
    TextPart,
    ToolCallFragment,
    ToolCallPart,
    ToolResultPart,
)


class TestEstimateTokens:
    """Tests for the chars/4 heuristic."""

    def test_empty_text(self):
        """Empty text has no tokens."""
        assert estimate_tokens("") == 0

    def test_rounds_up(self):
        """Partial tokens round up."""
        assert estimate_tokens("a") == 1
        assert estimate_tokens("abcd") == 1
        assert estimate_tokens("abcde") == 2


class TestRendering:
    """Tests for the text that gets counted."""

    def test_render_string_message(self):
        """Role and name prefix the content."""
        message = CanonicalMessage(role=Role.USER, name="User", content="hello")
        assert render_message(message) == "user (User):\nhello"

    def test_render_parts(self):
        """Tool calls render as JSON; tool results render their text."""
        message = CanonicalMessage(
            role=Role.ASSISTANT,
            name="Assistant",
            content=[
                TextPart("checking"),
                ToolCallPart("call_1", "lookup", {"q": "x"}),
                ToolResultPart("call_1", [TextPart("found")]),
            ],
        )
        rendered = render_message(message)
        assert "checking" in rendered
        assert '{"callId":"call_1","name":"lookup","input":{"q":"x"}}' in rendered
        assert "call_1: found" in rendered

    def test_fragment_text(self):
        """Tool call fragments are counted by their JSON form."""
        assert fragment_text(TextFragment("hi")) == "hi"
        assert fragment_text(ToolCallFragment("c", "f", {})) == '{"callId":"c","name":"f","input":{}}'


class TestTokenAccountant:
    """Tests for TokenAccountant against the scripted host."""

    @pytest.mark.asyncio
    async def test_count_messages_is_ordered_sum(self, accountant):
        """The message total equals the sum of per-message counts."""
        messages = [
            CanonicalMessage(role=Role.USER, name="User", content="hello there"),
            CanonicalMessage(role=Role.ASSISTANT, name="Assistant", content="hi"),
        ]
        total = await accountant.count_messages(messages)
        expected = sum([await accountant.count_message(m) for m in messages])
        assert total == expected
        assert total > 0

    @pytest.mark.asyncio
    async def test_count_fragment(self, accountant):
        """Fragments are counted with the host model's counter."""
        assert await accountant.count_fragment(TextFragment("Hello")) == 2
        assert await accountant.count_fragment(TextFragment("")) == 0

    @pytest.mark.asyncio
    async def test_count_anthropic_request(self, accountant):
        """Messages, system text and tools all contribute."""
        base = {"model": "m", "messages": [{"role": "user", "content": "hello"}]}
        with_system = dict(base, system="You are terse.")
        with_tools = dict(
            with_system,
            tools=[{"name": "lookup", "description": "Look things up", "input_schema": {"type": "object"}}],
        )
        base_count = await accountant.count_anthropic_request(base)
        system_count = await accountant.count_anthropic_request(with_system)
        tools_count = await accountant.count_anthropic_request(with_tools)
        assert 0 < base_count < system_count < tools_count

    @pytest.mark.asyncio
    async def test_count_anthropic_request_block_content(self, accountant):
        """Block content is counted as joined JSON."""
        payload = {
            "model": "m",
            "messages": [{"role": "user", "content": [{"type": "text", "text": "hi"}]}],
        }
        assert await accountant.count_anthropic_request(payload) > 1
