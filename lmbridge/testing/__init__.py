"""Testing utilities for in-process dialect simulations."""

from .assertions import (
    assert_anthropic_message_valid,
    assert_anthropic_sse_valid,
    assert_openai_chat_valid,
    assert_openai_chunks_valid,
    assert_responses_api_valid,
    assert_responses_sse_valid,
)
from .scripted_host import DEFAULT_TEST_MODEL, ScriptedCall, ScriptedHostModel, ScriptedReply
from .sse import SSEFrame, aiter_parts, collect_and_cancel, collect_stream, parse_sse_events, parse_sse_frames

__all__ = [
    # Host model
    "DEFAULT_TEST_MODEL",
    "ScriptedCall",
    "ScriptedHostModel",
    "ScriptedReply",
    # SSE parsing
    "SSEFrame",
    "aiter_parts",
    "collect_and_cancel",
    "collect_stream",
    "parse_sse_events",
    "parse_sse_frames",
    # Assertions
    "assert_anthropic_message_valid",
    "assert_anthropic_sse_valid",
    "assert_openai_chat_valid",
    "assert_openai_chunks_valid",
    "assert_responses_api_valid",
    "assert_responses_sse_valid",
]
