"""Tests for the OpenAI-compatible upstream host model.

The upstream is a small FastAPI app mounted through ``httpx.ASGITransport``.
"""

import json

import httpx
import pytest
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, StreamingResponse

from lmbridge.core.exceptions import ErrorKind, HostModelError
from lmbridge.host import CancellationToken, ModelInfo, OpenAIUpstreamHostModel, RequestOptions
from lmbridge.host.openai_upstream import build_upstream_payload, to_openai_messages
from lmbridge.types.canonical import (
    CanonicalMessage,
    CanonicalTool,
    Role,
    TextFragment,
    TextPart,
    ToolCallFragment,
    ToolCallPart,
    ToolMode,
    ToolResultPart,
)


def _sse(*events):
    lines = [f"data: {json.dumps(e)}\n\n" for e in events]
    lines.append("data: [DONE]\n\n")
    return "".join(lines)


def _upstream(stream_body=None, status_code=200, error_body=None, models=None):
    """Build a fake upstream and return ``(app, received_payloads)``."""
    app = FastAPI()
    received = []

    async def chat_completions(request: Request):
        received.append(await request.json())
        if status_code >= 400:
            return JSONResponse(status_code=status_code, content=error_body or {})
        return StreamingResponse(iter([stream_body or _sse()]), media_type="text/event-stream")

    async def list_models():
        return {"object": "list", "data": models or []}

    app.post("/v1/chat/completions")(chat_completions)
    app.get("/v1/models")(list_models)
    return app, received


def _host(app, **kwargs):
    return OpenAIUpstreamHostModel(
        "http://upstream/v1/",
        api_key="sk-test",
        transport=httpx.ASGITransport(app=app),
        **kwargs,
    )


async def _generate(host, messages=None, options=None):
    messages = messages or [CanonicalMessage(role=Role.USER, name="User", content="hi")]
    stream = host.send_request("gpt-test", messages, options or RequestOptions(), CancellationToken())
    return [part async for part in stream]


class TestPayload:
    """Tests for the upstream request body."""

    def test_messages_with_tool_parts(self):
        """Tool calls stay on the assistant message; results become tool messages."""
        messages = [
            CanonicalMessage(role=Role.ASSISTANT, name="System", content="[SYSTEM] rules"),
            CanonicalMessage(
                role=Role.ASSISTANT,
                name="Assistant",
                content=[TextPart("checking"), ToolCallPart("call_1", "lookup", {"q": "x"})],
            ),
            CanonicalMessage(
                role=Role.USER,
                name="User",
                content=[ToolResultPart("call_1", [TextPart("42")])],
            ),
        ]
        assert to_openai_messages(messages) == [
            {"role": "assistant", "content": "[SYSTEM] rules"},
            {
                "role": "assistant",
                "content": "checking",
                "tool_calls": [{
                    "id": "call_1",
                    "type": "function",
                    "function": {"name": "lookup", "arguments": '{"q":"x"}'},
                }],
            },
            {"role": "tool", "tool_call_id": "call_1", "content": "42"},
        ]

    def test_tools_and_options(self):
        """Tools, tool_choice and known passthrough options are forwarded."""
        options = RequestOptions(
            tool_mode=ToolMode.REQUIRED,
            tools=[CanonicalTool(name="lookup", description="Look up")],
            passthrough_options={"temperature": 0.3, "stop_sequences": ["END"], "metadata": {"a": 1}},
        )
        payload = build_upstream_payload("gpt-test", [], options)
        assert payload["stream"] is True
        assert payload["tool_choice"] == "required"
        assert payload["tools"][0]["function"]["parameters"] == {"type": "object", "properties": {}}
        assert payload["temperature"] == 0.3
        assert payload["stop"] == ["END"]
        assert "metadata" not in payload


class TestSendRequest:
    """Tests for streaming generation against the fake upstream."""

    @pytest.mark.asyncio
    async def test_text_and_tool_calls(self):
        """Text deltas pass through; tool call deltas are joined by index."""
        body = _sse(
            {"choices": [{"delta": {"role": "assistant", "content": "Hel"}}]},
            {"choices": [{"delta": {"content": "lo"}}]},
            {"choices": [{"delta": {"tool_calls": [
                {"index": 0, "id": "call_1", "function": {"name": "lookup", "arguments": '{"q":'}},
            ]}}]},
            {"choices": [{"delta": {"tool_calls": [
                {"index": 0, "function": {"arguments": '"x"}'}},
            ]}, "finish_reason": "tool_calls"}]},
        )
        app, received = _upstream(stream_body=body)
        parts = await _generate(_host(app))

        assert parts == [
            TextFragment("Hel"),
            TextFragment("lo"),
            ToolCallFragment("call_1", "lookup", {"q": "x"}),
        ]
        assert received[0]["model"] == "gpt-test"
        assert received[0]["messages"] == [{"role": "user", "content": "hi"}]

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status_code,kind",
        [
            (400, ErrorKind.INVALID_REQUEST),
            (401, ErrorKind.NO_PERMISSIONS),
            (404, ErrorKind.NOT_FOUND),
            (429, ErrorKind.QUOTA_EXCEEDED),
        ],
    )
    async def test_error_status(self, status_code, kind):
        """Known statuses map to error kinds with the upstream message."""
        app, _ = _upstream(status_code=status_code, error_body={"error": {"message": "upstream says no"}})
        with pytest.raises(HostModelError) as exc_info:
            await _generate(_host(app))
        assert exc_info.value.kind == kind
        assert exc_info.value.message == "upstream says no"

    @pytest.mark.asyncio
    async def test_unknown_status_embeds_body(self):
        """Other statuses keep the raw body behind ``Request Failed``."""
        error = {"error": {"type": "overloaded_error", "message": "busy"}}
        app, _ = _upstream(status_code=529, error_body=error)
        with pytest.raises(HostModelError) as exc_info:
            await _generate(_host(app))
        assert exc_info.value.kind == ErrorKind.UNKNOWN
        assert exc_info.value.message.startswith("Request Failed: 529 {")

    @pytest.mark.asyncio
    async def test_in_stream_error(self):
        """An error event inside the stream fails the generation."""
        body = _sse({"choices": [{"delta": {"content": "a"}}]}, {"error": {"message": "boom"}})
        app, _ = _upstream(stream_body=body)
        with pytest.raises(HostModelError, match="boom"):
            await _generate(_host(app))


class TestListModels:
    """Tests for the upstream model catalogue."""

    @pytest.mark.asyncio
    async def test_fetches_models(self):
        app, _ = _upstream(models=[{"id": "gpt-a", "owned_by": "acme"}, {"object": "model"}])
        models = await _host(app).list_models()
        assert models == [ModelInfo(id="gpt-a", display_name="gpt-a", vendor="acme")]

    @pytest.mark.asyncio
    async def test_configured_models_skip_upstream(self):
        configured = [ModelInfo(id="local", display_name="Local", vendor="me")]
        app, _ = _upstream(models=[{"id": "remote"}])
        assert await _host(app, models=configured).list_models() == configured
