"""Tests for the streaming response wrapper and client disconnect handling."""

import pytest
from starlette.requests import Request

from lmbridge.api.routes import (
    chat_completions,
    claude_messages_endpoint,
    count_tokens_endpoint,
    create_response,
    messages_endpoint,
)
from lmbridge.api.routes.common import open_host_stream, streaming_response
from lmbridge.chat import adapt_fragments_to_chat
from lmbridge.host import CancellationToken
from lmbridge.main import create_app
from lmbridge.testing import aiter_parts, collect_stream, parse_sse_events
from lmbridge.types.canonical import CanonicalMessage, CanonicalRequest, Role, TextFragment


def _disconnected_request(app, path):
    """A request whose client hung up before sending the body."""

    async def receive():
        return {"type": "http.disconnect"}

    scope = {
        "type": "http",
        "method": "POST",
        "path": path,
        "headers": [(b"content-type", b"application/json")],
        "query_string": b"",
        "client": ("testclient", 50000),
        "app": app,
    }
    return Request(scope, receive)


class TestStreamingResponse:
    """Tests for streaming_response."""

    def test_sse_headers(self):
        response = streaming_response(aiter_parts([]), CancellationToken(), "req")
        assert response.media_type == "text/event-stream"
        assert response.headers["cache-control"] == "no-cache"
        assert response.headers["x-accel-buffering"] == "no"

    @pytest.mark.asyncio
    async def test_completed_stream_keeps_token(self):
        token = CancellationToken()
        response = streaming_response(aiter_parts([b"data: a\n\n", b"data: b\n\n"]), token, "req")
        assert await collect_stream(response.body_iterator) == b"data: a\n\ndata: b\n\n"
        assert not token.cancelled

    @pytest.mark.asyncio
    async def test_closing_early_cancels_token(self):
        """Closing the body before it is exhausted cancels the host call."""
        token = CancellationToken()
        response = streaming_response(aiter_parts([b"data: a\n\n", b"data: b\n\n"]), token, "req")
        body = response.body_iterator
        assert await body.__anext__() == b"data: a\n\n"
        await body.aclose()
        assert token.cancelled

    @pytest.mark.asyncio
    async def test_disconnect_stops_host_stream(self, host, accountant):
        """After a disconnect the host stream stops and the adapter reports the cancellation."""
        host.enqueue(TextFragment("a"), TextFragment("b"), TextFragment("c"), delay_s=0.01)
        token = CancellationToken()
        canonical = CanonicalRequest(messages=[CanonicalMessage(role=Role.USER, name="User", content="Hi")])
        fragments = await open_host_stream(host, "test-model", canonical, token, stream=True)
        events = adapt_fragments_to_chat("chatcmpl-test", "test-model", fragments, accountant, 0)

        body = streaming_response(events, token, "req").body_iterator
        first = parse_sse_events(await body.__anext__())
        assert first[0]["choices"][0]["delta"]["content"] == "a"
        await body.aclose()
        assert token.cancelled

        rest = parse_sse_events(await collect_stream(events))
        assert rest[-1]["error"]["message"] == "Request was cancelled by the client"
        assert all("choices" not in chunk for chunk in rest)
        assert host.closed_streams == 1


class TestClientDisconnect:
    """A client that hangs up before its body is read gets 499."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "handler,path",
        [
            (chat_completions, "/openai/v1/chat/completions"),
            (create_response, "/openai/v1/responses"),
            (messages_endpoint, "/anthropic/v1/messages"),
            (claude_messages_endpoint, "/anthropic/claude/v1/messages"),
            (count_tokens_endpoint, "/anthropic/v1/messages/count_tokens"),
        ],
    )
    async def test_returns_499(self, host, handler, path):
        app = create_app({"logging": {"level": "DEBUG"}}, host=host)
        response = await handler(_disconnected_request(app, path))
        assert response.status_code == 499
        assert host.calls == []
