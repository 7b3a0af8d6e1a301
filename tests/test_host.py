"""Tests for the host model boundary and the echo backend."""

import pytest

from lmbridge.core.exceptions import ErrorKind, HostModelError, RequestCancelledError
from lmbridge.host import (
    CancellationToken,
    EchoHostModel,
    RequestOptions,
    guard_stream,
    prime_stream,
)
from lmbridge.testing import ScriptedHostModel, aiter_parts
from lmbridge.types.canonical import (
    CanonicalMessage,
    CanonicalTool,
    Role,
    TextFragment,
    ToolCallFragment,
    ToolMode,
)


async def _drain(stream):
    return [part async for part in stream]


def _user(text):
    return CanonicalMessage(role=Role.USER, name="User", content=text)


class TestGuardStream:
    """Tests for guard_stream."""

    @pytest.mark.asyncio
    async def test_passes_fragments_through(self):
        token = CancellationToken()
        parts = await _drain(guard_stream(aiter_parts([TextFragment("a"), TextFragment("b")]), token))
        assert parts == [TextFragment("a"), TextFragment("b")]

    @pytest.mark.asyncio
    async def test_cancel_before_start(self):
        """A token cancelled up front fails the stream immediately."""
        token = CancellationToken()
        token.cancel()
        with pytest.raises(RequestCancelledError):
            await _drain(guard_stream(aiter_parts([TextFragment("a")]), token))

    @pytest.mark.asyncio
    async def test_cancel_mid_stream_closes_source(self):
        """Cancelling between fragments raises and closes the host stream."""
        host = ScriptedHostModel()
        host.enqueue(TextFragment("a"), TextFragment("b"), TextFragment("c"))
        token = CancellationToken()
        stream = guard_stream(host.send_request("test-model", [], RequestOptions(), token), token)

        received = []
        with pytest.raises(RequestCancelledError):
            async for part in stream:
                received.append(part)
                token.cancel()
        assert received == [TextFragment("a")]
        assert host.closed_streams == 1


class TestPrimeStream:
    """Tests for prime_stream."""

    @pytest.mark.asyncio
    async def test_first_fragment_is_replayed(self):
        primed = await prime_stream(aiter_parts([TextFragment("a"), TextFragment("b")]))
        assert await _drain(primed) == [TextFragment("a"), TextFragment("b")]

    @pytest.mark.asyncio
    async def test_empty_stream(self):
        primed = await prime_stream(aiter_parts([]))
        assert await _drain(primed) == []

    @pytest.mark.asyncio
    async def test_startup_error_raises_early(self):
        """An error before the first fragment surfaces from prime_stream itself."""
        host = ScriptedHostModel()
        host.enqueue(error=HostModelError(ErrorKind.NO_PERMISSIONS, "denied"))
        with pytest.raises(HostModelError, match="denied"):
            await prime_stream(host.send_request("test-model", [], RequestOptions(), CancellationToken()))


class TestEchoHostModel:
    """Tests for EchoHostModel."""

    @pytest.mark.asyncio
    async def test_echoes_last_user_message(self):
        host = EchoHostModel()
        messages = [_user("first"), CanonicalMessage(role=Role.ASSISTANT, name="Assistant", content="x"), _user("hi there")]
        parts = await _drain(host.send_request("echo", messages, RequestOptions(), CancellationToken()))
        assert "".join(p.value for p in parts) == "hi there"
        assert len(parts) == 2

    @pytest.mark.asyncio
    async def test_required_tool_call(self):
        """A required tool mode calls the first offered tool."""
        host = EchoHostModel()
        options = RequestOptions(tool_mode=ToolMode.REQUIRED, tools=[CanonicalTool(name="lookup")])
        parts = await _drain(host.send_request("echo", [_user("hi")], options, CancellationToken()))
        assert len(parts) == 1
        assert isinstance(parts[0], ToolCallFragment)
        assert parts[0].name == "lookup"
        assert parts[0].input == {}

    @pytest.mark.asyncio
    async def test_catalogue_and_counting(self):
        host = EchoHostModel()
        models = await host.list_models()
        assert [m.id for m in models] == ["echo"]
        assert await host.count_tokens("echo", "Hello") == 2
        assert await host.count_tokens("echo", "") == 0
