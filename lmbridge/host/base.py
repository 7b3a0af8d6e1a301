"""Host model boundary.

The host model is the single chat-completion capability fronted by every
dialect. Backends implement ``HostModel``; the dispatch handlers receive
an instance explicitly (it lives on ``app.state``) so tests can swap in a
scripted backend.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Optional

from ..core.exceptions import RequestCancelledError
from ..types.canonical import CanonicalMessage, CanonicalRequest, CanonicalTool, StreamPart, ToolMode

logger = logging.getLogger("lmbridge")


@dataclass
class ModelInfo:
    """A model exposed by the host backend."""
    id: str
    display_name: str
    vendor: str
    family: str = ""
    max_input_tokens: Optional[int] = None


@dataclass
class RequestOptions:
    """Options passed alongside the canonical messages."""
    tool_mode: ToolMode = ToolMode.AUTO
    tools: list[CanonicalTool] = field(default_factory=list)
    passthrough_options: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_request(cls, request: CanonicalRequest) -> "RequestOptions":
        return cls(
            tool_mode=request.tool_mode,
            tools=list(request.tools),
            passthrough_options=dict(request.passthrough_options),
        )


class CancellationToken:
    """Caller-driven cancellation handle for one host model call."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise RequestCancelledError("Request was cancelled by the client")


class HostModel(ABC):
    """Interface every host model backend implements."""

    @abstractmethod
    def send_request(
        self,
        model_id: str,
        messages: list[CanonicalMessage],
        options: RequestOptions,
        cancellation: CancellationToken,
    ) -> AsyncIterator[StreamPart]:
        """Start a generation and return its ordered fragment stream.

        The stream is consumed once. Errors are raised as ``BridgeError``
        subclasses, either immediately or while iterating.
        """

    @abstractmethod
    async def count_tokens(self, model_id: str, text: str) -> int:
        """Count tokens of ``text`` for the given model."""

    @abstractmethod
    async def list_models(self) -> list[ModelInfo]:
        """Return the models this backend can serve."""

    async def aclose(self) -> None:
        """Release backend resources."""
        return None


async def guard_stream(
    stream: AsyncIterator[StreamPart],
    cancellation: CancellationToken,
) -> AsyncIterator[StreamPart]:
    """Re-raise cancellation between fragments.

    Cancelling mid-stream surfaces as ``RequestCancelledError`` so the
    dialect's stream error path runs instead of a silent truncation.
    """
    try:
        cancellation.raise_if_cancelled()
        async for part in stream:
            cancellation.raise_if_cancelled()
            yield part
    finally:
        aclose = getattr(stream, "aclose", None)
        if aclose is not None:
            await aclose()


async def prime_stream(stream: AsyncIterator[StreamPart]) -> AsyncIterator[StreamPart]:
    """Pull the first fragment so startup errors surface before headers are sent.

    Returns an iterator that yields the primed fragment followed by the
    rest of ``stream``.
    """
    iterator = stream.__aiter__()
    try:
        first = await iterator.__anext__()
    except StopAsyncIteration:
        first = None
        exhausted = True
    else:
        exhausted = False

    async def _chained() -> AsyncIterator[StreamPart]:
        if exhausted:
            return
        yield first
        async for part in iterator:
            yield part

    return _chained()
