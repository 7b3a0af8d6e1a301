"""Parsers and collectors for SSE bodies produced by the dialect stream adapters."""

from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, AsyncIterator, Iterable, Optional, Union

from ..host.base import CancellationToken


@dataclass
class SSEFrame:
    """One SSE frame: optional ``event:`` name plus its ``data:`` payload."""

    event: Optional[str]
    data: str

    def json(self) -> Any:
        return json.loads(self.data)


def _as_text(raw: Union[bytes, str, Iterable[bytes]]) -> str:
    if isinstance(raw, bytes):
        return raw.decode("utf-8")
    if isinstance(raw, str):
        return raw
    return b"".join(raw).decode("utf-8")


def parse_sse_frames(raw: Union[bytes, str, Iterable[bytes]]) -> list[SSEFrame]:
    """Split an SSE body into frames."""
    frames = []
    for block in _as_text(raw).split("\n\n"):
        event = None
        data_lines = []
        for line in block.split("\n"):
            if line.startswith("event:"):
                event = line[6:].strip()
            elif line.startswith("data:"):
                data_lines.append(line[5:].strip())
        if data_lines:
            frames.append(SSEFrame(event=event, data="\n".join(data_lines)))
    return frames


def parse_sse_events(raw: Union[bytes, str, Iterable[bytes]]) -> list[dict[str, Any]]:
    """Decode every JSON ``data:`` payload, skipping the ``[DONE]`` sentinel."""
    return [frame.json() for frame in parse_sse_frames(raw) if frame.data != "[DONE]"]


async def collect_stream(stream: AsyncIterator[bytes]) -> bytes:
    """Drain an adapter's byte stream."""
    chunks = []
    async for chunk in stream:
        chunks.append(chunk)
    return b"".join(chunks)


async def collect_and_cancel(stream: AsyncIterator[bytes], token: CancellationToken, marker: bytes) -> bytes:
    """Drain a byte stream, cancelling ``token`` once a chunk contains ``marker``.

    Mimics a client that goes away after it has seen part of the output.
    """
    chunks = []
    async for chunk in stream:
        chunks.append(chunk)
        if marker in chunk:
            token.cancel()
    return b"".join(chunks)


async def aiter_parts(parts: Iterable[Any]) -> AsyncIterator[Any]:
    """Turn a list of stream parts (or byte chunks) into an async iterator."""
    for part in parts:
        yield part
