"""SSE (Server-Sent Events) framing and parsing utilities."""

import json
from typing import Any, Iterator, Optional


SSE_DONE = b"data: [DONE]\n\n"

STREAMING_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}


def format_sse_event(event_type: str, data: Any) -> bytes:
    """Frame a named SSE event."""
    json_str = json.dumps(data, ensure_ascii=False)
    return f"event: {event_type}\ndata: {json_str}\n\n".encode("utf-8")


def format_sse_data(data: Any) -> bytes:
    """Frame an unnamed ``data:`` SSE event."""
    json_str = json.dumps(data, ensure_ascii=False)
    return f"data: {json_str}\n\n".encode("utf-8")


def iter_sse_data(text: str) -> Iterator[str]:
    """Yield the payload of every ``data:`` line in a block of SSE text."""
    for line in text.split("\n"):
        line = line.strip()
        if not line.startswith("data:"):
            continue
        yield line[5:].strip()


def detect_sse_stream_error(payload: Any) -> Optional[str]:
    """
    Check whether a parsed SSE payload is an error event.

    Returns an error message if an error is detected, None otherwise.

    Detects patterns like:
    - Anthropic-style: {"type":"error","error":{...}}
    - OpenAI-style: {"error":{...}}
    """
    if not isinstance(payload, dict):
        return None

    if payload.get("type") == "error":
        error_obj = payload.get("error") or {}
        if isinstance(error_obj, dict):
            return error_obj.get("message") or str(error_obj)
        return str(error_obj) or "unknown error"

    error_obj = payload.get("error")
    if isinstance(error_obj, dict):
        return error_obj.get("message") or str(error_obj)

    return None
