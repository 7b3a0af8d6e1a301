"""Host model backed by an OpenAI-compatible ``/chat/completions`` upstream.

The canonical request is sent as a streaming chat completion and the
upstream SSE stream is decoded back into text and tool call fragments.
Each request makes exactly one upstream call; there are no retries.
"""

import json
import logging
from typing import Any, AsyncIterator, Optional

import httpx

from ..core.exceptions import ErrorKind, HostModelError
from ..core.sse import detect_sse_stream_error, iter_sse_data
from ..core.tokens import estimate_tokens
from ..core.utils import compact_json
from ..types.canonical import (
    CanonicalMessage,
    StreamPart,
    TextFragment,
    TextPart,
    ToolCallFragment,
    ToolCallPart,
    ToolMode,
    ToolResultPart,
)
from .base import CancellationToken, HostModel, ModelInfo, RequestOptions

logger = logging.getLogger("lmbridge")

DEFAULT_TIMEOUT = 60.0

# Passthrough options the upstream understands, forwarded as is.
UPSTREAM_OPTION_KEYS = (
    "frequency_penalty",
    "logit_bias",
    "max_completion_tokens",
    "max_tokens",
    "parallel_tool_calls",
    "presence_penalty",
    "response_format",
    "seed",
    "stop",
    "temperature",
    "top_p",
    "user",
)

STATUS_ERROR_KINDS = {
    400: ErrorKind.INVALID_REQUEST,
    401: ErrorKind.NO_PERMISSIONS,
    403: ErrorKind.NO_PERMISSIONS,
    404: ErrorKind.NOT_FOUND,
    429: ErrorKind.QUOTA_EXCEEDED,
}


def _message_text(parts: list[Any]) -> str:
    return "".join(part.value for part in parts if isinstance(part, TextPart))


def to_openai_messages(messages: list[CanonicalMessage]) -> list[dict[str, Any]]:
    """Render canonical messages as OpenAI chat messages."""
    result: list[dict[str, Any]] = []
    for message in messages:
        role = message.role.value
        if isinstance(message.content, str):
            result.append({"role": role, "content": message.content})
            continue

        tool_calls = [
            {
                "id": part.call_id,
                "type": "function",
                "function": {"name": part.name, "arguments": compact_json(part.input)},
            }
            for part in message.content
            if isinstance(part, ToolCallPart)
        ]
        text = _message_text(message.content)
        if text or tool_calls:
            entry: dict[str, Any] = {"role": role, "content": text or None}
            if tool_calls and role == "assistant":
                entry["tool_calls"] = tool_calls
            result.append(entry)

        for part in message.content:
            if isinstance(part, ToolResultPart):
                result.append({
                    "role": "tool",
                    "tool_call_id": part.call_id,
                    "content": _message_text(part.content),
                })
    return result


def build_upstream_payload(
    model_id: str,
    messages: list[CanonicalMessage],
    options: RequestOptions,
) -> dict[str, Any]:
    """Build the chat completion request body sent upstream."""
    payload: dict[str, Any] = {
        "model": model_id,
        "messages": to_openai_messages(messages),
        "stream": True,
    }
    if options.tools:
        payload["tools"] = [
            {
                "type": "function",
                "function": {
                    "name": tool.name,
                    "description": tool.description,
                    "parameters": tool.input_schema or {"type": "object", "properties": {}},
                },
            }
            for tool in options.tools
        ]
        payload["tool_choice"] = "required" if options.tool_mode == ToolMode.REQUIRED else "auto"

    passthrough = options.passthrough_options
    for key in UPSTREAM_OPTION_KEYS:
        if passthrough.get(key) is not None:
            payload[key] = passthrough[key]
    if "stop" not in payload and passthrough.get("stop_sequences"):
        payload["stop"] = passthrough["stop_sequences"]
    return payload


def _error_from_status(status_code: int, body: bytes) -> HostModelError:
    text = body.decode("utf-8", errors="replace")
    kind = STATUS_ERROR_KINDS.get(status_code, ErrorKind.UNKNOWN)
    if kind == ErrorKind.UNKNOWN:
        return HostModelError(kind, f"Request Failed: {status_code} {text}")
    message = text
    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, dict) and isinstance(parsed.get("error"), dict):
        message = parsed["error"].get("message") or text
    return HostModelError(kind, message or f"Upstream returned status {status_code}")


class _ToolCallAccumulator:
    """Joins streamed tool call deltas by index until they are complete."""

    def __init__(self) -> None:
        self.pending: dict[int, dict[str, str]] = {}

    def add(self, delta: dict[str, Any]) -> None:
        index = delta.get("index", len(self.pending))
        entry = self.pending.setdefault(index, {"id": "", "name": "", "arguments": ""})
        if delta.get("id"):
            entry["id"] = delta["id"]
        function = delta.get("function") or {}
        if function.get("name"):
            entry["name"] = function["name"]
        if function.get("arguments"):
            entry["arguments"] += function["arguments"]

    def flush(self) -> list[ToolCallFragment]:
        fragments = []
        for _, entry in sorted(self.pending.items()):
            arguments = entry["arguments"]
            try:
                parsed = json.loads(arguments) if arguments else {}
            except json.JSONDecodeError:
                logger.warning("Upstream tool call %s has invalid JSON arguments", entry["id"])
                parsed = arguments
            fragments.append(ToolCallFragment(call_id=entry["id"], name=entry["name"], input=parsed))
        self.pending.clear()
        return fragments


class OpenAIUpstreamHostModel(HostModel):
    """Host model that streams from an OpenAI-compatible server."""

    def __init__(
        self,
        api_base: str,
        api_key: Optional[str] = None,
        *,
        models: Optional[list[ModelInfo]] = None,
        timeout: float = DEFAULT_TIMEOUT,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_base = api_base.rstrip("/")
        self.api_key = api_key
        self.models = models
        self.timeout = timeout
        self.transport = transport

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _client(self, timeout: httpx.Timeout) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=timeout, transport=self.transport, follow_redirects=True)

    async def send_request(
        self,
        model_id: str,
        messages: list[CanonicalMessage],
        options: RequestOptions,
        cancellation: CancellationToken,
    ) -> AsyncIterator[StreamPart]:
        url = f"{self.api_base}/chat/completions"
        payload = build_upstream_payload(model_id, messages, options)
        stream_timeout = httpx.Timeout(
            connect=self.timeout, read=None, write=self.timeout, pool=self.timeout
        )
        logger.debug(f"Sending streaming request to {url} for model={model_id}")

        async with self._client(stream_timeout) as client:
            request = client.build_request("POST", url, headers=self._headers(), json=payload)
            try:
                resp = await client.send(request, stream=True)
            except httpx.HTTPError as exc:
                logger.error(f"Failed to send streaming request to {url}: {exc} (type: {exc.__class__.__name__})")
                raise HostModelError(ErrorKind.UNKNOWN, f"Upstream request failed: {exc}", cause=exc) from exc

            try:
                if resp.status_code >= 400:
                    data = await resp.aread()
                    logger.warning(f"Streaming request to {url} returned error status {resp.status_code}")
                    raise _error_from_status(resp.status_code, data)

                tool_calls = _ToolCallAccumulator()
                async for line in resp.aiter_lines():
                    cancellation.raise_if_cancelled()
                    for data_str in iter_sse_data(line):
                        if data_str == "[DONE]":
                            continue
                        try:
                            event = json.loads(data_str)
                        except json.JSONDecodeError:
                            logger.debug(f"Upstream stream: failed to parse: {data_str[:100]}")
                            continue

                        stream_error = detect_sse_stream_error(event)
                        if stream_error:
                            raise HostModelError(ErrorKind.UNKNOWN, stream_error)

                        for choice in event.get("choices") or []:
                            delta = choice.get("delta") or {}
                            content = delta.get("content")
                            if content:
                                for fragment in tool_calls.flush():
                                    yield fragment
                                yield TextFragment(content)
                            for tc in delta.get("tool_calls") or []:
                                tool_calls.add(tc)
                            if choice.get("finish_reason"):
                                for fragment in tool_calls.flush():
                                    yield fragment

                for fragment in tool_calls.flush():
                    yield fragment
            finally:
                await resp.aclose()

    async def count_tokens(self, model_id: str, text: str) -> int:
        return estimate_tokens(text)

    async def list_models(self) -> list[ModelInfo]:
        if self.models:
            return list(self.models)

        url = f"{self.api_base}/models"
        async with self._client(httpx.Timeout(self.timeout)) as client:
            try:
                resp = await client.get(url, headers=self._headers())
            except httpx.HTTPError as exc:
                raise HostModelError(ErrorKind.UNKNOWN, f"Upstream request failed: {exc}", cause=exc) from exc
        if resp.status_code >= 400:
            raise _error_from_status(resp.status_code, resp.content)

        models = []
        for entry in resp.json().get("data") or []:
            model_id = entry.get("id")
            if not model_id:
                continue
            models.append(ModelInfo(
                id=model_id,
                display_name=model_id,
                vendor=entry.get("owned_by") or "openai",
            ))
        return models
