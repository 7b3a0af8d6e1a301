"""Translation between OpenAI Chat Completions and the canonical chat model.

This module handles:
1. Validating and normalizing Chat Completions requests
2. Building the non-streaming ``chat.completion`` object from a fragment stream
"""

import json
import logging
import time
import uuid
from typing import Any, AsyncIterator, Mapping, Optional

from ..core.exceptions import ValidationError
from ..core.stream_state import StopReasonTracker
from ..core.tokens import TokenAccountant
from ..core.utils import compact_json, widen_sampling_budget
from ..types.canonical import (
    CanonicalMessage,
    CanonicalRequest,
    CanonicalTool,
    ContentPart,
    Role,
    StreamPart,
    TextFragment,
    TextPart,
    ToolCallPart,
    ToolMode,
    ToolResultPart,
    Usage,
)
from ..types.chat import ChatCompletionResponse, ChatMessage, ToolCall, Usage as ChatUsage

logger = logging.getLogger("lmbridge")

FINISH_REASON_STOP = "stop"
FINISH_REASON_TOOL_CALLS = "tool_calls"

# role -> (canonical role, display name, text prefix)
OPENAI_ROLE_TABLE: dict[str, tuple[Role, str, str]] = {
    "user": (Role.USER, "User", ""),
    "assistant": (Role.ASSISTANT, "Assistant", ""),
    "developer": (Role.ASSISTANT, "Developer", "[DEVELOPER] "),
    "system": (Role.ASSISTANT, "System", "[SYSTEM] "),
    "tool": (Role.ASSISTANT, "Tool", "[TOOL] "),
    "function": (Role.ASSISTANT, "Function", "[FUNCTION] "),
}
DEFAULT_ROLE = (Role.USER, "User", "")

PASSTHROUGH_KEYS = (
    "audio",
    "frequency_penalty",
    "function_call",
    "functions",
    "logit_bias",
    "logprobs",
    "max_completion_tokens",
    "max_tokens",
    "metadata",
    "modalities",
    "n",
    "parallel_tool_calls",
    "prediction",
    "presence_penalty",
    "reasoning_effort",
    "response_format",
    "seed",
    "service_tier",
    "stop",
    "store",
    "stream",
    "stream_options",
    "temperature",
    "top_logprobs",
    "top_p",
    "user",
    "web_search_options",
)


def generate_chat_completion_id() -> str:
    """Generate a unique chat completion ID."""
    return f"chatcmpl-{uuid.uuid4().hex[:29]}"


def lookup_role(role: Any) -> tuple[Role, str, str]:
    """Return ``(canonical role, display name, prefix)``; unknown roles map to User."""
    return OPENAI_ROLE_TABLE.get(role, DEFAULT_ROLE)


def validate_chat_request(payload: Mapping[str, Any]) -> None:
    """Raise ``ValidationError`` if required Chat Completions fields are missing."""
    messages = payload.get("messages")
    if not isinstance(messages, list) or not messages:
        raise ValidationError(
            "The messages field is required",
            code="invalid_message_format",
            param="messages",
        )
    if not payload.get("model"):
        raise ValidationError("The model field is required", code="invalid_model", param="model")


def convert_content_part(part: Mapping[str, Any]) -> TextPart:
    """Fold one Chat Completions content part into text.

    Non-text parts keep their payload as JSON behind a bracketed label.
    """
    part_type = part.get("type")
    if part_type == "text":
        return TextPart(str(part.get("text", "")))
    if part_type == "image_url":
        return TextPart(f"[Image URL]: {compact_json(part.get('image_url'))}")
    if part_type == "input_audio":
        return TextPart(f"[Input Audio]: {compact_json(part.get('input_audio'))}")
    if part_type == "file":
        return TextPart(f"[File]: {compact_json(part.get('file'))}")
    if part_type == "refusal":
        return TextPart(f"[Refusal]: {part.get('refusal', '')}")
    return TextPart(f"[Unknown Content]: {compact_json(part)}")


def parse_tool_arguments(arguments: Any) -> Any:
    """Decode a JSON ``arguments`` string, keeping the raw value if it is not JSON."""
    if not isinstance(arguments, str):
        return arguments if arguments is not None else {}
    if not arguments:
        return {}
    try:
        return json.loads(arguments)
    except json.JSONDecodeError:
        return arguments


def _convert_tool_calls(tool_calls: list[Mapping[str, Any]]) -> list[ContentPart]:
    parts: list[ContentPart] = []
    for tc in tool_calls:
        function = tc.get("function") or {}
        parts.append(ToolCallPart(
            call_id=str(tc.get("id", "")),
            name=str(function.get("name", "")),
            input=parse_tool_arguments(function.get("arguments")),
        ))
    return parts


def convert_message(message: Mapping[str, Any]) -> CanonicalMessage:
    """Convert one Chat Completions message to a canonical message."""
    raw_role = message.get("role")
    role, name, prefix = lookup_role(raw_role)
    content = message.get("content")

    if raw_role == "tool" and message.get("tool_call_id"):
        if isinstance(content, list):
            result_parts = [convert_content_part(p) for p in content]
        else:
            result_parts = [TextPart("" if content is None else str(content))]
        return CanonicalMessage(
            role=Role.USER,
            name=name,
            content=[ToolResultPart(call_id=str(message["tool_call_id"]), content=result_parts)],
        )

    tool_calls = message.get("tool_calls") or []
    if isinstance(content, list):
        parts: list[ContentPart] = [convert_content_part(p) for p in content]
    elif isinstance(content, str):
        if not tool_calls:
            return CanonicalMessage(role=role, name=message.get("name") or name, content=prefix + content)
        parts = [TextPart(prefix + content)]
    else:
        parts = []

    parts.extend(_convert_tool_calls(tool_calls))
    if not parts:
        return CanonicalMessage(role=role, name=message.get("name") or name, content="")
    return CanonicalMessage(role=role, name=message.get("name") or name, content=parts)


def convert_tools(tools: Optional[list[Mapping[str, Any]]]) -> list[CanonicalTool]:
    result = []
    for tool in tools or []:
        function = tool.get("function") or {}
        if not function.get("name"):
            continue
        result.append(CanonicalTool(
            name=function["name"],
            description=function.get("description") or "",
            input_schema=function.get("parameters"),
        ))
    return result


def convert_tool_choice(tool_choice: Any) -> ToolMode:
    """``required`` maps to REQUIRED; ``auto``, ``none`` and named tools map to AUTO."""
    if tool_choice == "required":
        return ToolMode.REQUIRED
    return ToolMode.AUTO


async def normalize_chat_request(
    payload: Mapping[str, Any],
    accountant: TokenAccountant,
) -> tuple[CanonicalRequest, int]:
    """Normalize a Chat Completions request.

    Args:
        payload: Parsed request body.
        accountant: Token accountant for the resolved model.

    Returns:
        The canonical request and its input token count.

    Raises:
        ValidationError: If ``messages`` or ``model`` is missing.
    """
    validate_chat_request(payload)

    messages = [convert_message(m) for m in payload["messages"]]
    passthrough = {key: payload[key] for key in PASSTHROUGH_KEYS if key in payload}
    widen_sampling_budget(passthrough)

    request = CanonicalRequest(
        messages=messages,
        tool_mode=convert_tool_choice(payload.get("tool_choice")),
        tools=convert_tools(payload.get("tools")),
        passthrough_options=passthrough,
    )
    input_tokens = await accountant.count_messages(messages)
    logger.debug(
        f"Normalized chat request: messages={len(messages)}, tools={len(request.tools)}, "
        f"input_tokens={input_tokens}"
    )
    return request, input_tokens


def build_usage(usage: Usage) -> ChatUsage:
    return {
        "completion_tokens": usage.output_tokens,
        "prompt_tokens": usage.input_tokens,
        "total_tokens": usage.total_tokens,
    }


async def synthesize_chat_completion(
    stream: AsyncIterator[StreamPart],
    *,
    model: str,
    accountant: TokenAccountant,
    input_tokens: int,
    completion_id: Optional[str] = None,
) -> ChatCompletionResponse:
    """Consume a fragment stream and build a ``chat.completion`` object."""
    text = ""
    tool_calls: list[ToolCall] = []
    usage = Usage(input_tokens=input_tokens)
    finish_reason = StopReasonTracker(FINISH_REASON_STOP, FINISH_REASON_TOOL_CALLS)

    async for part in stream:
        finish_reason.observe(part)
        usage.output_tokens += await accountant.count_fragment(part)
        if isinstance(part, TextFragment):
            text += part.value
        else:
            tool_calls.append({
                "id": part.call_id,
                "type": "function",
                "function": {"name": part.name, "arguments": compact_json(part.input)},
            })

    message: ChatMessage = {"role": "assistant", "content": text, "refusal": None}
    if tool_calls:
        message["tool_calls"] = tool_calls

    return {
        "id": completion_id or generate_chat_completion_id(),
        "object": "chat.completion",
        "created": int(time.time()),
        "model": model,
        "choices": [{
            "index": 0,
            "message": message,
            "logprobs": None,
            "finish_reason": finish_reason.value,
        }],
        "usage": build_usage(usage),
    }
