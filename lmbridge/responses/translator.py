"""Translation between the OpenAI Responses API and the canonical chat model.

This module handles:
1. Validating and normalizing Responses API requests
2. Building Responses API objects (message and function_call items, usage)
3. The non-streaming response synthesizer
"""

import logging
import time
from typing import Any, AsyncIterator, Mapping, Optional
from uuid import uuid4

from ..chat.translator import lookup_role, parse_tool_arguments
from ..core.exceptions import ValidationError
from ..core.tokens import TokenAccountant
from ..core.utils import compact_json, widen_sampling_budget
from ..types.canonical import (
    CanonicalMessage,
    CanonicalRequest,
    CanonicalTool,
    Role,
    StreamPart,
    TextFragment,
    TextPart,
    ToolCallFragment,
    ToolCallPart,
    ToolMode,
    ToolResultPart,
    Usage,
)
from ..types.responses import (
    FunctionCallItem,
    MessageItem,
    OutputItem,
    OutputText,
    ResponseObject,
    ResponseUsage,
)

logger = logging.getLogger("lmbridge")


def generate_response_id() -> str:
    """Generate a unique response ID."""
    return f"resp_{uuid4().hex[:32]}"


def generate_message_id() -> str:
    """Generate a unique message ID."""
    return f"msg_{uuid4().hex[:24]}"


def generate_function_call_item_id() -> str:
    """Generate a unique function call item ID."""
    return f"fc_{uuid4().hex[:24]}"


# =============================================================================
# Responses API → Canonical
# =============================================================================


def validate_responses_request(payload: Mapping[str, Any]) -> None:
    """Raise ``ValidationError`` if ``model`` or ``input`` is missing or empty."""
    input_ = payload.get("input")
    if input_ is None:
        raise ValidationError("The input field is required", param="input")
    if isinstance(input_, str) and not input_.strip():
        raise ValidationError("The input field cannot be empty", param="input")
    if isinstance(input_, list) and not input_:
        raise ValidationError("The input array cannot be empty", param="input")
    if not payload.get("model"):
        raise ValidationError("The model field is required", param="model")


def _convert_input_part(part: Mapping[str, Any], prefix: str) -> Optional[TextPart]:
    part_type = part.get("type")
    if part_type == "input_text":
        return TextPart(prefix + part["text"]) if part.get("text") else None
    if part_type == "output_text":
        return TextPart(part["text"]) if part.get("text") else None
    if part_type == "input_image":
        source = part.get("image_url") or part.get("file_id")
        return TextPart(f"[Image URL]: {source}") if source else None
    if part_type == "input_file":
        if part.get("file_url"):
            return TextPart(f"[File URL]: {part['file_url']}")
        return TextPart(f"[File]: {compact_json(part)}")
    if part_type == "input_audio":
        return TextPart(f"[Input Audio]: {compact_json(part.get('input_audio', part))}")
    if part_type == "refusal":
        return TextPart(f"[Refusal]: {part.get('refusal', '')}")
    return TextPart(f"[Unknown Content]: {compact_json(part)}")


def _convert_message_item(item: Mapping[str, Any]) -> CanonicalMessage:
    role, name, prefix = lookup_role(item.get("role"))
    content = item.get("content")
    if isinstance(content, str):
        return CanonicalMessage(role=role, name=name, content=prefix + content)
    parts = []
    for part in content or []:
        converted = _convert_input_part(part, prefix)
        if converted is not None:
            parts.append(converted)
    return CanonicalMessage(role=role, name=name, content=parts if parts else prefix)


def convert_input_item(item: Mapping[str, Any]) -> CanonicalMessage:
    """Convert one Responses input item to a canonical message."""
    item_type = item.get("type", "message")
    if item_type == "message":
        return _convert_message_item(item)
    if item_type == "function_call":
        return CanonicalMessage(
            role=Role.ASSISTANT,
            name="Assistant",
            content=[ToolCallPart(
                call_id=str(item.get("call_id", "")),
                name=str(item.get("name", "")),
                input=parse_tool_arguments(item.get("arguments")),
            )],
        )
    if item_type == "function_call_output":
        output = item.get("output")
        text = output if isinstance(output, str) else compact_json(output)
        return CanonicalMessage(
            role=Role.USER,
            name="Tool",
            content=[ToolResultPart(call_id=str(item.get("call_id", "")), content=[TextPart(text)])],
        )
    return CanonicalMessage(role=Role.USER, name="User", content=f"[Unknown Item]: {compact_json(item)}")


# Built-in tool types and the sub-fields folded into their stand-in schema.
_BUILTIN_TOOLS = {
    "web_search": ("Web search", ("user_location", "search_context_size", "filters")),
    "web_search_preview": ("Web search", ("user_location", "search_context_size")),
    "code_interpreter": ("Code execution", ("container",)),
    "computer_use_preview": ("Computer use", ("display_width", "display_height", "environment")),
    "file_search": ("File search", ("vector_store_ids", "max_num_results", "filters")),
    "image_generation": ("Image generation", ("size", "quality", "background")),
    "local_shell": ("Bash shell execution", ()),
    "mcp": ("MCP server", ("server_label", "server_url", "allowed_tools")),
}


def convert_builtin_tool(tool: Mapping[str, Any]) -> CanonicalTool:
    """Describe a built-in tool the host model cannot run natively."""
    tool_type = str(tool.get("type"))
    label, fields = _BUILTIN_TOOLS.get(tool_type, ("Built-in", ()))
    schema = {key: tool[key] for key in fields if tool.get(key) is not None}
    return CanonicalTool(
        name=tool_type,
        description=f"{label} tool. Type: {tool_type}",
        input_schema=schema or None,
    )


def convert_tools(tools: Optional[list[Mapping[str, Any]]]) -> list[CanonicalTool]:
    """Convert function tools (nested or flat) and describe built-in ones."""
    result = []
    for tool in tools or []:
        if tool.get("type") != "function":
            result.append(convert_builtin_tool(tool))
            continue
        function = tool.get("function") if isinstance(tool.get("function"), Mapping) else tool
        if not function.get("name"):
            continue
        result.append(CanonicalTool(
            name=function["name"],
            description=function.get("description") or "",
            input_schema=function.get("parameters"),
        ))
    return result


def convert_tool_choice(tool_choice: Any) -> ToolMode:
    """``required`` and a named function map to REQUIRED; everything else to AUTO."""
    if tool_choice == "required":
        return ToolMode.REQUIRED
    if isinstance(tool_choice, Mapping) and tool_choice.get("type") == "function":
        return ToolMode.REQUIRED
    return ToolMode.AUTO


def convert_options(payload: Mapping[str, Any]) -> dict[str, Any]:
    options: dict[str, Any] = {}
    for key in ("temperature", "top_p", "parallel_tool_calls", "stream", "metadata", "user", "store"):
        if payload.get(key) is not None:
            options[key] = payload[key]
    if payload.get("max_output_tokens") is not None:
        options["max_tokens"] = payload["max_output_tokens"]
    widen_sampling_budget(options, ("max_tokens",))
    return options


async def normalize_responses_request(
    payload: Mapping[str, Any],
    accountant: TokenAccountant,
) -> tuple[CanonicalRequest, int]:
    """Normalize a Responses API request.

    Returns:
        The canonical request and its input token count.

    Raises:
        ValidationError: If ``input`` or ``model`` is missing or empty.
    """
    validate_responses_request(payload)

    messages: list[CanonicalMessage] = []
    if payload.get("instructions"):
        messages.append(CanonicalMessage(
            role=Role.ASSISTANT, name="System", content=f"[SYSTEM] {payload['instructions']}"
        ))

    input_ = payload["input"]
    if isinstance(input_, str):
        messages.append(CanonicalMessage(role=Role.USER, name="User", content=input_))
    else:
        messages.extend(convert_input_item(item) for item in input_)

    request = CanonicalRequest(
        messages=messages,
        tool_mode=convert_tool_choice(payload.get("tool_choice")),
        tools=convert_tools(payload.get("tools")),
        passthrough_options=convert_options(payload),
    )
    input_tokens = await accountant.count_messages(messages)
    logger.debug(
        f"Normalized responses request: messages={len(messages)}, tools={len(request.tools)}, "
        f"input_tokens={input_tokens}"
    )
    return request, input_tokens


# =============================================================================
# Canonical → Responses API
# =============================================================================


def build_output_text(text: str) -> OutputText:
    return {"type": "output_text", "text": text, "annotations": []}


def build_message_item(message_id: str, text: Optional[str], status: str) -> MessageItem:
    """Build the assistant message item; ``text=None`` means no content part yet."""
    return {
        "type": "message",
        "id": message_id,
        "status": status,
        "role": "assistant",
        "content": [] if text is None else [build_output_text(text)],
    }


def build_function_call_item(item_id: str, part: ToolCallFragment, status: str) -> FunctionCallItem:
    return {
        "type": "function_call",
        "id": item_id,
        "call_id": part.call_id,
        "name": part.name,
        "arguments": compact_json(part.input) if status == "completed" else "",
        "status": status,
    }


def convert_usage(usage: Usage) -> ResponseUsage:
    return {
        "input_tokens": usage.input_tokens,
        "input_tokens_details": {"cached_tokens": 0},
        "output_tokens": usage.output_tokens,
        "output_tokens_details": {"reasoning_tokens": 0},
        "total_tokens": usage.total_tokens,
    }


def build_response_object(
    response_id: str,
    model: str,
    request: Mapping[str, Any],
    *,
    status: str,
    created_at: int,
    output: list[OutputItem],
    usage: Optional[ResponseUsage] = None,
) -> ResponseObject:
    """Build a response object, echoing request configuration with API defaults."""
    reasoning = request.get("reasoning") or {}
    tool_choice = request.get("tool_choice")
    response: ResponseObject = {
        "id": response_id,
        "object": "response",
        "created_at": created_at,
        "status": status,
        "error": None,
        "incomplete_details": None,
        "instructions": request.get("instructions") or None,
        "max_output_tokens": request.get("max_output_tokens") or None,
        "model": model,
        "output": output,
        "parallel_tool_calls": request.get("parallel_tool_calls", True),
        "previous_response_id": request.get("previous_response_id"),
        "reasoning": {
            "effort": reasoning.get("effort") or None,
            "summary": reasoning.get("summary") or None,
        },
        "store": request.get("store", True),
        "temperature": request.get("temperature", 1.0),
        "text": {"format": {"type": "text"}},
        "tool_choice": tool_choice if isinstance(tool_choice, (str, dict)) else "auto",
        "tools": request.get("tools") or [],
        "top_p": request.get("top_p", 1.0),
        "truncation": request.get("truncation") or "disabled",
        "usage": usage,
        "user": request.get("user"),
        "metadata": request.get("metadata") or {},
    }
    if status == "completed":
        response["completed_at"] = int(time.time())
    return response


async def synthesize_response(
    stream: AsyncIterator[StreamPart],
    *,
    model: str,
    request: Mapping[str, Any],
    accountant: TokenAccountant,
    input_tokens: int,
    response_id: Optional[str] = None,
) -> ResponseObject:
    """Consume a fragment stream and build a completed response object.

    The message item always comes first; each tool call becomes its own
    ``function_call`` item after it.
    """
    created_at = int(time.time())
    text = ""
    function_calls: list[OutputItem] = []
    usage = Usage(input_tokens=input_tokens)

    async for part in stream:
        usage.output_tokens += await accountant.count_fragment(part)
        if isinstance(part, TextFragment):
            text += part.value
        else:
            function_calls.append(build_function_call_item(generate_function_call_item_id(), part, "completed"))

    output: list[OutputItem] = [build_message_item(generate_message_id(), text, "completed")]
    output.extend(function_calls)
    return build_response_object(
        response_id or generate_response_id(),
        model,
        request,
        status="completed",
        created_at=created_at,
        output=output,
        usage=convert_usage(usage),
    )
