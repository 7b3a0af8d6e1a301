"""Translation between Anthropic Messages and the canonical chat model.

Handles request validation and normalization, and builds the non-streaming
Anthropic ``message`` object from a host model fragment stream.
"""

import logging
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
from ..types.chat import AnthropicContentBlock, AnthropicMessage, AnthropicUsage

logger = logging.getLogger("lmbridge")

STOP_REASON_END_TURN = "end_turn"
STOP_REASON_TOOL_USE = "tool_use"

PASSTHROUGH_KEYS = (
    "container",
    "mcp_servers",
    "metadata",
    "service_tier",
    "stop_sequences",
    "stream",
    "temperature",
    "thinking",
    "top_k",
    "top_p",
)

# Labels for block types that are folded into text with their JSON payload.
_LABELED_BLOCKS = {
    "image": "[Image]",
    "document": "[Document]",
    "thinking": "[Thinking]",
    "redacted_thinking": "[Redacted Thinking]",
    "server_tool_use": "[Server Tool Use]",
    "web_search_tool_result": "[Web Search Tool Result]",
}


def generate_message_id() -> str:
    """Generate a unique message ID."""
    return f"msg_{uuid.uuid4().hex[:24]}"


def validate_messages_request(payload: Mapping[str, Any]) -> None:
    """Raise ``ValidationError`` if required Messages API fields are missing."""
    messages = payload.get("messages")
    if not isinstance(messages, list) or not messages:
        raise ValidationError("The messages field is required", param="messages")
    if not payload.get("model"):
        raise ValidationError("The model field is required", param="model")


def _labeled(label: str, block: Mapping[str, Any]) -> TextPart:
    return TextPart(f"{label} {compact_json(block)}")


def _convert_tool_result(block: Mapping[str, Any]) -> ToolResultPart:
    call_id = str(block.get("tool_use_id", ""))
    content = block.get("content")
    if isinstance(content, list):
        parts = []
        for item in content:
            if item.get("type") == "text":
                parts.append(TextPart(str(item.get("text", ""))))
            elif item.get("type") == "image":
                parts.append(_labeled("[Image]", item))
            else:
                parts.append(_labeled("[Unknown Type]", item))
        return ToolResultPart(call_id=call_id, content=parts)
    return ToolResultPart(call_id=call_id, content=[TextPart("" if content is None else str(content))])


def convert_content_block(block: Mapping[str, Any]) -> ContentPart:
    """Convert one Anthropic content block to a canonical content part."""
    block_type = block.get("type")
    if block_type == "text":
        return TextPart(str(block.get("text", "")))
    if block_type == "tool_use":
        return ToolCallPart(
            call_id=str(block.get("id", "")),
            name=str(block.get("name", "")),
            input=block.get("input") if block.get("input") is not None else {},
        )
    if block_type == "tool_result":
        return _convert_tool_result(block)
    label = _LABELED_BLOCKS.get(block_type, "[Unknown Type]")
    return _labeled(label, block)


def convert_system(system: Any) -> list[CanonicalMessage]:
    """Turn the ``system`` field into ``[SYSTEM]``-tagged assistant messages."""
    if isinstance(system, str) and system:
        return [CanonicalMessage(role=Role.ASSISTANT, name="System", content=f"[SYSTEM] {system}")]
    messages = []
    if isinstance(system, list):
        for block in system:
            if block.get("type") == "text" and isinstance(block.get("text"), str):
                messages.append(
                    CanonicalMessage(role=Role.ASSISTANT, name="System", content=f"[SYSTEM] {block['text']}")
                )
    return messages


def convert_message(message: Mapping[str, Any]) -> CanonicalMessage:
    if message.get("role") == "assistant":
        role, name = Role.ASSISTANT, "Assistant"
    else:
        role, name = Role.USER, "User"

    content = message.get("content")
    if isinstance(content, list):
        return CanonicalMessage(role=role, name=name, content=[convert_content_block(b) for b in content])
    return CanonicalMessage(role=role, name=name, content="" if content is None else str(content))


def convert_tool(tool: Mapping[str, Any]) -> CanonicalTool:
    """Normalize an Anthropic tool, including the built-in server tools."""
    name = str(tool.get("name", ""))
    tool_type = tool.get("type")
    if name == "bash":
        return CanonicalTool(name=name, description=f"Bash shell execution. Type: {tool_type}")
    if name == "code_execution":
        return CanonicalTool(name=name, description=f"Code execution. Type: {tool_type}")
    if name == "computer":
        return CanonicalTool(
            name=name,
            description=f"Computer use tool. Type: {tool_type}",
            input_schema={
                "display_height_px": tool.get("display_height_px"),
                "display_width_px": tool.get("display_width_px"),
                "display_number": tool.get("display_number"),
            },
        )
    if name in ("str_replace_editor", "str_replace_based_edit_tool"):
        return CanonicalTool(name=name, description=f"Text editor tool. Type: {tool_type}")
    if name == "web_search":
        return CanonicalTool(
            name=name,
            description=f"Web search tool. Type: {tool_type}",
            input_schema={
                "allowed_domains": tool.get("allowed_domains"),
                "blocked_domains": tool.get("blocked_domains"),
                "max_uses": tool.get("max_uses"),
                "user_location": tool.get("user_location"),
            },
        )
    return CanonicalTool(
        name=name,
        description=tool.get("description") or f"Custom tool. Name: {name}",
        input_schema=tool.get("input_schema"),
    )


def convert_tool_choice(tool_choice: Any) -> ToolMode:
    """``any`` and named ``tool`` map to REQUIRED; ``auto`` and ``none`` map to AUTO."""
    if isinstance(tool_choice, Mapping) and tool_choice.get("type") in ("any", "tool"):
        return ToolMode.REQUIRED
    return ToolMode.AUTO


async def normalize_messages_request(
    payload: Mapping[str, Any],
    accountant: TokenAccountant,
) -> tuple[CanonicalRequest, int]:
    """Normalize an Anthropic Messages request.

    Returns:
        The canonical request and its input token count.

    Raises:
        ValidationError: If ``messages`` or ``model`` is missing.
    """
    validate_messages_request(payload)

    messages = convert_system(payload.get("system"))
    messages.extend(convert_message(m) for m in payload["messages"])

    passthrough = {key: payload[key] for key in PASSTHROUGH_KEYS if payload.get(key) is not None}
    if "max_tokens" in payload:
        passthrough["max_tokens"] = payload["max_tokens"]
    widen_sampling_budget(passthrough, ("max_tokens",))

    request = CanonicalRequest(
        messages=messages,
        tool_mode=convert_tool_choice(payload.get("tool_choice")),
        tools=[convert_tool(t) for t in payload.get("tools") or []],
        passthrough_options=passthrough,
    )
    input_tokens = await accountant.count_messages(messages)
    logger.debug(
        f"Normalized messages request: messages={len(messages)}, tools={len(request.tools)}, "
        f"input_tokens={input_tokens}"
    )
    return request, input_tokens


def build_usage(usage: Usage, *, with_service_tier: bool = True) -> AnthropicUsage:
    result: AnthropicUsage = {
        "input_tokens": usage.input_tokens,
        "output_tokens": usage.output_tokens,
        "cache_creation_input_tokens": None,
        "cache_read_input_tokens": None,
        "server_tool_use": None,
    }
    if with_service_tier:
        result["service_tier"] = None
    return result


def text_block(text: str = "") -> AnthropicContentBlock:
    return {"type": "text", "text": text, "citations": []}


async def synthesize_message(
    stream: AsyncIterator[StreamPart],
    *,
    model: str,
    accountant: TokenAccountant,
    input_tokens: int,
    message_id: Optional[str] = None,
) -> AnthropicMessage:
    """Consume a fragment stream and build an Anthropic ``message``.

    Buffered text is flushed as its own block before each tool_use block.
    """
    content: list[AnthropicContentBlock] = []
    text_buffer = ""
    usage = Usage(input_tokens=input_tokens)
    stop_reason = StopReasonTracker(STOP_REASON_END_TURN, STOP_REASON_TOOL_USE)

    async for part in stream:
        stop_reason.observe(part)
        usage.output_tokens += await accountant.count_fragment(part)
        if isinstance(part, TextFragment):
            text_buffer += part.value
            continue
        if text_buffer:
            content.append(text_block(text_buffer))
            text_buffer = ""
        content.append({"type": "tool_use", "id": part.call_id, "name": part.name, "input": part.input})

    if text_buffer:
        content.append(text_block(text_buffer))
    if not content:
        content.append(text_block())

    return {
        "id": message_id or generate_message_id(),
        "type": "message",
        "role": "assistant",
        "model": model,
        "content": content,
        "stop_reason": stop_reason.value,
        "stop_sequence": None,
        "usage": build_usage(usage),
    }
