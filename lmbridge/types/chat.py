"""Wire types for the OpenAI Chat Completions and Anthropic Messages dialects.

Only the outbound shapes produced by the synthesizers are typed here.
Inbound request bodies are handled as plain mappings by the normalizers
since clients send a much wider variety of fields than we read.
"""

from typing import Any, Optional
from typing_extensions import TypedDict


# =============================================================================
# OpenAI Chat Completions
# =============================================================================


class FunctionCall(TypedDict):
    """A function call within a tool call.

    Attributes:
        name: Name of the function to call.
        arguments: JSON string with the call arguments.
    """
    name: str
    arguments: str


class ToolCall(TypedDict, total=False):
    """A tool call in a chat response.

    Attributes:
        index: Position in the streamed ``tool_calls`` array (chunks only).
        id: Unique identifier used to match the tool result later.
        type: Always "function".
        function: The function name and arguments.
    """
    index: int
    id: str
    type: str
    function: FunctionCall


class ChatMessage(TypedDict, total=False):
    """The assistant message of a non-streaming completion."""
    role: str
    content: Optional[str]
    refusal: Optional[str]
    tool_calls: list[ToolCall]


class Delta(TypedDict, total=False):
    """Incremental message content in a streaming chunk."""
    role: str
    content: str
    tool_calls: list[ToolCall]


class Choice(TypedDict, total=False):
    """A completion choice (streaming or not)."""
    index: int
    message: ChatMessage
    delta: Delta
    finish_reason: Optional[str]
    logprobs: Optional[Any]


class Usage(TypedDict):
    """Token usage in OpenAI naming."""
    completion_tokens: int
    prompt_tokens: int
    total_tokens: int


class ChatCompletionChunk(TypedDict):
    """A single ``chat.completion.chunk`` SSE payload."""
    id: str
    object: str
    created: int
    model: str
    choices: list[Choice]
    usage: Usage


class ChatCompletionResponse(TypedDict):
    """A complete ``chat.completion`` object."""
    id: str
    object: str
    created: int
    model: str
    choices: list[Choice]
    usage: Usage


class OpenAIModel(TypedDict):
    """An entry of ``GET /models``."""
    id: str
    object: str
    created: int
    owned_by: str


# =============================================================================
# Anthropic Messages
# =============================================================================


class AnthropicContentBlock(TypedDict, total=False):
    """A content block in an Anthropic message.

    Attributes:
        type: "text" or "tool_use".
        text: Text content (text blocks).
        citations: Citations attached to text (always empty here).
        id: Tool use id (tool_use blocks).
        name: Tool name (tool_use blocks).
        input: Parsed tool input (tool_use blocks).
    """
    type: str
    text: str
    citations: list[Any]
    id: str
    name: str
    input: Any


class AnthropicUsage(TypedDict, total=False):
    """Token usage in Anthropic naming."""
    input_tokens: int
    output_tokens: int
    cache_creation_input_tokens: Optional[int]
    cache_read_input_tokens: Optional[int]
    server_tool_use: Optional[Any]
    service_tier: Optional[str]


class AnthropicMessage(TypedDict):
    """A complete Anthropic ``message`` object."""
    id: str
    type: str
    role: str
    model: str
    content: list[AnthropicContentBlock]
    stop_reason: Optional[str]
    stop_sequence: Optional[str]
    usage: AnthropicUsage


class AnthropicModel(TypedDict):
    """An entry of the Anthropic ``GET /models`` listing."""
    type: str
    id: str
    display_name: str
    created_at: str
