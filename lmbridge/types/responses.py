"""Types for the OpenAI Responses API.

These types describe the response objects and streaming events produced
for the ``/responses`` endpoints.
"""

from typing import Any, Literal, Union
from typing_extensions import TypedDict


ItemStatus = Literal["in_progress", "completed", "incomplete"]
"""Status lifecycle for output items."""

ResponseStatus = Literal["in_progress", "completed", "failed", "incomplete"]
"""Status lifecycle for the overall response."""


# =============================================================================
# Output Types
# =============================================================================

class OutputText(TypedDict, total=False):
    """Text output content."""
    type: Literal["output_text"]
    text: str
    annotations: list[Any]


class MessageItem(TypedDict, total=False):
    """A message item in output."""
    id: str
    type: Literal["message"]
    role: Literal["assistant"]
    status: ItemStatus
    content: list[OutputText]


class FunctionCallItem(TypedDict, total=False):
    """A function/tool call item in output."""
    id: str
    type: Literal["function_call"]
    call_id: str
    name: str
    arguments: str  # JSON string
    status: ItemStatus


OutputItem = Union[MessageItem, FunctionCallItem]


# =============================================================================
# Usage Types
# =============================================================================

class InputTokensDetails(TypedDict, total=False):
    """Breakdown of input token usage."""
    cached_tokens: int


class OutputTokensDetails(TypedDict, total=False):
    """Breakdown of output token usage."""
    reasoning_tokens: int


class ResponseUsage(TypedDict, total=False):
    """Token usage information for a response."""
    input_tokens: int
    input_tokens_details: InputTokensDetails
    output_tokens: int
    output_tokens_details: OutputTokensDetails
    total_tokens: int


class ResponseError(TypedDict, total=False):
    """Structured error object."""
    type: str
    code: str
    message: str
    param: str


class ReasoningConfig(TypedDict, total=False):
    """Reasoning configuration echoed back on the response."""
    effort: Any
    summary: Any


# =============================================================================
# Response Object
# =============================================================================

class ResponseObject(TypedDict, total=False):
    """Full response object from POST /responses."""
    id: str
    object: Literal["response"]
    created_at: int
    completed_at: int
    status: ResponseStatus
    model: str
    output: list[OutputItem]
    output_text: str
    error: ResponseError | None
    incomplete_details: Any
    instructions: Any
    max_output_tokens: Any
    parallel_tool_calls: bool
    previous_response_id: Any
    reasoning: ReasoningConfig
    store: bool
    temperature: float
    text: dict[str, Any]
    tool_choice: Any
    tools: list[Any]
    top_p: float
    truncation: str
    usage: ResponseUsage | None
    user: Any
    metadata: dict[str, Any]


# =============================================================================
# Streaming Event Types
# =============================================================================

EVENT_RESPONSE_CREATED = "response.created"
EVENT_RESPONSE_IN_PROGRESS = "response.in_progress"
EVENT_RESPONSE_COMPLETED = "response.completed"

EVENT_OUTPUT_ITEM_ADDED = "response.output_item.added"
EVENT_CONTENT_PART_ADDED = "response.content_part.added"
EVENT_OUTPUT_TEXT_DELTA = "response.output_text.delta"
EVENT_OUTPUT_TEXT_DONE = "response.output_text.done"
EVENT_FUNCTION_CALL_ARGS_DELTA = "response.function_call_arguments.delta"
EVENT_FUNCTION_CALL_ARGS_DONE = "response.function_call_arguments.done"
EVENT_CONTENT_PART_DONE = "response.content_part.done"
EVENT_OUTPUT_ITEM_DONE = "response.output_item.done"
EVENT_ERROR = "error"
