"""Type definitions for the bridge."""

from .canonical import (
    CanonicalMessage,
    CanonicalRequest,
    CanonicalTool,
    ContentPart,
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

__all__ = [
    "CanonicalMessage",
    "CanonicalRequest",
    "CanonicalTool",
    "ContentPart",
    "Role",
    "StreamPart",
    "TextFragment",
    "TextPart",
    "ToolCallFragment",
    "ToolCallPart",
    "ToolMode",
    "ToolResultPart",
    "Usage",
]
