"""Dialect-neutral chat representation shared by every converter.

Requests from OpenAI Chat Completions, OpenAI Responses and Anthropic
Messages are normalized into these shapes before they reach the host
model, and the host model's token stream is expressed with the fragment
types defined here.

The canonical model only knows two roles. System, developer and tool
content from the dialects is kept by prefixing a bracketed tag onto the
text (for example ``[SYSTEM] ``) and sending it as an assistant message.
Non-text parts (images, files, audio, documents, thinking blocks) are
folded into ``TextPart`` with a bracketed label.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional, Union


class Role(str, Enum):
    """Canonical message roles."""
    USER = "user"
    ASSISTANT = "assistant"


class ToolMode(str, Enum):
    """Canonical tool choice.

    Dialects that can say ``none`` fall back to AUTO.
    """
    AUTO = "auto"
    REQUIRED = "required"


@dataclass
class TextPart:
    """Plain text content."""
    value: str


@dataclass
class ToolCallPart:
    """A tool invocation previously made by the assistant."""
    call_id: str
    name: str
    input: Any = field(default_factory=dict)


@dataclass
class ToolResultPart:
    """The result of a tool invocation, fed back to the model."""
    call_id: str
    content: list[TextPart] = field(default_factory=list)


ContentPart = Union[TextPart, ToolCallPart, ToolResultPart]
CanonicalContent = Union[str, list[ContentPart]]


@dataclass
class CanonicalMessage:
    """One message in a canonical conversation.

    Attributes:
        role: USER or ASSISTANT.
        name: Display name of the participant (e.g. "User", "System").
        content: A plain string or an ordered list of content parts.
    """
    role: Role
    name: str
    content: CanonicalContent

    def text_parts(self) -> list[ContentPart]:
        """Return content as a list of parts, wrapping plain strings."""
        if isinstance(self.content, str):
            return [TextPart(self.content)]
        return list(self.content)


@dataclass
class CanonicalTool:
    """A tool definition the model may call."""
    name: str
    description: str = ""
    input_schema: Optional[dict[str, Any]] = None


@dataclass
class CanonicalRequest:
    """A normalized chat request.

    ``messages`` is never empty once a normalizer returns; the dialect
    validation runs first. Options the canonical model does not cover are
    kept verbatim in ``passthrough_options`` under their original keys.
    """
    messages: list[CanonicalMessage]
    tool_mode: ToolMode = ToolMode.AUTO
    tools: list[CanonicalTool] = field(default_factory=list)
    passthrough_options: dict[str, Any] = field(default_factory=dict)


# =============================================================================
# Host model stream parts
# =============================================================================


@dataclass
class TextFragment:
    """A piece of generated text."""
    value: str


@dataclass
class ToolCallFragment:
    """A complete tool call emitted by the host model."""
    call_id: str
    name: str
    input: Any = field(default_factory=dict)


StreamPart = Union[TextFragment, ToolCallFragment]


@dataclass
class Usage:
    """Per-request token usage."""
    input_tokens: int = 0
    output_tokens: int = 0

    @property
    def total_tokens(self) -> int:
        return self.input_tokens + self.output_tokens
