"""Token accounting on top of the host model's counting primitive.

Input tokens are the ordered sum over canonical messages. Output tokens
are counted per fragment as it is observed, with the same rule in the
streaming and non-streaming paths so both report identical totals.
"""

import logging
import math
from typing import TYPE_CHECKING, Any, Iterable, Mapping

from ..types.canonical import (
    CanonicalMessage,
    StreamPart,
    TextFragment,
    TextPart,
    ToolCallFragment,
    ToolCallPart,
    ToolResultPart,
)
from .utils import compact_json

if TYPE_CHECKING:
    from ..host.base import HostModel

logger = logging.getLogger("lmbridge")


def estimate_tokens(text: str) -> int:
    """Approximate token count for backends without a tokenizer (4 chars per token)."""
    if not text:
        return 0
    return max(1, math.ceil(len(text) / 4))


def render_message(message: CanonicalMessage) -> str:
    """Render a canonical message as the text that gets counted."""
    lines = [f"{message.role.value} ({message.name}):"]
    for part in message.text_parts():
        if isinstance(part, TextPart):
            lines.append(part.value)
        elif isinstance(part, ToolCallPart):
            lines.append(compact_json({"callId": part.call_id, "name": part.name, "input": part.input}))
        elif isinstance(part, ToolResultPart):
            lines.append(f"{part.call_id}: " + " ".join(p.value for p in part.content))
    return "\n".join(lines)


def fragment_text(part: StreamPart) -> str:
    """Textual payload of a fragment used for output accounting."""
    if isinstance(part, TextFragment):
        return part.value
    if isinstance(part, ToolCallFragment):
        return compact_json({"callId": part.call_id, "name": part.name, "input": part.input})
    raise TypeError(f"unsupported stream part: {type(part).__name__}")


class TokenAccountant:
    """Counts tokens for one request against one host model."""

    def __init__(self, host: "HostModel", model_id: str) -> None:
        self.host = host
        self.model_id = model_id

    async def count(self, text: str) -> int:
        if not text:
            return 0
        return await self.host.count_tokens(self.model_id, text)

    async def count_message(self, message: CanonicalMessage) -> int:
        return await self.count(render_message(message))

    async def count_messages(self, messages: Iterable[CanonicalMessage]) -> int:
        total = 0
        for message in messages:
            total += await self.count_message(message)
        return total

    async def count_fragment(self, part: StreamPart) -> int:
        return await self.count(fragment_text(part))

    async def count_anthropic_request(self, payload: Mapping[str, Any]) -> int:
        """Estimate input tokens of an Anthropic Messages request body.

        Counts each message role and content, the system prompt, and each
        tool's name, description and input schema.
        """
        total = 0
        for message in payload.get("messages") or []:
            total += await self.count(str(message.get("role", "")))
            content = message.get("content")
            if isinstance(content, str):
                total += await self.count(content)
            elif isinstance(content, list):
                total += await self.count(" ".join(compact_json(part) for part in content))

        system = payload.get("system")
        if isinstance(system, str):
            total += await self.count(system)
        elif isinstance(system, list):
            total += await self.count(
                " ".join(str(block.get("text", "")) for block in system if isinstance(block, Mapping))
            )

        for tool in payload.get("tools") or []:
            total += await self.count(str(tool.get("name", "")))
            if tool.get("description"):
                total += await self.count(str(tool["description"]))
            if "input_schema" in tool:
                total += await self.count(compact_json(tool["input_schema"]))

        logger.debug("Counted %d input tokens for count_tokens request", total)
        return total
