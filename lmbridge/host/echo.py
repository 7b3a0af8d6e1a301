"""Deterministic host model that echoes the last user message.

Useful for running the bridge without any upstream and for exercising
client integrations against every dialect.
"""

import logging
import re
import uuid
from typing import AsyncIterator, Optional

from ..core.tokens import estimate_tokens
from ..types.canonical import (
    CanonicalMessage,
    Role,
    StreamPart,
    TextFragment,
    TextPart,
    ToolCallFragment,
    ToolMode,
)
from .base import CancellationToken, HostModel, ModelInfo, RequestOptions

logger = logging.getLogger("lmbridge")

_WORD_PATTERN = re.compile(r"\S+\s*|\s+")


def _last_user_text(messages: list[CanonicalMessage]) -> str:
    for message in reversed(messages):
        if message.role != Role.USER:
            continue
        if isinstance(message.content, str):
            return message.content
        return "".join(part.value for part in message.content if isinstance(part, TextPart))
    return ""


class EchoHostModel(HostModel):
    """Echo backend.

    Text is streamed back word by word. When the request requires a tool
    call, the first offered tool is called with an empty input instead.
    """

    def __init__(self, models: Optional[list[ModelInfo]] = None) -> None:
        self.models = models or [ModelInfo(id="echo", display_name="Echo", vendor="lmbridge", family="echo")]

    async def send_request(
        self,
        model_id: str,
        messages: list[CanonicalMessage],
        options: RequestOptions,
        cancellation: CancellationToken,
    ) -> AsyncIterator[StreamPart]:
        logger.debug("Echo backend invoked for model=%s with %d messages", model_id, len(messages))
        if options.tool_mode == ToolMode.REQUIRED and options.tools:
            tool = options.tools[0]
            yield ToolCallFragment(call_id=f"call_{uuid.uuid4().hex[:24]}", name=tool.name, input={})
            return

        for word in _WORD_PATTERN.findall(_last_user_text(messages)):
            cancellation.raise_if_cancelled()
            yield TextFragment(word)

    async def count_tokens(self, model_id: str, text: str) -> int:
        return estimate_tokens(text)

    async def list_models(self) -> list[ModelInfo]:
        return list(self.models)
