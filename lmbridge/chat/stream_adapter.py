"""Stream adapter turning host model fragments into Chat Completions chunks.

Event sequence:
    data: {"choices":[{"delta":{"role":"assistant","content":"Hel"},...}]}
    data: {"choices":[{"delta":{"content":"lo"},...}]}
    data: {"choices":[{"delta":{"tool_calls":[{"index":0,...}]},...}]}
    data: {"choices":[{"delta":{},"finish_reason":"tool_calls",...}],"usage":{...}}
    data: [DONE]

If the fragment stream fails, a single ``data: {"error": {...}}`` event is
written, followed by ``data: [DONE]``.
"""

import logging
import time
from typing import Any, AsyncIterator, Optional

from ..core.error_map import Dialect, map_error
from ..core.sse import SSE_DONE, format_sse_data
from ..core.stream_state import StopReasonTracker
from ..core.tokens import TokenAccountant
from ..core.utils import compact_json
from ..types.canonical import StreamPart, TextFragment, Usage
from ..types.chat import ChatCompletionChunk, Delta
from .translator import FINISH_REASON_STOP, FINISH_REASON_TOOL_CALLS, build_usage

logger = logging.getLogger("lmbridge")


class FragmentToChatStreamAdapter:
    """Converts a fragment stream into ``chat.completion.chunk`` SSE events.

    State kept while streaming:
    - whether the assistant role delta has been sent
    - the next tool call index
    - the sticky finish reason and output token count
    """

    def __init__(
        self,
        completion_id: str,
        model: str,
        accountant: TokenAccountant,
        input_tokens: int,
        created: Optional[int] = None,
    ):
        self.completion_id = completion_id
        self.model = model
        self.accountant = accountant
        self.created = created if created is not None else int(time.time())

        self.role_sent = False
        self.next_tool_call_index = 0
        self.usage = Usage(input_tokens=input_tokens)
        self.finish_reason = StopReasonTracker(FINISH_REASON_STOP, FINISH_REASON_TOOL_CALLS)

    async def adapt_stream(self, stream: AsyncIterator[StreamPart]) -> AsyncIterator[bytes]:
        """Yield SSE-framed chunks for every fragment, then the final chunk and ``[DONE]``."""
        try:
            async for part in stream:
                self.finish_reason.observe(part)
                self.usage.output_tokens += await self.accountant.count_fragment(part)
                yield format_sse_data(self._chunk_for(part))
            yield format_sse_data(self._final_chunk())
        except Exception as exc:
            logger.error(f"Chat stream {self.completion_id} failed: {exc}")
            mapped = map_error(exc, Dialect.OPENAI_CHAT)
            yield format_sse_data({"error": mapped.error})
        yield SSE_DONE

    def _chunk_for(self, part: StreamPart) -> ChatCompletionChunk:
        delta: Delta = {}
        if isinstance(part, TextFragment):
            if not self.role_sent:
                delta["role"] = "assistant"
                self.role_sent = True
            delta["content"] = part.value
        else:
            delta["tool_calls"] = [{
                "index": self.next_tool_call_index,
                "id": part.call_id,
                "type": "function",
                "function": {"name": part.name, "arguments": compact_json(part.input)},
            }]
            self.next_tool_call_index += 1
        return self._build_chunk(delta, None, build_usage(Usage()))

    def _final_chunk(self) -> ChatCompletionChunk:
        return self._build_chunk(
            {},
            self.finish_reason.value,
            build_usage(self.usage),
        )

    def _build_chunk(self, delta: Delta, finish_reason: Optional[str], usage: Any) -> ChatCompletionChunk:
        return {
            "id": self.completion_id,
            "object": "chat.completion.chunk",
            "created": self.created,
            "model": self.model,
            "choices": [{"index": 0, "delta": delta, "finish_reason": finish_reason}],
            "usage": usage,
        }


async def adapt_fragments_to_chat(
    completion_id: str,
    model: str,
    stream: AsyncIterator[StreamPart],
    accountant: TokenAccountant,
    input_tokens: int,
) -> AsyncIterator[bytes]:
    """Convenience function to adapt a fragment stream.

    Yields:
        Chat Completions SSE events
    """
    adapter = FragmentToChatStreamAdapter(completion_id, model, accountant, input_tokens)
    async for event in adapter.adapt_stream(stream):
        yield event
