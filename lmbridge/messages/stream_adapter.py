"""Stream adapter turning host model fragments into Anthropic Messages SSE.

Anthropic Messages Events:
    event: message_start
    data: {"type":"message_start","message":{...}}

    event: content_block_start
    data: {"type":"content_block_start","index":0,"content_block":{"type":"text","text":"","citations":[]}}

    event: content_block_delta
    data: {"type":"content_block_delta","index":0,"delta":{"type":"text_delta","text":"Hello"}}

    event: content_block_stop
    data: {"type":"content_block_stop","index":0}

    event: content_block_start
    data: {"type":"content_block_start","index":1,"content_block":{"type":"tool_use",...,"input":{}}}

    event: content_block_delta
    data: {"type":"content_block_delta","index":1,"delta":{"type":"input_json_delta","partial_json":"{...}"}}

    event: content_block_stop
    data: {"type":"content_block_stop","index":1}

    event: message_delta
    data: {"type":"message_delta","delta":{"stop_reason":"tool_use","stop_sequence":null},"usage":{...}}

    event: message_stop
    data: {"type":"message_stop"}

Each maximal run of text fragments is one text block. A tool call closes
the open text block first; text after a tool call opens a new block.
"""

import logging
from typing import Any, AsyncIterator

from ..core.error_map import Dialect, error_body, map_error
from ..core.sse import format_sse_event
from ..core.stream_state import BlockStateMachine, StopReasonTracker
from ..core.tokens import TokenAccountant
from ..core.utils import compact_json
from ..types.canonical import StreamPart, TextFragment, ToolCallFragment, Usage
from .translator import STOP_REASON_END_TURN, STOP_REASON_TOOL_USE, build_usage, text_block

logger = logging.getLogger("lmbridge")


class FragmentToMessagesStreamAdapter:
    """Converts a fragment stream into Anthropic Messages SSE events.

    Block bookkeeping lives in a ``BlockStateMachine`` so every
    content_block_start is paired with exactly one content_block_stop.
    """

    def __init__(
        self,
        message_id: str,
        model: str,
        accountant: TokenAccountant,
        input_tokens: int,
    ):
        """Initialize the stream adapter.

        Args:
            message_id: The message ID to use (e.g., "msg_xxx")
            model: Model name for the response
            accountant: Token accountant for output usage
            input_tokens: Input tokens counted during normalization
        """
        self.message_id = message_id
        self.model = model
        self.accountant = accountant
        self.usage = Usage(input_tokens=input_tokens)

        self.blocks = BlockStateMachine()
        self.stop_reason = StopReasonTracker(STOP_REASON_END_TURN, STOP_REASON_TOOL_USE)

    async def adapt_stream(self, stream: AsyncIterator[StreamPart]) -> AsyncIterator[bytes]:
        """Transform a fragment stream into Anthropic Messages SSE events.

        A failure after message_start closes any open text block and ends
        the stream with a single ``error`` event.
        """
        yield self._emit_message_start()
        try:
            async for part in stream:
                self.stop_reason.observe(part)
                self.usage.output_tokens += await self.accountant.count_fragment(part)
                if isinstance(part, TextFragment):
                    for event in self._process_text(part):
                        yield event
                elif isinstance(part, ToolCallFragment):
                    for event in self._process_tool_call(part):
                        yield event

            for event in self._close_text_run():
                yield event
            yield self._emit_message_delta()
            yield self._emit("message_stop", {"type": "message_stop"})
        except Exception as exc:
            logger.error(f"Messages stream {self.message_id} failed: {exc}")
            for event in self._close_text_run():
                yield event
            mapped = map_error(exc, Dialect.ANTHROPIC)
            yield self._emit("error", error_body(mapped, Dialect.ANTHROPIC))

    def _process_text(self, part: TextFragment) -> list[bytes]:
        events = []
        index = self.blocks.begin_text()
        if index is not None:
            events.append(self._emit_content_block_start(index, text_block()))
        events.append(self._emit_content_block_delta(
            self.blocks.open_index,
            {"type": "text_delta", "text": part.value},
        ))
        return events

    def _process_tool_call(self, part: ToolCallFragment) -> list[bytes]:
        events = self._close_text_run()
        index = self.blocks.begin_tool_call()
        events.append(self._emit_content_block_start(index, {
            "type": "tool_use",
            "id": part.call_id,
            "name": part.name,
            "input": {},
        }))
        events.append(self._emit_content_block_delta(index, {
            "type": "input_json_delta",
            "partial_json": compact_json(part.input if part.input is not None else {}),
        }))
        events.append(self._emit_content_block_stop(self.blocks.end_tool_call()))
        return events

    def _close_text_run(self) -> list[bytes]:
        index = self.blocks.end_text()
        if index is None:
            return []
        return [self._emit_content_block_stop(index)]

    def _emit_message_start(self) -> bytes:
        return self._emit("message_start", {
            "type": "message_start",
            "message": {
                "id": self.message_id,
                "type": "message",
                "role": "assistant",
                "content": [],
                "model": self.model,
                "stop_reason": None,
                "stop_sequence": None,
                "usage": build_usage(Usage(input_tokens=self.usage.input_tokens)),
            },
        })

    def _emit_content_block_start(self, index: int, content_block: dict[str, Any]) -> bytes:
        return self._emit("content_block_start", {
            "type": "content_block_start",
            "index": index,
            "content_block": content_block,
        })

    def _emit_content_block_delta(self, index: int, delta: dict[str, Any]) -> bytes:
        return self._emit("content_block_delta", {
            "type": "content_block_delta",
            "index": index,
            "delta": delta,
        })

    def _emit_content_block_stop(self, index: int) -> bytes:
        return self._emit("content_block_stop", {"type": "content_block_stop", "index": index})

    def _emit_message_delta(self) -> bytes:
        return self._emit("message_delta", {
            "type": "message_delta",
            "delta": {"stop_reason": self.stop_reason.value, "stop_sequence": None},
            "usage": build_usage(self.usage, with_service_tier=False),
        })

    def _emit(self, event_type: str, data: dict[str, Any]) -> bytes:
        return format_sse_event(event_type, data)


async def adapt_fragments_to_messages(
    message_id: str,
    model: str,
    stream: AsyncIterator[StreamPart],
    accountant: TokenAccountant,
    input_tokens: int,
) -> AsyncIterator[bytes]:
    """Convenience function to adapt a fragment stream.

    Yields:
        Anthropic Messages SSE events
    """
    adapter = FragmentToMessagesStreamAdapter(message_id, model, accountant, input_tokens)
    async for event in adapter.adapt_stream(stream):
        yield event
