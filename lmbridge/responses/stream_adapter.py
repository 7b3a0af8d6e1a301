"""Stream adapter turning host model fragments into Responses API events.

Responses API Events:
    event: response.created
    data: {"type":"response.created","sequence_number":1,"response":{...}}

    event: response.in_progress
    event: response.output_item.added        (message item, output_index 0)
    event: response.content_part.added       (output_text part, content_index 0)

    event: response.output_text.delta
    data: {"type":"response.output_text.delta","delta":"Hello",...}

    event: response.output_item.added        (function_call item, output_index 1..)
    event: response.function_call_arguments.delta
    event: response.function_call_arguments.done
    event: response.output_item.done

    event: response.output_text.done
    event: response.content_part.done
    event: response.output_item.done         (message item)

    event: response.completed
    data: {"type":"response.completed","response":{...}}

Text always lands in the single message item at output index 0. Tool
calls are emitted as complete function_call items as soon as they arrive.
"""

import logging
import time
from typing import Any, AsyncIterator, Mapping, Optional

from ..core.error_map import Dialect, map_error
from ..core.sse import format_sse_event
from ..core.tokens import TokenAccountant
from ..core.utils import compact_json
from ..types.canonical import StreamPart, TextFragment, ToolCallFragment, Usage
from ..types.responses import (
    EVENT_CONTENT_PART_ADDED,
    EVENT_CONTENT_PART_DONE,
    EVENT_ERROR,
    EVENT_FUNCTION_CALL_ARGS_DELTA,
    EVENT_FUNCTION_CALL_ARGS_DONE,
    EVENT_OUTPUT_ITEM_ADDED,
    EVENT_OUTPUT_ITEM_DONE,
    EVENT_OUTPUT_TEXT_DELTA,
    EVENT_OUTPUT_TEXT_DONE,
    EVENT_RESPONSE_COMPLETED,
    EVENT_RESPONSE_CREATED,
    EVENT_RESPONSE_IN_PROGRESS,
    OutputItem,
    ResponseObject,
)
from .translator import (
    build_function_call_item,
    build_message_item,
    build_output_text,
    build_response_object,
    convert_usage,
    generate_function_call_item_id,
    generate_message_id,
)

logger = logging.getLogger("lmbridge")

MESSAGE_OUTPUT_INDEX = 0


class FragmentToResponsesStreamAdapter:
    """Converts a fragment stream into Responses API SSE events.

    This adapter maintains state during streaming to:
    - Generate proper sequence numbers
    - Accumulate text for the done events
    - Collect function_call items for the final response object
    """

    def __init__(
        self,
        response_id: str,
        model: str,
        accountant: TokenAccountant,
        input_tokens: int,
        original_request: Optional[Mapping[str, Any]] = None,
    ):
        """Initialize the stream adapter.

        Args:
            response_id: The response ID to use
            model: Model name
            accountant: Token accountant for output usage
            input_tokens: Input tokens counted during normalization
            original_request: The original request for echoing config
        """
        self.response_id = response_id
        self.model = model
        self.accountant = accountant
        self.original_request = original_request or {}
        self.created_at = int(time.time())

        self.sequence_number = 0
        self.message_id = generate_message_id()
        self.accumulated_text = ""
        self.function_calls: list[OutputItem] = []
        self.next_output_index = MESSAGE_OUTPUT_INDEX + 1
        self.usage = Usage(input_tokens=input_tokens)

    async def adapt_stream(self, stream: AsyncIterator[StreamPart]) -> AsyncIterator[bytes]:
        """Transform a fragment stream into Responses API events.

        A failure after response.created ends the stream with a single
        ``error`` event.
        """
        yield self._emit_event(EVENT_RESPONSE_CREATED, {"response": self._build_response_object("in_progress")})
        yield self._emit_event(EVENT_RESPONSE_IN_PROGRESS, {"response": self._build_response_object("in_progress")})
        try:
            yield self._emit_event(EVENT_OUTPUT_ITEM_ADDED, {
                "output_index": MESSAGE_OUTPUT_INDEX,
                "item": build_message_item(self.message_id, None, "in_progress"),
            })
            yield self._emit_event(EVENT_CONTENT_PART_ADDED, {
                "item_id": self.message_id,
                "output_index": MESSAGE_OUTPUT_INDEX,
                "content_index": 0,
                "part": build_output_text(""),
            })

            async for part in stream:
                self.usage.output_tokens += await self.accountant.count_fragment(part)
                if isinstance(part, TextFragment):
                    yield self._emit_text_delta(part)
                elif isinstance(part, ToolCallFragment):
                    for event in self._process_tool_call(part):
                        yield event

            for event in self._emit_terminal_events():
                yield event
        except Exception as exc:
            logger.error(f"Responses stream {self.response_id} failed: {exc}")
            mapped = map_error(exc, Dialect.OPENAI_RESPONSES)
            yield self._emit_event(EVENT_ERROR, {"error": mapped.error})

    def _emit_text_delta(self, part: TextFragment) -> bytes:
        self.accumulated_text += part.value
        return self._emit_event(EVENT_OUTPUT_TEXT_DELTA, {
            "item_id": self.message_id,
            "output_index": MESSAGE_OUTPUT_INDEX,
            "content_index": 0,
            "delta": part.value,
        })

    def _process_tool_call(self, part: ToolCallFragment) -> list[bytes]:
        output_index = self.next_output_index
        self.next_output_index += 1
        item_id = generate_function_call_item_id()
        arguments = compact_json(part.input)

        completed = build_function_call_item(item_id, part, "completed")
        self.function_calls.append(completed)
        return [
            self._emit_event(EVENT_OUTPUT_ITEM_ADDED, {
                "output_index": output_index,
                "item": build_function_call_item(item_id, part, "in_progress"),
            }),
            self._emit_event(EVENT_FUNCTION_CALL_ARGS_DELTA, {
                "item_id": item_id,
                "output_index": output_index,
                "delta": arguments,
            }),
            self._emit_event(EVENT_FUNCTION_CALL_ARGS_DONE, {
                "item_id": item_id,
                "output_index": output_index,
                "arguments": arguments,
            }),
            self._emit_event(EVENT_OUTPUT_ITEM_DONE, {
                "output_index": output_index,
                "item": completed,
            }),
        ]

    def _emit_terminal_events(self) -> list[bytes]:
        message = build_message_item(self.message_id, self.accumulated_text, "completed")
        return [
            self._emit_event(EVENT_OUTPUT_TEXT_DONE, {
                "item_id": self.message_id,
                "output_index": MESSAGE_OUTPUT_INDEX,
                "content_index": 0,
                "text": self.accumulated_text,
            }),
            self._emit_event(EVENT_CONTENT_PART_DONE, {
                "item_id": self.message_id,
                "output_index": MESSAGE_OUTPUT_INDEX,
                "content_index": 0,
                "part": build_output_text(self.accumulated_text),
            }),
            self._emit_event(EVENT_OUTPUT_ITEM_DONE, {
                "output_index": MESSAGE_OUTPUT_INDEX,
                "item": message,
            }),
            self._emit_event(EVENT_RESPONSE_COMPLETED, {
                "response": self._build_response_object("completed", [message, *self.function_calls]),
            }),
        ]

    def _emit_event(self, event_type: str, data: dict[str, Any]) -> bytes:
        self.sequence_number += 1
        payload = {
            "type": event_type,
            "sequence_number": self.sequence_number,
            **data,
        }
        return format_sse_event(event_type, payload)

    def _build_response_object(self, status: str, output: Optional[list[OutputItem]] = None) -> ResponseObject:
        usage = convert_usage(self.usage) if status == "completed" else None
        return build_response_object(
            self.response_id,
            self.model,
            self.original_request,
            status=status,
            created_at=self.created_at,
            output=output or [],
            usage=usage,
        )


async def adapt_fragments_to_responses(
    response_id: str,
    model: str,
    stream: AsyncIterator[StreamPart],
    accountant: TokenAccountant,
    input_tokens: int,
    original_request: Optional[Mapping[str, Any]] = None,
) -> AsyncIterator[bytes]:
    """Convenience function to adapt a fragment stream.

    Yields:
        Responses API SSE events
    """
    adapter = FragmentToResponsesStreamAdapter(response_id, model, accountant, input_tokens, original_request)
    async for event in adapter.adapt_stream(stream):
        yield event
