"""Explicit state for the streaming synthesizers.

``BlockStateMachine`` tracks which content block is open while a fragment
stream is turned into dialect events. Blocks never interleave: a text run
is closed before a tool call block opens, and each block index is used
exactly once, in increasing order.

``StopReasonTracker`` resolves the terminal stop/finish reason. It starts
at the dialect's normal-completion value and switches, permanently, to the
tool-call value the first time a tool call fragment is observed.
"""

from enum import Enum
from typing import Optional

from ..types.canonical import StreamPart, ToolCallFragment


class RunState(str, Enum):
    IDLE = "idle"
    IN_TEXT_RUN = "in_text_run"
    IN_TOOL_CALL = "in_tool_call"


class BlockStateMachine:
    """Content block bookkeeping for one response."""

    def __init__(self) -> None:
        self.state = RunState.IDLE
        self.next_index = 0
        self.open_index: Optional[int] = None

    def _open(self, state: RunState) -> int:
        if self.state != RunState.IDLE:
            raise RuntimeError(f"cannot open a block while {self.state.value}")
        index = self.next_index
        self.next_index += 1
        self.open_index = index
        self.state = state
        return index

    def _close(self, state: RunState) -> int:
        if self.state != state or self.open_index is None:
            raise RuntimeError(f"cannot close {state.value} while {self.state.value}")
        index = self.open_index
        self.open_index = None
        self.state = RunState.IDLE
        return index

    def begin_text(self) -> Optional[int]:
        """Enter a text run. Returns the new block index, or None if one is open."""
        if self.state == RunState.IN_TEXT_RUN:
            return None
        return self._open(RunState.IN_TEXT_RUN)

    def end_text(self) -> Optional[int]:
        """Leave the current text run. Returns the closed index, or None."""
        if self.state != RunState.IN_TEXT_RUN:
            return None
        return self._close(RunState.IN_TEXT_RUN)

    def begin_tool_call(self) -> int:
        return self._open(RunState.IN_TOOL_CALL)

    def end_tool_call(self) -> int:
        return self._close(RunState.IN_TOOL_CALL)


class StopReasonTracker:
    """Sticky stop reason resolution."""

    def __init__(self, default: str, tool_call: str) -> None:
        self.default = default
        self.tool_call = tool_call
        self.saw_tool_call = False

    def observe(self, part: StreamPart) -> None:
        if isinstance(part, ToolCallFragment):
            self.saw_tool_call = True

    @property
    def value(self) -> str:
        return self.tool_call if self.saw_tool_call else self.default
