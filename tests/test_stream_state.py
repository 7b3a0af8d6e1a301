"""Tests for the block state machine and stop reason tracker."""

import pytest

from lmbridge.core.stream_state import BlockStateMachine, RunState, StopReasonTracker
from lmbridge.types.canonical import TextFragment, ToolCallFragment


class TestBlockStateMachine:
    """Tests for BlockStateMachine."""

    def test_text_run_opens_once(self):
        """Consecutive text fragments share one block."""
        blocks = BlockStateMachine()
        assert blocks.begin_text() == 0
        assert blocks.begin_text() is None
        assert blocks.open_index == 0
        assert blocks.state == RunState.IN_TEXT_RUN
        assert blocks.end_text() == 0
        assert blocks.state == RunState.IDLE

    def test_end_text_when_idle_is_noop(self):
        """Closing a text run that was never opened returns None."""
        blocks = BlockStateMachine()
        assert blocks.end_text() is None

    def test_indices_strictly_increase(self):
        """Text, tool, text get indices 0, 1, 2."""
        blocks = BlockStateMachine()
        assert blocks.begin_text() == 0
        assert blocks.end_text() == 0
        assert blocks.begin_tool_call() == 1
        assert blocks.end_tool_call() == 1
        assert blocks.begin_text() == 2
        assert blocks.end_text() == 2

    def test_tool_call_cannot_open_inside_text_run(self):
        """Blocks never interleave."""
        blocks = BlockStateMachine()
        blocks.begin_text()
        with pytest.raises(RuntimeError):
            blocks.begin_tool_call()

    def test_text_cannot_open_inside_tool_call(self):
        """A text run cannot start while a tool call block is open."""
        blocks = BlockStateMachine()
        blocks.begin_tool_call()
        with pytest.raises(RuntimeError):
            blocks.begin_text()

    def test_end_tool_call_requires_open_tool_call(self):
        """Closing a tool call block that is not open is an error."""
        blocks = BlockStateMachine()
        with pytest.raises(RuntimeError):
            blocks.end_tool_call()


class TestStopReasonTracker:
    """Tests for StopReasonTracker."""

    def test_defaults_without_tool_calls(self):
        """Only text yields the normal completion reason."""
        tracker = StopReasonTracker("end_turn", "tool_use")
        tracker.observe(TextFragment("hi"))
        assert tracker.value == "end_turn"
        assert not tracker.saw_tool_call

    def test_tool_call_is_sticky(self):
        """Text after a tool call does not revert the stop reason."""
        tracker = StopReasonTracker("stop", "tool_calls")
        tracker.observe(TextFragment("a"))
        tracker.observe(ToolCallFragment("call_1", "lookup", {}))
        tracker.observe(TextFragment("b"))
        assert tracker.value == "tool_calls"
