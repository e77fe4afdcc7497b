"""Tests for the assistant turn accumulator."""

import pytest

from agentstream import (
    AssistantTurn,
    DoneEvent,
    ErrorEvent,
    ReasoningEvent,
    SessionEvent,
    TextEvent,
    ToolCallStatus,
    ToolResultEvent,
    ToolStartEvent,
    Usage,
)
from agentstream.types import ReasoningPart, TextPart, ToolCallPart


@pytest.fixture
def turn():
    return AssistantTurn("assistant-1")


class TestText:
    def test_text_concatenates_in_order(self, turn):
        events = [
            SessionEvent(session_id="s1"),
            TextEvent(content="Hello "),
            TextEvent(content="world"),
            DoneEvent(usage=Usage(input_tokens=5, output_tokens=2, cost_usd=0.001)),
        ]
        for event in events:
            turn.apply(event)

        message = turn.to_message()
        assert message.role == "assistant"
        assert message.content == "Hello world"
        assert message.usage.cost_usd == 0.001
        assert turn.done is True
        assert turn.session_id == "s1"

    def test_complete_marker_does_not_change_message(self, turn):
        turn.apply(TextEvent(content="hi"))
        assert turn.apply(TextEvent(content="", is_complete=True)) is False
        assert turn.text == "hi"

    def test_reasoning_accumulates(self, turn):
        turn.apply(ReasoningEvent(content="Let me "))
        turn.apply(ReasoningEvent(content="think"))
        assert turn.to_message().reasoning == "Let me think"


class TestToolCalls:
    def test_start_then_result_completes(self, turn):
        turn.apply(ToolStartEvent(tool_call_id="t1", tool_name="search", args={"q": "x"}))
        assert turn.tool_calls["t1"].status == ToolCallStatus.RUNNING

        turn.apply(
            ToolResultEvent(tool_call_id="t1", result={"hits": 3}, success=True, duration_ms=12)
        )
        call = turn.tool_calls["t1"]
        assert call.status == ToolCallStatus.COMPLETED
        assert call.result["hits"] == 3
        assert call.duration_ms == 12

        part = turn.to_message().tool_call("t1")
        assert part.state == ToolCallStatus.COMPLETED
        assert part.result == {"hits": 3}

    def test_failed_result_marks_error(self, turn):
        turn.apply(ToolStartEvent(tool_call_id="t1", tool_name="search"))
        turn.apply(ToolResultEvent(tool_call_id="t1", result="denied", success=False))
        assert turn.tool_calls["t1"].status == ToolCallStatus.ERROR

    def test_orphan_result_is_noop(self, turn):
        turn.apply(TextEvent(content="hi"))
        turn.apply(ToolStartEvent(tool_call_id="t1", tool_name="search"))
        before = turn.to_message()

        changed = turn.apply(ToolResultEvent(tool_call_id="unknown", result={"x": 1}))

        assert changed is False
        assert list(turn.tool_calls) == ["t1"]
        assert turn.to_message().parts == before.parts

    def test_duplicate_start_overwrites_in_place(self, turn):
        turn.apply(ToolStartEvent(tool_call_id="t1", tool_name="search"))
        turn.apply(ToolStartEvent(tool_call_id="t2", tool_name="lookup"))
        turn.apply(ToolStartEvent(tool_call_id="t1", tool_name="search", args={"q": "again"}))
        assert list(turn.tool_calls) == ["t1", "t2"]
        assert turn.tool_calls["t1"].args == {"q": "again"}

    def test_interleaved_calls(self, turn):
        turn.apply(ToolStartEvent(tool_call_id="t1", tool_name="a"))
        turn.apply(TextEvent(content="working"))
        turn.apply(ToolStartEvent(tool_call_id="t2", tool_name="b"))
        turn.apply(ToolResultEvent(tool_call_id="t2", success=True))
        turn.apply(ToolResultEvent(tool_call_id="t1", success=False))
        states = {c.tool_call_id: c.state for c in turn.to_message().tool_calls}
        assert states == {"t1": ToolCallStatus.ERROR, "t2": ToolCallStatus.COMPLETED}


class TestParts:
    def test_part_order(self, turn):
        turn.apply(ToolStartEvent(tool_call_id="t1", tool_name="search"))
        turn.apply(TextEvent(content="answer"))
        turn.apply(ReasoningEvent(content="thinking"))
        parts = turn.to_message().parts
        assert [type(p) for p in parts] == [ReasoningPart, TextPart, ToolCallPart]

    def test_empty_turn_has_no_parts(self, turn):
        assert turn.is_empty
        assert turn.to_message().parts == ()


class TestErrorEvent:
    def test_error_keeps_partial_text(self, turn):
        turn.apply(TextEvent(content="partial"))
        turn.apply(ErrorEvent(message="boom"))
        assert turn.error == "boom"
        assert turn.to_message().content == "partial"
