"""Folds stream events into the current assistant message."""

import logging
from datetime import datetime, timezone

from .events import StreamEvent
from .types import (
    ChatMessage,
    MessagePart,
    ReasoningPart,
    TextPart,
    ToolCallPart,
    ToolCallState,
    ToolCallStatus,
    Usage,
)

logger = logging.getLogger(__name__)


class AssistantTurn:
    """Mutable accumulator for one assistant turn.

    Only the session's reader task touches it. Snapshots handed to the rest
    of the program come from to_message() and are immutable.

    Example:
        turn = AssistantTurn("assistant-1")
        for event in events:
            turn.apply(event)
        message = turn.to_message()
    """

    def __init__(self, message_id: str):
        self.id = message_id
        self.text = ""
        self.reasoning = ""
        self.tool_calls: dict[str, ToolCallState] = {}
        self.session_id: str | None = None
        self.conversation_id: str | None = None
        self.usage: Usage | None = None
        self.error: str | None = None
        self.done = False
        self.created_at = datetime.now(timezone.utc)

    @property
    def is_empty(self) -> bool:
        return not self.text and not self.reasoning and not self.tool_calls

    def apply(self, event: StreamEvent) -> bool:
        """Apply one event. Returns True if the rendered message changed."""
        match event.type:
            case "text":
                self.text += event.content
                return bool(event.content)
            case "reasoning":
                self.reasoning += event.content
                return bool(event.content)
            case "tool_start":
                self.tool_calls[event.tool_call_id] = ToolCallState(
                    id=event.tool_call_id,
                    tool_name=event.tool_name,
                    display_name=event.display_name,
                    args=event.args,
                    status=ToolCallStatus.RUNNING,
                )
                return True
            case "tool_result":
                call = self.tool_calls.get(event.tool_call_id)
                if call is None:
                    logger.debug(f"Ignoring result for unknown tool call {event.tool_call_id}")
                    return False
                call.result = event.result
                call.status = ToolCallStatus.COMPLETED if event.success else ToolCallStatus.ERROR
                call.duration_ms = event.duration_ms
                return True
            case "session":
                self.session_id = event.session_id
                self.conversation_id = event.conversation_id
                return False
            case "error":
                self.error = event.message
                return False
            case "done":
                self.usage = event.usage
                self.done = True
                return True
        return False

    def parts(self) -> tuple[MessagePart, ...]:
        """Reasoning first, then text, then tool calls in first-seen order."""
        parts: list[MessagePart] = []
        if self.reasoning:
            parts.append(ReasoningPart(reasoning=self.reasoning))
        if self.text:
            parts.append(TextPart(text=self.text))
        for call in self.tool_calls.values():
            parts.append(
                ToolCallPart(
                    tool_call_id=call.id,
                    tool_name=call.tool_name,
                    display_name=call.display_name,
                    args=call.args,
                    result=call.result,
                    state=call.status,
                    duration_ms=call.duration_ms,
                )
            )
        return tuple(parts)

    def to_message(self) -> ChatMessage:
        return ChatMessage(
            id=self.id,
            role="assistant",
            content=self.text,
            parts=self.parts(),
            created_at=self.created_at,
            usage=self.usage,
        )
