"""Event types for the agent chat stream."""

from typing import Annotated, Any, Literal

from pydantic import Field, TypeAdapter

from .types import Usage, WireModel

# === Event Types ===


class SessionEvent(WireModel):
    """Server session established; carries the conversation the turn belongs to."""

    type: Literal["session"] = "session"
    session_id: str
    conversation_id: str | None = None
    is_resumed: bool = False


class TextEvent(WireModel):
    """Assistant text delta. ``is_complete`` marks the end of text output."""

    type: Literal["text"] = "text"
    content: str = ""
    is_complete: bool = False


class ReasoningEvent(WireModel):
    """Reasoning/thinking delta."""

    type: Literal["reasoning"] = "reasoning"
    content: str = ""


class ToolStartEvent(WireModel):
    """Tool call started."""

    type: Literal["tool_start"] = "tool_start"
    tool_call_id: str
    tool_name: str
    args: Any = None
    display_name: str | None = None


class ToolResultEvent(WireModel):
    """Tool call finished."""

    type: Literal["tool_result"] = "tool_result"
    tool_call_id: str
    tool_name: str | None = None
    result: Any = None
    success: bool = True
    duration_ms: int | None = None


class ErrorEvent(WireModel):
    """Turn failed on the server."""

    type: Literal["error"] = "error"
    message: str
    recoverable: bool = False


class DoneEvent(WireModel):
    """Turn completed."""

    type: Literal["done"] = "done"
    usage: Usage = Field(default_factory=Usage)
    turn_count: int | None = None


StreamEvent = Annotated[
    SessionEvent
    | TextEvent
    | ReasoningEvent
    | ToolStartEvent
    | ToolResultEvent
    | ErrorEvent
    | DoneEvent,
    Field(discriminator="type"),
]

EVENT_TYPES = ("session", "text", "reasoning", "tool_start", "tool_result", "error", "done")

_adapter: TypeAdapter = TypeAdapter(StreamEvent)


def parse_event(payload: dict[str, Any]) -> StreamEvent:
    """Validate a decoded payload into its event variant.

    Raises:
        pydantic.ValidationError: unknown ``type`` or missing fields.
    """
    return _adapter.validate_python(payload)
