"""Chat data model with Pydantic validation.

Wire names are camelCase (the server is a JS service); Python attributes are
snake_case. Every model accepts both.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

# === Enums ===


class ChatStatus(str, Enum):
    """Lifecycle of a chat session's current turn."""

    IDLE = "idle"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    ERROR = "error"


class ToolCallStatus(str, Enum):
    """State of a single tool invocation within a turn."""

    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    ERROR = "error"


class WireModel(BaseModel):
    """Base for models that travel over the wire in camelCase."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# === Usage ===


class Usage(WireModel):
    """Token usage and cost for one turn."""

    input_tokens: int = 0
    output_tokens: int = 0
    cost_usd: float = 0.0


# === Tool calls ===


class ToolCallState(WireModel):
    """Mutable tracking record for one tool call, keyed by the server's call id."""

    id: str
    tool_name: str = ""
    display_name: str | None = None
    args: Any = None
    result: Any = None
    status: ToolCallStatus = ToolCallStatus.PENDING
    duration_ms: int | None = None


# === Message parts ===


class TextPart(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["text"] = "text"
    text: str = ""


class ReasoningPart(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: Literal["reasoning"] = "reasoning"
    reasoning: str = ""


class ToolCallPart(BaseModel):
    """Rendered view of a ToolCallState."""

    model_config = ConfigDict(frozen=True)

    type: Literal["tool-call"] = "tool-call"
    tool_call_id: str
    tool_name: str = ""
    display_name: str | None = None
    args: Any = None
    result: Any = None
    state: ToolCallStatus = ToolCallStatus.PENDING
    duration_ms: int | None = None


MessagePart = TextPart | ReasoningPart | ToolCallPart


# === Messages ===


def _now() -> datetime:
    return datetime.now(timezone.utc)


class ChatMessage(BaseModel):
    """Immutable chat message as published in snapshots."""

    model_config = ConfigDict(frozen=True)

    id: str
    role: Literal["user", "assistant"]
    content: str = ""
    parts: tuple[MessagePart, ...] = ()
    created_at: datetime = Field(default_factory=_now)
    usage: Usage | None = None

    @property
    def tool_calls(self) -> list[ToolCallPart]:
        """Convenience: all tool call parts."""
        return [p for p in self.parts if isinstance(p, ToolCallPart)]

    @property
    def reasoning(self) -> str:
        """Convenience: concatenated reasoning parts."""
        return "".join(p.reasoning for p in self.parts if isinstance(p, ReasoningPart))

    def tool_call(self, tool_call_id: str) -> ToolCallPart | None:
        for part in self.tool_calls:
            if part.tool_call_id == tool_call_id:
                return part
        return None


def user_message(content: str, message_id: str) -> ChatMessage:
    """Build a user message with a single text part."""
    return ChatMessage(
        id=message_id,
        role="user",
        content=content,
        parts=(TextPart(text=content),),
    )


# === Request ===


class ChatRequest(WireModel):
    """POST body for the agent chat endpoint."""

    message: str
    agent_id: str
    workspace_id: str
    conversation_id: str | None = None

    def to_wire(self) -> dict[str, Any]:
        """camelCase body with unknown conversation id omitted."""
        return self.model_dump(by_alias=True, exclude_none=True)
