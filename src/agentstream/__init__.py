"""
agentstream - Streaming client and relay for the agent chat protocol.

The server answers a chat POST with a ``text/event-stream`` of typed events
(session, text, reasoning, tool_start, tool_result, error, done). The client
folds them into chat messages and republishes a snapshot after every event.

Quick start:
    from agentstream import ChatSession, load_settings

    session = ChatSession("agent-1", "ws-1", settings=load_settings())
    session.subscribe(lambda snap: print(snap.messages[-1].content))
    await session.send_message("What did we spend on travel last month?")

    # Offline: decode a recorded body
    from agentstream import AssistantTurn, iter_events

    turn = AssistantTurn("replay")
    for event in iter_events(body):
        turn.apply(event)
    print(turn.to_message().content)
"""

__version__ = "0.1.0"

# Abort (cancellation)
from .abort import (
    CALLER_ABORT,
    AbortController,
    AbortError,
    AbortSignal,
)
from .accumulator import AssistantTurn

# Config
from .config import (
    ChatSettings,
    aresolve_config_value,
    load_settings,
    resolve_config_value,
)

# Events
from .events import (
    DoneEvent,
    ErrorEvent,
    ReasoningEvent,
    SessionEvent,
    StreamEvent,
    TextEvent,
    ToolResultEvent,
    ToolStartEvent,
    parse_event,
)
from .exceptions import (
    ChatError,
    StreamError,
    TransportError,
)
from .session import (
    TIMEOUT_ABORT,
    ChatSession,
    ChatSnapshot,
)

# Framing
from .sse import (
    SSEDecoder,
    SSERecord,
    aiter_events,
    decode_record,
    encode_event,
    iter_events,
)
from .transport import ChatTransport
from .types import (
    # Messages
    ChatMessage,
    ChatRequest,
    # Enums
    ChatStatus,
    MessagePart,
    ReasoningPart,
    TextPart,
    ToolCallPart,
    ToolCallState,
    ToolCallStatus,
    # Usage
    Usage,
)

__all__ = [
    # Version
    "__version__",
    # Enums
    "ChatStatus",
    "ToolCallStatus",
    # Messages
    "ChatMessage",
    "ChatRequest",
    "MessagePart",
    "TextPart",
    "ReasoningPart",
    "ToolCallPart",
    "ToolCallState",
    # Usage
    "Usage",
    # Events
    "SessionEvent",
    "TextEvent",
    "ReasoningEvent",
    "ToolStartEvent",
    "ToolResultEvent",
    "ErrorEvent",
    "DoneEvent",
    "StreamEvent",
    "parse_event",
    # Framing
    "SSEDecoder",
    "SSERecord",
    "aiter_events",
    "decode_record",
    "encode_event",
    "iter_events",
    # Client
    "AssistantTurn",
    "ChatSession",
    "ChatSnapshot",
    "ChatTransport",
    "TIMEOUT_ABORT",
    # Config
    "ChatSettings",
    "load_settings",
    "resolve_config_value",
    "aresolve_config_value",
    # Errors
    "ChatError",
    "TransportError",
    "StreamError",
    # Abort
    "AbortSignal",
    "AbortController",
    "AbortError",
    "CALLER_ABORT",
]
