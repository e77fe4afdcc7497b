"""Chat session: one conversation with an agent, streamed turn by turn."""

import asyncio
import logging
import uuid
from typing import Callable

from pydantic import BaseModel, ConfigDict

from .abort import CALLER_ABORT, AbortController, AbortError, AbortSignal
from .accumulator import AssistantTurn
from .config import ChatSettings
from .events import StreamEvent
from .exceptions import StreamError
from .sse import aiter_events
from .transport import ChatTransport
from .types import ChatMessage, ChatRequest, ChatStatus, Usage, user_message

logger = logging.getLogger(__name__)

# Abort reason used when a turn exceeds ChatSettings.turn_timeout_seconds.
TIMEOUT_ABORT = "timeout"


class ChatSnapshot(BaseModel):
    """Immutable view of a session, published after every change.

    ``version`` strictly increases, so consumers can drop stale snapshots.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    version: int
    messages: tuple[ChatMessage, ...] = ()
    status: ChatStatus = ChatStatus.IDLE
    error: Exception | None = None
    conversation_id: str | None = None
    session_id: str | None = None
    usage: Usage | None = None

    @property
    def is_streaming(self) -> bool:
        return self.status in (ChatStatus.CONNECTING, ChatStatus.STREAMING)


SnapshotListener = Callable[[ChatSnapshot], None]


def _new_id(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:12]}"


class ChatSession:
    """Chat with one agent in one workspace.

    At most one turn is in flight; sending while a turn streams is ignored.
    Every received event produces a new ChatSnapshot for subscribers.

    Example:
        session = ChatSession("agent-1", "ws-1", settings=load_settings())
        session.subscribe(lambda snap: render(snap.messages))

        await session.send_message("How much did we spend on travel?")
        print(session.messages[-1].content)
    """

    def __init__(
        self,
        agent_id: str,
        workspace_id: str,
        conversation_id: str | None = None,
        initial_messages: list[ChatMessage] | None = None,
        on_conversation_created: Callable[[str], None] | None = None,
        on_error: Callable[[Exception], None] | None = None,
        transport: ChatTransport | None = None,
        settings: ChatSettings | None = None,
    ):
        self.agent_id = agent_id
        self.workspace_id = workspace_id
        self._settings = settings or ChatSettings()
        self._transport = transport or ChatTransport.from_settings(self._settings)
        self._on_conversation_created = on_conversation_created
        self._on_error = on_error

        self._messages: tuple[ChatMessage, ...] = tuple(initial_messages or ())
        self._status = ChatStatus.IDLE
        self._error: Exception | None = None
        self._conversation_id = conversation_id
        self._session_id: str | None = None
        self._usage: Usage | None = None

        self._listeners: set[SnapshotListener] = set()
        self._publishing = False
        self._snapshot = self._build_snapshot(0)

        # Current turn; all None while idle
        self._turn: AssistantTurn | None = None
        self._abort: AbortController | None = None
        self._rollback: tuple[ChatMessage, ...] | None = None

    # === State ===

    @property
    def messages(self) -> tuple[ChatMessage, ...]:
        return self._messages

    @property
    def status(self) -> ChatStatus:
        return self._status

    @property
    def error(self) -> Exception | None:
        return self._error

    @property
    def conversation_id(self) -> str | None:
        return self._conversation_id

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def usage(self) -> Usage | None:
        """Usage of the last completed turn."""
        return self._usage

    @property
    def is_streaming(self) -> bool:
        return self._status in (ChatStatus.CONNECTING, ChatStatus.STREAMING)

    @property
    def in_flight(self) -> bool:
        """True from an accepted send until the turn finishes or is stopped."""
        return self._turn is not None

    @property
    def snapshot(self) -> ChatSnapshot:
        return self._snapshot

    # === State Mutators ===

    def set_messages(self, messages: list[ChatMessage]):
        self._messages = tuple(messages)
        self._publish()

    def set_conversation_id(self, conversation_id: str | None):
        self._conversation_id = conversation_id
        self._publish()

    def clear_messages(self):
        """Stop any turn and forget the conversation."""
        self.stop_generation()
        self._messages = ()
        self._conversation_id = None
        self._session_id = None
        self._usage = None
        self._error = None
        self._status = ChatStatus.IDLE
        self._publish()

    # === Snapshots ===

    def subscribe(self, fn: SnapshotListener) -> Callable[[], None]:
        """Subscribe to snapshots. Returns unsubscribe function."""
        self._listeners.add(fn)
        return lambda: self._listeners.discard(fn)

    def _build_snapshot(self, version: int) -> ChatSnapshot:
        return ChatSnapshot(
            version=version,
            messages=self._messages,
            status=self._status,
            error=self._error,
            conversation_id=self._conversation_id,
            session_id=self._session_id,
            usage=self._usage,
        )

    def _publish(self):
        self._snapshot = self._build_snapshot(self._snapshot.version + 1)
        if self._publishing:
            # A listener changed the session; the outer loop delivers it
            return

        self._publishing = True
        try:
            delivered: dict[SnapshotListener, int] = {}
            while True:
                snap = self._snapshot
                for fn in list(self._listeners):
                    if delivered.get(fn, -1) >= snap.version:
                        continue
                    delivered[fn] = snap.version
                    fn(snap)
                if self._snapshot is snap:
                    break
        finally:
            self._publishing = False

    # === Control ===

    def stop_generation(self):
        """Cancel the in-flight turn.

        The turn is discarded entirely: both the partial assistant reply and
        the user message that started it are removed, so ``messages`` is back
        to what it was before send_message(). No error is reported.
        """
        turn, controller = self._turn, self._abort
        if turn is None:
            return
        logger.info(f"Stopping turn {turn.id}")
        self._discard_turn()
        controller.abort(CALLER_ABORT)

    def _discard_turn(self):
        if self._rollback is not None:
            self._messages = self._rollback
        self._status = ChatStatus.IDLE
        self._end_turn()
        self._publish()

    def _end_turn(self):
        self._turn = None
        self._abort = None
        self._rollback = None

    # === Send ===

    async def send_message(self, content: str):
        """Send a user message and stream the agent's reply.

        Returns when the turn completes, fails, or is stopped. Failures are
        reported through ``error``/``status`` and on_error, not raised.
        """
        content = content.strip()
        if not content:
            return
        if self._turn is not None:
            logger.debug("Turn already in flight; ignoring send")
            return

        controller = AbortController()
        turn = AssistantTurn(_new_id("assistant"))
        self._turn = turn
        self._abort = controller
        self._rollback = self._messages

        self._messages = self._messages + (user_message(content, _new_id("user")),)
        self._status = ChatStatus.CONNECTING
        self._error = None
        self._usage = None
        self._publish()

        request = ChatRequest(
            message=content,
            agent_id=self.agent_id,
            workspace_id=self.workspace_id,
            conversation_id=self._conversation_id,
        )

        reader = asyncio.create_task(self._read_turn(request, turn, controller.signal))
        controller.signal.on_abort(reader.cancel)

        timer = None
        if self._settings.turn_timeout_seconds:
            timer = asyncio.get_running_loop().call_later(
                self._settings.turn_timeout_seconds,
                controller.abort,
                TIMEOUT_ABORT,
            )

        try:
            await reader
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                # Our caller was cancelled: treat it like the stop button.
                self.stop_generation()
                raise
            # The reader was cancelled before it ever ran, so it could not
            # classify the abort itself.
            self._handle_abort(turn, controller.signal.reason)
        finally:
            if timer is not None:
                timer.cancel()
            if self._turn is turn:
                self._end_turn()

    async def _read_turn(self, request: ChatRequest, turn: AssistantTurn, signal: AbortSignal):
        """Single reader loop for one turn."""
        try:
            async with self._transport.open(request, signal) as chunks:
                if self._turn is not turn:
                    return
                self._status = ChatStatus.STREAMING
                self._publish()

                async for event in aiter_events(chunks):
                    if self._turn is not turn:
                        return
                    self._handle_event(turn, event)

            if self._turn is turn and self._status != ChatStatus.ERROR:
                logger.info(f"Turn {turn.id} finished (done={turn.done})")
                self._status = ChatStatus.IDLE
                self._publish()

        except (AbortError, asyncio.CancelledError):
            if not signal.aborted:
                raise
            self._handle_abort(turn, signal.reason)
        except Exception as e:
            logger.warning(f"Turn {turn.id} failed: {e}")
            self._fail(turn, e)

    def _handle_event(self, turn: AssistantTurn, event: StreamEvent):
        logger.debug(f"Event {event.type} for turn {turn.id}")
        changed = turn.apply(event)

        match event.type:
            case "session":
                self._session_id = event.session_id
                if event.conversation_id and not self._conversation_id:
                    self._conversation_id = event.conversation_id
                    logger.info(f"Conversation created: {event.conversation_id}")
                    if self._on_conversation_created:
                        self._on_conversation_created(event.conversation_id)
            case "done":
                self._usage = event.usage
                self._status = ChatStatus.IDLE

        self._place_message(turn, changed)

        if event.type == "error":
            self._fail(turn, StreamError(event.message, event.recoverable))
            return
        self._publish()

    def _place_message(self, turn: AssistantTurn, changed: bool):
        """Insert the turn's message on first sight, replace it when it changed."""
        for i, message in enumerate(self._messages):
            if message.id == turn.id:
                if changed:
                    self._messages = (
                        self._messages[:i] + (turn.to_message(),) + self._messages[i + 1 :]
                    )
                return
        self._messages = self._messages + (turn.to_message(),)

    def _handle_abort(self, turn: AssistantTurn, reason: str | None):
        if self._turn is not turn:
            return
        if reason == CALLER_ABORT:
            self._discard_turn()
        else:
            self._fail(turn, AbortError(reason))

    def _fail(self, turn: AssistantTurn, error: Exception):
        """Mark the turn errored. Partial content stays; an empty reply is removed."""
        if self._turn is not turn:
            return
        if turn.is_empty:
            self._messages = tuple(m for m in self._messages if m.id != turn.id)
        self._error = error
        self._status = ChatStatus.ERROR
        self._publish()
        if self._on_error:
            try:
                self._on_error(error)
            except Exception:
                logger.exception("on_error callback failed")
