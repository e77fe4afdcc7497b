"""agentstream CLI - chat with an agent, replay recorded streams."""

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from dotenv import load_dotenv
from rich.console import Console

from ..accumulator import AssistantTurn
from ..config import ChatSettings, load_settings
from ..session import ChatSession, ChatSnapshot
from ..sse import iter_events
from ..transport import ChatTransport
from ..types import ChatStatus, ToolCallStatus, Usage

_STATE_STYLE = {
    ToolCallStatus.PENDING: "dim",
    ToolCallStatus.RUNNING: "yellow",
    ToolCallStatus.COMPLETED: "green",
    ToolCallStatus.ERROR: "red",
}


class StreamRenderer:
    """Prints the growing assistant reply as snapshots arrive."""

    def __init__(self, console: Console):
        self.console = console
        self._version = -1
        self._text: dict[str, int] = {}
        self._reasoning: dict[str, int] = {}
        self._tools: dict[str, ToolCallStatus] = {}

    def update(self, snap: ChatSnapshot) -> None:
        if snap.version <= self._version:
            return
        self._version = snap.version
        if not snap.messages or snap.messages[-1].role != "assistant":
            return
        message = snap.messages[-1]

        reasoning = message.reasoning
        shown = self._reasoning.get(message.id, 0)
        if len(reasoning) > shown:
            self.console.print(reasoning[shown:], end="", style="dim italic", markup=False)
            self._reasoning[message.id] = len(reasoning)

        shown = self._text.get(message.id, 0)
        if len(message.content) > shown:
            self.console.print(message.content[shown:], end="", markup=False, highlight=False)
            self._text[message.id] = len(message.content)

        for part in message.tool_calls:
            if self._tools.get(part.tool_call_id) == part.state:
                continue
            self._tools[part.tool_call_id] = part.state
            name = part.display_name or part.tool_name
            self.console.print(
                f"\n[bold]tool[/bold] {name} [{_STATE_STYLE[part.state]}]{part.state.value}[/]"
            )


def _print_usage(console: Console, usage: Usage | None) -> None:
    if usage:
        console.print(
            f"[dim]{usage.input_tokens} in / {usage.output_tokens} out, "
            f"${usage.cost_usd:.4f}[/dim]"
        )


async def _chat(args, settings: ChatSettings, console: Console) -> int:
    async with ChatTransport.from_settings(settings) as transport:
        session = ChatSession(
            args.agent,
            args.workspace,
            conversation_id=args.conversation,
            transport=transport,
            settings=settings,
            on_conversation_created=lambda cid: console.print(f"[dim]conversation {cid}[/dim]"),
        )
        session.subscribe(StreamRenderer(console).update)
        await session.send_message(args.message)

        console.print()
        if session.status == ChatStatus.ERROR:
            console.print(f"[red]Error: {session.error}[/red]")
            return 1
        _print_usage(console, session.usage)
        return 0


def cmd_chat(args):
    """Send one message and stream the reply."""
    settings = load_settings()
    if args.base_url:
        settings.base_url = args.base_url
    if args.token:
        settings.access_token = args.token
    if args.timeout:
        settings.turn_timeout_seconds = args.timeout

    console = Console()
    try:
        code = asyncio.run(_chat(args, settings, console))
    except KeyboardInterrupt:
        console.print("\n[dim]stopped[/dim]")
        code = 130
    sys.exit(code)


def cmd_replay(args):
    """Decode a recorded SSE body and print the resulting message."""
    path = Path(args.file)
    if not path.is_file():
        print(f"Error: {args.file} not found", file=sys.stderr)
        sys.exit(1)

    turn = AssistantTurn(path.stem)
    events = iter_events(path.read_text(encoding="utf-8"))
    for event in events:
        turn.apply(event)

    console = Console()
    console.print_json(turn.to_message().model_dump_json())
    console.print(f"[dim]{len(events)} events[/dim]")
    if turn.error:
        console.print(f"[red]Error: {turn.error}[/red]")
        sys.exit(1)
    _print_usage(console, turn.usage)


def main():
    load_dotenv()

    parser = argparse.ArgumentParser(
        prog="agentstream",
        description="agentstream: agent chat streaming client",
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    # chat
    p_chat = subparsers.add_parser("chat", help="Send a message to an agent")
    p_chat.add_argument("message", help="Message text")
    p_chat.add_argument("--agent", "-a", required=True, help="Agent ID")
    p_chat.add_argument("--workspace", "-w", required=True, help="Workspace ID")
    p_chat.add_argument("--conversation", "-c", help="Continue an existing conversation")
    p_chat.add_argument("--base-url", help="Override the server base URL")
    p_chat.add_argument("--token", help="Bearer token (literal, env var name, or !command)")
    p_chat.add_argument("--timeout", type=float, help="Abort the turn after N seconds")
    p_chat.set_defaults(func=cmd_chat)

    # replay
    p_replay = subparsers.add_parser("replay", help="Decode a recorded SSE stream")
    p_replay.add_argument("file", help="File containing the raw event-stream body")
    p_replay.set_defaults(func=cmd_replay)

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )
    args.func(args)


if __name__ == "__main__":
    main()
