"""Server side of the chat stream: LiteLLM completion -> StreamEvents -> SSE.

A web handler does roughly:

    events = stream_agent_turn(history, conversation_id=conv_id, tools=tools)
    return StreamingResponse(sse_stream(events), headers=SSE_HEADERS)
"""

import json
import logging
import re
import time
from collections.abc import AsyncIterable, AsyncIterator, Callable
from typing import Any, Mapping

from litellm import acompletion
from pydantic import BaseModel, ConfigDict, Field

from .abort import AbortError, AbortSignal
from .events import (
    DoneEvent,
    ErrorEvent,
    ReasoningEvent,
    SessionEvent,
    StreamEvent,
    TextEvent,
    ToolResultEvent,
    ToolStartEvent,
)
from .providers import api_key_env_var, get_api_key, resolve_model
from .sse import encode_event
from .types import Usage

logger = logging.getLogger(__name__)

SSE_HEADERS = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
}

# Flat per-1K-token estimate used when the provider gives no price
INPUT_COST_PER_1K = 0.003
OUTPUT_COST_PER_1K = 0.015


def estimate_cost(input_tokens: int, output_tokens: int) -> float:
    return (input_tokens * INPUT_COST_PER_1K + output_tokens * OUTPUT_COST_PER_1K) / 1000


def display_name_for(tool_name: str) -> str:
    """Split a camelCase tool name for display: searchTransactions -> search Transactions."""
    return re.sub(r"([A-Z])", r" \1", tool_name).strip()


# === Tools ===


class RelayTool(BaseModel):
    """Tool the model may call during a turn.

    Override execute() in a subclass or build one with the @tool decorator.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True)

    name: str
    description: str
    parameters: dict[str, Any] = Field(default_factory=dict)  # JSON Schema
    display_name: str = ""

    async def execute(self, args: dict[str, Any]) -> Any:
        raise NotImplementedError(f"Tool {self.name} has no execute implementation")

    def to_openai(self) -> dict[str, Any]:
        """OpenAI function format, as LiteLLM expects."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": self.parameters,
            },
        }


def tool(
    name: str,
    description: str,
    parameters: dict[str, Any],
    display_name: str = "",
) -> Callable[[Callable], RelayTool]:
    """Decorator to create a RelayTool from an async function of the arguments.

    Example:
        @tool(
            name="searchTransactions",
            description="Search workspace transactions",
            parameters={"type": "object", "properties": {"query": {"type": "string"}}},
        )
        async def search(args):
            return {"hits": 3}
    """

    def decorator(fn: Callable) -> RelayTool:
        class DecoratedTool(RelayTool):
            async def execute(self, args: dict[str, Any]) -> Any:
                return await fn(args)

        return DecoratedTool(
            name=name,
            description=description,
            parameters=parameters,
            display_name=display_name or display_name_for(name),
        )

    return decorator


def _parse_args(raw: str) -> dict[str, Any]:
    if not raw:
        return {}
    try:
        args = json.loads(raw)
    except json.JSONDecodeError:
        logger.warning(f"Tool arguments are not valid JSON: {raw[:80]!r}")
        return {}
    return args if isinstance(args, dict) else {"value": args}


async def _run_tool(
    tools: dict[str, RelayTool],
    call_id: str,
    name: str,
    args: dict[str, Any],
) -> ToolResultEvent:
    started = time.monotonic()
    relay_tool = tools.get(name)
    if relay_tool is None:
        result: Any = {"error": f"Unknown tool: {name}"}
        success = False
    else:
        try:
            result = await relay_tool.execute(args)
            success = True
        except Exception as e:
            logger.warning(f"Tool {name} failed: {e}")
            result = {"error": str(e) or type(e).__name__}
            success = False

    return ToolResultEvent(
        tool_call_id=call_id,
        tool_name=name,
        result=result,
        success=success,
        duration_ms=int((time.monotonic() - started) * 1000),
    )


def _tool_message(event: ToolResultEvent) -> dict[str, Any]:
    result = event.result
    content = result if isinstance(result, str) else json.dumps(result, default=str)
    return {"role": "tool", "tool_call_id": event.tool_call_id, "content": content}


# === Turn ===


async def stream_agent_turn(
    messages: list[dict[str, Any]],
    *,
    conversation_id: str,
    is_resumed: bool = False,
    provider: str = "anthropic",
    model: str = "sonnet",
    system_prompt: str | None = None,
    tools: list[RelayTool] | None = None,
    max_steps: int = 5,
    env: Mapping[str, str] | None = None,
    signal: AbortSignal | None = None,
) -> AsyncIterator[StreamEvent]:
    """Run one agent turn and yield the chat stream's events.

    Args:
        messages: Conversation history in OpenAI format, ending with the
            new user message
        conversation_id: Conversation the turn belongs to (sent in ``session``)
        is_resumed: True if the conversation existed before this turn
        provider: Provider name, selects the API key env var
        model: Model alias or qualified LiteLLM name
        system_prompt: Optional system prompt
        tools: Tools the model may call
        max_steps: Maximum completion calls (tool rounds) per turn
        env: Environment to read API keys from (default: os.environ)
        signal: Stops the turn when the client disconnects

    Yields:
        session, then text/reasoning/tool_start/tool_result, then a final
        text(is_complete) and done. Failures yield a single error event.
    """
    api_key = get_api_key(provider, env)
    if not api_key:
        env_var = api_key_env_var(provider)
        logger.error(f"{env_var} is not set; cannot use {provider}")
        yield ErrorEvent(
            message=f"API key for {provider} is not configured. "
            f"Please set {env_var} environment variable.",
            recoverable=False,
        )
        return

    yield SessionEvent(
        session_id=f"{provider}-{int(time.time() * 1000)}",
        conversation_id=conversation_id,
        is_resumed=is_resumed,
    )

    litellm_model = resolve_model(provider, model)
    history: list[dict[str, Any]] = []
    if system_prompt:
        history.append({"role": "system", "content": system_prompt})
    history.extend(messages)

    tool_map = {t.name: t for t in tools or []}
    tool_specs = [t.to_openai() for t in tool_map.values()] or None

    input_tokens = 0
    output_tokens = 0
    steps = 0
    logger.info(f"Streaming {litellm_model} with {len(tool_map)} tools")

    try:
        while steps < max_steps:
            if signal is not None:
                signal.throw_if_aborted()
            steps += 1

            kwargs: dict[str, Any] = {
                "model": litellm_model,
                "messages": history,
                "stream": True,
                "api_key": api_key,
                "stream_options": {"include_usage": True},
            }
            if tool_specs:
                kwargs["tools"] = tool_specs

            response = await acompletion(**kwargs)

            text_parts: list[str] = []
            calls: dict[Any, dict[str, str]] = {}
            step_usage = None

            async for chunk in response:
                if signal is not None:
                    signal.throw_if_aborted()
                usage = getattr(chunk, "usage", None)
                if usage:
                    step_usage = usage
                if not chunk.choices:
                    continue
                delta = chunk.choices[0].delta

                if delta.content:
                    text_parts.append(delta.content)
                    yield TextEvent(content=delta.content)

                reasoning = getattr(delta, "reasoning_content", None)
                if reasoning:
                    yield ReasoningEvent(content=reasoning)

                for tc in getattr(delta, "tool_calls", None) or []:
                    key = getattr(tc, "index", None)
                    if key is None:
                        key = tc.id or (next(reversed(calls)) if calls else 0)
                    slot = calls.setdefault(key, {"id": "", "name": "", "arguments": ""})
                    if tc.id:
                        slot["id"] = tc.id
                    if tc.function and tc.function.name:
                        slot["name"] = tc.function.name
                    if tc.function and tc.function.arguments:
                        slot["arguments"] += tc.function.arguments

            if step_usage:
                input_tokens += getattr(step_usage, "prompt_tokens", 0) or 0
                output_tokens += getattr(step_usage, "completion_tokens", 0) or 0

            if not calls:
                break

            history.append(
                {
                    "role": "assistant",
                    "content": "".join(text_parts) or None,
                    "tool_calls": [
                        {
                            "id": slot["id"],
                            "type": "function",
                            "function": {"name": slot["name"], "arguments": slot["arguments"] or "{}"},
                        }
                        for slot in calls.values()
                    ],
                }
            )

            for slot in calls.values():
                args = _parse_args(slot["arguments"])
                relay_tool = tool_map.get(slot["name"])
                yield ToolStartEvent(
                    tool_call_id=slot["id"],
                    tool_name=slot["name"],
                    args=args,
                    display_name=(relay_tool.display_name if relay_tool else None)
                    or display_name_for(slot["name"]),
                )
                result_event = await _run_tool(tool_map, slot["id"], slot["name"], args)
                yield result_event
                history.append(_tool_message(result_event))

        yield TextEvent(content="", is_complete=True)
        logger.info(f"Turn complete: {steps} steps, {input_tokens}+{output_tokens} tokens")
        yield DoneEvent(
            usage=Usage(
                input_tokens=input_tokens,
                output_tokens=output_tokens,
                cost_usd=estimate_cost(input_tokens, output_tokens),
            ),
            turn_count=steps,
        )

    except AbortError:
        logger.info(f"Turn for conversation {conversation_id} aborted by client")
    except Exception as e:
        logger.exception(f"{provider} error")
        yield ErrorEvent(
            message=str(e) or f"An error occurred with {provider}",
            recoverable=False,
        )


async def sse_stream(events: AsyncIterable[StreamEvent]) -> AsyncIterator[str]:
    """Frame an event stream as SSE text chunks."""
    async for event in events:
        yield encode_event(event)
