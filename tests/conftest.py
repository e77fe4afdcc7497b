"""Pytest configuration and shared fixtures."""

import asyncio

import httpx
import pytest

from agentstream import ChatSession, ChatTransport, encode_event


@pytest.fixture
def sse():
    """Encode events into a raw event-stream body."""

    def _sse(*events) -> bytes:
        return "".join(encode_event(e) for e in events).encode()

    return _sse


@pytest.fixture
def make_session():
    """Build a ChatSession whose HTTP calls go to ``handler``."""

    def _make(handler, **kwargs) -> ChatSession:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        transport = ChatTransport("http://test", client=client)
        return ChatSession("agent-1", "ws-1", transport=transport, **kwargs)

    return _make


async def wait_until(predicate, timeout: float = 2.0):
    async def _poll():
        while not predicate():
            await asyncio.sleep(0.001)

    await asyncio.wait_for(_poll(), timeout)


@pytest.fixture
def until():
    return wait_until
