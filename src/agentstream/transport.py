"""HTTP transport for the agent chat endpoint (httpx)."""

import inspect
import logging
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Mapping

import httpx

from .abort import AbortSignal
from .config import ChatSettings, aresolve_config_value
from .exceptions import TransportError
from .types import ChatRequest

logger = logging.getLogger(__name__)

# Returns a bearer token for the current user, sync or async.
GetAccessTokenFn = Callable[[], Awaitable[str | None] | str | None]


class ChatTransport:
    """POSTs a chat request and exposes the ``text/event-stream`` body as raw chunks.

    Example:
        transport = ChatTransport("https://app.example.com")
        async with transport.open(request, signal) as chunks:
            async for chunk in chunks:
                ...
    """

    def __init__(
        self,
        base_url: str,
        path: str = "/api/agent-chat",
        get_access_token: GetAccessTokenFn | None = None,
        timeout: httpx.Timeout | float | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self._url = base_url.rstrip("/") + "/" + path.lstrip("/")
        self._get_access_token = get_access_token
        self._timeout = timeout if timeout is not None else httpx.Timeout(120.0, connect=10.0)
        self._client = client
        self._owns_client = client is None

    @classmethod
    def from_settings(
        cls,
        settings: ChatSettings,
        client: httpx.AsyncClient | None = None,
        env: Mapping[str, str] | None = None,
    ) -> "ChatTransport":
        """Build a transport from settings.

        ``access_token`` is resolved on each request; a "!command" token runs
        off the event loop and its output is cached.
        """
        token = settings.access_token
        get_token = (lambda: aresolve_config_value(token, env)) if token else None
        return cls(
            settings.base_url,
            settings.chat_path,
            get_access_token=get_token,
            timeout=httpx.Timeout(
                settings.timeout_seconds,
                connect=settings.connect_timeout_seconds,
            ),
            client=client,
        )

    @property
    def url(self) -> str:
        return self._url

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self._timeout)
        return self._client

    async def _headers(self) -> dict[str, str]:
        headers = {
            "Accept": "text/event-stream",
            "Content-Type": "application/json",
        }
        if self._get_access_token:
            token = self._get_access_token()
            if inspect.isawaitable(token):
                token = await token
            if token:
                headers["Authorization"] = f"Bearer {token}"
        return headers

    @asynccontextmanager
    async def open(
        self,
        request: ChatRequest,
        signal: AbortSignal | None = None,
    ) -> AsyncIterator[AsyncIterator[bytes]]:
        """Open the stream and yield an iterator over body chunks.

        Raises:
            TransportError: non-2xx status or network failure, including
                failures while the body is being read.
            AbortError: the signal was aborted between reads.
        """
        if signal is not None:
            signal.throw_if_aborted()

        headers = await self._headers()
        logger.debug(f"POST {self._url} (agent={request.agent_id})")
        try:
            async with self._get_client().stream(
                "POST",
                self._url,
                json=request.to_wire(),
                headers=headers,
            ) as response:
                if not response.is_success:
                    await response.aread()
                    raise TransportError(
                        f"HTTP error: {response.status_code}",
                        status_code=response.status_code,
                    )
                yield _iter_chunks(response, signal)
        except httpx.HTTPError as e:
            raise TransportError(str(e) or type(e).__name__) from e

    async def aclose(self) -> None:
        """Close the underlying client if this transport created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    async def __aenter__(self) -> "ChatTransport":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()


async def _iter_chunks(
    response: httpx.Response,
    signal: AbortSignal | None,
) -> AsyncIterator[bytes]:
    async for chunk in response.aiter_bytes():
        if signal is not None:
            signal.throw_if_aborted()
        yield chunk
