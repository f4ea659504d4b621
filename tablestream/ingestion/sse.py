"""Server-Sent Events transport over httpx.

``SSEDecoder`` turns a stream of text lines into messages following the
EventSource parsing rules. ``HttpxSSETransport`` opens the streaming GET and
yields decoded messages until the server closes the response.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Iterable
from contextlib import AbstractAsyncContextManager, asynccontextmanager
from dataclasses import dataclass
from typing import Any, Protocol

import httpx
import structlog

logger = structlog.get_logger(__name__)


@dataclass(frozen=True)
class SSEMessage:
    """One dispatched SSE message.

    ``id`` is the connection's last-event-id buffer at dispatch time, so it
    carries over from earlier messages when a message omits its own ``id:``.
    """

    data: str
    event: str = "message"
    id: str = ""
    retry: int | None = None


class SSEDecoder:
    """Incremental line decoder. Feed lines without their terminators."""

    def __init__(self) -> None:
        self._data: list[str] = []
        self._event = ""
        self._last_event_id = ""
        self._retry: int | None = None

    @property
    def last_event_id(self) -> str:
        return self._last_event_id

    def decode(self, line: str) -> SSEMessage | None:
        """Consume one line. Returns a message when a blank line ends one."""
        if not line:
            return self._dispatch()

        if line.startswith(":"):
            return None

        field, sep, value = line.partition(":")
        if sep and value.startswith(" "):
            value = value[1:]

        if field == "data":
            self._data.append(value)
        elif field == "event":
            self._event = value
        elif field == "id":
            if "\0" not in value:
                self._last_event_id = value
        elif field == "retry":
            if value.isascii() and value.isdigit():
                self._retry = int(value)
        # Unknown fields are ignored.
        return None

    def decode_all(self, lines: Iterable[str]) -> list[SSEMessage]:
        messages = []
        for line in lines:
            message = self.decode(line)
            if message is not None:
                messages.append(message)
        return messages

    def _dispatch(self) -> SSEMessage | None:
        if not self._data:
            self._event = ""
            return None

        message = SSEMessage(
            data="\n".join(self._data),
            event=self._event or "message",
            id=self._last_event_id,
            retry=self._retry,
        )
        self._data = []
        self._event = ""
        self._retry = None
        return message


class EventTransport(Protocol):
    """A push channel that can be opened with query parameters and read until it ends."""

    def stream(
        self, url: str, params: dict[str, Any]
    ) -> AbstractAsyncContextManager[AsyncIterator[SSEMessage]]: ...


class HttpxSSETransport:
    """Streams SSE messages from an HTTP endpoint with a shared httpx client."""

    def __init__(
        self,
        client: httpx.AsyncClient | None = None,
        connect_timeout: float = 10.0,
    ) -> None:
        self._owns_client = client is None
        # No read timeout: the stream may be idle for long stretches.
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(None, connect=connect_timeout),
        )

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    @asynccontextmanager
    async def stream(
        self, url: str, params: dict[str, Any]
    ) -> AsyncIterator[AsyncIterator[SSEMessage]]:
        headers = {"Accept": "text/event-stream", "Cache-Control": "no-cache"}
        async with self._client.stream("GET", url, params=params, headers=headers) as response:
            response.raise_for_status()
            logger.debug("sse_response_opened", url=url, status=response.status_code)
            yield self._messages(response)

    async def _messages(self, response: httpx.Response) -> AsyncIterator[SSEMessage]:
        decoder = SSEDecoder()
        async for line in response.aiter_lines():
            message = decoder.decode(line.rstrip("\r\n"))
            if message is not None:
                yield message
