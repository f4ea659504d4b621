"""Lobby chat feed. Chat only, so there is no ordering queue and no cursor."""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable

import structlog
from pydantic import ValidationError

from tablestream.config import StreamConfig, get_config
from tablestream.ingestion.connection import ConnectionManager
from tablestream.ingestion.router import parse_envelope
from tablestream.ingestion.sse import EventTransport, HttpxSSETransport, SSEMessage
from tablestream.models import ChatMessage, ConnectionState

logger = structlog.get_logger(__name__)

ChatHandler = Callable[[ChatMessage], Awaitable[None] | None]


class LobbyEventStream:
    """Delivers validated lobby chat messages as they arrive."""

    def __init__(
        self,
        on_chat_message: ChatHandler,
        *,
        enabled: bool = True,
        config: StreamConfig | None = None,
        transport: EventTransport | None = None,
    ) -> None:
        config = config or get_config().stream
        self._owns_transport = transport is None
        self._transport = transport or HttpxSSETransport(connect_timeout=config.connect_timeout)
        self._on_chat_message = on_chat_message
        self._enabled = enabled
        self._started = False
        self._handler_tasks: set[asyncio.Task[None]] = set()
        self._manager = ConnectionManager(
            self._transport,
            config.lobby_events_url,
            self._on_message,
            initial_delay=config.reconnect_initial_delay,
            max_delay=config.reconnect_max_delay,
            name="lobby",
        )

    @property
    def connection_state(self) -> ConnectionState:
        return self._manager.state

    def start(self) -> None:
        self._started = True
        self.set_enabled(self._enabled)

    def set_enabled(self, enabled: bool) -> None:
        self._enabled = enabled
        if not self._started:
            return
        if enabled:
            self._manager.open()
        else:
            self._manager.close()

    async def aclose(self) -> None:
        self._started = False
        await self._manager.aclose()
        if self._owns_transport:
            await self._transport.close()

    async def __aenter__(self) -> LobbyEventStream:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def _on_message(self, message: SSEMessage) -> None:
        body = parse_envelope(message.data)
        if body is None:
            logger.error("invalid_lobby_event_body", raw=message.data[:200])
            return

        if body["kind"] != "chat_message":
            logger.debug("lobby_event_ignored", kind=body["kind"])
            return

        try:
            chat = ChatMessage.model_validate(body)
        except ValidationError:
            logger.exception("chat_message_parse_error", msg=body)
            return

        logger.debug("lobby_chat_received", message_id=chat.message_id)
        # Own task so that tearing down the connection never cancels the handler.
        task = asyncio.get_running_loop().create_task(self._deliver(chat))
        self._handler_tasks.add(task)
        task.add_done_callback(self._handler_tasks.discard)
        await asyncio.shield(task)

    async def _deliver(self, chat: ChatMessage) -> None:
        try:
            result = self._on_chat_message(chat)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception("chat_handler_error", message_id=chat.message_id)
