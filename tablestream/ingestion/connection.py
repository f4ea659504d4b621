"""Reconnecting push-stream connection manager.

Owns one transport subscription at a time, tracks the connection state,
reconnects with exponential backoff after failures and resumes from the
highest sequence id already handed to the consumer.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import Any

import httpx
import structlog

from tablestream.ingestion.sse import EventTransport, SSEMessage
from tablestream.models import ConnectionState

logger = structlog.get_logger(__name__)

INITIAL_RECONNECT_DELAY = 1.0
MAX_RECONNECT_DELAY = 5 * 60.0

MessageCallback = Callable[[SSEMessage], Awaitable[None]]
StateCallback = Callable[[ConnectionState], None]


class ConnectionManager:
    """
    Drives a single push-stream subscription through
    disconnected → connecting → connected / error.

    Every connection attempt gets a generation number. ``close()`` and each
    new attempt bump it, so a connection opened earlier can never touch the
    state again.
    """

    def __init__(
        self,
        transport: EventTransport,
        url: str,
        on_message: MessageCallback,
        *,
        initial_delay: float = INITIAL_RECONNECT_DELAY,
        max_delay: float = MAX_RECONNECT_DELAY,
        cursor: int = 0,
        on_state_change: StateCallback | None = None,
        name: str = "stream",
    ) -> None:
        self._transport = transport
        self._url = url
        self._on_message = on_message
        self._on_state_change = on_state_change
        self._initial_delay = initial_delay
        self._max_delay = max_delay
        self._log = logger.bind(stream=name)

        self._state = ConnectionState.DISCONNECTED
        self._enabled = False
        self._generation = 0
        self._reconnect_delay = initial_delay
        self._cursor = max(cursor, 0)

        self._conn_task: asyncio.Task[None] | None = None
        self._reconnect_handle: asyncio.TimerHandle | None = None

    # ── Introspection ─────────────────────────────────────────────────

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def cursor(self) -> int:
        return self._cursor

    @property
    def reconnect_delay(self) -> float:
        """Delay that the next failure will wait before reconnecting."""
        return self._reconnect_delay

    @property
    def reconnect_pending(self) -> bool:
        return self._reconnect_handle is not None

    @property
    def url(self) -> str:
        return self._url

    # ── Cursor ────────────────────────────────────────────────────────

    def advance_cursor(self, sequence_id: int) -> None:
        """Record that ``sequence_id`` was handed to the consumer. Never moves back."""
        if sequence_id > self._cursor:
            self._cursor = sequence_id

    # ── Lifecycle ─────────────────────────────────────────────────────

    def open(self) -> None:
        """Enable a disabled stream and connect now.

        No-op while already enabled, so a pending backoff is never cut short.
        """
        if self._enabled:
            return
        self._enabled = True
        self._connect()

    def close(self) -> None:
        """Tear down: cancel the timer, drop the transport, go to disconnected."""
        self._enabled = False
        self._generation += 1
        self._cancel_reconnect()
        self._drop_connection()
        self._set_state(ConnectionState.DISCONNECTED)

    async def aclose(self) -> None:
        """``close()`` and wait for the cancelled connection task to unwind."""
        task = self._conn_task
        self.close()
        if task is not None and not task.done():
            await asyncio.gather(task, return_exceptions=True)

    def set_url(self, url: str, cursor: int = 0) -> None:
        """Point at a different stream. Reconnects now if the stream is enabled."""
        self._url = url
        self._cursor = max(cursor, 0)
        self._reconnect_delay = self._initial_delay
        if self._enabled:
            self._connect()

    # ── Connection handling ───────────────────────────────────────────

    def _connect(self) -> None:
        self._cancel_reconnect()
        self._drop_connection()

        self._generation += 1
        generation = self._generation
        self._set_state(ConnectionState.CONNECTING)

        params: dict[str, Any] = {}
        if self._cursor > 0:
            params["lastEventId"] = self._cursor

        self._log.info("stream_connecting", url=self._url, last_event_id=self._cursor or None)
        self._conn_task = asyncio.get_running_loop().create_task(
            self._run(generation, params)
        )

    async def _run(self, generation: int, params: dict[str, Any]) -> None:
        try:
            async with self._transport.stream(self._url, params) as messages:
                async for message in messages:
                    if generation != self._generation:
                        return
                    if self._state is not ConnectionState.CONNECTED:
                        self._reconnect_delay = self._initial_delay
                        self._set_state(ConnectionState.CONNECTED)
                        self._log.info("stream_connected", url=self._url)
                    await self._on_message(message)
            if generation == self._generation:
                self._log.warning("stream_closed_by_server", url=self._url)
        except httpx.HTTPStatusError as e:
            self._log.error("stream_http_error", status=e.response.status_code, url=self._url)
        except httpx.TransportError as e:
            self._log.error("stream_connection_error", error=str(e), url=self._url)
        except Exception:
            self._log.exception("stream_unexpected_error", url=self._url)

        self._handle_failure(generation)

    def _handle_failure(self, generation: int) -> None:
        if generation != self._generation:
            return

        self._conn_task = None
        self._set_state(ConnectionState.ERROR)

        if not self._enabled:
            return

        delay = self._reconnect_delay
        self._reconnect_delay = min(self._reconnect_delay * 2, self._max_delay)
        self._log.info("stream_reconnecting", delay=delay)
        self._reconnect_handle = asyncio.get_running_loop().call_later(
            delay, self._reconnect, generation
        )

    def _reconnect(self, generation: int) -> None:
        self._reconnect_handle = None
        if generation != self._generation or not self._enabled:
            return
        self._connect()

    def _cancel_reconnect(self) -> None:
        if self._reconnect_handle is not None:
            self._reconnect_handle.cancel()
            self._reconnect_handle = None

    def _drop_connection(self) -> None:
        task = self._conn_task
        self._conn_task = None
        if task is not None and not task.done():
            task.cancel()

    def _set_state(self, state: ConnectionState) -> None:
        if state is self._state:
            return
        self._log.debug("stream_state_changed", old=self._state.value, new=state.value)
        self._state = state
        if self._on_state_change is not None:
            self._on_state_change(state)
