"""Consumer-facing table event stream.

Binds an ``OrderingQueue``, an ``EventDispatcher`` and a ``ConnectionManager``
into one object that a rendering layer can drive from its own lifecycle:
``start()`` on mount, ``configure()`` on prop changes, ``aclose()`` on unmount.
"""

from __future__ import annotations

import inspect
from typing import Any

import structlog

from tablestream.config import StreamConfig, get_config
from tablestream.ingestion.connection import ConnectionManager
from tablestream.ingestion.ordering import EventHandler, OrderingQueue
from tablestream.ingestion.router import EventDispatcher
from tablestream.ingestion.sse import EventTransport, HttpxSSETransport, SSEMessage
from tablestream.models import StreamEvent, StreamStatus

logger = structlog.get_logger(__name__)

_UNSET: Any = object()


class TableEventStream:
    """
    Ordered, resumable event feed for a single poker table.

    ``on_event`` is awaited for each event; the next ordered event is not
    released until it returns. Chat events bypass the ordering and may be
    delivered while an ordered handler is still running.
    """

    def __init__(
        self,
        table_id: int | None,
        on_event: EventHandler,
        *,
        enabled: bool = True,
        last_event_id: int | None = None,
        config: StreamConfig | None = None,
        transport: EventTransport | None = None,
    ) -> None:
        self._config = config or get_config().stream
        self._owns_transport = transport is None
        self._transport = transport or HttpxSSETransport(
            connect_timeout=self._config.connect_timeout
        )
        self._on_event = on_event
        self._table_id = table_id
        self._enabled = enabled
        self._started = False

        self._queue, self._dispatcher = self._build_pipeline(table_id)
        self._manager = ConnectionManager(
            self._transport,
            self._url_for(table_id),
            self._on_message,
            initial_delay=self._config.reconnect_initial_delay,
            max_delay=self._config.reconnect_max_delay,
            cursor=last_event_id or 0,
            name=f"table:{table_id}",
        )

    # ── Introspection ─────────────────────────────────────────────────

    @property
    def table_id(self) -> int | None:
        return self._table_id

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def cursor(self) -> int:
        return self._manager.cursor

    @property
    def status(self) -> StreamStatus:
        return StreamStatus(
            connection_state=self._manager.state,
            last_processed_event_id=self._queue.last_processed_id,
            queue_size=self._queue.size,
            is_processing=self._queue.is_processing,
        )

    # ── Lifecycle ─────────────────────────────────────────────────────

    def start(self) -> None:
        self._started = True
        self._sync_connection()

    def configure(
        self,
        *,
        table_id: int | None = _UNSET,
        enabled: bool | None = None,
        last_event_id: int | None = None,
    ) -> None:
        """Apply new subscription options, reconnecting only when needed."""
        if table_id is not _UNSET and table_id != self._table_id:
            logger.info("table_changed", old=self._table_id, new=table_id)
            self._queue.clear()
            self._table_id = table_id
            self._queue, self._dispatcher = self._build_pipeline(table_id)
            self._manager.close()
            self._manager.set_url(self._url_for(table_id), cursor=last_event_id or 0)
        elif last_event_id is not None:
            self._manager.advance_cursor(last_event_id)

        if enabled is not None:
            self._enabled = enabled

        if self._started:
            self._sync_connection()

    async def aclose(self) -> None:
        self._started = False
        await self._manager.aclose()
        self._queue.clear()
        if self._owns_transport:
            await self._transport.close()
        logger.info("table_stream_closed", table_id=self._table_id)

    async def __aenter__(self) -> TableEventStream:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    # ── Internals ─────────────────────────────────────────────────────

    def _sync_connection(self) -> None:
        if self._table_id and self._enabled:
            self._manager.open()
        else:
            self._manager.close()

    def _url_for(self, table_id: int | None) -> str:
        if not table_id:
            return ""
        return self._config.table_events_url(table_id)

    def _build_pipeline(self, table_id: int | None) -> tuple[OrderingQueue, EventDispatcher]:
        async def handle(event: StreamEvent) -> None:
            # Events still draining from a previous table must not move this cursor.
            if event.is_ordered and table_id == self._table_id:
                self._manager.advance_cursor(event.sequence_id)
            result = self._on_event(event)
            if inspect.isawaitable(result):
                await result

        queue = OrderingQueue(handle)
        dispatcher = EventDispatcher(
            queue,
            table_id=table_id,
            stats_interval=self._config.stats_interval,
        )
        return queue, dispatcher

    async def _on_message(self, message: SSEMessage) -> None:
        await self._dispatcher.dispatch(message)
