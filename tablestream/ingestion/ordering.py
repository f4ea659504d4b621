"""Ordering and de-duplication queue for table events.

Accepts events in any arrival order and releases them to a handler strictly
in increasing ``sequence_id`` order, one at a time. Ephemeral kinds (chat)
skip the buffer and are handed over immediately.
"""

from __future__ import annotations

import asyncio
import bisect
import inspect
from collections.abc import Awaitable, Callable
from operator import attrgetter

import structlog

from tablestream.models import EPHEMERAL_KINDS, StreamEvent

logger = structlog.get_logger(__name__)

# The handler must return (or its awaitable must resolve) before the next
# ordered event is released.
EventHandler = Callable[[StreamEvent], Awaitable[None] | None]

_sequence_key = attrgetter("sequence_id")


class OrderingQueue:
    """
    Sorted in-memory buffer drained by a single asyncio task.

    ``last_processed_id`` advances after every handler call, including failed
    ones, so a poisoned event cannot stall the timeline.
    """

    def __init__(
        self,
        handler: EventHandler,
        *,
        ephemeral_kinds: frozenset[str] = EPHEMERAL_KINDS,
    ) -> None:
        self._handler = handler
        self._ephemeral_kinds = ephemeral_kinds

        self._buffer: list[StreamEvent] = []
        self._last_processed_id = 0
        self._stopped = False
        self._drain_task: asyncio.Task[None] | None = None
        self._ephemeral_tasks: set[asyncio.Task[None]] = set()

    # ── Introspection ─────────────────────────────────────────────────

    @property
    def size(self) -> int:
        return len(self._buffer)

    @property
    def is_processing(self) -> bool:
        return self._drain_task is not None and not self._drain_task.done()

    @property
    def last_processed_id(self) -> int:
        return self._last_processed_id

    @property
    def stopped(self) -> bool:
        return self._stopped

    # ── Public API ────────────────────────────────────────────────────

    async def enqueue(self, event: StreamEvent) -> None:
        """Buffer an ordered event, or hand an ephemeral one over right away."""
        if self._stopped:
            logger.debug("queue_stopped_event_ignored", sequence_id=event.sequence_id)
            return

        if event.kind in self._ephemeral_kinds:
            # Own task: cancelling the caller (connection teardown) must not
            # preempt a handler that is already running.
            task = asyncio.get_running_loop().create_task(self._invoke(event))
            self._ephemeral_tasks.add(task)
            task.add_done_callback(self._ephemeral_tasks.discard)
            await asyncio.shield(task)
            return

        if event.sequence_id <= self._last_processed_id:
            logger.warning(
                "stale_event_ignored",
                sequence_id=event.sequence_id,
                last_processed_id=self._last_processed_id,
            )
            return

        idx = bisect.bisect_left(self._buffer, event.sequence_id, key=_sequence_key)
        if idx < len(self._buffer) and self._buffer[idx].sequence_id == event.sequence_id:
            logger.warning("duplicate_event_ignored", sequence_id=event.sequence_id)
            return
        self._buffer.insert(idx, event)

        if not self.is_processing:
            self._drain_task = asyncio.get_running_loop().create_task(self._drain())

    def clear(self) -> None:
        """Stop the queue for good. The in-flight handler, if any, is not cancelled."""
        if not self._stopped:
            logger.debug("queue_cleared", dropped=len(self._buffer))
        self._stopped = True
        self._buffer.clear()

    stop = clear

    async def join(self) -> None:
        """Wait until the current drain loop has emptied the buffer."""
        if self._drain_task is not None and not self._drain_task.done():
            await asyncio.shield(self._drain_task)

    # ── Drain loop ────────────────────────────────────────────────────

    async def _drain(self) -> None:
        while self._buffer and not self._stopped:
            event = self._buffer.pop(0)

            # Cannot normally happen: enqueue filters these out.
            if event.sequence_id <= self._last_processed_id:
                logger.warning(
                    "processed_event_skipped",
                    sequence_id=event.sequence_id,
                    last_processed_id=self._last_processed_id,
                )
                continue

            await self._invoke(event)
            self._last_processed_id = event.sequence_id

    async def _invoke(self, event: StreamEvent) -> None:
        try:
            result = self._handler(event)
            if inspect.isawaitable(result):
                await result
        except Exception:
            logger.exception(
                "event_handler_error",
                sequence_id=event.sequence_id,
                kind=event.kind,
            )
